"""Key link server: short shareable pages for VLESS connection links."""

__version__ = "0.1.0"
