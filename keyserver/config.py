"""Configuration settings for the key link server."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Data sources
    data_dir: str = Field(default="data")
    users_file: str = Field(default="users.json")
    links_file: str = Field(default="vless.txt")
    legacy_keys_file: str = Field(default="keys.json")
    generator_config: str = Field(default="generator.config.json")

    # Link template overrides, empty means "use generator config or default"
    vpn_host: str = Field(default="")
    vpn_port: str = Field(default="")
    vpn_type: str = Field(default="")
    vpn_security: str = Field(default="")
    vpn_pbk: str = Field(default="")
    vpn_sni: str = Field(default="")
    vpn_fp: str = Field(default="")
    vpn_sid: str = Field(default="")
    vpn_spx: str = Field(default="")
    vpn_flow: str = Field(default="")
    tag_prefix: str = Field(default="")
    slug_prefix: str = Field(default="")

    # Presentation
    service_name: str = Field(default="VPN")
    deeplink_base: str = Field(default="https://deeplink.website/?url=")
    home_list_limit: int = Field(default=50)
    base_url: str = Field(default="")

    # Server configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, env_prefix="", extra="ignore"
    )

    @property
    def users_path(self) -> Path:
        return Path(self.data_dir) / self.users_file

    @property
    def links_path(self) -> Path:
        return Path(self.data_dir) / self.links_file

    @property
    def legacy_keys_path(self) -> Path:
        return Path(self.legacy_keys_file)

    @property
    def generator_config_path(self) -> Path:
        return Path(self.generator_config)

    def template_overrides(self) -> dict[str, str]:
        """Return the non-empty link template overrides keyed by template field."""
        overrides = {
            "host": self.vpn_host,
            "port": self.vpn_port,
            "type": self.vpn_type,
            "security": self.vpn_security,
            "pbk": self.vpn_pbk,
            "sni": self.vpn_sni,
            "fp": self.vpn_fp,
            "sid": self.vpn_sid,
            "spx": self.vpn_spx,
            "flow": self.vpn_flow,
            "tag_prefix": self.tag_prefix,
            "slug_prefix": self.slug_prefix,
        }
        return {key: value for key, value in overrides.items() if value.strip()}


# Global settings instance
settings = Settings()
