"""VLESS link parsing and template-based link generation."""

import re
import urllib.parse

from pydantic import BaseModel, ConfigDict, Field

VLESS_SCHEME = "vless://"
VLESS_UUID_RE = re.compile(r"^vless://([0-9a-fA-F\-]+)@")

# Query parameters in the order they appear in generated links
TEMPLATE_PARAMS = ("type", "security", "pbk", "fp", "sni", "sid", "spx", "flow")


class LinkTemplate(BaseModel):
    """Parameters shared by every link generated from a bare uuid.

    Field names match ``generator.config.json``; the two prefixes are also
    accepted in their camelCase spelling (``tagPrefix``, ``slugPrefix``).
    """

    model_config = ConfigDict(
        populate_by_name=True, extra="ignore", coerce_numbers_to_str=True
    )

    host: str = "127.0.0.1"
    port: int = 8443
    type: str = "tcp"
    security: str = "reality"
    pbk: str = ""
    sni: str = "www.samsung.com"
    fp: str = "chrome"
    sid: str = ""
    spx: str = "/"
    flow: str = "xtls-rprx-vision"
    tag_prefix: str = Field(default="", alias="tagPrefix")
    slug_prefix: str = Field(default="", alias="slugPrefix")


def parse_uuid(line: str) -> str | None:
    """Extract the user id from ``vless://<uuid>@host:port...``."""
    match = VLESS_UUID_RE.match(line)
    return match.group(1) if match else None


def parse_tag(line: str) -> str | None:
    """Extract the percent-decoded fragment after the first ``#``.

    Returns None when the line has no fragment at all. An empty fragment
    yields an empty string, which callers treat as missing.
    """
    index = line.find("#")
    if index < 0:
        return None
    return urllib.parse.unquote(line[index + 1 :]).strip()


def build_vless_link(uuid: str, template: LinkTemplate, tag: str | None = None) -> str:
    """Build a VLESS link for ``uuid`` from the shared template.

    Args:
        uuid: User id to embed in the link
        template: Server parameters
        tag: Human readable label, defaults to the uuid

    Returns:
        VLESS URL string
    """
    params = []
    for name in TEMPLATE_PARAMS:
        value = getattr(template, name)
        if value:
            params.append((name, value))

    query_string = urllib.parse.urlencode(params)
    label = urllib.parse.quote(
        f"{template.tag_prefix}{tag or uuid}", safe="!~*'()"
    )
    return f"vless://{uuid}@{template.host}:{template.port}/?{query_string}#{label}"
