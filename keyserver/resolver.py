"""Slug derivation and collision resolution.

Every raw entry (a user record, a raw connection line or a legacy
slug/value pair) is turned into a URL-safe slug and bound to its connection
link. Entries are processed in input order and the first entry to claim a
slug keeps it; later entries with the same slug get a numeric suffix
(``home``, ``home-2``, ``home-3``...).
"""

import hashlib
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Union

from .links import VLESS_SCHEME, LinkTemplate, build_vless_link, parse_tag, parse_uuid

logger = logging.getLogger(__name__)

MAX_SLUG_LENGTH = 64
FALLBACK_SLUG = "key"
SLUG_INVALID_RE = re.compile(r"[^a-z0-9_-]+")


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


@dataclass(frozen=True)
class UserRecord:
    """User entry from ``users.json``; the link is generated from a template."""

    uuid: str
    email: str = ""
    sub_id: str = ""
    id: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserRecord":
        return cls(
            uuid=_text(data.get("uuid")),
            email=_text(data.get("email")),
            sub_id=_text(data.get("subId")),
            id=_text(data.get("id")),
        )


@dataclass(frozen=True)
class ConnectionLine:
    """Ready-made ``vless://`` link, one per line of ``vless.txt``."""

    line: str


@dataclass(frozen=True)
class LegacyPair:
    """Explicit slug/link pair from ``keys.json``."""

    slug: str
    value: str


RawEntry = Union[UserRecord, ConnectionLine, LegacyPair]


def _normalize(candidate: str) -> str:
    return SLUG_INVALID_RE.sub("-", candidate.lower()).strip("-")


def sanitize(candidate: Any) -> str:
    """Turn any value into a URL-safe slug.

    Lowercases, collapses every run of characters outside ``[a-z0-9_-]``
    into a single ``-``, strips leading and trailing dashes and truncates
    to 64 characters. Never fails: an empty result becomes ``"key"``.

    Example:
        >>> sanitize("Alice@Example.com")
        'alice-example-com'
    """
    slug = _normalize(str(candidate))[:MAX_SLUG_LENGTH].rstrip("-")
    return slug or FALLBACK_SLUG


def derive_base_identifier(entry: RawEntry) -> str:
    """Return the human readable identifier a slug is derived from.

    Args:
        entry: User record, connection line or legacy pair

    Returns:
        Unsanitized base identifier
    """
    if isinstance(entry, UserRecord):
        if entry.email:
            return entry.email
        if entry.sub_id:
            return entry.sub_id
        if entry.id:
            return f"id-{entry.id}"
        return entry.uuid
    if isinstance(entry, ConnectionLine):
        return parse_tag(entry.line) or parse_uuid(entry.line) or FALLBACK_SLUG
    if isinstance(entry, LegacyPair):
        return entry.slug
    return FALLBACK_SLUG


def _is_usable(entry: RawEntry) -> bool:
    if isinstance(entry, UserRecord):
        return bool(entry.uuid)
    if isinstance(entry, ConnectionLine):
        return entry.line.startswith(VLESS_SCHEME)
    if isinstance(entry, LegacyPair):
        return bool(entry.slug) and bool(entry.value)
    return False


def _short_hash(text: str) -> str:
    return hashlib.sha256(text.encode()).hexdigest()[:8]


def probe_candidate(base: str, attempt: int) -> str:
    """Return the slug tried on the given probe attempt (1 = no suffix).

    Suffixed candidates are ``sanitize(base + "-N")``. When that would be
    cut by the length limit the suffix would be lost, so the base is
    trimmed instead and a short hash of it is added before the counter.
    """
    if attempt <= 1:
        return sanitize(base)

    suffixed = f"{base}-{attempt}"
    if len(_normalize(suffixed)) <= MAX_SLUG_LENGTH:
        return sanitize(suffixed)

    tail = f"-{_short_hash(base)}-{attempt}"
    head = _normalize(base)[: MAX_SLUG_LENGTH - len(tail)].rstrip("-")
    return sanitize(head + tail)


def _entry_value(entry: RawEntry, slug: str, template: LinkTemplate) -> str:
    if isinstance(entry, UserRecord):
        tag = entry.email or entry.sub_id or slug
        return build_vless_link(entry.uuid, template, tag)
    if isinstance(entry, ConnectionLine):
        return entry.line
    return entry.value


def resolve(
    entries: Iterable[RawEntry], template: LinkTemplate | None = None
) -> Mapping[str, str]:
    """Bind every usable entry to a unique slug.

    Entries are processed in order. A slug already bound by an earlier entry
    is never overwritten; the later entry probes ``-2``, ``-3``... until a
    free slug is found. Entries missing their identifying field are skipped.
    The template's slug prefix is prepended to every base identifier.

    Args:
        entries: Ordered raw entries from all sources
        template: Link template for user records, defaults to LinkTemplate()

    Returns:
        Read-only mapping of slug to connection link, in binding order
    """
    if template is None:
        template = LinkTemplate()

    mapping: dict[str, str] = {}
    skipped = 0

    for entry in entries:
        if not _is_usable(entry):
            skipped += 1
            continue

        base = f"{template.slug_prefix}{derive_base_identifier(entry)}"
        attempt = 1
        slug = probe_candidate(base, attempt)
        while slug in mapping:
            attempt += 1
            slug = probe_candidate(base, attempt)

        if attempt > 1:
            logger.debug(f"Slug collision for '{base}', bound as '{slug}'")
        mapping[slug] = _entry_value(entry, slug, template)

    if skipped:
        logger.debug(f"Skipped {skipped} entries without identifying fields")

    return MappingProxyType(mapping)
