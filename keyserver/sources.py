"""Readers for the flat files that feed the key registry.

A missing or broken file never stops the server: readers log the problem
and return an empty source.
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .config import Settings
from .links import LinkTemplate
from .resolver import ConnectionLine, LegacyPair, RawEntry, UserRecord

logger = logging.getLogger(__name__)


def read_json_safe(path: Path, fallback: Any = None) -> Any:
    """Load JSON from ``path``, returning ``fallback`` if missing or invalid."""
    if not path.exists():
        return fallback

    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"Failed to read JSON {path}: {e}")
        return fallback


def read_text_lines(path: Path) -> list[str]:
    """Return the stripped, non-empty lines of ``path``."""
    if not path.exists():
        return []

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Failed to read text {path}: {e}")
        return []

    return [line.strip() for line in text.splitlines() if line.strip()]


def load_user_records(path: Path) -> list[UserRecord]:
    """Load user records from a JSON array or an object with a ``data`` array."""
    users = read_json_safe(path, [])
    if isinstance(users, dict):
        users = users.get("data")
    if not isinstance(users, list):
        if users is not None:
            logger.warning(f"Ignoring {path}: expected a list of users")
        return []

    return [UserRecord.from_dict(item) for item in users if isinstance(item, dict)]


def load_connection_lines(path: Path) -> list[ConnectionLine]:
    """Load one raw connection link per line."""
    return [ConnectionLine(line) for line in read_text_lines(path)]


def load_legacy_pairs(path: Path) -> list[LegacyPair]:
    """Load ``{"keys": [{"slug": ..., "vless": ...}]}`` pairs."""
    legacy = read_json_safe(path, None)
    if not isinstance(legacy, dict) or not isinstance(legacy.get("keys"), list):
        return []

    pairs = []
    for item in legacy["keys"]:
        if not isinstance(item, dict):
            continue
        slug = item.get("slug")
        value = item.get("vless")
        pairs.append(
            LegacyPair(
                slug="" if slug is None else str(slug).strip(),
                value="" if value is None else str(value).strip(),
            )
        )
    return pairs


def load_link_template(settings: Settings) -> LinkTemplate:
    """Build the link template: defaults, then the generator config file,
    then non-empty environment overrides.

    Null values in the file mean "use the default". A file that still does
    not validate is ignored, and so are overrides that do not validate.
    """
    file_values = read_json_safe(settings.generator_config_path, {})
    if not isinstance(file_values, dict):
        logger.warning(
            f"Ignoring {settings.generator_config_path}: expected a JSON object"
        )
        file_values = {}

    file_values = {key: value for key, value in file_values.items() if value is not None}
    try:
        template = LinkTemplate.model_validate(file_values)
    except ValidationError as e:
        logger.error(f"Invalid link template in {settings.generator_config_path}: {e}")
        template = LinkTemplate()

    overrides = settings.template_overrides()
    if not overrides:
        return template

    try:
        return LinkTemplate.model_validate(
            {**template.model_dump(), **overrides}
        )
    except ValidationError as e:
        logger.error(f"Invalid link template override: {e}")
        return template


def collect_entries(settings: Settings) -> list[RawEntry]:
    """Read all sources in precedence order: users, lines, legacy pairs."""
    users = load_user_records(settings.users_path)
    lines = load_connection_lines(settings.links_path)
    legacy = load_legacy_pairs(settings.legacy_keys_path)

    logger.info(
        f"Loaded {len(users)} user record(s) from {settings.users_path}, "
        f"{len(lines)} line(s) from {settings.links_path}, "
        f"{len(legacy)} legacy pair(s) from {settings.legacy_keys_path}"
    )
    return [*users, *lines, *legacy]
