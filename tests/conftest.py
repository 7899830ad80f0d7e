"""Shared fixtures."""

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from keyserver.config import Settings


@pytest.fixture
def make_settings(tmp_path: Path) -> Callable[..., Settings]:
    """Build settings whose every source file lives in ``tmp_path``."""

    def factory(**overrides: Any) -> Settings:
        values = {
            "data_dir": str(tmp_path),
            "legacy_keys_file": str(tmp_path / "keys.json"),
            "generator_config": str(tmp_path / "generator.config.json"),
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return factory


@pytest.fixture
def write_json(tmp_path: Path) -> Callable[[str, Any], Path]:
    """Write a JSON document into ``tmp_path`` and return its path."""

    def writer(name: str, data: Any) -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return writer
