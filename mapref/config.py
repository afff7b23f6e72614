"""Index configuration, read from an optional .mapref.yml at the corpus root."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = ".mapref.yml"


class ConfigError(ValueError):
    """Raised when the configuration file cannot be used."""


@dataclass
class IndexConfig:
    """Settings for one corpus."""

    tagrenderings_pool: str = "questions"
    filters_pool: str = "filters"
    excluded_layers: list[str] = field(default_factory=lambda: ["favourite"])
    excluded_files: list[str] = field(default_factory=lambda: ["license_info.json"])
    excluded_suffixes: list[str] = field(default_factory=lambda: [".proto.json"])
    snapshot: str = ".cache/mapref-index.json"
    debounce_seconds: float = 1.0


def _coerce_str(data: dict[str, Any], key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{key} must be a non-empty string")
    return value.strip()


def _coerce_str_list(data: dict[str, Any], key: str, default: list[str]) -> list[str]:
    value = data.get(key, default)
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"{key} must be a list of strings")
    return [item.strip() for item in value if item.strip()]


def parse_config(data: Any) -> IndexConfig:
    """Build an IndexConfig from parsed YAML data."""
    if data is None:
        return IndexConfig()
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a mapping")

    defaults = IndexConfig()
    unknown = sorted(set(data) - set(defaults.__dataclass_fields__))
    if unknown:
        raise ConfigError(f"unknown configuration keys: {', '.join(unknown)}")

    debounce = data.get("debounce_seconds", defaults.debounce_seconds)
    if isinstance(debounce, bool) or not isinstance(debounce, (int, float)) or debounce < 0:
        raise ConfigError("debounce_seconds must be a non-negative number")

    return IndexConfig(
        tagrenderings_pool=_coerce_str(data, "tagrenderings_pool", defaults.tagrenderings_pool),
        filters_pool=_coerce_str(data, "filters_pool", defaults.filters_pool),
        excluded_layers=_coerce_str_list(data, "excluded_layers", defaults.excluded_layers),
        excluded_files=_coerce_str_list(data, "excluded_files", defaults.excluded_files),
        excluded_suffixes=_coerce_str_list(data, "excluded_suffixes", defaults.excluded_suffixes),
        snapshot=_coerce_str(data, "snapshot", defaults.snapshot),
        debounce_seconds=float(debounce),
    )


def load_config(root: Path) -> IndexConfig:
    """Load the corpus configuration; a missing file means defaults."""
    path = root / CONFIG_FILENAME
    if not path.exists():
        return IndexConfig()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read {path}: {e}") from e
    return parse_config(data)
