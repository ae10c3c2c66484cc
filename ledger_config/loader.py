"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads YAML files, merges overrides onto the packaged defaults, and parses
the result into ``ledger_config.schema`` dataclasses.  Runtime callers use
``ledger_config.get_active_config()`` rather than this module.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, or a value of the wrong type  -> ``ValueError``
  naming the offending key.
"""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    ISOLATION_LEVELS,
    LOG_LEVELS,
    DatabaseConfig,
    LedgerConfig,
    LoggingConfig,
    RetryConfig,
    ValidationConfig,
)

_SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "retry": RetryConfig,
    "validation": ValidationConfig,
    "logging": LoggingConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def merge_config(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge: keys in ``override`` win, other keys are kept."""
    merged = {name: dict(values or {}) for name, values in base.items()}
    for name, values in override.items():
        if not isinstance(values, dict):
            raise ValueError(f"config section '{name}' must be a mapping")
        merged.setdefault(name, {}).update(values)
    return merged


def _coerce(section: str, key: str, value: Any, expected: type) -> Any:
    if expected is bool:
        if not isinstance(value, bool):
            raise ValueError(f"{section}.{key} must be true or false, got {value!r}")
        return value
    if expected is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{section}.{key} must be an integer, got {value!r}")
        return value
    if expected is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{section}.{key} must be a number, got {value!r}")
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"{section}.{key} must be a string, got {value!r}")
    return value


def parse_section(section: str, data: dict[str, Any]) -> Any:
    """Build the dataclass for one section, rejecting unknown keys."""
    cls = _SECTIONS[section]
    declared = {f.name: f.type for f in fields(cls)}
    unknown = sorted(set(data) - set(declared))
    if unknown:
        raise ValueError(f"unknown key(s) in '{section}': {', '.join(unknown)}")
    types = {"bool": bool, "int": int, "float": float, "str": str}
    kwargs = {
        key: _coerce(section, key, value, types[declared[key]])
        for key, value in data.items()
    }
    return cls(**kwargs)


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """
    Parse a merged configuration dict.

    Raises:
        ValueError: unknown sections/keys, bad types, or out-of-range values.
    """
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ValueError(f"unknown config section(s): {', '.join(unknown)}")

    if not data.get("database", {}).get("url"):
        raise ValueError("database.url is required")

    config = LedgerConfig(
        **{name: parse_section(name, data.get(name, {})) for name in _SECTIONS}
    )

    if config.database.isolation_level not in ISOLATION_LEVELS:
        raise ValueError(
            f"database.isolation_level must be one of {sorted(ISOLATION_LEVELS)}"
        )
    if config.retry.max_attempts < 1:
        raise ValueError("retry.max_attempts must be at least 1")
    if config.validation.max_future_days < 0:
        raise ValueError("validation.max_future_days must not be negative")
    if config.logging.level.upper() not in LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(LOG_LEVELS)}")

    return config
