"""
Settings loader (``stock_config.loader``).

Responsibility
--------------
Reads YAML settings files and parses them into the frozen dataclasses of
``stock_config.schema``.  The packaged ``defaults.yaml`` is always read
first; an override file is merged over it section by section.

Invariants enforced
-------------------
* Unknown sections or keys raise ``ValueError``; nothing is ignored.
* Every value is type-checked (bools are not accepted as ints).
* ``$DATABASE_URL`` replaces ``database.url`` when set.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid structure or values  -> ``ValueError``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from stock_config.schema import (
    DatabaseSettings,
    LoggingSettings,
    PrecisionSettings,
    StockSettings,
    WorkflowSettings,
)

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

_SECTIONS: dict[str, type] = {
    "database": DatabaseSettings,
    "logging": LoggingSettings,
    "precision": PrecisionSettings,
    "workflow": WorkflowSettings,
}

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML mapping; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def merge_settings(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``override`` over ``base`` one section deep."""
    merged: dict[str, Any] = {k: dict(v or {}) for k, v in base.items()}
    for section, values in override.items():
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"section '{section}' must be a mapping")
        merged.setdefault(section, {}).update(values)
    return merged


def _check_type(section: str, key: str, value: Any, expected: type) -> Any:
    if expected is bool:
        ok = isinstance(value, bool)
    elif expected is int:
        ok = isinstance(value, int) and not isinstance(value, bool)
    else:
        ok = isinstance(value, expected)
    if not ok:
        raise ValueError(
            f"{section}.{key} must be {expected.__name__}, got {type(value).__name__}"
        )
    return value


def _parse_section(section: str, cls: type, data: Mapping[str, Any]) -> Any:
    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ValueError(f"unknown key(s) in '{section}': {', '.join(unknown)}")

    values: dict[str, Any] = {}
    for name, value in data.items():
        # Annotations are strings under postponed evaluation
        expected = {"str": str, "int": int, "bool": bool}[known[name].type]
        values[name] = _check_type(section, name, value, expected)
    return cls(**values)


def parse_settings(data: Mapping[str, Any]) -> StockSettings:
    """
    Build StockSettings from a merged mapping.

    Raises:
        ValueError: unknown section/key, wrong type, or out-of-range value.
    """
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ValueError(f"unknown settings section(s): {', '.join(unknown)}")

    parsed = {
        section: _parse_section(section, cls, data.get(section) or {})
        for section, cls in _SECTIONS.items()
    }
    settings = StockSettings(**parsed)
    _validate(settings)
    return settings


def _validate(settings: StockSettings) -> None:
    db = settings.database
    if not db.url.strip():
        raise ValueError("database.url must not be empty")
    for name in ("pool_size", "pool_timeout"):
        if getattr(db, name) <= 0:
            raise ValueError(f"database.{name} must be positive")
    if db.max_overflow < 0:
        raise ValueError("database.max_overflow must not be negative")

    if settings.logging.level.upper() not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(_LOG_LEVELS)}")

    if not 0 <= settings.precision.money_places <= 9:
        raise ValueError("precision.money_places must be between 0 and 9")

    workflow = settings.workflow
    for name in ("issue_number_prefix", "transfer_number_prefix"):
        if not getattr(workflow, name).strip():
            raise ValueError(f"workflow.{name} must not be empty")


def load_settings(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> StockSettings:
    """
    Load defaults, merge ``path`` (or ``$STOCK_CONFIG_FILE``), apply env.

    Args:
        path: Optional override file.
        environ: Environment mapping; defaults to ``os.environ``.
    """
    env = os.environ if environ is None else environ
    data = load_yaml_file(DEFAULTS_FILE)

    override_path = path or (Path(env["STOCK_CONFIG_FILE"]) if env.get("STOCK_CONFIG_FILE") else None)
    if override_path is not None:
        data = merge_settings(data, load_yaml_file(Path(override_path)))

    if env.get("DATABASE_URL"):
        data = merge_settings(data, {"database": {"url": env["DATABASE_URL"]}})

    settings = parse_settings(data)
    logging.getLogger("stock_kernel.config").info(
        "settings_loaded",
        extra={
            "source": str(override_path) if override_path else "defaults",
            "dialect": settings.database.url.split(":", 1)[0],
        },
    )
    return settings
