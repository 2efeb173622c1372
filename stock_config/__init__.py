"""
stock_config -- settings for the stock kernel.

Responsibility:
    ``get_settings()`` is the single way to obtain settings at runtime.
    It reads the packaged ``defaults.yaml``, merges an optional override
    file (explicit path, else ``$STOCK_CONFIG_FILE``) and applies
    ``$DATABASE_URL``.

Architecture position:
    Sits above ``stock_kernel``.  The kernel MUST NEVER import from
    ``stock_config``; ``stock_config.bridges`` hands settings to it.

Failure modes:
    - ``FileNotFoundError`` -- override file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

from pathlib import Path

from stock_config.loader import load_settings
from stock_config.schema import (
    DatabaseSettings,
    LoggingSettings,
    PrecisionSettings,
    StockSettings,
    WorkflowSettings,
)


def get_settings(path: Path | str | None = None) -> StockSettings:
    """Load and validate settings."""
    return load_settings(Path(path) if path is not None else None)


__all__ = [
    "DatabaseSettings",
    "LoggingSettings",
    "PrecisionSettings",
    "StockSettings",
    "WorkflowSettings",
    "get_settings",
]
