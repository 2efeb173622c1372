"""
StockSettings schema.

Frozen dataclasses that the loader fills from YAML.  Field defaults are
the values shipped in ``defaults.yaml``; a YAML file only needs to name
what it changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection and pool settings for ``init_engine_from_url``."""

    url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class PrecisionSettings:
    """Decimal places for issue and approval money amounts."""

    money_places: int = 2


@dataclass(frozen=True)
class WorkflowSettings:
    issue_number_prefix: str = "MI"
    transfer_number_prefix: str = "MT"
    exclude_expired_batches: bool = True


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StockSettings:
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    precision: PrecisionSettings = field(default_factory=PrecisionSettings)
    workflow: WorkflowSettings = field(default_factory=WorkflowSettings)
