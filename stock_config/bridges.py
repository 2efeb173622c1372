"""
Config -> Kernel bridges.

Turn StockSettings into kernel objects.  They live in stock_config because
the kernel must never import stock_config.

Usage:
    from stock_config import get_settings
    from stock_config.bridges import build_orchestrator, init_engine_from_settings

    settings = get_settings()
    init_engine_from_settings(settings)
    orchestrator = build_orchestrator(settings, session)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from stock_config.schema import StockSettings
from stock_kernel.db.engine import init_engine_from_url
from stock_kernel.domain.clock import Clock
from stock_kernel.logging_config import configure_logging
from stock_kernel.services.stock_orchestrator import StockOrchestrator


def init_engine_from_settings(settings: StockSettings) -> Engine:
    db = settings.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )


def configure_logging_from_settings(settings: StockSettings) -> None:
    configure_logging(level=settings.logging.level.upper())


def build_orchestrator(
    settings: StockSettings,
    session: Session,
    clock: Clock | None = None,
    auto_commit: bool = True,
) -> StockOrchestrator:
    """Build a StockOrchestrator with precision and workflow settings applied."""
    return StockOrchestrator(
        session,
        clock=clock,
        auto_commit=auto_commit,
        money_places=settings.precision.money_places,
        issue_number_prefix=settings.workflow.issue_number_prefix,
        transfer_number_prefix=settings.workflow.transfer_number_prefix,
        exclude_expired_batches=settings.workflow.exclude_expired_batches,
    )
