"""
BaseService -- abstract base for stock kernel services.

Contract:
    Every service receives the caller's SQLAlchemy ``Session`` and only
    ever calls ``session.flush()``.  Commit and rollback belong to the
    caller (StockOrchestrator, session_scope(), or a test harness), which
    lets several service calls form one atomic unit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """Abstract base class for all kernel services."""

    def __init__(self, session: Session):
        self.session = session
