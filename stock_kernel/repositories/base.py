"""
BaseRepository -- abstract base for kernel repositories.

Repositories are the only code that reads or writes batch and ledger rows.
Services receive them by injection (defaulting to the SQLAlchemy-backed
implementations here) so a test can hand a service a substitute.

Contract:
    Repositories use ``session.flush()`` and never commit or roll back;
    the caller owns the transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(ABC, Generic[ModelType]):
    """Holds the caller's session; subclasses add typed queries."""

    def __init__(self, session: Session):
        self.session = session
