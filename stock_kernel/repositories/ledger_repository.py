"""
Module: stock_kernel.repositories.ledger_repository
Responsibility: Append-only access to the stock ledger.
Architecture position: Kernel > Repositories.

Invariants enforced:
    - append() accepts an entry only if exactly one of quantity_in /
      quantity_out is set and that quantity is positive.
    - append() stamps created_at from the injected clock.
    - There is no update or delete method; the ORM listeners reject both.

Queries:
    by transaction_id, by (item_id, batch_id), by reversal_of, and the
    original (non-reversal) entries of a transaction, optionally scoped to
    one item and batch.
"""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import InvalidMovementError
from stock_kernel.models.stock_ledger import StockLedgerEntry
from stock_kernel.repositories.base import BaseRepository

_ORDER = (StockLedgerEntry.created_at, StockLedgerEntry.transaction_date)


class LedgerRepository(BaseRepository[StockLedgerEntry]):
    """SQLAlchemy-backed stock ledger journal."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def append(self, entry: StockLedgerEntry) -> StockLedgerEntry:
        """
        Validate, stamp and persist one ledger entry.

        Raises:
            InvalidMovementError: both or neither side set, or non-positive.
        """
        has_in = entry.quantity_in is not None
        has_out = entry.quantity_out is not None
        if has_in == has_out:
            raise InvalidMovementError(
                "exactly one of quantity_in / quantity_out must be set"
            )
        quantity = entry.quantity_in if has_in else entry.quantity_out
        if quantity <= 0:
            raise InvalidMovementError(f"movement quantity must be positive, got {quantity}")

        if entry.created_at is None:
            entry.created_at = self._clock.now()
        if entry.transaction_date is None:
            entry.transaction_date = entry.created_at
        if entry.system_generated is None:
            entry.system_generated = False

        self.session.add(entry)
        self.session.flush()
        return entry

    def by_transaction(self, transaction_id: UUID) -> list[StockLedgerEntry]:
        return list(self.session.execute(
            select(StockLedgerEntry)
            .where(StockLedgerEntry.transaction_id == transaction_id)
            .order_by(*_ORDER)
        ).scalars())

    def originals(
        self,
        transaction_id: UUID,
        item_id: UUID | None = None,
        batch_id: UUID | None = None,
    ) -> list[StockLedgerEntry]:
        """Entries of the transaction that are not themselves reversals."""
        stmt = select(StockLedgerEntry).where(
            StockLedgerEntry.transaction_id == transaction_id,
            StockLedgerEntry.reversal_of.is_(None),
        )
        if item_id is not None:
            stmt = stmt.where(StockLedgerEntry.item_id == item_id)
        if batch_id is not None:
            stmt = stmt.where(StockLedgerEntry.batch_id == batch_id)
        return list(self.session.execute(stmt.order_by(*_ORDER)).scalars())

    def by_item_batch(self, item_id: UUID, batch_id: UUID) -> list[StockLedgerEntry]:
        return list(self.session.execute(
            select(StockLedgerEntry)
            .where(
                StockLedgerEntry.item_id == item_id,
                StockLedgerEntry.batch_id == batch_id,
            )
            .order_by(*_ORDER)
        ).scalars())

    def by_reversal_of(self, entry_id: UUID) -> StockLedgerEntry | None:
        return self.session.execute(
            select(StockLedgerEntry).where(StockLedgerEntry.reversal_of == entry_id)
        ).scalar_one_or_none()

    def reversals_of(self, entry_ids: Iterable[UUID]) -> list[StockLedgerEntry]:
        ids = list(entry_ids)
        if not ids:
            return []
        return list(self.session.execute(
            select(StockLedgerEntry).where(StockLedgerEntry.reversal_of.in_(ids))
        ).scalars())
