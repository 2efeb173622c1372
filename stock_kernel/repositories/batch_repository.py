"""
Module: stock_kernel.repositories.batch_repository
Responsibility: Authoritative current quantity per (item, batch, location).
Architecture position: Kernel > Repositories.  May import db/, models/,
    domain/ and exceptions.

Invariants enforced:
    - decrement() never drives current_qty below zero; it raises
      NegativeBalanceError and writes nothing.
    - increment() has no upper bound.
    - Both lock the batch row (SELECT ... FOR UPDATE on PostgreSQL) and
      return the new balance, which the caller records as the paired
      ledger entry's balance_quantity inside the same atomic() scope.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from stock_kernel.db.types import to_storage
from stock_kernel.domain.values import Location
from stock_kernel.exceptions import BatchNotFoundError, InvalidMovementError, NegativeBalanceError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.batch import Batch
from stock_kernel.repositories.base import BaseRepository

logger = get_logger("repositories.batch")


class BatchRepository(BaseRepository[Batch]):
    """SQLAlchemy-backed batch store."""

    def get(self, batch_id: UUID) -> Batch:
        batch = self.session.get(Batch, batch_id)
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return batch

    def get_for_update(self, batch_id: UUID) -> Batch:
        """Load the batch with a row lock and fresh column values."""
        batch = self.session.execute(
            select(Batch)
            .where(Batch.id == batch_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return batch

    def find_at_location(self, item_id: UUID, batch_no: str, location: Location) -> Batch | None:
        return self.session.execute(
            select(Batch).where(
                Batch.item_id == item_id,
                Batch.batch_no == batch_no,
                Batch.location_type == location.location_type,
                Batch.location_id == location.location_id,
            )
        ).scalar_one_or_none()

    def list_at_location(self, item_id: UUID, location: Location, lock: bool = False) -> list[Batch]:
        stmt = select(Batch).where(
            Batch.item_id == item_id,
            Batch.location_type == location.location_type,
            Batch.location_id == location.location_id,
        ).order_by(Batch.created_at, Batch.batch_no)
        if lock:
            stmt = stmt.with_for_update()
        return list(self.session.execute(stmt).scalars())

    def create(
        self,
        *,
        item_id: UUID,
        batch_no: str,
        location: Location,
        initial_qty: Decimal,
        rate_per_unit: Decimal,
        gst_percentage: Decimal,
        mfg_date: date | None,
        expiry_date: date | None,
        actor_id: UUID,
    ) -> Batch:
        """
        Create an empty batch (current_qty = 0).

        Quantity arrives through the paired ledger movement so the batch
        reconciles from its first entry.
        """
        batch = Batch(
            item_id=item_id,
            batch_no=batch_no,
            location_type=location.location_type,
            location_id=location.location_id,
            initial_qty=to_storage(initial_qty),
            current_qty=Decimal(0),
            rate_per_unit=rate_per_unit,
            gst_percentage=gst_percentage,
            mfg_date=mfg_date,
            expiry_date=expiry_date,
            created_by_id=actor_id,
        )
        self.session.add(batch)
        self.session.flush()
        logger.info(
            "batch_created",
            extra={
                "batch_id": str(batch.id),
                "batch_no": batch_no,
                "item_id": str(item_id),
                "location": str(location),
            },
        )
        return batch

    def decrement(self, batch_id: UUID, qty: Decimal, actor_id: UUID | None = None) -> Decimal:
        """
        Remove ``qty`` from the batch and return the new balance.

        Raises:
            BatchNotFoundError: unknown batch.
            InvalidMovementError: qty is not positive.
            NegativeBalanceError: the batch holds less than ``qty``.
        """
        self._require_positive(qty)
        batch = self.get_for_update(batch_id)
        new_qty = batch.current_qty - qty
        if new_qty < 0:
            logger.error(
                "negative_balance_blocked",
                extra={
                    "batch_id": str(batch_id),
                    "current_qty": str(batch.current_qty),
                    "requested_qty": str(qty),
                },
            )
            raise NegativeBalanceError(str(batch_id), str(batch.current_qty), str(qty))
        return self._store(batch, new_qty, actor_id)

    def increment(self, batch_id: UUID, qty: Decimal, actor_id: UUID | None = None) -> Decimal:
        """Add ``qty`` to the batch and return the new balance."""
        self._require_positive(qty)
        batch = self.get_for_update(batch_id)
        return self._store(batch, batch.current_qty + qty, actor_id)

    def _store(self, batch: Batch, new_qty: Decimal, actor_id: UUID | None) -> Decimal:
        batch.current_qty = to_storage(new_qty)
        if actor_id is not None:
            batch.updated_by_id = actor_id
        self.session.flush()
        return batch.current_qty

    @staticmethod
    def _require_positive(qty: Decimal) -> None:
        if qty is None or qty <= 0:
            raise InvalidMovementError(f"batch quantity change must be positive, got {qty}")
