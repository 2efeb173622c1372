"""
Module: stock_kernel.selectors.batch_selector
Responsibility: Read-only batch queries: lookups, FEFO-ordered
    availability and expiry windows.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import BatchRecord
from stock_kernel.domain.movement import fefo_key, is_expired
from stock_kernel.domain.values import Location
from stock_kernel.exceptions import BatchNotFoundError
from stock_kernel.models.batch import Batch
from stock_kernel.selectors.base import BaseSelector


class BatchSelector(BaseSelector[Batch]):
    """Selector for batches; returns BatchRecord DTOs."""

    def get(self, batch_id: UUID) -> BatchRecord:
        batch = self.session.get(Batch, batch_id)
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return batch.to_dto()

    def at_location(
        self,
        location: Location,
        item_id: UUID | None = None,
        include_empty: bool = False,
    ) -> list[BatchRecord]:
        stmt = select(Batch).where(
            Batch.location_type == location.location_type,
            Batch.location_id == location.location_id,
        )
        if item_id is not None:
            stmt = stmt.where(Batch.item_id == item_id)
        batches = self.session.execute(stmt.order_by(Batch.batch_no)).scalars()
        return [b.to_dto() for b in batches if include_empty or b.current_qty > 0]

    def fefo_available(
        self,
        item_id: UUID,
        location: Location,
        as_of: date,
        exclude_expired: bool = True,
    ) -> list[BatchRecord]:
        """Batches with stock in the order an issue would consume them."""
        stmt = select(Batch).where(
            Batch.item_id == item_id,
            Batch.location_type == location.location_type,
            Batch.location_id == location.location_id,
        )
        candidates = [
            b for b in self.session.execute(stmt).scalars()
            if b.current_qty > 0
            and not (exclude_expired and is_expired(b.expiry_date, as_of))
        ]
        candidates.sort(key=lambda b: fefo_key(b.to_availability()))
        return [b.to_dto() for b in candidates]

    def expiring_within(
        self,
        days: int,
        as_of: date,
        location: Location | None = None,
    ) -> list[BatchRecord]:
        """Batches with stock whose expiry falls in [as_of, as_of + days]."""
        if days < 0:
            raise ValueError(f"days must not be negative, got {days}")
        stmt = select(Batch).where(
            Batch.expiry_date.is_not(None),
            Batch.expiry_date >= as_of,
            Batch.expiry_date <= as_of + timedelta(days=days),
        )
        if location is not None:
            stmt = stmt.where(
                Batch.location_type == location.location_type,
                Batch.location_id == location.location_id,
            )
        batches = self.session.execute(
            stmt.order_by(Batch.expiry_date, Batch.batch_no)
        ).scalars()
        return [b.to_dto() for b in batches if b.current_qty > 0]
