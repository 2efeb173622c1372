"""
Module: stock_kernel.models.batch
Responsibility: ORM persistence for batches, the authoritative on-hand
    quantity per (item, batch_no, location).
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - current_qty >= 0 (BatchRepository.decrement checks before writing).
    - Batches are never deleted; only current_qty and audit fields change
      after creation (ORM listener).
    - UNIQUE(item_id, batch_no, location_type, location_id).

Audit relevance:
    current_qty must always equal sum(quantity_in) - sum(quantity_out) over
    the batch's stock_ledger rows.  StockLedgerSelector.reconcile_batch
    verifies it.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import TrackedBase, UUIDString
from stock_kernel.db.types import enum_type
from stock_kernel.domain.dtos import BatchRecord
from stock_kernel.domain.movement import BatchAvailability
from stock_kernel.domain.values import Location, LocationType
from stock_kernel.models.item import Item


class Batch(TrackedBase):
    """A lot of one item held at one location, with its own cost and expiry."""

    __tablename__ = "batches"

    __table_args__ = (
        UniqueConstraint(
            "item_id", "batch_no", "location_type", "location_id",
            name="uq_batches_item_batch_location",
        ),
        Index("ix_batches_location_item", "location_type", "location_id", "item_id"),
        Index("ix_batches_expiry", "expiry_date"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False,
    )
    batch_no: Mapped[str] = mapped_column(String(100), nullable=False)
    location_type: Mapped[LocationType] = mapped_column(
        enum_type(LocationType), nullable=False,
    )
    location_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    initial_qty: Mapped[Decimal] = mapped_column(nullable=False)
    current_qty: Mapped[Decimal] = mapped_column(nullable=False)
    rate_per_unit: Mapped[Decimal] = mapped_column(nullable=False)
    gst_percentage: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal(0))
    mfg_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    item: Mapped[Item] = relationship("Item")

    @property
    def location(self) -> Location:
        return Location(LocationType(self.location_type), self.location_id)

    def to_availability(self) -> BatchAvailability:
        return BatchAvailability(
            batch_id=self.id,
            batch_no=self.batch_no,
            available_qty=self.current_qty,
            expiry_date=self.expiry_date,
            received_at=self.created_at,
        )

    def to_dto(self) -> BatchRecord:
        return BatchRecord(
            id=self.id,
            item_id=self.item_id,
            batch_no=self.batch_no,
            location_type=LocationType(self.location_type),
            location_id=self.location_id,
            initial_qty=self.initial_qty,
            current_qty=self.current_qty,
            rate_per_unit=self.rate_per_unit,
            gst_percentage=self.gst_percentage,
            mfg_date=self.mfg_date,
            expiry_date=self.expiry_date,
        )

    def __repr__(self) -> str:
        return f"<Batch {self.batch_no} @{self.location_type}:{self.location_id} qty={self.current_qty}>"
