"""
Module: stock_kernel.models.stock_ledger
Responsibility: ORM persistence for the append-only stock ledger.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Exactly one of quantity_in / quantity_out is set (check constraint;
      LedgerRepository.append also requires it to be positive).
    - Rows are never updated or deleted (ORM listeners).
    - reversal_of is unique: an entry is reversed at most once.

Failure modes:
    - IntegrityError on a second reversal of the same entry.
    - ImmutabilityViolationError on any UPDATE or DELETE.

Audit relevance:
    Every quantity/value change of every batch appears here with who did
    it, from where, and which entry it compensates.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString
from stock_kernel.db.types import enum_type
from stock_kernel.domain.dtos import LedgerEntryRecord
from stock_kernel.domain.values import LocationType, TransactionType


class StockLedgerEntry(Base):
    """One immutable movement against a batch."""

    __tablename__ = "stock_ledger"

    __table_args__ = (
        CheckConstraint(
            "(quantity_in IS NULL) <> (quantity_out IS NULL)",
            name="ck_stock_ledger_one_sided",
        ),
        Index("ix_stock_ledger_transaction", "transaction_id"),
        Index("ix_stock_ledger_item_batch", "item_id", "batch_id"),
        Index("ix_stock_ledger_location", "location_type", "location_id"),
        Index("ix_stock_ledger_created_at", "created_at"),
        Index("uq_stock_ledger_reversal_of", "reversal_of", unique=True),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False,
    )
    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("batches.id"), nullable=False,
    )
    location_type: Mapped[LocationType] = mapped_column(
        enum_type(LocationType), nullable=False,
    )
    location_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(
        enum_type(TransactionType), nullable=False,
    )
    transaction_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    transaction_date: Mapped[datetime] = mapped_column(nullable=False)

    quantity_in: Mapped[Decimal | None] = mapped_column(nullable=True)
    quantity_out: Mapped[Decimal | None] = mapped_column(nullable=True)
    balance_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    rate_per_unit: Mapped[Decimal] = mapped_column(nullable=False)
    balance_value: Mapped[Decimal] = mapped_column(nullable=False)

    # Audit fields
    created_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    user_role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reference_no: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    system_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    reversal_of: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("stock_ledger.id"), nullable=True,
    )

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of is not None

    def to_dto(self) -> LedgerEntryRecord:
        return LedgerEntryRecord(
            id=self.id,
            item_id=self.item_id,
            batch_id=self.batch_id,
            location_type=LocationType(self.location_type),
            location_id=self.location_id,
            transaction_type=TransactionType(self.transaction_type),
            transaction_id=self.transaction_id,
            transaction_date=self.transaction_date,
            quantity_in=self.quantity_in,
            quantity_out=self.quantity_out,
            balance_quantity=self.balance_quantity,
            rate_per_unit=self.rate_per_unit,
            balance_value=self.balance_value,
            created_by=self.created_by,
            user_role=self.user_role,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            session_id=self.session_id,
            reference_no=self.reference_no,
            notes=self.notes,
            system_generated=self.system_generated,
            reversal_of=self.reversal_of,
        )

    def __repr__(self) -> str:
        side = f"in={self.quantity_in}" if self.quantity_in is not None else f"out={self.quantity_out}"
        return f"<StockLedgerEntry {self.transaction_type} {side} txn={self.transaction_id}>"
