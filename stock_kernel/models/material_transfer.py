"""
Module: stock_kernel.models.material_transfer
Responsibility: ORM persistence for stock transfers between locations.

A transfer moves stock immediately (TRANSFER out at the source batch and
TRANSFER in at the destination batch, same transaction_id = transfer id).
While PENDING it may be cancelled, which reverses every original entry.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, TrackedBase, UUIDString
from stock_kernel.db.types import enum_type
from stock_kernel.domain.dtos import TransferRecord
from stock_kernel.domain.movement import TransferStatus
from stock_kernel.domain.values import LocationType


class MaterialTransfer(TrackedBase):
    __tablename__ = "material_transfers"

    transfer_no: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    transfer_date: Mapped[datetime] = mapped_column(nullable=False)
    from_location_type: Mapped[LocationType] = mapped_column(
        enum_type(LocationType), nullable=False,
    )
    from_location_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    to_location_type: Mapped[LocationType] = mapped_column(
        enum_type(LocationType), nullable=False,
    )
    to_location_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[TransferStatus] = mapped_column(
        enum_type(TransferStatus), nullable=False, default=TransferStatus.PENDING,
    )
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list[MaterialTransferItem]] = relationship(
        "MaterialTransferItem", back_populates="transfer", lazy="selectin",
    )

    def to_dto(self) -> TransferRecord:
        return TransferRecord(
            id=self.id,
            transfer_no=self.transfer_no,
            transfer_date=self.transfer_date,
            from_location_type=LocationType(self.from_location_type),
            from_location_id=self.from_location_id,
            to_location_type=LocationType(self.to_location_type),
            to_location_id=self.to_location_id,
            status=TransferStatus(self.status),
            remarks=self.remarks,
            cancellation_reason=self.cancellation_reason,
        )


class MaterialTransferItem(Base):
    __tablename__ = "material_transfer_items"

    transfer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("material_transfers.id"), nullable=False, index=True,
    )
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False,
    )
    source_batch_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("batches.id"), nullable=False,
    )
    destination_batch_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("batches.id"), nullable=False,
    )
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    uom: Mapped[str] = mapped_column(String(20), nullable=False)
    base_quantity: Mapped[Decimal] = mapped_column(nullable=False)

    transfer: Mapped[MaterialTransfer] = relationship(
        "MaterialTransfer", back_populates="items",
    )
