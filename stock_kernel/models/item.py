"""
Module: stock_kernel.models.item
Responsibility: ORM persistence for stocked items and their unit
    conversion records.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Item name, category and base_uom are write-once (ORM listener).
    - Conversion records are immutable; the list may only grow.
    - UNIQUE(item_id, from_unit, to_unit).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, TrackedBase, UUIDString
from stock_kernel.domain.dtos import ItemRecord
from stock_kernel.domain.uom import ConversionRecord


class Item(TrackedBase):
    """A stocked item with a base unit of measure."""

    __tablename__ = "items"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    base_uom: Mapped[str] = mapped_column(String(20), nullable=False)

    conversions: Mapped[list[UomConversion]] = relationship(
        "UomConversion",
        back_populates="item",
        lazy="selectin",
        order_by="UomConversion.created_at",
    )

    def conversion_records(self) -> list[ConversionRecord]:
        return [
            ConversionRecord(c.from_unit, c.to_unit, c.factor)
            for c in self.conversions
        ]

    def to_dto(self) -> ItemRecord:
        return ItemRecord(
            id=self.id,
            name=self.name,
            category=self.category,
            base_uom=self.base_uom,
            conversions=tuple(self.conversion_records()),
        )

    def __repr__(self) -> str:
        return f"<Item {self.name} base={self.base_uom}>"


class UomConversion(Base):
    """``to_unit`` quantity = ``from_unit`` quantity x ``factor``."""

    __tablename__ = "uom_conversions"

    __table_args__ = (
        UniqueConstraint(
            "item_id", "from_unit", "to_unit", name="uq_uom_conversions_pair"
        ),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False, index=True,
    )
    from_unit: Mapped[str] = mapped_column(String(20), nullable=False)
    to_unit: Mapped[str] = mapped_column(String(20), nullable=False)
    factor: Mapped[Decimal] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )

    item: Mapped[Item] = relationship("Item", back_populates="conversions")

    def __repr__(self) -> str:
        return f"<UomConversion {self.from_unit}->{self.to_unit} x{self.factor}>"
