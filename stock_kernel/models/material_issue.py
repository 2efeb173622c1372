"""
Module: stock_kernel.models.material_issue
Responsibility: ORM persistence for material issues (stock sent from one
    location to another, awaiting the receiver's approval) and their
    per-batch lines.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - issue_no is unique.
    - One line per allocated source batch; line amounts are computed at
      issue time from the batch's rate and gst_percentage.
    - status mirrors the approval's aggregate status and only leaves
      PENDING through MaterialApprovalService.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, TrackedBase, UUIDString
from stock_kernel.db.types import enum_type
from stock_kernel.domain.approval import ApprovalStatus
from stock_kernel.domain.dtos import IssueItemRecord, IssueRecord
from stock_kernel.domain.values import Location, LocationType

if TYPE_CHECKING:
    from stock_kernel.models.approval import MaterialApproval


class MaterialIssue(TrackedBase):
    """Header of a material issue; its id is the ledger transaction_id."""

    __tablename__ = "material_issues"

    __table_args__ = (
        Index("ix_material_issues_status", "status"),
        Index("ix_material_issues_to_location", "to_location_type", "to_location_id"),
    )

    issue_no: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    issue_date: Mapped[datetime] = mapped_column(nullable=False)
    from_location_type: Mapped[LocationType] = mapped_column(
        enum_type(LocationType), nullable=False,
    )
    from_location_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    to_location_type: Mapped[LocationType] = mapped_column(
        enum_type(LocationType), nullable=False,
    )
    to_location_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[ApprovalStatus] = mapped_column(
        enum_type(ApprovalStatus), nullable=False, default=ApprovalStatus.PENDING,
    )
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approval_date: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list[MaterialIssueItem]] = relationship(
        "MaterialIssueItem",
        back_populates="issue",
        lazy="selectin",
        order_by="MaterialIssueItem.line_no",
    )
    approval: Mapped[MaterialApproval | None] = relationship(
        "MaterialApproval", back_populates="issue", uselist=False,
    )

    @property
    def from_location(self) -> Location:
        return Location(LocationType(self.from_location_type), self.from_location_id)

    @property
    def to_location(self) -> Location:
        return Location(LocationType(self.to_location_type), self.to_location_id)

    def to_dto(self) -> IssueRecord:
        return IssueRecord(
            id=self.id,
            issue_no=self.issue_no,
            issue_date=self.issue_date,
            from_location_type=LocationType(self.from_location_type),
            from_location_id=self.from_location_id,
            to_location_type=LocationType(self.to_location_type),
            to_location_id=self.to_location_id,
            status=ApprovalStatus(self.status),
            purpose=self.purpose,
            remarks=self.remarks,
            items=tuple(item.to_dto() for item in self.items),
            approval_id=self.approval.id if self.approval is not None else None,
        )

    def __repr__(self) -> str:
        return f"<MaterialIssue {self.issue_no} {self.status}>"


class MaterialIssueItem(Base):
    """One issued line: a quantity of one item taken from one batch."""

    __tablename__ = "material_issue_items"

    issue_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("material_issues.id"), nullable=False, index=True,
    )
    line_no: Mapped[int] = mapped_column(nullable=False)
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False,
    )
    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("batches.id"), nullable=False,
    )
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    uom: Mapped[str] = mapped_column(String(20), nullable=False)
    base_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    rate_per_unit: Mapped[Decimal] = mapped_column(nullable=False)
    gst_percentage: Mapped[Decimal] = mapped_column(nullable=False)
    base_amount: Mapped[Decimal] = mapped_column(nullable=False)
    gst_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    issue: Mapped[MaterialIssue] = relationship("MaterialIssue", back_populates="items")

    def to_dto(self) -> IssueItemRecord:
        return IssueItemRecord(
            id=self.id,
            item_id=self.item_id,
            batch_id=self.batch_id,
            quantity=self.quantity,
            uom=self.uom,
            base_quantity=self.base_quantity,
            rate_per_unit=self.rate_per_unit,
            gst_percentage=self.gst_percentage,
            base_amount=self.base_amount,
            gst_amount=self.gst_amount,
            total_amount=self.total_amount,
        )
