"""
Module: stock_kernel.models.approval
Responsibility: ORM persistence for material-issue approvals and their
    per-line decisions.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - One approval per issue (UNIQUE issue_id); one approval item per
      issue line (UNIQUE issue_item_id).
    - Once status is APPROVED, REJECTED or PARTIAL the approval row and
      its decided items are frozen (ORM listeners).

Audit relevance:
    original_* fields keep what was issued; approved_* fields keep what
    the receiver accepted, recomputed in the base unit at batch cost.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, TrackedBase, UUIDString
from stock_kernel.db.types import enum_type
from stock_kernel.domain.approval import (
    TERMINAL_APPROVAL_STATUSES,
    ApprovalItemStatus,
    ApprovalStatus,
)
from stock_kernel.domain.dtos import ApprovalItemRecord, ApprovalRecord
from stock_kernel.domain.values import LocationType
from stock_kernel.models.material_issue import MaterialIssue, MaterialIssueItem


class MaterialApproval(TrackedBase):
    """Approval governing one material issue."""

    __tablename__ = "material_approvals"

    __table_args__ = (
        Index("ix_material_approvals_assignee", "assigned_to_type", "assigned_to_id", "status"),
    )

    issue_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("material_issues.id"), nullable=False, unique=True,
    )
    status: Mapped[ApprovalStatus] = mapped_column(
        enum_type(ApprovalStatus), nullable=False, default=ApprovalStatus.PENDING,
    )
    assigned_to_type: Mapped[LocationType] = mapped_column(
        enum_type(LocationType), nullable=False,
    )
    assigned_to_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    issue: Mapped[MaterialIssue] = relationship("MaterialIssue", back_populates="approval")
    items: Mapped[list[MaterialApprovalItem]] = relationship(
        "MaterialApprovalItem",
        back_populates="approval",
        lazy="selectin",
        order_by="MaterialApprovalItem.line_no",
    )

    @property
    def is_terminal(self) -> bool:
        return ApprovalStatus(self.status) in TERMINAL_APPROVAL_STATUSES

    def to_dto(self) -> ApprovalRecord:
        return ApprovalRecord(
            id=self.id,
            issue_id=self.issue_id,
            status=ApprovalStatus(self.status),
            assigned_to_type=LocationType(self.assigned_to_type),
            assigned_to_id=self.assigned_to_id,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            rejection_reason=self.rejection_reason,
            remarks=self.remarks,
            items=tuple(item.to_dto() for item in self.items),
        )

    def __repr__(self) -> str:
        return f"<MaterialApproval issue={self.issue_id} {self.status}>"


class MaterialApprovalItem(Base):
    """Decision record for one issued line."""

    __tablename__ = "material_approval_items"

    approval_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("material_approvals.id"), nullable=False, index=True,
    )
    issue_item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("material_issue_items.id"), nullable=False, unique=True,
    )
    line_no: Mapped[int] = mapped_column(nullable=False)
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False,
    )
    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("batches.id"), nullable=False,
    )

    original_quantity: Mapped[Decimal] = mapped_column(nullable=False)
    original_uom: Mapped[str] = mapped_column(String(20), nullable=False)
    original_base_amount: Mapped[Decimal] = mapped_column(nullable=False)
    original_gst_amount: Mapped[Decimal] = mapped_column(nullable=False)
    original_total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    approved_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    approved_uom: Mapped[str | None] = mapped_column(String(20), nullable=True)
    approved_base_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    approved_base_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    approved_gst_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    approved_total_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    status: Mapped[ApprovalItemStatus] = mapped_column(
        enum_type(ApprovalItemStatus), nullable=False, default=ApprovalItemStatus.PENDING,
    )
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    approval: Mapped[MaterialApproval] = relationship(
        "MaterialApproval", back_populates="items",
    )
    issue_item: Mapped[MaterialIssueItem] = relationship("MaterialIssueItem")

    def to_dto(self) -> ApprovalItemRecord:
        return ApprovalItemRecord(
            id=self.id,
            issue_item_id=self.issue_item_id,
            item_id=self.item_id,
            batch_id=self.batch_id,
            original_quantity=self.original_quantity,
            original_uom=self.original_uom,
            original_base_amount=self.original_base_amount,
            original_gst_amount=self.original_gst_amount,
            original_total_amount=self.original_total_amount,
            approved_quantity=self.approved_quantity,
            approved_uom=self.approved_uom,
            approved_base_quantity=self.approved_base_quantity,
            approved_base_amount=self.approved_base_amount,
            approved_gst_amount=self.approved_gst_amount,
            approved_total_amount=self.approved_total_amount,
            status=ApprovalItemStatus(self.status),
            remarks=self.remarks,
        )
