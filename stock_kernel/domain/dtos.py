"""
DTOs -- immutable records returned across the kernel boundary.

The orchestrator hands these to collaborators instead of ORM instances so
callers never hold live, session-bound rows.  Each ORM model exposes a
``to_dto()`` that builds its record.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from stock_kernel.domain.approval import ApprovalItemStatus, ApprovalStatus
from stock_kernel.domain.movement import TransferStatus
from stock_kernel.domain.uom import ConversionRecord
from stock_kernel.domain.values import LocationType, TransactionType


@dataclass(frozen=True)
class ItemRecord:
    id: UUID
    name: str
    category: str
    base_uom: str
    conversions: tuple[ConversionRecord, ...]


@dataclass(frozen=True)
class LedgerEntryRecord:
    id: UUID
    item_id: UUID
    batch_id: UUID
    location_type: LocationType
    location_id: UUID
    transaction_type: TransactionType
    transaction_id: UUID
    transaction_date: datetime
    quantity_in: Decimal | None
    quantity_out: Decimal | None
    balance_quantity: Decimal
    rate_per_unit: Decimal
    balance_value: Decimal
    created_by: UUID
    user_role: str | None
    ip_address: str | None
    user_agent: str | None
    session_id: str | None
    reference_no: str | None
    notes: str | None
    system_generated: bool
    reversal_of: UUID | None

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of is not None


@dataclass(frozen=True)
class BatchRecord:
    id: UUID
    item_id: UUID
    batch_no: str
    location_type: LocationType
    location_id: UUID
    initial_qty: Decimal
    current_qty: Decimal
    rate_per_unit: Decimal
    gst_percentage: Decimal
    mfg_date: date | None
    expiry_date: date | None


@dataclass(frozen=True)
class ApprovalItemRecord:
    id: UUID
    issue_item_id: UUID
    item_id: UUID
    batch_id: UUID
    original_quantity: Decimal
    original_uom: str
    original_base_amount: Decimal
    original_gst_amount: Decimal
    original_total_amount: Decimal
    approved_quantity: Decimal | None
    approved_uom: str | None
    approved_base_quantity: Decimal | None
    approved_base_amount: Decimal | None
    approved_gst_amount: Decimal | None
    approved_total_amount: Decimal | None
    status: ApprovalItemStatus
    remarks: str | None


@dataclass(frozen=True)
class ApprovalRecord:
    id: UUID
    issue_id: UUID
    status: ApprovalStatus
    assigned_to_type: LocationType
    assigned_to_id: UUID
    approved_by: UUID | None
    approved_at: datetime | None
    rejection_reason: str | None
    remarks: str | None
    items: tuple[ApprovalItemRecord, ...]

    def item_for(self, issue_item_id: UUID) -> ApprovalItemRecord:
        for item in self.items:
            if item.issue_item_id == issue_item_id:
                return item
        raise KeyError(issue_item_id)


@dataclass(frozen=True)
class IssueItemRecord:
    id: UUID
    item_id: UUID
    batch_id: UUID
    quantity: Decimal
    uom: str
    base_quantity: Decimal
    rate_per_unit: Decimal
    gst_percentage: Decimal
    base_amount: Decimal
    gst_amount: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class IssueRecord:
    id: UUID
    issue_no: str
    issue_date: datetime
    from_location_type: LocationType
    from_location_id: UUID
    to_location_type: LocationType
    to_location_id: UUID
    status: ApprovalStatus
    purpose: str | None
    remarks: str | None
    items: tuple[IssueItemRecord, ...]
    approval_id: UUID | None


@dataclass(frozen=True)
class TransferRecord:
    id: UUID
    transfer_no: str
    transfer_date: datetime
    from_location_type: LocationType
    from_location_id: UUID
    to_location_type: LocationType
    to_location_id: UUID
    status: TransferStatus
    remarks: str | None
    cancellation_reason: str | None
