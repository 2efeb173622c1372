"""
Approval domain types (``stock_kernel.domain.approval``).

Responsibility
--------------
Pure rules of the material-issue approval workflow: the status state
machine, per-item decisions, decision-set validation, approved-quantity
bounds, amount recomputation across a unit conversion, and the aggregate
status law.

Architecture position
---------------------
Kernel domain layer.  ZERO I/O.  Imports only precision helpers from
``db/types``; never ``models/``, ``services/`` or ``selectors/``.

Invariants enforced
-------------------
* PENDING -> {APPROVED, REJECTED, PARTIAL}; terminal states have no
  outgoing edges.
* 0 < approved_quantity <= original_quantity for every approved item.
* Decisions cover every approval item exactly once.
* Aggregate is PARTIAL iff at least one item is APPROVED and at least one
  is REJECTED.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Iterable, Sequence
from uuid import UUID

from stock_kernel.db.types import MONEY_DECIMAL_PLACES, round_money, to_decimal, to_storage
from stock_kernel.domain.uom import ConversionResult
from stock_kernel.exceptions import (
    InvalidDecisionSetError,
    QuantityExceedsOriginalError,
    QuantityNonPositiveError,
)


# =========================================================================
# Status lifecycle
# =========================================================================


class ApprovalStatus(str, Enum):
    """Aggregate status of an approval (and of the issue it governs)."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PARTIAL = "PARTIAL"


class ApprovalItemStatus(str, Enum):
    """Per-line decision status."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.PARTIAL,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
    ApprovalStatus.PARTIAL: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
    ApprovalStatus.PARTIAL,
})


def can_transition(current: ApprovalStatus, target: ApprovalStatus) -> bool:
    return target in APPROVAL_TRANSITIONS.get(ApprovalStatus(current), frozenset())


# =========================================================================
# Decisions
# =========================================================================


@dataclass(frozen=True)
class ItemDecision:
    """
    Caller's decision for one approval item in a partial accept.

    ``approved_quantity`` is in the item's ``original_uom`` and is required
    for APPROVED decisions.  ``reason`` is the rejection reason for
    REJECTED decisions (falls back to the operation-level reason).
    """

    approval_item_id: UUID
    status: ApprovalItemStatus
    approved_quantity: Decimal | None = None
    reason: str | None = None

    @classmethod
    def approve(cls, approval_item_id: UUID, approved_quantity: Decimal) -> ItemDecision:
        return cls(approval_item_id, ApprovalItemStatus.APPROVED, approved_quantity)

    @classmethod
    def reject(cls, approval_item_id: UUID, reason: str | None = None) -> ItemDecision:
        return cls(approval_item_id, ApprovalItemStatus.REJECTED, None, reason)

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", ApprovalItemStatus(self.status))
        if self.approved_quantity is not None:
            object.__setattr__(self, "approved_quantity", to_decimal(self.approved_quantity))
        if self.status is ApprovalItemStatus.PENDING:
            raise ValueError("A decision must be APPROVED or REJECTED")


def validate_decision_set(
    approval_id: UUID,
    approval_item_ids: Iterable[UUID],
    decisions: Sequence[ItemDecision],
) -> None:
    """
    Check that decisions cover every approval item exactly once.

    Raises:
        InvalidDecisionSetError: with the missing, duplicated and unknown ids.
    """
    expected = set(approval_item_ids)
    counts = Counter(d.approval_item_id for d in decisions)

    missing = sorted(str(i) for i in expected - counts.keys())
    duplicates = sorted(str(i) for i, n in counts.items() if n > 1)
    unknown = sorted(str(i) for i in counts.keys() - expected)

    if missing or duplicates or unknown:
        raise InvalidDecisionSetError(str(approval_id), missing, duplicates, unknown)


def validate_approved_quantity(
    approval_item_id: UUID,
    approved_quantity: Decimal | None,
    original_quantity: Decimal,
) -> Decimal:
    """
    Enforce ``0 < approved_quantity <= original_quantity``.

    Raises:
        QuantityNonPositiveError: missing, zero or negative.
        QuantityExceedsOriginalError: greater than the original.
    """
    if approved_quantity is None or approved_quantity <= 0:
        raise QuantityNonPositiveError(
            str(approval_item_id),
            None if approved_quantity is None else str(approved_quantity),
        )
    if approved_quantity > original_quantity:
        raise QuantityExceedsOriginalError(
            str(approval_item_id), str(approved_quantity), str(original_quantity)
        )
    return approved_quantity


# =========================================================================
# Amounts
# =========================================================================


@dataclass(frozen=True)
class LineAmounts:
    """Base quantity and money amounts for one issued or approved line."""

    base_quantity: Decimal
    base_amount: Decimal
    gst_amount: Decimal
    total_amount: Decimal


def compute_line_amounts(
    base_quantity: Decimal,
    rate_per_unit: Decimal,
    gst_percentage: Decimal,
    money_places: int = MONEY_DECIMAL_PLACES,
) -> LineAmounts:
    """
    base_amount = base_quantity x rate; gst = base_amount x gst% / 100;
    total = base_amount + gst.  Money is rounded half-up to ``money_places``.
    """
    base_amount = round_money(base_quantity * rate_per_unit, money_places)
    gst_amount = round_money(base_amount * gst_percentage / Decimal(100), money_places)
    return LineAmounts(
        base_quantity=to_storage(base_quantity),
        base_amount=base_amount,
        gst_amount=gst_amount,
        total_amount=base_amount + gst_amount,
    )


def compute_approved_amounts(
    approved_quantity: Decimal,
    conversion: ConversionResult,
    rate_per_unit: Decimal,
    gst_percentage: Decimal,
    money_places: int = MONEY_DECIMAL_PLACES,
) -> LineAmounts:
    """
    Recompute amounts for a quantity expressed in the line's original unit.

    Example: 4 L approved, L -> ML factor 1000 (DIRECT), rate 2 per ML,
    gst 18% gives base 4000 ML, 8000.00 + 1440.00 = 9440.00.
    """
    return compute_line_amounts(
        conversion.to_base(approved_quantity),
        rate_per_unit,
        gst_percentage,
        money_places,
    )


# =========================================================================
# Aggregate status
# =========================================================================


def aggregate_status(item_statuses: Iterable[ApprovalItemStatus]) -> ApprovalStatus:
    """
    APPROVED if every item is approved, REJECTED if every item is rejected,
    PARTIAL when both occur.  Any PENDING item keeps the aggregate PENDING.
    """
    statuses = set(item_statuses)
    if not statuses or ApprovalItemStatus.PENDING in statuses:
        return ApprovalStatus.PENDING
    if statuses == {ApprovalItemStatus.APPROVED}:
        return ApprovalStatus.APPROVED
    if statuses == {ApprovalItemStatus.REJECTED}:
        return ApprovalStatus.REJECTED
    return ApprovalStatus.PARTIAL
