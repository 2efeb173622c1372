"""Pure domain layer: value objects, rules and DTOs.  No I/O."""

from stock_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    TERMINAL_APPROVAL_STATUSES,
    ApprovalItemStatus,
    ApprovalStatus,
    ItemDecision,
    LineAmounts,
    aggregate_status,
    compute_approved_amounts,
    compute_line_amounts,
)
from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.movement import MovementLine, TransferStatus
from stock_kernel.domain.uom import (
    ConversionDirection,
    ConversionRecord,
    ConversionResult,
    normalize_unit,
    resolve_conversion,
)
from stock_kernel.domain.values import AuditInfo, Location, LocationType, TransactionType

__all__ = [
    "APPROVAL_TRANSITIONS",
    "TERMINAL_APPROVAL_STATUSES",
    "ApprovalItemStatus",
    "ApprovalStatus",
    "AuditInfo",
    "Clock",
    "ConversionDirection",
    "ConversionRecord",
    "ConversionResult",
    "DeterministicClock",
    "ItemDecision",
    "LineAmounts",
    "Location",
    "LocationType",
    "MovementLine",
    "SystemClock",
    "TransactionType",
    "TransferStatus",
    "aggregate_status",
    "compute_approved_amounts",
    "compute_line_amounts",
    "normalize_unit",
    "resolve_conversion",
]
