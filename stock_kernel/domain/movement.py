"""
Movement rules (``stock_kernel.domain.movement``).

Pure helpers used by the movement and ledger services:

* ``MovementLine``: one requested line (item, quantity, unit).
* ``allocate_fefo``: First-Expiry-First-Out allocation across batches.
* ``movement_value``: signed value of a ledger movement.
* ``TransferStatus`` and its transitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable
from uuid import UUID

from stock_kernel.db.types import to_decimal, to_storage


@dataclass(frozen=True)
class MovementLine:
    """Requested line; ``uom`` None means the item's base unit."""

    item_id: UUID
    quantity: Decimal
    uom: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", to_decimal(self.quantity))
        if self.quantity <= 0:
            raise ValueError(f"Line quantity must be positive, got {self.quantity}")


@dataclass(frozen=True)
class BatchAvailability:
    """Snapshot of a batch considered for allocation."""

    batch_id: UUID
    batch_no: str
    available_qty: Decimal
    expiry_date: date | None = None
    received_at: datetime | None = None


@dataclass(frozen=True)
class Allocation:
    batch_id: UUID
    batch_no: str
    quantity: Decimal


def fefo_key(batch: BatchAvailability) -> tuple:
    """Earliest expiry first, undated batches last, then oldest receipt."""
    return (
        batch.expiry_date is None,
        batch.expiry_date or date.max,
        batch.received_at is None,
        batch.received_at,
        batch.batch_no,
    )


def is_expired(expiry_date: date | None, as_of: date) -> bool:
    return expiry_date is not None and expiry_date < as_of


def allocate_fefo(
    required_qty: Decimal,
    batches: Iterable[BatchAvailability],
    as_of: date,
    exclude_expired: bool = True,
) -> tuple[list[Allocation], Decimal]:
    """
    Allocate ``required_qty`` across batches in FEFO order.

    Returns:
        (allocations, shortfall).  Shortfall is zero when fully covered;
        the caller decides whether a shortfall is an error.
    """
    remaining = required_qty
    allocations: list[Allocation] = []

    candidates = [
        b for b in batches
        if b.available_qty > 0 and not (exclude_expired and is_expired(b.expiry_date, as_of))
    ]
    for batch in sorted(candidates, key=fefo_key):
        if remaining <= 0:
            break
        take = min(batch.available_qty, remaining)
        allocations.append(Allocation(batch.batch_id, batch.batch_no, take))
        remaining -= take

    return allocations, max(remaining, Decimal(0))


def movement_value(
    quantity_in: Decimal | None,
    quantity_out: Decimal | None,
    rate_per_unit: Decimal,
) -> Decimal:
    """Signed value of a movement: +qty x rate inbound, -qty x rate outbound."""
    signed_qty = (quantity_in or Decimal(0)) - (quantity_out or Decimal(0))
    return to_storage(signed_qty * rate_per_unit)


class TransferStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TRANSFER_TRANSITIONS: dict[TransferStatus, frozenset[TransferStatus]] = {
    TransferStatus.PENDING: frozenset({TransferStatus.COMPLETED, TransferStatus.CANCELLED}),
    TransferStatus.COMPLETED: frozenset(),
    TransferStatus.CANCELLED: frozenset(),
}
