"""
Value objects shared across the stock kernel.

Closed enums for movement and location kinds, the Location pair that
identifies who holds a batch, and AuditInfo, the request metadata stamped
on every ledger entry.  Pure: no ORM, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from uuid import UUID


class TransactionType(str, Enum):
    """Kinds of ledger movement.  Reversals are always ADJUSTMENT."""

    RECEIPT = "RECEIPT"
    ISSUE = "ISSUE"
    RETURN = "RETURN"
    TRANSFER = "TRANSFER"
    CONSUMPTION = "CONSUMPTION"
    ADJUSTMENT = "ADJUSTMENT"


class LocationType(str, Enum):
    """Who holds stock: the central store, a branch, or a field technician."""

    COMPANY = "COMPANY"
    BRANCH = "BRANCH"
    TECHNICIAN = "TECHNICIAN"


@dataclass(frozen=True)
class Location:
    """A holder of stock, e.g. ``Location(LocationType.BRANCH, branch_id)``."""

    location_type: LocationType
    location_id: UUID

    def __str__(self) -> str:
        return f"{self.location_type.value}:{self.location_id}"


@dataclass(frozen=True)
class AuditInfo:
    """
    Request metadata recorded on each ledger entry.

    All fields are optional; the collaborator layer extracts them from the
    incoming request (role, client address, user agent, session).
    """

    user_role: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    session_id: str | None = None
    reference_no: str | None = None
    notes: str | None = None

    def with_notes(self, notes: str | None) -> AuditInfo:
        return replace(self, notes=notes)


SYSTEM_AUDIT = AuditInfo(user_role="SYSTEM")
