"""
Stock Kernel Invariants Contract.

These invariants are structural law for the stock ledger.  No setting in
stock_config may switch them off.

This module only names them.  Enforcement is spread across the batch and
ledger repositories, the reversal and approval services, the ORM
immutability listeners, and database constraints.
"""

from enum import Enum, unique


@unique
class StockInvariant(str, Enum):
    """Non-configurable invariants enforced by the stock kernel."""

    NON_NEGATIVE_BALANCE = "non_negative_balance"
    """A batch's current_qty never drops below zero.  Enforced by
    BatchRepository.decrement before any write."""

    RECONCILIATION = "reconciliation"
    """current_qty equals sum(quantity_in) - sum(quantity_out) over the
    batch's ledger entries.  Enforced by writing the balance change and
    the ledger entry inside one atomic() scope."""

    LEDGER_IMMUTABILITY = "ledger_immutability"
    """Ledger entries are append-only: no UPDATE, no DELETE.  Enforced by
    ORM listeners (stock_kernel.db.immutability)."""

    ONE_SIDED_MOVEMENT = "one_sided_movement"
    """Exactly one of quantity_in / quantity_out is set and positive.
    Enforced by LedgerRepository.append and a check constraint."""

    EXACT_REVERSAL = "exact_reversal"
    """A reversal swaps the quantity roles and negates balance_value of
    the entry it reverses, and each entry is reversed at most once.
    Enforced by ReversalService and a unique index on reversal_of."""

    TERMINAL_APPROVAL = "terminal_approval"
    """APPROVED, REJECTED and PARTIAL approvals never change again.
    Enforced by MaterialApprovalService and ORM listeners."""

    APPROVED_QUANTITY_BOUNDS = "approved_quantity_bounds"
    """0 < approved_quantity <= original_quantity for every approved
    item.  Enforced before any mutation of a partial accept."""

    EXPLICIT_CONVERSION = "explicit_conversion"
    """Unit conversion never defaults to 1:1 when no record exists."""


ALL_STOCK_INVARIANTS: frozenset[StockInvariant] = frozenset(StockInvariant)

# The kernel package may not import from these packages.
# Enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "stock_config",
)
