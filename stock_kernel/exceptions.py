"""
Typed exception hierarchy for the stock kernel.

Every error raised by the kernel is a subclass of StockKernelError, carries
a machine-readable ``code`` class attribute, and stores its context as
attributes rather than only in the message.  Callers catch by type and map
``code`` to user-facing text; they never parse messages.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- NotFoundError
    |   +-- ItemNotFoundError
    |   +-- BatchNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- IssueNotFoundError
    |   +-- ApprovalNotFoundError
    |
    +-- InvalidStateTransitionError
    |   +-- ApprovalAlreadyResolvedError
    |   +-- TransactionNotReversibleError
    |   +-- TransactionAlreadyReversedError
    |   +-- TransferStateError
    |
    +-- ApprovalValidationError
    |   +-- QuantityExceedsOriginalError
    |   +-- QuantityNonPositiveError
    |   +-- InvalidDecisionSetError
    |   +-- MissingRejectionReasonError
    |
    +-- ConversionError
    |   +-- ConversionNotFoundError
    |   +-- InvalidConversionFactorError
    |
    +-- MovementError
    |   +-- InvalidMovementError
    |   +-- InsufficientStockError
    |   +-- BatchConflictError
    |
    +-- LedgerInconsistencyError
    |   +-- NegativeBalanceError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|-------------------------------------
Not found       | ITEM_NOT_FOUND                | Item id doesn't exist
                | BATCH_NOT_FOUND               | Batch id doesn't exist
                | TRANSACTION_NOT_FOUND         | No ledger entries / owner for txn
                | ISSUE_NOT_FOUND               | Material issue id doesn't exist
                | APPROVAL_NOT_FOUND            | No approval for the issue/id
----------------|-------------------------------|-------------------------------------
State           | APPROVAL_ALREADY_RESOLVED     | Approval is in a terminal status
                | TRANSACTION_NOT_REVERSIBLE    | Owning issue/transfer not PENDING
                | TRANSACTION_ALREADY_REVERSED  | Reversal entries already exist
                | TRANSFER_STATE_INVALID        | Transfer not in the required status
----------------|-------------------------------|-------------------------------------
Approval        | QUANTITY_EXCEEDS_ORIGINAL     | approved_quantity > original
                | QUANTITY_NON_POSITIVE         | approved_quantity <= 0
                | INVALID_DECISION_SET          | Decisions don't cover items 1:1
                | MISSING_REJECTION_REASON      | Reject without a reason
----------------|-------------------------------|-------------------------------------
Conversion      | CONVERSION_NOT_FOUND          | No direct or inverse record
                | INVALID_CONVERSION_FACTOR     | Factor <= 0 or duplicate pair
----------------|-------------------------------|-------------------------------------
Movement        | INVALID_MOVEMENT              | Malformed movement request
                | INSUFFICIENT_STOCK            | FEFO allocation falls short
                | BATCH_CONFLICT                | Batch number reused with new cost
----------------|-------------------------------|-------------------------------------
Ledger          | LEDGER_INCONSISTENCY          | Internal invariant violated (fatal)
                | NEGATIVE_BALANCE              | Decrement would go below zero
----------------|-------------------------------|-------------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | Update/delete of protected record

Validation errors (ApprovalValidationError, ConversionError, MovementError)
are raised before any mutation.  LedgerInconsistencyError is never a user
error: it means a concurrent writer or a bug broke an invariant, and the
enclosing unit of work is rolled back.
"""


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses define a ``code`` class attribute.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(StockKernelError):
    """Base exception for missing referenced records."""

    code: str = "NOT_FOUND"


class ItemNotFoundError(NotFoundError):
    """Item with given ID was not found."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class BatchNotFoundError(NotFoundError):
    """Batch with given ID was not found."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class TransactionNotFoundError(NotFoundError):
    """
    No original ledger entries (or no owning issue/transfer) exist for the
    transaction, optionally narrowed to one item and batch.
    """

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(
        self,
        transaction_id: str,
        item_id: str | None = None,
        batch_id: str | None = None,
    ):
        self.transaction_id = transaction_id
        self.item_id = item_id
        self.batch_id = batch_id
        scope = ""
        if item_id is not None or batch_id is not None:
            scope = f" (item={item_id}, batch={batch_id})"
        super().__init__(f"Transaction not found: {transaction_id}{scope}")


class IssueNotFoundError(NotFoundError):
    """Material issue with given ID was not found."""

    code: str = "ISSUE_NOT_FOUND"

    def __init__(self, issue_id: str):
        self.issue_id = issue_id
        super().__init__(f"Material issue not found: {issue_id}")


class ApprovalNotFoundError(NotFoundError):
    """No approval exists for the given issue or approval ID."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, reference_id: str):
        self.reference_id = reference_id
        super().__init__(f"Approval not found: {reference_id}")


# State-transition exceptions


class InvalidStateTransitionError(StockKernelError):
    """A state machine was asked for a transition it does not allow."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        from_status: str,
        to_status: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid transition for {entity_type} {entity_id}: "
            f"{from_status} -> {to_status}"
        )


class ApprovalAlreadyResolvedError(InvalidStateTransitionError):
    """
    Approval is already APPROVED, REJECTED or PARTIAL.

    Terminal statuses allow no further transition; re-processing is refused.
    """

    code: str = "APPROVAL_ALREADY_RESOLVED"

    def __init__(self, approval_id: str, current_status: str, to_status: str):
        self.approval_id = approval_id
        self.current_status = current_status
        super().__init__("MaterialApproval", approval_id, current_status, to_status)


class TransactionNotReversibleError(InvalidStateTransitionError):
    """The issue or transfer owning the transaction is no longer PENDING."""

    code: str = "TRANSACTION_NOT_REVERSIBLE"

    def __init__(self, transaction_id: str, owner_type: str, current_status: str):
        self.transaction_id = transaction_id
        self.owner_type = owner_type
        self.current_status = current_status
        super().__init__(owner_type, transaction_id, current_status, "REVERSED")


class TransactionAlreadyReversedError(InvalidStateTransitionError):
    """Reversal entries already point at the transaction's originals."""

    code: str = "TRANSACTION_ALREADY_REVERSED"

    def __init__(self, transaction_id: str, reversed_entry_ids: list[str]):
        self.transaction_id = transaction_id
        self.reversed_entry_ids = reversed_entry_ids
        super().__init__("StockTransaction", transaction_id, "REVERSED", "REVERSED")


class TransferStateError(InvalidStateTransitionError):
    """Material transfer is not in the status the operation requires."""

    code: str = "TRANSFER_STATE_INVALID"

    def __init__(self, transfer_id: str, current_status: str, to_status: str):
        self.transfer_id = transfer_id
        self.current_status = current_status
        super().__init__("MaterialTransfer", transfer_id, current_status, to_status)


# Approval validation exceptions


class ApprovalValidationError(StockKernelError):
    """Base exception for rejected approval requests."""

    code: str = "APPROVAL_VALIDATION_ERROR"


class QuantityExceedsOriginalError(ApprovalValidationError):
    """Approved quantity is greater than the originally issued quantity."""

    code: str = "QUANTITY_EXCEEDS_ORIGINAL"

    def __init__(self, approval_item_id: str, approved_quantity: str, original_quantity: str):
        self.approval_item_id = approval_item_id
        self.approved_quantity = approved_quantity
        self.original_quantity = original_quantity
        super().__init__(
            f"Approved quantity {approved_quantity} exceeds original "
            f"{original_quantity} for approval item {approval_item_id}"
        )


class QuantityNonPositiveError(ApprovalValidationError):
    """Approved quantity is zero, negative or missing."""

    code: str = "QUANTITY_NON_POSITIVE"

    def __init__(self, approval_item_id: str, approved_quantity: str | None):
        self.approval_item_id = approval_item_id
        self.approved_quantity = approved_quantity
        super().__init__(
            f"Approved quantity must be positive for approval item "
            f"{approval_item_id}, got {approved_quantity}"
        )


class InvalidDecisionSetError(ApprovalValidationError):
    """
    Partial-accept decisions do not cover every approval item exactly once.
    """

    code: str = "INVALID_DECISION_SET"

    def __init__(
        self,
        approval_id: str,
        missing: list[str],
        duplicates: list[str],
        unknown: list[str],
    ):
        self.approval_id = approval_id
        self.missing = missing
        self.duplicates = duplicates
        self.unknown = unknown
        super().__init__(
            f"Decision set for approval {approval_id} is invalid: "
            f"missing={missing}, duplicates={duplicates}, unknown={unknown}"
        )


class MissingRejectionReasonError(ApprovalValidationError):
    """Reject or partial-reject requested without a reason."""

    code: str = "MISSING_REJECTION_REASON"

    def __init__(self, issue_id: str, approval_item_id: str | None = None):
        self.issue_id = issue_id
        self.approval_item_id = approval_item_id
        target = f"approval item {approval_item_id}" if approval_item_id else f"issue {issue_id}"
        super().__init__(f"Rejection reason is required for {target}")


# Conversion exceptions


class ConversionError(StockKernelError):
    """Base exception for unit-of-measure conversion errors."""

    code: str = "CONVERSION_ERROR"


class ConversionNotFoundError(ConversionError):
    """
    Neither a direct nor an inverse conversion exists for the unit pair.

    Callers must never fall back to a 1:1 factor.
    """

    code: str = "CONVERSION_NOT_FOUND"

    def __init__(self, item_id: str, from_unit: str, to_unit: str):
        self.item_id = item_id
        self.from_unit = from_unit
        self.to_unit = to_unit
        super().__init__(
            f"No conversion from {from_unit} to {to_unit} for item {item_id}"
        )


class InvalidConversionFactorError(ConversionError):
    """Conversion record is malformed (non-positive factor, same units, duplicate)."""

    code: str = "INVALID_CONVERSION_FACTOR"

    def __init__(self, item_id: str, from_unit: str, to_unit: str, reason: str):
        self.item_id = item_id
        self.from_unit = from_unit
        self.to_unit = to_unit
        self.reason = reason
        super().__init__(
            f"Invalid conversion {from_unit} -> {to_unit} for item {item_id}: {reason}"
        )


# Movement exceptions


class MovementError(StockKernelError):
    """Base exception for rejected stock movements."""

    code: str = "MOVEMENT_ERROR"


class InvalidMovementError(MovementError):
    """Movement request is malformed (both/neither side set, wrong location...)."""

    code: str = "INVALID_MOVEMENT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid movement: {reason}")


class InsufficientStockError(MovementError):
    """FEFO allocation cannot cover the requested base quantity."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: str,
        location_id: str,
        requested_quantity: str,
        available_quantity: str,
    ):
        self.item_id = item_id
        self.location_id = location_id
        self.requested_quantity = requested_quantity
        self.available_quantity = available_quantity
        super().__init__(
            f"Insufficient stock for item {item_id} at {location_id}: "
            f"requested {requested_quantity}, available {available_quantity}"
        )


class BatchConflictError(MovementError):
    """A batch number already exists at the location with a different cost."""

    code: str = "BATCH_CONFLICT"

    def __init__(self, batch_no: str, location_id: str, existing_rate: str, new_rate: str):
        self.batch_no = batch_no
        self.location_id = location_id
        self.existing_rate = existing_rate
        self.new_rate = new_rate
        super().__init__(
            f"Batch {batch_no} at {location_id} has rate {existing_rate}, "
            f"received rate {new_rate}"
        )


# Ledger consistency exceptions


class LedgerInconsistencyError(StockKernelError):
    """
    Internal ledger invariant violated.

    Fatal and not retryable; signals a bug or a concurrent-write violation.
    """

    code: str = "LEDGER_INCONSISTENCY"


class NegativeBalanceError(LedgerInconsistencyError):
    """Decrement would drive a batch's current quantity below zero."""

    code: str = "NEGATIVE_BALANCE"

    def __init__(self, batch_id: str, current_qty: str, requested_qty: str):
        self.batch_id = batch_id
        self.current_qty = current_qty
        self.requested_qty = requested_qty
        super().__init__(
            f"Batch {batch_id} holds {current_qty}, cannot remove {requested_qty}"
        )


# Immutability exceptions


class ImmutabilityViolationError(StockKernelError):
    """
    Attempted to modify or delete an immutable record.

    Ledger entries, conversions and resolved approvals are protected.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
