"""
ORM-level immutability enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners here inspect attribute history and raise
ImmutabilityViolationError before anything is written:

    session.flush()
         |
         v
    [before_update] --> _check_*_update() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete() --> ImmutabilityViolationError

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                 | Rule
-----------------------|------------------------------------------------------
StockLedgerEntry       | Never updated, never deleted
Batch                  | Never deleted; only current_qty (+ audit fields) change
Item                   | name / category / base_uom write-once; never deleted
UomConversion          | Never updated, never deleted
MaterialApproval       | Frozen once status is APPROVED / REJECTED / PARTIAL
MaterialApprovalItem   | Frozen once status is APPROVED / REJECTED

updated_at / updated_by_id are audit metadata and may always change.

Usage:
    register_immutability_listeners()    # done by init_engine_from_url()
    unregister_immutability_listeners()  # tests that need raw fixtures
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _changed_fields(target, ignore: frozenset[str] = _AUDIT_FIELDS) -> list[str]:
    """Column attributes with pending changes, excluding ``ignore``."""
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.mapper.column_attrs
        if attr.key not in ignore and insp.attrs[attr.key].history.has_changes()
    ]


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _status_before_flush(target) -> object:
    """The persisted status value, whether or not it is being changed now."""
    history = get_history(target, "status")
    if history.deleted:
        return history.deleted[0]
    return target.status


# ---------------------------------------------------------------------------
# StockLedgerEntry
# ---------------------------------------------------------------------------


def _check_ledger_entry_update(mapper, connection, target):
    changed = _changed_fields(target, ignore=frozenset())
    if changed:
        _block(
            "StockLedgerEntry", target, "UPDATE",
            "Ledger entries are append-only; post an ADJUSTMENT instead",
            field=changed[0],
        )


def _check_ledger_entry_delete(mapper, connection, target):
    _block("StockLedgerEntry", target, "DELETE", "Ledger entries cannot be deleted")


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------


_BATCH_MUTABLE_FIELDS = _AUDIT_FIELDS | {"current_qty"}


def _check_batch_update(mapper, connection, target):
    changed = _changed_fields(target, ignore=_BATCH_MUTABLE_FIELDS)
    if changed:
        _block(
            "Batch", target, "UPDATE",
            f"Cannot modify field '{changed[0]}' on a batch",
            field=changed[0],
        )


def _check_batch_delete(mapper, connection, target):
    _block("Batch", target, "DELETE", "Batches are never deleted; zero quantity is terminal")


# ---------------------------------------------------------------------------
# Item / UomConversion
# ---------------------------------------------------------------------------


_ITEM_STRUCTURAL_FIELDS = ("name", "category", "base_uom")


def _check_item_update(mapper, connection, target):
    for field in _ITEM_STRUCTURAL_FIELDS:
        if get_history(target, field).has_changes():
            _block(
                "Item", target, "UPDATE",
                f"Cannot modify field '{field}' on an item",
                field=field,
            )


def _check_item_delete(mapper, connection, target):
    _block("Item", target, "DELETE", "Items cannot be deleted")


def _check_conversion_update(mapper, connection, target):
    changed = _changed_fields(target, ignore=frozenset())
    if changed:
        _block(
            "UomConversion", target, "UPDATE",
            "Conversion records are immutable; add a new record instead",
            field=changed[0],
        )


def _check_conversion_delete(mapper, connection, target):
    _block("UomConversion", target, "DELETE", "Conversion records cannot be deleted")


# ---------------------------------------------------------------------------
# MaterialApproval / MaterialApprovalItem
# ---------------------------------------------------------------------------


def _check_approval_update(mapper, connection, target):
    from stock_kernel.domain.approval import TERMINAL_APPROVAL_STATUSES, ApprovalStatus

    if ApprovalStatus(_status_before_flush(target)) not in TERMINAL_APPROVAL_STATUSES:
        return
    changed = _changed_fields(target)
    if changed:
        _block(
            "MaterialApproval", target, "UPDATE",
            f"Approval is resolved; cannot modify field '{changed[0]}'",
            field=changed[0],
        )


def _check_approval_item_update(mapper, connection, target):
    from stock_kernel.domain.approval import ApprovalItemStatus

    if ApprovalItemStatus(_status_before_flush(target)) is ApprovalItemStatus.PENDING:
        return
    changed = _changed_fields(target)
    if changed:
        _block(
            "MaterialApprovalItem", target, "UPDATE",
            f"Approval item is decided; cannot modify field '{changed[0]}'",
            field=changed[0],
        )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def _listeners():
    from stock_kernel.models import (
        Batch,
        Item,
        MaterialApproval,
        MaterialApprovalItem,
        StockLedgerEntry,
        UomConversion,
    )

    return (
        (StockLedgerEntry, "before_update", _check_ledger_entry_update),
        (StockLedgerEntry, "before_delete", _check_ledger_entry_delete),
        (Batch, "before_update", _check_batch_update),
        (Batch, "before_delete", _check_batch_delete),
        (Item, "before_update", _check_item_update),
        (Item, "before_delete", _check_item_delete),
        (UomConversion, "before_update", _check_conversion_update),
        (UomConversion, "before_delete", _check_conversion_delete),
        (MaterialApproval, "before_update", _check_approval_update),
        (MaterialApprovalItem, "before_update", _check_approval_item_update),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners (idempotent)."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """Remove all immutability listeners. FOR TESTING ONLY."""
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
