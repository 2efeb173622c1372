"""
ReversalService -- exact compensating reversal of stock transactions.

Responsibility:
    Given a transaction id (a material issue or transfer), restore every
    batch its original ledger entries touched and append one ADJUSTMENT
    entry per original, all inside one atomic() scope.  Reversing a whole
    transaction also closes its owner in that scope: a PENDING issue and
    its approval become REJECTED, a PENDING transfer becomes CANCELLED.  A scoped variant
    restricts the originals to one (item_id, batch_id) pair so a single
    rejected line of a multi-line issue can be undone without touching
    its siblings.

Architecture position:
    Kernel > Services.  Consumes StockLedgerService (batch + ledger pair)
    and LedgerRepository (queries).  Used by MaterialApprovalService and
    MaterialMovementService.cancel_transfer.

Invariants enforced:
    - Only PENDING issues and transfers are reversible.
    - A whole-transaction reversal leaves its owner in a terminal status,
      so the owner can never be approved or completed afterwards.
    - Originals are the transaction's entries with reversal_of IS NULL.
    - Each reversal entry swaps the quantity roles of its original,
      negates balance_value, sets reversal_of, and is system_generated
      with the reason in notes.
    - An original is reversed at most once: existing reversals make the
      call fail, and the unique index on reversal_of backs that up.
    - All restorations and entries of one call commit together or not at
      all.

Failure modes:
    - TransactionNotFoundError: no owner and no entries, or the scope
      matches no original entries.
    - TransactionNotReversibleError: owner not PENDING, or the ledger
      transaction has no reversible owner (receipts, returns, consumption).
    - TransactionAlreadyReversedError: reversal entries already exist.
    - MissingRejectionReasonError: empty reason.
    - NegativeBalanceError: restoring an inbound entry would overdraw its
      batch (stock already moved on); fatal.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.db.engine import atomic
from stock_kernel.domain.approval import ApprovalItemStatus, ApprovalStatus
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.movement import TransferStatus
from stock_kernel.domain.values import AuditInfo, Location, LocationType, TransactionType
from stock_kernel.exceptions import (
    MissingRejectionReasonError,
    TransactionAlreadyReversedError,
    TransactionNotFoundError,
    TransactionNotReversibleError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.material_issue import MaterialIssue
from stock_kernel.models.material_transfer import MaterialTransfer
from stock_kernel.models.stock_ledger import StockLedgerEntry
from stock_kernel.services.base import BaseService
from stock_kernel.services.stock_ledger_service import StockLedgerService

logger = get_logger("services.reversal")


@dataclass(frozen=True)
class ReversalScope:
    """Which originals of a transaction to reverse; None means all."""

    item_id: UUID | None = None
    batch_id: UUID | None = None

    @property
    def is_whole_transaction(self) -> bool:
        return self.item_id is None and self.batch_id is None


class ReversalService(BaseService[StockLedgerEntry]):
    """
    Reverses issues and transfers through compensating ADJUSTMENT entries.

    Guarantees:
        - Originals are never mutated.
        - Batch balances return to their pre-transaction values for the
          reversed scope.

    Non-goals:
        - Scoped reversals do NOT change the owner; partial acceptance
          resolves the approval around them.
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger_service: StockLedgerService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._ledger_service = ledger_service or StockLedgerService(session, self._clock)

    def reverse_transaction(
        self,
        transaction_id: UUID,
        reason: str,
        actor_id: UUID,
        audit: AuditInfo | None = None,
    ) -> list[StockLedgerEntry]:
        """
        Reverse every original entry of ``transaction_id`` and close its owner.

        A material issue and its approval end REJECTED with ``reason`` as
        the rejection reason; a transfer ends CANCELLED.

        Returns:
            The new ADJUSTMENT entries, one per original, in original order.
        """
        return self._reverse(transaction_id, ReversalScope(), reason, actor_id, audit)

    def reverse_scoped(
        self,
        transaction_id: UUID,
        item_id: UUID,
        batch_id: UUID,
        reason: str,
        actor_id: UUID,
        audit: AuditInfo | None = None,
    ) -> list[StockLedgerEntry]:
        """Reverse only the originals of ``transaction_id`` for one item and batch."""
        return self._reverse(
            transaction_id, ReversalScope(item_id, batch_id), reason, actor_id, audit
        )

    # =========================================================================
    # Internal Implementation
    # =========================================================================

    def _reverse(
        self,
        transaction_id: UUID,
        scope: ReversalScope,
        reason: str,
        actor_id: UUID,
        audit: AuditInfo | None,
    ) -> list[StockLedgerEntry]:
        reason = (reason or "").strip()
        if not reason:
            raise MissingRejectionReasonError(str(transaction_id))

        owner, originals = self._load_and_validate(transaction_id, scope)
        audit = (audit or AuditInfo()).with_notes(reason)

        reversals: list[StockLedgerEntry] = []
        with atomic(self.session):
            for original in originals:
                reversals.append(self._reverse_entry(original, actor_id, audit))
            if scope.is_whole_transaction:
                self._close_owner(owner, reason, actor_id)

        logger.info(
            "reversal_completed",
            extra={
                "txn_id": str(transaction_id),
                "scoped": not scope.is_whole_transaction,
                "scope_item_id": str(scope.item_id) if scope.item_id else None,
                "scope_batch_id": str(scope.batch_id) if scope.batch_id else None,
                "reversed_entry_count": len(reversals),
                "reason": reason,
            },
        )
        return reversals

    def _load_and_validate(
        self,
        transaction_id: UUID,
        scope: ReversalScope,
    ) -> tuple[MaterialIssue | MaterialTransfer, list[StockLedgerEntry]]:
        """
        Check the owner is reversible, then load unreversed originals.

        Raises:
            TransactionNotFoundError, TransactionNotReversibleError,
            TransactionAlreadyReversedError.
        """
        owner = self._require_reversible_owner(transaction_id)

        ledger = self._ledger_service.ledger
        originals = ledger.originals(transaction_id, scope.item_id, scope.batch_id)
        if not originals:
            raise TransactionNotFoundError(
                str(transaction_id),
                str(scope.item_id) if scope.item_id else None,
                str(scope.batch_id) if scope.batch_id else None,
            )

        existing = ledger.reversals_of(entry.id for entry in originals)
        if existing:
            logger.warning(
                "reversal_rejected_already_reversed",
                extra={
                    "txn_id": str(transaction_id),
                    "reversed_entry_ids": [str(e.reversal_of) for e in existing],
                },
            )
            raise TransactionAlreadyReversedError(
                str(transaction_id), sorted(str(e.reversal_of) for e in existing)
            )
        return owner, originals

    def _require_reversible_owner(
        self, transaction_id: UUID
    ) -> MaterialIssue | MaterialTransfer:
        # Row lock serializes concurrent reversals of the same owner
        issue = self.session.execute(
            select(MaterialIssue)
            .where(MaterialIssue.id == transaction_id)
            .with_for_update()
        ).scalar_one_or_none()
        if issue is not None:
            if ApprovalStatus(issue.status) is not ApprovalStatus.PENDING:
                raise TransactionNotReversibleError(
                    str(transaction_id), "MaterialIssue", ApprovalStatus(issue.status).value
                )
            return issue

        transfer = self.session.execute(
            select(MaterialTransfer)
            .where(MaterialTransfer.id == transaction_id)
            .with_for_update()
        ).scalar_one_or_none()
        if transfer is not None:
            if TransferStatus(transfer.status) is not TransferStatus.PENDING:
                raise TransactionNotReversibleError(
                    str(transaction_id), "MaterialTransfer", TransferStatus(transfer.status).value
                )
            return transfer

        if self._ledger_service.ledger.by_transaction(transaction_id):
            raise TransactionNotReversibleError(
                str(transaction_id), "StockTransaction", "NOT_REVERSIBLE"
            )
        raise TransactionNotFoundError(str(transaction_id))

    def _close_owner(
        self,
        owner: MaterialIssue | MaterialTransfer,
        reason: str,
        actor_id: UUID,
    ) -> None:
        """Move a fully reversed owner to its terminal status."""
        if isinstance(owner, MaterialTransfer):
            owner.status = TransferStatus.CANCELLED
            owner.cancellation_reason = reason
            owner.updated_by_id = actor_id
            self.session.flush()
            logger.info("transfer_closed_by_reversal", extra={"transfer_id": str(owner.id)})
            return

        now = self._clock.now()
        approval = owner.approval
        if approval is not None:
            for line in approval.items:
                if ApprovalItemStatus(line.status) is ApprovalItemStatus.PENDING:
                    line.status = ApprovalItemStatus.REJECTED
                    line.remarks = reason
            approval.status = ApprovalStatus.REJECTED
            approval.approved_by = actor_id
            approval.approved_at = now
            approval.rejection_reason = reason
            approval.updated_by_id = actor_id

        owner.status = ApprovalStatus.REJECTED
        owner.approved_by = actor_id
        owner.approval_date = now
        owner.rejection_reason = reason
        owner.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "issue_closed_by_reversal",
            extra={
                "issue_id": str(owner.id),
                "approval_id": str(approval.id) if approval is not None else None,
            },
        )

    def _reverse_entry(
        self,
        original: StockLedgerEntry,
        actor_id: UUID,
        audit: AuditInfo,
    ) -> StockLedgerEntry:
        """Restore the batch and append the mirrored ADJUSTMENT entry."""
        return self._ledger_service.append_movement(
            item_id=original.item_id,
            batch_id=original.batch_id,
            location=Location(LocationType(original.location_type), original.location_id),
            transaction_type=TransactionType.ADJUSTMENT,
            transaction_id=original.transaction_id,
            actor_id=actor_id,
            quantity_in=original.quantity_out,
            quantity_out=original.quantity_in,
            rate_per_unit=original.rate_per_unit,
            audit=replace(audit, reference_no=original.reference_no or audit.reference_no),
            balance_value=-original.balance_value,
            reversal_of=original.id,
            system_generated=True,
        )
