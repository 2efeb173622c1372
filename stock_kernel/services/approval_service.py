"""
stock_kernel.services.approval_service -- Material-issue approval workflow.

Responsibility:
    Opens a PENDING approval for every new material issue and drives it to
    exactly one terminal status:

    - approve:        every line approved at its original quantity; the
                      source-side ledger entries stand.
    - reject:         the whole issue transaction is reversed; a reason
                      is mandatory.
    - partial accept: per-line decisions.  Approved lines get approved_*
                      quantities and amounts recomputed in the base unit
                      at batch cost; rejected lines are reversed with a
                      reversal scoped to (issue id, item, batch).

    Approved quantities are then received at the destination location
    (same batch number, ISSUE inbound entry).

Architecture position:
    Kernel > Services.  Consumes the pure approval domain, the UOM
    resolver, StockLedgerService and ReversalService.

Invariants enforced:
    - PENDING -> {APPROVED, REJECTED, PARTIAL}; terminal states refuse
      every further call (ApprovalAlreadyResolvedError).
    - All validation (status, decision coverage, quantity bounds, unit
      conversion, rejection reasons) happens before any mutation.
    - All mutations of one call run in one atomic() scope.

Failure modes:
    - IssueNotFoundError / ApprovalNotFoundError.
    - ApprovalAlreadyResolvedError.
    - InvalidDecisionSetError, QuantityNonPositiveError,
      QuantityExceedsOriginalError, MissingRejectionReasonError.
    - ConversionNotFoundError: never defaults to 1:1.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.db.engine import atomic
from stock_kernel.db.types import MONEY_DECIMAL_PLACES
from stock_kernel.domain.approval import (
    ApprovalItemStatus,
    ApprovalStatus,
    ItemDecision,
    LineAmounts,
    aggregate_status,
    can_transition,
    compute_approved_amounts,
    validate_approved_quantity,
    validate_decision_set,
)
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.values import AuditInfo, TransactionType
from stock_kernel.exceptions import (
    ApprovalAlreadyResolvedError,
    ApprovalNotFoundError,
    IssueNotFoundError,
    MissingRejectionReasonError,
    TransactionAlreadyReversedError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.approval import MaterialApproval, MaterialApprovalItem
from stock_kernel.models.material_issue import MaterialIssue
from stock_kernel.services.base import BaseService
from stock_kernel.services.reversal_service import ReversalService
from stock_kernel.services.stock_ledger_service import StockLedgerService
from stock_kernel.services.uom_resolver import UomConversionResolver

logger = get_logger("services.approval")


@dataclass(frozen=True)
class _ApprovedLine:
    item: MaterialApprovalItem
    approved_quantity: object
    amounts: LineAmounts


@dataclass(frozen=True)
class _RejectedLine:
    item: MaterialApprovalItem
    reason: str


class MaterialApprovalService(BaseService[MaterialApproval]):
    """
    Approve / reject / partial-accept material issues.

    Contract:
        Operations take the issue id (the issue's ledger transaction id)
        and return the updated MaterialApproval after flushing.

    Non-goals:
        - Does NOT serialize concurrent callers beyond the row lock on the
          issue; the terminal-status check is the backstop.
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        resolver: UomConversionResolver | None = None,
        ledger_service: StockLedgerService | None = None,
        reversal_service: ReversalService | None = None,
        money_places: int = MONEY_DECIMAL_PLACES,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._resolver = resolver or UomConversionResolver(session)
        self._ledger_service = ledger_service or StockLedgerService(session, self._clock)
        self._reversal_service = reversal_service or ReversalService(
            session, self._clock, self._ledger_service
        )
        self._money_places = money_places

    # =========================================================================
    # Creation
    # =========================================================================

    def open_for_issue(self, issue: MaterialIssue, actor_id: UUID) -> MaterialApproval:
        """Create the PENDING approval (one PENDING line per issue line)."""
        approval = MaterialApproval(
            issue=issue,
            status=ApprovalStatus.PENDING,
            assigned_to_type=issue.to_location_type,
            assigned_to_id=issue.to_location_id,
            created_by_id=actor_id,
        )
        for issue_item in issue.items:
            approval.items.append(
                MaterialApprovalItem(
                    issue_item_id=issue_item.id,
                    line_no=issue_item.line_no,
                    item_id=issue_item.item_id,
                    batch_id=issue_item.batch_id,
                    original_quantity=issue_item.quantity,
                    original_uom=issue_item.uom,
                    original_base_amount=issue_item.base_amount,
                    original_gst_amount=issue_item.gst_amount,
                    original_total_amount=issue_item.total_amount,
                    status=ApprovalItemStatus.PENDING,
                )
            )
        self.session.add(approval)
        self.session.flush()

        logger.info(
            "approval_opened",
            extra={
                "approval_id": str(approval.id),
                "issue_id": str(issue.id),
                "line_count": len(approval.items),
                "assigned_to": str(issue.to_location),
            },
        )
        return approval

    # =========================================================================
    # Decisions
    # =========================================================================

    def approve_issue(
        self,
        issue_id: UUID,
        actor_id: UUID,
        remarks: str | None = None,
        audit: AuditInfo | None = None,
    ) -> MaterialApproval:
        """Approve every line at its original quantity and amounts."""
        issue, approval = self._load_pending(issue_id, ApprovalStatus.APPROVED)

        with atomic(self.session):
            for line in approval.items:
                line.approved_quantity = line.original_quantity
                line.approved_uom = line.original_uom
                line.approved_base_quantity = line.issue_item.base_quantity
                line.approved_base_amount = line.original_base_amount
                line.approved_gst_amount = line.original_gst_amount
                line.approved_total_amount = line.original_total_amount
                line.status = ApprovalItemStatus.APPROVED

            for line in approval.items:
                self._receive_at_destination(issue, line, actor_id, audit)

            self._resolve(issue, approval, ApprovalStatus.APPROVED, actor_id, remarks, None)

        logger.info(
            "issue_approved",
            extra={"issue_id": str(issue.id), "approval_id": str(approval.id)},
        )
        return approval

    def reject_issue(
        self,
        issue_id: UUID,
        actor_id: UUID,
        rejection_reason: str,
        remarks: str | None = None,
        audit: AuditInfo | None = None,
    ) -> MaterialApproval:
        """Reject the whole issue and reverse its ledger transaction."""
        reason = (rejection_reason or "").strip()
        if not reason:
            raise MissingRejectionReasonError(str(issue_id))

        issue, approval = self._load_pending(issue_id, ApprovalStatus.REJECTED)

        with atomic(self.session):
            # Remarks must land while the approval is still PENDING; the
            # whole-transaction reversal moves issue, approval and lines to REJECTED
            approval.remarks = remarks
            reversals = self._reversal_service.reverse_transaction(
                issue.id, reason, actor_id, audit
            )

        logger.info(
            "issue_rejected",
            extra={
                "issue_id": str(issue.id),
                "approval_id": str(approval.id),
                "reversal_entry_count": len(reversals),
                "reason": reason,
            },
        )
        return approval

    def partial_accept_issue(
        self,
        issue_id: UUID,
        actor_id: UUID,
        decisions: Sequence[ItemDecision],
        remarks: str | None = None,
        rejection_reason: str | None = None,
        audit: AuditInfo | None = None,
    ) -> MaterialApproval:
        """
        Apply one decision per approval line.

        Every line must be covered exactly once.  APPROVED decisions carry
        ``approved_quantity`` in the line's original unit.  REJECTED
        decisions need a reason (their own or ``rejection_reason``).
        The aggregate status follows from the resulting line statuses.
        """
        issue, approval = self._load_pending(issue_id, ApprovalStatus.PARTIAL)

        validate_decision_set(approval.id, [line.id for line in approval.items], decisions)
        approved, rejected = self._plan(issue, approval, decisions, rejection_reason)

        with atomic(self.session):
            for plan in rejected:
                self._reversal_service.reverse_scoped(
                    issue.id,
                    plan.item.item_id,
                    plan.item.batch_id,
                    plan.reason,
                    actor_id,
                    audit,
                )

            for plan in rejected:
                plan.item.status = ApprovalItemStatus.REJECTED
                plan.item.remarks = plan.reason

            for plan in approved:
                line = plan.item
                line.approved_quantity = plan.approved_quantity
                line.approved_uom = line.original_uom
                line.approved_base_quantity = plan.amounts.base_quantity
                line.approved_base_amount = plan.amounts.base_amount
                line.approved_gst_amount = plan.amounts.gst_amount
                line.approved_total_amount = plan.amounts.total_amount
                line.status = ApprovalItemStatus.APPROVED

            for plan in approved:
                self._receive_at_destination(issue, plan.item, actor_id, audit)

            final_status = aggregate_status(line.status for line in approval.items)
            reason = (rejection_reason or "").strip() or None
            if reason is None and rejected:
                reason = "; ".join(plan.reason for plan in rejected)
            self._resolve(issue, approval, final_status, actor_id, remarks, reason if rejected else None)

        logger.info(
            "issue_partially_accepted",
            extra={
                "issue_id": str(issue.id),
                "approval_id": str(approval.id),
                "final_status": final_status.value,
                "approved_lines": len(approved),
                "rejected_lines": len(rejected),
            },
        )
        return approval

    # =========================================================================
    # Internal Implementation
    # =========================================================================

    def _load_pending(
        self,
        issue_id: UUID,
        target: ApprovalStatus,
    ) -> tuple[MaterialIssue, MaterialApproval]:
        """
        Lock the issue, load its approval, and require PENDING.

        Raises:
            IssueNotFoundError, ApprovalNotFoundError,
            ApprovalAlreadyResolvedError, TransactionAlreadyReversedError
            (some issue lines were reversed outside this workflow).
        """
        issue = self.session.execute(
            select(MaterialIssue).where(MaterialIssue.id == issue_id).with_for_update()
        ).scalar_one_or_none()
        if issue is None:
            raise IssueNotFoundError(str(issue_id))

        approval = self.session.execute(
            select(MaterialApproval)
            .where(MaterialApproval.issue_id == issue_id)
            .with_for_update()
        ).scalar_one_or_none()
        if approval is None:
            raise ApprovalNotFoundError(str(issue_id))

        current = ApprovalStatus(approval.status)
        if not can_transition(current, target):
            logger.warning(
                "approval_transition_rejected",
                extra={
                    "approval_id": str(approval.id),
                    "current_status": current.value,
                    "target_status": target.value,
                },
            )
            raise ApprovalAlreadyResolvedError(str(approval.id), current.value, target.value)

        ledger = self._ledger_service.ledger
        reversed_entries = ledger.reversals_of(e.id for e in ledger.originals(issue.id))
        if reversed_entries:
            raise TransactionAlreadyReversedError(
                str(issue.id), sorted(str(e.reversal_of) for e in reversed_entries)
            )
        return issue, approval

    def _plan(
        self,
        issue: MaterialIssue,
        approval: MaterialApproval,
        decisions: Sequence[ItemDecision],
        rejection_reason: str | None,
    ) -> tuple[list[_ApprovedLine], list[_RejectedLine]]:
        """Validate every decision and precompute amounts; no writes."""
        by_id = {d.approval_item_id: d for d in decisions}
        approved: list[_ApprovedLine] = []
        rejected: list[_RejectedLine] = []

        for line in approval.items:
            decision = by_id[line.id]
            if decision.status is ApprovalItemStatus.APPROVED:
                quantity = validate_approved_quantity(
                    line.id, decision.approved_quantity, line.original_quantity
                )
                conversion = self._resolver.resolve(line.item_id, line.original_uom)
                if quantity == line.original_quantity:
                    # Split lines store a rounded original quantity; keep the issued base
                    amounts = LineAmounts(
                        base_quantity=line.issue_item.base_quantity,
                        base_amount=line.original_base_amount,
                        gst_amount=line.original_gst_amount,
                        total_amount=line.original_total_amount,
                    )
                else:
                    batch = self._ledger_service.batches.get(line.batch_id)
                    amounts = compute_approved_amounts(
                        quantity,
                        conversion,
                        batch.rate_per_unit,
                        batch.gst_percentage,
                        self._money_places,
                    )
                approved.append(_ApprovedLine(line, quantity, amounts))
            else:
                reason = (decision.reason or rejection_reason or "").strip()
                if not reason:
                    raise MissingRejectionReasonError(str(issue.id), str(line.id))
                rejected.append(_RejectedLine(line, reason))

        return approved, rejected

    def _receive_at_destination(
        self,
        issue: MaterialIssue,
        line: MaterialApprovalItem,
        actor_id: UUID,
        audit: AuditInfo | None,
    ) -> None:
        source_batch = self._ledger_service.batches.get(line.batch_id)
        self._ledger_service.credit_location(
            source_batch=source_batch,
            destination=issue.to_location,
            quantity=line.approved_base_quantity,
            transaction_type=TransactionType.ISSUE,
            transaction_id=issue.id,
            actor_id=actor_id,
            audit=(audit or AuditInfo()).with_notes(f"Received against issue {issue.issue_no}"),
        )

    def _resolve(
        self,
        issue: MaterialIssue,
        approval: MaterialApproval,
        status: ApprovalStatus,
        actor_id: UUID,
        remarks: str | None,
        rejection_reason: str | None,
    ) -> None:
        now = self._clock.now()

        approval.status = status
        approval.approved_by = actor_id
        approval.approved_at = now
        approval.remarks = remarks
        approval.rejection_reason = rejection_reason
        approval.updated_by_id = actor_id

        issue.status = status
        issue.approved_by = actor_id
        issue.approval_date = now
        issue.rejection_reason = rejection_reason
        issue.updated_by_id = actor_id

        self.session.flush()
