"""
StockOrchestrator - the kernel's public entry point.

Ties together:
- UomConversionResolver: unit resolution
- StockLedgerService: batch + ledger pairs
- ReversalService: compensating reversals
- MaterialApprovalService: approve / reject / partial accept
- MaterialMovementService: receipts, issues, transfers, returns, consumption
- ItemService: the item catalogue

Owns the transaction boundary.  Every state-changing call binds a
correlation id and the actor to the log context, commits on success and
rolls back on failure (auto_commit=True), and returns frozen DTOs so
callers never hold session-bound rows.
"""

from __future__ import annotations

import time
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Sequence, TypeVar
from uuid import UUID
from uuid import uuid4 as _uuid4

from sqlalchemy.orm import Session

from stock_kernel.db.types import MONEY_DECIMAL_PLACES
from stock_kernel.domain.approval import ItemDecision
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    ApprovalRecord,
    IssueRecord,
    ItemRecord,
    LedgerEntryRecord,
    TransferRecord,
)
from stock_kernel.domain.movement import MovementLine
from stock_kernel.domain.uom import ConversionRecord, ConversionResult
from stock_kernel.domain.values import AuditInfo, Location, TransactionType
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.services.approval_service import MaterialApprovalService
from stock_kernel.services.item_service import ItemService
from stock_kernel.services.movement_service import MaterialMovementService
from stock_kernel.services.reversal_service import ReversalService
from stock_kernel.services.stock_ledger_service import StockLedgerService
from stock_kernel.services.uom_resolver import UomConversionResolver

logger = get_logger("services.stock_orchestrator")

T = TypeVar("T")


class StockOrchestrator:
    """
    Coordinates the stock kernel services behind one transaction boundary.

    By default each operation commits on success and rolls back on failure.
    Set auto_commit=False to leave transaction control to the caller (tests,
    or composing several operations in one unit).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auto_commit: bool = True,
        money_places: int = MONEY_DECIMAL_PLACES,
        issue_number_prefix: str = "MI",
        transfer_number_prefix: str = "MT",
        exclude_expired_batches: bool = True,
    ):
        """
        Args:
            session: SQLAlchemy session.
            clock: Clock for timestamps. Defaults to SystemClock.
            auto_commit: Commit on success / roll back on failure.
            money_places: Decimal places for issue and approval amounts.
            issue_number_prefix: Prefix of generated issue numbers.
            transfer_number_prefix: Prefix of generated transfer numbers.
            exclude_expired_batches: Skip expired batches in FEFO allocation.
        """
        self._session = session
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit

        self._resolver = UomConversionResolver(session)
        self._items = ItemService(session)
        self._ledger = StockLedgerService(session, self._clock)
        self._reversals = ReversalService(session, self._clock, self._ledger)
        self._approvals = MaterialApprovalService(
            session,
            self._clock,
            self._resolver,
            self._ledger,
            self._reversals,
            money_places,
        )
        self._movements = MaterialMovementService(
            session,
            self._clock,
            self._resolver,
            self._ledger,
            self._approvals,
            self._reversals,
            issue_number_prefix=issue_number_prefix,
            transfer_number_prefix=transfer_number_prefix,
            exclude_expired=exclude_expired_batches,
            money_places=money_places,
        )

    # =========================================================================
    # Core operations
    # =========================================================================

    def resolve_conversion(self, item_id: UUID, from_unit: str) -> ConversionResult:
        """Read-only; no transaction handling needed."""
        return self._resolver.resolve(item_id, from_unit)

    def append_movement(
        self,
        *,
        item_id: UUID,
        batch_id: UUID,
        location: Location,
        transaction_type: TransactionType,
        transaction_id: UUID,
        actor_id: UUID,
        quantity_in: Decimal | None = None,
        quantity_out: Decimal | None = None,
        rate_per_unit: Decimal | None = None,
        audit: AuditInfo | None = None,
    ) -> LedgerEntryRecord:
        def op() -> LedgerEntryRecord:
            return self._ledger.append_movement(
                item_id=item_id,
                batch_id=batch_id,
                location=location,
                transaction_type=TransactionType(transaction_type),
                transaction_id=transaction_id,
                actor_id=actor_id,
                quantity_in=quantity_in,
                quantity_out=quantity_out,
                rate_per_unit=rate_per_unit,
                audit=audit,
            ).to_dto()

        return self._run("append_movement", actor_id, op, transaction_id=transaction_id)

    def reverse_transaction(
        self,
        transaction_id: UUID,
        reason: str,
        actor_id: UUID,
        audit: AuditInfo | None = None,
    ) -> list[LedgerEntryRecord]:
        def op() -> list[LedgerEntryRecord]:
            entries = self._reversals.reverse_transaction(transaction_id, reason, actor_id, audit)
            return [e.to_dto() for e in entries]

        return self._run("reverse_transaction", actor_id, op, transaction_id=transaction_id)

    def approve_issue(
        self,
        issue_id: UUID,
        actor_id: UUID,
        remarks: str | None = None,
        audit: AuditInfo | None = None,
    ) -> ApprovalRecord:
        return self._run(
            "approve_issue",
            actor_id,
            lambda: self._approvals.approve_issue(issue_id, actor_id, remarks, audit).to_dto(),
            issue_id=issue_id,
        )

    def reject_issue(
        self,
        issue_id: UUID,
        actor_id: UUID,
        rejection_reason: str,
        remarks: str | None = None,
        audit: AuditInfo | None = None,
    ) -> ApprovalRecord:
        return self._run(
            "reject_issue",
            actor_id,
            lambda: self._approvals.reject_issue(
                issue_id, actor_id, rejection_reason, remarks, audit
            ).to_dto(),
            issue_id=issue_id,
        )

    def partial_accept_issue(
        self,
        issue_id: UUID,
        actor_id: UUID,
        decisions: Sequence[ItemDecision],
        remarks: str | None = None,
        rejection_reason: str | None = None,
        audit: AuditInfo | None = None,
    ) -> ApprovalRecord:
        return self._run(
            "partial_accept_issue",
            actor_id,
            lambda: self._approvals.partial_accept_issue(
                issue_id, actor_id, decisions, remarks, rejection_reason, audit
            ).to_dto(),
            issue_id=issue_id,
        )

    # =========================================================================
    # Catalogue and movements
    # =========================================================================

    def register_item(
        self,
        *,
        name: str,
        category: str,
        base_uom: str,
        actor_id: UUID,
        conversions: Iterable[ConversionRecord] = (),
    ) -> ItemRecord:
        return self._run(
            "register_item",
            actor_id,
            lambda: self._items.register_item(
                name=name,
                category=category,
                base_uom=base_uom,
                actor_id=actor_id,
                conversions=conversions,
            ).to_dto(),
        )

    def add_conversion(
        self,
        item_id: UUID,
        from_unit: str,
        to_unit: str,
        factor: Decimal,
        actor_id: UUID,
    ) -> ItemRecord:
        def op() -> ItemRecord:
            self._items.add_conversion(item_id, from_unit, to_unit, factor)
            return self._resolver.get_item(item_id).to_dto()

        return self._run("add_conversion", actor_id, op)

    def record_receipt(
        self,
        *,
        location: Location,
        item_id: UUID,
        batch_no: str,
        quantity: Decimal,
        rate_per_unit: Decimal,
        actor_id: UUID,
        uom: str | None = None,
        gst_percentage: Decimal = Decimal(0),
        mfg_date: date | None = None,
        expiry_date: date | None = None,
        audit: AuditInfo | None = None,
    ) -> LedgerEntryRecord:
        return self._run(
            "record_receipt",
            actor_id,
            lambda: self._movements.record_receipt(
                location=location,
                item_id=item_id,
                batch_no=batch_no,
                quantity=quantity,
                rate_per_unit=rate_per_unit,
                actor_id=actor_id,
                uom=uom,
                gst_percentage=gst_percentage,
                mfg_date=mfg_date,
                expiry_date=expiry_date,
                audit=audit,
            ).to_dto(),
        )

    def issue_material(
        self,
        *,
        from_location: Location,
        to_location: Location,
        lines: Sequence[MovementLine],
        actor_id: UUID,
        purpose: str | None = None,
        remarks: str | None = None,
        audit: AuditInfo | None = None,
    ) -> IssueRecord:
        return self._run(
            "issue_material",
            actor_id,
            lambda: self._movements.issue_material(
                from_location=from_location,
                to_location=to_location,
                lines=lines,
                actor_id=actor_id,
                purpose=purpose,
                remarks=remarks,
                audit=audit,
            ).to_dto(),
        )

    def transfer_material(
        self,
        *,
        from_location: Location,
        to_location: Location,
        lines: Sequence[MovementLine],
        actor_id: UUID,
        remarks: str | None = None,
        audit: AuditInfo | None = None,
    ) -> TransferRecord:
        return self._run(
            "transfer_material",
            actor_id,
            lambda: self._movements.transfer_material(
                from_location=from_location,
                to_location=to_location,
                lines=lines,
                actor_id=actor_id,
                remarks=remarks,
                audit=audit,
            ).to_dto(),
        )

    def complete_transfer(self, transfer_id: UUID, actor_id: UUID) -> TransferRecord:
        return self._run(
            "complete_transfer",
            actor_id,
            lambda: self._movements.complete_transfer(transfer_id, actor_id).to_dto(),
            transaction_id=transfer_id,
        )

    def cancel_transfer(
        self,
        transfer_id: UUID,
        reason: str,
        actor_id: UUID,
        audit: AuditInfo | None = None,
    ) -> TransferRecord:
        return self._run(
            "cancel_transfer",
            actor_id,
            lambda: self._movements.cancel_transfer(transfer_id, reason, actor_id, audit).to_dto(),
            transaction_id=transfer_id,
        )

    def record_return(
        self,
        *,
        from_location: Location,
        to_location: Location,
        lines: Sequence[MovementLine],
        actor_id: UUID,
        audit: AuditInfo | None = None,
    ) -> list[LedgerEntryRecord]:
        def op() -> list[LedgerEntryRecord]:
            entries = self._movements.record_return(
                from_location=from_location,
                to_location=to_location,
                lines=lines,
                actor_id=actor_id,
                audit=audit,
            )
            return [e.to_dto() for e in entries]

        return self._run("record_return", actor_id, op)

    def record_consumption(
        self,
        *,
        location: Location,
        lines: Sequence[MovementLine],
        actor_id: UUID,
        audit: AuditInfo | None = None,
    ) -> list[LedgerEntryRecord]:
        def op() -> list[LedgerEntryRecord]:
            entries = self._movements.record_consumption(
                location=location, lines=lines, actor_id=actor_id, audit=audit,
            )
            return [e.to_dto() for e in entries]

        return self._run("record_consumption", actor_id, op)

    # =========================================================================
    # Transaction boundary
    # =========================================================================

    def _run(
        self,
        operation: str,
        actor_id: UUID,
        fn: Callable[[], T],
        transaction_id: UUID | None = None,
        issue_id: UUID | None = None,
    ) -> T:
        """Run ``fn`` inside the log context and the transaction boundary."""
        context = {"correlation_id": str(_uuid4()), "actor_id": str(actor_id)}
        if transaction_id is not None:
            context["transaction_id"] = str(transaction_id)
        if issue_id is not None:
            context["issue_id"] = str(issue_id)

        with LogContext.bind(**context):
            logger.info("operation_started", extra={"operation": operation})
            t0 = time.monotonic()
            try:
                result = fn()
                if self._auto_commit:
                    self._session.commit()
            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self._session.rollback()
                logger.error(
                    "operation_failed",
                    extra={"operation": operation, "duration_ms": duration_ms},
                    exc_info=True,
                )
                raise

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(
                "operation_completed",
                extra={"operation": operation, "duration_ms": duration_ms},
            )
            return result
