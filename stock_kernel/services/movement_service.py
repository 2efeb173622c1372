"""
stock_kernel.services.movement_service -- Receipts, issues, transfers,
returns and consumption.

Responsibility:
    The issuing side of the store.  Every operation converts requested
    quantities to the item's base unit, picks source batches First-Expiry-
    First-Out, and records each batch change through StockLedgerService so
    balances and ledger entries always move together.

    receipt      RECEIPT in          new transaction id
    issue        ISSUE out           transaction id = MaterialIssue.id,
                                     PENDING approval opened
    transfer     TRANSFER out + in   transaction id = MaterialTransfer.id
    return       RETURN out + in     new transaction id
    consumption  CONSUMPTION out     new transaction id

Architecture position:
    Kernel > Services.  Consumes UomConversionResolver, StockLedgerService,
    MaterialApprovalService and ReversalService.

Invariants enforced:
    - Source and destination locations differ.
    - An item appears at most once per request.
    - A shortfall at the source raises before any batch is touched.
    - Each operation runs in one atomic() scope.

Failure modes:
    - InvalidMovementError, InsufficientStockError, BatchConflictError.
    - ItemNotFoundError, ConversionNotFoundError.
    - TransferStateError: completing or cancelling a non-PENDING transfer.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.db.engine import atomic
from stock_kernel.db.types import MONEY_DECIMAL_PLACES, to_decimal, to_storage
from stock_kernel.domain.approval import ApprovalStatus, compute_line_amounts
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.movement import (
    TRANSFER_TRANSITIONS,
    MovementLine,
    TransferStatus,
    allocate_fefo,
)
from stock_kernel.domain.uom import ConversionResult
from stock_kernel.domain.values import AuditInfo, Location, TransactionType
from stock_kernel.exceptions import (
    BatchConflictError,
    InsufficientStockError,
    InvalidMovementError,
    TransactionNotFoundError,
    TransferStateError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.batch import Batch
from stock_kernel.models.item import Item
from stock_kernel.models.material_issue import MaterialIssue, MaterialIssueItem
from stock_kernel.models.material_transfer import MaterialTransfer, MaterialTransferItem
from stock_kernel.models.stock_ledger import StockLedgerEntry
from stock_kernel.services.approval_service import MaterialApprovalService
from stock_kernel.services.base import BaseService
from stock_kernel.services.reversal_service import ReversalService
from stock_kernel.services.stock_ledger_service import StockLedgerService
from stock_kernel.services.uom_resolver import UomConversionResolver

logger = get_logger("services.movement")


@dataclass(frozen=True)
class _BatchTake:
    """One FEFO allocation, with the quantity in base and requested units."""

    batch: Batch
    base_quantity: Decimal
    quantity: Decimal
    uom: str


@dataclass(frozen=True)
class _PlannedLine:
    item: Item
    conversion: ConversionResult
    base_quantity: Decimal
    takes: tuple[_BatchTake, ...]


class MaterialMovementService(BaseService[StockLedgerEntry]):
    """
    Records stock movements between locations.

    Non-goals:
        - Does NOT commit; StockOrchestrator owns the transaction.
        - Does NOT manage locations themselves (companies, branches,
          technicians are external).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        resolver: UomConversionResolver | None = None,
        ledger_service: StockLedgerService | None = None,
        approvals: MaterialApprovalService | None = None,
        reversal_service: ReversalService | None = None,
        issue_number_prefix: str = "MI",
        transfer_number_prefix: str = "MT",
        exclude_expired: bool = True,
        money_places: int = MONEY_DECIMAL_PLACES,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._resolver = resolver or UomConversionResolver(session)
        self._ledger_service = ledger_service or StockLedgerService(session, self._clock)
        self._reversal_service = reversal_service or ReversalService(
            session, self._clock, self._ledger_service
        )
        self._approvals = approvals or MaterialApprovalService(
            session,
            self._clock,
            self._resolver,
            self._ledger_service,
            self._reversal_service,
            money_places,
        )
        self._issue_prefix = issue_number_prefix
        self._transfer_prefix = transfer_number_prefix
        self._exclude_expired = exclude_expired
        self._money_places = money_places

    # =========================================================================
    # Receipt
    # =========================================================================

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
    ) -> StockLedgerEntry:
        """
        Receive stock into a batch at ``location``.

        ``rate_per_unit`` is the cost per base unit.  An existing batch with
        the same number is topped up when its rate matches.

        Raises:
            BatchConflictError: the batch exists with a different rate.
        """
        batch_no = (batch_no or "").strip()
        if not batch_no:
            raise InvalidMovementError("batch_no is required for a receipt")
        rate = to_decimal(rate_per_unit)
        if rate < 0:
            raise InvalidMovementError(f"rate_per_unit must not be negative, got {rate}")
        gst = to_decimal(gst_percentage)
        if gst < 0:
            raise InvalidMovementError(f"gst_percentage must not be negative, got {gst}")

        line = MovementLine(item_id, quantity, uom)
        item = self._resolver.get_item(item_id)
        conversion = self._resolver.resolve_for(item, line.uom or item.base_uom)
        base_quantity = to_storage(conversion.to_base(line.quantity))

        with atomic(self.session):
            batches = self._ledger_service.batches
            batch = batches.find_at_location(item.id, batch_no, location)
            if batch is None:
                batch = batches.create(
                    item_id=item.id,
                    batch_no=batch_no,
                    location=location,
                    initial_qty=base_quantity,
                    rate_per_unit=rate,
                    gst_percentage=gst,
                    mfg_date=mfg_date,
                    expiry_date=expiry_date,
                    actor_id=actor_id,
                )
            elif batch.rate_per_unit != to_storage(rate):
                raise BatchConflictError(
                    batch_no, str(location), str(batch.rate_per_unit), str(rate)
                )

            entry = self._ledger_service.append_movement(
                item_id=item.id,
                batch_id=batch.id,
                location=location,
                transaction_type=TransactionType.RECEIPT,
                transaction_id=uuid4(),
                actor_id=actor_id,
                quantity_in=base_quantity,
                audit=audit,
            )

        logger.info(
            "receipt_recorded",
            extra={
                "item_id": str(item.id),
                "batch_id": str(batch.id),
                "batch_no": batch_no,
                "location": str(location),
                "base_quantity": base_quantity,
            },
        )
        return entry

    # =========================================================================
    # Issue
    # =========================================================================

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
    ) -> MaterialIssue:
        """
        Issue stock to another location, pending the receiver's approval.

        One issue line is created per allocated batch.  A line served by a
        single batch keeps the requested quantity and unit; a line split
        across batches records each share converted back to that unit.
        """
        self._require_distinct(from_location, to_location)
        planned = self._plan(from_location, lines)
        now = self._clock.now()

        with atomic(self.session):
            issue = MaterialIssue(
                issue_no=self._number(self._issue_prefix),
                issue_date=now,
                from_location_type=from_location.location_type,
                from_location_id=from_location.location_id,
                to_location_type=to_location.location_type,
                to_location_id=to_location.location_id,
                status=ApprovalStatus.PENDING,
                purpose=purpose,
                remarks=remarks,
                created_by_id=actor_id,
            )
            line_no = 0
            for plan in planned:
                for take in plan.takes:
                    line_no += 1
                    amounts = compute_line_amounts(
                        take.base_quantity,
                        take.batch.rate_per_unit,
                        take.batch.gst_percentage,
                        self._money_places,
                    )
                    issue.items.append(
                        MaterialIssueItem(
                            line_no=line_no,
                            item_id=plan.item.id,
                            batch_id=take.batch.id,
                            quantity=take.quantity,
                            uom=take.uom,
                            base_quantity=amounts.base_quantity,
                            rate_per_unit=take.batch.rate_per_unit,
                            gst_percentage=take.batch.gst_percentage,
                            base_amount=amounts.base_amount,
                            gst_amount=amounts.gst_amount,
                            total_amount=amounts.total_amount,
                        )
                    )
            self.session.add(issue)
            self.session.flush()

            entry_audit = replace(audit or AuditInfo(), reference_no=issue.issue_no)
            for plan in planned:
                for take in plan.takes:
                    self._ledger_service.append_movement(
                        item_id=plan.item.id,
                        batch_id=take.batch.id,
                        location=from_location,
                        transaction_type=TransactionType.ISSUE,
                        transaction_id=issue.id,
                        actor_id=actor_id,
                        quantity_out=take.base_quantity,
                        audit=entry_audit,
                    )

            self._approvals.open_for_issue(issue, actor_id)

        logger.info(
            "issue_created",
            extra={
                "issue_id": str(issue.id),
                "issue_no": issue.issue_no,
                "from_location": str(from_location),
                "to_location": str(to_location),
                "line_count": len(issue.items),
            },
        )
        return issue

    # =========================================================================
    # Transfer
    # =========================================================================

    def transfer_material(
        self,
        *,
        from_location: Location,
        to_location: Location,
        lines: Sequence[MovementLine],
        actor_id: UUID,
        remarks: str | None = None,
        audit: AuditInfo | None = None,
    ) -> MaterialTransfer:
        """Move stock now; the transfer stays PENDING until completed or cancelled."""
        self._require_distinct(from_location, to_location)
        planned = self._plan(from_location, lines)

        with atomic(self.session):
            transfer = MaterialTransfer(
                transfer_no=self._number(self._transfer_prefix),
                transfer_date=self._clock.now(),
                from_location_type=from_location.location_type,
                from_location_id=from_location.location_id,
                to_location_type=to_location.location_type,
                to_location_id=to_location.location_id,
                status=TransferStatus.PENDING,
                remarks=remarks,
                created_by_id=actor_id,
            )
            self.session.add(transfer)
            self.session.flush()

            entry_audit = replace(audit or AuditInfo(), reference_no=transfer.transfer_no)
            for plan in planned:
                for take in plan.takes:
                    _, inbound = self._move_between(
                        take.batch,
                        from_location,
                        to_location,
                        take.base_quantity,
                        TransactionType.TRANSFER,
                        transfer.id,
                        actor_id,
                        entry_audit,
                    )
                    transfer.items.append(
                        MaterialTransferItem(
                            item_id=plan.item.id,
                            source_batch_id=take.batch.id,
                            destination_batch_id=inbound.batch_id,
                            quantity=take.quantity,
                            uom=take.uom,
                            base_quantity=take.base_quantity,
                        )
                    )
            self.session.flush()

        logger.info(
            "transfer_created",
            extra={
                "transfer_id": str(transfer.id),
                "transfer_no": transfer.transfer_no,
                "from_location": str(from_location),
                "to_location": str(to_location),
            },
        )
        return transfer

    def complete_transfer(self, transfer_id: UUID, actor_id: UUID) -> MaterialTransfer:
        transfer = self._load_transfer(transfer_id, TransferStatus.COMPLETED)
        transfer.status = TransferStatus.COMPLETED
        transfer.updated_by_id = actor_id
        self.session.flush()

        logger.info("transfer_completed", extra={"transfer_id": str(transfer.id)})
        return transfer

    def cancel_transfer(
        self,
        transfer_id: UUID,
        reason: str,
        actor_id: UUID,
        audit: AuditInfo | None = None,
    ) -> MaterialTransfer:
        """Reverse every original entry of the transfer and mark it CANCELLED."""
        transfer = self._load_transfer(transfer_id, TransferStatus.CANCELLED)

        # The whole-transaction reversal also marks the transfer CANCELLED
        reversals = self._reversal_service.reverse_transaction(
            transfer.id, reason, actor_id, audit
        )

        logger.info(
            "transfer_cancelled",
            extra={
                "transfer_id": str(transfer.id),
                "reversal_entry_count": len(reversals),
            },
        )
        return transfer

    # =========================================================================
    # Return / consumption
    # =========================================================================

    def record_return(
        self,
        *,
        from_location: Location,
        to_location: Location,
        lines: Sequence[MovementLine],
        actor_id: UUID,
        audit: AuditInfo | None = None,
    ) -> list[StockLedgerEntry]:
        """Send unused stock back; RETURN out at the source, RETURN in at the destination."""
        self._require_distinct(from_location, to_location)
        planned = self._plan(from_location, lines)
        transaction_id = uuid4()

        entries: list[StockLedgerEntry] = []
        with atomic(self.session):
            for plan in planned:
                for take in plan.takes:
                    entries.extend(
                        self._move_between(
                            take.batch,
                            from_location,
                            to_location,
                            take.base_quantity,
                            TransactionType.RETURN,
                            transaction_id,
                            actor_id,
                            audit,
                        )
                    )

        logger.info(
            "return_recorded",
            extra={
                "txn_id": str(transaction_id),
                "from_location": str(from_location),
                "to_location": str(to_location),
                "entry_count": len(entries),
            },
        )
        return entries

    def record_consumption(
        self,
        *,
        location: Location,
        lines: Sequence[MovementLine],
        actor_id: UUID,
        audit: AuditInfo | None = None,
    ) -> list[StockLedgerEntry]:
        """Consume stock at ``location`` (CONSUMPTION out, FEFO)."""
        planned = self._plan(location, lines)
        transaction_id = uuid4()

        entries: list[StockLedgerEntry] = []
        with atomic(self.session):
            for plan in planned:
                for take in plan.takes:
                    entries.append(
                        self._ledger_service.append_movement(
                            item_id=plan.item.id,
                            batch_id=take.batch.id,
                            location=location,
                            transaction_type=TransactionType.CONSUMPTION,
                            transaction_id=transaction_id,
                            actor_id=actor_id,
                            quantity_out=take.base_quantity,
                            audit=audit,
                        )
                    )

        logger.info(
            "consumption_recorded",
            extra={
                "txn_id": str(transaction_id),
                "location": str(location),
                "entry_count": len(entries),
            },
        )
        return entries

    # =========================================================================
    # Internal Implementation
    # =========================================================================

    @staticmethod
    def _require_distinct(from_location: Location, to_location: Location) -> None:
        if from_location == to_location:
            raise InvalidMovementError(
                f"source and destination are the same location ({from_location})"
            )

    def _number(self, prefix: str) -> str:
        return f"{prefix}-{self._clock.now():%Y%m%d}-{uuid4().hex[:8].upper()}"

    def _plan(self, location: Location, lines: Sequence[MovementLine]) -> list[_PlannedLine]:
        """
        Resolve units and allocate every line FEFO; no writes.

        Raises:
            InvalidMovementError: no lines, or an item requested twice.
            InsufficientStockError: the location cannot cover a line.
        """
        if not lines:
            raise InvalidMovementError("at least one line is required")
        seen: set[UUID] = set()
        for line in lines:
            if line.item_id in seen:
                raise InvalidMovementError(f"item {line.item_id} appears more than once")
            seen.add(line.item_id)

        planned: list[_PlannedLine] = []
        for line in lines:
            item = self._resolver.get_item(line.item_id)
            conversion = self._resolver.resolve_for(item, line.uom or item.base_uom)
            base_quantity = to_storage(conversion.to_base(line.quantity))

            candidates = {
                batch.id: batch
                for batch in self._ledger_service.batches.list_at_location(
                    item.id, location, lock=True
                )
            }
            allocations, shortfall = allocate_fefo(
                base_quantity,
                [batch.to_availability() for batch in candidates.values()],
                self._clock.today(),
                self._exclude_expired,
            )
            if shortfall > 0:
                logger.warning(
                    "insufficient_stock",
                    extra={
                        "item_id": str(item.id),
                        "location": str(location),
                        "requested": base_quantity,
                        "shortfall": shortfall,
                    },
                )
                raise InsufficientStockError(
                    str(item.id),
                    str(location),
                    str(base_quantity),
                    str(base_quantity - shortfall),
                )

            if len(allocations) == 1:
                takes = (
                    _BatchTake(
                        candidates[allocations[0].batch_id],
                        allocations[0].quantity,
                        line.quantity,
                        conversion.from_unit,
                    ),
                )
            else:
                takes = tuple(
                    _BatchTake(
                        candidates[allocation.batch_id],
                        allocation.quantity,
                        to_storage(conversion.from_base(allocation.quantity)),
                        conversion.from_unit,
                    )
                    for allocation in allocations
                )
            planned.append(_PlannedLine(item, conversion, base_quantity, takes))
        return planned

    def _move_between(
        self,
        source_batch: Batch,
        from_location: Location,
        to_location: Location,
        base_quantity: Decimal,
        transaction_type: TransactionType,
        transaction_id: UUID,
        actor_id: UUID,
        audit: AuditInfo | None,
    ) -> tuple[StockLedgerEntry, StockLedgerEntry]:
        """Out at the source batch, in at the matching destination batch."""
        outbound = self._ledger_service.append_movement(
            item_id=source_batch.item_id,
            batch_id=source_batch.id,
            location=from_location,
            transaction_type=transaction_type,
            transaction_id=transaction_id,
            actor_id=actor_id,
            quantity_out=base_quantity,
            audit=audit,
        )
        inbound = self._ledger_service.credit_location(
            source_batch=source_batch,
            destination=to_location,
            quantity=base_quantity,
            transaction_type=transaction_type,
            transaction_id=transaction_id,
            actor_id=actor_id,
            audit=audit,
        )
        return outbound, inbound

    def _load_transfer(self, transfer_id: UUID, target: TransferStatus) -> MaterialTransfer:
        transfer = self.session.execute(
            select(MaterialTransfer)
            .where(MaterialTransfer.id == transfer_id)
            .with_for_update()
        ).scalar_one_or_none()
        if transfer is None:
            raise TransactionNotFoundError(str(transfer_id))

        current = TransferStatus(transfer.status)
        if target not in TRANSFER_TRANSITIONS[current]:
            raise TransferStateError(str(transfer.id), current.value, target.value)
        return transfer
