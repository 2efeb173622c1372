"""
StockLedgerService -- the single write path for batch movements.

Responsibility:
    Pairs every batch balance change with its ledger entry.  A movement
    is validated first, then the batch increment/decrement and the ledger
    append run inside one atomic() scope, so no observer ever sees a
    balance without its entry or an entry without its balance.

Architecture position:
    Kernel > Services.  Consumes BatchRepository and LedgerRepository.
    Used by the movement, reversal and approval services.

Invariants enforced:
    - Exactly one of quantity_in / quantity_out, positive (checked before
      any write).
    - balance_quantity is the batch balance returned by the repository.
    - balance_value is +qty x rate inbound and -qty x rate outbound unless
      the caller supplies an exact value (reversals negate the original).

Failure modes:
    - InvalidMovementError: malformed request, item or location mismatch.
    - BatchNotFoundError: unknown batch.
    - NegativeBalanceError: outbound quantity exceeds the batch balance.
    - BatchConflictError: crediting a location whose batch has another cost.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.db.engine import atomic
from stock_kernel.db.types import to_decimal, to_storage
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.movement import movement_value
from stock_kernel.domain.values import AuditInfo, Location, TransactionType
from stock_kernel.exceptions import BatchConflictError, InvalidMovementError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.batch import Batch
from stock_kernel.models.stock_ledger import StockLedgerEntry
from stock_kernel.repositories.batch_repository import BatchRepository
from stock_kernel.repositories.ledger_repository import LedgerRepository
from stock_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")


class StockLedgerService(BaseService[StockLedgerEntry]):
    """
    Atomic batch update + ledger append.

    Non-goals:
        - Does NOT choose batches (FEFO lives in MaterialMovementService).
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        batches: BatchRepository | None = None,
        ledger: LedgerRepository | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self.batches = batches or BatchRepository(session)
        self.ledger = ledger or LedgerRepository(session, self._clock)

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
        transaction_date: datetime | None = None,
        balance_value: Decimal | None = None,
        reversal_of: UUID | None = None,
        system_generated: bool = False,
    ) -> StockLedgerEntry:
        """
        Apply one movement to a batch and journal it.

        ``rate_per_unit`` defaults to the batch's rate.  Returns the
        persisted (flushed) ledger entry.
        """
        quantity_in = None if quantity_in is None else to_decimal(quantity_in)
        quantity_out = None if quantity_out is None else to_decimal(quantity_out)
        self._validate_sides(quantity_in, quantity_out)

        batch = self.batches.get(batch_id)
        if batch.item_id != item_id:
            raise InvalidMovementError(
                f"batch {batch_id} holds item {batch.item_id}, not {item_id}"
            )
        if batch.location != location:
            raise InvalidMovementError(
                f"batch {batch_id} is held at {batch.location}, not {location}"
            )

        audit = audit or AuditInfo()
        rate = batch.rate_per_unit if rate_per_unit is None else to_decimal(rate_per_unit)
        now = self._clock.now()

        with atomic(self.session):
            if quantity_out is not None:
                new_balance = self.batches.decrement(batch_id, quantity_out, actor_id)
            else:
                new_balance = self.batches.increment(batch_id, quantity_in, actor_id)

            entry = StockLedgerEntry(
                item_id=item_id,
                batch_id=batch_id,
                location_type=location.location_type,
                location_id=location.location_id,
                transaction_type=transaction_type,
                transaction_id=transaction_id,
                transaction_date=transaction_date or now,
                quantity_in=quantity_in,
                quantity_out=quantity_out,
                balance_quantity=new_balance,
                rate_per_unit=rate,
                balance_value=(
                    movement_value(quantity_in, quantity_out, rate)
                    if balance_value is None
                    else to_storage(balance_value)
                ),
                created_by=actor_id,
                created_at=now,
                user_role=audit.user_role,
                ip_address=audit.ip_address,
                user_agent=audit.user_agent,
                session_id=audit.session_id,
                reference_no=audit.reference_no,
                notes=audit.notes,
                system_generated=system_generated,
                reversal_of=reversal_of,
            )
            self.ledger.append(entry)

        logger.info(
            "movement_appended",
            extra={
                "entry_id": str(entry.id),
                "batch_id": str(batch_id),
                "transaction_type": transaction_type.value,
                "txn_id": str(transaction_id),
                "quantity_in": quantity_in,
                "quantity_out": quantity_out,
                "balance_quantity": new_balance,
                "reversal_of": str(reversal_of) if reversal_of else None,
            },
        )
        return entry

    def credit_location(
        self,
        *,
        source_batch: Batch,
        destination: Location,
        quantity: Decimal,
        transaction_type: TransactionType,
        transaction_id: UUID,
        actor_id: UUID,
        audit: AuditInfo | None = None,
    ) -> StockLedgerEntry:
        """
        Receive ``quantity`` of ``source_batch`` at ``destination``.

        Finds the batch with the same item and batch number at the
        destination, or creates it copying cost, gst and dates, then
        appends an inbound movement.

        Raises:
            BatchConflictError: destination batch exists with another rate.
        """
        quantity = to_decimal(quantity)
        with atomic(self.session):
            destination_batch = self.batches.find_at_location(
                source_batch.item_id, source_batch.batch_no, destination
            )
            if destination_batch is None:
                destination_batch = self.batches.create(
                    item_id=source_batch.item_id,
                    batch_no=source_batch.batch_no,
                    location=destination,
                    initial_qty=quantity,
                    rate_per_unit=source_batch.rate_per_unit,
                    gst_percentage=source_batch.gst_percentage,
                    mfg_date=source_batch.mfg_date,
                    expiry_date=source_batch.expiry_date,
                    actor_id=actor_id,
                )
            elif destination_batch.rate_per_unit != source_batch.rate_per_unit:
                raise BatchConflictError(
                    source_batch.batch_no,
                    str(destination),
                    str(destination_batch.rate_per_unit),
                    str(source_batch.rate_per_unit),
                )

            return self.append_movement(
                item_id=source_batch.item_id,
                batch_id=destination_batch.id,
                location=destination,
                transaction_type=transaction_type,
                transaction_id=transaction_id,
                actor_id=actor_id,
                quantity_in=quantity,
                rate_per_unit=source_batch.rate_per_unit,
                audit=audit,
            )

    @staticmethod
    def _validate_sides(quantity_in: Decimal | None, quantity_out: Decimal | None) -> None:
        if (quantity_in is None) == (quantity_out is None):
            raise InvalidMovementError(
                "exactly one of quantity_in / quantity_out must be set"
            )
        quantity = quantity_in if quantity_in is not None else quantity_out
        if quantity <= 0:
            raise InvalidMovementError(f"movement quantity must be positive, got {quantity}")
