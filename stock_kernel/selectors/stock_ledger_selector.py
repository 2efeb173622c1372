"""
Module: stock_kernel.selectors.stock_ledger_selector
Responsibility: Read-only stock ledger queries, movement history,
    audit summaries, reconciliation and valuation.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/dtos and selectors/base.py.

Invariants verified:
    - Reconciliation: for every batch, current_qty equals
      sum(quantity_in) - sum(quantity_out) over its ledger entries.
      reconcile_batch() / reconcile_all() report any difference; they never
      repair it.

Failure modes:
    - BatchNotFoundError from reconcile_batch() for an unknown batch.
    - Empty results when nothing matches.

Audit relevance:
    Quantities are stored as exact decimal text on SQLite, so sums and
    comparisons are done in Python over Decimal values, never in SQL.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stock_kernel.domain.dtos import LedgerEntryRecord
from stock_kernel.domain.values import Location, LocationType, TransactionType
from stock_kernel.exceptions import BatchNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.batch import Batch
from stock_kernel.models.stock_ledger import StockLedgerEntry
from stock_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.stock_ledger")

_ZERO = Decimal(0)


@dataclass(frozen=True)
class MovementPage:
    """One page of movement history plus the unpaged total."""

    entries: tuple[LedgerEntryRecord, ...]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.entries) < self.total


@dataclass(frozen=True)
class AuditSummaryRow:
    transaction_type: TransactionType
    created_by: UUID
    entry_count: int
    total_in: Decimal
    total_out: Decimal
    total_value: Decimal


@dataclass(frozen=True)
class BatchReconciliation:
    batch_id: UUID
    batch_no: str
    current_qty: Decimal
    ledger_in: Decimal
    ledger_out: Decimal

    @property
    def ledger_qty(self) -> Decimal:
        return self.ledger_in - self.ledger_out

    @property
    def difference(self) -> Decimal:
        return self.current_qty - self.ledger_qty

    @property
    def is_balanced(self) -> bool:
        return self.difference == 0


@dataclass(frozen=True)
class ReconciliationReport:
    batches_checked: int
    mismatches: tuple[BatchReconciliation, ...]

    @property
    def is_balanced(self) -> bool:
        return not self.mismatches


@dataclass(frozen=True)
class BatchValuation:
    batch_id: UUID
    item_id: UUID
    batch_no: str
    location_type: LocationType
    location_id: UUID
    current_qty: Decimal
    rate_per_unit: Decimal

    @property
    def value(self) -> Decimal:
        return self.current_qty * self.rate_per_unit


@dataclass(frozen=True)
class StockValuation:
    batches: tuple[BatchValuation, ...]

    @property
    def total_value(self) -> Decimal:
        return sum((b.value for b in self.batches), _ZERO)


class StockLedgerSelector(BaseSelector[StockLedgerEntry]):
    """
    Selector for the stock ledger.

    Contract:
        Entries come back as LedgerEntryRecord DTOs in journal order
        (created_at, then transaction_date).
    """

    _ORDER = (StockLedgerEntry.created_at, StockLedgerEntry.transaction_date)

    def __init__(self, session: Session):
        super().__init__(session)

    # -------------------------------------------------------------------------
    # Entry lookups
    # -------------------------------------------------------------------------

    def by_transaction(self, transaction_id: UUID) -> list[LedgerEntryRecord]:
        return self._records(
            select(StockLedgerEntry).where(StockLedgerEntry.transaction_id == transaction_id)
        )

    def by_batch(self, batch_id: UUID) -> list[LedgerEntryRecord]:
        return self._records(
            select(StockLedgerEntry).where(StockLedgerEntry.batch_id == batch_id)
        )

    def by_reversal_of(self, entry_id: UUID) -> LedgerEntryRecord | None:
        entry = self.session.execute(
            select(StockLedgerEntry).where(StockLedgerEntry.reversal_of == entry_id)
        ).scalar_one_or_none()
        return entry.to_dto() if entry is not None else None

    def reversal_history(self, transaction_id: UUID) -> list[LedgerEntryRecord]:
        """Reversal entries appended against the transaction's originals."""
        return self._records(
            select(StockLedgerEntry).where(
                StockLedgerEntry.transaction_id == transaction_id,
                StockLedgerEntry.reversal_of.is_not(None),
            )
        )

    def movement_history(
        self,
        item_id: UUID,
        location: Location | None = None,
        transaction_type: TransactionType | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> MovementPage:
        """
        Paginated movements of one item, newest first.

        Args:
            item_id: Item whose movements are listed.
            location: Only movements at this location.
            transaction_type: Only this transaction type.
            date_from: Inclusive lower bound on transaction_date.
            date_to: Inclusive upper bound on transaction_date.
            limit: Page size (must be positive).
            offset: Rows to skip.
        """
        if limit <= 0 or offset < 0:
            raise ValueError("limit must be positive and offset non-negative")

        conditions = [StockLedgerEntry.item_id == item_id]
        if location is not None:
            conditions.append(StockLedgerEntry.location_type == location.location_type)
            conditions.append(StockLedgerEntry.location_id == location.location_id)
        if transaction_type is not None:
            conditions.append(StockLedgerEntry.transaction_type == transaction_type)
        if date_from is not None:
            conditions.append(StockLedgerEntry.transaction_date >= date_from)
        if date_to is not None:
            conditions.append(StockLedgerEntry.transaction_date <= date_to)

        total = self.session.execute(
            select(func.count()).select_from(StockLedgerEntry).where(*conditions)
        ).scalar_one()
        rows = self.session.execute(
            select(StockLedgerEntry)
            .where(*conditions)
            .order_by(
                StockLedgerEntry.created_at.desc(),
                StockLedgerEntry.transaction_date.desc(),
            )
            .limit(limit)
            .offset(offset)
        ).scalars()

        return MovementPage(
            entries=tuple(entry.to_dto() for entry in rows),
            total=total,
            limit=limit,
            offset=offset,
        )

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    def audit_summary(
        self,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> list[AuditSummaryRow]:
        """Entry counts and summed quantities/values per (type, actor)."""
        stmt = select(StockLedgerEntry)
        if date_from is not None:
            stmt = stmt.where(StockLedgerEntry.transaction_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(StockLedgerEntry.transaction_date <= date_to)

        groups: dict[tuple[TransactionType, UUID], list[StockLedgerEntry]] = defaultdict(list)
        for entry in self.session.execute(stmt).scalars():
            groups[(TransactionType(entry.transaction_type), entry.created_by)].append(entry)

        rows = [
            AuditSummaryRow(
                transaction_type=txn_type,
                created_by=actor,
                entry_count=len(entries),
                total_in=sum((e.quantity_in or _ZERO for e in entries), _ZERO),
                total_out=sum((e.quantity_out or _ZERO for e in entries), _ZERO),
                total_value=sum((e.balance_value for e in entries), _ZERO),
            )
            for (txn_type, actor), entries in groups.items()
        ]
        return sorted(rows, key=lambda r: (r.transaction_type.value, str(r.created_by)))

    def reconcile_batch(self, batch_id: UUID) -> BatchReconciliation:
        batch = self.session.get(Batch, batch_id)
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        entries = self.session.execute(
            select(StockLedgerEntry).where(StockLedgerEntry.batch_id == batch_id)
        ).scalars()
        return self._reconcile(batch, list(entries))

    def reconcile_all(self, location: Location | None = None) -> ReconciliationReport:
        """Reconcile every batch (optionally at one location)."""
        batch_stmt = select(Batch)
        entry_stmt = select(StockLedgerEntry)
        if location is not None:
            batch_stmt = batch_stmt.where(
                Batch.location_type == location.location_type,
                Batch.location_id == location.location_id,
            )
            entry_stmt = entry_stmt.where(
                StockLedgerEntry.location_type == location.location_type,
                StockLedgerEntry.location_id == location.location_id,
            )

        by_batch: dict[UUID, list[StockLedgerEntry]] = defaultdict(list)
        for entry in self.session.execute(entry_stmt).scalars():
            by_batch[entry.batch_id].append(entry)

        batches = list(self.session.execute(batch_stmt).scalars())
        results = [self._reconcile(batch, by_batch.get(batch.id, [])) for batch in batches]
        mismatches = tuple(r for r in results if not r.is_balanced)

        if mismatches:
            logger.error(
                "reconciliation_mismatch",
                extra={
                    "batches_checked": len(results),
                    "mismatched_batch_ids": [str(m.batch_id) for m in mismatches],
                },
            )
        return ReconciliationReport(batches_checked=len(results), mismatches=mismatches)

    def stock_valuation(
        self,
        location: Location | None = None,
        item_id: UUID | None = None,
    ) -> StockValuation:
        """current_qty x rate_per_unit for every batch holding stock."""
        stmt = select(Batch)
        if location is not None:
            stmt = stmt.where(
                Batch.location_type == location.location_type,
                Batch.location_id == location.location_id,
            )
        if item_id is not None:
            stmt = stmt.where(Batch.item_id == item_id)

        batches = [
            BatchValuation(
                batch_id=b.id,
                item_id=b.item_id,
                batch_no=b.batch_no,
                location_type=LocationType(b.location_type),
                location_id=b.location_id,
                current_qty=b.current_qty,
                rate_per_unit=b.rate_per_unit,
            )
            for b in self.session.execute(stmt.order_by(Batch.batch_no)).scalars()
            if b.current_qty > 0
        ]
        return StockValuation(batches=tuple(batches))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _records(self, stmt) -> list[LedgerEntryRecord]:
        return [e.to_dto() for e in self.session.execute(stmt.order_by(*self._ORDER)).scalars()]

    @staticmethod
    def _reconcile(batch: Batch, entries: list[StockLedgerEntry]) -> BatchReconciliation:
        return BatchReconciliation(
            batch_id=batch.id,
            batch_no=batch.batch_no,
            current_qty=batch.current_qty,
            ledger_in=sum((e.quantity_in or _ZERO for e in entries), _ZERO),
            ledger_out=sum((e.quantity_out or _ZERO for e in entries), _ZERO),
        )
