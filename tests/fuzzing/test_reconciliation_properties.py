"""
Property tests: the store reconciles after any sequence of movements.

Random receipts, consumptions and issues (each issue then approved,
rejected or partially accepted) are applied to one item across three
batches.  After every sequence:

- every batch's current_qty equals sum(in) - sum(out) of its entries
- no batch balance is negative
- the total quantity across locations equals receipts minus consumption

Each example runs in its own connection and outer transaction, rolled
back at the end, so examples never see each other's rows.
"""

from contextlib import contextmanager
from datetime import datetime, UTC
from decimal import Decimal
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy.orm import Session

from stock_kernel.domain.approval import ApprovalItemStatus, ItemDecision
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.domain.movement import MovementLine
from stock_kernel.domain.values import Location, LocationType
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.models.approval import MaterialApprovalItem
from stock_kernel.selectors.batch_selector import BatchSelector
from stock_kernel.selectors.stock_ledger_selector import StockLedgerSelector
from stock_kernel.services.approval_service import MaterialApprovalService
from stock_kernel.services.item_service import ItemService
from stock_kernel.services.movement_service import MaterialMovementService
from stock_kernel.services.reversal_service import ReversalService
from stock_kernel.services.stock_ledger_service import StockLedgerService
from stock_kernel.services.uom_resolver import UomConversionResolver

NOW = datetime(2024, 6, 1, 9, 0, tzinfo=UTC)

receipts = st.tuples(st.just("receive"), st.integers(0, 2), st.integers(1, 50))
consumptions = st.tuples(st.just("consume"), st.just(0), st.integers(1, 60))
issues = st.tuples(
    st.sampled_from(["approve", "reject", "partial"]), st.just(0), st.integers(1, 40)
)
operations = st.lists(st.one_of(receipts, consumptions, issues), min_size=1, max_size=12)


@contextmanager
def _isolated_session(engine):
    conn = engine.connect()
    trans = conn.begin()
    session = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    try:
        yield session
    finally:
        session.close()
        trans.rollback()
        conn.close()


class TestReconciliationProperties:

    @settings(
        max_examples=30,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    @given(ops=operations)
    def test_store_always_reconciles(self, db_engine, ops):
        with _isolated_session(db_engine) as session:
            actor = uuid4()
            store = Location(LocationType.COMPANY, uuid4())
            technician = Location(LocationType.TECHNICIAN, uuid4())

            clock = DeterministicClock(NOW)
            resolver = UomConversionResolver(session)
            ledger = StockLedgerService(session, clock)
            reversals = ReversalService(session, clock, ledger)
            approvals = MaterialApprovalService(session, clock, resolver, ledger, reversals)
            movements = MaterialMovementService(
                session, clock, resolver, ledger, approvals, reversals
            )
            item = ItemService(session).register_item(
                name="Bolt", category="Hardware", base_uom="PC", actor_id=actor
            )

            received = Decimal(0)
            consumed = Decimal(0)
            for kind, batch_idx, qty in ops:
                quantity = Decimal(qty)
                if kind == "receive":
                    movements.record_receipt(
                        location=store,
                        item_id=item.id,
                        batch_no=f"B-{batch_idx}",
                        quantity=quantity,
                        rate_per_unit=Decimal(batch_idx + 1),
                        actor_id=actor,
                    )
                    received += quantity
                elif kind == "consume":
                    try:
                        movements.record_consumption(
                            location=store,
                            lines=[MovementLine(item.id, quantity)],
                            actor_id=actor,
                        )
                    except InsufficientStockError:
                        continue
                    consumed += quantity
                else:
                    try:
                        issue = movements.issue_material(
                            from_location=store,
                            to_location=technician,
                            lines=[MovementLine(item.id, quantity)],
                            actor_id=actor,
                        )
                    except InsufficientStockError:
                        continue
                    _decide(approvals, issue, kind, actor)

            selector = StockLedgerSelector(session)
            report = selector.reconcile_all()
            assert report.is_balanced, report.mismatches

            batches = []
            for location in (store, technician):
                batches.extend(
                    BatchSelector(session).at_location(location, item.id, include_empty=True)
                )
            assert all(b.current_qty >= 0 for b in batches)

            on_hand = sum((b.current_qty for b in batches), Decimal(0))
            shrinkage = sum(
                (
                    line.original_quantity - line.approved_quantity
                    for line in _approved_lines(session)
                ),
                Decimal(0),
            )
            assert on_hand == received - consumed - shrinkage


def _decide(approvals, issue, kind, actor):
    lines = list(issue.approval.items)
    if kind == "approve":
        approvals.approve_issue(issue.id, actor)
    elif kind == "reject":
        approvals.reject_issue(issue.id, actor, rejection_reason="fuzz")
    else:
        # First line approved at half (at least 1), the rest rejected
        first, rest = lines[0], lines[1:]
        half = max(Decimal(1), (first.original_quantity / 2).to_integral_value())
        decisions = [ItemDecision.approve(first.id, half)]
        decisions += [ItemDecision.reject(line.id, "fuzz") for line in rest]
        approvals.partial_accept_issue(issue.id, actor, decisions)


def _approved_lines(session):
    return (
        session.query(MaterialApprovalItem)
        .filter(MaterialApprovalItem.status == ApprovalItemStatus.APPROVED)
        .all()
    )
