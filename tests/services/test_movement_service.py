"""
MaterialMovementService: receipts, FEFO issues, transfers, returns and
consumption.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.approval import ApprovalStatus
from stock_kernel.domain.movement import MovementLine, TransferStatus
from stock_kernel.domain.values import TransactionType
from stock_kernel.exceptions import (
    BatchConflictError,
    ConversionNotFoundError,
    InsufficientStockError,
    InvalidMovementError,
    ItemNotFoundError,
    TransactionNotFoundError,
    TransferStateError,
)


class TestReceipt:

    def test_receipt_converts_to_base_unit(
        self, movement_service, ledger_service, coolant, company, test_actor_id
    ):
        entry = movement_service.record_receipt(
            location=company,
            item_id=coolant.id,
            batch_no="B-9",
            quantity=Decimal("2.5"),
            uom="L",
            rate_per_unit=Decimal("2"),
            gst_percentage=Decimal("18"),
            expiry_date=date(2025, 1, 31),
            actor_id=test_actor_id,
        )

        batch = ledger_service.batches.get(entry.batch_id)
        assert entry.transaction_type is TransactionType.RECEIPT
        assert entry.quantity_in == Decimal("2500")
        assert entry.balance_value == Decimal("5000")
        assert batch.initial_qty == Decimal("2500")
        assert batch.current_qty == Decimal("2500")
        assert batch.expiry_date == date(2025, 1, 31)

    def test_receipt_tops_up_matching_batch(self, coolant, company, receive):
        first = receive(coolant, company, 100)
        second = receive(coolant, company, 50)

        assert first.id == second.id
        assert first.current_qty == Decimal("150")

    def test_receipt_with_different_rate_refused(self, coolant, company, receive):
        receive(coolant, company, 100, rate="2")

        with pytest.raises(BatchConflictError):
            receive(coolant, company, 50, rate="2.10")

    def test_blank_batch_number_refused(self, coolant, company, receive):
        with pytest.raises(InvalidMovementError):
            receive(coolant, company, 100, batch_no="  ")

    def test_unknown_unit_refused(self, coolant, company, receive):
        with pytest.raises(ConversionNotFoundError):
            receive(coolant, company, 1, uom="GALLON")

    def test_unknown_item(self, movement_service, company, test_actor_id):
        with pytest.raises(ItemNotFoundError):
            movement_service.record_receipt(
                location=company,
                item_id=uuid4(),
                batch_no="X",
                quantity=Decimal("1"),
                rate_per_unit=Decimal("1"),
                actor_id=test_actor_id,
            )


class TestIssue:

    def test_issue_consumes_earliest_expiry_first(
        self, coolant, company, technician, receive, issue
    ):
        late = receive(coolant, company, 5000, batch_no="LATE", expiry_date=date(2025, 6, 1))
        soon = receive(coolant, company, 3000, batch_no="SOON", expiry_date=date(2024, 9, 1))

        material_issue = issue(company, technician, [(coolant, 4, "L")])

        shares = {line.batch_id: line for line in material_issue.items}
        assert soon.current_qty == Decimal("0")
        assert late.current_qty == Decimal("4000")
        assert shares[soon.id].base_quantity == Decimal("3000")
        assert shares[soon.id].quantity == Decimal("3")
        assert shares[late.id].base_quantity == Decimal("1000")
        assert shares[late.id].quantity == Decimal("1")
        assert {line.uom for line in material_issue.items} == {"L"}

    def test_expired_batches_skipped(self, coolant, company, technician, receive, issue):
        expired = receive(coolant, company, 9000, batch_no="OLD", expiry_date=date(2024, 5, 1))
        fresh = receive(coolant, company, 2000, batch_no="NEW", expiry_date=date(2025, 5, 1))

        material_issue = issue(company, technician, [(coolant, 1, "L")])

        [line] = material_issue.items
        assert line.batch_id == fresh.id
        assert expired.current_qty == Decimal("9000")

    def test_batch_expires_as_clock_moves(
        self, coolant, company, technician, receive, issue, deterministic_clock
    ):
        receive(coolant, company, 2000, batch_no="DAY", expiry_date=date(2024, 6, 1))
        deterministic_clock.advance(timedelta(days=1))

        with pytest.raises(InsufficientStockError):
            issue(company, technician, [(coolant, 1, "L")])

    def test_issue_is_pending_with_numbered_entries(
        self, ledger_selector, coolant, company, technician, receive, issue
    ):
        receive(coolant, company, 10000)

        material_issue = issue(company, technician, [(coolant, 4, "L")])

        assert material_issue.status is ApprovalStatus.PENDING
        assert material_issue.issue_no.startswith("MI-20240601-")
        [entry] = ledger_selector.by_transaction(material_issue.id)
        assert entry.transaction_type is TransactionType.ISSUE
        assert entry.quantity_out == Decimal("4000")
        assert entry.reference_no == material_issue.issue_no

    def test_shortfall_touches_nothing(
        self, ledger_selector, coolant, company, technician, receive, issue
    ):
        batch = receive(coolant, company, 3000)

        with pytest.raises(InsufficientStockError) as exc_info:
            issue(company, technician, [(coolant, 4, "L")])

        assert Decimal(exc_info.value.available_quantity) == Decimal("3000")
        assert batch.current_qty == Decimal("3000")
        assert len(ledger_selector.by_batch(batch.id)) == 1

    def test_same_location_refused(self, coolant, company, receive, issue):
        receive(coolant, company, 3000)

        with pytest.raises(InvalidMovementError):
            issue(company, company, [(coolant, 1, "L")])

    def test_duplicate_item_refused(self, coolant, company, technician, receive, issue):
        receive(coolant, company, 3000)

        with pytest.raises(InvalidMovementError):
            issue(company, technician, [(coolant, 1, "L"), (coolant, 500, "ML")])

    def test_no_lines_refused(self, movement_service, company, technician, test_actor_id):
        with pytest.raises(InvalidMovementError):
            movement_service.issue_material(
                from_location=company,
                to_location=technician,
                lines=[],
                actor_id=test_actor_id,
            )


class TestTransfer:

    def test_transfer_moves_stock_immediately(
        self, movement_service, ledger_selector, batch_selector, coolant, company, branch,
        receive, test_actor_id,
    ):
        source = receive(coolant, company, 10000)

        transfer = movement_service.transfer_material(
            from_location=company,
            to_location=branch,
            lines=[MovementLine(coolant.id, Decimal("2"), "L")],
            actor_id=test_actor_id,
        )

        assert transfer.status is TransferStatus.PENDING
        assert transfer.transfer_no.startswith("MT-")
        assert source.current_qty == Decimal("8000")
        [destination] = batch_selector.at_location(branch, coolant.id)
        assert destination.current_qty == Decimal("2000")
        [item] = transfer.items
        assert item.destination_batch_id == destination.id

        entries = ledger_selector.by_transaction(transfer.id)
        assert {e.transaction_type for e in entries} == {TransactionType.TRANSFER}
        assert sorted(e.balance_value for e in entries) == [Decimal("-4000"), Decimal("4000")]

    def test_complete_then_cancel_refused(
        self, movement_service, coolant, company, branch, receive, test_actor_id
    ):
        receive(coolant, company, 10000)
        transfer = movement_service.transfer_material(
            from_location=company,
            to_location=branch,
            lines=[MovementLine(coolant.id, Decimal("1000"))],
            actor_id=test_actor_id,
        )

        completed = movement_service.complete_transfer(transfer.id, test_actor_id)
        assert completed.status is TransferStatus.COMPLETED

        with pytest.raises(TransferStateError):
            movement_service.cancel_transfer(transfer.id, "too late", test_actor_id)

    def test_cancel_reverses_both_sides(
        self, movement_service, ledger_selector, batch_selector, coolant, company, branch,
        receive, test_actor_id,
    ):
        source = receive(coolant, company, 10000)
        transfer = movement_service.transfer_material(
            from_location=company,
            to_location=branch,
            lines=[MovementLine(coolant.id, Decimal("1000"))],
            actor_id=test_actor_id,
        )

        cancelled = movement_service.cancel_transfer(transfer.id, "wrong branch", test_actor_id)

        assert cancelled.status is TransferStatus.CANCELLED
        assert cancelled.cancellation_reason == "wrong branch"
        assert source.current_qty == Decimal("10000")
        assert batch_selector.at_location(branch) == []
        assert len(ledger_selector.reversal_history(transfer.id)) == 2

    def test_unknown_transfer(self, movement_service, test_actor_id):
        with pytest.raises(TransactionNotFoundError):
            movement_service.complete_transfer(uuid4(), test_actor_id)


class TestReturnAndConsumption:

    def test_return_pairs_out_and_in(
        self, movement_service, batch_selector, coolant, company, technician, receive,
        test_actor_id,
    ):
        receive(coolant, technician, 800)

        entries = movement_service.record_return(
            from_location=technician,
            to_location=company,
            lines=[MovementLine(coolant.id, Decimal("300"))],
            actor_id=test_actor_id,
        )

        outbound, inbound = entries
        assert outbound.transaction_type is TransactionType.RETURN
        assert outbound.quantity_out == Decimal("300")
        assert inbound.quantity_in == Decimal("300")
        assert outbound.transaction_id == inbound.transaction_id
        [returned] = batch_selector.at_location(company, coolant.id)
        assert returned.current_qty == Decimal("300")

    def test_consumption_draws_fefo(
        self, movement_service, coolant, technician, receive, test_actor_id
    ):
        soon = receive(coolant, technician, 100, batch_no="A", expiry_date=date(2024, 8, 1))
        late = receive(coolant, technician, 100, batch_no="B", expiry_date=date(2024, 12, 1))

        entries = movement_service.record_consumption(
            location=technician,
            lines=[MovementLine(coolant.id, Decimal("150"))],
            actor_id=test_actor_id,
        )

        assert [e.batch_id for e in entries] == [soon.id, late.id]
        assert all(e.transaction_type is TransactionType.CONSUMPTION for e in entries)
        assert soon.current_qty == Decimal("0")
        assert late.current_qty == Decimal("50")
