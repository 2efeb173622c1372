"""FEFO allocation and movement valuation (pure domain)."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.movement import (
    BatchAvailability,
    MovementLine,
    allocate_fefo,
    movement_value,
)

TODAY = date(2024, 6, 1)


def _batch(batch_no, qty, expiry=None, received=None):
    return BatchAvailability(
        batch_id=uuid4(),
        batch_no=batch_no,
        available_qty=Decimal(qty),
        expiry_date=expiry,
        received_at=received,
    )


class TestAllocateFefo:

    def test_earliest_expiry_consumed_first(self):
        late = _batch("LATE", "50", expiry=date(2025, 1, 1))
        soon = _batch("SOON", "30", expiry=date(2024, 7, 1))

        allocations, shortfall = allocate_fefo(Decimal("40"), [late, soon], TODAY)

        assert [(a.batch_no, a.quantity) for a in allocations] == [
            ("SOON", Decimal("30")),
            ("LATE", Decimal("10")),
        ]
        assert shortfall == 0

    def test_undated_batches_last(self):
        undated = _batch("NONE", "10")
        dated = _batch("DATED", "10", expiry=date(2030, 1, 1))

        allocations, _ = allocate_fefo(Decimal("5"), [undated, dated], TODAY)

        assert allocations[0].batch_no == "DATED"

    def test_ties_broken_by_receipt_time(self):
        older = _batch("B2", "10", received=datetime(2024, 1, 1, tzinfo=timezone.utc))
        newer = _batch("B1", "10", received=datetime(2024, 2, 1, tzinfo=timezone.utc))

        allocations, _ = allocate_fefo(Decimal("5"), [newer, older], TODAY)

        assert allocations[0].batch_no == "B2"

    def test_expired_batches_skipped(self):
        expired = _batch("OLD", "100", expiry=date(2024, 5, 31))
        fresh = _batch("NEW", "10", expiry=date(2024, 12, 31))

        allocations, shortfall = allocate_fefo(Decimal("15"), [expired, fresh], TODAY)

        assert [a.batch_no for a in allocations] == ["NEW"]
        assert shortfall == Decimal("5")

    def test_expired_batches_usable_when_allowed(self):
        expired = _batch("OLD", "100", expiry=date(2024, 5, 31))

        allocations, shortfall = allocate_fefo(
            Decimal("15"), [expired], TODAY, exclude_expired=False
        )

        assert allocations[0].quantity == Decimal("15")
        assert shortfall == 0

    def test_expiring_today_is_not_expired(self):
        today = _batch("TODAY", "10", expiry=TODAY)

        allocations, _ = allocate_fefo(Decimal("1"), [today], TODAY)

        assert allocations[0].batch_no == "TODAY"

    def test_empty_batches_ignored(self):
        allocations, shortfall = allocate_fefo(Decimal("1"), [_batch("EMPTY", "0")], TODAY)

        assert allocations == []
        assert shortfall == Decimal("1")


class TestMovementValue:

    def test_inbound_positive(self):
        assert movement_value(Decimal("5"), None, Decimal("2.5")) == Decimal("12.5")

    def test_outbound_negative(self):
        assert movement_value(None, Decimal("5"), Decimal("2.5")) == Decimal("-12.5")


class TestMovementLine:

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValueError):
            MovementLine(uuid4(), Decimal("0"))
