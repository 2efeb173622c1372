"""BatchSelector: FEFO availability and expiry windows."""

from datetime import date

import pytest


class TestFefoAvailable:

    def test_ordering_and_expiry_filter(self, batch_selector, coolant, company, receive):
        receive(coolant, company, 10, batch_no="UNDATED")
        receive(coolant, company, 10, batch_no="LATE", expiry_date=date(2025, 1, 1))
        receive(coolant, company, 10, batch_no="SOON", expiry_date=date(2024, 7, 1))
        receive(coolant, company, 10, batch_no="GONE", expiry_date=date(2024, 1, 1))

        available = batch_selector.fefo_available(coolant.id, company, date(2024, 6, 1))
        everything = batch_selector.fefo_available(
            coolant.id, company, date(2024, 6, 1), exclude_expired=False
        )

        assert [b.batch_no for b in available] == ["SOON", "LATE", "UNDATED"]
        assert [b.batch_no for b in everything] == ["GONE", "SOON", "LATE", "UNDATED"]


class TestExpiringWithin:

    def test_window(self, batch_selector, coolant, company, branch, receive):
        receive(coolant, company, 10, batch_no="IN", expiry_date=date(2024, 6, 20))
        receive(coolant, company, 10, batch_no="OUT", expiry_date=date(2024, 9, 1))
        receive(coolant, branch, 10, batch_no="ELSEWHERE", expiry_date=date(2024, 6, 10))

        expiring = batch_selector.expiring_within(30, date(2024, 6, 1))
        at_company = batch_selector.expiring_within(30, date(2024, 6, 1), location=company)

        assert [b.batch_no for b in expiring] == ["ELSEWHERE", "IN"]
        assert [b.batch_no for b in at_company] == ["IN"]

    def test_negative_days_refused(self, batch_selector):
        with pytest.raises(ValueError):
            batch_selector.expiring_within(-1, date(2024, 6, 1))
