"""
Tests for net-worth history summaries.
"""

from datetime import date
from decimal import Decimal

from networth.analytics.history import summarize_history
from networth.models import BalanceSheet, PeriodicSnapshot


def _snapshot(period_date: date, net_worth: str) -> PeriodicSnapshot:
    sheet = BalanceSheet(base_currency="CNY", securities_value_base=Decimal(net_worth))
    return PeriodicSnapshot.from_balance_sheet(sheet, period_date)


class TestSummarizeHistory:
    """Tests for summarize_history."""

    def test_empty(self):
        summary = summarize_history([])

        assert summary.record_count == 0
        assert summary.start_date is None
        assert summary.change == Decimal("0")

    def test_single_record(self):
        summary = summarize_history([_snapshot(date(2024, 6, 1), "1000")])

        assert summary.record_count == 1
        assert summary.start_date == summary.end_date == date(2024, 6, 1)
        assert summary.change == Decimal("0")
        assert summary.average_change == Decimal("0")

    def test_change_over_range(self):
        summary = summarize_history([
            _snapshot(date(2024, 6, 3), "1200"),
            _snapshot(date(2024, 6, 1), "1000"),
            _snapshot(date(2024, 6, 2), "900"),
        ])

        assert summary.record_count == 3
        assert summary.start_date == date(2024, 6, 1)
        assert summary.end_date == date(2024, 6, 3)
        assert summary.start_net_worth == Decimal("1000")
        assert summary.end_net_worth == Decimal("1200")
        assert summary.change == Decimal("200")
        assert summary.change_pct == Decimal("20")
        assert summary.average_change.quantize(Decimal("0.01")) == Decimal("66.67")

    def test_average_change_is_per_record(self):
        summary = summarize_history([
            _snapshot(date(2024, 6, 1), "100"),
            _snapshot(date(2024, 6, 2), "200"),
        ])
        assert summary.average_change == Decimal("50")

    def test_non_positive_start_has_no_percentage(self):
        summary = summarize_history([
            _snapshot(date(2024, 6, 1), "0"),
            _snapshot(date(2024, 6, 2), "500"),
        ])
        assert summary.change == Decimal("500")
        assert summary.change_pct == Decimal("0")


class TestSnapshotFromBalanceSheet:
    """Tests for PeriodicSnapshot.from_balance_sheet."""

    def test_period_id_defaults_to_iso_date(self):
        snapshot = _snapshot(date(2024, 6, 30), "10")
        assert snapshot.period_id == "2024-06-30"

    def test_explicit_period_id(self):
        sheet = BalanceSheet(base_currency="CNY")
        snapshot = PeriodicSnapshot.from_balance_sheet(sheet, date(2024, 6, 30), "2024-Q2")
        assert snapshot.period_id == "2024-Q2"

    def test_net_worth_includes_debt(self):
        sheet = BalanceSheet(
            base_currency="CNY",
            securities_value_base=Decimal("100"),
            total_cash_base=Decimal("50"),
            total_debt_base=Decimal("30"),
            composition_pct={"securities": Decimal("66.67"), "cash": Decimal("33.33")},
        )
        snapshot = PeriodicSnapshot.from_balance_sheet(sheet, date(2024, 6, 30))

        assert snapshot.total_net_worth_base == Decimal("120")
        assert snapshot.securities_pct == Decimal("66.67")
        assert snapshot.funds_pct == Decimal("0")
