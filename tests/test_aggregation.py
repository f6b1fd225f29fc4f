"""
Tests for cross-account aggregation.
"""

from decimal import Decimal

from networth.models import TreatmentPolicy
from networth.portfolio.aggregation import (
    aggregate_holdings,
    group_holdings,
    weighted_average_cost,
)
from networth.portfolio.normalizer import normalize_holdings


def _normalize(holdings):
    return normalize_holdings(holdings, "CNY").holdings


class TestWeightedAverageCost:
    """Tests for weighted_average_cost."""

    def test_two_lots(self, make_holding):
        rows = _normalize([
            make_holding("AAPL", "100", "10", account="A"),
            make_holding("AAPL", "50", "20", account="B"),
        ])
        quantity, cost, avg = weighted_average_cost(rows)

        assert quantity == Decimal("150")
        assert cost == Decimal("2000")
        assert abs(avg - Decimal("13.3333")) < Decimal("0.0001")

    def test_empty(self):
        assert weighted_average_cost([]) == (Decimal("0"), Decimal("0"), Decimal("0"))


class TestAggregateHoldings:
    """Tests for aggregate_holdings."""

    def test_merges_across_accounts(self, make_holding):
        result = aggregate_holdings(_normalize([
            make_holding("AAPL", "100", "10", account="A", display_name="Apple"),
            make_holding("aapl", "50", "20", account="B", display_name="Apple Inc"),
        ]))

        assert len(result) == 1
        holding = result[0]
        assert holding.canonical_id == "AAPL"
        assert holding.total_quantity == Decimal("150")
        assert holding.total_cost_original == Decimal("2000")
        assert holding.account_count == 2
        assert holding.treatment == TreatmentPolicy.STANDARD

    def test_display_name_is_lexicographic_max(self, make_holding):
        result = aggregate_holdings(_normalize([
            make_holding("AAPL", "1", account="A", display_name="Apple"),
            make_holding("AAPL", "1", account="B", display_name="Apple Inc"),
            make_holding("AAPL", "1", account="C", display_name=""),
        ]))
        assert result[0].display_name == "Apple Inc"

    def test_same_account_counted_once(self, make_holding):
        result = aggregate_holdings(_normalize([
            make_holding("AAPL", "1", account="A"),
            make_holding("AAPL", "2", account="A"),
        ]))
        assert result[0].account_count == 1
        assert result[0].total_quantity == Decimal("3")

    def test_face_value_collapse(self, make_holding):
        """Different bill codes merge into one position carried at 1.0 per unit."""
        result = aggregate_holdings(_normalize([
            make_holding("TF Float A", "1000", "0.98", account="A"),
            make_holding("US_TBill", "500", "99.5", account="B"),
        ]))

        assert len(result) == 1
        bills = result[0]
        assert bills.canonical_id == "US_TBILL"
        assert bills.display_name == "US Treasury Bills Aggregate"
        assert bills.treatment == TreatmentPolicy.FACE_VALUE
        assert bills.total_quantity == Decimal("1500")
        assert bills.avg_cost_per_unit == Decimal("1")
        assert bills.total_cost_original == Decimal("1500")
        assert bills.account_count == 2

    def test_currency_split(self, make_holding):
        """The same instrument in two currencies gives two rows."""
        result = aggregate_holdings(_normalize([
            make_holding("SHEL", "10", "25", currency="GBP", account="A"),
            make_holding("SHEL", "5", "30", currency="USD", account="B"),
        ]))

        assert [(h.canonical_id, h.currency) for h in result] == [("SHEL", "GBP"), ("SHEL", "USD")]

    def test_sorted_by_id_then_currency(self, sample_holdings):
        result = aggregate_holdings(_normalize(sample_holdings))
        keys = [(h.canonical_id, h.currency) for h in result]

        assert keys == sorted(keys)
        assert keys == [("0700", "HKD"), ("AAPL", "USD"), ("US_TBILL", "USD")]

    def test_valuation_fields_start_empty(self, sample_holdings):
        for holding in aggregate_holdings(_normalize(sample_holdings)):
            assert holding.value_base == Decimal("0")
            assert holding.fx_rate == Decimal("1")
            assert not holding.quote_missing

    def test_empty(self):
        assert aggregate_holdings([]) == []


class TestGroupHoldings:
    """Tests for group_holdings."""

    def test_groups_by_id_and_currency(self, sample_holdings):
        groups = group_holdings(_normalize(sample_holdings))

        assert set(groups) == {("AAPL", "USD"), ("0700", "HKD"), ("US_TBILL", "USD")}
        assert len(groups[("AAPL", "USD")]) == 2
        assert len(groups[("US_TBILL", "USD")]) == 2
