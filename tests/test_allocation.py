"""
Tests for allocation percentages.
"""

from decimal import Decimal

from networth.analytics.allocation import (
    allocate,
    bucket_composition,
    portfolio_totals,
    share_pct,
)


class TestSharePct:
    """Tests for share_pct."""

    def test_basic(self):
        assert share_pct(Decimal("25"), Decimal("200")) == Decimal("12.5")

    def test_zero_total(self):
        assert share_pct(Decimal("0"), Decimal("0")) == Decimal("0")

    def test_negative_part(self):
        assert share_pct(Decimal("-5"), Decimal("100")) == Decimal("0")


class TestAllocate:
    """Tests for allocate."""

    def test_shares_sum_to_hundred(self, make_aggregated):
        holdings = allocate([
            make_aggregated("A", cost_base="100", value_base="300"),
            make_aggregated("B", cost_base="200", value_base="300"),
            make_aggregated("C", cost_base="700", value_base="400"),
        ])

        assert abs(sum(h.cost_share_pct for h in holdings) - Decimal("100")) < Decimal("0.01")
        assert abs(sum(h.value_share_pct for h in holdings) - Decimal("100")) < Decimal("0.01")
        assert holdings[2].cost_share_pct == Decimal("70")
        assert holdings[2].value_share_pct == Decimal("40")

    def test_thirds_sum_within_rounding(self, make_aggregated):
        holdings = allocate([
            make_aggregated(code, cost_base="1", value_base="1") for code in "ABC"
        ])
        assert abs(sum(h.value_share_pct for h in holdings) - Decimal("100")) < Decimal("0.01")

    def test_all_zero_portfolio(self, make_aggregated):
        holdings = allocate([make_aggregated("A"), make_aggregated("B")])

        for h in holdings:
            assert h.cost_share_pct == Decimal("0")
            assert h.value_share_pct == Decimal("0")

    def test_zero_value_holding_gets_zero_share(self, make_aggregated):
        holdings = allocate([
            make_aggregated("A", cost_base="100", value_base="0"),
            make_aggregated("B", cost_base="100", value_base="50"),
        ])
        assert holdings[0].value_share_pct == Decimal("0")
        assert holdings[1].value_share_pct == Decimal("100")

    def test_empty(self):
        assert allocate([]) == []

    def test_totals(self, make_aggregated):
        holdings = [
            make_aggregated("A", cost_base="100", value_base="300"),
            make_aggregated("B", cost_base="50", value_base="20"),
        ]
        assert portfolio_totals(holdings) == (Decimal("150"), Decimal("320"))


class TestBucketComposition:
    """Tests for bucket_composition."""

    def test_positive_buckets(self):
        composition = bucket_composition({"a": Decimal("75"), "b": Decimal("25")})
        assert composition == {"a": Decimal("75"), "b": Decimal("25")}

    def test_negative_bucket_excluded_from_denominator(self):
        composition = bucket_composition({
            "securities": Decimal("600"),
            "properties": Decimal("-400"),
            "cash": Decimal("400"),
        })

        assert composition["properties"] == Decimal("0")
        assert composition["securities"] == Decimal("60")
        assert composition["cash"] == Decimal("40")

    def test_all_zero(self):
        composition = bucket_composition({"a": Decimal("0"), "b": Decimal("0")})
        assert composition == {"a": Decimal("0"), "b": Decimal("0")}
