"""
Tests for base-currency valuation.
"""

from decimal import Decimal

from networth.models import RunDiagnostics
from networth.portfolio.aggregation import aggregate_holdings
from networth.portfolio.normalizer import normalize_holdings
from networth.portfolio.rates import QuoteBook, RateBook, ResolvedRates
from networth.portfolio.valuation import (
    average_pl_ratio,
    calculate_pl_ratio,
    calculate_portfolio_return,
    get_gainers_and_losers,
    value_holding,
    value_holdings,
)


def _valued(holdings, quotes, rates, diagnostics=None):
    aggregated = aggregate_holdings(normalize_holdings(holdings, "CNY").holdings)
    return value_holdings(aggregated, QuoteBook(quotes), RateBook(rates), "CNY", diagnostics)


class TestCalculatePlRatio:
    """Tests for calculate_pl_ratio."""

    def test_gain(self):
        assert calculate_pl_ratio(Decimal("100"), Decimal("125")) == Decimal("0.25")

    def test_loss(self):
        assert calculate_pl_ratio(Decimal("100"), Decimal("80")) == Decimal("-0.2")

    def test_zero_cost(self):
        """No cost basis means no meaningful ratio."""
        assert calculate_pl_ratio(Decimal("0"), Decimal("50")) == Decimal("0")

    def test_negative_cost(self):
        assert calculate_pl_ratio(Decimal("-10"), Decimal("50")) == Decimal("0")


class TestValueHolding:
    """Tests for value_holding."""

    def test_applies_price_and_rate(self, make_aggregated):
        holding = make_aggregated("AAPL", cost_base="0", quantity="150")
        holding.total_cost_original = Decimal("2000")

        valued = value_holding(holding, ResolvedRates(price=Decimal("15"), fx_rate=Decimal("7")))

        assert valued.current_price == Decimal("15")
        assert valued.fx_rate == Decimal("7")
        assert valued.cost_base == Decimal("14000")
        assert valued.value_base == Decimal("15750")
        assert valued.pl_ratio == Decimal("0.125")
        assert valued.unrealized_pnl_base == Decimal("1750")

    def test_does_not_mutate_input(self, make_aggregated):
        holding = make_aggregated("AAPL", quantity="10")
        value_holding(holding, ResolvedRates(price=Decimal("5"), fx_rate=Decimal("2")))
        assert holding.current_price == Decimal("0")


class TestValueHoldings:
    """Tests for value_holdings."""

    def test_missing_quote_values_at_zero(self, make_holding, sample_rates):
        """A position without any quote is worth 0, a -100% P/L."""
        valued = _valued(
            [
                make_holding("AAPL", "100", "10", account="A"),
                make_holding("AAPL", "50", "20", account="B"),
            ],
            [],
            sample_rates,
        )
        assert valued[0].value_base == Decimal("0")
        assert valued[0].quote_missing
        assert valued[0].pl_ratio == Decimal("-1")

    def test_sample_portfolio(self, sample_holdings, sample_quotes, sample_rates):
        by_id = {h.canonical_id: h for h in _valued(sample_holdings, sample_quotes, sample_rates)}

        aapl = by_id["AAPL"]
        assert aapl.cost_base == Decimal("14000")
        assert aapl.value_base == Decimal("15750")
        assert aapl.pl_ratio == Decimal("0.125")

        tencent = by_id["0700"]
        assert tencent.fx_rate == Decimal("0.9")
        assert tencent.cost_base == Decimal("54000")
        assert tencent.value_base == Decimal("63000")

        bills = by_id["US_TBILL"]
        assert bills.current_price == Decimal("1")
        assert bills.cost_base == Decimal("10500")
        assert bills.value_base == Decimal("10500")
        assert bills.pl_ratio == Decimal("0")
        assert not bills.quote_missing

    def test_unknown_currency_uses_rate_one(self, make_holding):
        diagnostics = RunDiagnostics()
        valued = _valued(
            [make_holding("ABC", "10", "2", currency="XYZ")],
            [],
            [],
            diagnostics,
        )

        assert valued[0].fx_rate == Decimal("1")
        assert valued[0].rate_missing
        assert valued[0].cost_base == Decimal("20")
        assert diagnostics.missing_rates == {"XYZ"}
        assert diagnostics.missing_quotes == {"ABC"}

    def test_base_currency_needs_no_rate(self, make_holding):
        valued = _valued([make_holding("600519", "10", "1500", currency="CNY")], [], [])
        assert valued[0].fx_rate == Decimal("1")
        assert not valued[0].rate_missing


class TestPortfolioMetrics:
    """Tests for portfolio-level helpers."""

    def test_portfolio_return(self, make_aggregated):
        holdings = [
            make_aggregated("A", cost_base="100", value_base="150"),
            make_aggregated("B", cost_base="100", value_base="50"),
        ]
        assert calculate_portfolio_return(holdings) == Decimal("0")

    def test_average_pl_ratio(self, make_aggregated):
        a = make_aggregated("A")
        a.pl_ratio = Decimal("0.5")
        b = make_aggregated("B")
        b.pl_ratio = Decimal("-0.1")

        assert average_pl_ratio([a, b]) == Decimal("0.2")
        assert average_pl_ratio([]) == Decimal("0")

    def test_gainers_and_losers(self, make_aggregated):
        holdings = []
        for code, ratio in [("A", "0.3"), ("B", "-0.2"), ("C", "0.1"), ("D", "-0.5")]:
            h = make_aggregated(code)
            h.pl_ratio = Decimal(ratio)
            holdings.append(h)

        gainers, losers = get_gainers_and_losers(holdings, top_n=2)

        assert [h.canonical_id for h in gainers] == ["A", "C"]
        assert [h.canonical_id for h in losers] == ["D", "B"]
