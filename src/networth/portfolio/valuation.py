"""
Valuation of aggregated holdings in the base currency.

Cost and market value are computed in the holding's own currency first and
converted to the base currency once, so per-unit conversion rounding never
compounds across a position.
"""

from dataclasses import replace
from decimal import Decimal
from typing import Iterable, Optional

from networth.models import ZERO, AggregatedHolding, RunDiagnostics
from networth.portfolio.rates import QuoteBook, RateBook, ResolvedRates, resolve


def calculate_pl_ratio(cost_base: Decimal, value_base: Decimal) -> Decimal:
    """
    Profit/loss as a fraction of cost (0.25 = +25%).

    Returns 0 when there is no positive cost basis.
    """
    if cost_base <= ZERO:
        return ZERO
    return (value_base - cost_base) / cost_base


def value_holding(
    holding: AggregatedHolding,
    resolved: ResolvedRates,
) -> AggregatedHolding:
    """
    Apply a resolved price and FX rate to an aggregated holding.

    Args:
        holding: Aggregated holding (quantity and cost filled in)
        resolved: Price and rate for the holding

    Returns:
        New AggregatedHolding with price, base-currency cost/value and P/L
    """
    cost_base = holding.total_cost_original * resolved.fx_rate
    value_native = holding.total_quantity * resolved.price
    value_base = value_native * resolved.fx_rate

    return replace(
        holding,
        current_price=resolved.price,
        fx_rate=resolved.fx_rate,
        cost_base=cost_base,
        value_base=value_base,
        pl_ratio=calculate_pl_ratio(cost_base, value_base),
        quote_missing=resolved.quote_missing,
        rate_missing=resolved.rate_missing,
    )


def value_holdings(
    holdings: Iterable[AggregatedHolding],
    quotes: QuoteBook,
    rates: RateBook,
    base_currency: str,
    diagnostics: Optional[RunDiagnostics] = None,
) -> list[AggregatedHolding]:
    """
    Resolve rates for and value every aggregated holding.

    Args:
        holdings: Aggregated holdings
        quotes: Quote snapshot
        rates: Exchange-rate snapshot
        base_currency: Target currency
        diagnostics: Optional diagnostics to record misses into

    Returns:
        Valued holdings, in input order
    """
    return [
        value_holding(h, resolve(h, quotes, rates, base_currency, diagnostics))
        for h in holdings
    ]


def calculate_portfolio_return(holdings: list[AggregatedHolding]) -> Decimal:
    """
    Calculate simple portfolio return across all holdings.

    Returns:
        Return as decimal (e.g., 0.05 for 5%)
    """
    total_cost = sum((h.cost_base for h in holdings), ZERO)
    total_value = sum((h.value_base for h in holdings), ZERO)
    return calculate_pl_ratio(total_cost, total_value)


def average_pl_ratio(holdings: list[AggregatedHolding]) -> Decimal:
    """Unweighted mean of per-instrument P/L ratios (0 for no holdings)."""
    if not holdings:
        return ZERO
    return sum((h.pl_ratio for h in holdings), ZERO) / len(holdings)


def get_gainers_and_losers(
    holdings: list[AggregatedHolding],
    top_n: int = 10,
) -> tuple[list[AggregatedHolding], list[AggregatedHolding]]:
    """
    Get top gainers and losers by P/L ratio.

    Args:
        holdings: Valued holdings
        top_n: Number of top/bottom positions to return

    Returns:
        Tuple of (top_gainers, top_losers), losers worst first
    """
    sorted_by_pl = sorted(
        holdings,
        key=lambda h: (h.pl_ratio, h.canonical_id),
        reverse=True,
    )

    top_gainers = sorted_by_pl[:top_n]
    top_losers = sorted_by_pl[-top_n:][::-1]

    return top_gainers, top_losers
