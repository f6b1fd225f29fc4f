"""
Data-quality checks over the store contents.

These checks do not change any data. They report what a recompute would
have to work around (missing rates, mispriced face-value rows) so that the
upstream data can be fixed.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from networth.data.store import table_counts
from networth.models import (
    ONE,
    AggregatedHolding,
    PortfolioInputs,
    RawHolding,
)
from networth.portfolio.normalizer import (
    DEFAULT_RULES,
    FaceValue,
    FaceValueRules,
    classify,
    is_cash_row,
)
from networth.portfolio.rates import RateBook

__all__ = [
    "FaceValueSummary",
    "face_value_cost_deviations",
    "face_value_summary",
    "find_missing_rates",
    "table_counts",
]

FACE_VALUE_COST_TOLERANCE = Decimal("0.01")


def find_missing_rates(inputs: PortfolioInputs, base_currency: str) -> dict[str, list[str]]:
    """
    Currencies referenced by upstream data that have no rate to the base.

    Returns:
        Currency -> sorted list of the tables that reference it
    """
    rates = RateBook(inputs.rates)
    sources: dict[str, set[str]] = {}

    def check(currency: Optional[str], table: str) -> None:
        currency = (currency or base_currency).strip().upper()
        if not rates.has_rate(currency, base_currency):
            sources.setdefault(currency, set()).add(table)

    for holding in inputs.holdings:
        if not is_cash_row(holding):
            check(holding.currency, "raw_holdings")
    for asset in inputs.other_assets:
        check(asset.currency, "other_assets")
    for balance in inputs.balances:
        check(balance.base_currency, "account_balances")
    for quote in inputs.quotes:
        check(quote.currency, "quotes")

    return {currency: sorted(tables) for currency, tables in sorted(sources.items())}


def face_value_cost_deviations(
    holdings: Iterable[RawHolding],
    rules: FaceValueRules = DEFAULT_RULES,
    tolerance: Decimal = FACE_VALUE_COST_TOLERANCE,
) -> list[RawHolding]:
    """
    Face-value rows whose broker-reported unit cost is not 1.0.

    The engine values these at 1.0 regardless; a deviation usually means the
    broker reports cost per 100 of face value or a clean price.
    """
    return [
        h for h in holdings
        if isinstance(classify(h, rules), FaceValue)
        and h.cost_per_unit is not None
        and abs(h.cost_per_unit - ONE) > tolerance
    ]


@dataclass(frozen=True)
class FaceValueSummary:
    """The merged face-value position and its weight in the portfolio."""
    canonical_id: str
    currency: str
    total_quantity: Decimal
    account_count: int
    cost_base: Decimal
    value_base: Decimal
    cost_share_pct: Decimal
    value_share_pct: Decimal


def face_value_summary(
    holdings: Iterable[AggregatedHolding],
    canonical_id: str = DEFAULT_RULES.canonical_id,
) -> list[FaceValueSummary]:
    """
    Summarize the aggregated face-value rows (one per currency).

    Args:
        holdings: Aggregated holdings, as written by a recompute
        canonical_id: Identity face-value instruments were merged into

    Returns:
        One FaceValueSummary per currency, empty if none are held
    """
    return [
        FaceValueSummary(
            canonical_id=h.canonical_id,
            currency=h.currency,
            total_quantity=h.total_quantity,
            account_count=h.account_count,
            cost_base=h.cost_base,
            value_base=h.value_base,
            cost_share_pct=h.cost_share_pct,
            value_share_pct=h.value_share_pct,
        )
        for h in holdings
        if h.canonical_id == canonical_id
    ]
