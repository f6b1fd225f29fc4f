"""
Portfolio allocation: each instrument's share of total cost and total value.
"""

from dataclasses import replace
from decimal import Decimal
from typing import Mapping

from networth.models import HUNDRED, ZERO, AggregatedHolding


def share_pct(part: Decimal, total: Decimal) -> Decimal:
    """
    Percentage of `part` in `total`.

    Returns 0 when either is non-positive, so an empty or all-zero
    portfolio never divides by zero.
    """
    if part <= ZERO or total <= ZERO:
        return ZERO
    return part / total * HUNDRED


def portfolio_totals(holdings: list[AggregatedHolding]) -> tuple[Decimal, Decimal]:
    """
    Calculate portfolio-wide totals.

    Returns:
        Tuple of (total cost_base, total value_base)
    """
    total_cost = sum((h.cost_base for h in holdings), ZERO)
    total_value = sum((h.value_base for h in holdings), ZERO)
    return total_cost, total_value


def allocate(holdings: list[AggregatedHolding]) -> list[AggregatedHolding]:
    """
    Fill in cost and value share percentages for every holding.

    Over any set with a positive total, the shares each sum to 100 (within
    rounding); for an all-zero portfolio every share is 0.

    Args:
        holdings: Valued holdings for the full run

    Returns:
        New holdings with cost_share_pct and value_share_pct set
    """
    total_cost, total_value = portfolio_totals(holdings)

    return [
        replace(
            h,
            cost_share_pct=share_pct(h.cost_base, total_cost),
            value_share_pct=share_pct(h.value_base, total_value),
        )
        for h in holdings
    ]


def bucket_composition(buckets: Mapping[str, Decimal]) -> dict[str, Decimal]:
    """
    Share of each bucket in the sum of the positive buckets.

    Negative buckets (e.g. property under water) get 0 and do not reduce
    the denominator.

    Args:
        buckets: Bucket name -> amount

    Returns:
        Bucket name -> percentage (0-100)
    """
    total = sum((v for v in buckets.values() if v > ZERO), ZERO)
    return {name: share_pct(value, total) for name, value in buckets.items()}
