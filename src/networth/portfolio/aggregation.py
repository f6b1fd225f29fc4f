"""
Cross-account aggregation for the Net Worth Aggregation Engine.

Groups normalized holdings by canonical instrument and currency, summing
quantities and computing the weighted-average cost per unit.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from networth.models import (
    ONE,
    ZERO,
    AggregatedHolding,
    NormalizedHolding,
    TreatmentPolicy,
)


# Face-value instruments are carried at 1.0 per unit of reported quantity;
# broker-reported premiums/discounts are discarded.
FACE_VALUE_UNIT_COST = ONE


def group_holdings(
    holdings: Iterable[NormalizedHolding],
) -> dict[tuple[str, str], list[NormalizedHolding]]:
    """
    Group normalized holdings by (canonical_id, currency).

    Args:
        holdings: Normalized holdings

    Returns:
        Dictionary mapping (canonical_id, currency) to the contributing rows
    """
    groups: dict[tuple[str, str], list[NormalizedHolding]] = defaultdict(list)
    for holding in holdings:
        groups[(holding.instrument.canonical_id, holding.currency)].append(holding)
    return dict(groups)


def weighted_average_cost(rows: list[NormalizedHolding]) -> tuple[Decimal, Decimal, Decimal]:
    """
    Calculate quantity, total cost and weighted-average cost for rows.

    Returns:
        Tuple of (total_quantity, total_cost, avg_cost_per_unit); the
        average is 0 when total quantity is 0
    """
    total_quantity = sum((r.quantity for r in rows), ZERO)
    total_cost = sum((r.quantity * r.cost_per_unit for r in rows), ZERO)

    if total_quantity == ZERO:
        return total_quantity, total_cost, ZERO

    return total_quantity, total_cost, total_cost / total_quantity


def aggregate_group(
    canonical_id: str,
    currency: str,
    rows: list[NormalizedHolding],
) -> AggregatedHolding:
    """
    Aggregate the rows of one (instrument, currency) group.

    Args:
        canonical_id: Canonical instrument id shared by all rows
        currency: Currency shared by all rows
        rows: Contributing normalized holdings (non-empty)

    Returns:
        AggregatedHolding with quantity and cost fields filled in
    """
    instrument = rows[0].instrument
    total_quantity, total_cost, avg_cost = weighted_average_cost(rows)

    if instrument.treatment == TreatmentPolicy.FACE_VALUE:
        avg_cost = FACE_VALUE_UNIT_COST
        total_cost = total_quantity * FACE_VALUE_UNIT_COST
        display_name = instrument.display_name
    else:
        names = [r.raw.display_name.strip() for r in rows if (r.raw.display_name or "").strip()]
        display_name = max(names) if names else ""

    return AggregatedHolding(
        canonical_id=canonical_id,
        display_name=display_name,
        treatment=instrument.treatment,
        currency=currency,
        total_quantity=total_quantity,
        avg_cost_per_unit=avg_cost,
        total_cost_original=total_cost,
        account_count=len({r.raw.account_id for r in rows}),
    )


def aggregate_holdings(
    holdings: Iterable[NormalizedHolding],
) -> list[AggregatedHolding]:
    """
    Aggregate normalized holdings across accounts.

    Groups whose total quantity is not positive (fully closed positions)
    produce no output row.

    Args:
        holdings: Normalized holdings from all accounts

    Returns:
        Aggregated holdings sorted by (canonical_id, currency)
    """
    aggregated = []
    for (canonical_id, currency), rows in sorted(group_holdings(holdings).items()):
        holding = aggregate_group(canonical_id, currency, rows)
        if holding.total_quantity <= ZERO:
            continue
        aggregated.append(holding)
    return aggregated
