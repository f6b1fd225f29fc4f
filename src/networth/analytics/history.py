"""
Net-worth history over stored periodic snapshots.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from networth.models import HUNDRED, ZERO, PeriodicSnapshot


@dataclass(frozen=True)
class HistorySummary:
    """
    Change in net worth between the first and last snapshot of a range.

    Attributes:
        record_count: Number of snapshots in the range
        start_date: Date of the earliest snapshot
        end_date: Date of the latest snapshot
        start_net_worth: Net worth at start_date
        end_net_worth: Net worth at end_date
        change: end_net_worth - start_net_worth
        change_pct: Change as a percentage of the start (0 when start <= 0)
        average_change: Change divided by the number of records
    """
    record_count: int
    start_date: Optional[date]
    end_date: Optional[date]
    start_net_worth: Decimal = ZERO
    end_net_worth: Decimal = ZERO
    change: Decimal = ZERO
    change_pct: Decimal = ZERO
    average_change: Decimal = ZERO


def summarize_history(snapshots: list[PeriodicSnapshot]) -> HistorySummary:
    """
    Summarize net-worth movement over a list of snapshots.

    Snapshots may be passed in any order; they are sorted by period_date.
    """
    if not snapshots:
        return HistorySummary(record_count=0, start_date=None, end_date=None)

    ordered = sorted(snapshots, key=lambda s: (s.period_date, s.period_id))
    first, last = ordered[0], ordered[-1]

    change = last.total_net_worth_base - first.total_net_worth_base
    change_pct = ZERO
    if first.total_net_worth_base > ZERO:
        change_pct = change / first.total_net_worth_base * HUNDRED

    average_change = change / len(ordered)

    return HistorySummary(
        record_count=len(ordered),
        start_date=first.period_date,
        end_date=last.period_date,
        start_net_worth=first.total_net_worth_base,
        end_net_worth=last.total_net_worth_base,
        change=change,
        change_pct=change_pct,
        average_change=average_change,
    )
