"""
Analytics module for the Net Worth Aggregation Engine.

Provides portfolio allocation, balance sheet assembly, net-worth history
summaries and data-quality audits.
"""

from networth.analytics.allocation import (
    allocate,
    bucket_composition,
    portfolio_totals,
    share_pct,
)
from networth.analytics.balance_sheet import assemble_balance_sheet
from networth.analytics.history import HistorySummary, summarize_history

__all__ = [
    "allocate",
    "bucket_composition",
    "portfolio_totals",
    "share_pct",
    "assemble_balance_sheet",
    "HistorySummary",
    "summarize_history",
]
