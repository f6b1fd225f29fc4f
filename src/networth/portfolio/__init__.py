"""
Portfolio module for the Net Worth Aggregation Engine.

Provides instrument normalization, cross-account aggregation, quote and
exchange-rate resolution, and base-currency valuation.
"""

from networth.portfolio.normalizer import (
    FaceValueRules,
    classify,
    normalize_holdings,
)
from networth.portfolio.aggregation import aggregate_holdings
from networth.portfolio.rates import QuoteBook, RateBook, resolve
from networth.portfolio.valuation import (
    value_holdings,
    calculate_pl_ratio,
)

__all__ = [
    "FaceValueRules",
    "classify",
    "normalize_holdings",
    "aggregate_holdings",
    "QuoteBook",
    "RateBook",
    "resolve",
    "value_holdings",
    "calculate_pl_ratio",
]
