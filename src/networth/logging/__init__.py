"""
Decision logging module for the Net Worth Aggregation Engine.

Provides append-only decision logging for audit and reproducibility.
"""

from networth.logging.decision_log import (
    DecisionLogger,
    log_action,
    get_logger,
)

__all__ = [
    "DecisionLogger",
    "log_action",
    "get_logger",
]
