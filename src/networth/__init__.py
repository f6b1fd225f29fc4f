"""
Net Worth Aggregation Engine (networth)

Consolidates a person's holdings, scattered across brokerage accounts,
currencies and asset types, into one base-currency valuation. Normalizes and
merges equivalent instruments, aggregates them across accounts with
weighted-average cost, values them, and records dated balance-sheet snapshots
covering securities, funds, insurance, property, bank deposits and cash/debt.
"""

__version__ = "0.1.0"
