"""
Data module for the Net Worth Aggregation Engine.

Provides file ingestion and export (CSV/Parquet), the SQLAlchemy store, the
advisory run lock and the out-of-band quote/FX refresh jobs.
"""

from networth.data.loaders import (
    DataLoadError,
    load_raw_holdings,
    load_quotes,
    load_exchange_rates,
    load_other_assets,
    load_account_balances,
    save_aggregated_holdings,
    save_snapshots,
)
from networth.data.store import (
    TransactionFailure,
    UpstreamReadError,
    create_store_engine,
    init_store,
    load_inputs,
    write_aggregated_holdings,
    write_snapshot,
)
from networth.data.lock import advisory_lock

__all__ = [
    "DataLoadError",
    "load_raw_holdings",
    "load_quotes",
    "load_exchange_rates",
    "load_other_assets",
    "load_account_balances",
    "save_aggregated_holdings",
    "save_snapshots",
    "TransactionFailure",
    "UpstreamReadError",
    "create_store_engine",
    "init_store",
    "load_inputs",
    "write_aggregated_holdings",
    "write_snapshot",
    "advisory_lock",
]
