"""
Column layouts of the files the engine reads and writes.

Lists the columns and pandas dtypes for the raw input files (holdings,
quotes, exchange rates, other assets, account balances) and for the exported
aggregated holdings and balance-sheet snapshots.
"""

from dataclasses import dataclass


@dataclass
class ColumnSchema:
    """One column: name, pandas dtype, and whether it must be present."""
    name: str
    dtype: str
    required: bool = True
    nullable: bool = False


@dataclass
class FileSchema:
    """Named set of columns for one input or export file."""
    name: str
    columns: list[ColumnSchema]
    description: str

    @property
    def required_columns(self) -> list[str]:
        return [c.name for c in self.columns if c.required]

    @property
    def all_columns(self) -> list[str]:
        return [c.name for c in self.columns]

    def validate_columns(self, df_columns: list[str]) -> tuple[bool, list[str]]:
        """Return (ok, missing) where missing lists absent required columns in order."""
        present = set(df_columns)
        missing = [name for name in self.required_columns if name not in present]
        return not missing, missing


# Broker holdings, one row per (account, instrument)
RAW_HOLDINGS_SCHEMA = FileSchema(
    name="raw_holdings",
    description="Per-account instrument positions as exported by brokers",
    columns=[
        ColumnSchema(name="account_id", dtype="str", required=True),
        ColumnSchema(name="instrument_code", dtype="str", required=True, nullable=True),
        ColumnSchema(name="quantity", dtype="float64", required=True, nullable=True),
        ColumnSchema(name="cost_per_unit", dtype="float64", required=True, nullable=True),
        ColumnSchema(name="currency", dtype="str", required=False, nullable=True),
        ColumnSchema(name="description", dtype="str", required=False, nullable=True),
        ColumnSchema(name="asset_class", dtype="str", required=False, nullable=True),
        ColumnSchema(name="display_name", dtype="str", required=False, nullable=True),
    ],
)

QUOTES_SCHEMA = FileSchema(
    name="quotes",
    description="Latest price per instrument",
    columns=[
        ColumnSchema(name="instrument_code", dtype="str", required=True),
        ColumnSchema(name="price", dtype="float64", required=True),
        ColumnSchema(name="currency", dtype="str", required=True),
        ColumnSchema(name="as_of", dtype="datetime64[ns]", required=False, nullable=True),
    ],
)

EXCHANGE_RATES_SCHEMA = FileSchema(
    name="exchange_rates",
    description="Currency conversion rates: 1 from_currency = rate to_currency",
    columns=[
        ColumnSchema(name="from_currency", dtype="str", required=True),
        ColumnSchema(name="to_currency", dtype="str", required=True),
        ColumnSchema(name="rate", dtype="float64", required=True),
        ColumnSchema(name="as_of", dtype="datetime64[ns]", required=False, nullable=True),
    ],
)

OTHER_ASSETS_SCHEMA = FileSchema(
    name="other_assets",
    description="Funds, insurance policies, properties and bank accounts",
    columns=[
        ColumnSchema(name="asset_id", dtype="str", required=True),
        ColumnSchema(name="category", dtype="str", required=True),
        ColumnSchema(name="currency", dtype="str", required=True),
        ColumnSchema(name="name", dtype="str", required=False, nullable=True),
        ColumnSchema(name="cost", dtype="float64", required=False, nullable=True),
        ColumnSchema(name="value", dtype="float64", required=False, nullable=True),
        ColumnSchema(name="deposit", dtype="float64", required=False, nullable=True),
        ColumnSchema(name="loan", dtype="float64", required=False, nullable=True),
        ColumnSchema(name="debt", dtype="float64", required=False, nullable=True),
    ],
)

ACCOUNT_BALANCES_SCHEMA = FileSchema(
    name="account_balances",
    description="Account-level cash and margin debt",
    columns=[
        ColumnSchema(name="account_id", dtype="str", required=True),
        ColumnSchema(name="base_currency", dtype="str", required=True),
        ColumnSchema(name="cash", dtype="float64", required=True, nullable=True),
        ColumnSchema(name="debt", dtype="float64", required=True, nullable=True),
    ],
)

# Aggregated holdings export
AGGREGATED_HOLDINGS_SCHEMA = FileSchema(
    name="aggregated_holdings",
    description="Cross-account holdings with base-currency valuation",
    columns=[
        ColumnSchema(name="canonical_id", dtype="str", required=True),
        ColumnSchema(name="display_name", dtype="str", required=True),
        ColumnSchema(name="treatment", dtype="str", required=True),
        ColumnSchema(name="currency", dtype="str", required=True),
        ColumnSchema(name="total_quantity", dtype="float64", required=True),
        ColumnSchema(name="avg_cost_per_unit", dtype="float64", required=True),
        ColumnSchema(name="total_cost_original", dtype="float64", required=True),
        ColumnSchema(name="account_count", dtype="int64", required=True),
        ColumnSchema(name="current_price", dtype="float64", required=True),
        ColumnSchema(name="fx_rate", dtype="float64", required=True),
        ColumnSchema(name="cost_base", dtype="float64", required=True),
        ColumnSchema(name="value_base", dtype="float64", required=True),
        ColumnSchema(name="pl_ratio", dtype="float64", required=True),
        ColumnSchema(name="cost_share_pct", dtype="float64", required=True),
        ColumnSchema(name="value_share_pct", dtype="float64", required=True),
        ColumnSchema(name="quote_missing", dtype="bool", required=True),
        ColumnSchema(name="rate_missing", dtype="bool", required=True),
    ],
)

# Periodic balance sheet export
SNAPSHOTS_SCHEMA = FileSchema(
    name="periodic_balance_sheet",
    description="Dated net-worth snapshots",
    columns=[
        ColumnSchema(name="period_id", dtype="str", required=True),
        ColumnSchema(name="period_date", dtype="datetime64[ns]", required=True),
        ColumnSchema(name="base_currency", dtype="str", required=True),
        ColumnSchema(name="securities_value_base", dtype="float64", required=True),
        ColumnSchema(name="insurance_value_base", dtype="float64", required=True),
        ColumnSchema(name="funds_value_base", dtype="float64", required=True),
        ColumnSchema(name="properties_value_base", dtype="float64", required=True),
        ColumnSchema(name="bank_deposits_base", dtype="float64", required=True),
        ColumnSchema(name="total_cash_base", dtype="float64", required=True),
        ColumnSchema(name="total_debt_base", dtype="float64", required=True),
        ColumnSchema(name="total_net_worth_base", dtype="float64", required=True),
        ColumnSchema(name="account_count", dtype="int64", required=True),
        ColumnSchema(name="securities_count", dtype="int64", required=True),
        ColumnSchema(name="insurance_count", dtype="int64", required=True),
        ColumnSchema(name="funds_count", dtype="int64", required=True),
        ColumnSchema(name="properties_count", dtype="int64", required=True),
        ColumnSchema(name="bank_accounts_count", dtype="int64", required=True),
        ColumnSchema(name="securities_pct", dtype="float64", required=True),
        ColumnSchema(name="insurance_pct", dtype="float64", required=True),
        ColumnSchema(name="funds_pct", dtype="float64", required=True),
        ColumnSchema(name="properties_pct", dtype="float64", required=True),
        ColumnSchema(name="bank_deposits_pct", dtype="float64", required=True),
        ColumnSchema(name="cash_pct", dtype="float64", required=True),
    ],
)
