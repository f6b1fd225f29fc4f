"""
Data loading and saving functions for CSV/Parquet files.

Handles ingestion of broker holdings, quotes, exchange rates, other assets
and account balances, as well as export of aggregated holdings and periodic
balance-sheet snapshots.
"""

import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from networth.models import (
    ZERO,
    AccountBalance,
    AggregatedHolding,
    AssetCategory,
    ExchangeRate,
    OtherAsset,
    PeriodicSnapshot,
    Quote,
    RawHolding,
    as_decimal,
)
from networth.data.schemas import (
    ACCOUNT_BALANCES_SCHEMA,
    AGGREGATED_HOLDINGS_SCHEMA,
    EXCHANGE_RATES_SCHEMA,
    OTHER_ASSETS_SCHEMA,
    QUOTES_SCHEMA,
    RAW_HOLDINGS_SCHEMA,
    SNAPSHOTS_SCHEMA,
    FileSchema,
)


logger = logging.getLogger(__name__)

_SNAPSHOT_DTYPES = {c.name: c.dtype for c in SNAPSHOTS_SCHEMA.columns}


class DataLoadError(Exception):
    """Raised when data cannot be loaded or is invalid."""
    pass


def load_raw_holdings(file_path: str | Path) -> list[RawHolding]:
    """
    Load broker holdings from a CSV/Parquet file.

    Missing quantities and costs are kept as None; validation happens in the
    normalizer so that bad rows are counted rather than rejected here.

    Args:
        file_path: Path to file with columns: account_id, instrument_code,
                   quantity, cost_per_unit and optionally currency,
                   description, asset_class, display_name

    Returns:
        List of RawHolding objects

    Raises:
        DataLoadError: If file cannot be loaded or is invalid
    """
    df = _load_file(Path(file_path), RAW_HOLDINGS_SCHEMA)

    holdings = []
    for _, row in df.iterrows():
        holdings.append(
            RawHolding(
                account_id=_text(row["account_id"]),
                instrument_code=_text(row["instrument_code"]) or None,
                quantity=as_decimal(row["quantity"]),
                cost_per_unit=as_decimal(row["cost_per_unit"]),
                currency=_text(row.get("currency")).upper() or None,
                description=_text(row.get("description")),
                asset_class=_text(row.get("asset_class")),
                display_name=_text(row.get("display_name")),
            )
        )

    return holdings


def load_quotes(file_path: str | Path) -> list[Quote]:
    """
    Load instrument quotes from a CSV/Parquet file.

    Rows without a usable price are dropped with a warning.

    Raises:
        DataLoadError: If file cannot be loaded or is invalid
    """
    df = _load_file(Path(file_path), QUOTES_SCHEMA)

    quotes = []
    for _, row in df.iterrows():
        code = _text(row["instrument_code"])
        price = as_decimal(row["price"])
        if not code or price is None:
            logger.warning("Dropping quote row without code or price: %s", dict(row))
            continue
        quotes.append(
            Quote(
                instrument_code=code,
                price=price,
                currency=_text(row["currency"]).upper(),
                as_of=_timestamp(row.get("as_of")),
            )
        )

    return quotes


def load_exchange_rates(file_path: str | Path) -> list[ExchangeRate]:
    """
    Load exchange rates from a CSV/Parquet file.

    Rows with a missing or non-positive rate are dropped with a warning.

    Raises:
        DataLoadError: If file cannot be loaded or is invalid
    """
    df = _load_file(Path(file_path), EXCHANGE_RATES_SCHEMA)

    rates = []
    for _, row in df.iterrows():
        rate = as_decimal(row["rate"])
        if rate is None or rate <= ZERO:
            logger.warning(
                "Dropping invalid exchange rate %s->%s: %r",
                row["from_currency"], row["to_currency"], row["rate"],
            )
            continue
        rates.append(
            ExchangeRate(
                from_currency=_text(row["from_currency"]).upper(),
                to_currency=_text(row["to_currency"]).upper(),
                rate=rate,
                as_of=_timestamp(row.get("as_of")),
            )
        )

    return rates


def load_other_assets(file_path: str | Path) -> list[OtherAsset]:
    """
    Load funds, insurance, property and bank account records.

    Raises:
        DataLoadError: If file cannot be loaded, or a row has an unknown category
    """
    df = _load_file(Path(file_path), OTHER_ASSETS_SCHEMA)

    assets = []
    for index, row in df.iterrows():
        try:
            category = AssetCategory.parse(_text(row["category"]))
        except ValueError as e:
            raise DataLoadError(f"Row {index} of {file_path}: {e}")

        assets.append(
            OtherAsset(
                asset_id=_text(row["asset_id"]),
                category=category,
                currency=_text(row["currency"]).upper(),
                name=_text(row.get("name")),
                cost=_amount(row.get("cost")),
                value=_amount(row.get("value")),
                deposit=_amount(row.get("deposit")),
                loan=_amount(row.get("loan")),
                debt=_amount(row.get("debt")),
            )
        )

    return assets


def load_account_balances(file_path: str | Path) -> list[AccountBalance]:
    """
    Load account-level cash and debt.

    Raises:
        DataLoadError: If file cannot be loaded or is invalid
    """
    df = _load_file(Path(file_path), ACCOUNT_BALANCES_SCHEMA)

    balances = []
    for _, row in df.iterrows():
        balances.append(
            AccountBalance(
                account_id=_text(row["account_id"]),
                base_currency=_text(row["base_currency"]).upper(),
                cash_original=_amount(row["cash"]),
                debt_original=_amount(row["debt"]),
            )
        )

    return balances


def save_aggregated_holdings(
    holdings: list[AggregatedHolding],
    output_path: str | Path,
) -> Path:
    """
    Save aggregated holdings to CSV file.

    Args:
        holdings: List of AggregatedHolding objects
        output_path: Path for output CSV file

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    records = []
    for h in holdings:
        records.append({
            "canonical_id": h.canonical_id,
            "display_name": h.display_name,
            "treatment": h.treatment.value,
            "currency": h.currency,
            "total_quantity": float(h.total_quantity),
            "avg_cost_per_unit": float(h.avg_cost_per_unit),
            "total_cost_original": float(h.total_cost_original),
            "account_count": h.account_count,
            "current_price": float(h.current_price),
            "fx_rate": float(h.fx_rate),
            "cost_base": float(h.cost_base),
            "value_base": float(h.value_base),
            "pl_ratio": float(h.pl_ratio),
            "cost_share_pct": float(h.cost_share_pct),
            "value_share_pct": float(h.value_share_pct),
            "quote_missing": h.quote_missing,
            "rate_missing": h.rate_missing,
        })

    df = pd.DataFrame(records, columns=AGGREGATED_HOLDINGS_SCHEMA.all_columns)
    df.to_csv(output_path, index=False)

    return output_path


def save_snapshots(
    snapshots: list[PeriodicSnapshot],
    output_path: str | Path,
) -> Path:
    """
    Save periodic balance-sheet snapshots to CSV file.

    Args:
        snapshots: List of PeriodicSnapshot objects
        output_path: Path for output CSV file

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    records = []
    for s in snapshots:
        record: dict[str, Any] = {}
        for column in SNAPSHOTS_SCHEMA.all_columns:
            value = getattr(s, column)
            if column == "period_date":
                value = value.isoformat()
            elif _SNAPSHOT_DTYPES[column] == "float64":
                value = float(value)
            record[column] = value
        records.append(record)

    df = pd.DataFrame(records, columns=SNAPSHOTS_SCHEMA.all_columns)
    df.to_csv(output_path, index=False)

    return output_path


def _text(value: Any) -> str:
    """Stringify a cell, mapping None/NaN to an empty string."""
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass  # non-scalar cell
    return str(value).strip()


def _amount(value: Any) -> Decimal:
    """Decimal amount; missing cells count as zero."""
    result = as_decimal(value)
    return result if result is not None else ZERO


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None or pd.isna(value):
        return None
    return pd.Timestamp(value).to_pydatetime()


def _load_file(file_path: Path, schema: FileSchema) -> pd.DataFrame:
    """
    Load a CSV or Parquet file and validate against schema.

    String columns are read as text so that numeric-looking codes
    (e.g. 600519) keep their exact spelling.

    Args:
        file_path: Path to CSV/Parquet file
        schema: Expected file schema

    Returns:
        Loaded DataFrame

    Raises:
        DataLoadError: If file cannot be loaded or has missing columns
    """
    if not file_path.exists():
        raise DataLoadError(f"File not found: {file_path}")

    # Support both CSV and Parquet
    if file_path.suffix.lower() == ".parquet":
        try:
            df = pd.read_parquet(file_path)
        except Exception as e:
            raise DataLoadError(f"Failed to load parquet file {file_path}: {e}")
    else:
        try:
            header = pd.read_csv(file_path, nrows=0).columns
            text_columns = {
                c.name: str for c in schema.columns
                if c.dtype == "str" and c.name in header
            }
            df = pd.read_csv(file_path, dtype=text_columns)
        except Exception as e:
            raise DataLoadError(f"Failed to load CSV file {file_path}: {e}")

    # Validate columns
    is_valid, missing = schema.validate_columns(df.columns.tolist())
    if not is_valid:
        raise DataLoadError(
            f"File {file_path} is missing required columns: {missing}"
        )

    return df
