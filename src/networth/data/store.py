"""
SQLAlchemy persistence for the Net Worth Aggregation Engine.

The store holds the raw upstream tables (holdings, quotes, exchange rates,
other assets, account balances), the two derived output tables
(aggregated_holdings, periodic_balance_sheet) and the run_locks lease table.

Amounts are persisted as floats and converted back to Decimal through str()
on read. Derived tables are rebuilt in full on every run inside a single
transaction, so readers see either the previous or the new state.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Engine,
    Float,
    Integer,
    String,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session

from networth.models import (
    ZERO,
    AccountBalance,
    AggregatedHolding,
    AssetCategory,
    ExchangeRate,
    OtherAsset,
    PeriodicSnapshot,
    PortfolioInputs,
    Quote,
    RawHolding,
    TreatmentPolicy,
    as_decimal,
)


logger = logging.getLogger(__name__)


class UpstreamReadError(Exception):
    """Raised when an upstream table cannot be read. Fatal for the run."""
    pass


class TransactionFailure(Exception):
    """Raised when the output transaction fails and was rolled back."""
    pass


class Base(DeclarativeBase):
    """Base class for all store tables."""
    pass


# Upstream tables

class RawHoldingRow(Base):
    """Broker position as imported, one per account and instrument."""
    __tablename__ = "raw_holdings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(String(64), nullable=False, index=True)
    instrument_code = Column(String(128), nullable=True)
    quantity = Column(Float, nullable=True)
    cost_per_unit = Column(Float, nullable=True)
    currency = Column(String(8), nullable=True)
    description = Column(String(256), nullable=False, default="")
    asset_class = Column(String(32), nullable=False, default="")
    display_name = Column(String(256), nullable=False, default="")


class QuoteRow(Base):
    __tablename__ = "quotes"

    instrument_code = Column(String(128), primary_key=True)
    currency = Column(String(8), primary_key=True)
    price = Column(Float, nullable=False)
    as_of = Column(DateTime, nullable=True)


class ExchangeRateRow(Base):
    __tablename__ = "exchange_rates"

    from_currency = Column(String(8), primary_key=True)
    to_currency = Column(String(8), primary_key=True)
    rate = Column(Float, nullable=False)
    as_of = Column(DateTime, nullable=True)


class OtherAssetRow(Base):
    """Fund, insurance policy, property or bank account."""
    __tablename__ = "other_assets"

    asset_id = Column(String(64), primary_key=True)
    category = Column(String(32), nullable=False, index=True)
    currency = Column(String(8), nullable=False)
    name = Column(String(256), nullable=False, default="")
    cost = Column(Float, nullable=False, default=0.0)
    value = Column(Float, nullable=False, default=0.0)
    deposit = Column(Float, nullable=False, default=0.0)
    loan = Column(Float, nullable=False, default=0.0)
    debt = Column(Float, nullable=False, default=0.0)


class AccountBalanceRow(Base):
    __tablename__ = "account_balances"

    account_id = Column(String(64), primary_key=True)
    base_currency = Column(String(8), nullable=False)
    cash = Column(Float, nullable=False, default=0.0)
    debt = Column(Float, nullable=False, default=0.0)


# Output tables

class AggregatedHoldingRow(Base):
    """One instrument across all accounts, valued in the base currency."""
    __tablename__ = "aggregated_holdings"

    canonical_id = Column(String(128), primary_key=True)
    currency = Column(String(8), primary_key=True)
    display_name = Column(String(256), nullable=False, default="")
    treatment = Column(String(16), nullable=False)
    total_quantity = Column(Float, nullable=False)
    avg_cost_per_unit = Column(Float, nullable=False)
    total_cost_original = Column(Float, nullable=False)
    account_count = Column(Integer, nullable=False)
    current_price = Column(Float, nullable=False)
    fx_rate = Column(Float, nullable=False)
    cost_base = Column(Float, nullable=False)
    value_base = Column(Float, nullable=False)
    pl_ratio = Column(Float, nullable=False)
    cost_share_pct = Column(Float, nullable=False)
    value_share_pct = Column(Float, nullable=False)
    quote_missing = Column(Boolean, nullable=False, default=False)
    rate_missing = Column(Boolean, nullable=False, default=False)


class SnapshotRow(Base):
    """Dated net-worth record, unique per period_id."""
    __tablename__ = "periodic_balance_sheet"

    period_id = Column(String(32), primary_key=True)
    period_date = Column(Date, nullable=False, index=True)
    base_currency = Column(String(8), nullable=False)
    securities_value_base = Column(Float, nullable=False)
    insurance_value_base = Column(Float, nullable=False)
    funds_value_base = Column(Float, nullable=False)
    properties_value_base = Column(Float, nullable=False)
    bank_deposits_base = Column(Float, nullable=False)
    total_cash_base = Column(Float, nullable=False)
    total_debt_base = Column(Float, nullable=False)
    total_net_worth_base = Column(Float, nullable=False)
    account_count = Column(Integer, nullable=False)
    securities_count = Column(Integer, nullable=False)
    insurance_count = Column(Integer, nullable=False)
    funds_count = Column(Integer, nullable=False)
    properties_count = Column(Integer, nullable=False)
    bank_accounts_count = Column(Integer, nullable=False)
    securities_pct = Column(Float, nullable=False)
    insurance_pct = Column(Float, nullable=False)
    funds_pct = Column(Float, nullable=False)
    properties_pct = Column(Float, nullable=False)
    bank_deposits_pct = Column(Float, nullable=False)
    cash_pct = Column(Float, nullable=False)


class RunLockRow(Base):
    """Advisory lease guarding recompute runs."""
    __tablename__ = "run_locks"

    name = Column(String(64), primary_key=True)
    owner = Column(String(128), nullable=False)
    acquired_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)


STORE_TABLES = {
    model.__tablename__: model
    for model in (
        RawHoldingRow,
        QuoteRow,
        ExchangeRateRow,
        OtherAssetRow,
        AccountBalanceRow,
        AggregatedHoldingRow,
        SnapshotRow,
        RunLockRow,
    )
}

_SNAPSHOT_AMOUNTS = (
    "securities_value_base",
    "insurance_value_base",
    "funds_value_base",
    "properties_value_base",
    "bank_deposits_base",
    "total_cash_base",
    "total_debt_base",
    "total_net_worth_base",
    "securities_pct",
    "insurance_pct",
    "funds_pct",
    "properties_pct",
    "bank_deposits_pct",
    "cash_pct",
)

_SNAPSHOT_COUNTS = (
    "account_count",
    "securities_count",
    "insurance_count",
    "funds_count",
    "properties_count",
    "bank_accounts_count",
)


def create_store_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create the SQLAlchemy engine for the store.

    For file-backed SQLite URLs the parent directory is created.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, echo=echo)


def init_store(engine: Engine) -> None:
    """Create all store tables that do not exist yet."""
    Base.metadata.create_all(engine)
    logger.info("Store initialized at %s", engine.url)


def _dec(value: Optional[float]) -> Decimal:
    result = as_decimal(value)
    return result if result is not None else ZERO


def _float(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


# Reading upstream

def load_inputs(session: Session) -> PortfolioInputs:
    """
    Read every upstream table into an immutable PortfolioInputs.

    Raises:
        UpstreamReadError: If any upstream table cannot be read
    """
    try:
        holding_rows = session.scalars(
            select(RawHoldingRow).order_by(RawHoldingRow.id)
        ).all()
        quote_rows = session.scalars(
            select(QuoteRow).order_by(QuoteRow.instrument_code, QuoteRow.currency)
        ).all()
        rate_rows = session.scalars(
            select(ExchangeRateRow).order_by(
                ExchangeRateRow.from_currency, ExchangeRateRow.to_currency
            )
        ).all()
        asset_rows = session.scalars(
            select(OtherAssetRow).order_by(OtherAssetRow.asset_id)
        ).all()
        balance_rows = session.scalars(
            select(AccountBalanceRow).order_by(AccountBalanceRow.account_id)
        ).all()
    except SQLAlchemyError as e:
        raise UpstreamReadError(f"Failed to read upstream tables: {e}") from e

    other_assets = []
    for row in asset_rows:
        try:
            category = AssetCategory.parse(row.category)
        except ValueError as e:
            raise UpstreamReadError(f"other_assets row {row.asset_id}: {e}") from e
        other_assets.append(
            OtherAsset(
                asset_id=row.asset_id,
                category=category,
                currency=row.currency,
                name=row.name or "",
                cost=_dec(row.cost),
                value=_dec(row.value),
                deposit=_dec(row.deposit),
                loan=_dec(row.loan),
                debt=_dec(row.debt),
            )
        )

    return PortfolioInputs(
        holdings=tuple(
            RawHolding(
                account_id=row.account_id,
                instrument_code=row.instrument_code,
                quantity=as_decimal(row.quantity),
                cost_per_unit=as_decimal(row.cost_per_unit),
                currency=row.currency,
                description=row.description or "",
                asset_class=row.asset_class or "",
                display_name=row.display_name or "",
            )
            for row in holding_rows
        ),
        quotes=tuple(
            Quote(
                instrument_code=row.instrument_code,
                price=_dec(row.price),
                currency=row.currency,
                as_of=row.as_of,
            )
            for row in quote_rows
        ),
        rates=tuple(
            ExchangeRate(
                from_currency=row.from_currency,
                to_currency=row.to_currency,
                rate=_dec(row.rate),
                as_of=row.as_of,
            )
            for row in rate_rows
        ),
        other_assets=tuple(other_assets),
        balances=tuple(
            AccountBalance(
                account_id=row.account_id,
                base_currency=row.base_currency,
                cash_original=_dec(row.cash),
                debt_original=_dec(row.debt),
            )
            for row in balance_rows
        ),
    )


# Writing upstream (ingestion and refresh)

def _quote_row(quote: Quote) -> QuoteRow:
    return QuoteRow(
        instrument_code=quote.instrument_code,
        currency=quote.currency,
        price=float(quote.price),
        as_of=quote.as_of,
    )


def _rate_row(rate: ExchangeRate) -> ExchangeRateRow:
    return ExchangeRateRow(
        from_currency=rate.from_currency,
        to_currency=rate.to_currency,
        rate=float(rate.rate),
        as_of=rate.as_of,
    )


def import_inputs(
    session: Session,
    holdings: Optional[Iterable[RawHolding]] = None,
    quotes: Optional[Iterable[Quote]] = None,
    rates: Optional[Iterable[ExchangeRate]] = None,
    other_assets: Optional[Iterable[OtherAsset]] = None,
    balances: Optional[Iterable[AccountBalance]] = None,
) -> dict[str, int]:
    """
    Replace upstream tables with imported records.

    Only the tables for which records are given are replaced. Duplicate keys
    within one import keep the last record. Runs inside the caller's
    transaction.

    Returns:
        Mapping of table name -> rows written
    """
    written: dict[str, int] = {}

    if holdings is not None:
        session.execute(delete(RawHoldingRow))
        rows = [
            RawHoldingRow(
                account_id=h.account_id,
                instrument_code=h.instrument_code,
                quantity=_float(h.quantity),
                cost_per_unit=_float(h.cost_per_unit),
                currency=h.currency,
                description=h.description,
                asset_class=h.asset_class,
                display_name=h.display_name,
            )
            for h in holdings
        ]
        session.add_all(rows)
        written[RawHoldingRow.__tablename__] = len(rows)

    if quotes is not None:
        session.execute(delete(QuoteRow))
        by_key = {(q.instrument_code, q.currency): q for q in quotes}
        session.add_all(_quote_row(q) for q in by_key.values())
        written[QuoteRow.__tablename__] = len(by_key)

    if rates is not None:
        session.execute(delete(ExchangeRateRow))
        by_key = {(r.from_currency, r.to_currency): r for r in rates}
        session.add_all(_rate_row(r) for r in by_key.values())
        written[ExchangeRateRow.__tablename__] = len(by_key)

    if other_assets is not None:
        session.execute(delete(OtherAssetRow))
        by_id = {a.asset_id: a for a in other_assets}
        session.add_all(
            OtherAssetRow(
                asset_id=a.asset_id,
                category=a.category.value,
                currency=a.currency,
                name=a.name,
                cost=float(a.cost),
                value=float(a.value),
                deposit=float(a.deposit),
                loan=float(a.loan),
                debt=float(a.debt),
            )
            for a in by_id.values()
        )
        written[OtherAssetRow.__tablename__] = len(by_id)

    if balances is not None:
        session.execute(delete(AccountBalanceRow))
        by_id = {b.account_id: b for b in balances}
        session.add_all(
            AccountBalanceRow(
                account_id=b.account_id,
                base_currency=b.base_currency,
                cash=float(b.cash_original),
                debt=float(b.debt_original),
            )
            for b in by_id.values()
        )
        written[AccountBalanceRow.__tablename__] = len(by_id)

    for table, count in written.items():
        logger.info("Imported %d rows into %s", count, table)

    return written


def upsert_quote(session: Session, quote: Quote) -> None:
    """Insert or replace the quote for (instrument_code, currency)."""
    session.merge(_quote_row(quote))


def upsert_rate(session: Session, rate: ExchangeRate) -> None:
    """Insert or replace the rate for (from_currency, to_currency)."""
    session.merge(_rate_row(rate))


# Output tables

def write_aggregated_holdings(session: Session, holdings: list[AggregatedHolding]) -> int:
    """
    Replace the aggregated_holdings table with the given holdings.

    Runs inside the caller's transaction.
    """
    session.execute(delete(AggregatedHoldingRow))
    ordered = sorted(holdings, key=lambda h: (h.canonical_id, h.currency))
    session.add_all(
        AggregatedHoldingRow(
            canonical_id=h.canonical_id,
            currency=h.currency,
            display_name=h.display_name,
            treatment=h.treatment.value,
            total_quantity=float(h.total_quantity),
            avg_cost_per_unit=float(h.avg_cost_per_unit),
            total_cost_original=float(h.total_cost_original),
            account_count=h.account_count,
            current_price=float(h.current_price),
            fx_rate=float(h.fx_rate),
            cost_base=float(h.cost_base),
            value_base=float(h.value_base),
            pl_ratio=float(h.pl_ratio),
            cost_share_pct=float(h.cost_share_pct),
            value_share_pct=float(h.value_share_pct),
            quote_missing=h.quote_missing,
            rate_missing=h.rate_missing,
        )
        for h in ordered
    )
    session.flush()
    return len(ordered)


def write_snapshot(session: Session, snapshot: PeriodicSnapshot) -> None:
    """
    Upsert a snapshot by period_id.

    The existing record for the period, if any, is deleted and the new one
    inserted, so the stored row is always exactly the latest computation.
    Runs inside the caller's transaction.
    """
    session.execute(delete(SnapshotRow).where(SnapshotRow.period_id == snapshot.period_id))
    row = SnapshotRow(
        period_id=snapshot.period_id,
        period_date=snapshot.period_date,
        base_currency=snapshot.base_currency,
    )
    for name in _SNAPSHOT_AMOUNTS:
        setattr(row, name, float(getattr(snapshot, name)))
    for name in _SNAPSHOT_COUNTS:
        setattr(row, name, int(getattr(snapshot, name)))
    session.add(row)
    session.flush()


def write_run_outputs(
    engine: Engine,
    holdings: list[AggregatedHolding],
    snapshot: PeriodicSnapshot,
) -> None:
    """
    Write both output tables in one transaction.

    Raises:
        TransactionFailure: If any write fails; nothing is committed
    """
    try:
        with Session(engine) as session, session.begin():
            write_aggregated_holdings(session, holdings)
            write_snapshot(session, snapshot)
    except SQLAlchemyError as e:
        logger.error("Output transaction rolled back: %s", e)
        raise TransactionFailure(f"Failed to write run outputs: {e}") from e


def _snapshot_from_row(row: SnapshotRow) -> PeriodicSnapshot:
    values = {name: _dec(getattr(row, name)) for name in _SNAPSHOT_AMOUNTS}
    values.update({name: int(getattr(row, name)) for name in _SNAPSHOT_COUNTS})
    return PeriodicSnapshot(
        period_id=row.period_id,
        period_date=row.period_date,
        base_currency=row.base_currency,
        **values,
    )


def fetch_snapshots(
    session: Session,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> list[PeriodicSnapshot]:
    """Stored snapshots with start <= period_date <= end, oldest first."""
    stmt = select(SnapshotRow)
    if start is not None:
        stmt = stmt.where(SnapshotRow.period_date >= start)
    if end is not None:
        stmt = stmt.where(SnapshotRow.period_date <= end)
    stmt = stmt.order_by(SnapshotRow.period_date, SnapshotRow.period_id)
    return [_snapshot_from_row(row) for row in session.scalars(stmt)]


def recent_snapshots(
    session: Session,
    days: int = 30,
    today: Optional[date] = None,
) -> list[PeriodicSnapshot]:
    """Snapshots from the last `days` days, oldest first."""
    today = today or date.today()
    return fetch_snapshots(session, start=today - timedelta(days=days), end=today)


def fetch_aggregated_holdings(session: Session) -> list[AggregatedHolding]:
    """The aggregated view written by the last successful run."""
    rows = session.scalars(
        select(AggregatedHoldingRow).order_by(
            AggregatedHoldingRow.canonical_id, AggregatedHoldingRow.currency
        )
    )
    return [
        AggregatedHolding(
            canonical_id=row.canonical_id,
            display_name=row.display_name,
            treatment=TreatmentPolicy(row.treatment),
            currency=row.currency,
            total_quantity=_dec(row.total_quantity),
            avg_cost_per_unit=_dec(row.avg_cost_per_unit),
            total_cost_original=_dec(row.total_cost_original),
            account_count=row.account_count,
            current_price=_dec(row.current_price),
            fx_rate=_dec(row.fx_rate),
            cost_base=_dec(row.cost_base),
            value_base=_dec(row.value_base),
            pl_ratio=_dec(row.pl_ratio),
            cost_share_pct=_dec(row.cost_share_pct),
            value_share_pct=_dec(row.value_share_pct),
            quote_missing=bool(row.quote_missing),
            rate_missing=bool(row.rate_missing),
        )
        for row in rows
    ]


def table_counts(session: Session) -> dict[str, int]:
    """Row count of every store table."""
    return {
        name: session.scalar(select(func.count()).select_from(model)) or 0
        for name, model in STORE_TABLES.items()
    }
