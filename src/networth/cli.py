"""
Command-line interface for the Net Worth Aggregation Engine.

Provides commands for:
- init-db: Create the store tables
- import: Load broker holdings, quotes, rates, other assets and balances
- recompute: Rebuild aggregated holdings and the period's balance sheet
- holdings: Show the aggregated holdings
- history / report: Net-worth history from stored snapshots
- validate / face-value: Data-quality checks
- refresh-quotes / refresh-rates: Update quotes and FX rates from Yahoo Finance
"""

import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import click
from sqlalchemy.orm import Session

from networth import __version__
from networth.analytics.audit import (
    face_value_cost_deviations,
    face_value_summary,
    find_missing_rates,
    table_counts,
)
from networth.analytics.history import HistorySummary, summarize_history
from networth.config import ConfigurationError, EngineConfig, load_engine_config
from networth.data import (
    load_account_balances,
    load_exchange_rates,
    load_other_assets,
    load_quotes,
    load_raw_holdings,
    save_aggregated_holdings,
    save_snapshots,
)
from networth.data.loaders import DataLoadError
from networth.data.providers import ProviderError, YFinanceProvider
from networth.data.refresh import refresh_quotes, refresh_rates
from networth.data.store import (
    TransactionFailure,
    UpstreamReadError,
    create_store_engine,
    fetch_aggregated_holdings,
    fetch_snapshots,
    import_inputs,
    init_store,
    load_inputs,
    recent_snapshots,
)
from networth.logging import get_logger
from networth.models import AggregatedHolding
from networth.pipeline import recompute as run_recompute
from networth.portfolio.normalizer import FaceValueRules
from networth.portfolio.valuation import calculate_portfolio_return, get_gainers_and_losers


def _parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        click.echo(f"Invalid date format: {value}. Use YYYY-MM-DD.", err=True)
        sys.exit(1)


def _config(ctx: click.Context) -> EngineConfig:
    return ctx.obj["config"]


def _engine(ctx: click.Context):
    return create_store_engine(_config(ctx).database_url)


@click.group()
@click.version_option(version=__version__, prog_name="networth")
@click.option(
    "--config", "-c",
    "config_path",
    type=click.Path(exists=True),
    default=None,
    help="Path to engine configuration YAML file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], verbose: bool):
    """
    Net Worth Aggregation Engine.

    Consolidates holdings from many brokerage accounts, currencies and asset
    types into one valuation and dated net-worth snapshots.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = load_engine_config(config_path)
    except ConfigurationError as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path or "<defaults>"


@main.command("init-db")
@click.pass_context
def init_db(ctx: click.Context):
    """Create the store tables if they do not exist."""
    engine = _engine(ctx)
    init_store(engine)
    click.echo(f"Store ready: {engine.url}")


@main.command("import")
@click.option("--holdings", "-h", "holdings_path", type=click.Path(exists=True), help="Broker holdings CSV/Parquet")
@click.option("--quotes", "-q", "quotes_path", type=click.Path(exists=True), help="Quotes CSV/Parquet")
@click.option("--rates", "-r", "rates_path", type=click.Path(exists=True), help="Exchange rates CSV/Parquet")
@click.option("--other-assets", "-a", "assets_path", type=click.Path(exists=True), help="Other assets CSV/Parquet")
@click.option("--balances", "-b", "balances_path", type=click.Path(exists=True), help="Account balances CSV/Parquet")
@click.pass_context
def import_files(
    ctx: click.Context,
    holdings_path: Optional[str],
    quotes_path: Optional[str],
    rates_path: Optional[str],
    assets_path: Optional[str],
    balances_path: Optional[str],
):
    """
    Import upstream data files into the store.

    Each given file replaces the corresponding table; tables without a file
    are left untouched.
    """
    if not any([holdings_path, quotes_path, rates_path, assets_path, balances_path]):
        click.echo("Nothing to import: pass at least one file option.", err=True)
        sys.exit(1)

    try:
        holdings = load_raw_holdings(holdings_path) if holdings_path else None
        quotes = load_quotes(quotes_path) if quotes_path else None
        rates = load_exchange_rates(rates_path) if rates_path else None
        assets = load_other_assets(assets_path) if assets_path else None
        balances = load_account_balances(balances_path) if balances_path else None
    except DataLoadError as e:
        click.echo(f"Error loading data: {e}", err=True)
        sys.exit(1)

    engine = _engine(ctx)
    init_store(engine)
    with Session(engine) as session, session.begin():
        written = import_inputs(
            session,
            holdings=holdings,
            quotes=quotes,
            rates=rates,
            other_assets=assets,
            balances=balances,
        )

    for table, count in written.items():
        click.echo(f"  {table}: {count} rows")


@main.command()
@click.option(
    "--period", "-p",
    type=str,
    default=None,
    help="Snapshot date (YYYY-MM-DD). Defaults to today.",
)
@click.pass_context
def recompute(ctx: click.Context, period: Optional[str]):
    """
    Rebuild the aggregated holdings and the period's balance sheet.
    """
    config = _config(ctx)
    period_key = _parse_date(period) if period else None

    decision_logger = get_logger(config.decision_log_path)
    decision_logger.log_config_loaded(config, ctx.obj["config_path"])

    engine = _engine(ctx)
    init_store(engine)

    try:
        summary = run_recompute(engine, config, period_key, decision_logger)
    except (UpstreamReadError, TransactionFailure) as e:
        click.echo(f"Recompute failed: {e}", err=True)
        sys.exit(1)

    if summary.skipped:
        click.echo(f"Another run holds the lock; nothing done for {summary.period_id}.")
        return

    currency = config.base_currency
    click.echo()
    click.echo(f"Recompute ({summary.period_id}):")
    click.echo(f"  Instruments:   {summary.instruments_processed}")
    click.echo(f"  Total cost:    {summary.total_cost_base:,.2f} {currency}")
    click.echo(f"  Total value:   {summary.total_value_base:,.2f} {currency}")
    click.echo(f"  Average P/L:   {summary.average_pl_ratio:.2%}")
    click.echo(f"  Net worth:     {summary.net_worth_base:,.2f} {currency}")
    if summary.skipped_rows:
        click.echo(f"  Skipped rows:  {summary.skipped_rows}")
    if summary.missing_rates:
        click.echo(f"  Missing rates (used 1.0): {', '.join(summary.missing_rates)}")
    if summary.missing_quotes:
        click.echo(f"  Missing quotes (valued at 0): {len(summary.missing_quotes)}")
    if summary.degraded_categories:
        click.echo(f"  Degraded categories: {', '.join(summary.degraded_categories)}")


@main.command()
@click.option("--export", "-o", "export_path", type=click.Path(), default=None, help="Write holdings to CSV")
@click.option("--top", "-n", type=int, default=0, help="Only show the N largest by value")
@click.option("--movers", "-m", type=int, default=3, help="Gainers and losers to list (0 to hide)")
@click.pass_context
def holdings(ctx: click.Context, export_path: Optional[str], top: int, movers: int):
    """Show the aggregated holdings from the last recompute."""
    engine = _engine(ctx)
    init_store(engine)
    with Session(engine) as session:
        rows = fetch_aggregated_holdings(session)

    if not rows:
        click.echo("No aggregated holdings. Run `networth recompute` first.")
        return

    if export_path:
        path = save_aggregated_holdings(rows, export_path)
        click.echo(f"Holdings saved: {path}")

    shown = sorted(rows, key=lambda h: h.value_base, reverse=True)
    if top > 0:
        shown = shown[:top]

    base = _config(ctx).base_currency
    click.echo(f"{'Instrument':<16}{'Ccy':<5}{'Quantity':>14}{'Value (' + base + ')':>18}{'P/L':>10}{'Weight':>9}")
    for h in shown:
        flag = " *" if h.quote_missing or h.rate_missing else ""
        click.echo(
            f"{h.canonical_id:<16}{h.currency:<5}{h.total_quantity:>14,.2f}"
            f"{h.value_base:>18,.2f}{h.pl_ratio:>10.2%}{h.value_share_pct:>8.2f}%{flag}"
        )

    click.echo(f"\nPortfolio return: {calculate_portfolio_return(rows):.2%}")
    if movers > 0:
        gainers, losers = get_gainers_and_losers(rows, top_n=movers)
        _echo_movers("Top gainers", [h for h in gainers if h.pl_ratio > 0])
        _echo_movers("Top losers", [h for h in losers if h.pl_ratio < 0])


def _echo_movers(label: str, movers: list[AggregatedHolding]) -> None:
    if movers:
        click.echo(f"{label}: " + ", ".join(f"{h.canonical_id} ({h.pl_ratio:+.2%})" for h in movers))


def _echo_history(summary: HistorySummary, currency: str) -> None:
    if summary.record_count == 0:
        click.echo("No snapshots in range.")
        return
    click.echo(f"  Records:       {summary.record_count}")
    click.echo(f"  From:          {summary.start_date}  {summary.start_net_worth:,.2f} {currency}")
    click.echo(f"  To:            {summary.end_date}  {summary.end_net_worth:,.2f} {currency}")
    click.echo(f"  Change:        {summary.change:,.2f} {currency} ({summary.change_pct:.2f}%)")
    click.echo(f"  Avg per record: {summary.average_change:,.2f} {currency}")


@main.command()
@click.option("--days", "-d", type=int, default=30, help="Look-back window in days")
@click.pass_context
def history(ctx: click.Context, days: int):
    """Show net-worth history for the last N days."""
    engine = _engine(ctx)
    init_store(engine)
    with Session(engine) as session:
        snapshots = recent_snapshots(session, days)

    click.echo(f"Net worth, last {days} days:")
    for s in snapshots:
        click.echo(f"  {s.period_id}  {s.total_net_worth_base:>18,.2f}")
    _echo_history(summarize_history(snapshots), _config(ctx).base_currency)


@main.command()
@click.argument("start")
@click.argument("end")
@click.option("--export", "-o", "export_path", type=click.Path(), default=None, help="Write snapshots to CSV")
@click.pass_context
def report(ctx: click.Context, start: str, end: str, export_path: Optional[str]):
    """Balance-sheet report between START and END (YYYY-MM-DD)."""
    start_date, end_date = _parse_date(start), _parse_date(end)
    if start_date > end_date:
        click.echo("START must not be after END.", err=True)
        sys.exit(1)

    engine = _engine(ctx)
    init_store(engine)
    with Session(engine) as session:
        snapshots = fetch_snapshots(session, start_date, end_date)

    if export_path:
        path = save_snapshots(snapshots, export_path)
        click.echo(f"Snapshots saved: {path}")

    click.echo(f"Balance sheet report {start_date} to {end_date}:")
    _echo_history(summarize_history(snapshots), _config(ctx).base_currency)

    if snapshots:
        latest = snapshots[-1]
        click.echo(f"  Composition at {latest.period_id}:")
        for label, pct in [
            ("Securities", latest.securities_pct),
            ("Insurance", latest.insurance_pct),
            ("Funds", latest.funds_pct),
            ("Property", latest.properties_pct),
            ("Bank deposits", latest.bank_deposits_pct),
            ("Cash", latest.cash_pct),
        ]:
            click.echo(f"    {label:<14}{pct:>7.2f}%")


@main.command()
@click.pass_context
def validate(ctx: click.Context):
    """Check the store for data a recompute would have to work around."""
    config = _config(ctx)
    engine = _engine(ctx)
    init_store(engine)
    rules = FaceValueRules.from_config(config.face_value)

    try:
        with Session(engine) as session:
            counts = table_counts(session)
            inputs = load_inputs(session)
    except UpstreamReadError as e:
        click.echo(f"Error reading store: {e}", err=True)
        sys.exit(1)

    click.echo("Table counts:")
    for table, count in counts.items():
        click.echo(f"  {table:<24}{count:>8}")

    missing = find_missing_rates(inputs, config.base_currency)
    if missing:
        click.echo(f"Currencies without a rate to {config.base_currency}:")
        for currency, tables in missing.items():
            click.echo(f"  {currency}: {', '.join(tables)}")
    else:
        click.echo("All currencies have a rate.")

    deviations = face_value_cost_deviations(inputs.holdings, rules)
    if deviations:
        click.echo(f"Face-value rows with unit cost not 1.0: {len(deviations)}")
        for h in deviations:
            click.echo(f"  {h.account_id} {h.instrument_code}: {h.cost_per_unit}")


@main.command("face-value")
@click.pass_context
def face_value(ctx: click.Context):
    """Show the merged face-value position."""
    config = _config(ctx)
    engine = _engine(ctx)
    init_store(engine)
    rules = FaceValueRules.from_config(config.face_value)

    with Session(engine) as session:
        summaries = face_value_summary(fetch_aggregated_holdings(session), rules.canonical_id)

    if not summaries:
        click.echo(f"No {rules.canonical_id} position in the last recompute.")
        return

    for s in summaries:
        click.echo(f"{s.canonical_id} ({s.currency}):")
        click.echo(f"  Quantity:      {s.total_quantity:,.2f}")
        click.echo(f"  Accounts:      {s.account_count}")
        click.echo(f"  Value:         {s.value_base:,.2f} {config.base_currency}")
        click.echo(f"  Cost share:    {s.cost_share_pct:.2f}%")
        click.echo(f"  Value share:   {s.value_share_pct:.2f}%")


@main.command("refresh-quotes")
@click.pass_context
def refresh_quotes_command(ctx: click.Context):
    """Fetch the latest quote for every held instrument."""
    config = _config(ctx)
    engine = _engine(ctx)
    init_store(engine)

    try:
        result = refresh_quotes(
            engine,
            YFinanceProvider(),
            config.base_currency,
            FaceValueRules.from_config(config.face_value),
        )
    except (ProviderError, UpstreamReadError) as e:
        click.echo(f"Quote refresh failed: {e}", err=True)
        sys.exit(1)

    click.echo(f"Quotes: {result.success_count}/{result.requested} updated")
    if result.not_found:
        click.echo(f"  Not found: {', '.join(result.not_found)}")
    for code, error in result.failed.items():
        click.echo(f"  Failed {code}: {error}")


@main.command("refresh-rates")
@click.option(
    "--currency", "-C",
    "currencies",
    multiple=True,
    help="Currency to refresh (repeatable). Defaults to every currency in the store.",
)
@click.pass_context
def refresh_rates_command(ctx: click.Context, currencies: tuple[str, ...]):
    """Fetch the latest exchange rates into the base currency."""
    config = _config(ctx)
    engine = _engine(ctx)
    init_store(engine)

    try:
        result = refresh_rates(
            engine,
            YFinanceProvider(),
            config.base_currency,
            currencies or None,
        )
    except (ProviderError, UpstreamReadError) as e:
        click.echo(f"Rate refresh failed: {e}", err=True)
        sys.exit(1)

    click.echo(f"Rates: {result.success_count}/{result.requested} updated into {config.base_currency}")
    if result.not_found:
        click.echo(f"  Not found: {', '.join(result.not_found)}")
    for currency, error in result.failed.items():
        click.echo(f"  Failed {currency}: {error}")


if __name__ == "__main__":
    main()
