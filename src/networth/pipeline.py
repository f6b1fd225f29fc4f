"""
Recompute pipeline for the Net Worth Aggregation Engine.

Wires the stages together:

    normalize -> aggregate -> resolve/value -> allocate -> balance sheet -> snapshot

`compute_portfolio` is pure: it takes everything it needs as arguments and
touches neither the store nor the network. `recompute` wraps it with the
run lock, the upstream read and the single output transaction.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from networth.analytics.allocation import allocate, portfolio_totals
from networth.analytics.balance_sheet import assemble_balance_sheet
from networth.config import EngineConfig
from networth.data.lock import advisory_lock, default_owner, lock_holder, utcnow
from networth.data.store import (
    TransactionFailure,
    UpstreamReadError,
    load_inputs,
    write_run_outputs,
)
from networth.logging.decision_log import DecisionLogger
from networth.models import (
    AggregatedHolding,
    BalanceSheet,
    PeriodicSnapshot,
    PortfolioInputs,
    RunDiagnostics,
    RunSummary,
)
from networth.portfolio.aggregation import aggregate_holdings
from networth.portfolio.normalizer import DEFAULT_RULES, FaceValueRules, normalize_holdings
from networth.portfolio.rates import QuoteBook, RateBook
from networth.portfolio.valuation import average_pl_ratio, value_holdings


logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Everything one computation produced, before it is persisted."""
    period_id: str
    holdings: list[AggregatedHolding]
    balance_sheet: BalanceSheet
    snapshot: PeriodicSnapshot
    diagnostics: RunDiagnostics
    total_cost_base: Decimal
    total_value_base: Decimal

    def summary(self) -> RunSummary:
        """Counts for logging and alerting."""
        return RunSummary(
            period_id=self.period_id,
            skipped=False,
            instruments_processed=len(self.holdings),
            total_cost_base=self.total_cost_base,
            total_value_base=self.total_value_base,
            average_pl_ratio=average_pl_ratio(self.holdings),
            net_worth_base=self.snapshot.total_net_worth_base,
            skipped_rows=self.diagnostics.skipped_count,
            missing_rates=tuple(sorted(self.diagnostics.missing_rates)),
            missing_quotes=tuple(sorted(self.diagnostics.missing_quotes)),
            degraded_categories=tuple(self.diagnostics.degraded_categories),
        )


def compute_portfolio(
    inputs: PortfolioInputs,
    base_currency: str,
    period_key: date,
    rules: FaceValueRules = DEFAULT_RULES,
    missing_rate_policy: str = "fallback",
) -> PipelineResult:
    """
    Run every stage over one set of inputs.

    Deterministic: the same inputs always give the same result.

    Args:
        inputs: Upstream holdings, quotes, rates, other assets and balances
        base_currency: Currency all figures are converted into
        period_key: Date the snapshot is recorded under
        rules: Face-value classification rules
        missing_rate_policy: "fallback" or "degrade" for other assets and
            account balances

    Returns:
        PipelineResult
    """
    diagnostics = RunDiagnostics()
    quotes = QuoteBook(inputs.quotes)
    rates = RateBook(inputs.rates)

    normalized = normalize_holdings(inputs.holdings, base_currency, rules, diagnostics)
    aggregated = aggregate_holdings(normalized.holdings)
    valued = value_holdings(aggregated, quotes, rates, base_currency, diagnostics)
    holdings = allocate(valued)
    total_cost, total_value = portfolio_totals(holdings)

    sheet = assemble_balance_sheet(
        holdings,
        list(inputs.other_assets),
        list(inputs.balances),
        rates,
        base_currency,
        missing_rate_policy,
        diagnostics,
    )
    snapshot = PeriodicSnapshot.from_balance_sheet(sheet, period_key)

    logger.info(
        "Computed %d instruments for %s: value %s %s, net worth %s %s",
        len(holdings), snapshot.period_id,
        total_value, base_currency,
        snapshot.total_net_worth_base, base_currency,
    )

    return PipelineResult(
        period_id=snapshot.period_id,
        holdings=holdings,
        balance_sheet=sheet,
        snapshot=snapshot,
        diagnostics=diagnostics,
        total_cost_base=total_cost,
        total_value_base=total_value,
    )


def recompute(
    engine: Engine,
    config: EngineConfig,
    period_key: Optional[date] = None,
    decision_logger: Optional[DecisionLogger] = None,
    owner: Optional[str] = None,
    clock: Callable[[], datetime] = utcnow,
) -> RunSummary:
    """
    Recompute the aggregated holdings and the period's balance sheet.

    Holds the advisory lock for the whole run. If another run holds it, this
    run does nothing and returns a summary with skipped=True.

    Args:
        engine: Store engine
        config: Engine configuration
        period_key: Snapshot date (defaults to today)
        decision_logger: Optional decision log to record the run in
        owner: Lock owner identity (defaults to host:pid)
        clock: UTC clock used for the lock lease

    Returns:
        RunSummary

    Raises:
        UpstreamReadError: If upstream tables cannot be read
        TransactionFailure: If the outputs cannot be written; the previous
            outputs are left untouched
    """
    period_key = period_key or date.today()
    period_id = period_key.isoformat()
    owner = owner or default_owner()

    with advisory_lock(
        engine, config.lock_name, config.lock_timeout_seconds, owner, clock
    ) as acquired:
        if not acquired:
            holder = lock_holder(engine, config.lock_name)
            logger.warning(
                "Lock %r is held by %s; skipping run for %s",
                config.lock_name, holder, period_id,
            )
            if decision_logger:
                decision_logger.log_run_skipped(period_id, config.lock_name, holder)
            return RunSummary(period_id=period_id, skipped=True)

        logger.info("Recompute started for %s as %s", period_id, owner)
        if decision_logger:
            decision_logger.log_run_started(period_id, config.base_currency, owner)

        try:
            with Session(engine) as session:
                inputs = load_inputs(session)

            result = compute_portfolio(
                inputs,
                config.base_currency,
                period_key,
                FaceValueRules.from_config(config.face_value),
                config.other_asset_missing_rate_policy,
            )

            write_run_outputs(engine, result.holdings, result.snapshot)
        except (UpstreamReadError, TransactionFailure) as e:
            logger.error("Recompute failed for %s: %s", period_id, e)
            if decision_logger:
                decision_logger.log_run_failed(period_id, e)
            raise

    if decision_logger:
        decision_logger.log_holdings_aggregated(
            period_id, result.holdings, result.total_cost_base, result.total_value_base
        )
        decision_logger.log_diagnostics(period_id, result.diagnostics)
        decision_logger.log_snapshot_written(result.snapshot)

    summary = result.summary()
    logger.info(
        "Recompute finished for %s: %d instruments, %d rows skipped, "
        "%d missing rates, %d missing quotes",
        period_id, summary.instruments_processed, summary.skipped_rows,
        len(summary.missing_rates), len(summary.missing_quotes),
    )
    return summary
