"""
Daily runner script for the net-worth snapshot.

This script is designed to be run daily (via cron or Task Scheduler):
1. Refreshes exchange rates into the base currency
2. Refreshes quotes for every held instrument
3. Recomputes aggregated holdings and today's balance-sheet snapshot

A failed refresh does not stop the recompute; the run then values against
the quotes and rates already in the store.

Usage:
    python scripts/daily_runner.py [--skip-refresh]

For automated scheduling with cron:
    0 18 * * * cd /path/to/repo && python scripts/daily_runner.py
"""

import sys
import logging
from pathlib import Path
from datetime import date

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from networth.config import load_engine_config
from networth.data.providers import ProviderError, YFinanceProvider
from networth.data.refresh import refresh_quotes, refresh_rates
from networth.data.store import (
    TransactionFailure,
    UpstreamReadError,
    create_store_engine,
    init_store,
)
from networth.logging import get_logger
from networth.pipeline import recompute
from networth.portfolio.normalizer import FaceValueRules


# Configure logging
log_dir = Path(__file__).parent.parent / "logs"
log_dir.mkdir(exist_ok=True)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[
        logging.FileHandler(log_dir / "daily_runs.log"),
        logging.StreamHandler(),
    ],
)
logger = logging.getLogger(__name__)


def run_daily_update(skip_refresh: bool = False) -> dict:
    """
    Run the daily refresh and recompute.

    Returns:
        Dict with run results
    """
    config = load_engine_config()
    engine = create_store_engine(config.database_url)
    init_store(engine)

    results = {
        "run_date": date.today().isoformat(),
        "success": False,
        "error": None,
    }

    if not skip_refresh:
        provider = YFinanceProvider()
        try:
            rates = refresh_rates(engine, provider, config.base_currency)
            results["rates_updated"] = rates.success_count
            quotes = refresh_quotes(
                engine,
                provider,
                config.base_currency,
                FaceValueRules.from_config(config.face_value),
            )
            results["quotes_updated"] = quotes.success_count
        except (ProviderError, UpstreamReadError) as e:
            logger.error(f"Refresh failed, continuing with stored data: {e}")

    decision_logger = get_logger(config.decision_log_path)
    try:
        summary = recompute(engine, config, decision_logger=decision_logger)
    except (UpstreamReadError, TransactionFailure) as e:
        logger.error(f"Recompute failed: {e}")
        results["error"] = str(e)
        return results

    if summary.skipped:
        logger.info("Another run holds the lock; nothing done")
        results["skipped"] = True
        results["success"] = True
        return results

    logger.info(f"Snapshot recorded for {summary.period_id}:")
    logger.info(f"  Instruments: {summary.instruments_processed}")
    logger.info(f"  Net worth: {float(summary.net_worth_base):,.2f} {config.base_currency}")
    if summary.missing_rates:
        logger.warning(f"  Missing rates: {', '.join(summary.missing_rates)}")
    if summary.missing_quotes:
        logger.warning(f"  Missing quotes: {len(summary.missing_quotes)}")

    results["net_worth_base"] = float(summary.net_worth_base)
    results["success"] = True
    return results


def main():
    """Main entry point for daily runner."""
    skip_refresh = "--skip-refresh" in sys.argv[1:]

    logger.info("=" * 60)
    logger.info(f"Daily Runner Started: {date.today().isoformat()}")
    logger.info("=" * 60)

    results = run_daily_update(skip_refresh=skip_refresh)

    logger.info("=" * 60)
    logger.info(f"Daily Runner Complete: {'success' if results['success'] else 'failed'}")
    logger.info("=" * 60)

    return 0 if results["success"] else 1


if __name__ == "__main__":
    sys.exit(main())
