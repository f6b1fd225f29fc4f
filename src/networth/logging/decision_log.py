"""
Append-only decision logging for the Net Worth Aggregation Engine.

Every recompute run records what it did and which rows, rates, quotes or
categories it had to work around, so that a snapshot can be traced back to
the data quality of the inputs it was built from.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from networth.config import EngineConfig
from networth.models import (
    ActionType,
    AggregatedHolding,
    DecisionLogEntry,
    PeriodicSnapshot,
    RunDiagnostics,
)


# Cap on identifiers listed in a single entry
MAX_LISTED = 20


class DecisionLogger:
    """
    JSONL run journal.

    One JSON object per line, never rewritten. Entries are keyed by the
    period they belong to so a snapshot can be traced to its runs.
    """

    def __init__(self, log_path: str | Path):
        """
        Args:
            log_path: JSONL file; its parent directory is created on demand
        """
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, entry: DecisionLogEntry) -> None:
        """Append one entry as a single JSON line."""
        line = json.dumps(_to_record(entry), cls=DecimalEncoder)
        with self.log_path.open("a", encoding="utf-8") as out:
            out.write(line + "\n")

    def _write(self, action_type: ActionType, period_id: Optional[str], details: dict) -> None:
        self.log(DecisionLogEntry.create(action_type, period_id, details))

    def log_config_loaded(self, config: EngineConfig, config_path: str) -> None:
        """Record the effective settings a run was started with."""
        details = {
            "source": config_path,
            "base_currency": config.base_currency,
            "lock_name": config.lock_name,
            "lock_timeout_seconds": config.lock_timeout_seconds,
            "other_asset_missing_rate_policy": config.other_asset_missing_rate_policy,
            "face_value_id": config.face_value.canonical_id,
        }
        self._write(ActionType.CONFIG_LOADED, None, details)

    def log_run_started(self, period_id: str, base_currency: str, owner: str) -> None:
        self._write(
            ActionType.RUN_STARTED,
            period_id,
            {"base_currency": base_currency, "owner": owner},
        )

    def log_run_skipped(self, period_id: str, lock_name: str, holder: Optional[str]) -> None:
        """Log a run that did nothing because another run holds the lock."""
        self._write(
            ActionType.RUN_SKIPPED,
            period_id,
            {"reason": "lock unavailable", "lock_name": lock_name, "holder": holder},
        )

    def log_run_failed(self, period_id: str, error: Exception) -> None:
        self._write(
            ActionType.RUN_FAILED,
            period_id,
            {"error_type": type(error).__name__, "error": str(error)},
        )

    def log_diagnostics(self, period_id: str, diagnostics: RunDiagnostics) -> None:
        """
        Log every row-level issue recovered during a run.

        One entry per issue kind; kinds with nothing to report are omitted.

        Args:
            period_id: Period of the run
            diagnostics: Diagnostics collected by the pipeline
        """
        if diagnostics.skipped_rows or diagnostics.cash_rows_excluded:
            reasons: dict[str, int] = {}
            for _, reason in diagnostics.skipped_rows:
                reasons[reason] = reasons.get(reason, 0) + 1
            self._write(
                ActionType.ROWS_SKIPPED,
                period_id,
                {
                    "skipped_count": diagnostics.skipped_count,
                    "reasons": reasons,
                    "cash_rows_excluded": diagnostics.cash_rows_excluded,
                    "rows": [
                        {"account_id": h.account_id, "instrument_code": h.instrument_code, "reason": r}
                        for h, r in diagnostics.skipped_rows[:MAX_LISTED]
                    ],
                },
            )

        if diagnostics.missing_rates:
            self._write(
                ActionType.RATES_MISSING,
                period_id,
                {"currencies": sorted(diagnostics.missing_rates), "fallback_rate": "1"},
            )

        if diagnostics.missing_quotes:
            missing = sorted(diagnostics.missing_quotes)
            self._write(
                ActionType.QUOTES_MISSING,
                period_id,
                {"count": len(missing), "instruments": missing[:MAX_LISTED]},
            )

        if diagnostics.degraded_categories:
            self._write(
                ActionType.CATEGORY_DEGRADED,
                period_id,
                {"categories": list(diagnostics.degraded_categories)},
            )

    def log_holdings_aggregated(
        self,
        period_id: str,
        holdings: list[AggregatedHolding],
        total_cost: Decimal,
        total_value: Decimal,
    ) -> None:
        """
        Log the aggregated securities view.

        Args:
            period_id: Period of the run
            holdings: Valued and allocated holdings
            total_cost: Portfolio cost in base currency
            total_value: Portfolio value in base currency
        """
        details = {
            "instrument_count": len(holdings),
            "face_value_count": sum(1 for h in holdings if h.is_face_value),
            "total_cost_base": str(total_cost),
            "total_value_base": str(total_value),
            "currencies": sorted(set(h.currency for h in holdings)),
        }
        self._write(ActionType.HOLDINGS_AGGREGATED, period_id, details)

    def log_snapshot_written(self, snapshot: PeriodicSnapshot) -> None:
        details = {
            "period_date": snapshot.period_date.isoformat(),
            "base_currency": snapshot.base_currency,
            "total_net_worth_base": str(snapshot.total_net_worth_base),
            "securities_value_base": str(snapshot.securities_value_base),
            "total_debt_base": str(snapshot.total_debt_base),
        }
        self._write(ActionType.SNAPSHOT_WRITTEN, snapshot.period_id, details)

    def read_log(self) -> list[DecisionLogEntry]:
        """Load every entry in file order; a missing file reads as empty."""
        if not self.log_path.exists():
            return []
        with self.log_path.open(encoding="utf-8") as src:
            return [_from_record(json.loads(raw)) for raw in src if raw.strip()]

    def filter_by_period(self, period_id: str) -> list[DecisionLogEntry]:
        return [e for e in self.read_log() if e.period_id == period_id]

    def filter_by_action_type(self, action_type: ActionType) -> list[DecisionLogEntry]:
        return [e for e in self.read_log() if e.action_type is action_type]


def _to_record(entry: DecisionLogEntry) -> dict[str, Any]:
    return {
        "timestamp": entry.timestamp.isoformat(),
        "action_type": entry.action_type.value,
        "period_id": entry.period_id,
        "details": entry.details,
    }


def _from_record(record: dict[str, Any]) -> DecisionLogEntry:
    return DecisionLogEntry(
        timestamp=datetime.fromisoformat(record["timestamp"]),
        action_type=ActionType(record["action_type"]),
        period_id=record.get("period_id"),
        details=record.get("details") or {},
    )


class DecimalEncoder(json.JSONEncoder):
    """Serializes Decimal as str, dates as ISO strings and sets as sorted lists."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (date, datetime)):
            return obj.isoformat()
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return super().default(obj)


DEFAULT_LOG_PATH = Path("output") / "decision_log.jsonl"

_global_logger: Optional[DecisionLogger] = None


def get_logger(log_path: Optional[str | Path] = None) -> DecisionLogger:
    """
    Return the process-wide logger.

    The first call creates it (at DEFAULT_LOG_PATH when no path is given);
    passing a path later rebinds it to that file.
    """
    global _global_logger

    if log_path is not None:
        _global_logger = DecisionLogger(log_path)
    elif _global_logger is None:
        _global_logger = DecisionLogger(DEFAULT_LOG_PATH)
    return _global_logger


def log_action(
    action_type: ActionType,
    period_id: Optional[str],
    details: dict,
    log_path: Optional[str | Path] = None,
) -> None:
    """Append a single entry through the process-wide logger."""
    get_logger(log_path).log(DecisionLogEntry.create(action_type, period_id, details))
