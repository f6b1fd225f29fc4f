"""
Pytest fixtures for the Net Worth Aggregation Engine tests.

Provides common test data and utilities used across test modules.
"""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pytest

from networth.config import EngineConfig
from networth.data.store import create_store_engine, init_store
from networth.models import (
    AccountBalance,
    AggregatedHolding,
    AssetCategory,
    ExchangeRate,
    OtherAsset,
    PortfolioInputs,
    Quote,
    RawHolding,
    TreatmentPolicy,
)


def _make_holding(
    code: Optional[str],
    quantity: Optional[str],
    cost: Optional[str] = "1",
    currency: Optional[str] = "USD",
    account: str = "ACC1",
    description: str = "",
    asset_class: str = "STK",
    display_name: str = "",
) -> RawHolding:
    """Build a RawHolding from string amounts."""
    return RawHolding(
        account_id=account,
        instrument_code=code,
        quantity=Decimal(quantity) if quantity is not None else None,
        cost_per_unit=Decimal(cost) if cost is not None else None,
        currency=currency,
        description=description,
        asset_class=asset_class,
        display_name=display_name,
    )


def _make_aggregated(
    canonical_id: str,
    cost_base: str = "0",
    value_base: str = "0",
    currency: str = "USD",
    treatment: TreatmentPolicy = TreatmentPolicy.STANDARD,
    quantity: str = "1",
) -> AggregatedHolding:
    """Build an already-valued AggregatedHolding."""
    return AggregatedHolding(
        canonical_id=canonical_id,
        display_name=canonical_id,
        treatment=treatment,
        currency=currency,
        total_quantity=Decimal(quantity),
        avg_cost_per_unit=Decimal(cost_base) / Decimal(quantity),
        total_cost_original=Decimal(cost_base),
        account_count=1,
        cost_base=Decimal(cost_base),
        value_base=Decimal(value_base),
    )


@pytest.fixture
def make_holding():
    """Factory for RawHolding rows."""
    return _make_holding


@pytest.fixture
def make_aggregated():
    """Factory for valued AggregatedHolding rows."""
    return _make_aggregated


@pytest.fixture
def sample_holdings() -> list[RawHolding]:
    """Holdings spread over three accounts, including T-bills and cash."""
    return [
        _make_holding("AAPL", "100", "10", account="IB1", display_name="Apple Inc"),
        _make_holding("AAPL", "50", "20", account="IB2", display_name="Apple Inc"),
        _make_holding("0700", "200", "300", currency="HKD", account="HK1", display_name="Tencent"),
        _make_holding("TF Float A", "1000", "0.98", account="IB1", asset_class="STK"),
        _make_holding("US_TBill", "500", "99.5", account="IB2", asset_class="STK"),
        _make_holding("CASH_USD", "5000", "1", account="IB1"),
        _make_holding(None, "10", "5", account="IB2"),
    ]


@pytest.fixture
def sample_quotes() -> list[Quote]:
    return [
        Quote("AAPL", Decimal("15"), "USD", datetime(2024, 6, 28, 16, 0)),
        Quote("0700", Decimal("350"), "HKD", datetime(2024, 6, 28, 8, 0)),
    ]


@pytest.fixture
def sample_rates() -> list[ExchangeRate]:
    return [
        ExchangeRate("USD", "CNY", Decimal("7"), datetime(2024, 6, 28)),
        ExchangeRate("HKD", "CNY", Decimal("0.9"), datetime(2024, 6, 28)),
    ]


@pytest.fixture
def sample_other_assets() -> list[OtherAsset]:
    return [
        OtherAsset("F1", AssetCategory.FUND, "CNY", cost=Decimal("900"), value=Decimal("1000")),
        OtherAsset("I1", AssetCategory.INSURANCE, "USD", value=Decimal("100")),
        OtherAsset("P1", AssetCategory.PROPERTY, "CNY", value=Decimal("5000"), debt=Decimal("2000")),
        OtherAsset("B1", AssetCategory.BANK_ACCOUNT, "CNY", deposit=Decimal("800"), loan=Decimal("300")),
    ]


@pytest.fixture
def sample_balances() -> list[AccountBalance]:
    return [
        AccountBalance("IB1", "USD", cash_original=Decimal("100"), debt_original=Decimal("10")),
        AccountBalance("HK1", "HKD", cash_original=Decimal("1000"), debt_original=Decimal("0")),
    ]


@pytest.fixture
def sample_inputs(
    sample_holdings,
    sample_quotes,
    sample_rates,
    sample_other_assets,
    sample_balances,
) -> PortfolioInputs:
    return PortfolioInputs(
        holdings=tuple(sample_holdings),
        quotes=tuple(sample_quotes),
        rates=tuple(sample_rates),
        other_assets=tuple(sample_other_assets),
        balances=tuple(sample_balances),
    )


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'networth.db'}"


@pytest.fixture
def store_engine(database_url: str):
    """A fresh, initialized SQLite store."""
    engine = create_store_engine(database_url)
    init_store(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def engine_config(database_url: str, tmp_path: Path) -> EngineConfig:
    return EngineConfig(
        database_url=database_url,
        base_currency="CNY",
        lock_timeout_seconds=60,
        output_dir=str(tmp_path / "output"),
        decision_log_path=str(tmp_path / "output" / "decision_log.jsonl"),
    )
