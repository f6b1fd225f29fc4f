"""
Tests for the quote and exchange-rate refresh jobs.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

import pytest
from sqlalchemy.orm import Session

from networth.data.providers.base import MarketDataProvider, ProviderError
from networth.data.refresh import (
    quote_targets,
    rate_currencies,
    refresh_quotes,
    refresh_rates,
)
from networth.data.store import import_inputs, load_inputs


NOW = datetime(2024, 7, 1, 9, 30)


class FakeProvider(MarketDataProvider):
    """In-memory provider; codes listed in `failing` raise ProviderError."""

    def __init__(self, quotes=None, rates=None, failing=()):
        self.quotes = quotes or {}
        self.rates = rates or {}
        self.failing = set(failing)
        self.requested: list[str] = []

    @property
    def name(self) -> str:
        return "Fake"

    def get_quote(self, code: str, currency: str) -> Optional[Decimal]:
        self.requested.append(code)
        if code in self.failing:
            raise ProviderError(f"{code} unavailable")
        return self.quotes.get(code)

    def get_exchange_rate(self, from_currency: str, to_currency: str) -> Optional[Decimal]:
        self.requested.append(from_currency)
        if from_currency in self.failing:
            raise ProviderError(f"{from_currency} unavailable")
        return self.rates.get(from_currency)


@pytest.fixture
def loaded_store(store_engine, sample_inputs):
    with Session(store_engine) as session, session.begin():
        import_inputs(
            session,
            holdings=sample_inputs.holdings,
            quotes=sample_inputs.quotes,
            rates=sample_inputs.rates,
            other_assets=sample_inputs.other_assets,
            balances=sample_inputs.balances,
        )
    return store_engine


def _stored(engine):
    with Session(engine) as session:
        return load_inputs(session)


class TestQuoteTargets:
    """Tests for quote_targets."""

    def test_excludes_cash_and_face_value(self, sample_holdings):
        assert quote_targets(sample_holdings, "CNY") == [("0700", "HKD"), ("AAPL", "USD")]

    def test_missing_currency_uses_base(self, make_holding):
        assert quote_targets([make_holding("600519", "1", currency=None)], "CNY") == [("600519", "CNY")]


class TestRefreshQuotes:
    """Tests for refresh_quotes."""

    def test_updates_and_counts_failures(self, loaded_store):
        provider = FakeProvider(quotes={"AAPL": Decimal("16")}, failing={"0700"})

        result = refresh_quotes(loaded_store, provider, "CNY", clock=lambda: NOW)

        assert result.requested == 2
        assert result.updated == ["AAPL"]
        assert list(result.failed) == ["0700"]
        assert result.success_count == 1

        quotes = {q.instrument_code: q for q in _stored(loaded_store).quotes}
        assert quotes["AAPL"].price == Decimal("16")
        assert quotes["AAPL"].as_of == NOW
        assert quotes["0700"].price == Decimal("350")

    def test_not_found(self, loaded_store):
        result = refresh_quotes(loaded_store, FakeProvider(), "CNY", clock=lambda: NOW)

        assert result.not_found == ["0700", "AAPL"]
        assert result.updated == []
        assert len(_stored(loaded_store).quotes) == 2

    def test_face_value_not_requested(self, loaded_store):
        provider = FakeProvider()
        refresh_quotes(loaded_store, provider, "CNY", clock=lambda: NOW)

        assert "US_TBill" not in provider.requested
        assert "TF Float A" not in provider.requested


class TestRefreshRates:
    """Tests for refresh_rates."""

    def test_currencies_from_store(self, loaded_store):
        assert rate_currencies(loaded_store, "CNY") == ["CNY", "HKD", "USD"]
        assert rate_currencies(loaded_store, "CNY", extra=["eur"]) == ["CNY", "EUR", "HKD", "USD"]

    def test_refresh_all(self, loaded_store):
        provider = FakeProvider(rates={"USD": Decimal("7.2")})

        result = refresh_rates(loaded_store, provider, "CNY", clock=lambda: NOW)

        assert result.requested == 2
        assert result.updated == ["USD"]
        assert result.not_found == ["HKD"]
        assert "CNY" not in provider.requested

        rates = {(r.from_currency, r.to_currency): r.rate for r in _stored(loaded_store).rates}
        assert rates[("USD", "CNY")] == Decimal("7.2")
        assert rates[("HKD", "CNY")] == Decimal("0.9")
        assert rates[("CNY", "CNY")] == Decimal("1")

    def test_explicit_currencies(self, loaded_store):
        provider = FakeProvider(rates={"EUR": Decimal("7.8")}, failing={"GBP"})

        result = refresh_rates(
            loaded_store, provider, "cny", currencies=["eur", "gbp", "CNY"], clock=lambda: NOW
        )

        assert result.requested == 2
        assert result.updated == ["EUR"]
        assert "GBP" in result.failed

        rates = {(r.from_currency, r.to_currency): r for r in _stored(loaded_store).rates}
        assert rates[("EUR", "CNY")].rate == Decimal("7.8")
        assert rates[("EUR", "CNY")].as_of == NOW
