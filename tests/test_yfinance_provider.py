"""
Tests for the Yahoo Finance data provider.

All tests use a mocked yfinance module; no network access is needed.
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from networth.data.providers.base import ProviderError
from networth.data.providers.yfinance_provider import YFinanceProvider


def _history(closes):
    return pd.DataFrame({"Close": closes})


@pytest.fixture
def provider():
    """Provider whose yfinance module is a mock."""
    provider = YFinanceProvider(max_retries=3, retry_delay=0)
    provider._yf = MagicMock()
    return provider


def _set_history(provider, history):
    provider._yf.Ticker.return_value.history.return_value = history


class TestSymbolFor:
    """Tests for broker code -> Yahoo symbol mapping."""

    @pytest.mark.parametrize(
        "code,currency,expected",
        [
            ("AAPL", "USD", "AAPL"),
            ("BRK B", "USD", "BRK-B"),
            ("SHEL", "GBP", "SHEL.L"),
            ("RY", "CAD", "RY.TO"),
            ("0700", "HKD", "0700.HK"),
            ("VOD.L", "GBP", "VOD.L"),
            ("SAP", None, "SAP"),
        ],
    )
    def test_mapping(self, code, currency, expected):
        assert YFinanceProvider().symbol_for(code, currency) == expected

    def test_override(self):
        provider = YFinanceProvider(symbol_overrides={"tencent": "0700.HK"})
        assert provider.symbol_for("TENCENT", "USD") == "0700.HK"


class TestGetQuote:
    """Tests for get_quote."""

    def test_latest_close(self, provider):
        _set_history(provider, _history([10.0, 11.5]))

        assert provider.get_quote("AAPL", "USD") == Decimal("11.5")
        provider._yf.Ticker.assert_called_with("AAPL")

    def test_pence_converted_to_pounds(self, provider):
        _set_history(provider, _history([2550.0]))

        assert provider.get_quote("SHEL", "GBP") == Decimal("25.5")
        provider._yf.Ticker.assert_called_with("SHEL.L")

    def test_skips_trailing_nan(self, provider):
        _set_history(provider, _history([10.0, float("nan")]))
        assert provider.get_quote("AAPL", "USD") == Decimal("10.0")

    def test_empty_history(self, provider):
        _set_history(provider, pd.DataFrame())
        assert provider.get_quote("NOPE", "USD") is None

    def test_non_positive_close(self, provider):
        _set_history(provider, _history([0.0]))
        assert provider.get_quote("DEAD", "USD") is None

    def test_retries_then_succeeds(self, provider):
        provider._yf.Ticker.return_value.history.side_effect = [
            ConnectionError("reset"),
            _history([12.0]),
        ]

        with patch("networth.data.providers.yfinance_provider.time.sleep"):
            assert provider.get_quote("AAPL", "USD") == Decimal("12.0")

        assert provider._yf.Ticker.return_value.history.call_count == 2

    def test_gives_up_after_max_retries(self, provider):
        provider._yf.Ticker.return_value.history.side_effect = ConnectionError("down")

        with patch("networth.data.providers.yfinance_provider.time.sleep"):
            with pytest.raises(ProviderError, match="after 3 attempts"):
                provider.get_quote("AAPL", "USD")


class TestGetExchangeRate:
    """Tests for get_exchange_rate."""

    def test_pair_symbol(self, provider):
        _set_history(provider, _history([7.1]))

        assert provider.get_exchange_rate("usd", "cny") == Decimal("7.1")
        provider._yf.Ticker.assert_called_with("USDCNY=X")

    def test_same_currency(self, provider):
        assert provider.get_exchange_rate("CNY", "cny") == Decimal("1")
        provider._yf.Ticker.assert_not_called()

    def test_name(self, provider):
        assert provider.name == "YahooFinance"
