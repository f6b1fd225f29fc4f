"""
Yahoo Finance data provider implementation.

Uses the yfinance library to fetch the latest close price of instruments and
currency pairs.
"""

import logging
import time
from decimal import Decimal
from typing import Optional

import pandas as pd
import yfinance as yf

from networth.data.providers.base import MarketDataProvider, ProviderError


logger = logging.getLogger(__name__)


class YFinanceProvider(MarketDataProvider):
    """
    Data provider using Yahoo Finance for quotes and FX rates.

    Features:
    - Maps broker codes to Yahoo symbols using the position currency
      (e.g. GBP positions list on the LSE as CODE.L)
    - Converts LSE quotes from pence to pounds
    - Retries failed requests with linear backoff
    """

    # Listing exchange suffix by position currency
    EXCHANGE_SUFFIXES = {
        "GBP": ".L",
        "CAD": ".TO",
        "HKD": ".HK",
    }

    # Suffixes whose quotes are in minor units (pence)
    MINOR_UNIT_SUFFIXES = (".L",)

    # Days of history requested; covers weekends and holidays
    LOOKBACK_PERIOD = "5d"

    def __init__(
        self,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        symbol_overrides: Optional[dict[str, str]] = None,
    ):
        """
        Initialize Yahoo Finance provider.

        Args:
            max_retries: Maximum retries for failed requests
            retry_delay: Delay between retries (seconds)
            symbol_overrides: Broker code -> Yahoo symbol for codes the
                              default mapping gets wrong
        """
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._overrides = {k.upper(): v for k, v in (symbol_overrides or {}).items()}
        self._yf = yf

    @property
    def name(self) -> str:
        return "YahooFinance"

    def symbol_for(self, code: str, currency: str) -> str:
        """
        Yahoo symbol for a broker code.

        Share-class spaces become dashes ("BRK B" -> "BRK-B"); codes that
        already carry an exchange suffix are left alone.
        """
        code = code.strip()
        if code.upper() in self._overrides:
            return self._overrides[code.upper()]

        symbol = code.replace(" ", "-")
        suffix = self.EXCHANGE_SUFFIXES.get((currency or "").upper())
        if suffix and "." not in symbol:
            symbol = f"{symbol}{suffix}"
        return symbol

    def get_quote(self, code: str, currency: str) -> Optional[Decimal]:
        symbol = self.symbol_for(code, currency)
        price = self._latest_close(symbol)
        if price is None:
            return None
        if symbol.endswith(self.MINOR_UNIT_SUFFIXES):
            price = price / Decimal("100")
        return price

    def get_exchange_rate(self, from_currency: str, to_currency: str) -> Optional[Decimal]:
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return Decimal("1")
        return self._latest_close(f"{from_currency}{to_currency}=X")

    def _latest_close(self, symbol: str) -> Optional[Decimal]:
        """Most recent non-NaN close for a symbol, or None when there is none."""
        history = None
        for attempt in range(self._max_retries):
            try:
                history = self._yf.Ticker(symbol).history(period=self.LOOKBACK_PERIOD)
                break
            except Exception as e:
                if attempt < self._max_retries - 1:
                    logger.debug("Retrying %s after error: %s", symbol, e)
                    time.sleep(self._retry_delay * (attempt + 1))
                else:
                    raise ProviderError(
                        f"Failed to fetch {symbol} after {self._max_retries} attempts: {e}"
                    )

        if history is None or history.empty or "Close" not in history.columns:
            return None

        closes = history["Close"].dropna()
        if closes.empty:
            return None

        value = closes.iloc[-1]
        if pd.isna(value) or value <= 0:
            return None
        return Decimal(str(float(value)))
