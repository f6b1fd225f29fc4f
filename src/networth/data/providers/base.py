"""
Abstract base class for market data providers.

Defines the interface used by the out-of-band quote and exchange-rate
refresh jobs. The engine itself never calls a provider during a run.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional


class ProviderError(Exception):
    """Raised when a data provider encounters an error."""
    pass


class MarketDataProvider(ABC):
    """
    Abstract base class for market data providers.

    Implementations must provide methods to fetch:
    - The latest price of an instrument
    - The latest exchange rate between two currencies
    """

    @abstractmethod
    def get_quote(self, code: str, currency: str) -> Optional[Decimal]:
        """
        Fetch the latest price of an instrument.

        Args:
            code: Instrument code as held in broker data
            currency: Currency the position is denominated in; providers may
                      use it to pick the listing exchange

        Returns:
            Price in `currency`, or None if the provider has no data

        Raises:
            ProviderError: If the request fails
        """
        pass

    @abstractmethod
    def get_exchange_rate(self, from_currency: str, to_currency: str) -> Optional[Decimal]:
        """
        Fetch the latest exchange rate.

        Returns:
            Units of to_currency per unit of from_currency, or None if the
            provider has no data

        Raises:
            ProviderError: If the request fails
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of this data provider."""
        pass
