"""
Data providers for quotes and exchange rates.

Provides a pluggable interface for fetching the latest instrument prices and
currency conversion rates used by the refresh jobs.
"""

from networth.data.providers.base import MarketDataProvider, ProviderError
from networth.data.providers.yfinance_provider import YFinanceProvider

__all__ = [
    "MarketDataProvider",
    "ProviderError",
    "YFinanceProvider",
]
