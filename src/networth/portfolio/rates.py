"""
Quote and exchange-rate resolution for the Net Worth Aggregation Engine.

Rates and quotes are resolved against immutable in-memory books built once per
run from the already-refreshed quote and rate tables. No lookups here touch
the network or the store, so resolution is deterministic.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from networth.models import (
    ONE,
    ZERO,
    AggregatedHolding,
    ExchangeRate,
    Quote,
    RunDiagnostics,
)
from networth.portfolio.normalizer import canonical_code


logger = logging.getLogger(__name__)

FACE_VALUE_UNIT_PRICE = ONE


class MissingRateError(Exception):
    """Raised by strict conversions when no FX rate exists for a pair."""

    def __init__(self, from_currency: str, to_currency: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        super().__init__(f"No exchange rate for {from_currency}->{to_currency}")


def _as_of_key(as_of: Optional[datetime]) -> float:
    return as_of.timestamp() if as_of is not None else float("-inf")


def _quote_sort_key(quote: Quote) -> tuple:
    # Latest first, then currency code for a stable tie-break
    return (-_as_of_key(quote.as_of), quote.currency)


class QuoteBook:
    """
    Immutable snapshot of the quote table, keyed by canonical instrument code.
    """

    def __init__(self, quotes: Iterable[Quote] = ()):
        exact: dict[tuple[str, str], Quote] = {}
        by_code: dict[str, list[Quote]] = {}

        for quote in quotes:
            code = canonical_code(quote.instrument_code)
            currency = (quote.currency or "").strip().upper()
            key = (code, currency)
            # Keep the latest quote per (code, currency)
            current = exact.get(key)
            if current is None or _quote_sort_key(quote) < _quote_sort_key(current):
                exact[key] = quote
            by_code.setdefault(code, []).append(quote)

        self._exact: Mapping[tuple[str, str], Quote] = MappingProxyType(exact)
        self._by_code: Mapping[str, tuple[Quote, ...]] = MappingProxyType(
            {code: tuple(sorted(qs, key=_quote_sort_key)) for code, qs in by_code.items()}
        )

    def __len__(self) -> int:
        return len(self._exact)

    def has_code(self, code: str) -> bool:
        return canonical_code(code) in self._by_code

    def lookup(self, code: str, currency: str) -> Optional[Quote]:
        """
        Find a quote for an instrument.

        Prefers an exact (code, currency) match; otherwise the latest quote
        for the code in any currency.
        """
        code = canonical_code(code)
        quote = self._exact.get((code, (currency or "").upper()))
        if quote is not None:
            return quote
        candidates = self._by_code.get(code)
        return candidates[0] if candidates else None


class RateBook:
    """
    Immutable snapshot of the exchange-rate table.

    rate(CUR, CUR) is always 1.
    """

    def __init__(self, rates: Iterable[ExchangeRate] = ()):
        table: dict[tuple[str, str], ExchangeRate] = {}
        for rate in rates:
            key = (rate.from_currency.upper(), rate.to_currency.upper())
            current = table.get(key)
            if current is None or _as_of_key(rate.as_of) >= _as_of_key(current.as_of):
                table[key] = rate
        self._rates: Mapping[tuple[str, str], ExchangeRate] = MappingProxyType(table)

    def __len__(self) -> int:
        return len(self._rates)

    def lookup(self, from_currency: str, to_currency: str) -> Optional[Decimal]:
        """Return the rate, or None when the pair is unknown."""
        from_currency = (from_currency or "").upper()
        to_currency = (to_currency or "").upper()
        if from_currency == to_currency:
            return ONE
        rate = self._rates.get((from_currency, to_currency))
        return rate.rate if rate is not None else None

    def has_rate(self, from_currency: str, to_currency: str) -> bool:
        return self.lookup(from_currency, to_currency) is not None

    def rate_or_fallback(
        self,
        from_currency: str,
        to_currency: str,
        diagnostics: Optional[RunDiagnostics] = None,
    ) -> tuple[Decimal, bool]:
        """
        Resolve a rate, falling back to 1.0 when absent.

        Returns:
            Tuple of (rate, rate_missing)
        """
        rate = self.lookup(from_currency, to_currency)
        if rate is not None:
            return rate, False

        if diagnostics is not None:
            diagnostics.missing_rates.add(from_currency.upper())
        logger.warning(
            "No exchange rate %s->%s; using 1.0", from_currency, to_currency
        )
        return ONE, True

    def rate_strict(self, from_currency: str, to_currency: str) -> Decimal:
        """Resolve a rate or raise MissingRateError."""
        rate = self.lookup(from_currency, to_currency)
        if rate is None:
            raise MissingRateError(from_currency.upper(), to_currency.upper())
        return rate


@dataclass(frozen=True)
class ResolvedRates:
    """Price and FX rate resolved for one aggregated holding."""
    price: Decimal
    fx_rate: Decimal
    quote_missing: bool = False
    rate_missing: bool = False


def resolve_price(
    holding: AggregatedHolding,
    quotes: QuoteBook,
) -> tuple[Decimal, bool]:
    """
    Resolve the current price of an aggregated holding.

    Face-value instruments price at 1.0 unless an explicit override quote
    exists. Other instruments without a quote price at 0 so that stale data
    shows up as a -100% P/L instead of being hidden.

    Returns:
        Tuple of (price, quote_missing)
    """
    quote = quotes.lookup(holding.canonical_id, holding.currency)

    if holding.is_face_value:
        if quote is not None:
            return quote.price, False
        return FACE_VALUE_UNIT_PRICE, False

    if quote is None:
        return ZERO, True
    return quote.price, False


def resolve(
    holding: AggregatedHolding,
    quotes: QuoteBook,
    rates: RateBook,
    base_currency: str,
    diagnostics: Optional[RunDiagnostics] = None,
) -> ResolvedRates:
    """
    Resolve price and FX rate for one aggregated holding.

    Args:
        holding: Aggregated holding to resolve
        quotes: Quote snapshot
        rates: Exchange-rate snapshot
        base_currency: Target currency
        diagnostics: Optional diagnostics to record misses into

    Returns:
        ResolvedRates
    """
    price, quote_missing = resolve_price(holding, quotes)
    if quote_missing:
        if diagnostics is not None:
            diagnostics.missing_quotes.add(holding.canonical_id)
        logger.warning(
            "No quote for %s (%s); valuing at 0", holding.canonical_id, holding.currency
        )

    fx_rate, rate_missing = rates.rate_or_fallback(
        holding.currency, base_currency, diagnostics
    )

    return ResolvedRates(
        price=price,
        fx_rate=fx_rate,
        quote_missing=quote_missing,
        rate_missing=rate_missing,
    )
