"""
Out-of-band refresh of the quote and exchange-rate tables.

These jobs run on their own schedule, before a recompute, so that a run
only ever reads an already-refreshed snapshot. A failure for one code or
currency is logged and counted; the remaining ones are still written.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from networth.data.lock import utcnow
from networth.data.providers.base import MarketDataProvider, ProviderError
from networth.data.store import load_inputs, upsert_quote, upsert_rate
from networth.models import ONE, ExchangeRate, Quote, RawHolding
from networth.portfolio.normalizer import (
    DEFAULT_RULES,
    FaceValue,
    FaceValueRules,
    classify,
    is_cash_row,
)


logger = logging.getLogger(__name__)


@dataclass
class RefreshResult:
    """Outcome of a refresh job."""
    requested: int = 0
    updated: list[str] = field(default_factory=list)
    not_found: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def success_count(self) -> int:
        return len(self.updated)


def quote_targets(
    holdings: Iterable[RawHolding],
    base_currency: str,
    rules: FaceValueRules = DEFAULT_RULES,
) -> list[tuple[str, str]]:
    """
    Distinct (code, currency) pairs that need a market quote.

    Cash rows and face-value instruments are excluded; the first currency
    seen for a code is used.
    """
    targets: dict[str, str] = {}
    for holding in holdings:
        code = (holding.instrument_code or "").strip()
        if not code or is_cash_row(holding):
            continue
        if isinstance(classify(holding, rules), FaceValue):
            continue
        targets.setdefault(code, (holding.currency or base_currency).upper())
    return sorted(targets.items())


def refresh_quotes(
    engine: Engine,
    provider: MarketDataProvider,
    base_currency: str,
    rules: FaceValueRules = DEFAULT_RULES,
    clock: Callable[[], datetime] = utcnow,
) -> RefreshResult:
    """
    Fetch the latest quote for every held instrument and upsert it.

    Args:
        engine: Store engine
        provider: Market data provider
        base_currency: Currency assumed for holdings without one
        rules: Face-value rules; matching instruments are not requested
        clock: Timestamp source for as_of

    Returns:
        RefreshResult
    """
    with Session(engine) as session:
        holdings = load_inputs(session).holdings

    targets = quote_targets(holdings, base_currency, rules)
    result = RefreshResult(requested=len(targets))
    logger.info("Refreshing %d quotes from %s", len(targets), provider.name)

    quotes: list[Quote] = []
    for code, currency in targets:
        try:
            price = provider.get_quote(code, currency)
        except ProviderError as e:
            logger.error("Quote refresh failed for %s: %s", code, e)
            result.failed[code] = str(e)
            continue
        if price is None:
            logger.warning("No quote available for %s (%s)", code, currency)
            result.not_found.append(code)
            continue
        quotes.append(Quote(instrument_code=code, price=price, currency=currency, as_of=clock()))
        result.updated.append(code)

    with Session(engine) as session, session.begin():
        for quote in quotes:
            upsert_quote(session, quote)

    logger.info(
        "Quote refresh complete: %d updated, %d not found, %d failed",
        result.success_count, len(result.not_found), len(result.failed),
    )
    return result


def rate_currencies(engine: Engine, base_currency: str, extra: Iterable[str] = ()) -> list[str]:
    """Every currency referenced by the upstream tables, plus `extra`."""
    with Session(engine) as session:
        inputs = load_inputs(session)

    currencies = set(c.upper() for c in extra)
    currencies.update((h.currency or base_currency).upper() for h in inputs.holdings)
    currencies.update(a.currency.upper() for a in inputs.other_assets)
    currencies.update(b.base_currency.upper() for b in inputs.balances)
    currencies.update(q.currency.upper() for q in inputs.quotes)
    currencies.discard("")
    return sorted(currencies)


def refresh_rates(
    engine: Engine,
    provider: MarketDataProvider,
    base_currency: str,
    currencies: Optional[Iterable[str]] = None,
    clock: Callable[[], datetime] = utcnow,
) -> RefreshResult:
    """
    Fetch the rate of every currency into the base currency and upsert it.

    The identity rate base->base is always written as 1.

    Args:
        engine: Store engine
        provider: Market data provider
        base_currency: Target currency of every rate
        currencies: Currencies to refresh (defaults to those in the store)
        clock: Timestamp source for as_of

    Returns:
        RefreshResult
    """
    base_currency = base_currency.upper()
    if currencies is None:
        currencies = rate_currencies(engine, base_currency)
    targets = sorted(set(c.upper() for c in currencies) - {base_currency})

    result = RefreshResult(requested=len(targets))
    logger.info("Refreshing %d exchange rates into %s", len(targets), base_currency)

    now = clock()
    rates = [ExchangeRate(base_currency, base_currency, ONE, now)]
    for currency in targets:
        try:
            rate = provider.get_exchange_rate(currency, base_currency)
        except ProviderError as e:
            logger.error("Rate refresh failed for %s->%s: %s", currency, base_currency, e)
            result.failed[currency] = str(e)
            continue
        if rate is None:
            logger.warning("No exchange rate available for %s->%s", currency, base_currency)
            result.not_found.append(currency)
            continue
        rates.append(ExchangeRate(currency, base_currency, rate, now))
        result.updated.append(currency)

    with Session(engine) as session, session.begin():
        for rate in rates:
            upsert_rate(session, rate)

    logger.info(
        "Rate refresh complete: %d updated, %d not found, %d failed",
        result.success_count, len(result.not_found), len(result.failed),
    )
    return result
