"""
Balance sheet assembly for the Net Worth Aggregation Engine.

Combines the aggregated securities view with other asset categories (funds,
insurance, property equity, bank deposits) and account-level cash and debt
into a single net-worth figure with category composition percentages.

Each category is computed in isolation: a failure inside one category
degrades that category's contribution to zero and is flagged, while every
other category still computes.
"""

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Callable, Iterable, Optional

from networth.analytics.allocation import bucket_composition
from networth.models import (
    ZERO,
    AccountBalance,
    AggregatedHolding,
    AssetCategory,
    BalanceSheet,
    ConvertedAccountBalance,
    ConvertedOtherAsset,
    OtherAsset,
    RunDiagnostics,
)
from networth.portfolio.rates import RateBook


logger = logging.getLogger(__name__)

FALLBACK = "fallback"
DEGRADE = "degrade"


def _resolve_rate(
    currency: str,
    base_currency: str,
    rates: RateBook,
    policy: str,
    diagnostics: Optional[RunDiagnostics],
) -> tuple[Decimal, bool]:
    if policy == DEGRADE:
        return rates.rate_strict(currency, base_currency), False
    return rates.rate_or_fallback(currency, base_currency, diagnostics)


def convert_other_asset(
    asset: OtherAsset,
    rates: RateBook,
    base_currency: str,
    policy: str = FALLBACK,
    diagnostics: Optional[RunDiagnostics] = None,
) -> ConvertedOtherAsset:
    """
    Convert every amount of an other-asset record to the base currency.

    Raises:
        MissingRateError: Only under the "degrade" policy
    """
    fx_rate, rate_missing = _resolve_rate(
        asset.currency, base_currency, rates, policy, diagnostics
    )
    return ConvertedOtherAsset(
        asset=asset,
        fx_rate=fx_rate,
        cost_base=asset.cost * fx_rate,
        value_base=asset.value * fx_rate,
        deposit_base=asset.deposit * fx_rate,
        loan_base=asset.loan * fx_rate,
        debt_base=asset.debt * fx_rate,
        rate_missing=rate_missing,
    )


def convert_account_balance(
    balance: AccountBalance,
    rates: RateBook,
    base_currency: str,
    policy: str = FALLBACK,
    diagnostics: Optional[RunDiagnostics] = None,
) -> ConvertedAccountBalance:
    """
    Convert account cash and debt to the base currency.

    Raises:
        MissingRateError: Only under the "degrade" policy
    """
    fx_rate, rate_missing = _resolve_rate(
        balance.base_currency, base_currency, rates, policy, diagnostics
    )
    return ConvertedAccountBalance(
        balance=balance,
        fx_rate=fx_rate,
        cash_base=balance.cash_original * fx_rate,
        debt_base=balance.debt_original * fx_rate,
        rate_missing=rate_missing,
    )


def securities_total(holdings: Iterable[AggregatedHolding]) -> tuple[Decimal, int]:
    """Sum of positive market values, and how many holdings contributed."""
    positive = [h.value_base for h in holdings if h.value_base > ZERO]
    return sum(positive, ZERO), len(positive)


def value_total(assets: Iterable[ConvertedOtherAsset]) -> tuple[Decimal, int]:
    """Funds and insurance: sum of positive values."""
    positive = [a.value_base for a in assets if a.value_base > ZERO]
    return sum(positive, ZERO), len(positive)


def property_equity_total(assets: Iterable[ConvertedOtherAsset]) -> tuple[Decimal, int]:
    """Property: value net of mortgage debt."""
    included = [a for a in assets if a.value_base > ZERO or a.debt_base > ZERO]
    return sum((a.value_base - a.debt_base for a in included), ZERO), len(included)


def bank_deposit_total(assets: Iterable[ConvertedOtherAsset]) -> tuple[Decimal, int]:
    """Bank accounts: deposits net of loans."""
    included = [a for a in assets if a.deposit_base > ZERO or a.loan_base > ZERO]
    return sum((a.deposit_base - a.loan_base for a in included), ZERO), len(included)


CATEGORY_TOTALS: dict[AssetCategory, Callable[[list[ConvertedOtherAsset]], tuple[Decimal, int]]] = {
    AssetCategory.INSURANCE: value_total,
    AssetCategory.FUND: value_total,
    AssetCategory.PROPERTY: property_equity_total,
    AssetCategory.BANK_ACCOUNT: bank_deposit_total,
}


def _degrade(sheet: BalanceSheet, category: str, error: Exception, diagnostics: Optional[RunDiagnostics]) -> None:
    logger.warning("Category %s degraded to 0: %s", category, error)
    sheet.degraded_categories.append(category)
    if diagnostics is not None:
        diagnostics.degraded_categories.append(category)


def assemble_balance_sheet(
    holdings: list[AggregatedHolding],
    other_assets: list[OtherAsset],
    balances: list[AccountBalance],
    rates: RateBook,
    base_currency: str,
    missing_rate_policy: str = FALLBACK,
    diagnostics: Optional[RunDiagnostics] = None,
) -> BalanceSheet:
    """
    Assemble the net-worth balance sheet.

    Args:
        holdings: Valued aggregated holdings
        other_assets: Non-brokerage asset records
        balances: Account cash/debt records
        rates: Exchange-rate snapshot
        base_currency: Target currency
        missing_rate_policy: "fallback" or "degrade" for other assets and
            account balances
        diagnostics: Optional diagnostics to record misses into

    Returns:
        BalanceSheet with totals, counts and composition percentages
    """
    sheet = BalanceSheet(base_currency=base_currency)

    try:
        sheet.securities_value_base, sheet.securities_count = securities_total(holdings)
    except (ArithmeticError, TypeError, ValueError) as e:
        _degrade(sheet, "securities", e, diagnostics)

    by_category: dict[AssetCategory, list[OtherAsset]] = defaultdict(list)
    for asset in other_assets:
        by_category[asset.category].append(asset)

    results: dict[AssetCategory, tuple[Decimal, int]] = {}
    for category, total_fn in CATEGORY_TOTALS.items():
        try:
            converted = [
                convert_other_asset(a, rates, base_currency, missing_rate_policy, diagnostics)
                for a in by_category.get(category, [])
            ]
            results[category] = total_fn(converted)
        except Exception as e:
            _degrade(sheet, category.value, e, diagnostics)
            results[category] = (ZERO, 0)

    sheet.insurance_value_base, sheet.insurance_count = results[AssetCategory.INSURANCE]
    sheet.funds_value_base, sheet.funds_count = results[AssetCategory.FUND]
    sheet.properties_value_base, sheet.properties_count = results[AssetCategory.PROPERTY]
    sheet.bank_deposits_base, sheet.bank_accounts_count = results[AssetCategory.BANK_ACCOUNT]

    try:
        converted_balances = [
            convert_account_balance(b, rates, base_currency, missing_rate_policy, diagnostics)
            for b in balances
        ]
        sheet.total_cash_base = sum((b.cash_base for b in converted_balances), ZERO)
        sheet.total_debt_base = sum((b.debt_base for b in converted_balances), ZERO)
        sheet.account_count = len(converted_balances)
    except Exception as e:
        _degrade(sheet, "cash_debt", e, diagnostics)

    sheet.composition_pct = bucket_composition(sheet.asset_buckets())

    return sheet
