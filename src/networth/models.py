"""
Core data models for the Net Worth Aggregation Engine.

This module defines the fundamental data structures used throughout the system,
including raw broker holdings, canonical instruments, aggregated holdings,
quotes, exchange rates, other assets and periodic balance-sheet snapshots.
All monetary and quantity fields use Decimal for precision.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional


ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def as_decimal(value: Any) -> Optional[Decimal]:
    """
    Convert a loosely-typed upstream value to Decimal.

    Floats go through str() so that 0.1 stays 0.1. None, empty strings, NaN
    and infinities come back as None.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


class TreatmentPolicy(Enum):
    """How an instrument is priced and costed."""
    STANDARD = "STANDARD"      # Market-priced, weighted-average cost
    FACE_VALUE = "FACE_VALUE"  # Fixed unit cost/price of 1.0 (T-bills etc.)


class AssetCategory(Enum):
    """Categories of non-brokerage assets."""
    FUND = "fund"
    BANK_ACCOUNT = "bankAccount"
    INSURANCE = "insurance"
    PROPERTY = "property"

    @classmethod
    def parse(cls, value: str) -> "AssetCategory":
        """Parse a category, accepting the plural spellings used upstream."""
        key = (value or "").strip().lower()
        aliases = {
            "fund": cls.FUND,
            "funds": cls.FUND,
            "bankaccount": cls.BANK_ACCOUNT,
            "bankaccounts": cls.BANK_ACCOUNT,
            "insurance": cls.INSURANCE,
            "property": cls.PROPERTY,
            "properties": cls.PROPERTY,
        }
        if key not in aliases:
            raise ValueError(f"Unknown asset category: {value!r}")
        return aliases[key]


class ActionType(Enum):
    """Types of logged actions for the decision log."""
    CONFIG_LOADED = "CONFIG_LOADED"
    RUN_STARTED = "RUN_STARTED"
    RUN_SKIPPED = "RUN_SKIPPED"
    RUN_FAILED = "RUN_FAILED"
    ROWS_SKIPPED = "ROWS_SKIPPED"
    RATES_MISSING = "RATES_MISSING"
    QUOTES_MISSING = "QUOTES_MISSING"
    CATEGORY_DEGRADED = "CATEGORY_DEGRADED"
    HOLDINGS_AGGREGATED = "HOLDINGS_AGGREGATED"
    SNAPSHOT_WRITTEN = "SNAPSHOT_WRITTEN"


@dataclass(frozen=True)
class RawHolding:
    """
    A single instrument position as reported by one brokerage account.

    Produced by the ingestion adapter and treated as immutable input.

    Attributes:
        account_id: Brokerage account identifier
        instrument_code: Broker-specific ticker/code
        description: Free-text description from the broker
        asset_class: Declared asset class (e.g. STK, BOND, Govt)
        quantity: Units held (None when missing upstream)
        cost_per_unit: Average cost per unit in `currency`
        currency: Currency the position is denominated in
        display_name: Company or instrument name
    """
    account_id: str
    instrument_code: Optional[str]
    quantity: Optional[Decimal]
    cost_per_unit: Optional[Decimal]
    currency: Optional[str]
    description: str = ""
    asset_class: str = ""
    display_name: str = ""


@dataclass(frozen=True)
class CanonicalInstrument:
    """De-duplicated identity an instrument maps to after normalization."""
    canonical_id: str
    display_name: str
    treatment: TreatmentPolicy

    @property
    def is_face_value(self) -> bool:
        return self.treatment == TreatmentPolicy.FACE_VALUE


@dataclass(frozen=True)
class NormalizedHolding:
    """A validated raw holding annotated with its canonical instrument."""
    raw: RawHolding
    instrument: CanonicalInstrument
    quantity: Decimal
    cost_per_unit: Decimal
    currency: str


@dataclass
class AggregatedHolding:
    """
    One instrument aggregated across all accounts, in one currency.

    The valuation fields (current_price onward) are zero until the rate
    resolver, valuation calculator and allocation calculator have run.
    """
    canonical_id: str
    display_name: str
    treatment: TreatmentPolicy
    currency: str
    total_quantity: Decimal
    avg_cost_per_unit: Decimal
    total_cost_original: Decimal
    account_count: int
    current_price: Decimal = ZERO
    fx_rate: Decimal = ONE
    cost_base: Decimal = ZERO
    value_base: Decimal = ZERO
    pl_ratio: Decimal = ZERO
    cost_share_pct: Decimal = ZERO
    value_share_pct: Decimal = ZERO
    quote_missing: bool = False
    rate_missing: bool = False

    @property
    def is_face_value(self) -> bool:
        return self.treatment == TreatmentPolicy.FACE_VALUE

    @property
    def unrealized_pnl_base(self) -> Decimal:
        return self.value_base - self.cost_base


@dataclass(frozen=True)
class Quote:
    """Latest price for an instrument."""
    instrument_code: str
    price: Decimal
    currency: str
    as_of: Optional[datetime] = None


@dataclass(frozen=True)
class ExchangeRate:
    """Conversion rate: 1 unit of from_currency = rate units of to_currency."""
    from_currency: str
    to_currency: str
    rate: Decimal
    as_of: Optional[datetime] = None


@dataclass(frozen=True)
class OtherAsset:
    """
    A non-brokerage asset record.

    Which amount fields are meaningful depends on the category: funds and
    insurance use `value`, property uses `value` net of `debt` (mortgage),
    bank accounts use `deposit` net of `loan`.
    """
    asset_id: str
    category: AssetCategory
    currency: str
    cost: Decimal = ZERO
    value: Decimal = ZERO
    deposit: Decimal = ZERO
    loan: Decimal = ZERO
    debt: Decimal = ZERO
    name: str = ""


@dataclass(frozen=True)
class ConvertedOtherAsset:
    """An OtherAsset with every amount converted into the base currency."""
    asset: OtherAsset
    fx_rate: Decimal
    cost_base: Decimal
    value_base: Decimal
    deposit_base: Decimal
    loan_base: Decimal
    debt_base: Decimal
    rate_missing: bool = False


@dataclass(frozen=True)
class AccountBalance:
    """Account-level cash and margin debt, in the account's base currency."""
    account_id: str
    base_currency: str
    cash_original: Decimal = ZERO
    debt_original: Decimal = ZERO


@dataclass(frozen=True)
class ConvertedAccountBalance:
    """An AccountBalance converted into the engine's base currency."""
    balance: AccountBalance
    fx_rate: Decimal
    cash_base: Decimal
    debt_base: Decimal
    rate_missing: bool = False


@dataclass(frozen=True)
class PortfolioInputs:
    """Everything one run reads from upstream, loaded once before computing."""
    holdings: tuple[RawHolding, ...] = ()
    quotes: tuple[Quote, ...] = ()
    rates: tuple[ExchangeRate, ...] = ()
    other_assets: tuple[OtherAsset, ...] = ()
    balances: tuple[AccountBalance, ...] = ()


@dataclass
class BalanceSheet:
    """
    Assembled net-worth balance sheet for one run, in base currency.

    Attributes mirror the persisted PeriodicSnapshot, plus the composition
    percentages and any categories that degraded to zero.
    """
    base_currency: str
    securities_value_base: Decimal = ZERO
    insurance_value_base: Decimal = ZERO
    funds_value_base: Decimal = ZERO
    properties_value_base: Decimal = ZERO
    bank_deposits_base: Decimal = ZERO
    total_cash_base: Decimal = ZERO
    total_debt_base: Decimal = ZERO
    account_count: int = 0
    securities_count: int = 0
    insurance_count: int = 0
    funds_count: int = 0
    properties_count: int = 0
    bank_accounts_count: int = 0
    composition_pct: dict[str, Decimal] = field(default_factory=dict)
    degraded_categories: list[str] = field(default_factory=list)

    @property
    def total_net_worth_base(self) -> Decimal:
        return (
            self.securities_value_base
            + self.insurance_value_base
            + self.funds_value_base
            + self.properties_value_base
            + self.bank_deposits_base
            + self.total_cash_base
            - self.total_debt_base
        )

    def asset_buckets(self) -> dict[str, Decimal]:
        """The six gross asset buckets used for composition (debt excluded)."""
        return {
            "securities": self.securities_value_base,
            "insurance": self.insurance_value_base,
            "funds": self.funds_value_base,
            "properties": self.properties_value_base,
            "bank_deposits": self.bank_deposits_base,
            "cash": self.total_cash_base,
        }


@dataclass(frozen=True)
class PeriodicSnapshot:
    """
    Dated net-worth record. One per period_id; re-runs replace it.
    """
    period_id: str
    period_date: date
    base_currency: str
    securities_value_base: Decimal
    insurance_value_base: Decimal
    funds_value_base: Decimal
    properties_value_base: Decimal
    bank_deposits_base: Decimal
    total_cash_base: Decimal
    total_debt_base: Decimal
    total_net_worth_base: Decimal
    account_count: int
    securities_count: int
    insurance_count: int
    funds_count: int
    properties_count: int
    bank_accounts_count: int
    securities_pct: Decimal = ZERO
    insurance_pct: Decimal = ZERO
    funds_pct: Decimal = ZERO
    properties_pct: Decimal = ZERO
    bank_deposits_pct: Decimal = ZERO
    cash_pct: Decimal = ZERO

    @classmethod
    def from_balance_sheet(
        cls,
        sheet: BalanceSheet,
        period_date: date,
        period_id: Optional[str] = None,
    ) -> "PeriodicSnapshot":
        """Build a snapshot from an assembled balance sheet."""
        pct = sheet.composition_pct
        return cls(
            period_id=period_id or period_date.isoformat(),
            period_date=period_date,
            base_currency=sheet.base_currency,
            securities_value_base=sheet.securities_value_base,
            insurance_value_base=sheet.insurance_value_base,
            funds_value_base=sheet.funds_value_base,
            properties_value_base=sheet.properties_value_base,
            bank_deposits_base=sheet.bank_deposits_base,
            total_cash_base=sheet.total_cash_base,
            total_debt_base=sheet.total_debt_base,
            total_net_worth_base=sheet.total_net_worth_base,
            account_count=sheet.account_count,
            securities_count=sheet.securities_count,
            insurance_count=sheet.insurance_count,
            funds_count=sheet.funds_count,
            properties_count=sheet.properties_count,
            bank_accounts_count=sheet.bank_accounts_count,
            securities_pct=pct.get("securities", ZERO),
            insurance_pct=pct.get("insurance", ZERO),
            funds_pct=pct.get("funds", ZERO),
            properties_pct=pct.get("properties", ZERO),
            bank_deposits_pct=pct.get("bank_deposits", ZERO),
            cash_pct=pct.get("cash", ZERO),
        )


@dataclass
class RunDiagnostics:
    """
    Row-level issues recovered during a run.

    None of these abort the run; they are surfaced for operator review.
    """
    skipped_rows: list[tuple[RawHolding, str]] = field(default_factory=list)
    cash_rows_excluded: int = 0
    missing_rates: set[str] = field(default_factory=set)
    missing_quotes: set[str] = field(default_factory=set)
    degraded_categories: list[str] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_rows)

    def skip(self, holding: RawHolding, reason: str) -> None:
        self.skipped_rows.append((holding, reason))


@dataclass(frozen=True)
class RunSummary:
    """
    Counts returned by the recompute entry point for logging and alerting.
    """
    period_id: Optional[str]
    skipped: bool = False
    instruments_processed: int = 0
    total_cost_base: Decimal = ZERO
    total_value_base: Decimal = ZERO
    average_pl_ratio: Decimal = ZERO
    net_worth_base: Decimal = ZERO
    skipped_rows: int = 0
    missing_rates: tuple[str, ...] = ()
    missing_quotes: tuple[str, ...] = ()
    degraded_categories: tuple[str, ...] = ()


@dataclass
class DecisionLogEntry:
    """
    Entry for the append-only decision log.

    Attributes:
        timestamp: When the action occurred
        action_type: Type of action
        period_id: Period the action relates to (if applicable)
        details: JSON-serializable details dictionary
    """
    timestamp: datetime
    action_type: ActionType
    period_id: Optional[str]
    details: dict

    @classmethod
    def create(
        cls,
        action_type: ActionType,
        period_id: Optional[str],
        details: dict,
    ) -> "DecisionLogEntry":
        """Factory method with auto-generated timestamp."""
        return cls(
            timestamp=datetime.now(),
            action_type=action_type,
            period_id=period_id,
            details=details,
        )
