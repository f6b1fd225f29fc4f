"""
Instrument normalization for the Net Worth Aggregation Engine.

Maps every raw broker holding onto exactly one canonical instrument. Short-term
government bills are recorded inconsistently across brokers (different codes,
asset classes and descriptions), so all of them are merged into a single
synthetic face-value identity. Everything else keeps its own code.
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Union

from networth.config import FaceValueConfig
from networth.models import (
    ZERO,
    CanonicalInstrument,
    NormalizedHolding,
    RawHolding,
    RunDiagnostics,
    TreatmentPolicy,
)


logger = logging.getLogger(__name__)

CASH_CODE_PREFIX = "CASH_"

_NON_CODE_CHARS = re.compile(r"[^A-Z0-9_]")


def canonical_code(code: str) -> str:
    """
    Normalize an instrument code: uppercase, punctuation and spaces removed.

    Underscores are kept because synthetic identities (US_TBILL) use them.

    >>> canonical_code(" brk.b ")
    'BRKB'
    """
    return _NON_CODE_CHARS.sub("", (code or "").upper())


class RuleKind(Enum):
    """Which field of a holding a face-value rule inspects."""
    ASSET_CLASS_EQUALS = "ASSET_CLASS_EQUALS"
    DESCRIPTION_CONTAINS = "DESCRIPTION_CONTAINS"
    CODE_EQUALS = "CODE_EQUALS"
    CODE_PREFIX = "CODE_PREFIX"
    CODE_CONTAINS = "CODE_CONTAINS"


@dataclass(frozen=True)
class FaceValueRule:
    """A single case-insensitive matching rule."""
    kind: RuleKind
    pattern: str

    def matches(self, holding: RawHolding) -> bool:
        needle = self.pattern.lower()
        code = (holding.instrument_code or "").strip().lower()

        if self.kind == RuleKind.ASSET_CLASS_EQUALS:
            return (holding.asset_class or "").strip().lower() == needle
        if self.kind == RuleKind.DESCRIPTION_CONTAINS:
            return needle in (holding.description or "").lower()
        if self.kind == RuleKind.CODE_EQUALS:
            return code == needle
        if self.kind == RuleKind.CODE_PREFIX:
            return code.startswith(needle)
        if self.kind == RuleKind.CODE_CONTAINS:
            return needle in code
        return False


@dataclass(frozen=True)
class Standard:
    """Classification result: an ordinary market-priced instrument."""
    code: str


@dataclass(frozen=True)
class FaceValue:
    """Classification result: a face-value instrument."""
    matched_rule: FaceValueRule


Classification = Union[Standard, FaceValue]


@dataclass(frozen=True)
class FaceValueRules:
    """Ordered rule set plus the identity all matches collapse into."""
    canonical_id: str
    display_name: str
    rules: tuple[FaceValueRule, ...]

    @classmethod
    def from_config(cls, config: FaceValueConfig) -> "FaceValueRules":
        rules: list[FaceValueRule] = []
        rules += [FaceValueRule(RuleKind.ASSET_CLASS_EQUALS, p) for p in config.asset_classes]
        rules += [FaceValueRule(RuleKind.DESCRIPTION_CONTAINS, p) for p in config.description_markers]
        rules += [FaceValueRule(RuleKind.CODE_EQUALS, p) for p in config.code_sentinels]
        rules += [FaceValueRule(RuleKind.CODE_PREFIX, p) for p in config.code_prefixes]
        rules += [FaceValueRule(RuleKind.CODE_CONTAINS, p) for p in config.code_markers]
        return cls(
            canonical_id=canonical_code(config.canonical_id),
            display_name=config.display_name,
            rules=tuple(rules),
        )

    @property
    def instrument(self) -> CanonicalInstrument:
        return CanonicalInstrument(
            canonical_id=self.canonical_id,
            display_name=self.display_name,
            treatment=TreatmentPolicy.FACE_VALUE,
        )


DEFAULT_RULES = FaceValueRules.from_config(FaceValueConfig())


@dataclass
class NormalizationResult:
    """Validated, annotated holdings plus the rows that were dropped."""
    holdings: list[NormalizedHolding] = field(default_factory=list)
    diagnostics: RunDiagnostics = field(default_factory=RunDiagnostics)


def classify(
    holding: RawHolding,
    rules: FaceValueRules = DEFAULT_RULES,
) -> Classification:
    """
    Classify one holding. Rules are evaluated in order; first match wins.

    Classification is per row: the same ticker string may be face-value for
    one broker (e.g. declared BOND) and not for another.
    """
    for rule in rules.rules:
        if rule.matches(holding):
            return FaceValue(matched_rule=rule)
    return Standard(code=canonical_code(holding.instrument_code or ""))


def to_canonical_instrument(
    holding: RawHolding,
    rules: FaceValueRules = DEFAULT_RULES,
) -> CanonicalInstrument:
    """Map a holding to its canonical instrument."""
    result = classify(holding, rules)
    if isinstance(result, FaceValue):
        return rules.instrument
    return CanonicalInstrument(
        canonical_id=result.code,
        display_name=(holding.display_name or "").strip(),
        treatment=TreatmentPolicy.STANDARD,
    )


def validate_holding(holding: RawHolding) -> Optional[str]:
    """
    Check required fields.

    Returns:
        None if the holding is usable, otherwise the skip reason
    """
    if not (holding.instrument_code or "").strip():
        return "missing instrument code"
    if not canonical_code(holding.instrument_code):
        return "instrument code has no alphanumeric characters"
    if holding.quantity is None:
        return "missing quantity"
    if not holding.quantity.is_finite():
        return "non-finite quantity"
    if holding.quantity <= ZERO:
        return "non-positive quantity"
    if holding.cost_per_unit is not None and not holding.cost_per_unit.is_finite():
        return "non-finite cost"
    return None


def is_cash_row(holding: RawHolding) -> bool:
    """Broker cash pseudo-positions; cash arrives through account balances."""
    return (holding.instrument_code or "").strip().upper().startswith(CASH_CODE_PREFIX)


def normalize_holdings(
    holdings: Iterable[RawHolding],
    base_currency: str,
    rules: FaceValueRules = DEFAULT_RULES,
    diagnostics: Optional[RunDiagnostics] = None,
) -> NormalizationResult:
    """
    Validate and annotate raw holdings with their canonical instrument.

    Invalid rows are skipped and counted in the diagnostics; they never
    abort the run.

    Args:
        holdings: Raw holdings from all accounts
        base_currency: Currency assumed for rows that declare none
        rules: Face-value classification rules
        diagnostics: Diagnostics to record into (a new one if omitted)

    Returns:
        NormalizationResult with annotated holdings and diagnostics
    """
    result = NormalizationResult(
        diagnostics=diagnostics if diagnostics is not None else RunDiagnostics()
    )

    for holding in holdings:
        if is_cash_row(holding):
            result.diagnostics.cash_rows_excluded += 1
            continue

        reason = validate_holding(holding)
        if reason:
            result.diagnostics.skip(holding, reason)
            logger.info(
                "Skipping holding %r in account %s: %s",
                holding.instrument_code, holding.account_id, reason,
            )
            continue

        currency = (holding.currency or "").strip().upper()
        if not currency:
            logger.debug(
                "Holding %s in account %s has no currency; assuming %s",
                holding.instrument_code, holding.account_id, base_currency,
            )
            currency = base_currency

        result.holdings.append(
            NormalizedHolding(
                raw=holding,
                instrument=to_canonical_instrument(holding, rules),
                quantity=holding.quantity,
                cost_per_unit=holding.cost_per_unit if holding.cost_per_unit is not None else Decimal("0"),
                currency=currency,
            )
        )

    if result.diagnostics.skipped_count:
        logger.warning(
            "Skipped %d invalid holding rows", result.diagnostics.skipped_count
        )

    return result
