"""Declarative extraction rule tables (core domain).

Rules are plain dicts so the default table below and per-sender overrides in
config.json share one schema:

- id:          rule identifier reported in diagnostics
- field:       amount | description | account | occurred_at | reference | currency
- pattern:     regex; the ``value`` named group (or group 1) is the capture
- confidence:  static 0-100 weight returned with every match
- ignore_case: optional, default False
- constant:    optional fixed value returned instead of a capture
- formats:     optional strptime formats (occurred_at only)

Within a field, rules are evaluated top to bottom and the first match wins.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from functools import lru_cache
import re
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

FIELDS: Tuple[str, ...] = ("amount", "description", "account", "occurred_at", "reference", "currency")

_NUMBER = r"(?P<value>\d[\d,]*(?:\.\d+)?)"

DEFAULT_RULES: List[Dict[str, object]] = [
    # ---- amount ----
    {
        "id": "AMOUNT_STANDARD_LABELED",
        "field": "amount",
        "pattern": r"Transaction Amount[:\s]*(?:[A-Z]{3})?\s*" + _NUMBER,
        "confidence": 95,
    },
    {
        "id": "AMOUNT_CREDITED_WITH_INR",
        "field": "amount",
        "pattern": r"(?:debited|credited) with INR\s*" + _NUMBER,
        "confidence": 92,
    },
    {
        "id": "AMOUNT_DEBITED_LABELED",
        "field": "amount",
        "pattern": r"Amount (?:Debited|Credited)[:\s]+INR\s*" + _NUMBER,
        "confidence": 90,
    },
    {
        "id": "AMOUNT_INR_PREFIX",
        "field": "amount",
        "pattern": r"INR\s*" + _NUMBER + r"\s+(?:spent|debited|credited|paid)",
        "confidence": 90,
    },
    {
        "id": "AMOUNT_FOR_INR",
        "field": "amount",
        "pattern": r"for INR\s*" + _NUMBER,
        "confidence": 85,
    },
    {
        "id": "AMOUNT_RS_PREFIX",
        "field": "amount",
        "pattern": r"\bRs\.?\s*" + _NUMBER,
        "confidence": 85,
    },
    {
        "id": "AMOUNT_RUPEE_SYMBOL",
        "field": "amount",
        "pattern": r"₹\s*" + _NUMBER,
        "confidence": 85,
    },
    {
        "id": "AMOUNT_LABELED",
        "field": "amount",
        "pattern": r"\bAmount[:\s=]+(?:INR|Rs\.?)?\s*" + _NUMBER,
        "confidence": 85,
    },
    {
        "id": "AMOUNT_DOLLAR_SYMBOL",
        "field": "amount",
        "pattern": r"\$\s*" + _NUMBER,
        "confidence": 80,
    },
    {
        "id": "AMOUNT_REVERSE",
        "field": "amount",
        "pattern": r"(?P<value>\d[\d,]*\.\d{2})\s+has been (?:debited|credited)",
        "confidence": 75,
    },
    {
        "id": "AMOUNT_GENERIC",
        "field": "amount",
        "pattern": r"(?:INR|Rs\.?)\s*(?P<value>\d[\d,]*\.\d{2})",
        "confidence": 70,
    },
    # ---- description ----
    {
        "id": "MERCHANT_LABELED",
        "field": "description",
        "pattern": (
            r"\bMerchant(?:\s+Name|\s+ID)?\s*:\s*(?P<value>[A-Za-z0-9\s&\-./'@_]+?)"
            r"(?=\s+(?:Date|Axis|Credit|Debit|Card|Available|Total|on\b|at\b|\d{2}[/-]\d{2}[/-]\d{2,4})|$)"
        ),
        "confidence": 95,
        "ignore_case": True,
    },
    {
        "id": "INFO_LABELED",
        "field": "description",
        "pattern": r"(?<!Transaction )\bInfo[:\s]+(?P<value>[A-Za-z0-9\s&\-.]+?)(?:\.(?:\s|$)|$)",
        "confidence": 92,
    },
    {
        "id": "MERCHANT_AT_ON",
        "field": "description",
        "pattern": r"\bat\s+(?P<value>[A-Za-z0-9\s&\-./*]+?)(?:\s+(?:on|by)\s|\s*\.(?:\s|$)|$)",
        "confidence": 91,
    },
    {
        "id": "TRANSACTION_INFO",
        "field": "description",
        "pattern": r"Transaction Info[:\s]+(?P<value>[A-Za-z0-9\s/\-]+)",
        "confidence": 90,
    },
    {
        "id": "BY_PAYEE",
        "field": "description",
        "pattern": r"\bby\s+(?!you\b)(?P<value>[A-Za-z0-9\s&\-/]+?)(?:\s+on\b|\s*\.|$)",
        "confidence": 85,
    },
    {
        "id": "UPI_MERCHANT",
        "field": "description",
        "pattern": r"UPI/[^/\s]+/[^/\s]+/(?P<value>[A-Za-z0-9@\s]+)",
        "confidence": 90,
    },
    {
        "id": "REFERENCE_NO",
        "field": "description",
        "pattern": r"Reference (?:no\.|No\.|number)[:\s\-]+(?P<value>[^\s.]+)",
        "confidence": 80,
    },
    {
        "id": "DESCRIPTION_LABELED",
        "field": "description",
        "pattern": r"Description[:\s=]+(?P<value>[^\r\n]+)",
        "confidence": 85,
    },
    # ---- account identifier: full numbers before suffix-only forms ----
    {
        "id": "ACCOUNT_FULL_NUMBER",
        "field": "account",
        "pattern": r"A/c (?:no\.|number)[:\s]*(?P<value>\d{6,})",
        "confidence": 95,
    },
    {
        "id": "ACCOUNT_ENDING_WITH",
        "field": "account",
        "pattern": r"ending (?:with|in)\s+(?P<value>\d{4})\b",
        "confidence": 90,
    },
    {
        "id": "ACCOUNT_MASKED_SUFFIX",
        "field": "account",
        "pattern": r"(?<![\w*])[Xx*]{2,}\d*?(?P<value>\d{4})\b",
        "confidence": 85,
    },
    {
        "id": "ACCOUNT_CARD_NUMBER",
        "field": "account",
        "pattern": r"Credit Card (?:no\.|number)[:\s]*(?P<value>\d{4})\b",
        "confidence": 80,
        "ignore_case": True,
    },
    # ---- occurred_at ----
    {
        "id": "DATE_ON_DMY_TIME",
        "field": "occurred_at",
        "pattern": r"\bon (?P<value>\d{2}-\d{2}-\d{4}[, ]*\d{2}:\d{2}:\d{2})",
        "confidence": 90,
        "formats": ["%d-%m-%Y %H:%M:%S"],
    },
    {
        "id": "DATE_TIME_LABELED",
        "field": "occurred_at",
        "pattern": r"Date & Time:\s*(?P<value>\d{2}-\d{2}-\d{2,4},?\s*\d{2}:\d{2}:\d{2})",
        "confidence": 90,
        "formats": ["%d-%m-%Y %H:%M:%S", "%d-%m-%y %H:%M:%S"],
    },
    {
        "id": "DATE_MONTH_NAME",
        "field": "occurred_at",
        "pattern": r"\bon (?P<value>[A-Z][a-z]{2} \d{1,2}, \d{4} at \d{2}:\d{2}:\d{2})",
        "confidence": 85,
        "formats": ["%b %d %Y at %H:%M:%S"],
    },
    {
        "id": "DATE_ON_DMY",
        "field": "occurred_at",
        "pattern": r"\bon (?P<value>\d{2}-\d{2}-\d{4})\b",
        "confidence": 75,
        "formats": ["%d-%m-%Y"],
    },
    # ---- payment reference ----
    {
        "id": "UPI_REF",
        "field": "reference",
        "pattern": r"UPI Ref[:\s]*(?P<value>\d+)",
        "confidence": 90,
    },
    {
        "id": "UPI_ID",
        "field": "reference",
        "pattern": r"UPI/[^/\s]+/(?P<value>\d+)",
        "confidence": 85,
    },
    # ---- currency ----
    {
        "id": "CURRENCY_ISO_LABELED",
        "field": "currency",
        "pattern": r"Amount[:\s]*(?P<value>[A-Z]{3})\s*\d",
        "confidence": 90,
    },
    {
        "id": "CURRENCY_INR",
        "field": "currency",
        "pattern": r"(?:\bINR\b|\bRs\.?\s*\d|₹)",
        "confidence": 85,
        "constant": "INR",
    },
    {
        "id": "CURRENCY_USD",
        "field": "currency",
        "pattern": r"(?:\bUSD\b|\$\s*\d)",
        "confidence": 80,
        "constant": "USD",
    },
]


@dataclass(frozen=True)
class FieldRule:
    """Compiled extraction rule."""

    rule_id: str
    field: str
    pattern: re.Pattern
    confidence: int
    constant: Optional[str] = None
    formats: Tuple[str, ...] = ()

    def capture(self, match: "re.Match[str]") -> Optional[str]:
        if self.constant is not None:
            return self.constant
        if "value" in self.pattern.groupindex:
            return match.group("value")
        if self.pattern.groups:
            return match.group(1)
        return match.group(0)


@dataclass(frozen=True)
class RuleSet:
    """Ordered rules per field."""

    amount: Tuple[FieldRule, ...] = ()
    description: Tuple[FieldRule, ...] = ()
    account: Tuple[FieldRule, ...] = ()
    occurred_at: Tuple[FieldRule, ...] = ()
    reference: Tuple[FieldRule, ...] = ()
    currency: Tuple[FieldRule, ...] = ()

    def for_field(self, field: str) -> Tuple[FieldRule, ...]:
        if field not in FIELDS:
            raise ValueError(f"Unknown extraction field: {field}")
        return getattr(self, field)

    def with_overrides(self, overrides: Iterable[FieldRule]) -> "RuleSet":
        """Return a rule set where ``overrides`` run before the existing rules."""

        grouped: Dict[str, List[FieldRule]] = {}
        for rule in overrides:
            grouped.setdefault(rule.field, []).append(rule)
        if not grouped:
            return self
        changes = {field: tuple(rules) + self.for_field(field) for field, rules in grouped.items()}
        return replace(self, **changes)


def compile_rule(raw: Mapping[str, object]) -> FieldRule:
    """Validate one rule dict and compile its regex."""

    rule_id = raw.get("id")
    field = raw.get("field")
    pattern = raw.get("pattern")
    if not rule_id or not pattern:
        raise ValueError(f"Extraction rule needs an id and a pattern: {raw!r}")
    if field not in FIELDS:
        raise ValueError(f"Rule {rule_id} has unknown field {field!r}")

    confidence = int(raw.get("confidence", 70))
    if not 0 <= confidence <= 100:
        raise ValueError(f"Rule {rule_id} confidence must be within 0-100")

    flags = re.IGNORECASE if raw.get("ignore_case", False) else 0
    constant = raw.get("constant")
    return FieldRule(
        rule_id=str(rule_id),
        field=str(field),
        pattern=re.compile(str(pattern), flags),
        confidence=confidence,
        constant=str(constant) if constant is not None else None,
        formats=tuple(raw.get("formats", ()) or ()),
    )


def compile_rules(raw_rules: Iterable[Mapping[str, object]]) -> List[FieldRule]:
    return [compile_rule(raw) for raw in raw_rules if raw.get("enabled", True)]


def build_rule_set(raw_rules: Sequence[Mapping[str, object]]) -> RuleSet:
    """Group compiled rules by field, preserving declaration order."""

    grouped: Dict[str, List[FieldRule]] = {field: [] for field in FIELDS}
    for rule in compile_rules(raw_rules):
        grouped[rule.field].append(rule)
    return RuleSet(**{field: tuple(rules) for field, rules in grouped.items()})


@lru_cache(maxsize=1)
def default_rule_set() -> RuleSet:
    return build_rule_set(DEFAULT_RULES)
