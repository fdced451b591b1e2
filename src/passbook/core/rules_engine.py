"""Rule evaluation and direction classification (core domain)."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
import logging
import re
from typing import Any, Callable, Dict, Iterable, Optional

from passbook.core.config import ExtractionConfig
from passbook.core.models import Direction, SenderRule
from passbook.core.patterns import FieldRule, RuleSet, compile_rules, default_rule_set
from passbook.core.results import ExtractionField

LOGGER = logging.getLogger(__name__)

DIRECTION_FIXED = "DIRECTION_FIXED"
DIRECTION_KEYWORDS = "DIRECTION_KEYWORDS"
DIRECTION_DEFAULT = "DIRECTION_DEFAULT"

_TRAILING_JUNK = re.compile(r"[\s.,;]+$")
_DATE_SEPARATORS = re.compile(r"[,\s]+")


def count_keywords(text: str, keywords: Iterable[str]) -> int:
    """Count case-insensitive occurrences of every keyword in ``text``."""

    lowered = text.lower()
    return sum(lowered.count(keyword.lower()) for keyword in keywords if keyword)


def parse_amount(raw: str) -> Optional[Decimal]:
    cleaned = raw.replace(",", "").strip()
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def clean_description(raw: str, footer_markers: Iterable[str]) -> Optional[str]:
    """Cut at the earliest footer marker and strip trailing punctuation."""

    cut = len(raw)
    for marker in footer_markers:
        index = raw.find(marker)
        if index != -1:
            cut = min(cut, index)
    cleaned = _TRAILING_JUNK.sub("", raw[:cut].strip())
    return cleaned or None


def parse_date(raw: str, formats: Iterable[str]) -> Optional[datetime]:
    normalized = _DATE_SEPARATORS.sub(" ", raw).strip()
    for fmt in formats:
        try:
            return datetime.strptime(normalized, fmt)
        except ValueError:
            continue
    return None


def _first_match(
    rules: Iterable[FieldRule],
    text: str,
    convert: Callable[[str, FieldRule], Any],
) -> ExtractionField[Any]:
    """Evaluate rules in order; the first one that matches and converts wins."""

    if not text:
        return ExtractionField.absent()

    for rule in rules:
        match = rule.pattern.search(text)
        if not match:
            continue
        captured = rule.capture(match)
        if captured is None:
            continue
        value = convert(captured, rule)
        if value is None:
            LOGGER.debug("Rule %s matched %r but produced no value", rule.rule_id, captured)
            continue
        return ExtractionField.of(value, rule.confidence, rule.rule_id)
    return ExtractionField.absent()


class PatternEngine:
    """Runs the rule tables against normalized message text."""

    def __init__(self, config: ExtractionConfig, rules: Optional[RuleSet] = None) -> None:
        self._config = config
        self._rules = rules or default_rule_set()
        self._sender_rules: Dict[str, RuleSet] = {}

    @property
    def config(self) -> ExtractionConfig:
        return self._config

    def rules_for(self, sender: Optional[SenderRule]) -> RuleSet:
        """Return the rule set for a sender, with its overrides tried first."""

        if sender is None or not sender.extraction_overrides:
            return self._rules
        cached = self._sender_rules.get(sender.name)
        if cached is None:
            cached = self._rules.with_overrides(compile_rules(sender.extraction_overrides))
            self._sender_rules[sender.name] = cached
        return cached

    def extract_amount(self, text: str, rules: Optional[RuleSet] = None) -> ExtractionField[Decimal]:
        rule_set = rules or self._rules
        return _first_match(rule_set.amount, text, lambda raw, _rule: parse_amount(raw))

    def extract_description(self, text: str, rules: Optional[RuleSet] = None) -> ExtractionField[str]:
        rule_set = rules or self._rules
        markers = self._config.footer_markers
        return _first_match(rule_set.description, text, lambda raw, _rule: clean_description(raw, markers))

    def extract_account_identifier(self, text: str, rules: Optional[RuleSet] = None) -> ExtractionField[str]:
        rule_set = rules or self._rules
        return _first_match(rule_set.account, text, lambda raw, _rule: raw.strip() or None)

    def extract_occurred_at(self, text: str, rules: Optional[RuleSet] = None) -> ExtractionField[datetime]:
        rule_set = rules or self._rules
        return _first_match(rule_set.occurred_at, text, lambda raw, rule: parse_date(raw, rule.formats))

    def extract_reference(self, text: str, rules: Optional[RuleSet] = None) -> ExtractionField[str]:
        rule_set = rules or self._rules
        return _first_match(rule_set.reference, text, lambda raw, _rule: raw.strip() or None)

    def extract_currency(self, text: str, rules: Optional[RuleSet] = None) -> ExtractionField[str]:
        rule_set = rules or self._rules
        return _first_match(rule_set.currency, text, lambda raw, _rule: raw.strip().upper() or None)

    def classify_direction(self, text: str, fixed: Optional[Direction] = None) -> ExtractionField[Direction]:
        """Keyword vote, unless the sender pins the direction."""

        if fixed is not None:
            return ExtractionField.of(fixed, 100, DIRECTION_FIXED)

        credit = count_keywords(text or "", self._config.credit_keywords)
        debit = count_keywords(text or "", self._config.debit_keywords)
        if credit == debit:
            return ExtractionField.of(Direction.DEBIT, 50, DIRECTION_DEFAULT)
        direction = Direction.CREDIT if credit > debit else Direction.DEBIT
        return ExtractionField.of(direction, 75, DIRECTION_KEYWORDS)

    def is_declined(self, text: str) -> bool:
        lowered = (text or "").lower()
        return any(marker.lower() in lowered for marker in self._config.declined_markers)

    def diagnose(self, text: str, sender: Optional[SenderRule] = None) -> Dict[str, ExtractionField[Any]]:
        """Run every field extractor and return the results keyed by field."""

        rules = self.rules_for(sender)
        fixed = sender.fixed_direction if sender else None
        return {
            "amount": self.extract_amount(text, rules),
            "description": self.extract_description(text, rules),
            "direction": self.classify_direction(text, fixed),
            "account": self.extract_account_identifier(text, rules),
            "occurred_at": self.extract_occurred_at(text, rules),
            "reference": self.extract_reference(text, rules),
            "currency": self.extract_currency(text, rules),
        }
