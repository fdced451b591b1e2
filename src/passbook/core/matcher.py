"""Fuzzy account identity resolution (core domain).

Scores every roster entry against the message text and any supplementary
texts (extracted description, oracle account hint). Exact substring hits earn
the full attribute weight; near misses earn a share of the fuzzy weight scaled
by the rapidfuzz partial ratio.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz

from passbook.core.config import MatcherConfig
from passbook.core.models import AccountRosterEntry, MatchResult

LOGGER = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_NON_DIGIT = re.compile(r"\D+")


def normalize_for_match(text: Optional[str]) -> str:
    """Lower-case, replace non-alphanumerics with spaces, collapse runs."""

    if not text:
        return ""
    return _NON_ALNUM.sub(" ", text.lower()).strip()


def numbers_conflict(declared: Optional[str], extracted: Optional[str]) -> bool:
    """True when both numbers are known and neither ends with the other."""

    declared_digits = _NON_DIGIT.sub("", declared or "")
    extracted_digits = _NON_DIGIT.sub("", extracted or "")
    if not declared_digits or not extracted_digits:
        return False
    return not (declared_digits.endswith(extracted_digits) or extracted_digits.endswith(declared_digits))


def _attribute_score(attribute: str, haystack: str, exact: int, fuzzy: int, floor: int) -> float:
    if not attribute or not haystack:
        return 0.0
    if attribute in haystack:
        return float(exact)
    ratio = fuzz.partial_ratio(attribute, haystack)
    if ratio >= floor:
        return ratio / 100.0 * fuzzy
    return 0.0


class AccountResolver:
    """Pick the roster entry that best explains a message."""

    def __init__(self, config: MatcherConfig) -> None:
        self._config = config

    @property
    def config(self) -> MatcherConfig:
        return self._config

    def score(self, entry: AccountRosterEntry, haystack: str, account_ref: Optional[str] = None) -> int:
        """Composite score of one entry against an already normalized text.

        An entry whose declared number contradicts the extracted account
        identifier scores 0.
        """

        if numbers_conflict(entry.number, account_ref):
            return 0
        cfg = self._config
        total = _attribute_score(normalize_for_match(entry.name), haystack, cfg.name_exact, cfg.name_fuzzy, cfg.fuzzy_floor)
        total += _attribute_score(
            normalize_for_match(entry.number), haystack, cfg.number_exact, cfg.number_fuzzy, cfg.fuzzy_floor
        )
        for keyword in entry.keywords:
            total += _attribute_score(
                normalize_for_match(keyword), haystack, cfg.keyword_exact, cfg.keyword_fuzzy, cfg.fuzzy_floor
            )
        for alias in entry.aliases:
            total += _attribute_score(
                normalize_for_match(alias), haystack, cfg.alias_exact, cfg.alias_fuzzy, cfg.fuzzy_floor
            )
        return int(round(total))

    def rank(
        self,
        roster: Iterable[AccountRosterEntry],
        free_text: str,
        *supplementary: Optional[str],
        account_ref: Optional[str] = None,
    ) -> List[Tuple[AccountRosterEntry, int]]:
        """Return (entry, score) pairs, best first."""

        haystack = " ".join(
            part for part in (normalize_for_match(t) for t in (free_text, *supplementary)) if part
        )
        scored = [(entry, self.score(entry, haystack, account_ref)) for entry in roster]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored

    def resolve(
        self,
        roster: Sequence[AccountRosterEntry],
        free_text: str,
        *supplementary: Optional[str],
        account_ref: Optional[str] = None,
    ) -> MatchResult:
        """Best entry plus validity.

        Invalid when the roster is empty, the best score is under the
        acceptance threshold, or two entries share the top score. ``account_ref``
        is the account identifier extracted from the text, if any.
        """

        ranked = self.rank(roster, free_text, *supplementary, account_ref=account_ref)
        if not ranked:
            LOGGER.warning("Account roster is empty; nothing to match against")
            return MatchResult(account=None, score=0, valid=False)

        best, best_score = ranked[0]
        tied = len(ranked) > 1 and ranked[1][1] == best_score
        if best_score <= 0:
            LOGGER.warning("No account matched")
            return MatchResult(account=None, score=0, valid=False)

        valid = best_score >= self._config.acceptance_threshold and not tied
        if valid:
            LOGGER.info("Best matching account: %s with score %s", best.name, best_score)
        elif tied:
            LOGGER.warning(
                "Ambiguous account match: %s and %s both scored %s",
                best.name,
                ranked[1][0].name,
                best_score,
            )
        else:
            LOGGER.warning(
                "Best match %r has low score %s (minimum: %s)",
                best.name,
                best_score,
                self._config.acceptance_threshold,
            )
        return MatchResult(account=best, score=best_score, valid=valid)
