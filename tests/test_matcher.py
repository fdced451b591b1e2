from __future__ import annotations

import pytest

from passbook import settings
from passbook.core.config import MatcherConfig
from passbook.core.matcher import AccountResolver, normalize_for_match, numbers_conflict
from passbook.core.models import AccountRosterEntry

AXIS_CC = AccountRosterEntry(
    id="axis-cc",
    name="Axis Bank Credit Card",
    number="0434",
    keywords=("axis bank credit card",),
)
AXIS_SAVINGS = AccountRosterEntry(id="axis-sb", name="Axis Bank Savings", number="2804")
ICICI = AccountRosterEntry(id="icici", name="ICICI Card", aliases=("Amazon Pay ICICI",))

ALERT = "Transaction Amount: INR 3480 Merchant Name: MADHULOKA L Axis Bank Credit Card No. XX0434"


def test_normalize_for_match_strips_punctuation() -> None:
    assert normalize_for_match("A/c no. XX-0434!") == "a c no xx 0434"
    assert normalize_for_match(None) == ""


def test_best_account_wins_with_exact_hits() -> None:
    resolver = AccountResolver(MatcherConfig())

    result = resolver.resolve([AXIS_SAVINGS, AXIS_CC, ICICI], ALERT, "MADHULOKA L")

    assert result.valid
    assert result.account == AXIS_CC
    assert result.score == 20 + 50 + 25


def test_score_below_threshold_is_invalid() -> None:
    resolver = AccountResolver(MatcherConfig(acceptance_threshold=50))
    name_only = AccountRosterEntry(id="axis", name="Axis Bank Credit Card")

    result = resolver.resolve([name_only], ALERT)

    assert result.account == name_only
    assert result.score == 20
    assert not result.valid


def test_nothing_matching_yields_no_account() -> None:
    resolver = AccountResolver(MatcherConfig())
    result = resolver.resolve([AccountRosterEntry(id="z", name="Zeta Bank")], "random unrelated words")
    assert result.account is None
    assert result.score == 0
    assert not result.valid


def test_empty_roster_is_invalid() -> None:
    result = AccountResolver(MatcherConfig()).resolve([], ALERT)
    assert result.account is None
    assert not result.valid


def test_tie_at_the_top_is_invalid() -> None:
    first = AccountRosterEntry(id="a", name="First", keywords=("hdfc",))
    second = AccountRosterEntry(id="b", name="Second", keywords=("hdfc",))

    result = AccountResolver(MatcherConfig()).resolve([first, second], "spent on hdfc card")

    assert result.score == 25
    assert not result.valid


def test_fuzzy_hit_earns_a_share_of_the_fuzzy_weight() -> None:
    resolver = AccountResolver(MatcherConfig())
    haystack = normalize_for_match("paid with amazn pay icici today")

    score = resolver.score(ICICI, haystack)

    assert 0 < score <= MatcherConfig().alias_fuzzy


def test_supplementary_text_contributes() -> None:
    resolver = AccountResolver(MatcherConfig())
    entry = AccountRosterEntry(id="hdfc", name="HDFC Millennia", keywords=("millennia",))

    without = resolver.resolve([entry], "INR 100 spent")
    with_hint = resolver.resolve([entry], "INR 100 spent", "HDFC Millennia card")

    assert not without.valid
    assert with_hint.valid
    assert with_hint.score > without.score


def test_numbers_conflict_compares_trailing_digits() -> None:
    assert numbers_conflict("0434", "7002")
    assert not numbers_conflict("0434", "0434")
    assert not numbers_conflict("6789", "123456789")
    assert not numbers_conflict(None, "7002")
    assert not numbers_conflict("0434", None)


@pytest.mark.parametrize("card", ["0434", "7002"])
def test_shipped_roster_tells_axis_cards_apart(card: str) -> None:
    resolver = AccountResolver(settings.MATCHER)
    text = f"Transaction Amount: INR 250 Merchant Name: SWIGGY Axis Bank Credit Card No. XX{card}"

    result = resolver.resolve(settings.ACCOUNTS, text, "SWIGGY", account_ref=card)

    assert result.valid
    assert result.account is not None
    assert result.account.id == f"axis-cc-{card}"


def test_number_hit_outranks_name_and_keyword_hits() -> None:
    other_card = AccountRosterEntry(id="axis-select", name="Axis Bank Select Credit Card", number="7002")
    text = "Merchant Name: SWIGGY Axis Bank Credit Card No. XX7002"

    result = AccountResolver(MatcherConfig()).resolve([AXIS_CC, other_card], text)

    assert result.account == other_card
    assert result.valid
