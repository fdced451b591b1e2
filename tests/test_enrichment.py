from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

import pytest

from passbook.core.config import EnrichmentConfig, MatcherConfig
from passbook.core.enrichment import (
    EnrichmentTrack,
    OracleResponseError,
    OracleUnavailableError,
    build_enrichment_fields,
    extract_json_object,
    parse_oracle_response,
)
from passbook.core.matcher import AccountResolver
from passbook.core.models import (
    AccountRosterEntry,
    CandidateTransaction,
    DeterministicFields,
    Direction,
)

ROSTER = (
    AccountRosterEntry(id="axis-cc", name="Axis Bank Credit Card", number="0434"),
    AccountRosterEntry(id="icici", name="ICICI Amazon Pay Card", number="9057"),
)

FENCED = """Here is the result:
```json
{"amount": "3480.00", "description": "MADHULOKA {L}", "type": "DEBIT",
 "account": "Axis Bank Credit Card XX0434", "currency": "INR", "category": "Food"}
```
Let me know if you need anything else."""


class FakeOracle:
    def __init__(self, reply: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[str] = []

    def complete(self, text: str) -> str:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.reply or ""


def _candidate(description: Optional[str] = "MADHULOKA L") -> CandidateTransaction:
    candidate = CandidateTransaction(
        source_id="m-1",
        source_thread_id="t-1",
        received_at=datetime(2025, 10, 23, 16, 10, 58),
        raw_text="Transaction Amount: INR 3,480 Merchant Name: MADHULOKA L Axis Bank Credit Card No. XX0434",
    )
    return candidate.with_extracted(amount=Decimal("3480"), description=description, currency="INR")


def _track(oracle: Optional[FakeOracle], enabled: bool = True) -> EnrichmentTrack:
    return EnrichmentTrack(oracle, AccountResolver(MatcherConfig()), EnrichmentConfig(enabled=enabled))


def test_fenced_reply_is_parsed() -> None:
    payload = parse_oracle_response(FENCED)
    assert payload["amount"] == "3480.00"
    assert payload["description"] == "MADHULOKA {L}"
    assert payload["type"] == "DEBIT"


def test_extract_json_object_handles_prose_and_escapes() -> None:
    assert extract_json_object('noise {"a": "x\\"}"} trailing }') == '{"a": "x\\"}"}'
    assert extract_json_object('broken { then {"ok": 1}') == '{"ok": 1}'
    assert extract_json_object("no json at all") is None
    assert extract_json_object(None) is None


def test_unusable_replies_raise_response_errors() -> None:
    with pytest.raises(OracleResponseError):
        parse_oracle_response("I could not find a transaction.")
    with pytest.raises(OracleResponseError):
        parse_oracle_response("{'single': 'quotes'}")


def test_invalid_values_map_to_none() -> None:
    fields = build_enrichment_fields(
        {"amount": "twelve", "type": "DEBIT | CREDIT", "currency": "Unknown", "category": ""},
        account_ref=None,
    )
    assert fields.amount is None
    assert fields.direction is None
    assert fields.currency is None
    assert fields.category is None


def test_enrich_fills_only_the_enrichment_track() -> None:
    oracle = FakeOracle(reply=FENCED)
    candidate = _candidate()

    enriched = _track(oracle).enrich(candidate, ROSTER)

    assert oracle.calls == [candidate.raw_text]
    assert enriched.extracted == candidate.extracted
    assert enriched.enriched_amount == Decimal("3480.00")
    assert enriched.enriched_description == "MADHULOKA {L}"
    assert enriched.enriched_direction is Direction.DEBIT
    assert enriched.enriched_currency == "INR"
    assert enriched.enriched.category == "Food"
    assert enriched.enriched_account_ref == "axis-cc"


def test_unknown_account_is_not_resolved() -> None:
    reply = '{"amount": 10, "description": "X", "type": "CREDIT", "account": "Unknown"}'
    enriched = _track(FakeOracle(reply=reply)).enrich(_candidate(), ROSTER)
    assert enriched.enriched_account_ref is None
    assert enriched.enriched_direction is Direction.CREDIT


@pytest.mark.parametrize(
    "oracle",
    [
        FakeOracle(error=OracleUnavailableError("connection refused")),
        FakeOracle(reply="Sorry, I cannot help with that."),
        FakeOracle(reply="```json\n{not json}\n```"),
    ],
)
def test_oracle_failures_leave_candidate_unchanged(oracle: FakeOracle) -> None:
    candidate = _candidate()
    assert _track(oracle).enrich(candidate, ROSTER) is candidate


def test_disabled_or_missing_oracle_is_a_no_op() -> None:
    candidate = _candidate()
    oracle = FakeOracle(reply=FENCED)

    assert _track(oracle, enabled=False).enrich(candidate, ROSTER) is candidate
    assert _track(None).enrich(candidate, ROSTER) is candidate
    assert oracle.calls == []


def test_enrichment_never_fills_deterministic_description() -> None:
    reply = '{"description": "SWIGGY", "type": "DEBIT"}'
    enriched = _track(FakeOracle(reply=reply)).enrich(_candidate(description=None), ROSTER)

    assert enriched.description is None
    assert enriched.enriched_description == "SWIGGY"


@pytest.mark.parametrize("field", ["amount", "description", "direction", "account_ref", "currency"])
def test_with_extracted_does_not_touch_enriched_fields(field: str) -> None:
    enriched = _track(FakeOracle(reply=FENCED)).enrich(_candidate(), ROSTER)
    before = enriched.enriched

    values = {
        "amount": Decimal("1"),
        "description": "changed",
        "direction": Direction.CREDIT,
        "account_ref": "9999",
        "currency": "USD",
    }
    changed = enriched.with_extracted(**{field: values[field]})

    assert changed.enriched == before
    assert getattr(changed.extracted, field) == values[field]
    assert changed.extracted != DeterministicFields()
