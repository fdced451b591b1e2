from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
import threading
from typing import Optional

from passbook.core.config import DedupConfig, EnrichmentConfig, ExtractionConfig, MatcherConfig
from passbook.core.enrichment import EnrichmentTrack
from passbook.core.matcher import AccountResolver
from passbook.core.models import (
    AccountRosterEntry,
    CandidateTransaction,
    Direction,
    OutcomeStatus,
    PipelineStage,
    RawMessage,
    SenderRule,
    StoredTransaction,
)
from passbook.core.processor import MessageProcessor
from passbook.core.rules_engine import PatternEngine

ROSTER = (
    AccountRosterEntry(id="axis-cc", name="Axis Bank Credit Card", number="0434"),
    AccountRosterEntry(id="axis-sb", name="Axis Bank Savings", number="2804"),
)

AXIS_CC = "Transaction Amount: INR 3,480 Merchant Name: MADHULOKA L Axis Bank Credit Card No. XX0434"


class FakeStore:
    def __init__(self) -> None:
        self.records: list[StoredTransaction] = []
        self.saved: list[tuple[CandidateTransaction, Optional[str]]] = []
        self.fail_on: set[str] = set()

    def find_by_thread_id(self, thread_id: str) -> list[StoredTransaction]:
        return [record for record in self.records if record.source_thread_id == thread_id]

    def find_by_source_id(self, source_id: str) -> list[StoredTransaction]:
        return [record for record in self.records if record.source_id == source_id]

    def _update(self, transaction_id: int, **changes) -> None:
        self.records = [
            replace(record, **changes) if record.id == transaction_id else record for record in self.records
        ]

    def backfill_raw_text(self, transaction_id: int, raw_text: str) -> None:
        self._update(transaction_id, raw_text=raw_text)

    def backfill_source_id(self, transaction_id: int, source_id: str) -> None:
        self._update(transaction_id, source_id=source_id)

    def save_transaction(self, candidate: CandidateTransaction, account_id: Optional[str]) -> int:
        if candidate.source_id in self.fail_on:
            raise RuntimeError("disk full")
        transaction_id = len(self.records) + 1
        self.records.append(
            StoredTransaction(
                id=transaction_id,
                source_id=candidate.source_id,
                source_thread_id=candidate.source_thread_id,
                occurred_at=candidate.occurred_at,
                amount=candidate.amount,
                description=candidate.description,
                direction=candidate.direction,
                account_ref=candidate.account_ref,
                currency=candidate.currency,
                raw_text=candidate.raw_text,
            )
        )
        self.saved.append((candidate, account_id))
        return transaction_id


class CountingResolver(AccountResolver):
    def __init__(self) -> None:
        super().__init__(MatcherConfig())
        self.calls = 0

    def resolve(self, roster, free_text, *supplementary, account_ref=None):
        self.calls += 1
        return super().resolve(roster, free_text, *supplementary, account_ref=account_ref)


class FakeOracle:
    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.calls = 0

    def complete(self, text: str) -> str:
        self.calls += 1
        return self.reply


def _processor(
    store: FakeStore,
    oracle: Optional[FakeOracle] = None,
    resolver: Optional[AccountResolver] = None,
) -> MessageProcessor:
    resolver = resolver or AccountResolver(MatcherConfig())
    return MessageProcessor(
        engine=PatternEngine(ExtractionConfig()),
        resolver=resolver,
        enrichment=EnrichmentTrack(oracle, resolver, EnrichmentConfig(enabled=oracle is not None)),
        store=store,
        dedup_config=DedupConfig(),
    )


def _message(source_id: str = "m-1", thread_id: Optional[str] = "t-1", body: Optional[str] = AXIS_CC) -> RawMessage:
    return RawMessage(
        source_id=source_id,
        thread_id=thread_id,
        received_at=datetime(2025, 10, 23, 16, 11, 0),
        body=body,
        subject="Transaction alert on Axis Bank Credit Card no. XX0434",
        sender="alerts@axis.bank.in",
    )


def test_alert_is_handed_off_with_resolved_account() -> None:
    store = FakeStore()

    outcome = _processor(store).handle(_message(), None, ROSTER)

    assert outcome.status is OutcomeStatus.HANDED_OFF
    assert outcome.stage is PipelineStage.HANDED_OFF
    assert outcome.transaction_id == 1
    candidate, account_id = store.saved[0]
    assert account_id == "axis-cc"
    assert candidate.amount == Decimal("3480")
    assert candidate.description == "MADHULOKA L"
    assert candidate.direction is Direction.DEBIT
    assert candidate.currency == "INR"
    assert candidate.account_ref == "0434"
    assert candidate.occurred_at == datetime(2025, 10, 23, 16, 11, 0)
    assert candidate.diagnostics["amount"].rule_id == "AMOUNT_STANDARD_LABELED"


def test_second_message_in_thread_is_merged() -> None:
    store = FakeStore()
    processor = _processor(store)

    first = processor.handle(_message("m-1"), None, ROSTER)
    second = processor.handle(_message("m-2"), None, ROSTER)

    assert first.status is OutcomeStatus.HANDED_OFF
    assert second.status is OutcomeStatus.MERGED
    assert second.stage is PipelineStage.MERGED
    assert second.transaction_id == first.transaction_id
    assert len(store.saved) == 1


def test_duplicate_skips_resolution_and_enrichment() -> None:
    store = FakeStore()
    resolver = CountingResolver()
    oracle = FakeOracle('{"description": "MADHULOKA", "type": "DEBIT", "account": "Unknown"}')
    processor = _processor(store, oracle, resolver)

    processor.handle(_message("m-1"), None, ROSTER)
    resolver_calls, oracle_calls = resolver.calls, oracle.calls
    second = processor.handle(_message("m-2"), None, ROSTER)

    assert resolver_calls >= 1 and oracle_calls == 1
    assert second.status is OutcomeStatus.MERGED
    assert resolver.calls == resolver_calls
    assert oracle.calls == oracle_calls


def test_message_without_thread_is_deduplicated_by_source_id() -> None:
    store = FakeStore()
    processor = _processor(store)

    first = processor.handle(_message("m-1", thread_id=None), None, ROSTER)
    again = processor.handle(_message("m-1", thread_id=None), None, ROSTER)
    other = processor.handle(_message("m-2", thread_id=None), None, ROSTER)

    assert first.status is OutcomeStatus.HANDED_OFF
    assert again.status is OutcomeStatus.MERGED
    assert again.transaction_id == first.transaction_id
    assert other.status is OutcomeStatus.HANDED_OFF
    assert len(store.saved) == 2


def test_alert_for_second_card_resolves_to_that_card() -> None:
    store = FakeStore()
    roster = ROSTER + (AccountRosterEntry(id="axis-select", name="Axis Bank Select Credit Card", number="7002"),)
    body = "Transaction Amount: INR 250 Merchant Name: SWIGGY Axis Bank Credit Card No. XX7002"

    outcome = _processor(store).handle(_message(body=body), None, roster)

    assert outcome.status is OutcomeStatus.HANDED_OFF
    assert store.saved[0][1] == "axis-select"


def test_merge_backfills_missing_raw_text_and_source_id() -> None:
    store = FakeStore()
    store.records.append(
        StoredTransaction(
            id=7,
            source_id=None,
            source_thread_id="t-1",
            occurred_at=None,
            amount=Decimal("3480"),
            description="MADHULOKA L",
            direction=Direction.DEBIT,
            account_ref=None,
            currency="INR",
            raw_text=None,
        )
    )

    outcome = _processor(store).handle(_message("m-9"), None, ROSTER)

    assert outcome.status is OutcomeStatus.MERGED
    assert outcome.transaction_id == 7
    assert store.records[0].raw_text == AXIS_CC
    assert store.records[0].source_id == "m-9"


def test_unresolved_account_is_rejected_and_not_saved() -> None:
    store = FakeStore()
    roster = (AccountRosterEntry(id="zeta", name="Zeta Bank"),)

    outcome = _processor(store).handle(_message(), None, roster)

    assert outcome.status is OutcomeStatus.REJECTED
    assert outcome.stage is PipelineStage.DEDUP_CHECKED
    assert outcome.candidate is not None
    assert store.saved == []


def test_sentinel_and_declined_messages_are_skipped() -> None:
    store = FakeStore()
    processor = _processor(store)

    empty = processor.handle(_message(body=None), None, ROSTER)
    declined = processor.handle(
        _message(body="Your transaction of INR 500.00 has been declined. Axis Bank Credit Card XX0434"),
        None,
        ROSTER,
    )

    assert empty.status is OutcomeStatus.SKIPPED
    assert empty.stage is PipelineStage.RECEIVED
    assert declined.status is OutcomeStatus.SKIPPED
    assert declined.reason == "declined"
    assert store.saved == []


def test_declined_alerts_pass_when_sender_keeps_them() -> None:
    rule = SenderRule(
        name="AxisCC",
        subject_patterns=("Axis Bank Credit Card",),
        sender_address="alerts@axis.bank.in",
        skip_declined=False,
    )
    body = "Transaction failed reversal: Transaction Amount: INR 500.00 Axis Bank Credit Card No. XX0434"

    outcome = _processor(FakeStore()).handle(_message(body=body), rule, ROSTER)

    assert outcome.status is OutcomeStatus.HANDED_OFF


def test_placeholder_description_is_not_taken_from_enrichment() -> None:
    store = FakeStore()
    oracle = FakeOracle('```json\n{"description": "SWIGGY", "type": "DEBIT", "account": "Unknown"}\n```')
    body = "INR 100.00 spent on Axis Bank Credit Card XX0434"

    outcome = _processor(store, oracle).handle(_message(body=body), None, ROSTER)

    assert outcome.status is OutcomeStatus.HANDED_OFF
    assert oracle.calls == 1
    candidate, _ = store.saved[0]
    assert candidate.description == "Unknown"
    assert candidate.enriched_description == "SWIGGY"


def test_fixed_direction_from_sender_rule() -> None:
    rule = SenderRule(
        name="AmazonPayRefund",
        subject_patterns=("Refund",),
        sender_address="no-reply@amazonpay.in",
        fixed_direction=Direction.CREDIT,
    )
    outcome = _processor(FakeStore()).handle(_message(), rule, ROSTER)
    assert outcome.candidate is not None
    assert outcome.candidate.direction is Direction.CREDIT


def test_batch_continues_after_a_failure() -> None:
    store = FakeStore()
    store.fail_on.add("m-1")
    messages = [_message("m-1", thread_id="t-1"), _message("m-2", thread_id="t-2")]

    outcomes = _processor(store).process_batch(messages, None, ROSTER)

    assert [outcome.status for outcome in outcomes] == [OutcomeStatus.FAILED, OutcomeStatus.HANDED_OFF]
    assert outcomes[0].stage is PipelineStage.ACCOUNT_RESOLVED
    assert "disk full" in (outcomes[0].reason or "")


def test_cancelled_batch_stops_between_messages() -> None:
    store = FakeStore()
    cancel = threading.Event()
    cancel.set()

    outcomes = _processor(store).process_batch([_message()], None, ROSTER, cancel)

    assert outcomes == []
    assert store.saved == []
