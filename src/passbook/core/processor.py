"""Core message processing pipeline.

This module is integration-agnostic. It only relies on ports for storage and
enrichment, so mailbox readers and frontends can change without touching it.

Each message moves through NORMALIZED -> BASICS_EXTRACTED -> DEDUP_CHECKED ->
(MERGED | ACCOUNT_RESOLVED -> ENRICHED -> HANDED_OFF). A failure in one message
is logged and reported as an outcome; it never aborts the batch.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterable, List, Optional, Sequence

from passbook.core.config import DedupConfig
from passbook.core.dedup import find_duplicate, merge_plan
from passbook.core.enrichment import EnrichmentTrack
from passbook.core.matcher import AccountResolver
from passbook.core.models import (
    AccountRosterEntry,
    CandidateTransaction,
    OutcomeStatus,
    PipelineStage,
    ProcessOutcome,
    RawMessage,
    SenderRule,
)
from passbook.core.normalizer import is_skip_sentinel, normalize_body
from passbook.core.ports import TransactionStorePort
from passbook.core.rules_engine import PatternEngine

LOGGER = logging.getLogger(__name__)


class MessageProcessor:
    """Orchestrates extraction, dedup, account resolution, enrichment and handoff."""

    def __init__(
        self,
        engine: PatternEngine,
        resolver: AccountResolver,
        enrichment: EnrichmentTrack,
        store: TransactionStorePort,
        dedup_config: DedupConfig,
    ) -> None:
        self._engine = engine
        self._resolver = resolver
        self._enrichment = enrichment
        self._store = store
        self._dedup = dedup_config

    def extract_basics(self, message: RawMessage, text: str, rule: Optional[SenderRule]) -> CandidateTransaction:
        """Build a candidate from the deterministic track only."""

        config = self._engine.config
        diagnostics = self._engine.diagnose(text, rule)
        candidate = CandidateTransaction(
            source_id=message.source_id,
            source_thread_id=message.thread_id,
            received_at=message.received_at,
            raw_text=text,
        )
        return candidate.with_diagnostics(diagnostics).with_extracted(
            amount=diagnostics["amount"].value,
            description=diagnostics["description"].value,
            direction=diagnostics["direction"].value,
            account_ref=diagnostics["account"].value,
            currency=diagnostics["currency"].value or config.default_currency,
            occurred_at=diagnostics["occurred_at"].value,
        )

    def _merge(self, candidate: CandidateTransaction) -> Optional[ProcessOutcome]:
        if candidate.source_thread_id:
            existing = self._store.find_by_thread_id(candidate.source_thread_id)
        elif candidate.source_id:
            existing = self._store.find_by_source_id(candidate.source_id)
        else:
            return None
        duplicate = find_duplicate(candidate, existing, self._dedup)
        if duplicate is None:
            return None

        plan = merge_plan(duplicate, candidate)
        if plan.raw_text is not None:
            self._store.backfill_raw_text(plan.transaction_id, plan.raw_text)
        if plan.source_id is not None:
            self._store.backfill_source_id(plan.transaction_id, plan.source_id)
        LOGGER.info(
            "Duplicate of transaction %s (thread %s, message %s)%s",
            duplicate.id,
            candidate.source_thread_id,
            candidate.source_id,
            "" if plan.is_empty else " (back-filled)",
        )
        return ProcessOutcome(
            status=OutcomeStatus.MERGED,
            stage=PipelineStage.MERGED,
            source_id=candidate.source_id,
            candidate=candidate,
            transaction_id=duplicate.id,
        )

    def handle(
        self,
        message: RawMessage,
        rule: Optional[SenderRule],
        roster: Sequence[AccountRosterEntry],
    ) -> ProcessOutcome:
        """Process one message through the pipeline and report how far it got."""

        stage = PipelineStage.RECEIVED
        candidate: Optional[CandidateTransaction] = None
        try:
            text = normalize_body(message.body, message.source_id)
            if is_skip_sentinel(text):
                return ProcessOutcome(OutcomeStatus.SKIPPED, stage, message.source_id, reason=text)
            stage = PipelineStage.NORMALIZED

            if (rule is None or rule.skip_declined) and self._engine.is_declined(text):
                LOGGER.info("Skipping declined transaction alert %s", message.source_id)
                return ProcessOutcome(OutcomeStatus.SKIPPED, stage, message.source_id, reason="declined")

            candidate = self.extract_basics(message, text, rule)
            stage = PipelineStage.BASICS_EXTRACTED

            merged = self._merge(candidate)
            if merged is not None:
                return merged
            stage = PipelineStage.DEDUP_CHECKED

            match = self._resolver.resolve(roster, text, candidate.description, account_ref=candidate.account_ref)
            if not match.valid or match.account is None:
                LOGGER.warning(
                    "Rejected %s: no account resolved (best score %s)",
                    message.source_id,
                    match.score,
                )
                return ProcessOutcome(
                    OutcomeStatus.REJECTED,
                    stage,
                    message.source_id,
                    candidate=candidate,
                    reason="account unresolved",
                )
            stage = PipelineStage.ACCOUNT_RESOLVED

            if self._enrichment.enabled:
                candidate = self._enrichment.enrich(candidate, roster)
                stage = PipelineStage.ENRICHED

            # The placeholder is applied to the deterministic track only.
            if candidate.description is None:
                candidate = candidate.with_extracted(description=self._engine.config.placeholder_description)

            transaction_id = self._store.save_transaction(candidate, match.account.id)
            LOGGER.info(
                "Saved transaction %s for %s (%s %s %s)",
                transaction_id,
                match.account.name,
                candidate.direction.value,
                candidate.amount,
                candidate.currency,
            )
            return ProcessOutcome(
                OutcomeStatus.HANDED_OFF,
                PipelineStage.HANDED_OFF,
                message.source_id,
                candidate=candidate,
                transaction_id=transaction_id,
            )
        except Exception as exc:
            LOGGER.exception("Failed to process message %s at %s", message.source_id, stage.value)
            return ProcessOutcome(
                OutcomeStatus.FAILED,
                stage,
                message.source_id,
                candidate=candidate,
                reason=str(exc),
            )

    def process_batch(
        self,
        messages: Iterable[RawMessage],
        rule: Optional[SenderRule],
        roster: Sequence[AccountRosterEntry],
        cancel_event: Optional[threading.Event] = None,
    ) -> List[ProcessOutcome]:
        """Process messages sequentially; stop between messages when cancelled."""

        outcomes: List[ProcessOutcome] = []
        for message in messages:
            if cancel_event is not None and cancel_event.is_set():
                LOGGER.info("Batch cancelled after %s message(s)", len(outcomes))
                break
            outcomes.append(self.handle(message, rule, roster))
        return outcomes
