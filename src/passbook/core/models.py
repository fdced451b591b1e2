"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any mailbox-, oracle-, or storage-specific types.

A ``CandidateTransaction`` carries two disjoint groups of fields: the
deterministic track (filled by pattern rules) and the enrichment track
(filled by the oracle). The object is frozen and each group can only be
replaced through its own ``with_*`` method, so one track can never be written
from the other.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from passbook.core.results import ExtractionField


class Direction(str, Enum):
    """Money flow relative to the account holder."""

    DEBIT = "DEBIT"
    CREDIT = "CREDIT"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Direction"]:
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


@dataclass(frozen=True)
class MessagePart:
    """One node of a multi-part mail body (Gmail API payload shape)."""

    mime_type: str
    data: Optional[str] = None
    parts: Tuple["MessagePart", ...] = ()


@dataclass(frozen=True)
class RawMessage:
    """Minimal message context used by the core processing pipeline."""

    source_id: str
    thread_id: Optional[str]
    received_at: datetime
    body: Union[str, MessagePart, None]
    subject: str = ""
    sender: str = ""


@dataclass(frozen=True)
class DeterministicFields:
    """Fields populated by pattern rules only."""

    amount: Optional[Decimal] = None
    description: Optional[str] = None
    direction: Direction = Direction.DEBIT
    account_ref: Optional[str] = None
    currency: Optional[str] = None
    occurred_at: Optional[datetime] = None


@dataclass(frozen=True)
class EnrichmentFields:
    """Fields populated by the oracle only."""

    amount: Optional[Decimal] = None
    description: Optional[str] = None
    direction: Optional[Direction] = None
    account_ref: Optional[str] = None
    currency: Optional[str] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class CandidateTransaction:
    """An in-flight transaction assembled by the pipeline."""

    source_id: str
    source_thread_id: Optional[str]
    received_at: datetime
    raw_text: str
    extracted: DeterministicFields = field(default_factory=DeterministicFields)
    enriched: EnrichmentFields = field(default_factory=EnrichmentFields)
    diagnostics: Mapping[str, ExtractionField[Any]] = field(default_factory=dict)

    def with_extracted(self, **changes: Any) -> "CandidateTransaction":
        return replace(self, extracted=replace(self.extracted, **changes))

    def with_enriched(self, enriched: EnrichmentFields) -> "CandidateTransaction":
        return replace(self, enriched=enriched)

    def with_diagnostics(self, diagnostics: Mapping[str, ExtractionField[Any]]) -> "CandidateTransaction":
        return replace(self, diagnostics=dict(diagnostics))

    @property
    def amount(self) -> Optional[Decimal]:
        return self.extracted.amount

    @property
    def description(self) -> Optional[str]:
        return self.extracted.description

    @property
    def direction(self) -> Direction:
        return self.extracted.direction

    @property
    def account_ref(self) -> Optional[str]:
        return self.extracted.account_ref

    @property
    def currency(self) -> Optional[str]:
        return self.extracted.currency

    @property
    def occurred_at(self) -> datetime:
        return self.extracted.occurred_at or self.received_at

    @property
    def enriched_amount(self) -> Optional[Decimal]:
        return self.enriched.amount

    @property
    def enriched_description(self) -> Optional[str]:
        return self.enriched.description

    @property
    def enriched_direction(self) -> Optional[Direction]:
        return self.enriched.direction

    @property
    def enriched_account_ref(self) -> Optional[str]:
        return self.enriched.account_ref

    @property
    def enriched_currency(self) -> Optional[str]:
        return self.enriched.currency


@dataclass(frozen=True)
class AccountRosterEntry:
    """A known account used as a fuzzy-match target. Never mutated."""

    id: str
    name: str
    number: Optional[str] = None
    keywords: Tuple[str, ...] = ()
    aliases: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MatchResult:
    """Best roster entry for a text, with its composite score."""

    account: Optional[AccountRosterEntry]
    score: int
    valid: bool


@dataclass(frozen=True)
class SenderRule:
    """Static per-sender configuration, loaded once per run."""

    name: str
    subject_patterns: Tuple[str, ...]
    sender_address: str
    fixed_direction: Optional[Direction] = None
    extraction_overrides: Tuple[Dict[str, Any], ...] = ()
    skip_declined: bool = True


@dataclass(frozen=True)
class StoredTransaction:
    """A persisted transaction as exposed by the store port."""

    id: int
    source_id: Optional[str]
    source_thread_id: Optional[str]
    occurred_at: Optional[datetime]
    amount: Optional[Decimal]
    description: Optional[str]
    direction: Optional[Direction]
    account_ref: Optional[str]
    currency: Optional[str]
    raw_text: Optional[str]


class PipelineStage(str, Enum):
    """How far a message travelled through the orchestrator."""

    RECEIVED = "RECEIVED"
    NORMALIZED = "NORMALIZED"
    BASICS_EXTRACTED = "BASICS_EXTRACTED"
    DEDUP_CHECKED = "DEDUP_CHECKED"
    MERGED = "MERGED"
    ACCOUNT_RESOLVED = "ACCOUNT_RESOLVED"
    ENRICHED = "ENRICHED"
    HANDED_OFF = "HANDED_OFF"


class OutcomeStatus(str, Enum):
    SKIPPED = "SKIPPED"
    MERGED = "MERGED"
    REJECTED = "REJECTED"
    HANDED_OFF = "HANDED_OFF"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ProcessOutcome:
    """Result of running one RawMessage through the orchestrator."""

    status: OutcomeStatus
    stage: PipelineStage
    source_id: str
    candidate: Optional[CandidateTransaction] = None
    transaction_id: Optional[int] = None
    reason: Optional[str] = None
