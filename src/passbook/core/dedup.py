"""Deduplication helpers (core domain)."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Optional, Sequence

from passbook.core.config import DedupConfig
from passbook.core.models import CandidateTransaction, StoredTransaction

_MODES = ("thread", "content")


def _collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def normalize_description(text: Optional[str]) -> str:
    """Normalize a description for equality checks."""

    if not text:
        return ""
    return _collapse_whitespace(text).lower()


@dataclass(frozen=True)
class MergePlan:
    """Fields to back-fill on an existing record when a duplicate arrives."""

    transaction_id: int
    raw_text: Optional[str] = None
    source_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.raw_text is None and self.source_id is None


def _both_present_and_differ(left: Optional[str], right: Optional[str]) -> bool:
    return bool(left) and bool(right) and left != right


def _content_matches(candidate: CandidateTransaction, record: StoredTransaction, window_seconds: int) -> bool:
    if candidate.amount is None or record.amount is None or candidate.amount != record.amount:
        return False
    if record.direction is not None and record.direction != candidate.direction:
        return False
    if normalize_description(candidate.description) != normalize_description(record.description):
        return False
    if _both_present_and_differ(candidate.currency, record.currency):
        return False
    if _both_present_and_differ(candidate.account_ref, record.account_ref):
        return False
    if record.occurred_at is None:
        return False
    delta = abs((candidate.occurred_at - record.occurred_at).total_seconds())
    return delta <= window_seconds


def find_duplicate(
    candidate: CandidateTransaction,
    existing: Sequence[StoredTransaction],
    config: DedupConfig,
) -> Optional[StoredTransaction]:
    """Return the stored record that ``candidate`` duplicates, if any.

    ``existing`` holds the records stored for the candidate's thread, or
    for its source id when the message has no thread. A record with the same
    source id always wins. In "thread" mode any other record in the thread is
    a duplicate as well; in "content" mode it must also agree on amount,
    direction and description within the time window. Without a thread only
    the source id is compared.
    """

    if config.mode not in _MODES:
        raise ValueError(f"Unsupported dedup mode: {config.mode}")
    if not existing:
        return None

    for record in existing:
        if record.source_id and record.source_id == candidate.source_id:
            return record

    if not candidate.source_thread_id:
        return None

    if config.mode == "thread":
        return existing[0]

    for record in existing:
        if _content_matches(candidate, record, config.window_seconds):
            return record
    return None


def merge_plan(record: StoredTransaction, candidate: CandidateTransaction) -> MergePlan:
    """Back-fill only what the stored record is missing."""

    raw_text = candidate.raw_text if not (record.raw_text or "").strip() and candidate.raw_text else None
    source_id = candidate.source_id if not record.source_id and candidate.source_id else None
    return MergePlan(transaction_id=record.id, raw_text=raw_text, source_id=source_id)
