"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the transaction store and the
enrichment oracle so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import List, Optional, Protocol

from passbook.core.models import CandidateTransaction, StoredTransaction


class TransactionStorePort(Protocol):
    """Storage operations required by the core pipeline."""

    def find_by_thread_id(self, thread_id: str) -> List[StoredTransaction]:
        ...

    def find_by_source_id(self, source_id: str) -> List[StoredTransaction]:
        ...

    def backfill_raw_text(self, transaction_id: int, raw_text: str) -> None:
        ...

    def backfill_source_id(self, transaction_id: int, source_id: str) -> None:
        ...

    def save_transaction(self, candidate: CandidateTransaction, account_id: Optional[str]) -> int:
        ...


class OraclePort(Protocol):
    """Enrichment oracle: normalized text in, reply text out.

    Implementations raise ``OracleError`` subclasses on failure.
    """

    def complete(self, text: str) -> str:
        ...
