"""SQLite storage adapter.

Implements the core TransactionStorePort using a simple SQLite database.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from passbook.core.models import CandidateTransaction, Direction, StoredTransaction


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _decimal_text(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


class SQLiteTransactionStore:
    """Thin SQLite wrapper that satisfies the TransactionStorePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - transactions: one row per handed-off candidate
        """

        with self._connect() as conn:
            # Amounts are stored as TEXT to keep Decimal precision.
            # The enriched_* columns are only ever written from the
            # enrichment track and never read back into the plain columns.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_id TEXT,
                    source_thread_id TEXT,
                    occurred_at TIMESTAMP,
                    amount TEXT,
                    description TEXT,
                    direction TEXT,
                    account_id TEXT,
                    account_ref TEXT,
                    currency TEXT,
                    raw_text TEXT,
                    enriched_amount TEXT,
                    enriched_description TEXT,
                    enriched_direction TEXT,
                    enriched_account_ref TEXT,
                    enriched_currency TEXT,
                    category TEXT,
                    created_at TIMESTAMP NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_transactions_thread ON transactions (source_thread_id)"
            )

    @staticmethod
    def _row_to_transaction(row: sqlite3.Row) -> StoredTransaction:
        return StoredTransaction(
            id=int(row["id"]),
            source_id=row["source_id"],
            source_thread_id=row["source_thread_id"],
            occurred_at=datetime.fromisoformat(row["occurred_at"]) if row["occurred_at"] else None,
            amount=Decimal(row["amount"]) if row["amount"] is not None else None,
            description=row["description"],
            direction=Direction.parse(row["direction"]),
            account_ref=row["account_ref"],
            currency=row["currency"],
            raw_text=row["raw_text"],
        )

    def find_by_thread_id(self, thread_id: str) -> List[StoredTransaction]:
        """Return stored transactions of a thread, oldest first."""

        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM transactions WHERE source_thread_id = ? ORDER BY id",
                (thread_id,),
            ).fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def find_by_source_id(self, source_id: str) -> List[StoredTransaction]:
        """Return stored transactions recorded for one message id."""

        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM transactions WHERE source_id = ? ORDER BY id",
                (source_id,),
            ).fetchall()
        return [self._row_to_transaction(row) for row in rows]

    def get_transaction(self, transaction_id: int) -> Optional[StoredTransaction]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM transactions WHERE id = ?", (transaction_id,)).fetchone()
        return self._row_to_transaction(row) if row else None

    def backfill_raw_text(self, transaction_id: int, raw_text: str) -> None:
        """Set raw_text only where it is still empty."""

        with self._connect() as conn:
            conn.execute(
                """
                UPDATE transactions SET raw_text = ?
                WHERE id = ? AND (raw_text IS NULL OR TRIM(raw_text) = '')
                """,
                (raw_text, transaction_id),
            )

    def backfill_source_id(self, transaction_id: int, source_id: str) -> None:
        """Set source_id only where it is still empty."""

        with self._connect() as conn:
            conn.execute(
                """
                UPDATE transactions SET source_id = ?
                WHERE id = ? AND (source_id IS NULL OR source_id = '')
                """,
                (source_id, transaction_id),
            )

    def save_transaction(self, candidate: CandidateTransaction, account_id: Optional[str]) -> int:
        """Insert a handed-off candidate and return its row id."""

        created_at = datetime.now(timezone.utc)
        enriched_direction = candidate.enriched_direction
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO transactions (
                    source_id,
                    source_thread_id,
                    occurred_at,
                    amount,
                    description,
                    direction,
                    account_id,
                    account_ref,
                    currency,
                    raw_text,
                    enriched_amount,
                    enriched_description,
                    enriched_direction,
                    enriched_account_ref,
                    enriched_currency,
                    category,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    candidate.source_id,
                    candidate.source_thread_id,
                    _iso(candidate.occurred_at),
                    _decimal_text(candidate.amount),
                    candidate.description,
                    candidate.direction.value,
                    account_id,
                    candidate.account_ref,
                    candidate.currency,
                    candidate.raw_text,
                    _decimal_text(candidate.enriched_amount),
                    candidate.enriched_description,
                    enriched_direction.value if enriched_direction else None,
                    candidate.enriched_account_ref,
                    candidate.enriched_currency,
                    candidate.enriched.category,
                    created_at.isoformat(),
                ),
            )
            return int(cur.lastrowid)

    def count_transactions(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM transactions").fetchone()
        return int(row["total"])
