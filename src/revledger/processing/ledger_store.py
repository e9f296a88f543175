# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""SQLite-backed per-user revenue ledger."""

from __future__ import annotations

import logging
import sqlite3
from typing import Dict, List, Mapping, Optional

from ..shared.errors import LedgerError
from .database.sqlite_client import SQLiteClient

logger = logging.getLogger(__name__)

UPSERT_REVENUE_SQL = """
INSERT INTO users_revenue (user_id, revenue, updated_at)
VALUES (?, ?, CURRENT_TIMESTAMP)
ON CONFLICT(user_id) DO UPDATE SET
    revenue = users_revenue.revenue + excluded.revenue,
    updated_at = CURRENT_TIMESTAMP
"""


class LedgerStore:
    """Running revenue total per user, mutated only by signed-delta upserts."""

    def __init__(self, sqlite_client: SQLiteClient):
        self.client = sqlite_client

    @staticmethod
    def upsert_revenue(conn: sqlite3.Connection, user_id: str, delta: float) -> None:
        """
        Add ``delta`` to the user's total, creating the row if absent.

        The addition happens inside the statement, so concurrent upserts for
        the same user accumulate rather than overwrite.
        """
        conn.execute(UPSERT_REVENUE_SQL, (user_id, delta))

    def apply_deltas(self, deltas: Mapping[str, float]) -> None:
        """
        Apply a batch of per-user deltas in one transaction.

        Args:
            deltas: user_id -> signed revenue delta

        Raises:
            LedgerError: If any statement fails; the transaction is rolled back
        """
        if not deltas:
            return

        try:
            with self.client.get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    for user_id, delta in deltas.items():
                        self.upsert_revenue(conn, user_id, delta)
                    conn.execute("COMMIT")
                except sqlite3.Error:
                    conn.execute("ROLLBACK")
                    raise
        except sqlite3.Error as e:
            raise LedgerError(f"Ledger transaction for {len(deltas)} users failed", cause=e) from e

        logger.debug(f"Committed revenue deltas for {len(deltas)} users")

    def get_user_rows(self, user_id: str) -> List[Dict]:
        """Ledger rows for a user (empty list if the user has none)."""
        with self.client.get_connection() as conn:
            cursor = conn.execute(
                "SELECT user_id, revenue, updated_at FROM users_revenue WHERE user_id = ?",
                (user_id,),
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_revenue(self, user_id: str) -> Optional[float]:
        rows = self.get_user_rows(user_id)
        return rows[0]["revenue"] if rows else None

    def all_totals(self) -> Dict[str, float]:
        with self.client.get_connection() as conn:
            cursor = conn.execute("SELECT user_id, revenue FROM users_revenue ORDER BY user_id")
            return {row["user_id"]: row["revenue"] for row in cursor.fetchall()}
