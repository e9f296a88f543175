# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""Ledger schema."""

import logging
from typing import Optional

from .sqlite_client import SQLiteClient

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

USERS_REVENUE_TABLE = """
CREATE TABLE IF NOT EXISTS users_revenue (
    user_id TEXT PRIMARY KEY,
    revenue REAL NOT NULL DEFAULT 0,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

SCHEMA_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
)
"""


def create_schema(client: SQLiteClient) -> None:
    """Create ledger tables if they don't exist and record the schema version."""
    with client.get_connection() as conn:
        conn.execute(USERS_REVENUE_TABLE)
        conn.execute(SCHEMA_VERSION_TABLE)
        conn.execute(
            "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
    logger.debug(f"Ledger schema at version {SCHEMA_VERSION}")


def get_schema_version(client: SQLiteClient) -> Optional[int]:
    """Highest recorded schema version, or None for a fresh database."""
    with client.get_connection() as conn:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
        ).fetchone()
        if row is None:
            return None
        row = conn.execute("SELECT MAX(version) AS version FROM schema_version").fetchone()
        return row["version"] if row else None
