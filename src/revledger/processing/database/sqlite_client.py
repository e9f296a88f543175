# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Thin SQLite connection helper.

Connections are opened per operation in autocommit mode so that callers
control transactions explicitly with BEGIN / COMMIT / ROLLBACK.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_MS = 5000


class SQLiteClient:
    """Opens configured SQLite connections for one database file."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path).expanduser()

    def initialize_database(self) -> None:
        """Create the parent directory and switch the database to WAL mode."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.get_connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
        logger.info(f"Database ready at {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=BUSY_TIMEOUT_MS / 1000.0,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
        return conn

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection that is closed on exit."""
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()
