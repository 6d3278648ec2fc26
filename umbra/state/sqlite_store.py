"""
Durable nullifier set on SQLite.

The primary key on nullifier_hash plus INSERT OR IGNORE makes the
check-and-insert a single statement, so concurrent writers (threads or
processes sharing the file) cannot both record the same nullifier.
"""

from __future__ import annotations
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from umbra.node.scheduler import Clock, SystemClock
from umbra.state.store import NullifierSet

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS spent_nullifiers (
    nullifier_hash TEXT PRIMARY KEY,
    spent_timestamp INTEGER NOT NULL
);
"""


class SQLiteNullifierSet(NullifierSet):
    """
    Nullifier set persisted to a SQLite file.

    One connection per thread (sqlite3 connections are not shared across
    threads here). ":memory:" is rejected since every thread would get its
    own empty database.
    """

    def __init__(self, db_path: str, busy_timeout: float = 30.0, clock: Optional[Clock] = None):
        if db_path == ":memory:":
            raise ValueError("SQLiteNullifierSet needs a file path, use InMemoryNullifierSet instead")
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self.clock = clock or SystemClock()
        self._local = threading.local()

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        with self.transaction() as conn:
            conn.executescript(SCHEMA)
        logger.info(f"Nullifier store opened at {self.db_path}")

    def get_connection(self) -> sqlite3.Connection:
        """Get connection for current thread."""
        if getattr(self._local, "conn", None) is None:
            conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=FULL")
            self._local.conn = conn
        return self._local.conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self.get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise

    def insert_if_absent(self, key: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO spent_nullifiers (nullifier_hash, spent_timestamp) VALUES (?, ?)",
                (key, self.clock.now_ms()),
            )
            inserted = cursor.rowcount == 1

        if not inserted:
            logger.debug(f"Nullifier already recorded: {key[:16]}...")
        return inserted

    def contains(self, key: str) -> bool:
        cursor = self.get_connection().execute(
            "SELECT 1 FROM spent_nullifiers WHERE nullifier_hash = ?", (key,)
        )
        return cursor.fetchone() is not None

    def __len__(self) -> int:
        cursor = self.get_connection().execute("SELECT COUNT(*) FROM spent_nullifiers")
        return cursor.fetchone()[0]

    def close(self) -> None:
        """Close this thread's connection."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None
