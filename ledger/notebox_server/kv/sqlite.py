"""
SQLite key-value store for Notebox.

A single SQLite file holds one table of (key BLOB, value BLOB) rows.
The connection is opened lazily and kept for the life of the store so
that atomic() can span many get/set calls.

Table schema:
    kv:
        - k BLOB PRIMARY KEY
        - v BLOB NOT NULL

Invariants:
    - Outside atomic() each write autocommits
    - atomic() runs BEGIN IMMEDIATE ... COMMIT, ROLLBACK on any exception
      including a failed COMMIT
    - Nested atomic() blocks join the outermost transaction

How to change safely:
    - Keep the kv table append-compatible; add tables rather than columns
    - Test rollback with injected failures before deployment
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from .base import KVStoreClosedError

logger = logging.getLogger(__name__)


class SqliteKVStore:
    """SQLite-backed implementation of KVStore.

    Thread safety:
        One connection per store. Callers serialize operations; the
        service does so with its own lock.

    Example:
        >>> kv = SqliteKVStore("/var/lib/notebox/notebox.db")
        >>> with kv.atomic():
        ...     kv.set(b"a", b"1")
        >>> kv.close()
    """

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: Optional[sqlite3.Connection] = None
        self._depth = 0
        self._closed = False

    def _connection(self) -> sqlite3.Connection:
        if self._closed:
            raise KVStoreClosedError()
        if self._conn is not None:
            return self._conn

        # Ensure directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
        if self.wal_mode:
            conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                k BLOB PRIMARY KEY,
                v BLOB NOT NULL
            ) WITHOUT ROWID
            """
        )
        logger.info("Opened SQLite KV store", extra={"db_path": str(self.db_path)})
        self._conn = conn
        return conn

    def get(self, key: bytes) -> Optional[bytes]:
        row = self._connection().execute("SELECT v FROM kv WHERE k = ?", (key,)).fetchone()
        if row is None:
            return None
        return bytes(row[0])

    def set(self, key: bytes, value: bytes) -> None:
        self._connection().execute(
            "INSERT INTO kv (k, v) VALUES (?, ?) ON CONFLICT(k) DO UPDATE SET v = excluded.v",
            (key, value),
        )

    def delete(self, key: bytes) -> None:
        self._connection().execute("DELETE FROM kv WHERE k = ?", (key,))

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Run the block inside one SQLite transaction."""
        conn = self._connection()
        outermost = self._depth == 0
        if outermost:
            conn.execute("BEGIN IMMEDIATE")
        self._depth += 1
        try:
            yield
            if outermost:
                conn.execute("COMMIT")
        except BaseException:
            # Covers a failed COMMIT too, which leaves the transaction open
            if outermost and conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            self._depth -= 1

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
        self._closed = True
