from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager


class Database:
    """SQLite database wrapper with WAL mode for concurrent access.

    One connection is shared by every thread using this object; a re-entrant
    lock serializes access to it. Separate processes coordinate through
    SQLite's own locking (see :meth:`transaction`).
    """

    def __init__(self, path: str = ":memory:") -> None:
        self._path = path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def path(self) -> str:
        return self._path

    def connect(self) -> None:
        """Open connection and enable WAL mode."""
        # isolation_level=None: transactions are opened explicitly.
        self._conn = sqlite3.connect(
            self._path,
            check_same_thread=False,
            isolation_level=None,
            timeout=30.0,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """Execute a single SQL statement."""
        assert self._conn is not None, "Database not connected"
        with self._lock:
            return self._conn.execute(sql, params)

    def fetch_one(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        """Execute a query and return the first row, or None."""
        with self._lock:
            cursor = self.execute(sql, params)
            return cursor.fetchone()

    def fetch_all(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        """Execute a query and return all rows."""
        with self._lock:
            cursor = self.execute(sql, params)
            return cursor.fetchall()

    def executescript(self, script: str) -> None:
        assert self._conn is not None, "Database not connected"
        with self._lock:
            self._conn.executescript(script)

    @contextmanager
    def transaction(self) -> Iterator[Database]:
        """Run a block as one write transaction.

        ``BEGIN IMMEDIATE`` takes the database write lock up front, so a
        read-then-write inside the block cannot interleave with another
        writer, whether that writer is a thread or a separate process.
        """
        assert self._conn is not None, "Database not connected"
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the underlying connection."""
        assert self._conn is not None, "Database not connected"
        return self._conn
