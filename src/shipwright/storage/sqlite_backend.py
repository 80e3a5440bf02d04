"""
SQLite Storage Backend.

One database file under the state directory is shared by every agent
process on the machine. WAL mode lets readers proceed while a writer holds
the database; `transaction()` uses BEGIN IMMEDIATE so the read-then-write
of a lock acquisition cannot interleave with another process.
"""

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from shipwright.storage.backend import StorageBackend, rows_to_dicts

logger = logging.getLogger(__name__)

# Seconds SQLite waits on a locked database before raising.
DEFAULT_BUSY_TIMEOUT = 30.0


class SQLiteBackend(StorageBackend):
    """
    SQLite storage backend implementation.

    Thread-safe via connection-per-thread pattern. Connections run in
    autocommit mode; multi-statement atomicity goes through transaction().
    """

    def __init__(self, db_path: Path | str, busy_timeout: float = DEFAULT_BUSY_TIMEOUT):
        """
        Initialize SQLite backend.

        Args:
            db_path: Path to SQLite database file (created if doesn't exist)
            busy_timeout: Seconds to wait for another process's write to finish
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.busy_timeout = busy_timeout

        # Thread-local storage for connections
        self._local = threading.local()

        # Create initial connection to verify path is valid
        self._get_connection()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "connection") or self._local.connection is None:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            self._local.connection = conn
        return self._local.connection

    def execute(self, query: str, params: tuple = ()) -> None:
        conn = self._get_connection()
        conn.execute(query, params)

    def execute_script(self, script: str) -> None:
        conn = self._get_connection()
        conn.executescript(script)

    def fetch_one(self, query: str, params: tuple = ()) -> dict[str, Any] | None:
        conn = self._get_connection()
        row = conn.execute(query, params).fetchone()
        if row is None:
            return None
        return dict(row)

    def fetch_all(self, query: str, params: tuple = ()) -> list[dict[str, Any]]:
        conn = self._get_connection()
        return rows_to_dicts(conn.execute(query, params).fetchall())

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        BEGIN IMMEDIATE ... COMMIT, rolled back on any exception.

        IMMEDIATE takes the database write lock up front, so a SELECT
        followed by an INSERT inside the block is atomic across processes.
        """
        conn = self._get_connection()
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")

    def close(self) -> None:
        """Close the database connection for current thread."""
        if hasattr(self._local, "connection") and self._local.connection is not None:
            self._local.connection.close()
            self._local.connection = None

    def __enter__(self) -> "SQLiteBackend":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
