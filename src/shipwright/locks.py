"""
File Lock Manager - cross-process write exclusion.

The lock table maps an absolute path to at most one unexpired holder. It
lives in the shared store, never in process memory, so that independent
agent processes exclude each other.

Locking is fail-fast: acquire_lock() either succeeds immediately or raises
LockConflictError naming the current holder. Nothing queues. Expired rows
are not swept in the background; they are ignored and purged the next
time someone looks at that path.
"""

import logging
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

from shipwright.conflicts import ConflictLedger
from shipwright.errors import LockConflictError
from shipwright.storage.backend import StorageBackend

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL = 300.0

_SCHEMA = """
CREATE TABLE IF NOT EXISTS file_locks (
    file_path TEXT PRIMARY KEY,
    lock_id TEXT NOT NULL,
    agent_id TEXT NOT NULL,
    acquired_at REAL NOT NULL,
    expires_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_file_locks_lock_id
    ON file_locks(lock_id);
"""


@dataclass
class Lock:
    """A held lock. Timestamps are epoch seconds."""
    id: str
    agent_id: str
    path: str
    acquired_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    @property
    def expires_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at, UTC)


class FileLockManager:
    """
    Lock table over a StorageBackend.

    If a ConflictLedger is given, every failed acquisition also appends a
    conflict record naming the requester and the holder.
    """

    def __init__(
        self,
        backend: StorageBackend,
        conflicts: ConflictLedger | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend = backend
        self.conflicts = conflicts
        self._clock = clock
        self.backend.execute_script(_SCHEMA)

    def acquire_lock(self, agent_id: str, path: str, ttl: float = DEFAULT_LOCK_TTL) -> Lock:
        """
        Take the lock on `path` for `agent_id`.

        The check and the insert run in one write transaction, so two
        processes racing for the same path cannot both succeed. A holder
        re-acquiring its own unexpired lock is refused as well: locks are
        not reentrant.

        Raises:
            LockConflictError: If an unexpired lock exists for the path
        """
        now = self._clock()
        lock = Lock(
            id=str(uuid.uuid4()),
            agent_id=agent_id,
            path=path,
            acquired_at=now,
            expires_at=now + max(ttl, 0.0),
        )

        holder: str | None = None
        with self.backend.transaction() as tx:
            row = tx.execute(
                "SELECT agent_id, expires_at FROM file_locks WHERE file_path = ?",
                (path,),
            ).fetchone()
            if row is not None and row["expires_at"] > now:
                holder = row["agent_id"]
            else:
                tx.execute(
                    "INSERT OR REPLACE INTO file_locks "
                    "(file_path, lock_id, agent_id, acquired_at, expires_at) VALUES (?, ?, ?, ?, ?)",
                    (path, lock.id, agent_id, lock.acquired_at, lock.expires_at),
                )

        if holder is not None:
            logger.warning(f"Agent {agent_id} denied lock on {path}: held by {holder}")
            if self.conflicts is not None:
                self.conflicts.record_conflict(path, [agent_id, holder])
            raise LockConflictError(path, holder, agent_id)

        logger.debug(f"Agent {agent_id} acquired lock {lock.id} on {path}")
        return lock

    def release_lock(self, lock_id: str) -> None:
        """Release a lock by id. Releasing an unknown or expired lock is a no-op."""
        self.backend.execute("DELETE FROM file_locks WHERE lock_id = ?", (lock_id,))
        logger.debug(f"Released lock {lock_id}")

    def check_lock(self, path: str) -> Lock | None:
        """Return the unexpired lock on `path`, purging an expired row."""
        row = self.backend.fetch_one("SELECT * FROM file_locks WHERE file_path = ?", (path,))
        if row is None:
            return None
        if row["expires_at"] <= self._clock():
            self.backend.execute(
                "DELETE FROM file_locks WHERE file_path = ? AND lock_id = ?",
                (path, row["lock_id"]),
            )
            return None
        return self._from_row(row)

    def list_locks(self) -> list[Lock]:
        """Unexpired locks, oldest first."""
        rows = self.backend.fetch_all(
            "SELECT * FROM file_locks WHERE expires_at > ? ORDER BY acquired_at",
            (self._clock(),),
        )
        return [self._from_row(row) for row in rows]

    @contextmanager
    def hold(self, agent_id: str, path: str, ttl: float = DEFAULT_LOCK_TTL) -> Iterator[Lock]:
        """Hold the lock for the duration of the block, releasing it however the block exits."""
        lock = self.acquire_lock(agent_id, path, ttl)
        try:
            yield lock
        finally:
            self.release_lock(lock.id)

    @staticmethod
    def _from_row(row: dict) -> Lock:
        return Lock(
            id=row["lock_id"],
            agent_id=row["agent_id"],
            path=row["file_path"],
            acquired_at=row["acquired_at"],
            expires_at=row["expires_at"],
        )
