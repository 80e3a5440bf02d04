"""
Workspace - the project tree agents are allowed to touch.

Every path handed in by a tool is relative to the root and is confined to
it. Reads go straight to disk; writes take the file lock for exactly the
duration of the write and leave an audit entry behind.
"""

import hashlib
import logging
from pathlib import Path

from shipwright.audit import AuditLogger
from shipwright.errors import PathTraversalError
from shipwright.locks import DEFAULT_LOCK_TTL, FileLockManager

logger = logging.getLogger(__name__)


class Workspace:
    """
    Path confinement plus locked reads and writes.

    Conflict recording happens inside the lock manager when it was built
    with a ConflictLedger; the workspace only lets LockConflictError
    propagate to its caller.
    """

    def __init__(
        self,
        root: Path | str,
        locks: FileLockManager,
        audit: AuditLogger | None = None,
        lock_ttl: float = DEFAULT_LOCK_TTL,
    ) -> None:
        self._root = Path(root).resolve()
        self.locks = locks
        self.audit = audit
        self.lock_ttl = lock_ttl

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, rel_path: str | Path) -> Path:
        """
        Resolve a path against the root.

        Raises:
            PathTraversalError: If the result escapes the root
        """
        full = (self._root / rel_path).resolve()
        if full != self._root and not full.is_relative_to(self._root):
            raise PathTraversalError(f"Path traversal detected: {rel_path}")
        return full

    def relative(self, full_path: Path) -> str:
        return full_path.relative_to(self._root).as_posix()

    def exists(self, rel_path: str) -> bool:
        return self.resolve(rel_path).exists()

    def read_file(self, rel_path: str) -> str:
        return self.resolve(rel_path).read_text(encoding="utf-8")

    def read_file_or_empty(self, rel_path: str) -> str:
        """Current content, or "" if the file does not exist yet."""
        full = self.resolve(rel_path)
        if not full.is_file():
            return ""
        return full.read_text(encoding="utf-8")

    def write_file(self, agent_id: str, rel_path: str, content: str) -> Path:
        """
        Write `content` while holding the lock on the file.

        Raises:
            LockConflictError: If another agent holds the file
        """
        full = self.resolve(rel_path)
        with self.locks.hold(agent_id, str(full), self.lock_ttl):
            full.parent.mkdir(parents=True, exist_ok=True)
            full.write_text(content, encoding="utf-8")
        logger.info(f"Agent {agent_id} wrote {self.relative(full)} ({len(content)} chars)")

        if self.audit is not None:
            self.audit.record(
                agent_id=agent_id,
                action="file.write",
                resource=str(full),
                details={"sha256": hashlib.sha256(content.encode("utf-8")).hexdigest()},
            )
        return full

    def change_root(self, new_root: Path | str) -> None:
        self._root = Path(new_root).resolve()
