"""
Conflict Ledger - durable notes that two agents wanted the same file.

A conflict is appended whenever a lock acquisition fails because another
agent holds the path. The ledger does not enforce anything; it is a record
for operators, who later attach a resolution (merge, override, rename,
manual).
"""

import json
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from shipwright.storage.backend import StorageBackend

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS conflicts (
    id TEXT PRIMARY KEY,
    file_path TEXT NOT NULL,
    agents TEXT NOT NULL,
    detected_at TEXT NOT NULL,
    resolution TEXT
);

CREATE INDEX IF NOT EXISTS idx_conflicts_detected_at
    ON conflicts(detected_at);
"""


class ResolutionType(str, Enum):
    """How an operator settled a conflict."""
    MERGE = "merge"
    OVERRIDE = "override"
    RENAME = "rename"
    MANUAL = "manual"


@dataclass
class Resolution:
    """An operator's decision about a conflict."""
    type: ResolutionType
    notes: str = ""
    resolved_by: str = ""
    resolved_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "notes": self.notes,
            "resolved_by": self.resolved_by,
            "resolved_at": self.resolved_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Resolution":
        return cls(
            type=ResolutionType(data["type"]),
            notes=data.get("notes", ""),
            resolved_by=data.get("resolved_by", ""),
            resolved_at=datetime.fromisoformat(data["resolved_at"]),
        )


@dataclass
class ConflictRecord:
    """Two or more agents contended for the same path."""
    id: str
    path: str
    agents: list[str]
    detected_at: datetime
    resolution: Resolution | None = None

    @property
    def resolved(self) -> bool:
        return self.resolution is not None


class ConflictLedger:
    """Append-only conflict records in the shared store."""

    def __init__(self, backend: StorageBackend) -> None:
        self.backend = backend
        self.backend.execute_script(_SCHEMA)

    def record_conflict(self, path: str, agents: list[str]) -> ConflictRecord:
        """
        Append a conflict for `path`.

        Duplicate agent ids are collapsed, keeping first-seen order.
        """
        record = ConflictRecord(
            id=str(uuid.uuid4()),
            path=path,
            agents=list(dict.fromkeys(agents)),
            detected_at=datetime.now(UTC),
        )
        self.backend.execute(
            "INSERT INTO conflicts (id, file_path, agents, detected_at, resolution) VALUES (?, ?, ?, ?, ?)",
            (
                record.id,
                record.path,
                json.dumps(record.agents),
                record.detected_at.isoformat(),
                None,
            ),
        )
        logger.warning(f"Conflict on {path} between agents {', '.join(record.agents)}")
        return record

    def get(self, conflict_id: str) -> ConflictRecord | None:
        row = self.backend.fetch_one("SELECT * FROM conflicts WHERE id = ?", (conflict_id,))
        return self._from_row(row) if row else None

    def list_conflicts(self, unresolved_only: bool = False) -> list[ConflictRecord]:
        """All conflicts, newest first."""
        query = "SELECT * FROM conflicts"
        if unresolved_only:
            query += " WHERE resolution IS NULL"
        query += " ORDER BY detected_at DESC"
        return [self._from_row(row) for row in self.backend.fetch_all(query)]

    def resolve(self, conflict_id: str, resolution: Resolution) -> ConflictRecord:
        """
        Attach a resolution to a conflict.

        Raises:
            KeyError: If no conflict has this id
        """
        existing = self.get(conflict_id)
        if existing is None:
            raise KeyError(f"Unknown conflict: {conflict_id}")
        self.backend.execute(
            "UPDATE conflicts SET resolution = ? WHERE id = ?",
            (json.dumps(resolution.to_dict()), conflict_id),
        )
        logger.info(f"Conflict {conflict_id} resolved with {resolution.type.value}")
        return replace(existing, resolution=resolution)

    @staticmethod
    def _from_row(row: dict[str, Any]) -> ConflictRecord:
        resolution = json.loads(row["resolution"]) if row["resolution"] else None
        return ConflictRecord(
            id=row["id"],
            path=row["file_path"],
            agents=json.loads(row["agents"]),
            detected_at=datetime.fromisoformat(row["detected_at"]),
            resolution=Resolution.from_dict(resolution) if resolution else None,
        )
