"""
Audit Logger - append-only JSON-lines record of workspace mutations.

Recording is fire-and-forget: an audit failure is logged and swallowed so
it can never fail or block the write it describes.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class AuditEntry:
    """One audited action."""
    agent_id: str
    action: str
    resource: str
    details: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "action": self.action,
            "resource": self.resource,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class AuditLogger:
    """Appends AuditEntry lines to a file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def record(
        self,
        agent_id: str,
        action: str,
        resource: str,
        details: dict[str, Any] | None = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            agent_id=agent_id,
            action=action,
            resource=resource,
            details=details or {},
        )
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_dict(), default=str) + "\n")
        except OSError as e:
            logger.warning(f"Failed to write audit entry to {self.path}: {e}")
        return entry

    def read_entries(self) -> list[AuditEntry]:
        """Load every entry; malformed lines are skipped."""
        if not self.path.exists():
            return []
        entries = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                data = json.loads(line)
                entries.append(AuditEntry(
                    id=data["id"],
                    agent_id=data["agent_id"],
                    action=data["action"],
                    resource=data["resource"],
                    details=data.get("details", {}),
                    timestamp=datetime.fromisoformat(data["timestamp"]),
                ))
            except (json.JSONDecodeError, KeyError, ValueError) as e:
                logger.debug(f"Skipping malformed audit line: {e}")
        return entries
