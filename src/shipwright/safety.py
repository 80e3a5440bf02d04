"""
Command Safety Policy.

run_command only executes commands that pass two gates:

1. A denylist of patterns that are never acceptable: shell metacharacters
   (pipes, chaining, substitution, redirection), privilege escalation and
   destructive operations. It runs first, so "git status; rm -rf /" is
   rejected even though it starts with an allowed prefix.
2. An allowlist of safe commands, matched exactly or as a prefix followed
   by a space.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class PolicySeverity(Enum):
    """How strictly a result is enforced."""

    ADVISORY = "advisory"  # Passed, nothing to enforce
    BLOCK = "block"  # Prevent execution entirely


@dataclass
class PolicyResult:
    """Result of evaluating a command against the policy."""

    passed: bool
    severity: PolicySeverity
    violation_message: str = ""
    evidence: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "severity": self.severity.value,
            "violation_message": self.violation_message,
            "evidence": self.evidence,
        }


DEFAULT_ALLOWED_COMMANDS: tuple[str, ...] = (
    "npm test",
    "npm run build",
    "npm run test:coverage",
    "npm --version",
    "node --version",
    "git status",
    "git diff",
    "git log",
    "pytest",
    "python -m pytest",
    "python --version",
)

# (pattern, reason)
DEFAULT_BLOCKED_PATTERNS: tuple[tuple[str, str], ...] = (
    # Shell metacharacters
    (r"[|;&`]", "shell metacharacter"),
    (r"\$[({]", "shell substitution"),
    (r"[<>]", "redirection"),
    (r"(^|\s)--(output(-\w+)?|junit-?xml)(=|\s|$)", "output redirection to file"),
    (r"[\r\n]", "multiple lines"),
    # Privilege escalation
    (r"(^|\s)(sudo|su|doas|pkexec)(\s|$)", "privilege escalation"),
    (r"(^|\s)chown(\s|$)", "ownership change"),
    (r"(^|\s)chmod\s+(-\w+\s+)*[0-7]{3,4}\s+/", "permission change on system path"),
    # Destructive operations
    (r"(^|\s)rm\s+(-\w+\s+)*-\w*[rf]", "recursive or forced delete"),
    (r"(^|\s)mkfs(\.\w+)?(\s|$)", "filesystem format"),
    (r"(^|\s)dd\s+.*of=/dev/", "raw device write"),
    (r"(^|\s)(shutdown|reboot|halt|poweroff)(\s|$)", "system power command"),
    (r":\(\)\s*\{", "fork bomb"),
)


class CommandPolicy:
    """Allowlist plus denylist for run_command."""

    def __init__(
        self,
        allowed_commands: tuple[str, ...] | list[str] = DEFAULT_ALLOWED_COMMANDS,
        blocked_patterns: tuple[tuple[str, str], ...] | list[tuple[str, str]] = DEFAULT_BLOCKED_PATTERNS,
    ) -> None:
        self.allowed_commands = tuple(allowed_commands)
        self._blocked = [
            (re.compile(pattern, re.IGNORECASE), reason) for pattern, reason in blocked_patterns
        ]

    def check(self, command: str) -> PolicyResult:
        """Evaluate a command. The denylist wins over the allowlist."""
        trimmed = command.strip()

        violations = [reason for pattern, reason in self._blocked if pattern.search(trimmed)]
        if violations:
            logger.warning(f"Blocked command {trimmed!r}: {', '.join(violations)}")
            return PolicyResult(
                passed=False,
                severity=PolicySeverity.BLOCK,
                violation_message=f"command blocked ({', '.join(violations)})",
                evidence={"command": trimmed, "violations": violations},
            )

        if not self.is_allowlisted(trimmed):
            return PolicyResult(
                passed=False,
                severity=PolicySeverity.BLOCK,
                violation_message="command not allowlisted",
                evidence={"command": trimmed},
            )

        return PolicyResult(passed=True, severity=PolicySeverity.ADVISORY)

    def is_allowlisted(self, command: str) -> bool:
        trimmed = command.strip()
        return any(
            trimmed == allowed or trimmed.startswith(f"{allowed} ")
            for allowed in self.allowed_commands
        )

    def is_allowed(self, command: str) -> bool:
        return self.check(command).passed
