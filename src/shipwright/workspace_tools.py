"""
Workspace tools - the file, search and shell capabilities given to agents.

Writes go through a staging area unless the approval gate auto-approves:
write_file and write_json return the diff they would produce and keep the
proposal until apply_writes or discard_writes. Commands pass the command
policy and then the approval gate before anything runs.
"""

import json
import logging
import os
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Any

from shipwright.approval import ApprovalGate
from shipwright.diffs import compute_unified_diff
from shipwright.errors import LockConflictError
from shipwright.safety import CommandPolicy
from shipwright.staging import WriteStaging
from shipwright.tools import ToolRegistry
from shipwright.workspace import Workspace

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 50
MAX_RESULTS_LIMIT = 200
DEFAULT_COMMAND_TIMEOUT = 120.0
TIMEOUT_EXIT_CODE = 124

# Never descended into by the fallback search walk.
SEARCH_IGNORED_DIRS = frozenset({
    ".git",
    "node_modules",
    "dist",
    "build",
    "coverage",
    "__pycache__",
    ".venv",
    ".shipwright",
})

_IDS_SCHEMA = {
    "type": "array",
    "items": {"type": "integer"},
    "description": "1-based positions as listed by show_writes; omit for all",
}


def clamp_max_results(value: Any) -> int:
    """Coerce max_results into 1..200, defaulting to 50."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_MAX_RESULTS
    return max(1, min(MAX_RESULTS_LIMIT, int(value)))


def _parse_ids(ids: Any) -> list[int] | None:
    """None selects everything; only an absent or empty list means that."""
    if not isinstance(ids, list) or not ids:
        return None
    parsed = []
    for n in ids:
        if isinstance(n, bool):
            continue
        try:
            value = int(n)
        except (TypeError, ValueError):
            continue
        if value >= 1:
            parsed.append(value)
    return parsed


def _combined_output(result: subprocess.CompletedProcess) -> str:
    return f"{result.stdout or ''}{result.stderr or ''}".strip()


class WorkspaceTools:
    """
    Handlers behind the workspace tool set.

    One instance per session; it owns the staging area so staged writes
    survive across engine runs until applied or discarded.
    """

    def __init__(
        self,
        workspace: Workspace,
        approval: ApprovalGate,
        agent_id: str,
        policy: CommandPolicy | None = None,
        staging: WriteStaging | None = None,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self.workspace = workspace
        self.approval = approval
        self.agent_id = agent_id
        self.policy = policy or CommandPolicy()
        self.staging = staging if staging is not None else WriteStaging()
        self.command_timeout = command_timeout

    # -- reads ---------------------------------------------------------------

    def read_file(self, path: str = "", **_: Any) -> str:
        if not path:
            return "Error: path is required"
        return self.workspace.read_file(path)

    def read_json(self, path: str = "", **_: Any) -> str:
        if not path:
            return "Error: path is required"
        parsed = json.loads(self.workspace.read_file(path))
        return json.dumps(parsed, indent=2)

    def list_files(self, dir: str = ".", **_: Any) -> str:
        full = self.workspace.resolve(dir or ".")
        entries = sorted(full.iterdir(), key=lambda p: p.name)
        return "\n".join(f"{e.name}/" if e.is_dir() else e.name for e in entries)

    def search_files(
        self,
        query: str = "",
        dir: str = ".",
        max_results: Any = DEFAULT_MAX_RESULTS,
        **_: Any,
    ) -> str:
        """Search with ripgrep, falling back to a manual walk if rg is missing or fails."""
        if not query:
            return "Error: query is required"
        limit = clamp_max_results(max_results)
        search_root = self.workspace.resolve(dir or ".")

        try:
            result = subprocess.run(
                [
                    "rg", "-n", "--no-heading", "--color", "never", "--fixed-strings",
                    "--max-count", str(limit), "--", query, str(search_root),
                ],
                cwd=self.workspace.root,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.warning(f"rg unavailable ({e}); falling back to manual search")
        else:
            if result.returncode == 0:
                lines = [self._relativize(line) for line in result.stdout.splitlines()]
                return "\n".join(lines[:limit])
            if result.returncode == 1:
                return "No matches"
            logger.warning(f"rg exited {result.returncode}; falling back to manual search")

        matches = self._walk_search(search_root, query, limit)
        return "\n".join(matches) if matches else "No matches"

    def _relativize(self, line: str) -> str:
        root_prefix = f"{self.workspace.root}{os.sep}"
        return line[len(root_prefix):] if line.startswith(root_prefix) else line

    def _walk_search(self, search_root: Path, query: str, limit: int) -> list[str]:
        results: list[str] = []
        for current, dirnames, filenames in os.walk(search_root):
            dirnames[:] = sorted(d for d in dirnames if d not in SEARCH_IGNORED_DIRS)
            for filename in sorted(filenames):
                file_path = Path(current) / filename
                try:
                    text = file_path.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError):
                    continue
                rel = self.workspace.relative(file_path)
                for lineno, line in enumerate(text.split("\n"), start=1):
                    if query in line:
                        results.append(f"{rel}:{lineno}:{line}")
                        if len(results) >= limit:
                            return results
        return results

    # -- writes --------------------------------------------------------------

    def write_file(self, path: str = "", content: Any = "", **_: Any) -> str:
        if not path:
            return "Error: path is required"
        content = str(content)
        before = self.workspace.read_file_or_empty(path)
        diff = compute_unified_diff(path, before, content)

        if self.approval.auto_approve:
            self.workspace.write_file(self.agent_id, path, content)
            return diff or "OK"

        self.staging.stage(path, content, diff)
        logger.info(f"Staged write to {path}")
        return diff or "Staged"

    def write_json(self, path: str = "", value: Any = None, **_: Any) -> str:
        if not path:
            return "Error: path is required"
        content = json.dumps(value, indent=2) + "\n"
        return self.write_file(path=path, content=content)

    def show_writes(self, summary_only: bool = False, **_: Any) -> str:
        if len(self.staging) == 0:
            return "No staged writes"
        header = "\n".join(
            ["Staged writes:"] + [f"[{n}] {w.path}" for n, w in self.staging.select()]
        )
        if summary_only:
            return header
        return "\n\n".join([header] + [w.diff_text or f"(no changes to {w.path})" for w in self.staging])

    def apply_writes(self, ids: Any = None, **_: Any) -> str:
        if len(self.staging) == 0:
            return "Nothing to apply"
        applied = 0
        locked = []
        for _n, write in self.staging.select(_parse_ids(ids)):
            if not self.approval.confirm_write(write.path, write.diff_text):
                logger.info(f"Write to {write.path} declined; keeping it staged")
                continue
            try:
                self.workspace.write_file(self.agent_id, write.path, write.content)
            except LockConflictError as exc:
                logger.warning(f"Write to {write.path} blocked: {exc}")
                locked.append(f"Error: {write.path}: {exc}")
                continue
            self.staging.remove(write.path)
            applied += 1
        summary = f"Applied {applied} write(s)" if applied else "No writes applied"
        return "\n".join([summary] + locked)

    def discard_writes(self, ids: Any = None, **_: Any) -> str:
        if len(self.staging) == 0:
            return "Nothing to discard"
        selected = self.staging.select(_parse_ids(ids))
        for _n, write in selected:
            self.staging.remove(write.path)
        return f"Discarded {len(selected)} write(s)" if selected else "No writes discarded"

    # -- processes -----------------------------------------------------------

    def run_command(self, command: str = "", **_: Any) -> str:
        if not command:
            return "Error: command is required"
        verdict = self.policy.check(command)
        if not verdict.passed:
            return f"Denied: {verdict.violation_message}"
        if not self.approval.confirm_run(command):
            return "Skipped: user declined command"

        logger.info(f"Running command: {command}")
        try:
            result = subprocess.run(
                shlex.split(command),
                cwd=self.workspace.root,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
            )
        except subprocess.TimeoutExpired:
            return f"Exit {TIMEOUT_EXIT_CODE}\nCommand timed out after {self.command_timeout:g} seconds"

        output = _combined_output(result)
        if result.returncode != 0:
            return f"Exit {result.returncode}\n{output}"
        return output or "OK"

    def patch_file(self, patch: str = "", **_: Any) -> str:
        if not patch:
            return "Error: patch is required"
        if not self.approval.confirm_write("patch", patch):
            return "Skipped: user declined patch"

        fd, tmp_name = tempfile.mkstemp(prefix="shipwright-", suffix=".patch")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(patch if patch.endswith("\n") else patch + "\n")
            result = subprocess.run(
                ["git", "apply", "--whitespace=nowarn", tmp_name],
                cwd=self.workspace.root,
                capture_output=True,
                text=True,
                timeout=self.command_timeout,
            )
        finally:
            Path(tmp_name).unlink(missing_ok=True)

        output = _combined_output(result)
        if result.returncode != 0:
            return f"Exit {result.returncode}\n{output}"
        return output or "OK"


def create_workspace_tools(
    workspace: Workspace,
    approval: ApprovalGate,
    agent_id: str,
    allowed_tool_names: list[str] | None = None,
    policy: CommandPolicy | None = None,
    staging: WriteStaging | None = None,
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
) -> ToolRegistry:
    """Build a registry exposing the workspace tool set."""
    tools = WorkspaceTools(
        workspace=workspace,
        approval=approval,
        agent_id=agent_id,
        policy=policy,
        staging=staging,
        command_timeout=command_timeout,
    )
    registry = ToolRegistry(allowed_tool_names=allowed_tool_names)

    path_only = {
        "type": "object",
        "properties": {"path": {"type": "string", "description": "Path relative to the project root"}},
        "required": ["path"],
        "additionalProperties": False,
    }

    registry.register_function(
        name="read_file",
        description="Read a UTF-8 text file from the project workspace",
        parameters=path_only,
        handler=tools.read_file,
    )
    registry.register_function(
        name="write_file",
        description="Stage a UTF-8 text file write to the project workspace (requires apply_writes to commit)",
        parameters={
            "type": "object",
            "properties": {"path": {"type": "string"}, "content": {"type": "string"}},
            "required": ["path", "content"],
            "additionalProperties": False,
        },
        handler=tools.write_file,
    )
    registry.register_function(
        name="show_writes",
        description="Show currently staged file writes (optionally summary-only)",
        parameters={
            "type": "object",
            "properties": {"summary_only": {"type": "boolean"}},
            "required": [],
            "additionalProperties": False,
        },
        handler=tools.show_writes,
    )
    registry.register_function(
        name="apply_writes",
        description="Apply staged writes to disk with user approval (optionally select by id)",
        parameters={
            "type": "object",
            "properties": {"ids": _IDS_SCHEMA},
            "required": [],
            "additionalProperties": False,
        },
        handler=tools.apply_writes,
    )
    registry.register_function(
        name="discard_writes",
        description="Discard staged writes (optionally select by id)",
        parameters={
            "type": "object",
            "properties": {"ids": _IDS_SCHEMA},
            "required": [],
            "additionalProperties": False,
        },
        handler=tools.discard_writes,
    )
    registry.register_function(
        name="read_json",
        description="Read a JSON file and return its parsed value as JSON",
        parameters=path_only,
        handler=tools.read_json,
    )
    registry.register_function(
        name="write_json",
        description="Stage a JSON file write (pretty-printed). Apply with apply_writes",
        parameters={
            "type": "object",
            "properties": {"path": {"type": "string"}, "value": {}},
            "required": ["path", "value"],
            "additionalProperties": False,
        },
        handler=tools.write_json,
    )
    registry.register_function(
        name="search_files",
        description="Search for a text pattern in files under a directory",
        parameters={
            "type": "object",
            "properties": {
                "query": {"type": "string"},
                "dir": {"type": "string"},
                "max_results": {"type": "integer", "minimum": 1, "maximum": MAX_RESULTS_LIMIT},
            },
            "required": ["query"],
            "additionalProperties": False,
        },
        handler=tools.search_files,
    )
    registry.register_function(
        name="patch_file",
        description="Apply a unified diff patch to the workspace using git apply",
        parameters={
            "type": "object",
            "properties": {"patch": {"type": "string"}},
            "required": ["patch"],
            "additionalProperties": False,
        },
        handler=tools.patch_file,
    )
    registry.register_function(
        name="list_files",
        description="List files under a directory (relative to project root)",
        parameters={
            "type": "object",
            "properties": {"dir": {"type": "string"}},
            "required": [],
            "additionalProperties": False,
        },
        handler=tools.list_files,
    )
    registry.register_function(
        name="run_command",
        description="Run a safe command (allowlisted, no shell features) in the project root",
        parameters={
            "type": "object",
            "properties": {"command": {"type": "string"}},
            "required": ["command"],
            "additionalProperties": False,
        },
        handler=tools.run_command,
    )

    return registry
