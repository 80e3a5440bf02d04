"""
Chat Session - one interactive conversation.

The session owns the transcript and everything rebuilt from its settings:
the wire adapter, the workspace, the approval gate and the tool registry.
Switching provider, model, root or mode rebuilds those pieces; the
transcript and any staged writes survive the switch.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

import httpx

from shipwright.adapters import create_adapter
from shipwright.adapters.base import WireAdapter
from shipwright.approval import ApprovalGate, create_approval_gate
from shipwright.audit import AuditLogger
from shipwright.config import AgentConfig, LLMConfig
from shipwright.conflicts import ConflictLedger
from shipwright.engine import ConversationEngine
from shipwright.locks import FileLockManager
from shipwright.prompts import build_system_prompt
from shipwright.secrets import EnvSecretProvider, SecretProvider
from shipwright.staging import WriteStaging
from shipwright.storage import SQLiteBackend, StorageBackend
from shipwright.tools import ToolRegistry
from shipwright.types import Message, Role, ToolCall
from shipwright.workspace import Workspace
from shipwright.workspace_tools import create_workspace_tools

logger = logging.getLogger(__name__)

MODES = ("plan", "build")

# Read-only tools plus run_command, which stays behind the command policy
# and a confirmation prompt.
PLAN_MODE_TOOLS = (
    "read_file",
    "read_json",
    "list_files",
    "search_files",
    "show_writes",
    "run_command",
)


@dataclass
class SessionConfig:
    """
    User-facing session settings.

    provider, model and root left as None fall back to the AgentConfig the
    session was built with, which reads SHIPWRIGHT_* from the environment.
    """
    provider: str | None = None
    model: str | None = None
    root: str | None = None
    auto_approve: bool = False
    mode: str = "build"
    allowed_tools: list[str] | None = None
    agent_id: str = "chat"

    def __post_init__(self) -> None:
        if self.mode not in MODES:
            raise ValueError(f"Unknown mode: {self.mode} (expected one of {', '.join(MODES)})")

    @property
    def effective_auto_approve(self) -> bool:
        """Plan mode never auto-approves."""
        return self.auto_approve and self.mode != "plan"

    def tool_allowlist(self) -> list[str] | None:
        """Explicit allowed_tools win; otherwise plan mode narrows, build mode exposes all."""
        if self.allowed_tools is not None:
            return list(self.allowed_tools)
        if self.mode == "plan":
            return list(PLAN_MODE_TOOLS)
        return None


class ChatSession:
    """
    A conversation between the user and one provider, with workspace tools.

    Collaborators can be injected for embedding and tests; by default the
    session reads API keys from the environment, keeps its lock table in
    the shared state database and asks on the terminal before acting.
    """

    def __init__(
        self,
        config: SessionConfig,
        agent_config: AgentConfig | None = None,
        secrets: SecretProvider | None = None,
        backend: StorageBackend | None = None,
        audit: AuditLogger | None = None,
        approval_factory: Callable[[bool], ApprovalGate] = create_approval_gate,
        adapter_factory: Callable[[LLMConfig], WireAdapter] | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._config = config
        self.agent_config = agent_config or AgentConfig.from_env()
        self.secrets = secrets or EnvSecretProvider()
        self._approval_factory = approval_factory
        self._adapter_factory = adapter_factory
        self._http_client = http_client

        state = self.agent_config.state
        self._owns_backend = backend is None
        self.backend = backend or SQLiteBackend(state.state_db_path)
        self.audit = audit or AuditLogger(state.audit_log_path)
        self.conflicts = ConflictLedger(self.backend)
        self.locks = FileLockManager(self.backend, conflicts=self.conflicts)
        self.staging = WriteStaging()

        self._messages: list[Message] = []
        self.adapter: WireAdapter | None = None
        self._rebuild(config)

    def _resolve(self, config: SessionConfig) -> SessionConfig:
        """Fill unset provider, model and root from the agent config."""
        llm = self.agent_config.llm
        provider = (config.provider or llm.provider).strip().lower()
        model = config.model
        if model is None:
            # An environment model only applies to the environment provider.
            model = llm.model if provider == llm.provider else ""
        return replace(
            config,
            provider=provider,
            model=model,
            root=config.root or self.agent_config.workspace.root,
        )

    def _build_adapter(self, cfg: SessionConfig) -> WireAdapter:
        llm_config = replace(self.agent_config.llm, provider=cfg.provider, model=cfg.model)
        if self._adapter_factory is not None:
            return self._adapter_factory(llm_config)
        return create_adapter(llm_config, self.secrets, http_client=self._http_client)

    def _rebuild(self, config: SessionConfig) -> None:
        """
        Build every collaborator for `config`, then swap them in.

        Nothing changes if any piece fails to build, so a bad provider or
        missing key leaves the previous settings working.
        """
        cfg = self._resolve(config)
        adapter = self._build_adapter(cfg)
        try:
            workspace = Workspace(
                cfg.root,
                self.locks,
                audit=self.audit,
                lock_ttl=self.agent_config.workspace.lock_ttl,
            )
            approval = self._approval_factory(cfg.effective_auto_approve)
            tools = create_workspace_tools(
                workspace=workspace,
                approval=approval,
                agent_id=cfg.agent_id,
                allowed_tool_names=cfg.tool_allowlist(),
                staging=self.staging,
                command_timeout=self.agent_config.workspace.command_timeout,
            )
        except Exception:
            adapter.close()
            raise

        previous = self.adapter
        self._config = config
        self.adapter = adapter
        self.workspace = workspace
        self.approval = approval
        self.tools: ToolRegistry = tools
        self.engine = ConversationEngine(
            adapter,
            max_steps=self.agent_config.loop.max_steps,
            system_prompt=build_system_prompt(cfg.mode, tools.tool_names),
        )
        if previous is not None:
            previous.close()
        logger.info(
            f"Session ready: provider={cfg.provider} mode={cfg.mode} "
            f"root={workspace.root} tools={len(tools)}"
        )

    def handle_user_message(self, text: str) -> str:
        """Run one user turn and return the assistant's final text."""
        self._messages.append(Message(role=Role.USER, content=text))
        result = self.engine.run(self._messages, self.tools)
        self._messages.extend(result.new_messages)
        return result.output_text

    def handle_user_message_stream(self, text: str, on_text: Callable[[str], None]) -> str:
        """Like handle_user_message, pushing text fragments to `on_text` as they arrive."""
        self._messages.append(Message(role=Role.USER, content=text))
        result = self.engine.run(self._messages, self.tools, on_text_delta=on_text)
        self._messages.extend(result.new_messages)
        return result.output_text

    def run_tool(self, name: str, args: dict[str, Any]) -> str:
        """Run a tool directly, outside the conversation."""
        return self.tools.execute(ToolCall(id="repl", name=name, arguments=args))

    def configure(
        self,
        provider: str | None = None,
        model: str | None = None,
        root: str | None = None,
        mode: str | None = None,
    ) -> None:
        """
        Change settings and rebuild. Arguments left as None keep their value,
        except that switching provider without naming a model falls back to
        that provider's default model.

        If the new settings cannot be built the session keeps the old ones
        and the error propagates.
        """
        current = self._config
        if model is None and provider is not None and provider.strip().lower() != self.config.provider:
            model_value = None
        else:
            model_value = model if model is not None else current.model
        self._rebuild(replace(
            current,
            provider=provider if provider is not None else current.provider,
            model=model_value,
            root=root if root is not None else current.root,
            mode=mode if mode is not None else current.mode,
        ))

    @property
    def config(self) -> SessionConfig:
        """The effective settings, with unset values filled in."""
        return self._resolve(self._config)

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def close(self) -> None:
        if self.adapter is not None:
            self.adapter.close()
        if self._owns_backend:
            self.backend.close()

    def __enter__(self) -> "ChatSession":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
