"""
Shipwright - a coding-assistant core.

Three pieces work together:

1. A tool-calling conversation engine that speaks the OpenAI, Anthropic
   and Google wire protocols, streaming or not
2. A tool sandbox: file, search, shell and patch tools behind an approval
   gate and a command policy, with writes staged as reviewable diffs
3. Cross-process file locks plus a conflict ledger, so several agent
   processes can share one project tree
"""

__version__ = "0.1.0"

from shipwright.adapters import create_adapter
from shipwright.approval import ApprovalGate, AutoApprove, InteractiveApproval
from shipwright.config import AgentConfig, LLMConfig
from shipwright.conflicts import ConflictLedger
from shipwright.engine import ConversationEngine
from shipwright.errors import (
    ConfigError,
    LockConflictError,
    PathTraversalError,
    ProviderError,
    SecretNotFoundError,
    ShipwrightError,
)
from shipwright.locks import FileLockManager
from shipwright.session import ChatSession, SessionConfig
from shipwright.tools import Tool, ToolRegistry
from shipwright.types import Message, Role, ToolCall, ToolCallRef, TurnResult
from shipwright.workspace import Workspace
from shipwright.workspace_tools import create_workspace_tools

__all__ = [
    "AgentConfig",
    "ApprovalGate",
    "AutoApprove",
    "ChatSession",
    "ConfigError",
    "ConflictLedger",
    "ConversationEngine",
    "FileLockManager",
    "InteractiveApproval",
    "LLMConfig",
    "LockConflictError",
    "Message",
    "PathTraversalError",
    "ProviderError",
    "Role",
    "SecretNotFoundError",
    "SessionConfig",
    "ShipwrightError",
    "Tool",
    "ToolCall",
    "ToolCallRef",
    "ToolRegistry",
    "TurnResult",
    "Workspace",
    "create_adapter",
    "create_workspace_tools",
]
