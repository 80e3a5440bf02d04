"""
Core types for the conversation engine.

These are the provider-agnostic shapes every wire adapter translates to
and from. Tool-call arguments travel as raw strings until the moment a
tool is executed, because streaming providers deliver them in fragments.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Message roles in the transcript."""
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass
class ToolCallRef:
    """
    A tool call as the assistant emitted it.

    `raw_arguments` is the unparsed JSON text. Parsing happens in
    `parse()`, right before execution.
    """
    id: str
    name: str
    raw_arguments: str = ""

    def parse(self) -> "ToolCall":
        """Parse arguments; malformed or non-object JSON becomes {}."""
        return ToolCall(id=self.id, name=self.name, arguments=parse_arguments(self.raw_arguments))

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.raw_arguments}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCallRef":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            raw_arguments=str(data.get("arguments", "")),
        )


@dataclass
class ToolCall:
    """A tool call with parsed arguments, ready for the registry."""
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class Message:
    """
    A single entry in the conversation transcript.

    Assistant messages may carry `tool_calls`; tool messages carry the
    `tool_call_id` they answer and the tool `name`.
    """
    role: Role
    content: str
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: list[ToolCallRef] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistence."""
        result: dict[str, Any] = {
            "role": self.role.value,
            "content": self.content,
        }
        if self.name is not None:
            result["name"] = self.name
        if self.tool_call_id is not None:
            result["tool_call_id"] = self.tool_call_id
        if self.tool_calls is not None:
            result["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        tool_calls = data.get("tool_calls")
        return cls(
            role=Role(data["role"]),
            content=data.get("content", ""),
            name=data.get("name"),
            tool_call_id=data.get("tool_call_id"),
            tool_calls=[ToolCallRef.from_dict(tc) for tc in tool_calls] if tool_calls is not None else None,
        )

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


@dataclass(frozen=True)
class ToolDefinition:
    """Name, description and JSON Schema of a tool, as shown to the model."""
    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class WireResponse:
    """What one provider round-trip produced, whatever the vendor."""
    assistant_text: str = ""
    tool_calls: list[ToolCallRef] = field(default_factory=list)

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


@dataclass
class TurnResult:
    """
    Result of one engine run.

    `stopped_reason` is "completed" when the model answered without tool
    calls and "max_steps" when the step bound cut the loop short.
    """
    output_text: str
    new_messages: list[Message] = field(default_factory=list)
    steps: int = 0
    stopped_reason: str = "completed"

    @property
    def completed(self) -> bool:
        return self.stopped_reason == "completed"


def parse_arguments(raw: str | None) -> dict[str, Any]:
    """Parse a raw tool-argument string into a dict, or {} if it isn't one."""
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.debug(f"Malformed tool arguments: {raw[:200]!r}")
        return {}
    if not isinstance(parsed, dict):
        return {}
    return parsed
