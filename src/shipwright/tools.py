"""
Tool System - the only way an agent affects the world.

The registry is the surface the conversation engine sees: list_tools()
for the definitions sent to the model, execute() for running a call.
execute() never raises. Denied tools, unknown tools and handler crashes
all come back as text ("Denied: ...", "Error: ...") so the model can see
what went wrong and keep reasoning.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from shipwright.types import ToolCall, ToolDefinition

logger = logging.getLogger(__name__)


class ToolHandler(Protocol):
    """Protocol for tool handler functions."""
    def __call__(self, **kwargs: Any) -> str: ...


class ToolSource(Protocol):
    """What the conversation engine needs from a registry."""

    def list_tools(self) -> list[ToolDefinition]: ...

    def execute(self, call: ToolCall) -> str: ...


@dataclass
class Tool:
    """
    Definition of a tool that the agent can use.

    The handler receives the parsed arguments as keyword arguments and
    returns the text fed back to the model.
    """
    name: str
    description: str
    parameters: dict[str, Any]
    handler: ToolHandler

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    def run(self, arguments: dict[str, Any]) -> str:
        """
        Execute the tool with the given arguments.

        Any exception raised by the handler is turned into "Error: ..."
        text.
        """
        try:
            return str(self.handler(**arguments))
        except Exception as e:
            logger.error(f"Tool {self.name} failed: {e}")
            return f"Error: {e}"


@dataclass
class ToolRegistry:
    """
    Registry of available tools, optionally narrowed by an allow-list.

    With an allow-list, tools outside it are hidden from list_tools() and
    refused by execute().
    """

    allowed_tool_names: Iterable[str] | None = None
    _tools: dict[str, Tool] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.allowed_tool_names is not None:
            self.allowed_tool_names = frozenset(self.allowed_tool_names)

    def register(self, tool: Tool) -> None:
        """Register a tool."""
        if tool.name in self._tools:
            logger.warning(f"Overwriting existing tool: {tool.name}")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def register_function(
        self,
        name: str,
        description: str,
        parameters: dict[str, Any],
        handler: ToolHandler,
    ) -> Tool:
        """Convenience method to register a function as a tool."""
        tool = Tool(
            name=name,
            description=description,
            parameters=parameters,
            handler=handler,
        )
        self.register(tool)
        return tool

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def is_enabled(self, name: str) -> bool:
        return self.allowed_tool_names is None or name in self.allowed_tool_names

    def list_tools(self) -> list[ToolDefinition]:
        """Definitions of every registered, enabled tool."""
        return [t.definition for t in self._tools.values() if self.is_enabled(t.name)]

    def execute(self, call: ToolCall) -> str:
        """
        Execute a tool call.

        This is the controlled entry point for all side effects.
        """
        if not self.is_enabled(call.name):
            logger.warning(f"Denied disabled tool: {call.name}")
            return f"Denied: tool disabled ({call.name})"

        tool = self._tools.get(call.name)
        if tool is None:
            return f"Error: unknown tool {call.name}"

        logger.info(f"Executing tool: {call.name}")
        return tool.run(call.arguments)

    @property
    def tool_names(self) -> list[str]:
        """Names of enabled tools."""
        return [d.name for d in self.list_tools()]

    def __len__(self) -> int:
        return len(self.list_tools())

    def __contains__(self, name: str) -> bool:
        return name in self._tools
