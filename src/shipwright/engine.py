"""
Conversation Engine - the bounded tool-calling loop.

One run() call handles one user turn:

1. Send the transcript through the wire adapter
2. If the model asked for tools: record the calls, execute each one in
   order, record the results, goto 1
3. Otherwise: return the assistant's text

The number of provider round-trips is capped by max_steps. Hitting the cap
is a soft stop, reported through TurnResult.stopped_reason, not an error.
"""

import logging
from collections.abc import Callable

from shipwright.adapters.base import WireAdapter
from shipwright.tools import ToolSource
from shipwright.types import Message, Role, ToolDefinition, TurnResult, WireResponse

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a coding assistant. Use tools when needed. Keep responses concise."
MAX_STEPS_SENTINEL = "Stopped (max steps reached)."
DEFAULT_MAX_STEPS = 50


class ConversationEngine:
    """
    Drives one adapter through the think / call tool / observe cycle.

    The engine keeps no transcript of its own: the caller passes the
    history in and gets the new messages back in the TurnResult.
    """

    def __init__(
        self,
        adapter: WireAdapter,
        max_steps: int = DEFAULT_MAX_STEPS,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self.adapter = adapter
        self.max_steps = max_steps
        self.system_prompt = system_prompt

    def run(
        self,
        history: list[Message],
        tools: ToolSource,
        max_steps: int | None = None,
        system_prompt: str | None = None,
        on_text_delta: Callable[[str], None] | None = None,
    ) -> TurnResult:
        """
        Run the loop for one user turn.

        Args:
            history: Transcript so far, ending with the user's message. Not modified.
            tools: Registry the model may call into
            max_steps: Overrides the engine's bound for this call
            system_prompt: Overrides the engine's system prompt for this call
            on_text_delta: If given, stream and push each text fragment here

        Returns:
            TurnResult with the final text and every message this call produced

        Raises:
            ProviderError: If a provider request fails
        """
        limit = self.max_steps if max_steps is None else max_steps
        prompt = system_prompt or self.system_prompt
        definitions = tools.list_tools()
        new_messages: list[Message] = []

        step = 0
        while step < limit:
            step += 1
            logger.info(f"Engine step {step}/{limit}")

            response = self._call(list(history) + new_messages, definitions, prompt, on_text_delta)

            if not response.has_tool_calls:
                if response.assistant_text.strip():
                    new_messages.append(Message(role=Role.ASSISTANT, content=response.assistant_text))
                return TurnResult(
                    output_text=response.assistant_text,
                    new_messages=new_messages,
                    steps=step,
                    stopped_reason="completed",
                )

            new_messages.append(Message(
                role=Role.ASSISTANT,
                content=response.assistant_text,
                tool_calls=list(response.tool_calls),
            ))

            for ref in response.tool_calls:
                call = ref.parse()
                logger.debug(f"Tool call {call.id}: {call.name}")
                result = tools.execute(call)
                new_messages.append(Message(
                    role=Role.TOOL,
                    content=result,
                    name=call.name,
                    tool_call_id=call.id,
                ))

        logger.warning(f"Engine hit max_steps limit ({limit})")
        return TurnResult(
            output_text=MAX_STEPS_SENTINEL,
            new_messages=new_messages,
            steps=step,
            stopped_reason="max_steps",
        )

    def _call(
        self,
        messages: list[Message],
        definitions: list[ToolDefinition],
        system_prompt: str,
        on_text_delta: Callable[[str], None] | None,
    ) -> WireResponse:
        if on_text_delta is not None:
            return self.adapter.stream(messages, definitions, system_prompt, on_text_delta)
        return self.adapter.send(messages, definitions, system_prompt)
