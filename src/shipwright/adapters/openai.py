"""
OpenAI chat-completions adapter.

Also works against any OpenAI-compatible endpoint (vLLM, Ollama, ...) by
pointing base_url at it.
"""

import logging
from collections.abc import Iterable
from typing import Any

from shipwright.adapters.base import (
    HttpRequest,
    ServerSentEvent,
    TextDeltaCallback,
    ToolCallAccumulator,
    WireAdapter,
    fallback_call_id,
    safe_json_loads,
)
from shipwright.types import Message, Role, ToolCallRef, ToolDefinition, WireResponse

logger = logging.getLogger(__name__)


class OpenAIAdapter(WireAdapter):
    """Chat completions with function tools."""

    provider = "openai"
    default_base_url = "https://api.openai.com/v1"

    def build_request(
        self,
        messages: list[Message],
        tools: list[ToolDefinition],
        system_prompt: str,
        stream: bool = False,
    ) -> HttpRequest:
        body: dict[str, Any] = {
            "model": self.model,
            "temperature": self.temperature,
            "messages": [{"role": "system", "content": system_prompt}]
            + [self._to_wire_message(m) for m in messages],
        }
        if tools:
            body["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.parameters,
                    },
                }
                for t in tools
            ]
            body["tool_choice"] = "auto"
        if stream:
            body["stream"] = True
        return HttpRequest(
            path="/chat/completions",
            json=body,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    @staticmethod
    def _to_wire_message(message: Message) -> dict[str, Any]:
        if message.role == Role.TOOL:
            return {
                "role": "tool",
                "content": message.content,
                "tool_call_id": message.tool_call_id or "tool_call",
            }
        if message.role == Role.ASSISTANT and message.tool_calls:
            return {
                "role": "assistant",
                "content": message.content,
                "tool_calls": [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": tc.raw_arguments},
                    }
                    for tc in message.tool_calls
                ],
            }
        return {"role": message.role.value, "content": message.content}

    def parse_response(self, data: dict[str, Any]) -> WireResponse:
        choices = data.get("choices") or [{}]
        message = choices[0].get("message") or {}
        text = message.get("content") or ""

        calls: list[ToolCallRef] = []
        taken: set[str] = set()
        for tc in message.get("tool_calls") or []:
            function = tc.get("function") or {}
            name = str(function.get("name") or "")
            if not name:
                continue
            call_id = str(tc.get("id") or "") or fallback_call_id(name, taken)
            taken.add(call_id)
            calls.append(ToolCallRef(
                id=call_id,
                name=name,
                raw_arguments=str(function.get("arguments") or ""),
            ))
        return WireResponse(assistant_text=str(text), tool_calls=calls)

    def parse_stream(
        self,
        events: Iterable[ServerSentEvent],
        on_text_delta: TextDeltaCallback,
    ) -> WireResponse:
        text_parts: list[str] = []
        accumulator = ToolCallAccumulator()

        for event in events:
            if event.data.strip() == "[DONE]":
                break
            payload = safe_json_loads(event.data)
            if payload is None:
                continue
            choices = payload.get("choices") or []
            if not choices:
                continue
            delta = choices[0].get("delta") or {}

            content = delta.get("content")
            if isinstance(content, str) and content:
                text_parts.append(content)
                on_text_delta(content)

            for td in delta.get("tool_calls") or []:
                index = td.get("index") if isinstance(td.get("index"), int) else 0
                function = td.get("function") or {}
                accumulator.start(
                    index,
                    call_id=td.get("id") if isinstance(td.get("id"), str) else "",
                    name=function.get("name") if isinstance(function.get("name"), str) else "",
                )
                if isinstance(function.get("arguments"), str):
                    accumulator.append(index, function["arguments"])

        return WireResponse(assistant_text="".join(text_parts), tool_calls=accumulator.calls())
