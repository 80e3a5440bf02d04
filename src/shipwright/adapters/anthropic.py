"""
Anthropic messages adapter.

Tool calls are `tool_use` content blocks; tool results travel back as
`tool_result` blocks inside a user message. In a stream, a tool_use block
opens at content_block_start, receives its JSON in input_json_delta
fragments, and is complete at content_block_stop.
"""

import json
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
from shipwright.types import Message, Role, ToolCallRef, ToolDefinition, WireResponse, parse_arguments

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicAdapter(WireAdapter):
    """Messages API with tool_use blocks."""

    provider = "anthropic"
    default_base_url = "https://api.anthropic.com/v1"

    def build_request(
        self,
        messages: list[Message],
        tools: list[ToolDefinition],
        system_prompt: str,
        stream: bool = False,
    ) -> HttpRequest:
        body: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system": system_prompt,
            "messages": self._to_wire_messages(messages),
        }
        if tools:
            body["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.parameters}
                for t in tools
            ]
        if stream:
            body["stream"] = True
        return HttpRequest(
            path="/messages",
            json=body,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
        )

    @staticmethod
    def _to_wire_messages(messages: list[Message]) -> list[dict[str, Any]]:
        """
        Convert the transcript.

        Consecutive tool results are merged into a single user message,
        since the API expects every result for one assistant turn together.
        """
        out: list[dict[str, Any]] = []
        for m in messages:
            if m.role == Role.USER:
                out.append({"role": "user", "content": m.content})
            elif m.role == Role.ASSISTANT:
                if not m.tool_calls:
                    out.append({"role": "assistant", "content": m.content})
                    continue
                blocks: list[dict[str, Any]] = []
                if m.content.strip():
                    blocks.append({"type": "text", "text": m.content})
                for tc in m.tool_calls:
                    blocks.append({
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": parse_arguments(tc.raw_arguments),
                    })
                out.append({"role": "assistant", "content": blocks})
            else:
                block = {
                    "type": "tool_result",
                    "tool_use_id": m.tool_call_id or "tool_call",
                    "content": m.content,
                }
                previous = out[-1] if out else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and all(b.get("type") == "tool_result" for b in previous["content"])
                ):
                    previous["content"].append(block)
                else:
                    out.append({"role": "user", "content": [block]})
        return out

    def parse_response(self, data: dict[str, Any]) -> WireResponse:
        content = data.get("content")
        if not isinstance(content, list):
            return WireResponse()

        text = "".join(
            b["text"] for b in content if b.get("type") == "text" and isinstance(b.get("text"), str)
        )
        calls: list[ToolCallRef] = []
        taken: set[str] = set()
        for b in content:
            if b.get("type") != "tool_use" or not isinstance(b.get("name"), str):
                continue
            call_id = str(b.get("id") or "") or fallback_call_id(b["name"], taken)
            taken.add(call_id)
            calls.append(ToolCallRef(
                id=call_id,
                name=b["name"],
                raw_arguments=json.dumps(b.get("input") or {}),
            ))
        return WireResponse(assistant_text=text, tool_calls=calls)

    def parse_stream(
        self,
        events: Iterable[ServerSentEvent],
        on_text_delta: TextDeltaCallback,
    ) -> WireResponse:
        text_parts: list[str] = []
        accumulator = ToolCallAccumulator()

        for event in events:
            if event.event in ("message_stop", "message_delta", "ping") or not event.data:
                continue
            payload = safe_json_loads(event.data)
            if payload is None:
                continue
            event_type = event.event or str(payload.get("type", ""))
            index = payload.get("index") if isinstance(payload.get("index"), int) else 0

            if event_type == "content_block_start":
                block = payload.get("content_block") or {}
                if block.get("type") == "tool_use":
                    accumulator.start(index, call_id=str(block.get("id") or ""), name=str(block.get("name") or ""))
            elif event_type == "content_block_delta":
                delta = payload.get("delta") or {}
                if delta.get("type") == "text_delta" and isinstance(delta.get("text"), str):
                    text_parts.append(delta["text"])
                    on_text_delta(delta["text"])
                elif delta.get("type") == "input_json_delta" and isinstance(delta.get("partial_json"), str):
                    if index in accumulator:
                        accumulator.append(index, delta["partial_json"])
            elif event_type == "content_block_stop":
                accumulator.finish(index)
            elif event_type == "error":
                logger.warning(f"Anthropic stream error event: {payload.get('error')}")

        return WireResponse(assistant_text="".join(text_parts), tool_calls=accumulator.calls())
