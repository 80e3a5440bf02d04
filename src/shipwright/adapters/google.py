"""
Google Generative Language (Gemini) adapter.

Function calls arrive whole, one per part; a stream simply delivers more
candidates, each of which may add text or further calls.
"""

import json
import logging
from collections.abc import Iterable
from typing import Any

from shipwright.adapters.base import (
    HttpRequest,
    ServerSentEvent,
    TextDeltaCallback,
    WireAdapter,
    fallback_call_id,
    safe_json_loads,
)
from shipwright.types import Message, Role, ToolCallRef, ToolDefinition, WireResponse, parse_arguments

logger = logging.getLogger(__name__)


class GoogleAdapter(WireAdapter):
    """generateContent / streamGenerateContent with functionDeclarations."""

    provider = "google"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    def build_request(
        self,
        messages: list[Message],
        tools: list[ToolDefinition],
        system_prompt: str,
        stream: bool = False,
    ) -> HttpRequest:
        body: dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": self._to_wire_contents(messages),
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_tokens,
            },
        }
        if tools:
            body["tools"] = [{
                "functionDeclarations": [
                    {"name": t.name, "description": t.description, "parameters": t.parameters}
                    for t in tools
                ],
            }]

        if stream:
            path = f"/models/{self.model}:streamGenerateContent"
            params = {"alt": "sse"}
        else:
            path = f"/models/{self.model}:generateContent"
            params = {}
        return HttpRequest(
            path=path,
            json=body,
            params=params,
            headers={"x-goog-api-key": self.api_key},
        )

    @staticmethod
    def _to_wire_contents(messages: list[Message]) -> list[dict[str, Any]]:
        contents: list[dict[str, Any]] = []
        for m in messages:
            if m.role == Role.USER:
                contents.append({"role": "user", "parts": [{"text": m.content}]})
            elif m.role == Role.ASSISTANT:
                parts: list[dict[str, Any]] = []
                if m.content:
                    parts.append({"text": m.content})
                for tc in m.tool_calls or []:
                    parts.append({
                        "functionCall": {
                            "id": tc.id,
                            "name": tc.name,
                            "args": parse_arguments(tc.raw_arguments),
                        },
                    })
                contents.append({"role": "model", "parts": parts or [{"text": ""}]})
            else:
                part = {
                    "functionResponse": {
                        "id": m.tool_call_id,
                        "name": m.name or "tool",
                        "response": {"output": m.content},
                    },
                }
                if not m.tool_call_id:
                    del part["functionResponse"]["id"]
                previous = contents[-1] if contents else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and all("functionResponse" in p for p in previous["parts"])
                ):
                    previous["parts"].append(part)
                else:
                    contents.append({"role": "user", "parts": [part]})
        return contents

    @staticmethod
    def _candidate_parts(data: dict[str, Any]) -> list[dict[str, Any]]:
        candidates = data.get("candidates") or []
        if not candidates:
            return []
        content = candidates[0].get("content") or {}
        parts = content.get("parts") or []
        return [p for p in parts if isinstance(p, dict)]

    @staticmethod
    def _call_from_part(part: dict[str, Any], taken: set[str]) -> ToolCallRef | None:
        function_call = part.get("functionCall")
        if not isinstance(function_call, dict) or not isinstance(function_call.get("name"), str):
            return None
        name = function_call["name"]
        call_id = str(function_call.get("id") or "") or fallback_call_id(name, taken)
        taken.add(call_id)
        return ToolCallRef(id=call_id, name=name, raw_arguments=json.dumps(function_call.get("args") or {}))

    def parse_response(self, data: dict[str, Any]) -> WireResponse:
        text_parts: list[str] = []
        calls: list[ToolCallRef] = []
        taken: set[str] = set()
        for part in self._candidate_parts(data):
            if isinstance(part.get("text"), str):
                text_parts.append(part["text"])
            call = self._call_from_part(part, taken)
            if call is not None:
                calls.append(call)
        return WireResponse(assistant_text="".join(text_parts), tool_calls=calls)

    def parse_stream(
        self,
        events: Iterable[ServerSentEvent],
        on_text_delta: TextDeltaCallback,
    ) -> WireResponse:
        text_parts: list[str] = []
        calls: list[ToolCallRef] = []
        taken: set[str] = set()

        for event in events:
            payload = safe_json_loads(event.data)
            if payload is None:
                continue
            for part in self._candidate_parts(payload):
                text = part.get("text")
                if isinstance(text, str) and text:
                    text_parts.append(text)
                    on_text_delta(text)
                call = self._call_from_part(part, taken)
                if call is not None:
                    calls.append(call)

        return WireResponse(assistant_text="".join(text_parts), tool_calls=calls)
