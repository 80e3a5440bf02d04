"""
Tests for the vendor wire adapters.

Requests are built and checked without a network; HTTP round-trips go
through httpx.MockTransport.
"""

import json

import httpx
import pytest

from shipwright.adapters import (
    AnthropicAdapter,
    GoogleAdapter,
    OpenAIAdapter,
    ToolCallAccumulator,
    create_adapter,
    fallback_call_id,
    iter_sse_events,
)
from shipwright.config import LLMConfig
from shipwright.errors import ProviderError, SecretNotFoundError
from shipwright.secrets import StaticSecretProvider
from shipwright.types import Message, Role, ToolCallRef, ToolDefinition

READ_FILE = ToolDefinition(
    name="read_file",
    description="Read a file",
    parameters={"type": "object", "properties": {"path": {"type": "string"}}, "required": ["path"]},
)

TRANSCRIPT = [
    Message(role=Role.USER, content="show me a.txt and b.txt"),
    Message(
        role=Role.ASSISTANT,
        content="Reading both.",
        tool_calls=[
            ToolCallRef(id="c1", name="read_file", raw_arguments='{"path": "a.txt"}'),
            ToolCallRef(id="c2", name="read_file", raw_arguments='{"path": "b.txt"}'),
        ],
    ),
    Message(role=Role.TOOL, content="A", name="read_file", tool_call_id="c1"),
    Message(role=Role.TOOL, content="B", name="read_file", tool_call_id="c2"),
]


def sse(*events: str) -> bytes:
    """Encode raw event blocks ("event: x\\ndata: {...}") as an SSE body."""
    return "".join(f"{block}\n\n" for block in events).encode()


def data(payload) -> str:
    return f"data: {json.dumps(payload)}"


def mock_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestSSEParsing:
    """Tests for iter_sse_events."""

    def test_groups_by_blank_lines(self) -> None:
        lines = ["event: a", "data: 1", "", "data: 2", ""]
        events = list(iter_sse_events(lines))
        assert [(e.event, e.data) for e in events] == [("a", "1"), ("", "2")]

    def test_multiline_data_and_comments(self) -> None:
        lines = [": keep-alive", "data: first", "data: second", ""]
        assert [e.data for e in iter_sse_events(lines)] == ["first\nsecond"]

    def test_trailing_event_without_separator(self) -> None:
        assert [e.data for e in iter_sse_events(["data: tail"])] == ["tail"]

    def test_carriage_returns_stripped(self) -> None:
        assert [e.data for e in iter_sse_events(["data: x\r", "\r"])] == ["x"]


class TestToolCallAccumulator:
    """Tests for indexed fragment accumulation."""

    def test_fragments_concatenate_per_index(self) -> None:
        acc = ToolCallAccumulator()
        acc.start(1, call_id="b", name="second")
        acc.start(0, call_id="a", name="first")
        acc.append(0, '{"x"')
        acc.append(1, "{}")
        acc.append(0, ": 1}")

        calls = acc.calls()

        assert [(c.id, c.name, c.raw_arguments) for c in calls] == [
            ("a", "first", '{"x": 1}'),
            ("b", "second", "{}"),
        ]

    def test_fragments_after_finish_ignored(self) -> None:
        acc = ToolCallAccumulator()
        acc.start(0, call_id="a", name="t")
        acc.append(0, "{}")
        acc.finish(0)
        acc.append(0, "garbage")
        assert acc.calls()[0].raw_arguments == "{}"

    def test_unnamed_dropped_and_missing_ids_filled(self) -> None:
        acc = ToolCallAccumulator()
        acc.append(0, "{}")
        acc.start(1, name="t")
        acc.start(2, name="t")
        assert [c.id for c in acc.calls()] == ["t-call", "t-call-2"]

    def test_fallback_call_id(self) -> None:
        assert fallback_call_id("x", set()) == "x-call"
        assert fallback_call_id("x", {"x-call", "x-call-2"}) == "x-call-3"


class TestOpenAIAdapter:
    """Tests for OpenAIAdapter."""

    def make(self, client=None) -> OpenAIAdapter:
        return OpenAIAdapter(api_key="sk-test", model="gpt-test", http_client=client)

    def test_build_request(self) -> None:
        request = self.make().build_request(TRANSCRIPT, [READ_FILE], "be brief")

        assert request.path == "/chat/completions"
        assert request.headers == {"Authorization": "Bearer sk-test"}
        body = request.json
        assert body["model"] == "gpt-test"
        assert body["temperature"] == 0.2
        assert body["tool_choice"] == "auto"
        assert body["tools"][0] == {
            "type": "function",
            "function": {
                "name": "read_file",
                "description": "Read a file",
                "parameters": READ_FILE.parameters,
            },
        }
        assert body["messages"][0] == {"role": "system", "content": "be brief"}
        assert body["messages"][2]["tool_calls"][1] == {
            "id": "c2",
            "type": "function",
            "function": {"name": "read_file", "arguments": '{"path": "b.txt"}'},
        }
        assert body["messages"][3] == {"role": "tool", "content": "A", "tool_call_id": "c1"}
        assert "stream" not in body

    def test_no_tools_omits_tool_fields(self) -> None:
        body = self.make().build_request(TRANSCRIPT[:1], [], "sys", stream=True).json
        assert "tools" not in body
        assert "tool_choice" not in body
        assert body["stream"] is True

    def test_parse_response(self) -> None:
        response = self.make().parse_response({
            "choices": [{
                "message": {
                    "content": "Let me look.",
                    "tool_calls": [
                        {"id": "call_1", "type": "function",
                         "function": {"name": "read_file", "arguments": '{"path": "a.txt"}'}},
                        {"type": "function", "function": {"name": "list_files", "arguments": ""}},
                    ],
                },
            }],
        })

        assert response.assistant_text == "Let me look."
        assert [(c.id, c.name) for c in response.tool_calls] == [
            ("call_1", "read_file"),
            ("list_files-call", "list_files"),
        ]

    def test_parse_response_null_content(self) -> None:
        response = self.make().parse_response({"choices": [{"message": {"content": None}}]})
        assert response.assistant_text == ""
        assert response.tool_calls == []

    def test_send(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": "hi"}}]})

        response = self.make(mock_client(handler)).send(TRANSCRIPT[:1], [], "sys")

        assert response.assistant_text == "hi"
        assert seen["url"] == "https://api.openai.com/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["messages"][1] == {"role": "user", "content": "show me a.txt and b.txt"}

    def test_custom_base_url(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"choices": [{"message": {"content": ""}}]})

        adapter = OpenAIAdapter("k", "m", base_url="http://localhost:8000/v1/", http_client=mock_client(handler))
        adapter.send([], [], "sys")
        assert seen["url"] == "http://localhost:8000/v1/chat/completions"

    def test_stream(self) -> None:
        body = sse(
            data({"choices": [{"delta": {"role": "assistant", "content": "Hel"}}]}),
            data({"choices": [{"delta": {"content": "lo"}}]}),
            "data: {not json",
            data({"choices": []}),
            data({"choices": [{"delta": {"tool_calls": [
                {"index": 0, "id": "call_a", "function": {"name": "read_file", "arguments": '{"pa'}},
            ]}}]}),
            data({"choices": [{"delta": {"tool_calls": [
                {"index": 1, "function": {"name": "list_files", "arguments": "{}"}},
            ]}}]}),
            data({"choices": [{"delta": {"tool_calls": [
                {"index": 0, "function": {"arguments": 'th": "a.txt"}'}},
            ]}}]}),
            "data: [DONE]",
            data({"choices": [{"delta": {"content": "after done"}}]}),
        )
        deltas: list[str] = []
        adapter = self.make(mock_client(lambda request: httpx.Response(200, content=body)))

        response = adapter.stream(TRANSCRIPT[:1], [READ_FILE], "sys", deltas.append)

        assert deltas == ["Hel", "lo"]
        assert response.assistant_text == "Hello"
        assert [(c.id, c.name, c.raw_arguments) for c in response.tool_calls] == [
            ("call_a", "read_file", '{"path": "a.txt"}'),
            ("list_files-call", "list_files", "{}"),
        ]

    def test_stream_matches_send(self) -> None:
        """The same answer, streamed or not, yields the same WireResponse."""
        whole = {"choices": [{"message": {
            "content": "Reading.",
            "tool_calls": [{"id": "c1", "function": {"name": "read_file", "arguments": '{"path": "a.txt"}'}}],
        }}]}
        streamed = sse(
            data({"choices": [{"delta": {"content": "Read"}}]}),
            data({"choices": [{"delta": {"content": "ing."}}]}),
            data({"choices": [{"delta": {"tool_calls": [
                {"index": 0, "id": "c1", "function": {"name": "read_file", "arguments": '{"path": '}},
            ]}}]}),
            data({"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": '"a.txt"}'}}]}}]}),
            "data: [DONE]",
        )
        adapter = self.make()
        assert adapter.parse_response(whole) == adapter.parse_stream(
            iter_sse_events(streamed.decode().splitlines()), lambda _: None,
        )

    def test_http_error(self) -> None:
        adapter = self.make(mock_client(lambda request: httpx.Response(429, text="slow down")))

        with pytest.raises(ProviderError) as exc_info:
            adapter.send(TRANSCRIPT[:1], [], "sys")

        assert exc_info.value.status_code == 429
        assert exc_info.value.body == "slow down"
        assert "openai request failed" in str(exc_info.value)

    def test_stream_http_error(self) -> None:
        adapter = self.make(mock_client(lambda request: httpx.Response(500, text="oops")))
        with pytest.raises(ProviderError) as exc_info:
            adapter.stream(TRANSCRIPT[:1], [], "sys", lambda _: None)
        assert exc_info.value.status_code == 500
        assert exc_info.value.body == "oops"

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderError, match="connection refused"):
            self.make(mock_client(handler)).send(TRANSCRIPT[:1], [], "sys")

    def test_non_json_body(self) -> None:
        adapter = self.make(mock_client(lambda request: httpx.Response(200, text="<html>")))
        with pytest.raises(ProviderError, match="not JSON"):
            adapter.send(TRANSCRIPT[:1], [], "sys")


class TestAnthropicAdapter:
    """Tests for AnthropicAdapter."""

    def make(self, client=None) -> AnthropicAdapter:
        return AnthropicAdapter(api_key="ak-test", model="claude-test", http_client=client)

    def test_build_request(self) -> None:
        request = self.make().build_request(TRANSCRIPT, [READ_FILE], "be brief")

        assert request.path == "/messages"
        assert request.headers == {"x-api-key": "ak-test", "anthropic-version": "2023-06-01"}
        body = request.json
        assert body["system"] == "be brief"
        assert body["max_tokens"] == 4096
        assert body["tools"] == [{
            "name": "read_file",
            "description": "Read a file",
            "input_schema": READ_FILE.parameters,
        }]

        messages = body["messages"]
        assert len(messages) == 3
        assert messages[1] == {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "Reading both."},
                {"type": "tool_use", "id": "c1", "name": "read_file", "input": {"path": "a.txt"}},
                {"type": "tool_use", "id": "c2", "name": "read_file", "input": {"path": "b.txt"}},
            ],
        }
        assert messages[2] == {
            "role": "user",
            "content": [
                {"type": "tool_result", "tool_use_id": "c1", "content": "A"},
                {"type": "tool_result", "tool_use_id": "c2", "content": "B"},
            ],
        }

    def test_no_tools(self) -> None:
        body = self.make().build_request(TRANSCRIPT[:1], [], "sys", stream=True).json
        assert "tools" not in body
        assert body["stream"] is True

    def test_parse_response(self) -> None:
        response = self.make().parse_response({
            "content": [
                {"type": "text", "text": "Sure. "},
                {"type": "tool_use", "id": "toolu_1", "name": "read_file", "input": {"path": "a.txt"}},
                {"type": "tool_use", "name": "read_file", "input": {"path": "b.txt"}},
                {"type": "text", "text": "Done."},
            ],
        })

        assert response.assistant_text == "Sure. Done."
        assert [c.id for c in response.tool_calls] == ["toolu_1", "read_file-call"]
        assert json.loads(response.tool_calls[1].raw_arguments) == {"path": "b.txt"}

    def test_stream(self) -> None:
        body = sse(
            "event: message_start\n" + data({"type": "message_start", "message": {}}),
            "event: content_block_start\n" + data({"type": "content_block_start", "index": 0,
                                                   "content_block": {"type": "text", "text": ""}}),
            "event: ping\n" + data({"type": "ping"}),
            "event: content_block_delta\n" + data({"type": "content_block_delta", "index": 0,
                                                   "delta": {"type": "text_delta", "text": "Let me "}}),
            "event: content_block_delta\n" + data({"type": "content_block_delta", "index": 0,
                                                   "delta": {"type": "text_delta", "text": "check."}}),
            "event: content_block_stop\n" + data({"type": "content_block_stop", "index": 0}),
            "event: content_block_start\n" + data({"type": "content_block_start", "index": 1,
                                                   "content_block": {"type": "tool_use", "id": "toolu_9",
                                                                     "name": "read_file", "input": {}}}),
            "event: content_block_delta\n" + data({"type": "content_block_delta", "index": 1,
                                                   "delta": {"type": "input_json_delta", "partial_json": '{"pa'}}),
            "event: content_block_delta\ndata: {broken",
            "event: content_block_delta\n" + data({"type": "content_block_delta", "index": 1,
                                                   "delta": {"type": "input_json_delta",
                                                             "partial_json": 'th": "a.txt"}'}}),
            "event: content_block_stop\n" + data({"type": "content_block_stop", "index": 1}),
            "event: message_delta\n" + data({"type": "message_delta", "delta": {"stop_reason": "tool_use"}}),
            "event: message_stop\n" + data({"type": "message_stop"}),
        )
        deltas: list[str] = []
        adapter = self.make(mock_client(lambda request: httpx.Response(200, content=body)))

        response = adapter.stream(TRANSCRIPT[:1], [READ_FILE], "sys", deltas.append)

        assert deltas == ["Let me ", "check."]
        assert response.assistant_text == "Let me check."
        assert [(c.id, c.name, c.raw_arguments) for c in response.tool_calls] == [
            ("toolu_9", "read_file", '{"path": "a.txt"}'),
        ]

    def test_stream_tool_use_without_id(self) -> None:
        body = sse(
            "event: content_block_start\n" + data({"type": "content_block_start", "index": 0,
                                                   "content_block": {"type": "tool_use", "name": "list_files"}}),
            "event: content_block_stop\n" + data({"type": "content_block_stop", "index": 0}),
        )
        adapter = self.make()
        response = adapter.parse_stream(iter_sse_events(body.decode().splitlines()), lambda _: None)
        assert [c.id for c in response.tool_calls] == ["list_files-call"]

    def test_send_headers(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            return httpx.Response(200, json={"content": [{"type": "text", "text": "hi"}]})

        assert self.make(mock_client(handler)).send(TRANSCRIPT[:1], [], "sys").assistant_text == "hi"
        assert seen["url"] == "https://api.anthropic.com/v1/messages"
        assert seen["headers"]["x-api-key"] == "ak-test"
        assert seen["headers"]["anthropic-version"] == "2023-06-01"


class TestGoogleAdapter:
    """Tests for GoogleAdapter."""

    def make(self, client=None) -> GoogleAdapter:
        return GoogleAdapter(api_key="g-test", model="gemini-test", http_client=client)

    def test_build_request(self) -> None:
        request = self.make().build_request(TRANSCRIPT, [READ_FILE], "be brief")

        assert request.path == "/models/gemini-test:generateContent"
        assert request.params == {}
        assert request.headers == {"x-goog-api-key": "g-test"}
        body = request.json
        assert body["systemInstruction"] == {"parts": [{"text": "be brief"}]}
        assert body["tools"] == [{"functionDeclarations": [{
            "name": "read_file",
            "description": "Read a file",
            "parameters": READ_FILE.parameters,
        }]}]

        contents = body["contents"]
        assert [c["role"] for c in contents] == ["user", "model", "user"]
        assert contents[1]["parts"][0] == {"text": "Reading both."}
        assert contents[1]["parts"][1]["functionCall"]["args"] == {"path": "a.txt"}
        assert [p["functionResponse"] for p in contents[2]["parts"]] == [
            {"id": "c1", "name": "read_file", "response": {"output": "A"}},
            {"id": "c2", "name": "read_file", "response": {"output": "B"}},
        ]

    def test_stream_request_path(self) -> None:
        request = self.make().build_request(TRANSCRIPT[:1], [], "sys", stream=True)
        assert request.path == "/models/gemini-test:streamGenerateContent"
        assert request.params == {"alt": "sse"}
        assert "tools" not in request.json

    def test_parse_response_fallback_ids(self) -> None:
        response = self.make().parse_response({
            "candidates": [{"content": {"role": "model", "parts": [
                {"text": "Looking."},
                {"functionCall": {"name": "read_file", "args": {"path": "a.txt"}}},
                {"functionCall": {"name": "read_file", "args": {"path": "b.txt"}}},
            ]}}],
        })

        assert response.assistant_text == "Looking."
        assert [c.id for c in response.tool_calls] == ["read_file-call", "read_file-call-2"]
        assert json.loads(response.tool_calls[1].raw_arguments) == {"path": "b.txt"}

    def test_parse_response_no_candidates(self) -> None:
        response = self.make().parse_response({"promptFeedback": {}})
        assert response.assistant_text == ""
        assert response.tool_calls == []

    def test_stream(self) -> None:
        seen = {}
        body = sse(
            data({"candidates": [{"content": {"parts": [{"text": "Hi "}]}}]}),
            data({"candidates": [{"content": {"parts": [{"text": "there"}]}}]}),
            "data: not-json",
            data({"candidates": [{"content": {"parts": [
                {"functionCall": {"id": "fc-1", "name": "list_files", "args": {}}},
            ]}}]}),
        )

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers["x-goog-api-key"]
            return httpx.Response(200, content=body)

        deltas: list[str] = []
        response = self.make(mock_client(handler)).stream(TRANSCRIPT[:1], [], "sys", deltas.append)

        assert deltas == ["Hi ", "there"]
        assert response.assistant_text == "Hi there"
        assert [(c.id, c.name) for c in response.tool_calls] == [("fc-1", "list_files")]
        assert seen["url"].endswith("/models/gemini-test:streamGenerateContent?alt=sse")
        assert seen["key"] == "g-test"


class TestCreateAdapter:
    """Tests for create_adapter."""

    SECRETS = StaticSecretProvider({"openai": "o", "anthropic": "a", "google": "g"})

    @pytest.mark.parametrize("provider,expected", [
        ("openai", OpenAIAdapter),
        ("Anthropic", AnthropicAdapter),
        ("GOOGLE", GoogleAdapter),
    ])
    def test_picks_variant(self, provider, expected) -> None:
        adapter = create_adapter(LLMConfig(provider=provider), self.SECRETS)
        try:
            assert isinstance(adapter, expected)
        finally:
            adapter.close()

    def test_resolves_model_and_key(self) -> None:
        with create_adapter(LLMConfig(provider="anthropic"), self.SECRETS) as adapter:
            assert adapter.model == "claude-3-5-sonnet-20241022"
            assert adapter.api_key == "a"

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError, match="Unknown provider"):
            create_adapter(LLMConfig(provider="mistral"), self.SECRETS)

    def test_missing_secret(self) -> None:
        with pytest.raises(SecretNotFoundError):
            create_adapter(LLMConfig(provider="openai"), StaticSecretProvider({}))
