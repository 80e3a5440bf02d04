"""
Wire adapter base - one provider's HTTP dialect behind a common interface.

Each adapter translates the provider-agnostic Message / ToolDefinition
model into one vendor's request body, and turns the vendor's response
(whole or streamed as server-sent events) back into a WireResponse. The
step loop lives in shipwright.engine and is shared by all of them.

Requests are not retried: a non-success status is fatal for the whole
engine call.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

import httpx

from shipwright.errors import ProviderError
from shipwright.types import Message, ToolCallRef, ToolDefinition, WireResponse

logger = logging.getLogger(__name__)

# Default timeout configuration (in seconds)
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 180.0  # LLM responses can take a while
DEFAULT_WRITE_TIMEOUT = 10.0
DEFAULT_POOL_TIMEOUT = 10.0

DEFAULT_TEMPERATURE = 0.2
DEFAULT_MAX_TOKENS = 4096

TextDeltaCallback = Callable[[str], None]


@dataclass
class HttpRequest:
    """A provider request, built without touching the network."""
    path: str
    json: dict[str, Any]
    params: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class ServerSentEvent:
    """One SSE event. `event` is "" when the stream omits the field."""
    event: str = ""
    data: str = ""


def iter_sse_events(lines: Iterable[str]) -> Iterator[ServerSentEvent]:
    """
    Group raw SSE lines into events.

    Events are separated by blank lines; multiple data lines are joined
    with newlines; comment lines (":") are ignored. A trailing event
    without its blank line is still emitted.
    """
    event_type = ""
    data_lines: list[str] = []
    for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if event_type or data_lines:
                yield ServerSentEvent(event=event_type, data="\n".join(data_lines))
            event_type, data_lines = "", []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event_type = value.strip()
        elif name == "data":
            data_lines.append(value)
    if event_type or data_lines:
        yield ServerSentEvent(event=event_type, data="\n".join(data_lines))


def safe_json_loads(text: str | None) -> dict[str, Any] | None:
    """Parse a JSON object, or return None for anything else."""
    if not text:
        return None
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        logger.debug(f"Skipping malformed JSON payload: {text[:200]!r}")
        return None
    return parsed if isinstance(parsed, dict) else None


def fallback_call_id(name: str, taken: set[str]) -> str:
    """
    Deterministic id for a tool call the provider did not name.

    "<name>-call", then "<name>-call-2", ... if that is already used in
    the same response.
    """
    candidate = f"{name}-call"
    n = 2
    while candidate in taken:
        candidate = f"{name}-call-{n}"
        n += 1
    return candidate


@dataclass
class _PartialCall:
    id: str = ""
    name: str = ""
    arguments: str = ""
    finished: bool = False


class ToolCallAccumulator:
    """
    Tool calls assembled from streamed fragments, keyed by index.

    Argument text is only concatenated here; nothing is parsed until the
    engine executes the call.
    """

    def __init__(self) -> None:
        self._calls: dict[int, _PartialCall] = {}

    def start(self, index: int, call_id: str = "", name: str = "") -> None:
        call = self._calls.setdefault(index, _PartialCall())
        if call_id:
            call.id = call_id
        if name:
            call.name = name

    def append(self, index: int, fragment: str) -> None:
        call = self._calls.setdefault(index, _PartialCall())
        if call.finished:
            logger.debug(f"Ignoring fragment for finished tool call at index {index}")
            return
        call.arguments += fragment

    def finish(self, index: int) -> None:
        if index in self._calls:
            self._calls[index].finished = True

    def __contains__(self, index: int) -> bool:
        return index in self._calls

    def calls(self) -> list[ToolCallRef]:
        """Calls in index order; unnamed entries are dropped, missing ids filled in."""
        refs: list[ToolCallRef] = []
        taken: set[str] = set()
        for index in sorted(self._calls):
            partial = self._calls[index]
            if not partial.name:
                continue
            call_id = partial.id or fallback_call_id(partial.name, taken)
            taken.add(call_id)
            refs.append(ToolCallRef(id=call_id, name=partial.name, raw_arguments=partial.arguments))
        return refs


class WireAdapter(ABC):
    """
    Base class for vendor adapters.

    Subclasses supply the three pure translation steps; send() and
    stream() here do the HTTP work with httpx.
    """

    provider: str = ""
    default_base_url: str = ""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = DEFAULT_READ_TIMEOUT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens

        # Use layered timeouts for better control
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            timeout=httpx.Timeout(
                connect=DEFAULT_CONNECT_TIMEOUT,
                read=timeout,
                write=DEFAULT_WRITE_TIMEOUT,
                pool=DEFAULT_POOL_TIMEOUT,
            ),
        )

    @abstractmethod
    def build_request(
        self,
        messages: list[Message],
        tools: list[ToolDefinition],
        system_prompt: str,
        stream: bool = False,
    ) -> HttpRequest:
        """Translate the transcript into this vendor's request."""
        pass

    @abstractmethod
    def parse_response(self, data: dict[str, Any]) -> WireResponse:
        """Translate a complete (non-streaming) response body."""
        pass

    @abstractmethod
    def parse_stream(
        self,
        events: Iterable[ServerSentEvent],
        on_text_delta: TextDeltaCallback,
    ) -> WireResponse:
        """Consume streamed events, reporting each text fragment as it arrives."""
        pass

    def send(
        self,
        messages: list[Message],
        tools: list[ToolDefinition],
        system_prompt: str,
    ) -> WireResponse:
        """
        One non-streaming round-trip.

        Raises:
            ProviderError: On transport failure or a non-success status
        """
        request = self.build_request(messages, tools, system_prompt, stream=False)
        logger.debug(f"Sending {self.provider} request with {len(messages)} messages")
        try:
            response = self._client.post(
                self._url(request.path),
                json=request.json,
                params=request.params,
                headers=request.headers,
            )
        except httpx.RequestError as e:
            raise ProviderError(self.provider, str(e)) from e

        self._raise_for_status(response, response.text)
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(self.provider, "response body is not JSON", response.status_code) from e
        return self.parse_response(data)

    def stream(
        self,
        messages: list[Message],
        tools: list[ToolDefinition],
        system_prompt: str,
        on_text_delta: TextDeltaCallback,
    ) -> WireResponse:
        """
        One streaming round-trip. `on_text_delta` runs synchronously per fragment.

        Raises:
            ProviderError: On transport failure, a non-success status, or an
                unreadable stream body
        """
        request = self.build_request(messages, tools, system_prompt, stream=True)
        logger.debug(f"Streaming {self.provider} request with {len(messages)} messages")
        try:
            with self._client.stream(
                "POST",
                self._url(request.path),
                json=request.json,
                params=request.params,
                headers=request.headers,
            ) as response:
                if not response.is_success:
                    self._raise_for_status(response, response.read().decode("utf-8", "replace"))
                try:
                    return self.parse_stream(iter_sse_events(response.iter_lines()), on_text_delta)
                except httpx.StreamError as e:
                    raise ProviderError(self.provider, f"stream missing body ({e})", response.status_code) from e
        except httpx.RequestError as e:
            raise ProviderError(self.provider, str(e)) from e

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _raise_for_status(self, response: httpx.Response, body: str) -> None:
        if response.is_success:
            return
        logger.error(f"{self.provider} HTTP error: {response.status_code} - {body[:500]}")
        raise ProviderError(
            self.provider,
            f"{response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
            body=body,
        )

    def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "WireAdapter":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
