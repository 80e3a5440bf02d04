"""
Wire adapters for the supported LLM providers.

Use create_adapter() to build one from configuration:

    adapter = create_adapter(LLMConfig.from_env(), EnvSecretProvider())
"""

import logging

import httpx

from shipwright.adapters.anthropic import AnthropicAdapter
from shipwright.adapters.base import (
    HttpRequest,
    ServerSentEvent,
    ToolCallAccumulator,
    WireAdapter,
    fallback_call_id,
    iter_sse_events,
    safe_json_loads,
)
from shipwright.adapters.google import GoogleAdapter
from shipwright.adapters.openai import OpenAIAdapter
from shipwright.config import LLMConfig
from shipwright.secrets import SecretProvider

logger = logging.getLogger(__name__)

ADAPTERS: dict[str, type[WireAdapter]] = {
    "openai": OpenAIAdapter,
    "anthropic": AnthropicAdapter,
    "google": GoogleAdapter,
}


def create_adapter(
    config: LLMConfig,
    secrets: SecretProvider,
    http_client: httpx.Client | None = None,
) -> WireAdapter:
    """
    Build the adapter for config.provider.

    Raises:
        ValueError: If the provider is not one of ADAPTERS
        SecretNotFoundError: If no API key is available for it
    """
    provider = config.provider.strip().lower()
    adapter_cls = ADAPTERS.get(provider)
    if adapter_cls is None:
        raise ValueError(f"Unknown provider: {config.provider}")

    api_key = secrets.get_secret(provider)
    model = config.resolved_model()
    logger.info(f"Using {provider} model {model}")
    return adapter_cls(
        api_key=api_key,
        model=model,
        base_url=config.base_url,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout=config.timeout,
        http_client=http_client,
    )


__all__ = [
    "ADAPTERS",
    "AnthropicAdapter",
    "GoogleAdapter",
    "HttpRequest",
    "OpenAIAdapter",
    "ServerSentEvent",
    "ToolCallAccumulator",
    "WireAdapter",
    "create_adapter",
    "fallback_call_id",
    "iter_sse_events",
    "safe_json_loads",
]
