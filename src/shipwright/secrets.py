"""
Secret providers - where API keys come from.

Encrypted key storage is someone else's job; the core only needs
`get_secret(provider_id)`. Environment variables are the default source.
"""

import logging
import os
from collections.abc import Mapping
from typing import Protocol

from shipwright.errors import SecretNotFoundError

logger = logging.getLogger(__name__)

PROVIDER_KEY_ENV: dict[str, tuple[str, ...]] = {
    "openai": ("OPENAI_API_KEY",),
    "anthropic": ("ANTHROPIC_API_KEY",),
    "google": ("GOOGLE_API_KEY", "GEMINI_API_KEY"),
}


class SecretProvider(Protocol):
    """Anything that can hand out an API key for a provider."""

    def get_secret(self, provider_id: str) -> str: ...


class EnvSecretProvider:
    """Reads keys from the provider's environment variables."""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = env if env is not None else os.environ

    def get_secret(self, provider_id: str) -> str:
        names = PROVIDER_KEY_ENV.get(
            provider_id.lower(), (f"{provider_id.upper()}_API_KEY",)
        )
        for name in names:
            value = self._env.get(name, "").strip()
            if value:
                return value
        raise SecretNotFoundError(provider_id)


class StaticSecretProvider:
    """Keys held in memory, mostly for tests and embedding."""

    def __init__(self, secrets: Mapping[str, str]) -> None:
        self._secrets = {k.lower(): v for k, v in secrets.items()}

    def get_secret(self, provider_id: str) -> str:
        value = self._secrets.get(provider_id.lower(), "")
        if not value:
            raise SecretNotFoundError(provider_id)
        return value


class ChainedSecretProvider:
    """Asks each provider in turn; the first that has the key wins."""

    def __init__(self, *providers: SecretProvider) -> None:
        self.providers = list(providers)

    def get_secret(self, provider_id: str) -> str:
        for provider in self.providers:
            try:
                return provider.get_secret(provider_id)
            except SecretNotFoundError:
                logger.debug(f"{type(provider).__name__} has no key for {provider_id}")
        raise SecretNotFoundError(provider_id)
