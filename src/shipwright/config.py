"""
Configuration for Shipwright.

All configuration is loaded from environment variables, with dataclass
defaults for anything unset. API keys are deliberately absent here: they
come from a SecretProvider (see shipwright.secrets).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from shipwright.errors import ConfigError

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-sonnet-20241022",
    "google": "gemini-1.5-flash",
}

PROVIDER_MODEL_ENV = {
    "openai": "OPENAI_MODEL",
    "anthropic": "ANTHROPIC_MODEL",
    "google": "GOOGLE_MODEL",
}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


@dataclass
class LLMConfig:
    """Which provider and model to talk to, and how."""
    provider: str = "openai"
    model: str = ""
    base_url: str | None = None
    temperature: float = 0.2
    max_tokens: int = 4096
    timeout: float = 180.0

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """Load configuration from environment variables."""
        provider = os.getenv("SHIPWRIGHT_PROVIDER", "openai").strip().lower()
        model = os.getenv("SHIPWRIGHT_MODEL") or os.getenv(PROVIDER_MODEL_ENV.get(provider, ""), "")
        return cls(
            provider=provider,
            model=model,
            base_url=os.getenv("SHIPWRIGHT_BASE_URL") or None,
            temperature=_env_float("SHIPWRIGHT_TEMPERATURE", 0.2),
            max_tokens=_env_int("SHIPWRIGHT_MAX_TOKENS", 4096),
            timeout=_env_float("SHIPWRIGHT_TIMEOUT", 180.0),
        )

    def resolved_model(self) -> str:
        """The configured model, or the provider's default."""
        if self.model:
            return self.model
        return DEFAULT_MODELS.get(self.provider.strip().lower(), "")


@dataclass
class LoopConfig:
    """
    Configuration for the step loop.

    max_steps bounds provider round-trips per user turn.
    """
    max_steps: int = 50

    @classmethod
    def from_env(cls) -> "LoopConfig":
        return cls(max_steps=_env_int("SHIPWRIGHT_MAX_STEPS", 50))


@dataclass
class WorkspaceConfig:
    """Project root plus the knobs of the tool sandbox."""
    root: str = "."
    lock_ttl: float = 300.0
    command_timeout: float = 120.0

    @classmethod
    def from_env(cls) -> "WorkspaceConfig":
        return cls(
            root=os.getenv("SHIPWRIGHT_ROOT", "."),
            lock_ttl=_env_float("SHIPWRIGHT_LOCK_TTL", 300.0),
            command_timeout=_env_float("SHIPWRIGHT_COMMAND_TIMEOUT", 120.0),
        )


@dataclass
class StateConfig:
    """
    Where shared state lives.

    Every agent process must resolve the same directory, otherwise the
    lock table stops being shared.
    """
    home: Path = field(default_factory=lambda: Path.home() / ".shipwright")

    @classmethod
    def from_env(cls) -> "StateConfig":
        env_home = os.getenv("SHIPWRIGHT_HOME", "").strip()
        xdg_state = os.getenv("XDG_STATE_HOME", "").strip()
        if env_home:
            home = Path(env_home).expanduser().resolve()
        elif xdg_state:
            home = Path(xdg_state).expanduser().resolve() / "shipwright"
        else:
            home = Path.home() / ".shipwright"
        return cls(home=home)

    @property
    def state_dir(self) -> Path:
        return self.home / "state"

    @property
    def state_db_path(self) -> Path:
        return self.state_dir / "state.db"

    @property
    def audit_log_path(self) -> Path:
        return self.state_dir / "audit.log"


@dataclass
class AgentConfig:
    """Combined configuration for one agent process."""
    llm: LLMConfig
    loop: LoopConfig
    workspace: WorkspaceConfig
    state: StateConfig

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Load all configuration from environment variables."""
        return cls(
            llm=LLMConfig.from_env(),
            loop=LoopConfig.from_env(),
            workspace=WorkspaceConfig.from_env(),
            state=StateConfig.from_env(),
        )
