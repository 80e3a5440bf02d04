"""
Exception hierarchy for Shipwright.

Only failures that must stop the caller are raised. Tool-level problems
(bad arguments, denied commands, handler crashes) are turned into text by
the tool registry and never reach this hierarchy's callers.
"""


class ShipwrightError(Exception):
    """Base class for all Shipwright errors."""
    pass


class ConfigError(ShipwrightError):
    """Configuration could not be loaded or is invalid."""
    pass


class ProviderError(ShipwrightError):
    """
    A provider request failed.

    Raised for non-success HTTP statuses and unreadable stream bodies.
    The step loop does not retry these; the whole call is aborted.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        self.body = body
        detail = f"{provider} request failed: {message}"
        if body:
            detail = f"{detail}: {body}"
        super().__init__(detail)


class SecretNotFoundError(ShipwrightError, KeyError):
    """No secret is available for the requested provider."""

    def __init__(self, provider_id: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"No API key found for provider '{provider_id}'")

    def __str__(self) -> str:
        return self.args[0]


class PathTraversalError(ShipwrightError, ValueError):
    """A relative path resolved outside the workspace root."""
    pass


class LockConflictError(ShipwrightError):
    """
    Another agent holds an unexpired lock on the path.

    Locking is fail-fast: the caller gets this immediately and decides
    whether to retry.
    """

    def __init__(self, path: str, holder_agent_id: str, requester_agent_id: str) -> None:
        self.path = path
        self.holder_agent_id = holder_agent_id
        self.requester_agent_id = requester_agent_id
        super().__init__(f"File is locked by agent {holder_agent_id}")
