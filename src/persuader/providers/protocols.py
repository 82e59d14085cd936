"""Provider adapter protocol and its data types.

Defines the pluggable interface every provider back-end implements,
whether it shells out to a CLI or talks HTTP. Adapters are injected
into the Persuader; nothing in the pipeline is wired to a concrete one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from persuader.models.result import TokenUsage


@dataclass(frozen=True)
class PromptOptions:
    """Per-call generation options."""

    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None


@dataclass(frozen=True)
class ProviderResponse:
    """What an adapter returns for one prompt.

    Attributes:
        content: The assistant's text.
        token_usage: Token counts, when the provider reports them.
        metadata: Provider-specific extras (session id, cost, model, ...).
        stop_reason: Why generation stopped ("end_turn", "length", ...).
    """

    content: str
    token_usage: TokenUsage | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    stop_reason: str | None = None

    @property
    def cost(self) -> float | None:
        cost = self.metadata.get("cost")
        return float(cost) if cost is not None else None


@dataclass(frozen=True)
class SessionValidation:
    valid: bool
    error: str | None = None
    response_time_ms: float | None = None


@dataclass(frozen=True)
class ProviderHealth:
    healthy: bool
    response_time_ms: float
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class ProviderAdapter(Protocol):
    """Protocol for pluggable provider back-ends.

    Any object with these methods works. BaseProvider supplies the probe
    based ``validate_session`` and ``get_health`` on top of
    ``send_prompt``. Adapters raise ProviderError subclasses tagged with
    a ProviderErrorKind on failure.
    """

    name: str
    supports_sessions: bool

    def send_prompt(
        self,
        session_id: str | None,
        prompt: str,
        options: PromptOptions,
    ) -> ProviderResponse:
        """Run one prompt, inside a session when session_id is given."""
        ...

    def create_session(self, context: str, options: PromptOptions) -> str:
        """Open a new conversation seeded with context; return its id."""
        ...

    def validate_session(self, session_id: str) -> SessionValidation:
        """Probe whether a session still works."""
        ...

    def destroy_session(self, session_id: str) -> None:
        """Release a session."""
        ...

    def get_health(self) -> ProviderHealth:
        """Check that the provider is reachable and answering."""
        ...
