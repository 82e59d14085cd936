"""Shared behaviour for concrete provider adapters.

Session validation and health checks are the same for every back-end:
send a minimal, low-cost prompt and look for a case-insensitive "ok" in
the answer. BaseProvider implements both once on top of send_prompt.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

from persuader.exceptions import SessionError
from persuader.prompts.session import HEALTH_PROBE_PROMPT, SESSION_PROBE_PROMPT
from persuader.providers.errors import ProviderError
from persuader.providers.protocols import (
    PromptOptions,
    ProviderHealth,
    ProviderResponse,
    SessionValidation,
)

logger = logging.getLogger(__name__)

PROBE_OPTIONS = PromptOptions(max_tokens=10, temperature=0)


def looks_ok(content: str) -> bool:
    """Validity signal for probes: "ok" anywhere, any case."""
    return "ok" in (content or "").lower()


class BaseProvider(ABC):
    """Base class for adapters implementing the ProviderAdapter protocol."""

    name: str = "provider"
    supports_sessions: bool = False

    @abstractmethod
    def send_prompt(
        self,
        session_id: str | None,
        prompt: str,
        options: PromptOptions,
    ) -> ProviderResponse:
        raise NotImplementedError

    @abstractmethod
    def create_session(self, context: str, options: PromptOptions) -> str:
        raise NotImplementedError

    def destroy_session(self, session_id: str) -> None:
        # Providers without an explicit teardown let sessions expire naturally.
        logger.info("Session %s released (provider-side expiry)", session_id)

    def validate_session(self, session_id: str) -> SessionValidation:
        start = time.perf_counter()
        try:
            response = self.send_prompt(session_id, SESSION_PROBE_PROMPT, PROBE_OPTIONS)
        except (ProviderError, SessionError) as exc:
            elapsed = (time.perf_counter() - start) * 1000
            logger.warning("Session %s failed validation: %s", session_id, exc)
            return SessionValidation(valid=False, error=str(exc), response_time_ms=elapsed)

        elapsed = (time.perf_counter() - start) * 1000
        if looks_ok(response.content):
            return SessionValidation(valid=True, response_time_ms=elapsed)
        return SessionValidation(
            valid=False,
            error=f"Unexpected probe response: {response.content[:50]!r}",
            response_time_ms=elapsed,
        )

    def get_health(self) -> ProviderHealth:
        start = time.perf_counter()
        try:
            response = self.send_prompt(None, HEALTH_PROBE_PROMPT, PROBE_OPTIONS)
        except ProviderError as exc:
            return ProviderHealth(
                healthy=False,
                response_time_ms=(time.perf_counter() - start) * 1000,
                error=str(exc),
                details={"provider": self.name, "kind": exc.kind.value},
            )
        healthy = looks_ok(response.content)
        return ProviderHealth(
            healthy=healthy,
            response_time_ms=(time.perf_counter() - start) * 1000,
            error=None if healthy else f"Unexpected probe response: {response.content[:50]!r}",
            details={"provider": self.name, "response": response.content[:100]},
        )

    def close(self) -> None:
        """Release underlying resources."""

    def __enter__(self):
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
