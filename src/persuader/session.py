"""SessionCoordinator -- lifecycle and bookkeeping for provider sessions.

The coordinator creates, validates and destroys provider conversation
sessions, tracks their status, and keeps per-session run records for
metrics. It holds no locks: callers must not run two requests against
the same session id at the same time, because a provider session is a
single conversation cursor.

Usage::

    coordinator = SessionCoordinator(provider)
    session_id = coordinator.create_session("You classify techniques.")
    check = coordinator.validate_session(session_id)
    coordinator.destroy_session(session_id)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from persuader.exceptions import SessionError
from persuader.models.session import (
    SessionInfo,
    SessionMetrics,
    SessionRun,
    SessionStatus,
)
from persuader.providers.errors import ProviderError
from persuader.providers.protocols import PromptOptions, SessionValidation

if TYPE_CHECKING:
    from persuader.models.result import PersuadeResult
    from persuader.providers.protocols import ProviderAdapter

logger = logging.getLogger(__name__)


def _short(session_id: str) -> str:
    return session_id[:8] + "..." if len(session_id) > 8 else session_id


class SessionCoordinator:
    """Creates, validates and destroys sessions on one provider."""

    def __init__(self, provider: ProviderAdapter) -> None:
        self._provider = provider
        self._sessions: dict[str, SessionInfo] = {}

    @property
    def supports_sessions(self) -> bool:
        return bool(getattr(self._provider, "supports_sessions", False))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_session(
        self,
        context: str,
        *,
        model: str | None = None,
        temperature: float | None = None,
        implicit: bool = False,
    ) -> str:
        """Open a brand-new provider session seeded with ``context``.

        Every call mints a fresh id, even for identical context. A
        provider that hands back an id already tracked here would be
        resuming an old conversation (and its rate-limit/auth state),
        so that is rejected.

        Raises:
            SessionError: If the provider has no sessions, creation fails,
                or the provider returned a previously issued id.
        """
        if not self.supports_sessions:
            raise SessionError(
                f"Provider {getattr(self._provider, 'name', '?')!r} does not support sessions"
            )
        options = PromptOptions(model=model, temperature=temperature)
        try:
            session_id = self._provider.create_session(context, options)
        except ProviderError as exc:
            logger.error("Session creation failed: %s", exc)
            raise SessionError(f"Failed to create session: {exc}") from exc

        if not session_id:
            raise SessionError("Provider returned an empty session id")
        if session_id in self._sessions:
            raise SessionError(
                f"Provider resumed existing session {session_id} instead of creating a new one"
            )

        self._sessions[session_id] = SessionInfo(
            session_id=session_id,
            created_at=datetime.now(timezone.utc),
            context=context,
            model=model,
            implicit=implicit,
        )
        logger.info(
            "Session %s created (context %d chars, implicit=%s)",
            _short(session_id), len(context), implicit,
        )
        return session_id

    def adopt(self, session_id: str, *, context: str = "", model: str | None = None) -> SessionInfo:
        """Track a session created outside this coordinator (e.g. a prior process).

        Raises:
            SessionError: If the id is known but no longer usable.
        """
        info = self._sessions.get(session_id)
        if info is not None:
            if not info.usable:
                raise SessionError(
                    f"Session {session_id} is {info.status.value} and cannot be used"
                )
            return info
        info = SessionInfo(
            session_id=session_id,
            created_at=datetime.now(timezone.utc),
            context=context,
            model=model,
        )
        self._sessions[session_id] = info
        logger.debug("Adopted external session %s", _short(session_id))
        return info

    def validate_session(self, session_id: str) -> SessionValidation:
        """Probe a session. Marks it EXPIRED when the probe fails.

        Raises:
            SessionError: If the session was destroyed.
        """
        info = self._sessions.get(session_id)
        if info is None:
            info = self.adopt(session_id)
        if info.status is SessionStatus.DESTROYED:
            raise SessionError(f"Session {session_id} was destroyed")

        info.status = SessionStatus.VALIDATING
        try:
            result = self._provider.validate_session(session_id)
        except (ProviderError, SessionError) as exc:
            result = SessionValidation(valid=False, error=str(exc))
        info.status = SessionStatus.ACTIVE if result.valid else SessionStatus.EXPIRED
        logger.info(
            "Session %s validation: %s%s",
            _short(session_id),
            "valid" if result.valid else "invalid",
            f" ({result.error})" if result.error else "",
        )
        return result

    def destroy_session(self, session_id: str) -> None:
        """Destroy a session. Destroying twice is a no-op.

        Raises:
            SessionError: If the provider fails to tear it down.
        """
        info = self._sessions.get(session_id)
        if info is not None and info.status is SessionStatus.DESTROYED:
            return
        try:
            self._provider.destroy_session(session_id)
        except ProviderError as exc:
            raise SessionError(f"Failed to destroy session {session_id}: {exc}") from exc
        if info is None:
            info = self.adopt(session_id)
        info.status = SessionStatus.DESTROYED
        logger.info("Session %s destroyed", _short(session_id))

    def expire(self, session_id: str) -> None:
        """Mark a tracked session EXPIRED after the provider lost it."""
        info = self._sessions.get(session_id)
        if info is not None and info.status is not SessionStatus.DESTROYED:
            info.status = SessionStatus.EXPIRED
            logger.info("Session %s expired", _short(session_id))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> SessionInfo:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionError(f"Session not found: {session_id}") from None

    def list_sessions(self, *, status: SessionStatus | None = None) -> list[SessionInfo]:
        sessions = list(self._sessions.values())
        if status is not None:
            sessions = [s for s in sessions if s.status is status]
        return sessions

    def record_run(self, session_id: str, result: PersuadeResult) -> None:
        """Append one pipeline run to a session's history."""
        info = self._sessions.get(session_id)
        if info is None:
            return
        info.runs.append(SessionRun(
            success=result.ok,
            attempts=len(result.attempts),
            execution_time_ms=result.metadata.execution_time_ms,
            token_usage=result.metadata.token_usage,
        ))

    def metrics(self, session_id: str) -> SessionMetrics:
        """Aggregate statistics over a session's recorded runs.

        Raises:
            SessionError: If the session is unknown.
        """
        info = self.get(session_id)
        return SessionMetrics.from_runs(session_id, info.runs)
