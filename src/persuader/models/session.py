"""Session models for provider conversation tracking.

Provides:
- SessionStatus: lifecycle states of a provider session
- SessionInfo: mutable record kept by the SessionCoordinator
- SessionRun: frozen summary of one pipeline run inside a session
- SessionMetrics: aggregate statistics across a session's runs
- InitSessionResult: what init_session() hands back
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime

from persuader.models.result import TokenUsage


class SessionStatus(str, enum.Enum):
    ACTIVE = "active"
    VALIDATING = "validating"
    EXPIRED = "expired"
    DESTROYED = "destroyed"


@dataclass
class SessionInfo:
    """A provider-side conversation the coordinator knows about.

    Mutable: status moves ACTIVE -> VALIDATING -> ACTIVE/EXPIRED, and
    finally DESTROYED. Runs are appended as pipelines finish.
    """

    session_id: str
    created_at: datetime
    context: str
    model: str | None = None
    status: SessionStatus = SessionStatus.ACTIVE
    implicit: bool = False
    runs: list[SessionRun] = field(default_factory=list)

    @property
    def usable(self) -> bool:
        return self.status in (SessionStatus.ACTIVE, SessionStatus.VALIDATING)


@dataclass(frozen=True)
class SessionRun:
    success: bool
    attempts: int
    execution_time_ms: float
    token_usage: TokenUsage | None = None


@dataclass(frozen=True)
class SessionMetrics:
    """Aggregate statistics for one session.

    Attributes:
        session_id: The session these metrics describe.
        total_operations: Number of pipeline runs recorded.
        success_rate: Fraction of runs that succeeded (0.0 with no runs).
        avg_attempts_to_success: Mean attempt count over successful runs.
        operations_with_retries: Runs that needed more than one attempt.
        avg_execution_time_ms: Mean wall time over all runs.
        total_token_usage: Summed token usage over runs that reported it.
    """

    session_id: str
    total_operations: int
    success_rate: float
    avg_attempts_to_success: float
    operations_with_retries: int
    avg_execution_time_ms: float
    total_token_usage: TokenUsage

    @classmethod
    def from_runs(cls, session_id: str, runs: list[SessionRun]) -> SessionMetrics:
        total = len(runs)
        successes = [r for r in runs if r.success]
        usage = TokenUsage()
        for run in runs:
            if run.token_usage is not None:
                usage = usage + run.token_usage
        return cls(
            session_id=session_id,
            total_operations=total,
            success_rate=len(successes) / total if total else 0.0,
            avg_attempts_to_success=(
                sum(r.attempts for r in successes) / len(successes) if successes else 0.0
            ),
            operations_with_retries=sum(1 for r in runs if r.attempts > 1),
            avg_execution_time_ms=(
                sum(r.execution_time_ms for r in runs) / total if total else 0.0
            ),
            total_token_usage=usage,
        )


@dataclass(frozen=True)
class InitSessionResult:
    """Returned by Persuader.init_session().

    ``response`` holds the reply to the optional initial prompt.
    """

    session_id: str
    response: str | None = None
