"""ResultAssembler -- turns recorded attempts into a PersuadeResult."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from persuader.models.result import (
    Attempt,
    ExecutionMetadata,
    FailureInfo,
    FailureReason,
    Outcome,
    PersuadeResult,
    TokenUsage,
)


def sum_usage(attempts: Sequence[Attempt]) -> TokenUsage | None:
    """Total token usage, or None when no attempt reported any."""
    total: TokenUsage | None = None
    for attempt in attempts:
        if attempt.token_usage is None:
            continue
        total = attempt.token_usage if total is None else total + attempt.token_usage
    return total


def sum_cost(attempts: Sequence[Attempt]) -> float | None:
    costs = [a.cost for a in attempts if a.cost is not None]
    return sum(costs) if costs else None


class ResultAssembler:
    """Builds the single PersuadeResult for one run.

    Timing runs from the first attempt's start (or ``started_at`` when
    no attempt was recorded) to the moment the result is assembled.
    Usage and cost cover validation and enhancement attempts alike.

    Args:
        started_at: When the run began.
        provider: Provider name recorded in the metadata.
        model: Model hint recorded in the metadata.
    """

    def __init__(
        self,
        started_at: datetime,
        *,
        provider: str | None = None,
        model: str | None = None,
    ) -> None:
        self.started_at = started_at
        self.provider = provider
        self.model = model

    def success(
        self,
        value: Any,
        attempts: Sequence[Attempt],
        *,
        session_id: str | None = None,
        enhancement_attempts: Sequence[Attempt] = (),
        enhancement_improved: bool = False,
    ) -> PersuadeResult:
        return PersuadeResult(
            outcome=Outcome.SUCCESS,
            value=value,
            attempts=tuple(attempts),
            session_id=session_id,
            enhancement_attempts=tuple(enhancement_attempts),
            metadata=self._metadata(attempts, enhancement_attempts, enhancement_improved),
        )

    def failure(
        self,
        attempts: Sequence[Attempt],
        reason: FailureReason,
        detail: str,
        *,
        error_kind: str | None = None,
        session_id: str | None = None,
    ) -> PersuadeResult:
        """FAILURE result. ``errors`` are the last attempt's validation issues."""
        errors = attempts[-1].issues if attempts else ()
        return PersuadeResult(
            outcome=Outcome.FAILURE,
            attempts=tuple(attempts),
            errors=tuple(errors),
            session_id=session_id,
            failure=FailureInfo(reason=reason, detail=detail, error_kind=error_kind),
            metadata=self._metadata(attempts, (), False),
        )

    def _metadata(
        self,
        attempts: Sequence[Attempt],
        enhancement_attempts: Sequence[Attempt],
        improved: bool,
    ) -> ExecutionMetadata:
        started = attempts[0].started_at if attempts else self.started_at
        finished = datetime.now(timezone.utc)
        everything = [*attempts, *enhancement_attempts]
        return ExecutionMetadata(
            started_at=started,
            finished_at=finished,
            execution_time_ms=max((finished - started).total_seconds() * 1000, 0.0),
            token_usage=sum_usage(everything),
            cost=sum_cost(everything),
            provider=self.provider,
            model=self.model,
            enhancement_rounds=len(enhancement_attempts),
            enhancement_improved=improved,
        )
