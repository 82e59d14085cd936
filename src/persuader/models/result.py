"""Attempt and result models for the persuade pipeline.

Provides:
- ErrorKind / ValidationIssue: normalized validation feedback
- TokenUsage: additive token accounting
- Attempt: one prompt -> response -> validation cycle
- PersuadeResult: the single outcome of a pipeline run
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class ErrorKind(str, enum.Enum):
    """Category of a single validation issue."""

    TYPE_MISMATCH = "type_mismatch"
    RANGE = "range"
    ENUM_MISMATCH = "enum_mismatch"
    MISSING = "missing"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ValidationIssue:
    """One field-level validation failure.

    Attributes:
        path: Dotted field path ("items.0.name"); empty for the root value.
        kind: Issue category.
        expected: Human-readable description of what was expected.
        actual: The offending value (None when the field is missing).
        suggestions: Ordered near-match candidates, best first.
        message: Original message from the schema checker.
    """

    path: str
    kind: ErrorKind
    expected: str = ""
    actual: Any = None
    suggestions: tuple[str, ...] = ()
    message: str = ""

    def __str__(self) -> str:
        where = self.path or "<root>"
        return f"{where}: {self.message or self.kind.value}"


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by a provider."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        if not isinstance(other, TokenUsage):
            return NotImplemented
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


@dataclass(frozen=True)
class Attempt:
    """Record of one attempt. Frozen: never mutated after creation.

    An attempt either reached validation (raw_response set, passed/issues
    filled in) or failed at the provider (provider_error set).
    """

    index: int
    prompt: str
    started_at: datetime
    duration_ms: float
    raw_response: str | None = None
    passed: bool = False
    issues: tuple[ValidationIssue, ...] = ()
    token_usage: TokenUsage | None = None
    cost: float | None = None
    provider_error: str | None = None
    provider_error_kind: str | None = None

    @property
    def reached_validation(self) -> bool:
        return self.provider_error is None


class Outcome(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class FailureReason(str, enum.Enum):
    """Why a run failed. Tells callers whether re-invoking later is worthwhile."""

    RETRIES_EXHAUSTED = "retries_exhausted"
    FATAL_PROVIDER_ERROR = "fatal_provider_error"
    SESSION_ERROR = "session_error"


@dataclass(frozen=True)
class FailureInfo:
    reason: FailureReason
    detail: str
    error_kind: str | None = None


@dataclass(frozen=True)
class ExecutionMetadata:
    """Timing, usage and provenance for a pipeline run."""

    started_at: datetime
    finished_at: datetime
    execution_time_ms: float
    token_usage: TokenUsage | None = None
    cost: float | None = None
    provider: str | None = None
    model: str | None = None
    enhancement_rounds: int = 0
    enhancement_improved: bool = False


@dataclass(frozen=True)
class PersuadeResult:
    """Final outcome of persuade(). Exactly one per request.

    Attributes:
        outcome: SUCCESS or FAILURE.
        value: The schema-validated value (SUCCESS only).
        errors: Issues from the last attempt (FAILURE only).
        attempts: Ordered attempt records, indices 0..n-1.
        session_id: Session used for the run, if any.
        metadata: Timing and usage aggregated across attempts.
        failure: Reason and detail when outcome is FAILURE.
        enhancement_attempts: Attempts made during enhancement rounds.
    """

    outcome: Outcome
    attempts: tuple[Attempt, ...]
    metadata: ExecutionMetadata
    value: Any = None
    errors: tuple[ValidationIssue, ...] = ()
    session_id: str | None = None
    failure: FailureInfo | None = None
    enhancement_attempts: tuple[Attempt, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    def __repr__(self) -> str:
        status = self.outcome.value
        extra = f" reason={self.failure.reason.value}" if self.failure else ""
        return f"PersuadeResult({status} attempts={len(self.attempts)}{extra})"
