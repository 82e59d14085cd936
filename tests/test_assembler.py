"""Tests for ResultAssembler and usage aggregation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from persuader.models.result import (
    Attempt,
    ErrorKind,
    FailureReason,
    Outcome,
    TokenUsage,
    ValidationIssue,
)
from persuader.orchestrator.assembler import ResultAssembler, sum_cost, sum_usage

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
ISSUE = ValidationIssue(path="a", kind=ErrorKind.MISSING, expected="required field")


def _attempt(index=0, *, usage=None, cost=None, issues=(), passed=False, started_at=T0):
    return Attempt(
        index=index,
        prompt="p",
        started_at=started_at,
        duration_ms=5.0,
        raw_response="{}",
        passed=passed,
        issues=issues,
        token_usage=usage,
        cost=cost,
    )


class TestAggregation:
    def test_usage_none_when_unreported(self):
        assert sum_usage([_attempt(), _attempt(1)]) is None
        assert sum_cost([_attempt()]) is None

    def test_usage_sums_reported_only(self):
        attempts = [_attempt(usage=TokenUsage(3, 1)), _attempt(1), _attempt(2, usage=TokenUsage(4, 2))]
        assert sum_usage(attempts) == TokenUsage(7, 3)
        assert sum_usage(attempts).total_tokens == 10

    def test_cost_sums(self):
        assert sum_cost([_attempt(cost=0.5), _attempt(1, cost=0.25)]) == 0.75


class TestResultAssembler:
    def test_success_includes_enhancement_usage(self):
        assembler = ResultAssembler(T0, provider="fake", model="m")
        result = assembler.success(
            {"a": 1},
            [_attempt(usage=TokenUsage(1, 1), passed=True)],
            session_id="s-1",
            enhancement_attempts=[_attempt(0, usage=TokenUsage(2, 2), cost=0.1)],
            enhancement_improved=True,
        )
        assert result.outcome is Outcome.SUCCESS
        assert result.value == {"a": 1}
        assert result.session_id == "s-1"
        assert result.metadata.token_usage == TokenUsage(3, 3)
        assert result.metadata.cost == pytest.approx(0.1)
        assert result.metadata.enhancement_rounds == 1
        assert result.metadata.enhancement_improved
        assert result.metadata.provider == "fake"
        assert result.metadata.model == "m"

    def test_failure_carries_last_attempt_issues(self):
        assembler = ResultAssembler(T0)
        first = _attempt(issues=(ValidationIssue(path="x", kind=ErrorKind.RANGE),))
        last = _attempt(1, issues=(ISSUE,))
        result = assembler.failure([first, last], FailureReason.RETRIES_EXHAUSTED, "done")
        assert result.outcome is Outcome.FAILURE
        assert result.errors == (ISSUE,)
        assert result.failure.reason is FailureReason.RETRIES_EXHAUSTED
        assert result.failure.detail == "done"
        assert result.value is None

    def test_timing_starts_at_first_attempt(self):
        start = datetime.now(timezone.utc) - timedelta(seconds=2)
        assembler = ResultAssembler(start - timedelta(hours=1))
        result = assembler.success("v", [_attempt(passed=True, started_at=start)])
        assert result.metadata.started_at == start
        assert result.metadata.execution_time_ms >= 2000
        assert result.metadata.finished_at >= start

    def test_repr(self):
        result = ResultAssembler(T0).failure([_attempt()], FailureReason.FATAL_PROVIDER_ERROR, "auth")
        assert repr(result) == "PersuadeResult(failure attempts=1 reason=fatal_provider_error)"
