"""Persuader -- the validation-driven retry loop.

One ``persuade()`` call runs a bounded loop: build a prompt, send it to
the provider, decode and validate the response, and either finish or
retry with a corrective prompt built from the failures. Optional
enhancement rounds then try to enrich a valid value without ever
accepting a lower-scoring one.

Every request produces exactly one PersuadeResult. Configuration
problems are the only failures raised before the loop starts.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from persuader.exceptions import (
    ConfigurationError,
    ParseError,
    SchemaValidationError,
    SessionError,
)
from persuader.models.config import PersuaderConfig
from persuader.models.result import Attempt, FailureReason, PersuadeResult
from persuader.models.session import InitSessionResult
from persuader.orchestrator.assembler import ResultAssembler
from persuader.orchestrator.config import PipelineState
from persuader.orchestrator.scoring import as_evaluator
from persuader.prompts.enhance import build_enhancement_prompt
from persuader.prompts.persuade import (
    build_corrective_prompt,
    build_initial_prompt,
    describe_schema,
)
from persuader.prompts.session import SUCCESS_FEEDBACK_PROMPT, build_preload_prompt
from persuader.providers.errors import ProviderError
from persuader.providers.protocols import PromptOptions
from persuader.retry import RetryPolicy
from persuader.session import SessionCoordinator
from persuader.validation import ValidationAdapter, as_schema_checker

if TYPE_CHECKING:
    from collections.abc import Callable

    from persuader.models.request import PipelineRequest
    from persuader.models.result import ValidationIssue
    from persuader.models.session import SessionMetrics
    from persuader.orchestrator.scoring import ImprovementEvaluator
    from persuader.providers.protocols import (
        ProviderAdapter,
        ProviderHealth,
        SessionValidation,
    )

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class Persuader:
    """Runs structured-output requests against a provider until they validate.

    Usage::

        from persuader import Persuader, PipelineRequest
        from persuader.providers import ClaudeCLIProvider

        with Persuader(ClaudeCLIProvider()) as persuader:
            result = persuader.persuade(PipelineRequest(
                schema=Technique,
                input=transcript,
                context="You classify grappling techniques.",
                retries=3,
            ))
        if result.ok:
            print(result.value)

    Args:
        provider: Any ProviderAdapter.
        config: Pipeline defaults. Defaults to ``PersuaderConfig()``.
        evaluator: Enhancement scorer, an ImprovementEvaluator or a plain
            ``fn(baseline, candidate) -> float``.
        retry_policy: Retry classification and backoff. Built from
            ``config.backoff`` when omitted.
        sleep: Called with the backoff delay in seconds.
        on_attempt: Called with every Attempt as it is recorded.
    """

    def __init__(
        self,
        provider: ProviderAdapter,
        config: PersuaderConfig | None = None,
        *,
        evaluator: ImprovementEvaluator | Callable[[Any, Any], float] | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        on_attempt: Callable[[Attempt], None] | None = None,
    ) -> None:
        self._provider = provider
        self._config = config or PersuaderConfig()
        self._sessions = SessionCoordinator(provider)
        self._retry = retry_policy or RetryPolicy(self._config.backoff)
        self._evaluator = as_evaluator(evaluator)
        self._sleep = sleep
        self._on_attempt = on_attempt
        self._state = PipelineState.IDLE
        # (context, model) -> implicit session reused by later runs
        self._implicit_sessions: dict[tuple[str, str | None], str] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def config(self) -> PersuaderConfig:
        return self._config

    @property
    def sessions(self) -> SessionCoordinator:
        return self._sessions

    @property
    def provider_name(self) -> str:
        return getattr(self._provider, "name", type(self._provider).__name__)

    def persuade(self, request: PipelineRequest) -> PersuadeResult:
        """Run one request to a SUCCESS or FAILURE result.

        Raises:
            ConfigurationError: If the request options are invalid or the
                schema handle is unsupported. Nothing is sent in that case.
        """
        request.validate()
        checker = as_schema_checker(request.schema)
        if request.session_id and not self._sessions.supports_sessions:
            raise ConfigurationError(
                f"Provider {self.provider_name!r} does not support sessions; "
                "drop session_id from the request"
            )
        suggestions = self._config.suggestions
        validator = ValidationAdapter(
            checker,
            suggestion_limit=suggestions.limit,
            threshold_ratio=suggestions.threshold_ratio,
        )

        self._state = PipelineState.INITIALIZING
        model = request.model or self._config.default_model
        options = PromptOptions(
            model=model,
            max_tokens=request.max_tokens,
            temperature=request.temperature,
        )
        assembler = ResultAssembler(_now(), provider=self.provider_name, model=model)
        logger.info(
            "persuade: schema=%s retries=%d enhancement=%d",
            getattr(checker, "name", type(checker).__name__),
            request.retries,
            request.enhancement,
        )

        try:
            session_id, context_loaded = self._acquire_session(request, model)
        except SessionError as exc:
            return self._session_failure(request, checker, assembler, exc)

        initial_prompt = self._initial_prompt(request, checker, include_context=not context_loaded)
        result = self._run_attempts(
            request, validator, assembler, options, session_id, initial_prompt
        )
        if session_id is not None:
            self._sessions.record_run(session_id, result)
        return result

    def init_session(
        self,
        context: str,
        *,
        initial_prompt: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
    ) -> InitSessionResult:
        """Create a session seeded with ``context``, optionally sending a first prompt.

        Raises:
            SessionError: If the provider has no sessions or creation fails.
            ProviderError: If the initial prompt fails.
        """
        model = model or self._config.default_model
        session_id = self._sessions.create_session(
            context, model=model, temperature=temperature
        )
        response: str | None = None
        if initial_prompt:
            reply = self._provider.send_prompt(
                session_id,
                initial_prompt,
                PromptOptions(model=model, temperature=temperature),
            )
            response = reply.content
        return InitSessionResult(session_id=session_id, response=response)

    def preload(
        self,
        session_id: str,
        input: Any,
        *,
        context_note: str | None = None,
        model: str | None = None,
    ) -> None:
        """Load data into a session without schema validation.

        Later ``persuade()`` calls on the same session can refer to it.

        Raises:
            ConfigurationError: If the provider has no sessions.
            SessionError: If the session was destroyed or expired.
            ProviderError: If the provider call fails.
        """
        if not self._sessions.supports_sessions:
            raise ConfigurationError(
                f"Provider {self.provider_name!r} does not support sessions; cannot preload"
            )
        self._sessions.adopt(session_id, model=model)
        start = time.perf_counter()
        self._provider.send_prompt(
            session_id,
            build_preload_prompt(input, context_note),
            PromptOptions(model=model or self._config.default_model),
        )
        logger.info("Preloaded session %s in %.0fms", session_id, _elapsed_ms(start))

    def get_session_metrics(self, session_id: str) -> SessionMetrics:
        return self._sessions.metrics(session_id)

    def validate_session(self, session_id: str) -> SessionValidation:
        return self._sessions.validate_session(session_id)

    def destroy_session(self, session_id: str) -> None:
        self._sessions.destroy_session(session_id)

    def health(self) -> ProviderHealth:
        return self._provider.get_health()

    def close(self) -> None:
        """Release implicit sessions (when configured) and close the provider."""
        if self._config.destroy_implicit_sessions:
            self._implicit_sessions.clear()
            for info in self._sessions.list_sessions():
                if not info.implicit or not info.usable:
                    continue
                try:
                    self._sessions.destroy_session(info.session_id)
                except SessionError as exc:
                    logger.warning("Could not destroy session %s: %s", info.session_id, exc)
        close = getattr(self._provider, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> Persuader:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _run_attempts(
        self,
        request: PipelineRequest,
        validator: ValidationAdapter,
        assembler: ResultAssembler,
        options: PromptOptions,
        session_id: str | None,
        initial_prompt: str,
    ) -> PersuadeResult:
        attempts: list[Attempt] = []
        prompt = initial_prompt
        issues: tuple[ValidationIssue, ...] | None = None

        for index in range(request.max_attempts):
            self._state = PipelineState.PROMPTING
            if issues is not None:
                prompt = self._corrective_prompt(issues, session_id, initial_prompt)
            # A provider error produces no issues, so the next attempt re-sends the
            # same prompt. When that prompt is corrective it still carries the
            # issues of the last attempt that reached validation.
            issues = None

            started_at = _now()
            start = time.perf_counter()
            self._state = PipelineState.AWAITING_PROVIDER
            logger.debug("Attempt %d prompt:\n%s", index, prompt)
            try:
                response = self._provider.send_prompt(session_id, prompt, options)
            except ProviderError as exc:
                self._record(attempts, Attempt(
                    index=index,
                    prompt=prompt,
                    started_at=started_at,
                    duration_ms=_elapsed_ms(start),
                    provider_error=str(exc),
                    provider_error_kind=exc.kind.value,
                ))
                if not exc.retryable:
                    logger.error("Attempt %d: fatal provider error (%s): %s", index, exc.kind.value, exc)
                    return self._fail(
                        assembler, attempts, FailureReason.FATAL_PROVIDER_ERROR,
                        str(exc), exc.kind.value, session_id,
                    )
                if not self._retry.should_retry(index, request.max_attempts, exc):
                    return self._fail(
                        assembler, attempts, FailureReason.RETRIES_EXHAUSTED,
                        f"Retry budget exhausted after {len(attempts)} attempt(s): {exc}",
                        exc.kind.value, session_id,
                    )
                self._state = PipelineState.RETRYING
                self._pace(index, exc)
                continue
            except SessionError as exc:
                self._record(attempts, Attempt(
                    index=index,
                    prompt=prompt,
                    started_at=started_at,
                    duration_ms=_elapsed_ms(start),
                    provider_error=str(exc),
                    provider_error_kind="session",
                ))
                if session_id is not None:
                    self._sessions.expire(session_id)
                return self._fail(
                    assembler, attempts, FailureReason.SESSION_ERROR,
                    str(exc), "session", session_id,
                )

            self._state = PipelineState.VALIDATING
            outcome = validator.validate(response.content)
            self._record(attempts, Attempt(
                index=index,
                prompt=prompt,
                started_at=started_at,
                duration_ms=_elapsed_ms(start),
                raw_response=response.content,
                passed=outcome.passed,
                issues=outcome.issues,
                token_usage=response.token_usage,
                cost=response.cost,
            ))

            if outcome.passed:
                self._state = PipelineState.SUCCEEDED
                logger.info("Attempt %d passed validation", index)
                return self._finish(
                    request, validator, assembler, options, session_id,
                    initial_prompt, outcome.value, attempts,
                )

            error: ParseError | SchemaValidationError
            if outcome.decoded:
                error = SchemaValidationError(outcome.issues)
            else:
                error = ParseError(outcome.issues[0].message, raw=response.content)
            logger.info("Attempt %d failed validation: %s", index, error)
            if not self._retry.should_retry(index, request.max_attempts, error):
                return self._fail(
                    assembler, attempts, FailureReason.RETRIES_EXHAUSTED,
                    f"Retry budget exhausted after {len(attempts)} attempt(s): {error}",
                    None, session_id,
                )
            self._state = PipelineState.RETRYING
            issues = outcome.issues

        # unreachable: every iteration returns or continues within budget
        raise AssertionError("retry loop ended without a result")

    def _finish(
        self,
        request: PipelineRequest,
        validator: ValidationAdapter,
        assembler: ResultAssembler,
        options: PromptOptions,
        session_id: str | None,
        initial_prompt: str,
        baseline: Any,
        attempts: list[Attempt],
    ) -> PersuadeResult:
        value = baseline
        improved = False
        rounds: list[Attempt] = []
        if session_id is not None and self._config.success_feedback:
            self._send_success_feedback(session_id, options)
        if request.enhancement > 0:
            self._state = PipelineState.ENHANCING
            value, improved = self._enhance(
                request, validator, options, session_id, initial_prompt, baseline, rounds
            )
        self._state = PipelineState.FINALIZED
        return assembler.success(
            value,
            attempts,
            session_id=session_id,
            enhancement_attempts=rounds,
            enhancement_improved=improved,
        )

    def _enhance(
        self,
        request: PipelineRequest,
        validator: ValidationAdapter,
        options: PromptOptions,
        session_id: str | None,
        initial_prompt: str,
        baseline: Any,
        rounds: list[Attempt],
    ) -> tuple[Any, bool]:
        """Run the enhancement rounds. Returns (best value, whether it changed)."""
        min_improvement = self._config.enhancement.min_improvement
        best = baseline
        best_score = self._evaluator.evaluate(baseline, baseline)
        improved = False

        for number in range(1, request.enhancement + 1):
            prompt = build_enhancement_prompt(best, number, request.enhancement)
            if session_id is None:
                prompt = f"{initial_prompt}\n\n{prompt}"
            started_at = _now()
            start = time.perf_counter()
            try:
                response = self._provider.send_prompt(session_id, prompt, options)
            except (ProviderError, SessionError) as exc:
                kind = exc.kind.value if isinstance(exc, ProviderError) else "session"
                self._record(rounds, Attempt(
                    index=number - 1,
                    prompt=prompt,
                    started_at=started_at,
                    duration_ms=_elapsed_ms(start),
                    provider_error=str(exc),
                    provider_error_kind=kind,
                ))
                logger.warning("Enhancement round %d failed at the provider: %s", number, exc)
                continue

            outcome = validator.validate(response.content)
            self._record(rounds, Attempt(
                index=number - 1,
                prompt=prompt,
                started_at=started_at,
                duration_ms=_elapsed_ms(start),
                raw_response=response.content,
                passed=outcome.passed,
                issues=outcome.issues,
                token_usage=response.token_usage,
                cost=response.cost,
            ))
            if not outcome.passed:
                logger.info("Enhancement round %d produced an invalid value; keeping best", number)
                continue

            score = self._evaluator.evaluate(baseline, outcome.value)
            if score > best_score and score >= best_score + min_improvement:
                logger.info(
                    "Enhancement round %d accepted (score %.3f -> %.3f)",
                    number, best_score, score,
                )
                best, best_score = outcome.value, score
                improved = True
            else:
                logger.info(
                    "Enhancement round %d rejected (score %.3f, best %.3f)",
                    number, score, best_score,
                )
        return best, improved

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _acquire_session(
        self, request: PipelineRequest, model: str | None
    ) -> tuple[str | None, bool]:
        """Resolve the session for a run.

        Returns:
            (session_id or None, whether the session already holds the context)
        """
        if request.session_id:
            info = self._sessions.adopt(request.session_id, model=model)
            if self._config.validate_sessions:
                check = self._sessions.validate_session(request.session_id)
                if not check.valid:
                    raise SessionError(
                        f"Session {request.session_id} failed validation: {check.error}"
                    )
            loaded = bool(info.context.strip()) and info.context == request.context
            return request.session_id, loaded

        if not (self._config.reuse_sessions and self._sessions.supports_sessions):
            return None, False
        loaded = bool(request.context.strip())
        key = (request.context, model)
        session_id = self._implicit_sessions.get(key)
        if session_id is not None:
            if self._sessions.get(session_id).usable:
                logger.debug("Reusing implicit session %s", session_id)
                return session_id, loaded
            del self._implicit_sessions[key]
        try:
            session_id = self._sessions.create_session(
                request.context,
                model=model,
                temperature=request.temperature,
                implicit=True,
            )
        except SessionError as exc:
            logger.warning("Implicit session creation failed, continuing without one: %s", exc)
            return None, False
        self._implicit_sessions[key] = session_id
        return session_id, loaded

    def _session_failure(
        self,
        request: PipelineRequest,
        checker: Any,
        assembler: ResultAssembler,
        exc: SessionError,
    ) -> PersuadeResult:
        """FAILURE for a session that could not be used; counts as attempt 0."""
        logger.error("Session unusable: %s", exc)
        attempts: list[Attempt] = []
        self._record(attempts, Attempt(
            index=0,
            prompt=self._initial_prompt(request, checker, include_context=True),
            started_at=_now(),
            duration_ms=0.0,
            provider_error=str(exc),
            provider_error_kind="session",
        ))
        return self._fail(
            assembler, attempts, FailureReason.SESSION_ERROR,
            str(exc), "session", request.session_id,
        )

    def _initial_prompt(self, request: PipelineRequest, checker: Any, *, include_context: bool) -> str:
        json_schema = getattr(checker, "json_schema", None)
        guidance = describe_schema(json_schema()) if callable(json_schema) else None
        return build_initial_prompt(
            input=request.input,
            context=request.context,
            lens=request.lens,
            schema_guidance=guidance,
            example_output=request.example_output,
            output_language=request.output_language,
            include_context=include_context,
        )

    @staticmethod
    def _corrective_prompt(
        issues: tuple[ValidationIssue, ...],
        session_id: str | None,
        initial_prompt: str,
    ) -> str:
        corrective = build_corrective_prompt(issues)
        if session_id is None:
            # without a session the provider has no memory of the task
            return f"{initial_prompt}\n\n{corrective}"
        return corrective

    def _send_success_feedback(self, session_id: str, options: PromptOptions) -> None:
        """Reinforce a validated answer inside its session. Never fails the run."""
        start = time.perf_counter()
        try:
            self._provider.send_prompt(
                session_id,
                SUCCESS_FEEDBACK_PROMPT,
                PromptOptions(model=options.model, max_tokens=30, temperature=0.1),
            )
        except (ProviderError, SessionError) as exc:
            logger.warning("Success feedback to session %s failed: %s", session_id, exc)
            return
        logger.info("Success feedback sent to session %s in %.0fms", session_id, _elapsed_ms(start))

    def _pace(self, attempt_index: int, error: ProviderError) -> None:
        if not self._config.pace_retries:
            logger.warning(
                "Retryable provider error (%s), retrying immediately: %s",
                error.kind.value, error,
            )
            return
        delay = self._retry.delay_for(attempt_index, error)
        logger.warning(
            "Retryable provider error (%s), retrying in %.2fs: %s",
            error.kind.value, delay, error,
        )
        self._sleep(delay)

    def _record(self, attempts: list[Attempt], attempt: Attempt) -> None:
        attempts.append(attempt)
        if self._on_attempt is not None:
            try:
                self._on_attempt(attempt)
            except Exception:
                logger.debug("on_attempt callback error", exc_info=True)

    def _fail(
        self,
        assembler: ResultAssembler,
        attempts: list[Attempt],
        reason: FailureReason,
        detail: str,
        error_kind: str | None,
        session_id: str | None,
    ) -> PersuadeResult:
        self._state = PipelineState.FAILED
        return assembler.failure(
            attempts,
            reason,
            detail,
            error_kind=error_kind,
            session_id=session_id,
        )
