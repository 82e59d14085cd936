"""Retry controller for the persuade loop.

Provides RetryPolicy -- failure classification (retryable vs fatal) and
a paced backoff delay. Classification is a lookup on the typed
ProviderErrorKind tag that adapters attach when they raise; message
text is never inspected here.

Validation failures (ParseError, SchemaValidationError) are always
retryable within budget: they become corrective prompts. Fatal provider
errors, session errors and configuration errors abort the loop no
matter how much budget remains.

The backoff delay is a pacing contract only. The orchestrator decides
whether to actually sleep (see PersuaderConfig.pace_retries).
"""

from __future__ import annotations

import tenacity

from persuader.exceptions import ParseError, SchemaValidationError
from persuader.models.config import BackoffConfig
from persuader.providers.errors import ProviderError, ProviderRateLimitError


class RetryPolicy:
    """Decides whether another attempt is permitted and how long to wait.

    Usage::

        policy = RetryPolicy(BackoffConfig(initial=0.5, max_delay=8))
        if policy.should_retry(attempt_index, max_attempts, error):
            time.sleep(policy.delay_for(attempt_index, error))
    """

    def __init__(self, backoff: BackoffConfig | None = None) -> None:
        self.backoff = backoff or BackoffConfig()
        wait = tenacity.wait_exponential(
            multiplier=self.backoff.initial,
            exp_base=self.backoff.multiplier,
            min=0,
            max=self.backoff.max_delay,
        )
        if self.backoff.jitter > 0:
            wait = wait + tenacity.wait_random(0, self.backoff.jitter)
        self._wait = wait

    @staticmethod
    def is_retryable(error: BaseException) -> bool:
        """Classify a failure.

        Retryable: parse/schema failures, and provider errors tagged
        TIMEOUT, RATE_LIMIT, NETWORK or TRANSIENT_EXIT.
        Fatal: everything else (AUTH, INVALID_MODEL, RESPONSE_TOO_LARGE,
        UNKNOWN provider errors, session and configuration errors, and
        exceptions the pipeline does not recognise).
        """
        if isinstance(error, (ParseError, SchemaValidationError)):
            return True
        if isinstance(error, ProviderError):
            return error.retryable
        return False

    def should_retry(
        self,
        attempt_index: int,
        max_attempts: int,
        error: BaseException,
    ) -> bool:
        """Return True when another attempt is allowed after ``attempt_index``.

        Args:
            attempt_index: 0-based index of the attempt that just failed.
            max_attempts: Total attempts allowed (retries + 1).
            error: The failure of that attempt.
        """
        if attempt_index + 1 >= max_attempts:
            return False
        return self.is_retryable(error)

    def backoff_delay(self, attempt_index: int) -> float:
        """Delay in seconds before the attempt following ``attempt_index``.

        Exponential in the attempt index, capped at ``max_delay``, plus
        up to ``jitter`` seconds of random spread.
        """
        state = tenacity.RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
        state.attempt_number = max(attempt_index, 0) + 1
        return float(self._wait(state))

    def delay_for(self, attempt_index: int, error: BaseException | None = None) -> float:
        """Backoff delay, stretched to honour a provider's Retry-After hint."""
        delay = self.backoff_delay(attempt_index)
        if isinstance(error, ProviderRateLimitError) and error.retry_after is not None:
            delay = max(delay, error.retry_after)
        return delay
