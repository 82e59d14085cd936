"""Provider error hierarchy.

Every provider failure carries a ProviderErrorKind tag, attached by the
adapter at the point it raises. Retry classification is a lookup on that
tag (see persuader.retry), never a search through message text.
"""

from __future__ import annotations

import enum

from persuader.exceptions import PersuaderError


class ProviderErrorKind(str, enum.Enum):
    """Classification tag for provider failures."""

    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    TRANSIENT_EXIT = "transient_exit"
    AUTH = "auth"
    INVALID_MODEL = "invalid_model"
    RESPONSE_TOO_LARGE = "response_too_large"
    UNKNOWN = "unknown"


RETRYABLE_KINDS: frozenset[ProviderErrorKind] = frozenset({
    ProviderErrorKind.TIMEOUT,
    ProviderErrorKind.RATE_LIMIT,
    ProviderErrorKind.NETWORK,
    ProviderErrorKind.TRANSIENT_EXIT,
})


class ProviderError(PersuaderError):
    """Base for all provider adapter failures.

    Attributes:
        kind: Classification tag used by the retry controller.
        provider: Name of the adapter that raised the error, if known.
    """

    default_kind: ProviderErrorKind = ProviderErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        kind: ProviderErrorKind | None = None,
        provider: str | None = None,
    ) -> None:
        self.kind = kind or self.default_kind
        self.provider = provider
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class ProviderTimeoutError(ProviderError):
    """The provider call exceeded its per-call deadline."""

    default_kind = ProviderErrorKind.TIMEOUT


class ProviderRateLimitError(ProviderError):
    """Rate limited by the provider (429).

    Attributes:
        retry_after: Seconds to wait before retrying (from Retry-After header),
            or None if not provided.
    """

    default_kind = ProviderErrorKind.RATE_LIMIT

    def __init__(
        self,
        message: str = "Rate limited",
        retry_after: float | None = None,
        *,
        provider: str | None = None,
    ) -> None:
        self.retry_after = retry_after
        if retry_after is not None:
            message = f"{message} (retry after {retry_after}s)"
        super().__init__(message, provider=provider)


class ProviderNetworkError(ProviderError):
    """Transient network fault (connection refused, reset, 5xx gateway)."""

    default_kind = ProviderErrorKind.NETWORK


class ProviderExitError(ProviderError):
    """A provider subprocess exited with a non-zero status.

    Exit codes the adapter recognises as transient are tagged
    TRANSIENT_EXIT; anything else is UNKNOWN and therefore fatal.
    """

    def __init__(
        self,
        message: str,
        exit_code: int | None,
        *,
        transient: bool = False,
        stderr: str = "",
        provider: str | None = None,
    ) -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        kind = ProviderErrorKind.TRANSIENT_EXIT if transient else ProviderErrorKind.UNKNOWN
        super().__init__(message, kind=kind, provider=provider)


class ProviderAuthError(ProviderError):
    """Authentication failed (401/403, or CLI not logged in)."""

    default_kind = ProviderErrorKind.AUTH


class ProviderModelError(ProviderError):
    """The requested model is unsupported or does not exist."""

    default_kind = ProviderErrorKind.INVALID_MODEL


class ProviderResponseTooLargeError(ProviderError):
    """The provider's output exceeded the adapter's buffer limit."""

    default_kind = ProviderErrorKind.RESPONSE_TOO_LARGE


class ProviderResponseError(ProviderError):
    """Unexpected response format from the provider."""
