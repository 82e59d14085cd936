"""Provider adapters for Persuader.

Provides the ProviderAdapter protocol, the tagged provider error
hierarchy, and two concrete adapters: a subprocess adapter for the
Claude CLI and an httpx adapter for OpenAI-compatible APIs.
"""

from persuader.providers.base import BaseProvider
from persuader.providers.claude_cli import ClaudeCLIProvider
from persuader.providers.errors import (
    RETRYABLE_KINDS,
    ProviderAuthError,
    ProviderError,
    ProviderErrorKind,
    ProviderExitError,
    ProviderModelError,
    ProviderNetworkError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderResponseTooLargeError,
    ProviderTimeoutError,
)
from persuader.providers.openai import OpenAIProvider
from persuader.providers.protocols import (
    PromptOptions,
    ProviderAdapter,
    ProviderHealth,
    ProviderResponse,
    SessionValidation,
)

__all__ = [
    "BaseProvider",
    "ClaudeCLIProvider",
    "OpenAIProvider",
    "ProviderAdapter",
    "PromptOptions",
    "ProviderResponse",
    "ProviderHealth",
    "SessionValidation",
    "ProviderErrorKind",
    "RETRYABLE_KINDS",
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderRateLimitError",
    "ProviderNetworkError",
    "ProviderExitError",
    "ProviderAuthError",
    "ProviderModelError",
    "ProviderResponseTooLargeError",
    "ProviderResponseError",
]
