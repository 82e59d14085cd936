"""OpenAI-compatible HTTP provider adapter (httpx + tenacity).

Talks to any OpenAI-compatible chat completions endpoint. The HTTP API
is stateless, so sessions are emulated client-side: each session id
owns a message history that is replayed on every call. A session's
history is a single mutable cursor; do not share one session id across
concurrent calls.

Reads configuration from constructor arguments or environment variables.
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import Any

import httpx
import tenacity

from persuader.exceptions import ConfigurationError, SessionError
from persuader.models.result import TokenUsage
from persuader.providers.base import BaseProvider
from persuader.providers.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderModelError,
    ProviderNetworkError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderResponseTooLargeError,
    ProviderTimeoutError,
)
from persuader.providers.protocols import PromptOptions, ProviderResponse, SessionValidation

logger = logging.getLogger(__name__)

_NETWORK_STATUS_CODES = {500, 502, 503, 504}
_AUTH_ERROR_STATUS_CODES = {401, 403}


def _is_transport_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.retryable


class OpenAIProvider(BaseProvider):
    """Provider adapter for OpenAI-compatible chat completions.

    Retries transient failures (429, 5xx, timeouts, connection errors)
    with exponential backoff inside a single call. Authentication and
    model errors fail immediately.

    Usage::

        with OpenAIProvider(api_key="sk-...") as provider:
            persuader = Persuader(provider)
            result = persuader.persuade(request)
    """

    name = "openai"
    supports_sessions = True

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        default_model: str = "gpt-4o-mini",
        timeout: float = 120.0,
        max_retries: int = 2,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            api_key: API key. Falls back to PERSUADER_OPENAI_API_KEY env var.
            base_url: API base URL. Falls back to PERSUADER_OPENAI_BASE_URL
                env var, then to https://api.openai.com/v1.
            default_model: Model used when a call carries no model.
            timeout: Per-call deadline in seconds.
            max_retries: Attempts per call for transient transport errors.
            http_client: Pre-built httpx client (e.g. with a mock transport).

        Raises:
            ConfigurationError: If no API key is provided or found in environment.
        """
        self._api_key = api_key or os.environ.get("PERSUADER_OPENAI_API_KEY", "")
        if not self._api_key:
            raise ConfigurationError(
                "No API key provided. Pass api_key= or set PERSUADER_OPENAI_API_KEY "
                "environment variable."
            )
        self._base_url = (
            base_url
            or os.environ.get("PERSUADER_OPENAI_BASE_URL", "https://api.openai.com/v1")
        ).rstrip("/")
        self.default_model = default_model
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._client = http_client or httpx.Client(timeout=timeout)
        self._headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }
        self._retry_wait = (
            tenacity.wait_exponential(multiplier=1, min=1, max=30)
            + tenacity.wait_random(0, 2)
        )
        self._sessions: dict[str, list[dict[str, str]]] = {}
        self._session_models: dict[str, str | None] = {}

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, context: str, options: PromptOptions) -> str:
        session_id = str(uuid.uuid4())
        history: list[dict[str, str]] = []
        if context:
            history.append({"role": "system", "content": context})
        self._sessions[session_id] = history
        self._session_models[session_id] = options.model
        logger.info(
            "Created session %s (context %d chars, model=%s)",
            session_id, len(context), options.model or self.default_model,
        )
        return session_id

    def validate_session(self, session_id: str) -> SessionValidation:
        if session_id not in self._sessions:
            return SessionValidation(valid=False, error=f"Session not found: {session_id}")
        return super().validate_session(session_id)

    def destroy_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._session_models.pop(session_id, None)
        logger.info("Destroyed session %s", session_id)

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    def send_prompt(
        self,
        session_id: str | None,
        prompt: str,
        options: PromptOptions,
    ) -> ProviderResponse:
        if session_id is not None:
            if session_id not in self._sessions:
                raise SessionError(f"Session not found: {session_id}")
            history = self._sessions[session_id]
            model = options.model or self._session_models.get(session_id)
        else:
            history = []
            model = options.model

        messages = [*history, {"role": "user", "content": prompt}]
        retryer = tenacity.Retrying(
            retry=tenacity.retry_if_exception(_is_transport_retryable),
            wait=self._retry_wait,
            stop=tenacity.stop_after_attempt(self._max_retries),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        data = retryer(
            self._do_chat,
            messages,
            model=model or self.default_model,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
        )

        content = self.extract_content(data)
        if session_id is not None:
            history.append({"role": "user", "content": prompt})
            history.append({"role": "assistant", "content": content})

        usage = data.get("usage") or {}
        token_usage = None
        if usage:
            token_usage = TokenUsage(
                input_tokens=int(usage.get("prompt_tokens") or 0),
                output_tokens=int(usage.get("completion_tokens") or 0),
            )
        try:
            stop_reason = data["choices"][0].get("finish_reason")
        except (KeyError, IndexError, TypeError, AttributeError):
            stop_reason = None

        return ProviderResponse(
            content=content,
            token_usage=token_usage,
            metadata={
                "provider": self.name,
                "model": data.get("model", model or self.default_model),
                "id": data.get("id"),
                "session_id": session_id,
            },
            stop_reason=stop_reason,
        )

    def _do_chat(
        self,
        messages: list[dict[str, str]],
        *,
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict:
        """Execute a single chat completion request (no retry)."""
        payload: dict[str, Any] = {"model": model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        try:
            response = self._client.post(
                f"{self._base_url}/chat/completions",
                json=payload,
                headers=self._headers,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(
                f"Request timed out after {self._timeout}s", provider=self.name
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderNetworkError(
                f"Network error: {exc}", provider=self.name
            ) from exc

        self._raise_for_status(response, model)

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderResponseError(
                f"Response is not JSON: {response.text[:200]}", provider=self.name
            ) from exc
        if "choices" not in data:
            raise ProviderResponseError(
                f"Unexpected response format: missing 'choices' key. Response: {data}",
                provider=self.name,
            )
        return data

    def _raise_for_status(self, response: httpx.Response, model: str) -> None:
        status = response.status_code
        if status < 400:
            return
        body = response.text
        if status in _AUTH_ERROR_STATUS_CODES:
            raise ProviderAuthError(
                f"Authentication failed: HTTP {status} - {body}", provider=self.name
            )
        if status == 429:
            retry_after_raw = response.headers.get("Retry-After")
            retry_after: float | None = None
            if retry_after_raw is not None:
                try:
                    retry_after = float(retry_after_raw)
                except (ValueError, TypeError):
                    pass
            raise ProviderRateLimitError(
                f"Rate limited: HTTP 429 - {body}",
                retry_after=retry_after,
                provider=self.name,
            )
        if status == 404 or _error_code(response) == "model_not_found":
            raise ProviderModelError(
                f"Model {model!r} is not available: HTTP {status} - {body}",
                provider=self.name,
            )
        if status == 413:
            raise ProviderResponseTooLargeError(
                f"Payload too large: HTTP 413 - {body}", provider=self.name
            )
        if status in _NETWORK_STATUS_CODES:
            raise ProviderNetworkError(
                f"Server error: HTTP {status} - {body}", provider=self.name
            )
        raise ProviderResponseError(f"HTTP {status} - {body}", provider=self.name)

    @staticmethod
    def extract_content(response: dict) -> str:
        """Extract the assistant's message content from a response dict.

        Raises:
            ProviderResponseError: If the response format is unexpected.
        """
        try:
            return response["choices"][0]["message"].get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ProviderResponseError(
                f"Cannot extract content from response: {exc}. Response: {response}"
            ) from exc

    def close(self) -> None:
        """Close the underlying httpx client."""
        self._client.close()


def _error_code(response: httpx.Response) -> str | None:
    try:
        error = response.json().get("error")
    except (ValueError, AttributeError):
        return None
    if isinstance(error, dict):
        return error.get("code")
    return None
