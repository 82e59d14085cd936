"""Subprocess provider adapter for the ``claude`` CLI.

Runs ``claude -p --output-format json`` with the prompt on stdin (no
shell, no argument-length limits) and parses the JSON envelope the CLI
prints. Sessions map onto the CLI's own: ``--session-id`` mints a new
conversation, ``--resume`` continues one.

The CLI reports failures only as text on stderr or in an ``is_error``
envelope, so this module is the one place where failure text is
inspected. It is turned into a tagged ProviderError (or a SessionError
for a lost conversation) right here, at the raise point; nothing
downstream looks at messages again.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
import time
import uuid
from collections.abc import Callable
from typing import Any

from persuader.exceptions import SessionError
from persuader.models.result import TokenUsage
from persuader.providers.base import BaseProvider
from persuader.providers.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderErrorKind,
    ProviderExitError,
    ProviderModelError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderResponseTooLargeError,
    ProviderTimeoutError,
)
from persuader.providers.protocols import PromptOptions, ProviderHealth, ProviderResponse

logger = logging.getLogger(__name__)

DEFAULT_BINARY = "claude"
DEFAULT_TIMEOUT = 120.0
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024

_AUTH_MARKERS = ("unauthorized", "authentication", "401", "not logged in", "invalid api key")
_RATE_LIMIT_MARKERS = ("rate limit", "429", "overloaded")
_WARNING_MARKERS = ("warning", "deprecated", "notice")


def _classify_failure(
    message: str,
    *,
    exit_code: int | None,
    transient_exit_codes: frozenset[int],
) -> ProviderError | SessionError:
    """Build the error for a failed CLI invocation.

    A resume against a conversation the CLI no longer knows is a
    SessionError; everything else is a tagged ProviderError.
    """
    lowered = message.lower()
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return ProviderAuthError(
            f"Claude CLI authentication failed (run: claude auth login): {message}",
            provider=ClaudeCLIProvider.name,
        )
    if any(marker in lowered for marker in _RATE_LIMIT_MARKERS):
        return ProviderRateLimitError(
            f"Claude API rate limit exceeded: {message}",
            provider=ClaudeCLIProvider.name,
        )
    if "session" in lowered and ("not found" in lowered or "no conversation found" in lowered):
        return SessionError(f"Claude CLI session expired or not found: {message}")
    if "model" in lowered and "not found" in lowered:
        return ProviderModelError(
            f"Invalid model: {message}", provider=ClaudeCLIProvider.name
        )
    if "timed out" in lowered or "etimedout" in lowered:
        return ProviderTimeoutError(message, provider=ClaudeCLIProvider.name)
    return ProviderExitError(
        f"Claude CLI failed with exit code {exit_code}: {message}",
        exit_code,
        transient=exit_code in transient_exit_codes,
        stderr=message,
        provider=ClaudeCLIProvider.name,
    )


class ClaudeCLIProvider(BaseProvider):
    """Provider adapter driving the Claude CLI as a subprocess.

    Usage::

        provider = ClaudeCLIProvider(timeout=90)
        session_id = provider.create_session("You extract techniques.", PromptOptions())
        response = provider.send_prompt(session_id, "...", PromptOptions())
    """

    name = "claude-cli"
    supports_sessions = True

    def __init__(
        self,
        binary: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        transient_exit_codes: frozenset[int] = frozenset({1}),
        runner: Callable[..., subprocess.CompletedProcess] | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            binary: CLI executable. Falls back to PERSUADER_CLAUDE_BINARY,
                then to "claude".
            timeout: Per-call deadline in seconds.
            max_output_bytes: Output larger than this is rejected as
                RESPONSE_TOO_LARGE.
            transient_exit_codes: Exit codes treated as retryable.
            runner: subprocess.run-compatible callable (tests inject a fake).
        """
        self.binary = binary or os.environ.get("PERSUADER_CLAUDE_BINARY", DEFAULT_BINARY)
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes
        self.transient_exit_codes = frozenset(transient_exit_codes)
        self._run = runner or subprocess.run

    # ------------------------------------------------------------------
    # Process handling
    # ------------------------------------------------------------------

    def _invoke(self, args: list[str], stdin_text: str) -> dict[str, Any]:
        """Run the CLI once and return its parsed JSON envelope."""
        command = [self.binary, *args]
        logger.debug("Running %s (stdin %d chars)", " ".join(command), len(stdin_text))
        try:
            completed = self._run(
                command,
                input=stdin_text,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise ProviderTimeoutError(
                f"Claude CLI timed out after {self.timeout}s", provider=self.name
            ) from exc
        except FileNotFoundError as exc:
            raise ProviderError(
                f"Claude CLI binary not found: {self.binary}",
                kind=ProviderErrorKind.UNKNOWN,
                provider=self.name,
            ) from exc

        stdout = completed.stdout or ""
        stderr = completed.stderr or ""
        if completed.returncode != 0:
            raise _classify_failure(
                stderr.strip() or stdout.strip()[:500] or "no error output",
                exit_code=completed.returncode,
                transient_exit_codes=self.transient_exit_codes,
            )
        if stderr:
            if any(marker in stderr.lower() for marker in _WARNING_MARKERS):
                logger.debug("Claude CLI warning output: %s", stderr.strip())
            else:
                logger.warning("Claude CLI stderr output: %s", stderr.strip())

        if len(stdout.encode("utf-8")) > self.max_output_bytes:
            raise ProviderResponseTooLargeError(
                f"Response too large (exceeds {self.max_output_bytes} bytes)",
                provider=self.name,
            )

        try:
            envelope = json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise ProviderResponseError(
                f"Claude CLI printed non-JSON output: {stdout[:200]!r}",
                provider=self.name,
            ) from exc
        if not isinstance(envelope, dict):
            raise ProviderResponseError(
                f"Unexpected Claude CLI envelope: {envelope!r}", provider=self.name
            )

        if envelope.get("is_error"):
            raise _classify_failure(
                str(envelope.get("result") or envelope.get("subtype") or "unknown error"),
                exit_code=None,
                transient_exit_codes=self.transient_exit_codes,
            )
        return envelope

    @staticmethod
    def _usage(envelope: dict[str, Any]) -> TokenUsage | None:
        usage = envelope.get("usage")
        if not isinstance(usage, dict):
            return None
        input_tokens = (
            int(usage.get("input_tokens") or 0)
            + int(usage.get("cache_creation_input_tokens") or 0)
            + int(usage.get("cache_read_input_tokens") or 0)
        )
        return TokenUsage(
            input_tokens=input_tokens,
            output_tokens=int(usage.get("output_tokens") or 0),
        )

    # ------------------------------------------------------------------
    # ProviderAdapter
    # ------------------------------------------------------------------

    def create_session(self, context: str, options: PromptOptions) -> str:
        requested_id = str(uuid.uuid4())
        args = ["-p", "--output-format", "json", "--session-id", requested_id]
        if options.model:
            args += ["--model", options.model]
        seed = context
        if options.temperature is not None:
            seed += f"\n\nPlease use a temperature of {options.temperature} for your responses."

        start = time.perf_counter()
        envelope = self._invoke(args, seed)
        session_id = envelope.get("session_id") or requested_id
        logger.info(
            "Created Claude CLI session %s in %.0fms (context %d chars, cost=%s)",
            session_id,
            (time.perf_counter() - start) * 1000,
            len(context),
            envelope.get("total_cost_usd"),
        )
        return session_id

    def send_prompt(
        self,
        session_id: str | None,
        prompt: str,
        options: PromptOptions,
    ) -> ProviderResponse:
        args = ["-p", "--output-format", "json"]
        if session_id:
            args += ["--resume", session_id]
        elif options.model:
            # the CLI only honours --model for new conversations
            args += ["--model", options.model]

        start = time.perf_counter()
        envelope = self._invoke(args, prompt)
        content = envelope.get("result")
        if not isinstance(content, str):
            content = "" if content is None else json.dumps(content)

        logger.info(
            "Claude CLI prompt completed in %.0fms (session=%s, %d chars)",
            (time.perf_counter() - start) * 1000,
            envelope.get("session_id") or session_id or "none",
            len(content),
        )
        return ProviderResponse(
            content=content,
            token_usage=self._usage(envelope),
            metadata={
                "provider": self.name,
                "session_id": envelope.get("session_id"),
                "model": options.model,
                "cost": envelope.get("total_cost_usd"),
                "num_turns": envelope.get("num_turns"),
                "duration_api_ms": envelope.get("duration_api_ms"),
            },
            stop_reason="end_turn",
        )

    def destroy_session(self, session_id: str) -> None:
        # The CLI has no delete command; sessions expire on their own.
        logger.info("Claude CLI session %s released; it will expire naturally", session_id)

    def is_available(self) -> bool:
        """Check that the binary is on PATH and answers --version."""
        if shutil.which(self.binary) is None:
            return False
        try:
            completed = self._run(
                [self.binary, "--version"],
                capture_output=True,
                text=True,
                timeout=5,
            )
        except (OSError, subprocess.SubprocessError):
            return False
        return completed.returncode == 0 and "claude" in (completed.stdout or "").lower()

    def get_health(self) -> ProviderHealth:
        start = time.perf_counter()
        if not self.is_available():
            return ProviderHealth(
                healthy=False,
                response_time_ms=(time.perf_counter() - start) * 1000,
                error="Claude CLI not found or not responding",
                details={"binary": self.binary, "timeout": self.timeout},
            )
        return super().get_health()
