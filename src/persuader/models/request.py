"""PipelineRequest -- the per-invocation input to persuade()."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from persuader.exceptions import ConfigurationError


@dataclass(frozen=True)
class PipelineRequest:
    """Everything one persuade() run needs.

    Attributes:
        schema: Schema capability. Either an object with a
            ``validate(candidate)`` method returning a SchemaCheckResult,
            or a pydantic BaseModel subclass.
        input: Payload the model should turn into structured output.
        context: Task instructions / system context.
        lens: Optional extra perspective appended after the context.
        retries: Corrective attempts allowed after the first (>= 0).
        model: Model hint forwarded to the provider.
        session_id: Existing provider session to run inside.
        example_output: Example of a valid value, shown in the prompt.
        temperature: Sampling temperature forwarded to the provider.
        max_tokens: Maximum output size forwarded to the provider.
        enhancement: Bounded improvement rounds after a first success.
        output_language: Language the model should write text values in.
    """

    schema: Any
    input: Any
    context: str = ""
    lens: str | None = None
    retries: int = 3
    model: str | None = None
    session_id: str | None = None
    example_output: Any = None
    temperature: float | None = None
    max_tokens: int | None = None
    enhancement: int = 0
    output_language: str | None = None

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    def validate(self) -> None:
        """Check caller options. Raises ConfigurationError on the first problem."""
        if self.schema is None:
            raise ConfigurationError("A schema is required")
        if not isinstance(self.context, str):
            raise ConfigurationError(
                f"context must be a string, got {type(self.context).__name__}"
            )
        _require_count("retries", self.retries)
        _require_count("enhancement", self.enhancement)
        if self.temperature is not None and (
            isinstance(self.temperature, bool)
            or not isinstance(self.temperature, (int, float))
            or self.temperature < 0
        ):
            raise ConfigurationError(
                f"temperature must be a non-negative number, got {self.temperature!r}"
            )
        if self.max_tokens is not None and (
            isinstance(self.max_tokens, bool)
            or not isinstance(self.max_tokens, int)
            or self.max_tokens <= 0
        ):
            raise ConfigurationError(
                f"max_tokens must be a positive integer, got {self.max_tokens!r}"
            )
        if self.session_id is not None and not (
            isinstance(self.session_id, str) and self.session_id.strip()
        ):
            raise ConfigurationError("session_id must be a non-empty string")


def _require_count(name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigurationError(f"{name} must be an integer >= 0, got {value!r}")
