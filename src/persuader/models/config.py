"""Configuration models for Persuader.

PersuaderConfig holds pipeline-wide defaults. Nested configs control
retry pacing (BackoffConfig), enhancement acceptance (EnhancementConfig)
and fuzzy suggestions (SuggestionConfig).

None of the numeric defaults are part of the pipeline contract; they
are starting points meant to be tuned.
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, Field

_ENV_PREFIX = "PERSUADER_"
_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


class BackoffConfig(BaseModel):
    """Exponential backoff with a cap, plus optional random jitter (seconds)."""

    initial: float = Field(default=1.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=30.0, ge=0)
    jitter: float = Field(default=0.5, ge=0)


class EnhancementConfig(BaseModel):
    # Minimum score gain over the current best before a candidate replaces it.
    min_improvement: float = Field(default=0.2, ge=0)


class SuggestionConfig(BaseModel):
    limit: int = Field(default=2, ge=0)
    threshold_ratio: float = Field(default=0.5, gt=0, le=1)


class PersuaderConfig(BaseModel):
    """Pipeline-wide defaults.

    Attributes:
        default_model: Model used when a request carries no model hint.
        reuse_sessions: When the request has no session and the provider
            supports sessions, create one per (context, model) on first use
            and reuse it for later runs with the same context and model.
        destroy_implicit_sessions: Destroy implicitly created sessions
            when the Persuader is closed.
        validate_sessions: Probe caller-supplied sessions before use.
        pace_retries: Sleep the backoff delay before retrying after a
            retryable provider error. Disable in tests.
        success_feedback: After a validated result inside a session, send
            a brief acknowledgement prompt so the session keeps the
            successful pattern. Failures are logged, never raised.
    """

    model_config = {"arbitrary_types_allowed": True}

    default_model: Optional[str] = None
    reuse_sessions: bool = True
    destroy_implicit_sessions: bool = False
    validate_sessions: bool = False
    pace_retries: bool = True
    success_feedback: bool = False
    backoff: BackoffConfig = Field(default_factory=BackoffConfig)
    enhancement: EnhancementConfig = Field(default_factory=EnhancementConfig)
    suggestions: SuggestionConfig = Field(default_factory=SuggestionConfig)

    @classmethod
    def from_env(cls, **overrides: object) -> PersuaderConfig:
        """Build a config from PERSUADER_* environment variables.

        Recognised variables: PERSUADER_MODEL, PERSUADER_REUSE_SESSIONS,
        PERSUADER_PACE_RETRIES, PERSUADER_SUCCESS_FEEDBACK,
        PERSUADER_BACKOFF_INITIAL, PERSUADER_BACKOFF_MAX,
        PERSUADER_MIN_IMPROVEMENT.
        Keyword overrides win over the environment.
        """
        env = os.environ
        values: dict[str, object] = {}
        model = env.get(f"{_ENV_PREFIX}MODEL")
        if model:
            values["default_model"] = model
        for key, field_name in (
            ("REUSE_SESSIONS", "reuse_sessions"),
            ("PACE_RETRIES", "pace_retries"),
            ("SUCCESS_FEEDBACK", "success_feedback"),
        ):
            raw = env.get(f"{_ENV_PREFIX}{key}")
            if raw is not None:
                values[field_name] = raw.strip().lower() in _TRUE_VALUES

        backoff: dict[str, object] = {}
        for key, field_name in (
            ("BACKOFF_INITIAL", "initial"),
            ("BACKOFF_MAX", "max_delay"),
        ):
            raw = env.get(f"{_ENV_PREFIX}{key}")
            if raw:
                backoff[field_name] = raw
        if backoff:
            values["backoff"] = BackoffConfig(**backoff)
        raw = env.get(f"{_ENV_PREFIX}MIN_IMPROVEMENT")
        if raw:
            values["enhancement"] = EnhancementConfig(min_improvement=raw)

        values.update(overrides)
        return cls(**values)
