"""Shared test fixtures for Persuader.

Provides a scripted fake provider and sample pydantic schemas.
"""

from __future__ import annotations

import json
from typing import Literal, Optional

import pytest
from pydantic import BaseModel, Field

from persuader.models.config import PersuaderConfig
from persuader.models.result import TokenUsage
from persuader.orchestrator.loop import Persuader
from persuader.providers.protocols import (
    PromptOptions,
    ProviderHealth,
    ProviderResponse,
    SessionValidation,
)

POSITIONS = (
    "base-mount-controlling",
    "base-control-high-mount-controlling",
    "side-control",
)


class Technique(BaseModel):
    name: str = Field(description="Technique name")
    position: Literal[
        "base-mount-controlling",
        "base-control-high-mount-controlling",
        "side-control",
    ]
    difficulty: int = Field(ge=1, le=5)


class Summary(BaseModel):
    title: str
    points: list[str] = []
    notes: Optional[str] = None


VALID_TECHNIQUE = {"name": "armbar", "position": "side-control", "difficulty": 3}


# ------------------------------------------------------------------
# Fake provider
# ------------------------------------------------------------------

class FakeProvider:
    """A provider that replays a script and records every call.

    Script items: a str (returned as content), a dict/list (JSON-encoded),
    a ProviderResponse (returned as-is), or an exception (raised).
    """

    name = "fake"

    def __init__(self, script=None, *, supports_sessions: bool = True, session_ids=None):
        self.script = list(script or [])
        self.supports_sessions = supports_sessions
        self.prompts: list[tuple[str | None, str, PromptOptions]] = []
        self.created: list[tuple[str, PromptOptions]] = []
        self.destroyed: list[str] = []
        self.validated: list[str] = []
        self.closed = False
        self.validation = SessionValidation(valid=True, response_time_ms=1.0)
        self.health = ProviderHealth(healthy=True, response_time_ms=1.0)
        self._session_ids = list(session_ids) if session_ids is not None else None
        self._counter = 0

    def send_prompt(self, session_id, prompt, options):
        self.prompts.append((session_id, prompt, options))
        if not self.script:
            raise AssertionError("FakeProvider script exhausted")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, ProviderResponse):
            return item
        if not isinstance(item, str):
            item = json.dumps(item)
        return ProviderResponse(
            content=item,
            token_usage=TokenUsage(input_tokens=10, output_tokens=5),
            metadata={"cost": 0.01},
        )

    def create_session(self, context, options):
        self.created.append((context, options))
        if self._session_ids is not None:
            return self._session_ids.pop(0)
        self._counter += 1
        return f"session-{self._counter}"

    def validate_session(self, session_id):
        self.validated.append(session_id)
        return self.validation

    def destroy_session(self, session_id):
        self.destroyed.append(session_id)

    def get_health(self):
        return self.health

    def close(self):
        self.closed = True

    @property
    def sent(self) -> list[str]:
        return [prompt for _, prompt, _ in self.prompts]


def make_persuader(provider, *, sleeps: list | None = None, **config) -> Persuader:
    """Persuader with pacing disabled unless the test asks for it."""
    config.setdefault("pace_retries", False)
    sleep = sleeps.append if sleeps is not None else (lambda _delay: None)
    return Persuader(provider, PersuaderConfig(**config), sleep=sleep)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()
