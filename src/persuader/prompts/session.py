"""Prompts for session probes, preloading and success feedback."""

from __future__ import annotations

from typing import Any

from persuader.prompts.persuade import render_value

SESSION_PROBE_PROMPT = 'Respond with just "OK" to confirm session is working.'

HEALTH_PROBE_PROMPT = 'Say "OK"'

PRELOAD_INSTRUCTION = (
    "Keep the following data in context for upcoming requests. "
    "Do not produce structured output yet; reply with a brief acknowledgement."
)

SUCCESS_FEEDBACK_PROMPT = (
    "That output passed validation. Keep using the same structure and "
    "approach for similar requests. Acknowledge briefly."
)


def build_preload_prompt(input: Any, context_note: str | None = None) -> str:
    """Build the prompt that loads data into a session without validation."""
    parts = [PRELOAD_INSTRUCTION]
    if context_note:
        parts.append(context_note.strip())
    parts.append(f"Data:\n{render_value(input)}")
    return "\n\n".join(parts)
