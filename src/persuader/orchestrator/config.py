"""Pipeline state machine states.

INITIALIZING -> PROMPTING -> AWAITING_PROVIDER -> VALIDATING, then one of
SUCCEEDED, RETRYING (back to PROMPTING) or FAILED. SUCCEEDED may pass
through ENHANCING before the run is FINALIZED.
"""

from __future__ import annotations

import enum


class PipelineState(str, enum.Enum):
    """States the Persuader moves through during a run."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    PROMPTING = "prompting"
    AWAITING_PROVIDER = "awaiting_provider"
    VALIDATING = "validating"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    ENHANCING = "enhancing"
    FAILED = "failed"
    FINALIZED = "finalized"


TERMINAL_STATES: frozenset[PipelineState] = frozenset({
    PipelineState.FAILED,
    PipelineState.FINALIZED,
})
