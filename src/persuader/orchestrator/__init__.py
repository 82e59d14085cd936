"""Orchestrator package -- the persuade loop and its collaborators.

Provides the Persuader class, the pipeline state enum, result assembly,
and the pluggable enhancement scoring strategy.
"""

from persuader.orchestrator.assembler import ResultAssembler
from persuader.orchestrator.config import TERMINAL_STATES, PipelineState
from persuader.orchestrator.loop import Persuader
from persuader.orchestrator.scoring import (
    ImprovementEvaluator,
    RichnessEvaluator,
    as_evaluator,
)

__all__ = [
    # Core
    "Persuader",
    # State
    "PipelineState",
    "TERMINAL_STATES",
    # Results
    "ResultAssembler",
    # Enhancement scoring
    "ImprovementEvaluator",
    "RichnessEvaluator",
    "as_evaluator",
]
