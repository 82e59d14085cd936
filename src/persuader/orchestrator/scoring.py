"""Improvement scoring for enhancement rounds.

The orchestrator never decides on its own whether an enhanced value is
"better". It asks an ImprovementEvaluator for ``evaluate(baseline,
candidate)``, a score of the candidate relative to the baseline where
``evaluate(x, x)`` is the neutral score. Swap the evaluator to plug in
domain-specific quality measures.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ImprovementEvaluator(Protocol):
    def evaluate(self, baseline: Any, candidate: Any) -> float:
        """Score ``candidate`` relative to ``baseline`` (higher is better)."""
        ...


@dataclass(frozen=True)
class _Measure:
    leaves: int
    chars: int


def _plain(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


def _measure(value: Any) -> _Measure:
    if isinstance(value, dict):
        parts = [_measure(v) for v in value.values()]
    elif isinstance(value, (list, tuple)):
        parts = [_measure(v) for v in value]
    elif value is None or value == "":
        return _Measure(0, 0)
    else:
        return _Measure(1, len(str(value)))
    return _Measure(sum(p.leaves for p in parts), sum(p.chars for p in parts))


class RichnessEvaluator:
    """Default evaluator: relative growth in populated values and text volume.

    score = leaf_weight * (leaf growth ratio) + text_weight * (text growth ratio)

    Identical values score 0.0; a candidate with twice as many populated
    leaves and twice the text scores 1.0 with the default weights.
    """

    def __init__(self, leaf_weight: float = 0.5, text_weight: float = 0.5) -> None:
        self.leaf_weight = leaf_weight
        self.text_weight = text_weight

    def evaluate(self, baseline: Any, candidate: Any) -> float:
        base = _measure(_plain(baseline))
        cand = _measure(_plain(candidate))
        leaf_gain = (cand.leaves - base.leaves) / max(base.leaves, 1)
        text_gain = (cand.chars - base.chars) / max(base.chars, 1)
        return self.leaf_weight * leaf_gain + self.text_weight * text_gain


class _CallableEvaluator:
    def __init__(self, fn: Callable[[Any, Any], float]) -> None:
        self._fn = fn

    def evaluate(self, baseline: Any, candidate: Any) -> float:
        return float(self._fn(baseline, candidate))


def as_evaluator(obj: ImprovementEvaluator | Callable[[Any, Any], float] | None) -> ImprovementEvaluator:
    """Accept an evaluator object, a plain ``fn(baseline, candidate)``, or None."""
    if obj is None:
        return RichnessEvaluator()
    if callable(getattr(obj, "evaluate", None)):
        return obj
    if callable(obj):
        return _CallableEvaluator(obj)
    raise TypeError(f"Not an improvement evaluator: {obj!r}")
