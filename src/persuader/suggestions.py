"""Fuzzy suggestions for mismatched enumerable values.

When a model answers with a value outside an enumeration ("side-contrl"
instead of "side-control"), the corrective prompt is far more effective
if it names the literal the model most likely meant.

Ranking key, ascending:
    1. word segments of the actual value that the candidate lacks
    2. Levenshtein distance (case-insensitive)
    3. declared position of the literal in the enumeration

Only candidates whose distance is within ``threshold_ratio`` of the
longer string's length are considered.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

_SEGMENT_SPLIT = re.compile(r"[^0-9a-z]+")


def levenshtein(a: str, b: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def _segments(text: str) -> set[str]:
    return {s for s in _SEGMENT_SPLIT.split(text) if s}


def suggest_values(
    actual: Any,
    permitted: Iterable[Any],
    *,
    limit: int = 2,
    threshold_ratio: float = 0.5,
) -> list[str]:
    """Return up to ``limit`` permitted literals closest to ``actual``.

    Args:
        actual: The offending value. Non-strings are compared by str().
        permitted: Enumeration literals in declared order.
        limit: Maximum number of suggestions.
        threshold_ratio: A candidate qualifies when its distance is at most
            this fraction of the longer string's length.

    Returns:
        Literal strings, best first. Empty when nothing is close enough.
    """
    if actual is None or limit <= 0:
        return []

    needle = str(actual).casefold()
    needle_segments = _segments(needle)

    ranked: list[tuple[int, int, int, str]] = []
    seen: set[str] = set()
    for position, literal in enumerate(permitted):
        text = str(literal)
        if text in seen:
            continue
        seen.add(text)

        candidate = text.casefold()
        distance = levenshtein(needle, candidate)
        if distance > threshold_ratio * max(len(needle), len(candidate)):
            continue
        missing = len(needle_segments - _segments(candidate))
        ranked.append((missing, distance, position, text))

    ranked.sort()
    return [text for _, _, _, text in ranked[:limit]]
