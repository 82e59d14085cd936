"""Enhancement prompts for bounded improvement rounds.

An enhancement round asks the model to enrich an already-valid value.
The current best value is included so the model improves rather than
regenerates, and the schema constraints are restated as a hard rule.
"""

from __future__ import annotations

from typing import Any

from persuader.prompts.persuade import OUTPUT_INSTRUCTION, render_value

ENHANCE_INSTRUCTION = """Your previous answer was valid. Improve it:
- add detail and completeness where the input supports it
- keep every field valid against the same schema
- never remove correct information"""


def build_enhancement_prompt(current: Any, round_number: int, total_rounds: int) -> str:
    """Build the prompt for one enhancement round.

    Args:
        current: The best valid value so far.
        round_number: 1-based round index.
        total_rounds: Total rounds configured for this run.

    Returns:
        The formatted enhancement prompt string.
    """
    return (
        f"Enhancement round {round_number} of {total_rounds}.\n\n"
        f"{ENHANCE_INSTRUCTION}\n\n"
        f"Current answer:\n{render_value(current)}\n\n"
        f"{OUTPUT_INSTRUCTION}"
    )
