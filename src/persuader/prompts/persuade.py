"""Prompts for the persuade loop: initial request and corrective feedback.

The initial prompt carries context, lens, schema guidance and the input.
Corrective prompts are deliberately small: one line per issue from the
previous attempt only, so prompt size stays flat across retries.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from persuader.models.result import ValidationIssue

OUTPUT_INSTRUCTION = (
    "Return only the JSON value. No commentary, no markdown fences."
)

CORRECTION_HEADER = "Your previous response failed validation:"

CORRECTION_INSTRUCTION = (
    "Fix every issue above and return only the corrected JSON value, "
    "with no explanation."
)

# Nested field descriptions stop at this depth to keep guidance short.
_MAX_SCHEMA_DEPTH = 3


def render_value(value: Any) -> str:
    """Render an input or example value for inclusion in a prompt."""
    if isinstance(value, str):
        return value
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json")
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def describe_schema(json_schema: dict | None) -> str | None:
    """Summarise a JSON schema as one line per field.

    Returns None when the schema has no describable properties.
    """
    if not json_schema:
        return None
    defs = json_schema.get("$defs", {})
    lines: list[str] = []
    _describe_object(json_schema, defs, "", 0, lines)
    return "\n".join(lines) or None


def _resolve(node: dict, defs: dict) -> dict:
    while isinstance(node, dict) and "$ref" in node:
        node = defs.get(node["$ref"].rsplit("/", 1)[-1], {})
    return node


def _type_label(node: dict, defs: dict) -> str:
    node = _resolve(node, defs)
    if "enum" in node:
        return "one of " + ", ".join(json.dumps(v) for v in node["enum"])
    if "const" in node:
        return f"exactly {json.dumps(node['const'])}"
    for key in ("anyOf", "oneOf"):
        if key in node:
            labels = [_type_label(sub, defs) for sub in node[key]]
            return " | ".join(dict.fromkeys(labels))
    kind = node.get("type", "any")
    if kind == "array":
        return f"array of {_type_label(node.get('items', {}), defs)}"
    if isinstance(kind, list):
        return " | ".join(kind)
    return kind


def _describe_object(node: dict, defs: dict, prefix: str, depth: int, lines: list[str]) -> None:
    node = _resolve(node, defs)
    props = node.get("properties", {})
    required = set(node.get("required", []))
    for name, sub in props.items():
        path = f"{prefix}{name}"
        resolved = _resolve(sub, defs)
        flag = "required" if name in required else "optional"
        line = f"- {path} ({_type_label(sub, defs)}, {flag})"
        description = sub.get("description") or resolved.get("description")
        if description:
            line += f": {description}"
        lines.append(line)
        if depth + 1 >= _MAX_SCHEMA_DEPTH:
            continue
        if "properties" in resolved:
            _describe_object(resolved, defs, f"{path}.", depth + 1, lines)
        elif resolved.get("type") == "array":
            items = _resolve(resolved.get("items", {}), defs)
            if "properties" in items:
                _describe_object(items, defs, f"{path}[].", depth + 1, lines)


def build_initial_prompt(
    *,
    input: Any,
    context: str = "",
    lens: str | None = None,
    schema_guidance: str | None = None,
    example_output: Any = None,
    output_language: str | None = None,
    include_context: bool = True,
) -> str:
    """Build the first prompt of a run.

    Args:
        input: Payload to transform into structured output.
        context: Task instructions. Omitted when ``include_context`` is
            False (the session already carries it).
        lens: Optional perspective to apply on top of the context.
        schema_guidance: Field descriptions derived from the schema.
        example_output: Example of a valid value.
        output_language: Language for text values in the output.
        include_context: Whether to repeat the context in this prompt.

    Returns:
        The formatted prompt string.
    """
    sections: list[str] = []
    if include_context and context.strip():
        sections.append(context.strip())
    if lens and lens.strip():
        sections.append(f"Apply this lens to the task:\n{lens.strip()}")

    requirements = ["Respond with a single JSON value that satisfies these fields:"]
    requirements.append(schema_guidance or "- (no field descriptions available)")
    sections.append("\n".join(requirements))

    if example_output is not None:
        sections.append(f"Example of valid output:\n{render_value(example_output)}")
    if output_language:
        sections.append(f"Write all text values in {output_language}.")

    sections.append(f"Input:\n{render_value(input)}")
    sections.append(OUTPUT_INSTRUCTION)
    return "\n\n".join(sections)


def _format_actual(value: Any) -> str:
    if value is None:
        return "nothing"
    text = json.dumps(value, ensure_ascii=False, default=str)
    return text if len(text) <= 80 else text[:77] + "..."


def format_issue(issue: ValidationIssue) -> str:
    """One corrective line: path, expected, actual, top suggestion."""
    path = issue.path or "<root>"
    expected = issue.expected or issue.message or "a valid value"
    line = f"- {path}: expected {expected}, got {_format_actual(issue.actual)}"
    if issue.suggestions:
        line += f". Did you mean {json.dumps(issue.suggestions[0], ensure_ascii=False)}?"
    return line


def build_corrective_prompt(issues: Sequence[ValidationIssue]) -> str:
    """Build the corrective prompt from the previous attempt's issues only."""
    lines = [CORRECTION_HEADER]
    lines.extend(format_issue(issue) for issue in issues)
    lines.append("")
    lines.append(CORRECTION_INSTRUCTION)
    return "\n".join(lines)
