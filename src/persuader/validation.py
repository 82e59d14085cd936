"""Validation adapter: raw provider text -> decoded value -> schema check.

Decoding happens first. Text that cannot be decoded becomes a single
CUSTOM issue and the schema capability is never invoked. Decoded values
are handed to a SchemaChecker, whose ordered field failures are
normalized into ValidationIssue entries. Enum mismatches are enriched
with fuzzy suggestions.

Any pydantic BaseModel subclass can be used as a schema through
PydanticSchema; custom checkers only need a ``validate(candidate)``
method returning a SchemaCheckResult.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import pydantic
from pydantic import BaseModel

from persuader.exceptions import ConfigurationError, ParseError, SchemaValidationError
from persuader.models.result import ErrorKind, ValidationIssue
from persuader.suggestions import suggest_values

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_QUOTED_RE = re.compile(r"'([^']*)'")

_ENUM_CODES = frozenset({"literal_error", "enum"})
_RANGE_CODES = frozenset({
    "greater_than", "greater_than_equal", "less_than", "less_than_equal",
    "multiple_of", "too_short", "too_long", "string_too_short",
    "string_too_long", "finite_number",
})
_RANGE_SYMBOLS = {
    "gt": ">", "ge": ">=", "lt": "<", "le": "<=",
    "min_length": "min length", "max_length": "max length",
    "multiple_of": "multiple of",
}


# ---------------------------------------------------------------------------
# Schema capability
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldFailure:
    """One failure as reported by a schema checker.

    Attributes:
        path: Location of the failing field, as a tuple of keys/indices
            or a dotted string.
        message: Checker's description of the failure.
        expected: What the checker expected, if it says.
        actual: The offending value, if known.
        code: Machine-readable failure type (pydantic error types are
            understood: "missing", "literal_error", "int_parsing", ...).
        allowed: Permitted literals for enumerable fields, in declared order.
    """

    path: tuple[str | int, ...] | str
    message: str
    expected: str | None = None
    actual: Any = None
    code: str | None = None
    allowed: tuple[Any, ...] | None = None


@dataclass(frozen=True)
class SchemaCheckResult:
    success: bool
    value: Any = None
    errors: tuple[FieldFailure, ...] = ()

    @classmethod
    def ok(cls, value: Any) -> SchemaCheckResult:
        return cls(success=True, value=value)

    @classmethod
    def failed(cls, errors: list[FieldFailure] | tuple[FieldFailure, ...]) -> SchemaCheckResult:
        return cls(success=False, errors=tuple(errors))


@runtime_checkable
class SchemaChecker(Protocol):
    """Protocol for the external validate-and-report capability."""

    def validate(self, candidate: Any) -> SchemaCheckResult:
        """Check a decoded candidate value."""
        ...


class PydanticSchema:
    """SchemaChecker backed by a pydantic model class.

    Usage::

        checker = PydanticSchema(Technique)
        result = checker.validate({"name": "armbar", "position": "mount"})
    """

    def __init__(self, model: type[BaseModel]) -> None:
        self.model = model
        self._json_schema: dict | None = None

    @property
    def name(self) -> str:
        return self.model.__name__

    def json_schema(self) -> dict:
        if self._json_schema is None:
            self._json_schema = self.model.model_json_schema()
        return self._json_schema

    def validate(self, candidate: Any) -> SchemaCheckResult:
        try:
            value = self.model.model_validate(candidate)
        except pydantic.ValidationError as exc:
            return SchemaCheckResult.failed(
                [self._to_failure(err) for err in exc.errors()]
            )
        return SchemaCheckResult.ok(value)

    def _to_failure(self, err: dict) -> FieldFailure:
        code = err.get("type")
        loc = tuple(err.get("loc", ()))
        ctx = err.get("ctx") or {}
        allowed = None
        if code in _ENUM_CODES:
            allowed = _allowed_at(self.json_schema(), loc) or _allowed_from_ctx(ctx)
        return FieldFailure(
            path=loc,
            message=err.get("msg", ""),
            expected=_expected_from(code, err.get("msg", ""), ctx, allowed),
            actual=None if code == "missing" else err.get("input"),
            code=code,
            allowed=allowed,
        )

    def __repr__(self) -> str:
        return f"PydanticSchema({self.name})"


def as_schema_checker(schema: Any) -> SchemaChecker:
    """Coerce a request's schema handle into a SchemaChecker.

    Raises:
        ConfigurationError: If the handle is neither a pydantic model
            class nor an object with a validate() method.
    """
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return PydanticSchema(schema)
    if callable(getattr(schema, "validate", None)) and not isinstance(schema, type):
        return schema
    raise ConfigurationError(
        f"Unsupported schema {schema!r}: pass a pydantic model class or an "
        f"object with validate(candidate) -> SchemaCheckResult"
    )


def _expected_from(code: str | None, msg: str, ctx: dict, allowed: tuple | None) -> str:
    if code == "missing":
        return "required field"
    if allowed:
        return "one of " + ", ".join(repr(v) for v in allowed)
    if code in _RANGE_CODES:
        parts = [
            f"{symbol} {ctx[key]}" for key, symbol in _RANGE_SYMBOLS.items() if key in ctx
        ]
        if parts:
            return ", ".join(parts)
    if "expected" in ctx:
        return str(ctx["expected"])
    prefix = "Input should be "
    return msg[len(prefix):] if msg.startswith(prefix) else msg


def _allowed_from_ctx(ctx: dict) -> tuple | None:
    expected = ctx.get("expected")
    if not isinstance(expected, str):
        return None
    values = _QUOTED_RE.findall(expected)
    return tuple(values) or None


def _expand(node: Any, defs: dict) -> list[dict]:
    """Resolve $ref and flatten anyOf/oneOf/allOf branches of a schema node."""
    if not isinstance(node, dict):
        return []
    ref = node.get("$ref")
    if isinstance(ref, str):
        return _expand(defs.get(ref.rsplit("/", 1)[-1], {}), defs)
    branches = [node]
    for key in ("anyOf", "oneOf", "allOf"):
        for sub in node.get(key, []):
            branches.extend(_expand(sub, defs))
    return branches


def _allowed_at(schema: dict, loc: tuple) -> tuple | None:
    """Find enum/const literals for the field at ``loc`` in a JSON schema."""
    defs = schema.get("$defs", {})
    nodes = [schema]
    for part in loc:
        found: list[dict] = []
        for node in nodes:
            for branch in _expand(node, defs):
                if isinstance(part, int):
                    if isinstance(branch.get("items"), dict):
                        found.append(branch["items"])
                    prefix = branch.get("prefixItems")
                    if isinstance(prefix, list) and part < len(prefix):
                        found.append(prefix[part])
                else:
                    props = branch.get("properties", {})
                    if part in props:
                        found.append(props[part])
                    elif isinstance(branch.get("additionalProperties"), dict):
                        found.append(branch["additionalProperties"])
        if not found and isinstance(part, str):
            # union member tags (e.g. "literal['a','b']") are not schema keys
            continue
        nodes = found

    allowed: list[Any] = []
    for node in nodes:
        for branch in _expand(node, defs):
            if "enum" in branch:
                allowed.extend(branch["enum"])
            elif "const" in branch:
                allowed.append(branch["const"])
    deduped = tuple(dict.fromkeys(allowed))
    return deduped or None


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def decode_response(raw: str | None) -> Any:
    """Decode raw provider text into a JSON value.

    Accepts bare JSON, JSON inside markdown fences, or JSON embedded in
    surrounding prose (the first object/array that parses wins).

    Raises:
        ParseError: If the text is empty or contains no decodable JSON.
    """
    text = (raw or "").strip()
    if not text:
        raise ParseError("Empty response: expected JSON output", raw=raw)

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    for block in _FENCE_RE.findall(text):
        try:
            return json.loads(block.strip())
        except json.JSONDecodeError:
            continue

    decoder = json.JSONDecoder()
    for start, char in enumerate(text):
        if char not in "{[":
            continue
        try:
            value, _end = decoder.raw_decode(text, start)
            return value
        except json.JSONDecodeError:
            continue

    preview = text[:80] + ("..." if len(text) > 80 else "")
    raise ParseError(f"Response is not valid JSON: {preview!r}", raw=raw)


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of validating one raw response."""

    passed: bool
    value: Any = None
    issues: tuple[ValidationIssue, ...] = ()
    decoded: bool = True


def _format_path(path: tuple | str) -> str:
    if isinstance(path, str):
        return path
    return ".".join(str(p) for p in path)


def _kind_for(code: str | None) -> ErrorKind:
    if code is None:
        return ErrorKind.CUSTOM
    if code == "missing":
        return ErrorKind.MISSING
    if code in _ENUM_CODES:
        return ErrorKind.ENUM_MISMATCH
    if code in _RANGE_CODES:
        return ErrorKind.RANGE
    if code.endswith(("_type", "_parsing")) or code == "int_from_float":
        return ErrorKind.TYPE_MISMATCH
    return ErrorKind.CUSTOM


class ValidationAdapter:
    """Turns raw provider text into a validated value or a list of issues.

    Args:
        checker: The schema capability.
        suggestion_limit: Maximum suggestions per enum mismatch.
        threshold_ratio: Relative edit-distance cutoff for suggestions.
    """

    def __init__(
        self,
        checker: SchemaChecker,
        *,
        suggestion_limit: int = 2,
        threshold_ratio: float = 0.5,
    ) -> None:
        self.checker = checker
        self._suggestion_limit = suggestion_limit
        self._threshold_ratio = threshold_ratio

    def check(self, raw: str | None) -> Any:
        """Decode and validate, raising on failure.

        Returns:
            The value produced by the schema checker.

        Raises:
            ParseError: If the text cannot be decoded.
            SchemaValidationError: If the decoded value fails the schema.
        """
        candidate = decode_response(raw)
        result = self.checker.validate(candidate)
        if result.success:
            return result.value
        issues = [self.normalize(failure) for failure in result.errors]
        if not issues:
            issues = [ValidationIssue(
                path="",
                kind=ErrorKind.CUSTOM,
                expected="a value accepted by the schema",
                actual=candidate,
                message="Schema rejected the value without details",
            )]
        raise SchemaValidationError(issues)

    def validate(self, raw: str | None) -> ValidationOutcome:
        """Decode and validate, returning a ValidationOutcome instead of raising."""
        try:
            value = self.check(raw)
        except ParseError as exc:
            logger.debug("Parse failure: %s", exc)
            return ValidationOutcome(
                passed=False,
                decoded=False,
                issues=(ValidationIssue(
                    path="",
                    kind=ErrorKind.CUSTOM,
                    expected="a single JSON value matching the schema",
                    actual=_preview(raw),
                    message=str(exc),
                ),),
            )
        except SchemaValidationError as exc:
            logger.debug("Schema failure: %s", exc)
            return ValidationOutcome(passed=False, issues=exc.issues)
        return ValidationOutcome(passed=True, value=value)

    def normalize(self, failure: FieldFailure) -> ValidationIssue:
        """Convert a checker failure into a ValidationIssue with suggestions."""
        kind = _kind_for(failure.code)
        if failure.allowed and kind is ErrorKind.CUSTOM:
            kind = ErrorKind.ENUM_MISMATCH

        suggestions: tuple[str, ...] = ()
        if kind is ErrorKind.ENUM_MISMATCH and failure.allowed:
            suggestions = tuple(suggest_values(
                failure.actual,
                failure.allowed,
                limit=self._suggestion_limit,
                threshold_ratio=self._threshold_ratio,
            ))

        return ValidationIssue(
            path=_format_path(failure.path),
            kind=kind,
            expected=failure.expected or "",
            actual=failure.actual,
            suggestions=suggestions,
            message=failure.message,
        )


def _preview(raw: str | None, limit: int = 200) -> str:
    text = raw or ""
    return text if len(text) <= limit else text[:limit] + "..."
