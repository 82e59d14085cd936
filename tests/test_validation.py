"""Tests for response decoding and the validation adapter.

Tests cover:
- decode_response: bare JSON, fenced JSON, JSON in prose, failures
- PydanticSchema: error code mapping, enum literals, nested paths
- ValidationAdapter: issue normalization, suggestions, parse failures
- as_schema_checker: accepted and rejected schema handles
"""

from __future__ import annotations

from typing import Literal

import pytest
from pydantic import BaseModel

from persuader.exceptions import ConfigurationError, ParseError, SchemaValidationError
from persuader.models.result import ErrorKind
from persuader.validation import (
    FieldFailure,
    PydanticSchema,
    SchemaCheckResult,
    ValidationAdapter,
    as_schema_checker,
    decode_response,
)
from tests.conftest import VALID_TECHNIQUE, Technique


class Roster(BaseModel):
    class Entry(BaseModel):
        name: str
        belt: Literal["white", "blue", "purple", "brown", "black"]

    entries: list[Entry]


class EvenChecker:
    """Custom schema checker: accepts even integers only."""

    def validate(self, candidate):
        if isinstance(candidate, int) and candidate % 2 == 0:
            return SchemaCheckResult.ok(candidate)
        return SchemaCheckResult.failed([
            FieldFailure(path="", message="must be even", expected="an even integer",
                         actual=candidate, code="even"),
        ])


def _adapter(schema=Technique) -> ValidationAdapter:
    return ValidationAdapter(as_schema_checker(schema))


# ---------------------------------------------------------------------------
# decode_response
# ---------------------------------------------------------------------------

class TestDecodeResponse:
    def test_bare_json(self):
        assert decode_response('{"a": 1}') == {"a": 1}

    def test_fenced_json(self):
        raw = 'Here you go:\n```json\n{"a": [1, 2]}\n```\nThanks'
        assert decode_response(raw) == {"a": [1, 2]}

    def test_json_embedded_in_prose(self):
        assert decode_response('The answer is {"a": true} as requested.') == {"a": True}

    def test_array_in_prose(self):
        assert decode_response("Result: [1, 2, 3]") == [1, 2, 3]

    def test_braces_in_prose_before_json(self):
        raw = 'Use the {name} slot. Here it is: {"name": "armbar"}'
        assert decode_response(raw) == {"name": "armbar"}

    def test_brackets_in_prose_before_json(self):
        raw = 'See [the notes] and [draft]: [{"name": "armbar"}]'
        assert decode_response(raw) == [{"name": "armbar"}]

    def test_empty_raises(self):
        with pytest.raises(ParseError, match="Empty response"):
            decode_response("   ")

    def test_none_raises(self):
        with pytest.raises(ParseError):
            decode_response(None)

    def test_prose_only_raises(self):
        with pytest.raises(ParseError, match="not valid JSON") as exc_info:
            decode_response("I cannot help with that.")
        assert exc_info.value.raw == "I cannot help with that."


# ---------------------------------------------------------------------------
# PydanticSchema
# ---------------------------------------------------------------------------

class TestPydanticSchema:
    def test_valid_candidate(self):
        result = PydanticSchema(Technique).validate(VALID_TECHNIQUE)
        assert result.success
        assert isinstance(result.value, Technique)
        assert result.errors == ()

    def test_literal_failure_carries_allowed_values(self):
        bad = {**VALID_TECHNIQUE, "position": "mount"}
        result = PydanticSchema(Technique).validate(bad)
        assert not result.success
        (failure,) = result.errors
        assert failure.path == ("position",)
        assert failure.code == "literal_error"
        assert failure.actual == "mount"
        assert failure.allowed == (
            "base-mount-controlling",
            "base-control-high-mount-controlling",
            "side-control",
        )

    def test_missing_field_has_no_actual(self):
        result = PydanticSchema(Technique).validate({"name": "armbar", "position": "side-control"})
        (failure,) = result.errors
        assert failure.code == "missing"
        assert failure.actual is None
        assert failure.expected == "required field"

    def test_nested_literal_path(self):
        result = PydanticSchema(Roster).validate(
            {"entries": [{"name": "a", "belt": "white"}, {"name": "b", "belt": "grey"}]}
        )
        (failure,) = result.errors
        assert failure.path == ("entries", 1, "belt")
        assert failure.allowed == ("white", "blue", "purple", "brown", "black")

    def test_name_and_json_schema(self):
        checker = PydanticSchema(Technique)
        assert checker.name == "Technique"
        assert "position" in checker.json_schema()["properties"]


# ---------------------------------------------------------------------------
# ValidationAdapter
# ---------------------------------------------------------------------------

class TestValidationAdapter:
    def test_pass(self):
        outcome = _adapter().validate('{"name": "armbar", "position": "side-control", "difficulty": 2}')
        assert outcome.passed
        assert outcome.value.difficulty == 2
        assert outcome.issues == ()

    def test_enum_mismatch_gets_suggestions(self):
        raw = '{"name": "x", "position": "base-mount-high-controlling", "difficulty": 2}'
        outcome = _adapter().validate(raw)
        assert not outcome.passed
        (issue,) = outcome.issues
        assert issue.kind is ErrorKind.ENUM_MISMATCH
        assert issue.path == "position"
        assert issue.suggestions == (
            "base-control-high-mount-controlling",
            "base-mount-controlling",
        )

    def test_range_issue(self):
        outcome = _adapter().validate('{"name": "x", "position": "side-control", "difficulty": 9}')
        (issue,) = outcome.issues
        assert issue.kind is ErrorKind.RANGE
        assert issue.expected == "<= 5"
        assert issue.actual == 9
        assert issue.suggestions == ()

    def test_type_mismatch(self):
        outcome = _adapter().validate('{"name": "x", "position": "side-control", "difficulty": "hard"}')
        (issue,) = outcome.issues
        assert issue.kind is ErrorKind.TYPE_MISMATCH

    def test_missing(self):
        outcome = _adapter().validate('{"position": "side-control", "difficulty": 1}')
        (issue,) = outcome.issues
        assert issue.kind is ErrorKind.MISSING
        assert issue.path == "name"

    def test_issue_order_follows_checker(self):
        outcome = _adapter().validate('{"position": "nowhere", "difficulty": 0}')
        assert [i.path for i in outcome.issues] == ["name", "position", "difficulty"]

    def test_undecodable_is_single_custom_issue(self):
        outcome = _adapter().validate("sorry, no JSON today")
        assert not outcome.passed
        assert not outcome.decoded
        (issue,) = outcome.issues
        assert issue.kind is ErrorKind.CUSTOM
        assert issue.path == ""

    def test_undecodable_never_reaches_checker(self):
        class Exploding:
            def validate(self, candidate):
                raise AssertionError("checker must not run")

        outcome = ValidationAdapter(Exploding()).validate("")
        assert not outcome.decoded

    def test_check_raises_schema_error(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            _adapter().check('{"name": "x"}')
        assert len(exc_info.value.issues) == 2

    def test_check_raises_parse_error(self):
        with pytest.raises(ParseError):
            _adapter().check("nope")

    def test_custom_checker(self):
        adapter = _adapter(EvenChecker())
        assert adapter.validate("4").passed
        outcome = adapter.validate("3")
        (issue,) = outcome.issues
        assert issue.kind is ErrorKind.CUSTOM
        assert issue.expected == "an even integer"
        assert issue.message == "must be even"

    def test_suggestion_limit_respected(self):
        adapter = ValidationAdapter(as_schema_checker(Technique), suggestion_limit=1)
        raw = '{"name": "x", "position": "base-mount-high-controlling", "difficulty": 2}'
        (issue,) = adapter.validate(raw).issues
        assert issue.suggestions == ("base-control-high-mount-controlling",)


# ---------------------------------------------------------------------------
# as_schema_checker
# ---------------------------------------------------------------------------

class TestAsSchemaChecker:
    def test_pydantic_model_wrapped(self):
        assert isinstance(as_schema_checker(Technique), PydanticSchema)

    def test_checker_object_passed_through(self):
        checker = EvenChecker()
        assert as_schema_checker(checker) is checker

    @pytest.mark.parametrize("bad", [dict, "Technique", 42, EvenChecker])
    def test_unsupported_handles(self, bad):
        with pytest.raises(ConfigurationError):
            as_schema_checker(bad)
