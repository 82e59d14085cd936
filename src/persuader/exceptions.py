"""Persuader exception hierarchy.

All Persuader-specific exceptions inherit from PersuaderError.
Provider transport failures live in persuader.providers.errors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from persuader.models.result import ValidationIssue


class PersuaderError(Exception):
    """Base exception for all Persuader errors."""


class ParseError(PersuaderError):
    """Raised when raw provider text cannot be decoded into a value."""

    def __init__(self, message: str, raw: str | None = None) -> None:
        self.raw = raw
        super().__init__(message)


class SchemaValidationError(PersuaderError):
    """Raised when a decoded value fails schema checks.

    Named SchemaValidationError (not ValidationError) to avoid
    collision with pydantic.ValidationError.
    """

    def __init__(self, issues: list[ValidationIssue] | tuple[ValidationIssue, ...]) -> None:
        self.issues = tuple(issues)
        count = len(self.issues)
        first = f": {self.issues[0].path or '<root>'}" if self.issues else ""
        super().__init__(f"Schema validation failed with {count} issue(s){first}")


class SessionError(PersuaderError):
    """Raised when creating, validating or resuming a session fails."""


class ConfigurationError(PersuaderError):
    """Raised for invalid caller options, before any provider call."""
