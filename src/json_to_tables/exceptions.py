"""Errors raised to the caller when input or configuration is unusable."""

from __future__ import annotations

from typing import Any


class JsonParserError(ValueError):
    """Base class for fatal parser errors.

    ``context`` holds the structured details (table, column, value, ...)
    needed to reproduce the failing input.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class SchemaMismatchError(JsonParserError):
    """A value was assigned to a column missing from the table header."""


class NonScalarValueError(JsonParserError):
    """An object or array reached a row cell."""


class ParentIdError(JsonParserError):
    """The caller supplied a multi-level parent link mapping."""
