"""
Exceptions raised while migrating or parsing CloudWatch queries.

    QueryError
    ├── QueryMigrationError   payload could not be migrated
    └── QueryParseError       payload could not be resolved

Each error carries the ``ref_id`` of the offending query so a batch caller
can report which query failed and keep processing the rest.
"""
from __future__ import annotations

from typing import Any


class QueryError(Exception):
    """Base class for per-query failures."""

    def __init__(self, ref_id: str, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.ref_id = ref_id
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        text = f"query {self.ref_id!r}: {self.message}"
        if self.cause is not None:
            return f"{text}: {self.cause}"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "ref_id": self.ref_id,
            "message": self.message,
            "cause": str(self.cause) if self.cause else None,
        }


class QueryMigrationError(QueryError):
    """Legacy payload is not valid JSON or has an unusable legacy field."""


class QueryParseError(QueryError):
    """Current-schema payload is malformed or structurally invalid."""
