"""
arete.errors — Error Taxonomy
==============================

Every failure the coordinator can report carries a machine-readable
:class:`ErrorKind` so callers can branch on it without parsing messages.

The exceptions are raised inside the engine and services; the
:class:`~arete.services.coordinator.EventCoordinator` boundary converts them
into result values (``success=False, error=<kind>``).  Only programming
errors escape as plain ``ValueError``.
"""

from __future__ import annotations

import enum
from typing import Any


class ErrorKind(enum.StrEnum):
    VALIDATION = "validation"
    DUPLICATE_TOKEN = "duplicate_token"
    NOT_FOUND = "not_found"
    ALREADY_REVERSED = "already_reversed"
    NOT_REVERSIBLE = "not_reversible"
    PERSISTENCE = "persistence"


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------
class AreteError(Exception):
    """Base class for all expected coordinator failures."""

    kind: ErrorKind = ErrorKind.PERSISTENCE

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"error": str(self.kind), "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(AreteError):
    """Malformed action event: missing fields, unknown source, bad recurrence."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class DuplicateTokenError(AreteError):
    kind = ErrorKind.DUPLICATE_TOKEN

    def __init__(self, token: str):
        super().__init__(
            f"Token {token!r} is already used by another event.",
            details={"token": token},
        )
        self.token = token


class NotFoundError(AreteError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, token: str | None, message: str | None = None):
        super().__init__(
            message or f"No event logged under token {token!r}.",
            details={"token": token} if token else None,
        )
        self.token = token


class AlreadyReversedError(AreteError):
    kind = ErrorKind.ALREADY_REVERSED

    def __init__(self, token: str):
        super().__init__(
            f"Event {token!r} has already been reversed.",
            details={"token": token},
        )
        self.token = token


class NotReversibleError(AreteError):
    kind = ErrorKind.NOT_REVERSIBLE

    def __init__(self, token: str, reason: str):
        super().__init__(
            f"Event {token!r} cannot be reversed: {reason}.",
            details={"token": token},
        )
        self.token = token


class PersistenceError(AreteError):
    """The store rejected or could not complete the commit."""

    kind = ErrorKind.PERSISTENCE


__all__ = [
    "AlreadyReversedError",
    "AreteError",
    "DuplicateTokenError",
    "ErrorKind",
    "NotFoundError",
    "NotReversibleError",
    "PersistenceError",
    "ValidationError",
]
