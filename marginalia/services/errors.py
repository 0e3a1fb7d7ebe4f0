"""
marginalia.services.errors — Service Error Taxonomy
====================================================

Services raise these; the API layer maps each class to an HTTP status.
Anything else escaping a service is an unexpected failure (logged, 500).
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for expected, user-presentable failures."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class NotFoundError(ServiceError):
    """The discussion, participant, story, note or user does not exist."""

    status_code = 404


class ForbiddenError(ServiceError):
    """The actor lacks the role required for the operation."""

    status_code = 403


class InvalidInputError(ServiceError):
    """Missing or malformed input."""

    status_code = 400


class CapacityExceededError(ServiceError):
    """Joining would exceed the discussion's declared maximum."""

    status_code = 400


class ConflictError(ServiceError):
    """Duplicate or out-of-order state change.

    *status* carries the existing participation status, when there is one,
    so the caller can render it.
    """

    status_code = 409

    def __init__(self, message: str, status: str | None = None) -> None:
        super().__init__(message)
        self.status = status

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.status is not None:
            body["status"] = self.status
        return body
