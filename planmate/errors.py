"""Domain errors raised by the planmate core.

Every error carries the HTTP status the API layer answers with and a short
``error`` code used in the JSON body.
"""

from __future__ import annotations


class PlanmateError(Exception):
    status_code = 500
    error = "Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def as_dict(self) -> dict[str, str]:
        return {"error": self.error, "message": self.message}


class ValidationFailed(PlanmateError):
    """Raised when input is malformed or a required field is missing."""

    status_code = 400
    error = "ValidationError"


class NotFound(PlanmateError):
    """Raised when a referenced entity is missing or lives under another parent."""

    status_code = 404
    error = "NotFound"


class Forbidden(PlanmateError):
    """Raised when the actor's role does not allow the operation."""

    status_code = 403
    error = "Forbidden"


class InvalidState(PlanmateError):
    """Raised when the target exists but cannot make the requested transition."""

    status_code = 400
    error = "InvalidState"


class InvariantViolation(PlanmateError):
    """Raised when a domain rule would be broken."""

    status_code = 400
    error = "InvariantViolation"
