"""
Business-outcome exceptions raised by the booking engine.

The HTTP layer maps each one to a status code; anything else raised by a
store (connection loss, driver errors) is an infrastructure failure and
propagates untouched.
"""
from typing import Any, Optional


class BookingError(Exception):
    """Base class for terminal, non-retryable booking outcomes."""

    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code, "details": self.details}


class InvalidInput(BookingError):
    """Malformed or missing input: bad dates, reversed range, non-positive rates."""

    status_code = 400


class NotFound(BookingError):
    """Equipment or booking does not exist."""

    status_code = 404


class Conflict(BookingError):
    """Requested dates overlap an active booking, or a state change is not allowed."""

    status_code = 409
