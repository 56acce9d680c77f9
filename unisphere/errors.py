"""
Unisphere client error hierarchy.

Every failure the sync layer can surface is one of these. Each carries a
``user_message`` suitable for display; the ``str()`` of the exception holds
the diagnostic detail that goes to the log.
"""

from typing import Optional


class UnisphereError(Exception):
    """Base exception for the client."""

    user_message = "Something went wrong. Please try again."

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message


class Unauthenticated(UnisphereError):
    """No session token, or the server rejected it."""

    user_message = "Please log in to continue."


class NetworkFailure(UnisphereError):
    """Transport error, server error, or a response we could not read."""

    user_message = "Network error. Please try again later."

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, user_message)
        self.status_code = status_code


class ValidationFailure(UnisphereError):
    """Input rejected, either locally or by the server (400/422)."""

    user_message = "Some fields are invalid. Please check your input."

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        field_errors: Optional[dict[str, str]] = None,
    ):
        super().__init__(message, user_message)
        self.field_errors = field_errors or {}

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationFailure":
        """Build from a ``pydantic.ValidationError``."""
        field_errors = {}
        for err in exc.errors():
            loc = ".".join(str(part) for part in err.get("loc", ())) or "__root__"
            field_errors[loc] = err.get("msg", "invalid value")
        summary = "; ".join(f"{k}: {v}" for k, v in field_errors.items())
        return cls(f"Validation failed: {summary}", field_errors=field_errors)


class Forbidden(UnisphereError):
    """The token is valid but the action is not allowed for this user (403)."""

    user_message = "You do not have permission to do that."


class NotFound(UnisphereError):
    """The targeted resource does not exist on the server."""

    user_message = "The requested item no longer exists."


class ApiError(UnisphereError):
    """Unexpected HTTP status not covered by the other classes."""

    def __init__(self, message: str, status_code: int, user_message: Optional[str] = None):
        super().__init__(message, user_message)
        self.status_code = status_code
