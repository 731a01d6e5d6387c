from __future__ import annotations

"""
Domain error taxonomy. Every error carries the HTTP status it maps to and a
message that is safe to show to the caller.
"""

from typing import Optional


class FlockError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(FlockError):
    status_code = 400
    default_message = "Invalid request"


class CredentialError(FlockError):
    """Bad, expired or mismatched credential. The message never says which check failed."""

    status_code = 400
    default_message = "Invalid or expired token"


class AuthenticationError(FlockError):
    status_code = 401
    default_message = "Not authenticated"


class NotFoundError(FlockError):
    status_code = 404
    default_message = "Not found"


class ConflictError(FlockError):
    status_code = 409
    default_message = "Conflict"


class UnavailableError(FlockError):
    status_code = 503
    default_message = "Service temporarily unavailable. Please try again later."


class InternalError(FlockError):
    status_code = 500
