"""
Kindred — Error taxonomy.

Services raise these exceptions; the handlers registered in ``app.main``
turn them into the standard ``{"success": false, "error": ..., "code": ...}``
envelope.  Anything that is not an ``AppError`` is treated as an internal
failure and never leaks its message to the client.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for every error that maps onto an HTTP response."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed or missing input."""

    status_code = 400
    code = "validation_error"
    default_message = "Invalid request"


class AuthError(AppError):
    """Bad credentials or an invalid / missing bearer token."""

    status_code = 401
    code = "auth_error"
    default_message = "Unauthorized"


class ConflictError(AppError):
    """A unique field (email, username) is already taken."""

    status_code = 400
    code = "conflict"
    default_message = "Resource already exists"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class QuotaExceededError(AppError):
    """The daily swipe or spin quota is used up."""

    status_code = 429
    code = "quota_exceeded"
    default_message = "Quota exceeded"


class InternalError(AppError):
    status_code = 500
    code = "internal_error"


class GenerationError(InternalError):
    """No free username could be generated within the attempt budget."""

    code = "username_generation_failed"
    default_message = "Could not generate a unique username"


class MatchInconsistencyError(InternalError):
    """Match creation for a pair kept conflicting and was abandoned."""

    code = "match_inconsistency"
    default_message = "Match could not be established consistently"
