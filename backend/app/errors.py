"""
backend/app/errors.py

Purpose:
    Domain error taxonomy shared by services and routers. Every error carries
    the HTTP status it maps to; app.main renders them as ``{"error": message}``.
"""

from fastapi import status


class ApiError(Exception):
    """Base class for errors that are safe to surface to the caller."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "An internal error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(ApiError):
    """Missing/invalid credential or missing user profile."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class Forbidden(ApiError):
    """Role gate or ownership check failed."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden: Insufficient permissions"


class NotFound(ApiError):
    """Row absent or outside the caller's scope (the two are not distinguished)."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ValidationError(ApiError):
    """Malformed input or a violated business invariant."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input."


class InternalError(ApiError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
