"""
Domain exceptions.

Services raise these instead of HTTPException so the same code paths can be
driven from routes, background tasks and tests. The handlers registered in
antimat.main turn them into the JSON envelope.
"""

from fastapi import status


class AppError(Exception):
    """Base class for errors that carry a user-facing message."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed or missing input."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthError(AppError):
    """Missing, malformed, expired or otherwise invalid credential."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class ForbiddenError(AppError):
    """Authenticated but not allowed to do this."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class ConflictError(AppError):
    """Duplicate email, version, etc."""

    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class AlreadyMemberError(ConflictError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "You are already a member of this group"


class AlreadyForgivenError(ConflictError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Penalty is already forgiven"


class LimitExceededError(AppError):
    """Free/premium tier cap reached."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Limit reached"


class InternalError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"
