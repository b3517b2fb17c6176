"""Domain exceptions for the MDShare API.

Each exception carries the HTTP status it maps to; the handler registered in
``mdshare.main`` turns them into ``{"detail": message}`` responses.
"""


class AppError(Exception):
    """Base class for errors that are reported to the caller as-is."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailedError(AppError):
    status_code = 400


class UnauthorizedError(AppError):
    status_code = 401


class NotFoundError(AppError):
    status_code = 404


class InvalidTokenError(NotFoundError):
    """Verification/reset token unknown or already consumed."""

    status_code = 400


class ConflictError(AppError):
    status_code = 400


class TokenExpiredError(AppError):
    status_code = 400


class InvalidStateError(AppError):
    status_code = 400
