"""Domain error taxonomy.

Services raise these; the HTTP layer maps them to responses. Anything that
is not an ``AppError`` is treated as a programming error.
"""

from typing import Optional


class AppError(Exception):
    """An expected, operational failure with an HTTP-equivalent status."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class ValidationError(AppError):
    status_code = 400


class AuthenticationError(AppError):
    status_code = 401


class PermissionDenied(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class UpstreamError(AppError):
    """A third-party catalog failed; carries the provider's status when known."""

    def __init__(self, message: str, status_code: Optional[int] = None, provider: str = ""):
        super().__init__(message, status_code or 500)
        self.provider = provider
