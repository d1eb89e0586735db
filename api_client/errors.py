"""
Errors raised by the API client. Transport failures are left as httpx exceptions.
"""
from typing import Any

SESSION_EXPIRED_MESSAGE = "Session expired. Please login again."


class ApiError(Exception):
    """Backend answered with a non-2xx status (or the client could not use the answer)."""

    def __init__(self, message: str, *, status_code: int | None = None, payload: Any = None):
        self.message = message
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


class SessionExpiredError(ApiError):
    """Refresh token missing or rejected; tokens were cleared and the user must log in again."""

    def __init__(self, message: str = SESSION_EXPIRED_MESSAGE, **kwargs: Any):
        kwargs.setdefault("status_code", 401)
        super().__init__(message, **kwargs)


class TokenRejectedError(ApiError):
    """Request was replayed with a fresh token and the backend still reported it expired."""


class MalformedResponseError(ApiError):
    """Response body was not valid JSON."""


class AuthError(Exception):
    """Login, registration or profile update failed."""
