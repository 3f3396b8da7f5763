"""Errors raised by the Xano connection layer."""
from typing import Optional


class XanoAPIError(Exception):
    """A non-2xx response (or unusable body) from the Xano API."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class XanoUnauthorizedError(XanoAPIError):
    """Token missing, expired or rejected (401/419/440 or ERROR_CODE_UNAUTHORIZED)."""

    # Where the dashboard sends the user after the token is dropped
    REDIRECT_TO = "/login?error=unauthorized"
