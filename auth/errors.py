"""
Authentication error taxonomy.

Every error carries the HTTP status and the message that may be shown
to the client. Internal details are logged where the error is raised,
never put into `message`.
"""

from __future__ import annotations

from typing import Optional


class AuthError(Exception):
    """Base authentication error."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AuthError):
    """Client input violates the request schema."""

    status_code = 422


class ConflictError(ValidationError):
    """Email already registered (lost a race on the unique index)."""
    pass


class UnauthorizedError(AuthError):
    """Bad credentials, or a missing/invalid/expired/revoked token."""

    status_code = 401


class UnsupportedOperationError(AuthError):
    """Operation not available with the configured token driver."""

    status_code = 400


class TooManyRequestsError(AuthError):
    """Client exceeded the login attempt rate."""

    status_code = 429

    def __init__(self, message: str, retry_after: float):
        super().__init__(message)
        self.retry_after = retry_after


class ServerError(AuthError):
    """Unexpected failure; details are in the server log only."""

    status_code = 500


# Uniform client-facing messages
UNAUTHENTICATED_MESSAGE = "Unauthenticated."
INVALID_CREDENTIALS_MESSAGE = "The email or password you entered is incorrect."
