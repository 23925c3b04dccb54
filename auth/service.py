"""
Session service.

Handles:
- Registration (user + profile + token in one transaction)
- Login with uniform bad-credential errors
- Logout, token refresh and session check

Callers pass the resolved identity (`SessionContext`) or raw
credentials explicitly; nothing here reads a global "current user".
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Mapping

from auth import store
from auth.errors import (
    AuthError,
    ConflictError,
    INVALID_CREDENTIALS_MESSAGE,
    ServerError,
    UNAUTHENTICATED_MESSAGE,
    UnauthorizedError,
)
from auth.models import AuthResult, SessionContext, User
from auth.password import burn_verification, hash_password, verify_password
from auth.tokens import TokenIssuer
from auth.validation import EMAIL_TAKEN_MESSAGE, LOGIN_SCHEMA, REGISTER_SCHEMA, validate
from persistence.db import get_db, init_db

_logger = logging.getLogger(__name__)

REGISTER_FAILED_MESSAGE = "An error occurred while registering the account. Please try again."
SERVER_ERROR_MESSAGE = "A server error occurred. Please try again later."
REFRESH_FAILED_MESSAGE = "Failed to refresh the token. Please try again later."


class SessionService:
    """
    Orchestrates the credential store, password hasher and token issuer.

    Args:
        issuer: The deployment's token strategy
    """

    def __init__(self, issuer: TokenIssuer):
        self.issuer = issuer

    @property
    def supports_refresh(self) -> bool:
        return self.issuer.supports_refresh

    def register(self, payload: Mapping[str, Any]) -> AuthResult:
        """
        Create an account and sign it in.

        Args:
            payload: name, email, password, c_password

        Returns:
            AuthResult with the new user's public fields and token

        Raises:
            ValidationError: First failing input rule (422), nothing written
            ConflictError: Email registered concurrently (422), nothing written
            ServerError: Anything else; every write is rolled back
        """
        init_db()

        try:
            with get_db() as conn:
                data = validate(payload, REGISTER_SCHEMA, conn)

            # Hashed before the write lock is taken
            password_hash = hash_password(str(data["password"]))

            with get_db(immediate=True) as conn:
                # Another request may have taken the email since validation
                if store.email_exists(conn, str(data["email"])):
                    _logger.warning(f"Registration conflict for {data['email']!r}: taken after validation")
                    raise ConflictError(EMAIL_TAKEN_MESSAGE)

                user = store.create_user(
                    conn,
                    name=str(data["name"]).strip(),
                    email=str(data["email"]),
                    password_hash=password_hash,
                )
                store.create_profile(conn, user.id)
                token = self.issuer.issue(conn, user)
        except AuthError:
            raise
        except sqlite3.IntegrityError as e:
            if "users.email" not in str(e):
                _logger.exception("Registration failed on an integrity check; transaction rolled back")
                raise ServerError(REGISTER_FAILED_MESSAGE)
            _logger.warning(f"Registration conflict for {payload.get('email')!r}: {e}")
            raise ConflictError(EMAIL_TAKEN_MESSAGE)
        except Exception:
            _logger.exception("Registration failed; transaction rolled back")
            raise ServerError(REGISTER_FAILED_MESSAGE)

        _logger.info(f"Registered user {user.id} ({user.email})")
        return AuthResult(user=user, token=token)

    def login(self, payload: Mapping[str, Any]) -> AuthResult:
        """
        Verify email + password and mint a new token.

        Raises:
            ValidationError: Malformed input (400)
            UnauthorizedError: Unknown email or wrong password (same message)
            ServerError: Unexpected failure
        """
        data = validate(payload, LOGIN_SCHEMA, status_code=400)
        email, password = str(data["email"]), str(data["password"])

        init_db()

        try:
            with get_db() as conn:
                user = store.get_user_by_email(conn, email)

            # Password checks run outside any transaction
            if user is None:
                burn_verification(password)
                _logger.warning(f"Login attempt for non-existent user: {email}")
                raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE)

            if not verify_password(password, user.password_hash):
                _logger.warning(f"Invalid password for user: {email}")
                raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE)

            with get_db(immediate=self.issuer.writes_on_issue) as conn:
                token = self.issuer.issue(conn, user)
        except AuthError:
            raise
        except Exception:
            _logger.exception(f"Login error for {email}")
            raise ServerError(SERVER_ERROR_MESSAGE)

        _logger.info(f"User {user.id} logged in")
        return AuthResult(user=user, token=token)

    def authenticate(self, token: str) -> SessionContext:
        """
        Resolve a bearer token to the caller's session.

        Raises:
            UnauthorizedError: Token invalid, revoked or its user is gone
        """
        if not token:
            raise UnauthorizedError(UNAUTHENTICATED_MESSAGE)

        init_db()

        try:
            with get_db(immediate=self.issuer.writes_on_resolve) as conn:
                identity = self.issuer.resolve(conn, token)
                user = store.get_user_by_id(conn, identity.user_id)
        except AuthError:
            raise
        except Exception:
            _logger.exception("Token authentication failed")
            raise ServerError(SERVER_ERROR_MESSAGE)

        if user is None:
            _logger.warning(f"Token {identity.token_id} references missing user {identity.user_id}")
            raise UnauthorizedError(UNAUTHENTICATED_MESSAGE)

        return SessionContext(user=user, identity=identity)

    def logout(self, ctx: SessionContext, all_devices: bool = False) -> int:
        """
        Revoke the presented token, or every token of the user.

        Returns:
            Number of tokens revoked
        """
        init_db()

        try:
            with get_db(immediate=True) as conn:
                if all_devices:
                    revoked = self.issuer.revoke_all(conn, ctx.user.id)
                else:
                    revoked = 1 if self.issuer.revoke(conn, ctx.identity) else 0
        except AuthError:
            raise
        except Exception:
            _logger.exception(f"Logout failed for user {ctx.user.id}")
            raise ServerError(SERVER_ERROR_MESSAGE)

        _logger.info(f"User {ctx.user.id} logged out ({revoked} token(s) revoked)")
        return revoked

    def refresh(self, token: str) -> AuthResult:
        """
        Exchange a signed token for one with a fresh expiry.

        Raises:
            UnsupportedOperationError: Token driver cannot refresh
            UnauthorizedError: Invalid, expired past grace, or revoked token
            ServerError: Unexpected failure
        """
        if not token:
            raise UnauthorizedError(UNAUTHENTICATED_MESSAGE)

        init_db()

        try:
            with get_db(immediate=True) as conn:
                issued = self.issuer.refresh(conn, token)
        except AuthError:
            raise
        except Exception:
            _logger.exception("Token refresh failed")
            raise ServerError(REFRESH_FAILED_MESSAGE)

        _logger.info("Token refreshed")
        return AuthResult(user=None, token=issued)

    def session_check(self, ctx: SessionContext) -> User:
        """Return the user behind an authenticated session."""
        return ctx.user
