"""
Session token issuers.

Two interchangeable strategies, one active per deployment:

- OpaqueTokenIssuer: random tokens whose SHA-256 is stored server side.
  No expiry; revoked by deleting the row.
- JWTTokenIssuer: signed, self-contained tokens with expiry and refresh.
  Revocation goes through a `jti` blocklist; with the blocklist disabled
  a signed token stays valid until it expires, whatever the client does.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import secrets
import sqlite3
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict

from jose import JWTError, jwt

from auth import store
from auth.errors import UNAUTHENTICATED_MESSAGE, UnauthorizedError, UnsupportedOperationError
from auth.models import IssuedToken, TokenIdentity, User

_logger = logging.getLogger(__name__)

DRIVER_OPAQUE = "opaque"
DRIVER_JWT = "jwt"
DRIVERS = (DRIVER_OPAQUE, DRIVER_JWT)


class TokenIssuer(ABC):
    """Mints, verifies and revokes bearer tokens."""

    driver: str = ""
    supports_refresh: bool = False
    # Whether issue/resolve write rows (and so need the write lock)
    writes_on_issue: bool = True
    writes_on_resolve: bool = True

    @abstractmethod
    def issue(self, conn: sqlite3.Connection, user: User) -> IssuedToken:
        """Mint a new token for `user`."""

    @abstractmethod
    def resolve(self, conn: sqlite3.Connection, token: str) -> TokenIdentity:
        """
        Verify a presented token.

        Raises:
            UnauthorizedError: If the token is malformed, unknown, expired or revoked
        """

    @abstractmethod
    def revoke(self, conn: sqlite3.Connection, identity: TokenIdentity) -> bool:
        """Revoke the token behind `identity`. Returns False if nothing changed."""

    def revoke_all(self, conn: sqlite3.Connection, user_id: int) -> int:
        raise UnsupportedOperationError(
            "Signing out of all devices is not supported by this token driver."
        )

    def refresh(self, conn: sqlite3.Connection, token: str) -> IssuedToken:
        raise UnsupportedOperationError("Token refresh is not supported by this token driver.")


# =============================================================================
# Opaque tokens
# =============================================================================

# "<row id>|<secret>"; ids longer than 18 digits cannot be SQLite integers
_OPAQUE_TOKEN_PATTERN = re.compile(r"^([0-9]{1,18})\|([A-Za-z0-9_\-]+)$")


def _sha256(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


class OpaqueTokenIssuer(TokenIssuer):
    """Server-tracked random tokens (personal access tokens)."""

    driver = DRIVER_OPAQUE

    def __init__(self, token_name: str = "auth_token", secret_bytes: int = 30):
        self.token_name = token_name
        self.secret_bytes = secret_bytes

    def issue(self, conn: sqlite3.Connection, user: User) -> IssuedToken:
        secret = secrets.token_urlsafe(self.secret_bytes)
        record = store.create_access_token(conn, user.id, _sha256(secret), name=self.token_name)
        _logger.debug(f"Opaque token {record.id} issued for user {user.id}")
        return IssuedToken(token=f"{record.id}|{secret}")

    def resolve(self, conn: sqlite3.Connection, token: str) -> TokenIdentity:
        match = _OPAQUE_TOKEN_PATTERN.match(token or "")
        if not match:
            raise UnauthorizedError(UNAUTHENTICATED_MESSAGE)

        token_id, secret = int(match.group(1)), match.group(2)
        record = store.get_access_token(conn, token_id)
        if record is None:
            _logger.info(f"Unknown or revoked opaque token id={token_id}")
            raise UnauthorizedError(UNAUTHENTICATED_MESSAGE)

        if not hmac.compare_digest(record.token_hash, _sha256(secret)):
            _logger.warning(f"Opaque token secret mismatch for id={token_id}")
            raise UnauthorizedError(UNAUTHENTICATED_MESSAGE)

        store.touch_access_token(conn, record.id)
        return TokenIdentity(user_id=record.user_id, token_id=str(record.id))

    def revoke(self, conn: sqlite3.Connection, identity: TokenIdentity) -> bool:
        return store.delete_access_token(conn, int(identity.token_id))

    def revoke_all(self, conn: sqlite3.Connection, user_id: int) -> int:
        return store.delete_user_tokens(conn, user_id)


# =============================================================================
# Signed tokens
# =============================================================================

# Claims carried over unchanged when a token is refreshed
_IDENTITY_CLAIMS = ("sub", "uuid", "role")
_REQUIRED_CLAIMS = ("sub", "jti", "iat", "exp")


class JWTTokenIssuer(TokenIssuer):
    """
    Stateless signed tokens.

    Attributes:
        ttl_seconds: Lifetime of each token
        refresh_grace_seconds: How long after expiry a token may still be refreshed
        blocklist_enabled: Whether logout/refresh record revoked `jti`s
    """

    driver = DRIVER_JWT
    supports_refresh = True
    writes_on_issue = False
    writes_on_resolve = False

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        ttl_minutes: int = 60,
        refresh_grace_seconds: int = 0,
        blocklist_enabled: bool = True,
        issuer: str = "auth-api",
        clock: Callable[[], float] = time.time,
    ):
        if not secret_key:
            raise ValueError("JWT secret key must not be empty")

        self.secret_key = secret_key
        self.algorithm = algorithm
        self.ttl_seconds = ttl_minutes * 60
        self.refresh_grace_seconds = refresh_grace_seconds
        self.blocklist_enabled = blocklist_enabled
        self.issuer = issuer
        self.clock = clock

    def _now(self) -> int:
        return int(self.clock())

    def _encode(self, identity_claims: Dict[str, Any]) -> IssuedToken:
        now = self._now()
        claims = dict(identity_claims)
        claims.update({
            "iss": self.issuer,
            "iat": now,
            "nbf": now,
            "exp": now + self.ttl_seconds,
            "jti": secrets.token_hex(16),
        })

        token = jwt.encode(claims, self.secret_key, algorithm=self.algorithm)
        return IssuedToken(token=token, expires_in=self.ttl_seconds)

    def decode(self, token: str) -> Dict[str, Any]:
        """
        Check signature and issuer and return the claims.

        Time-based claims are checked by `_verify` against `clock`.
        """
        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"verify_exp": False, "verify_nbf": False, "verify_iat": False},
            )
        except JWTError as e:
            _logger.warning(f"Invalid token: {e}")
            raise UnauthorizedError(UNAUTHENTICATED_MESSAGE)

        missing = [name for name in _REQUIRED_CLAIMS if name not in claims]
        if missing or not str(claims["sub"]).isdigit():
            _logger.warning(f"Token rejected: missing or malformed claims {missing}")
            raise UnauthorizedError(UNAUTHENTICATED_MESSAGE)

        return claims

    def _verify(self, conn: sqlite3.Connection, token: str, grace_seconds: int) -> TokenIdentity:
        claims = self.decode(token)
        now = self._now()
        expires_at = int(claims["exp"])

        if now >= expires_at + grace_seconds:
            _logger.info(f"Token {claims['jti']} expired at {expires_at}")
            raise UnauthorizedError(UNAUTHENTICATED_MESSAGE)

        if int(claims.get("nbf", 0)) > now:
            _logger.warning(f"Token {claims['jti']} used before nbf")
            raise UnauthorizedError(UNAUTHENTICATED_MESSAGE)

        if self.blocklist_enabled and store.is_token_blocked(conn, claims["jti"]):
            _logger.info(f"Blocklisted token {claims['jti']} presented")
            raise UnauthorizedError(UNAUTHENTICATED_MESSAGE)

        return TokenIdentity(
            user_id=int(claims["sub"]),
            token_id=claims["jti"],
            claims=claims,
            expires_at=expires_at,
        )

    def issue(self, conn: sqlite3.Connection, user: User) -> IssuedToken:
        return self._encode({"sub": str(user.id), "uuid": user.uuid, "role": user.role})

    def resolve(self, conn: sqlite3.Connection, token: str) -> TokenIdentity:
        return self._verify(conn, token, grace_seconds=0)

    def revoke(self, conn: sqlite3.Connection, identity: TokenIdentity) -> bool:
        if not self.blocklist_enabled:
            _logger.warning(
                f"Blocklist disabled: token {identity.token_id} stays valid until it expires"
            )
            return False

        # Keep the entry as long as the token could still be used or refreshed
        expires_at = (identity.expires_at or self._now()) + self.refresh_grace_seconds
        store.block_token(conn, identity.token_id, expires_at, now=self._now())
        return True

    def refresh(self, conn: sqlite3.Connection, token: str) -> IssuedToken:
        """
        Exchange a valid (or recently expired) token for a new one.

        The old token is blocklisted so it can be refreshed only once.
        Tokens of deleted users are rejected.
        """
        identity = self._verify(conn, token, grace_seconds=self.refresh_grace_seconds)
        if store.get_user_by_id(conn, identity.user_id) is None:
            _logger.warning(f"Refresh of token {identity.token_id} for missing user {identity.user_id}")
            raise UnauthorizedError(UNAUTHENTICATED_MESSAGE)

        claims = {name: identity.claims[name] for name in _IDENTITY_CLAIMS if name in identity.claims}

        issued = self._encode(claims)
        self.revoke(conn, identity)
        return issued
