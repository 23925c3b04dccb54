# app/dependencies.py
"""
FastAPI dependencies and service wiring.

Provides:
- Construction of the deployment's token issuer and session service
- Capability checks (`session`, `bearer`) run before route handlers
- Login throttling
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import AppConfig
from app.rate_limiter import get_client_ip, throttle_key
from auth.errors import TooManyRequestsError, UNAUTHENTICATED_MESSAGE, UnauthorizedError
from auth.models import SessionContext
from auth.service import SessionService
from auth.tokens import DRIVER_OPAQUE, JWTTokenIssuer, OpaqueTokenIssuer, TokenIssuer

logger = logging.getLogger(__name__)

# Security scheme for Bearer tokens; missing header handled by get_bearer_token
security = HTTPBearer(auto_error=False)

TOO_MANY_ATTEMPTS_MESSAGE = "Too many login attempts. Please try again later."


def build_issuer(config: AppConfig) -> TokenIssuer:
    """Create the single token strategy selected by configuration."""
    if config.token_driver == DRIVER_OPAQUE:
        return OpaqueTokenIssuer()

    return JWTTokenIssuer(
        secret_key=config.jwt_secret,
        algorithm=config.jwt_algorithm,
        ttl_minutes=config.jwt_ttl_minutes,
        refresh_grace_seconds=config.jwt_refresh_grace_seconds,
        blocklist_enabled=config.jwt_blocklist_enabled,
        issuer=config.service_name,
    )


def build_session_service(config: AppConfig) -> SessionService:
    issuer = build_issuer(config)
    logger.info(f"Session service using '{issuer.driver}' tokens")
    return SessionService(issuer)


def get_session_service(request: Request) -> SessionService:
    """Session service stored on app state at startup."""
    return request.app.state.session_service


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Capability `bearer`: a Bearer token must be presented.

    Raises:
        UnauthorizedError: 401 if the header is missing or not Bearer
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError(UNAUTHENTICATED_MESSAGE)
    return credentials.credentials


def require_session(
    token: str = Depends(get_bearer_token),
    service: SessionService = Depends(get_session_service),
) -> SessionContext:
    """
    Capability `session`: the token must resolve to a live session.

    Raises:
        UnauthorizedError: 401 if the token is invalid, revoked or expired
    """
    return service.authenticate(token)


CAPABILITIES: Dict[str, Callable] = {
    "bearer": get_bearer_token,
    "session": require_session,
}


def check_login_throttle(request: Request, email: Optional[str]) -> None:
    """
    Consume one login attempt for (client IP, email).

    Raises:
        TooManyRequestsError: 429 with retry_after when the bucket is empty
    """
    limiter = request.app.state.login_limiter
    allowed, retry_after = limiter.check(throttle_key(get_client_ip(request), email))
    if not allowed:
        raise TooManyRequestsError(TOO_MANY_ATTEMPTS_MESSAGE, retry_after=retry_after)
