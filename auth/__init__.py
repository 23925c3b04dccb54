# auth/__init__.py
"""
Authentication module.

Provides:
- User, profile and token models
- Password hashing with bcrypt
- Opaque and signed (JWT) bearer token issuers
- Session service: register, login, logout, refresh, session check
"""

from auth.models import User, Profile, IssuedToken, SessionContext, AuthResult
from auth.errors import (
    AuthError,
    ValidationError,
    ConflictError,
    UnauthorizedError,
    UnsupportedOperationError,
    TooManyRequestsError,
    ServerError,
)
from auth.tokens import TokenIssuer, OpaqueTokenIssuer, JWTTokenIssuer
from auth.service import SessionService

__all__ = [
    "User",
    "Profile",
    "IssuedToken",
    "SessionContext",
    "AuthResult",
    "AuthError",
    "ValidationError",
    "ConflictError",
    "UnauthorizedError",
    "UnsupportedOperationError",
    "TooManyRequestsError",
    "ServerError",
    "TokenIssuer",
    "OpaqueTokenIssuer",
    "JWTTokenIssuer",
    "SessionService",
]
