"""
User, profile and token models for authentication.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
import uuid


TOKEN_TYPE = "Bearer"
DEFAULT_ROLE = "user"


def normalize_email(email: str) -> str:
    """Emails are stored and compared lower-cased and stripped."""
    return email.strip().lower()


@dataclass
class User:
    """
    User account model.

    Attributes:
        id: Sequential database ID
        uuid: Public-facing opaque identifier
        name: Display name
        email: Login email (unique, case-insensitive)
        password_hash: Bcrypt-hashed password
        role: Free-form role string (not enforced here)
        created_at: Account creation timestamp
        updated_at: Last update timestamp
    """
    id: int
    uuid: str
    name: str
    email: str
    password_hash: str
    role: str = DEFAULT_ROLE
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_public_dict(self) -> dict:
        """Public fields only (never the password hash)."""
        return {
            "id": self.id,
            "uuid": self.uuid,
            "name": self.name,
            "email": self.email,
            "role": self.role,
        }


@dataclass
class Profile:
    """Profile row created empty alongside each user."""
    id: int
    uuid: str
    user_id: int
    phone: Optional[str] = None
    address: Optional[str] = None
    bio: Optional[str] = None
    avatar: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class AccessToken:
    """
    Server-side record of an opaque token.

    Attributes:
        id: Token row ID (also the prefix of the plaintext token)
        user_id: Owning user
        name: Token label
        token_hash: SHA-256 hex digest of the secret part
        created_at: Issue timestamp
        last_used_at: Last successful authentication
    """
    id: int
    user_id: int
    name: str
    token_hash: str
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_used_at: Optional[datetime] = None


@dataclass
class IssuedToken:
    """A freshly minted token as handed to the client."""
    token: str
    token_type: str = TOKEN_TYPE
    expires_in: Optional[int] = None

    def to_dict(self) -> dict:
        """`expires_in` is only present for expiring tokens."""
        data: Dict[str, Any] = {
            "token": self.token,
            "token_type": self.token_type,
        }
        if self.expires_in is not None:
            data["expires_in"] = self.expires_in
        return data


@dataclass
class TokenIdentity:
    """
    What a verified token says about its bearer.

    Attributes:
        user_id: Database ID of the user the token belongs to
        token_id: Opaque token row ID, or the JWT `jti`
        claims: Decoded JWT claims (empty for opaque tokens)
        expires_at: Unix expiry for signed tokens, None otherwise
    """
    user_id: int
    token_id: str
    claims: Dict[str, Any] = field(default_factory=dict)
    expires_at: Optional[int] = None


@dataclass
class SessionContext:
    """Resolved caller identity, passed explicitly to service calls."""
    user: User
    identity: TokenIdentity


@dataclass
class AuthResult:
    """Result of register/login/refresh."""
    user: Optional[User]
    token: IssuedToken

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {}
        if self.user is not None:
            data["user"] = self.user.to_public_dict()
        data["access_token"] = self.token.to_dict()
        return data


def new_uuid() -> str:
    """Generate a public identifier."""
    return str(uuid.uuid4())
