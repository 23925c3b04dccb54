"""
Secure password hashing using bcrypt.

Bcrypt is designed for password hashing with:
- Automatic salt generation
- Configurable work factor (cost)
- Constant-time verification
"""

from __future__ import annotations

import bcrypt
import logging
import os
from functools import lru_cache

_logger = logging.getLogger(__name__)

# Work factor (cost) - higher = slower but more secure
DEFAULT_BCRYPT_ROUNDS = 12
MIN_BCRYPT_ROUNDS = 4

# bcrypt only considers the first 72 bytes of input
_BCRYPT_MAX_BYTES = 72

_rounds = int(os.environ.get("BCRYPT_ROUNDS", DEFAULT_BCRYPT_ROUNDS))


def set_rounds(rounds: int) -> None:
    """Set the work factor used for new hashes."""
    global _rounds

    if rounds < MIN_BCRYPT_ROUNDS:
        raise ValueError(f"bcrypt rounds must be >= {MIN_BCRYPT_ROUNDS}")
    _rounds = rounds
    _dummy_hash.cache_clear()


def get_rounds() -> int:
    return _rounds


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password

    Returns:
        Bcrypt hash string (includes salt)
    """
    if not password:
        raise ValueError("Password cannot be empty")

    salt = bcrypt.gensalt(rounds=_rounds)
    hashed = bcrypt.hashpw(_encode(password), salt)

    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its hash.

    Args:
        password: Plain text password to verify
        password_hash: Stored bcrypt hash

    Returns:
        True if password matches, False otherwise
    """
    if not password or not password_hash:
        return False

    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
    except ValueError as e:
        _logger.warning(f"Password verification error: {e}")
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password("dummy-password-for-timing")


def burn_verification(password: str) -> None:
    """
    Run a verification against a throwaway hash.

    Used when no account matches, so the response takes as long as a
    real password check.
    """
    verify_password(password or "x", _dummy_hash())
