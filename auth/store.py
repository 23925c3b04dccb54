"""
Credential store.

Row-level operations on users, profiles, access tokens and the token
blocklist. Every function takes the connection of the caller's
transaction (see `persistence.db.get_db`), so several writes can be
committed or rolled back together.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Optional

from auth.models import AccessToken, DEFAULT_ROLE, Profile, User, new_uuid, normalize_email

_logger = logging.getLogger(__name__)


# =============================================================================
# Users
# =============================================================================


def create_user(
    conn: sqlite3.Connection,
    name: str,
    email: str,
    password_hash: str,
    role: str = DEFAULT_ROLE,
) -> User:
    """
    Insert a user row.

    Raises:
        sqlite3.IntegrityError: If the email is already registered
    """
    now = datetime.utcnow()
    user_uuid = new_uuid()
    email = normalize_email(email)

    cursor = conn.execute(
        """
        INSERT INTO users (uuid, name, email, password_hash, role, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (user_uuid, name, email, password_hash, role, now.isoformat(), now.isoformat()),
    )

    return User(
        id=cursor.lastrowid,
        uuid=user_uuid,
        name=name,
        email=email,
        password_hash=password_hash,
        role=role,
        created_at=now,
        updated_at=now,
    )


def get_user_by_email(conn: sqlite3.Connection, email: str) -> Optional[User]:
    """
    Get user by email address (case-insensitive).

    Returns:
        User if found, None otherwise
    """
    row = conn.execute(
        "SELECT * FROM users WHERE email = ? COLLATE NOCASE",
        (normalize_email(email),),
    ).fetchone()

    if not row:
        return None

    return _row_to_user(row)


def get_user_by_id(conn: sqlite3.Connection, user_id: int) -> Optional[User]:
    """Get user by ID, or None."""
    row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()

    if not row:
        return None

    return _row_to_user(row)


def email_exists(conn: sqlite3.Connection, email: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM users WHERE email = ? COLLATE NOCASE LIMIT 1",
        (normalize_email(email),),
    ).fetchone()
    return row is not None


def count_users(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]


def _row_to_user(row) -> User:
    """Convert a database row to a User object."""
    return User(
        id=row["id"],
        uuid=row["uuid"],
        name=row["name"],
        email=row["email"],
        password_hash=row["password_hash"],
        role=row["role"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


# =============================================================================
# Profiles
# =============================================================================


def create_profile(conn: sqlite3.Connection, user_id: int) -> Profile:
    """Insert the empty profile that belongs to a new user."""
    now = datetime.utcnow()
    profile_uuid = new_uuid()

    cursor = conn.execute(
        """
        INSERT INTO profiles (uuid, user_id, created_at, updated_at)
        VALUES (?, ?, ?, ?)
        """,
        (profile_uuid, user_id, now.isoformat(), now.isoformat()),
    )

    return Profile(
        id=cursor.lastrowid,
        uuid=profile_uuid,
        user_id=user_id,
        created_at=now,
        updated_at=now,
    )


def get_profile_by_user(conn: sqlite3.Connection, user_id: int) -> Optional[Profile]:
    row = conn.execute("SELECT * FROM profiles WHERE user_id = ?", (user_id,)).fetchone()

    if not row:
        return None

    return Profile(
        id=row["id"],
        uuid=row["uuid"],
        user_id=row["user_id"],
        phone=row["phone"],
        address=row["address"],
        bio=row["bio"],
        avatar=row["avatar"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def count_profiles(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT COUNT(*) FROM profiles").fetchone()[0]


# =============================================================================
# Opaque access tokens
# =============================================================================


def create_access_token(
    conn: sqlite3.Connection,
    user_id: int,
    token_hash: str,
    name: str = "auth_token",
) -> AccessToken:
    """Store the hash of a newly generated opaque token."""
    now = datetime.utcnow()

    cursor = conn.execute(
        """
        INSERT INTO personal_access_tokens (user_id, name, token_hash, created_at)
        VALUES (?, ?, ?, ?)
        """,
        (user_id, name, token_hash, now.isoformat()),
    )

    return AccessToken(
        id=cursor.lastrowid,
        user_id=user_id,
        name=name,
        token_hash=token_hash,
        created_at=now,
    )


def get_access_token(conn: sqlite3.Connection, token_id: int) -> Optional[AccessToken]:
    """Get an access token record by row ID, or None."""
    row = conn.execute(
        "SELECT * FROM personal_access_tokens WHERE id = ?",
        (token_id,),
    ).fetchone()

    if not row:
        return None

    last_used_at = None
    if row["last_used_at"]:
        last_used_at = datetime.fromisoformat(row["last_used_at"])

    return AccessToken(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        token_hash=row["token_hash"],
        created_at=datetime.fromisoformat(row["created_at"]),
        last_used_at=last_used_at,
    )


def touch_access_token(conn: sqlite3.Connection, token_id: int) -> None:
    conn.execute(
        "UPDATE personal_access_tokens SET last_used_at = ? WHERE id = ?",
        (datetime.utcnow().isoformat(), token_id),
    )


def delete_access_token(conn: sqlite3.Connection, token_id: int) -> bool:
    """
    Invalidate (delete) a single token.

    Returns:
        True if deleted, False if not found
    """
    cursor = conn.execute(
        "DELETE FROM personal_access_tokens WHERE id = ?",
        (token_id,),
    )
    return cursor.rowcount > 0


def delete_user_tokens(conn: sqlite3.Connection, user_id: int) -> int:
    """
    Invalidate all tokens for a user.

    Returns:
        Number of tokens deleted
    """
    cursor = conn.execute(
        "DELETE FROM personal_access_tokens WHERE user_id = ?",
        (user_id,),
    )
    return cursor.rowcount


def count_user_tokens(conn: sqlite3.Connection, user_id: int) -> int:
    return conn.execute(
        "SELECT COUNT(*) FROM personal_access_tokens WHERE user_id = ?",
        (user_id,),
    ).fetchone()[0]


# =============================================================================
# Signed-token blocklist
# =============================================================================


def block_token(conn: sqlite3.Connection, jti: str, expires_at: int, now: int) -> None:
    """
    Blocklist a token ID until `expires_at` (unix seconds).

    Entries that can no longer matter are purged on the way.
    """
    purged = conn.execute(
        "DELETE FROM token_blocklist WHERE expires_at < ?",
        (now,),
    ).rowcount
    if purged:
        _logger.debug(f"Purged {purged} stale blocklist entries")

    conn.execute(
        "INSERT OR REPLACE INTO token_blocklist (jti, expires_at) VALUES (?, ?)",
        (jti, expires_at),
    )


def is_token_blocked(conn: sqlite3.Connection, jti: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM token_blocklist WHERE jti = ?",
        (jti,),
    ).fetchone()
    return row is not None
