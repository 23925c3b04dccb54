"""
SQLite database connection and schema management.

Uses a file-based SQLite database for users, profiles and tokens.
Each worker thread gets its own connection; every `get_db()` block is
one transaction (commit on success, rollback on any exception).
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Union

_logger = logging.getLogger(__name__)

# Database file location (configurable via env var)
DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "auth.db"
DB_PATH = Path(os.environ.get("AUTH_DB_PATH", str(DEFAULT_DB_PATH)))

# Connection pool (one connection per thread)
_local = threading.local()
_init_lock = threading.Lock()
_initialized = False


def _get_connection() -> sqlite3.Connection:
    """Get thread-local database connection for the current DB_PATH."""
    conn = getattr(_local, "connection", None)
    if conn is not None and getattr(_local, "path", None) != DB_PATH:
        # Path was reconfigured since this thread connected
        conn.close()
        conn = None

    if conn is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(DB_PATH),
            timeout=30.0,
            check_same_thread=False,
        )
        conn.execute("PRAGMA foreign_keys = ON")
        conn.row_factory = sqlite3.Row
        _local.connection = conn
        _local.path = DB_PATH

    return conn


@contextmanager
def get_db(immediate: bool = False):
    """
    Get database connection context manager.

    The block is a single transaction:

        with get_db() as conn:
            conn.execute("INSERT ...")
            conn.execute("INSERT ...")   # both or neither persist

    With immediate=True the write lock is taken up front (BEGIN IMMEDIATE),
    so concurrent writers queue on the busy timeout instead of failing
    with "database is locked" when upgrading a read lock.
    """
    conn = _get_connection()
    if immediate and not conn.in_transaction:
        conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise


def configure_db(path: Union[str, Path]) -> None:
    """
    Point the persistence layer at a different database file.

    Threads reconnect lazily on their next `get_db()` call.
    """
    global DB_PATH, _initialized

    with _init_lock:
        DB_PATH = Path(path)
        _initialized = False
    _logger.info(f"Database path set to {DB_PATH}")


def init_db() -> None:
    """
    Initialize database schema.

    Creates tables if they don't exist.
    Safe to call multiple times (idempotent).
    """
    global _initialized

    with _init_lock:
        if _initialized:
            return

        with get_db() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    uuid TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL COLLATE NOCASE,
                    password_hash TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'user',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email
                ON users(email COLLATE NOCASE)
            """)

            # One empty profile per user, created with the account
            conn.execute("""
                CREATE TABLE IF NOT EXISTS profiles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    uuid TEXT NOT NULL UNIQUE,
                    user_id INTEGER NOT NULL UNIQUE,
                    phone TEXT,
                    address TEXT,
                    bio TEXT,
                    avatar TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES users(id)
                )
            """)

            # Opaque bearer tokens (only the SHA-256 of the secret is stored)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS personal_access_tokens (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    token_hash TEXT NOT NULL UNIQUE,
                    created_at TEXT NOT NULL,
                    last_used_at TEXT,
                    FOREIGN KEY (user_id) REFERENCES users(id)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tokens_user
                ON personal_access_tokens(user_id)
            """)

            # Revoked signed tokens, kept until they could no longer be used
            conn.execute("""
                CREATE TABLE IF NOT EXISTS token_blocklist (
                    jti TEXT PRIMARY KEY,
                    expires_at INTEGER NOT NULL
                )
            """)

            _logger.info(f"Database initialized at {DB_PATH}")
            _initialized = True


def close_db() -> None:
    """Close thread-local database connection."""
    conn: Optional[sqlite3.Connection] = getattr(_local, "connection", None)
    if conn is not None:
        conn.close()
        _local.connection = None
        _local.path = None


def reset_db() -> None:
    """Reset database (for testing). Drops all tables."""
    global _initialized

    with _init_lock:
        with get_db() as conn:
            conn.execute("DROP TABLE IF EXISTS token_blocklist")
            conn.execute("DROP TABLE IF EXISTS personal_access_tokens")
            conn.execute("DROP TABLE IF EXISTS profiles")
            conn.execute("DROP TABLE IF EXISTS users")
        _initialized = False


def get_db_path() -> Path:
    """Get the database file path."""
    return DB_PATH
