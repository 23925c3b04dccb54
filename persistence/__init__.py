"""
Persistence layer.

Provides SQLite-backed storage for:
- User accounts and their profiles
- Opaque access tokens
- Revoked signed-token identifiers (blocklist)
"""

from persistence.db import get_db, init_db, close_db, configure_db, reset_db

__all__ = [
    "get_db",
    "init_db",
    "close_db",
    "configure_db",
    "reset_db",
]
