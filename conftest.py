"""Configure pytest for the auth API."""
import os
import sys
import tempfile
from pathlib import Path

import pytest

# =============================================================================
# Test Environment Configuration
# =============================================================================
# Set environment for tests BEFORE any imports, since importing app.main
# builds the module-level application from the environment.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-long-enough-0123456789")
os.environ.setdefault("LOGIN_RATE_LIMIT_PER_MINUTE", "0")
os.environ.setdefault(
    "AUTH_DB_PATH",
    str(Path(tempfile.mkdtemp(prefix="auth-api-tests-")) / "auth.db"),
)

project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


@pytest.fixture(autouse=True)
def fresh_database(tmp_path):
    """Point the persistence layer at an empty database for each test."""
    from persistence.db import close_db, configure_db, init_db
    from auth.password import set_rounds

    set_rounds(4)
    configure_db(tmp_path / "auth.db")
    init_db()
    yield tmp_path / "auth.db"
    close_db()


TEST_JWT_SECRET = "api-test-secret-key-that-is-long-enough-0123"


@pytest.fixture
def make_client(fresh_database):
    """
    Factory for TestClients bound to a freshly built application.

    Keyword arguments override AppConfig fields, e.g.
    make_client(token_driver="opaque", login_rate_limit_per_minute=2).
    """
    from fastapi.testclient import TestClient
    from app.config import AppConfig
    from app.main import create_app

    def factory(**overrides):
        settings = {
            "environment": "test",
            "db_path": fresh_database,
            "jwt_secret": TEST_JWT_SECRET,
            "bcrypt_rounds": 4,
            "login_rate_limit_per_minute": 0,
        }
        settings.update(overrides)
        return TestClient(create_app(AppConfig(**settings)))

    return factory
