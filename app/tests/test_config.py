# app/tests/test_config.py
"""Tests for configuration management and startup validation."""
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from app.config import (
    DEFAULT_DB_PATH,
    DEFAULT_MAX_REQUEST_SIZE_BYTES,
    AppConfig,
    ConfigurationError,
    load_config,
    log_config_snapshot,
    validate_config_snapshot_safety,
)

SECRET = "a-sufficiently-long-signing-secret-0123456789"


class TestLoadConfig:
    """Tests for load_config function."""

    def test_default_values(self):
        """Config loads with sensible defaults when no env vars set."""
        with patch.dict(os.environ, {}, clear=True):
            config = load_config()

        assert config.service_name == "account-auth-api"
        assert config.environment == "development"
        assert config.db_path == DEFAULT_DB_PATH
        assert config.token_driver == "jwt"
        assert config.jwt_algorithm == "HS256"
        assert config.jwt_ttl_minutes == 60
        assert config.jwt_refresh_grace_seconds == 0
        assert config.jwt_blocklist_enabled is True
        assert config.bcrypt_rounds == 12
        assert config.login_rate_limit_per_minute == 5
        assert config.max_request_size_bytes == DEFAULT_MAX_REQUEST_SIZE_BYTES

    def test_values_from_environment(self):
        env = {
            "APP_ENV": "staging",
            "AUTH_DB_PATH": "/var/lib/auth/users.db",
            "AUTH_TOKEN_DRIVER": "OPAQUE",
            "BCRYPT_ROUNDS": "10",
            "LOGIN_RATE_LIMIT_PER_MINUTE": "0",
        }
        with patch.dict(os.environ, env, clear=True):
            config = load_config()

        assert config.environment == "staging"
        assert config.db_path == Path("/var/lib/auth/users.db")
        assert config.token_driver == "opaque"
        assert config.bcrypt_rounds == 10
        assert config.login_rate_limit_per_minute == 0

    def test_jwt_settings(self):
        env = {
            "JWT_SECRET": SECRET,
            "JWT_ALGORITHM": "hs512",
            "JWT_TTL_MINUTES": "15",
            "JWT_REFRESH_GRACE_SECONDS": "300",
            "JWT_BLOCKLIST_ENABLED": "false",
        }
        with patch.dict(os.environ, env, clear=True):
            config = load_config()

        assert config.jwt_secret == SECRET
        assert config.jwt_algorithm == "HS512"
        assert config.jwt_ttl_minutes == 15
        assert config.jwt_refresh_grace_seconds == 300
        assert config.jwt_blocklist_enabled is False
        assert any("JWT_BLOCKLIST_ENABLED is false" in w for w in config.warnings)

    def test_secret_not_in_repr(self):
        config = AppConfig(jwt_secret=SECRET)
        assert SECRET not in repr(config)


class TestStartupValidation:
    """Tests for fail-fast checks."""

    def test_unknown_driver_fails(self):
        with patch.dict(os.environ, {"AUTH_TOKEN_DRIVER": "sessions"}, clear=True):
            with pytest.raises(ConfigurationError, match="AUTH_TOKEN_DRIVER"):
                load_config()

    def test_unsupported_algorithm_fails(self):
        with patch.dict(os.environ, {"JWT_SECRET": SECRET, "JWT_ALGORITHM": "none"}, clear=True):
            with pytest.raises(ConfigurationError, match="JWT_ALGORITHM"):
                load_config()

    def test_missing_secret_fails_in_production(self):
        with patch.dict(os.environ, {"APP_ENV": "production"}, clear=True):
            with pytest.raises(ConfigurationError, match="JWT_SECRET"):
                load_config()

    def test_missing_secret_ephemeral_outside_production(self):
        with patch.dict(os.environ, {}, clear=True):
            config = load_config()

        assert config.jwt_secret_present is True
        assert any("ephemeral secret" in w for w in config.warnings)

    def test_missing_secret_ok_for_opaque_driver(self):
        with patch.dict(os.environ, {"APP_ENV": "production", "AUTH_TOKEN_DRIVER": "opaque"}, clear=True):
            config = load_config()

        assert config.token_driver == "opaque"
        assert config.jwt_secret_present is False

    def test_short_secret_warns(self):
        with patch.dict(os.environ, {"JWT_SECRET": "short"}, clear=True):
            config = load_config()

        assert any("shorter than" in w for w in config.warnings)

    def test_errors_collected_without_fail_fast(self):
        with patch.dict(os.environ, {"AUTH_TOKEN_DRIVER": "sessions"}, clear=True):
            config = load_config(fail_fast=False)

        assert config.token_driver == "jwt"
        assert any("AUTH_TOKEN_DRIVER" in w for w in config.warnings)


class TestIntegerSettings:
    """Tests for integer env var validation."""

    def test_invalid_string_uses_default_with_warning(self):
        with patch.dict(os.environ, {"MAX_REQUEST_SIZE_BYTES": "not-a-number"}, clear=True):
            config = load_config()

        assert config.max_request_size_bytes == DEFAULT_MAX_REQUEST_SIZE_BYTES
        assert any("not a valid integer" in w for w in config.warnings)

    def test_below_minimum_uses_default_with_warning(self):
        with patch.dict(os.environ, {"MAX_REQUEST_SIZE_BYTES": "100"}, clear=True):
            config = load_config()

        assert config.max_request_size_bytes == DEFAULT_MAX_REQUEST_SIZE_BYTES
        assert any("below minimum" in w for w in config.warnings)

    def test_bcrypt_rounds_below_minimum(self):
        with patch.dict(os.environ, {"BCRYPT_ROUNDS": "3"}, clear=True):
            config = load_config()

        assert config.bcrypt_rounds == 12
        assert any("BCRYPT_ROUNDS" in w for w in config.warnings)

    def test_negative_rate_limit_uses_default(self):
        with patch.dict(os.environ, {"LOGIN_RATE_LIMIT_PER_MINUTE": "-1"}, clear=True):
            config = load_config()

        assert config.login_rate_limit_per_minute == 5

    def test_zero_ttl_uses_default(self):
        with patch.dict(os.environ, {"JWT_TTL_MINUTES": "0"}, clear=True):
            config = load_config()

        assert config.jwt_ttl_minutes == 60


class TestConfigSnapshotSafety:
    """Tests for config snapshot security."""

    def test_snapshot_contains_expected_fields(self):
        snapshot = log_config_snapshot(AppConfig())

        assert "service=" in snapshot
        assert "environment=" in snapshot
        assert "driver=" in snapshot
        assert "jwt_secret_present=" in snapshot
        assert "bcrypt_rounds=" in snapshot

    def test_snapshot_never_contains_actual_secrets(self):
        with patch.dict(os.environ, {"JWT_SECRET": SECRET}, clear=True):
            config = load_config()
            snapshot = log_config_snapshot(config)

        assert SECRET not in snapshot
        assert "jwt_secret_present=True" in snapshot

    def test_validate_config_snapshot_safety_passes_clean_snapshot(self):
        snapshot = log_config_snapshot(AppConfig(jwt_secret=SECRET))

        assert validate_config_snapshot_safety(snapshot) is True

    def test_validate_config_snapshot_safety_catches_leaked_secret(self):
        bad_snapshot = f"service=test jwt_secret={SECRET} version=1.0"

        assert validate_config_snapshot_safety(bad_snapshot) is False

    def test_validate_config_snapshot_safety_allows_presence_flags(self):
        good_snapshot = "jwt_secret_present=True token_present=False"

        assert validate_config_snapshot_safety(good_snapshot) is True
