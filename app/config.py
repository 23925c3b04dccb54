# app/config.py
"""
Centralized configuration management with startup validation.

Defines REQUIRED vs OPTIONAL environment variables and provides
safe configuration loading with validation and logging.
"""
import logging
import os
import re
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from auth.password import DEFAULT_BCRYPT_ROUNDS, MIN_BCRYPT_ROUNDS
from auth.tokens import DRIVER_JWT, DRIVERS

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

SERVICE_NAME = "account-auth-api"
SERVICE_VERSION = "0.1.0"

# Default values
DEFAULT_MAX_REQUEST_SIZE_BYTES = 1_048_576  # 1MB
MIN_REQUEST_SIZE_BYTES = 1024  # 1KB minimum
DEFAULT_DB_PATH = Path("data") / "auth.db"
DEFAULT_JWT_ALGORITHM = "HS256"
DEFAULT_JWT_TTL_MINUTES = 60
DEFAULT_LOGIN_RATE_LIMIT_PER_MINUTE = 5
DEFAULT_LOGIN_RATE_LIMIT_BURST = 5

SUPPORTED_JWT_ALGORITHMS = ("HS256", "HS384", "HS512")
MIN_JWT_SECRET_LENGTH = 32

# Sensitive substrings that should never appear in logs
SENSITIVE_SUBSTRINGS = ("key", "token", "secret", "password", "credential", "auth")


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""

    pass


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass
class AppConfig:
    """Application configuration loaded from environment."""

    # Service info
    service_name: str = SERVICE_NAME
    service_version: str = SERVICE_VERSION
    environment: str = "development"

    # Storage
    db_path: Path = DEFAULT_DB_PATH

    # Token strategy (exactly one per deployment)
    token_driver: str = DRIVER_JWT
    jwt_secret: str = field(default="", repr=False)
    jwt_algorithm: str = DEFAULT_JWT_ALGORITHM
    jwt_ttl_minutes: int = DEFAULT_JWT_TTL_MINUTES
    jwt_refresh_grace_seconds: int = 0
    jwt_blocklist_enabled: bool = True

    # Password hashing
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS

    # Login throttling (0 disables)
    login_rate_limit_per_minute: int = DEFAULT_LOGIN_RATE_LIMIT_PER_MINUTE
    login_rate_limit_burst: int = DEFAULT_LOGIN_RATE_LIMIT_BURST

    # Security settings
    max_request_size_bytes: int = DEFAULT_MAX_REQUEST_SIZE_BYTES

    # Warnings collected during config load
    warnings: list = field(default_factory=list)

    @property
    def jwt_secret_present(self) -> bool:
        return bool(self.jwt_secret)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


# =============================================================================
# Configuration Loading
# =============================================================================


def _parse_int_env(
    name: str, default: int, min_value: Optional[int] = None
) -> tuple[int, Optional[str]]:
    """
    Parse an integer environment variable with validation.

    Returns (value, warning_message).
    On invalid input, returns default with a warning.
    """
    raw = os.environ.get(name)
    if raw is None:
        return default, None

    try:
        value = int(raw)
    except ValueError:
        warning = f"{name}='{raw}' is not a valid integer; using default {default}"
        return default, warning

    if min_value is not None and value < min_value:
        warning = f"{name}={value} is below minimum {min_value}; using default {default}"
        return default, warning

    return value, None


def _parse_bool_env(name: str, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    raw = os.environ.get(name, "").lower()
    if raw in ("true", "1", "yes", "on"):
        return True
    if raw in ("false", "0", "no", "off"):
        return False
    return default


def load_config(fail_fast: bool = True) -> AppConfig:
    """
    Load and validate application configuration from environment.

    Args:
        fail_fast: If True, raise ConfigurationError on critical issues.
                   If False, collect warnings and continue.

    Returns:
        AppConfig instance with validated configuration.

    Raises:
        ConfigurationError: If required configuration is missing/invalid
                           and fail_fast is True.
    """
    warnings = []
    errors = []

    environment = os.environ.get("APP_ENV", "development")
    is_production = environment.lower() == "production"

    db_path = Path(os.environ.get("AUTH_DB_PATH", str(DEFAULT_DB_PATH)))

    # Token driver
    token_driver = os.environ.get("AUTH_TOKEN_DRIVER", DRIVER_JWT).strip().lower()
    if token_driver not in DRIVERS:
        errors.append(f"AUTH_TOKEN_DRIVER='{token_driver}' must be one of {', '.join(DRIVERS)}")
        token_driver = DRIVER_JWT

    jwt_algorithm = os.environ.get("JWT_ALGORITHM", DEFAULT_JWT_ALGORITHM).upper()
    if jwt_algorithm not in SUPPORTED_JWT_ALGORITHMS:
        errors.append(f"JWT_ALGORITHM='{jwt_algorithm}' is not supported")
        jwt_algorithm = DEFAULT_JWT_ALGORITHM

    jwt_secret = os.environ.get("JWT_SECRET", "")
    if token_driver == DRIVER_JWT:
        if not jwt_secret:
            if is_production:
                errors.append("JWT_SECRET is required when AUTH_TOKEN_DRIVER=jwt in production")
            else:
                warnings.append(
                    "JWT_SECRET is not set; using an ephemeral secret "
                    "(tokens will not survive a restart)"
                )
            jwt_secret = secrets.token_urlsafe(64)
        elif len(jwt_secret) < MIN_JWT_SECRET_LENGTH:
            warnings.append(f"JWT_SECRET is shorter than {MIN_JWT_SECRET_LENGTH} characters")

    jwt_ttl_minutes, ttl_warning = _parse_int_env("JWT_TTL_MINUTES", DEFAULT_JWT_TTL_MINUTES, min_value=1)
    grace_seconds, grace_warning = _parse_int_env("JWT_REFRESH_GRACE_SECONDS", 0, min_value=0)
    blocklist_enabled = _parse_bool_env("JWT_BLOCKLIST_ENABLED", True)
    if token_driver == DRIVER_JWT and not blocklist_enabled:
        warnings.append(
            "JWT_BLOCKLIST_ENABLED is false; logout cannot revoke signed tokens "
            "before they expire"
        )

    bcrypt_rounds, rounds_warning = _parse_int_env(
        "BCRYPT_ROUNDS", DEFAULT_BCRYPT_ROUNDS, min_value=MIN_BCRYPT_ROUNDS
    )

    rate_per_minute, rate_warning = _parse_int_env(
        "LOGIN_RATE_LIMIT_PER_MINUTE", DEFAULT_LOGIN_RATE_LIMIT_PER_MINUTE, min_value=0
    )
    rate_burst, burst_warning = _parse_int_env(
        "LOGIN_RATE_LIMIT_BURST", DEFAULT_LOGIN_RATE_LIMIT_BURST, min_value=1
    )

    max_request_size, size_warning = _parse_int_env(
        "MAX_REQUEST_SIZE_BYTES",
        DEFAULT_MAX_REQUEST_SIZE_BYTES,
        min_value=MIN_REQUEST_SIZE_BYTES,
    )

    for warning in (ttl_warning, grace_warning, rounds_warning, rate_warning, burst_warning, size_warning):
        if warning:
            warnings.append(warning)

    # Log warnings
    for warning in warnings:
        logger.warning(f"[CONFIG] {warning}")

    if errors:
        for error in errors:
            logger.error(f"[CONFIG] {error}")
        if fail_fast:
            raise ConfigurationError("; ".join(errors))
        warnings.extend(errors)

    return AppConfig(
        environment=environment,
        db_path=db_path,
        token_driver=token_driver,
        jwt_secret=jwt_secret,
        jwt_algorithm=jwt_algorithm,
        jwt_ttl_minutes=jwt_ttl_minutes,
        jwt_refresh_grace_seconds=grace_seconds,
        jwt_blocklist_enabled=blocklist_enabled,
        bcrypt_rounds=bcrypt_rounds,
        login_rate_limit_per_minute=rate_per_minute,
        login_rate_limit_burst=rate_burst,
        max_request_size_bytes=max_request_size,
        warnings=warnings,
    )


def log_config_snapshot(config: AppConfig) -> str:
    """
    Generate and log a safe configuration snapshot.

    Returns the snapshot string for testing purposes.
    Never logs actual secret values - only boolean presence flags.
    """
    snapshot = (
        f"[STARTUP] service={config.service_name} "
        f"version={config.service_version} "
        f"environment={config.environment} "
        f"db_path={config.db_path} "
        f"driver={config.token_driver} "
        f"jwt_secret_present={config.jwt_secret_present} "
        f"jwt_ttl_minutes={config.jwt_ttl_minutes} "
        f"jwt_blocklist_enabled={config.jwt_blocklist_enabled} "
        f"bcrypt_rounds={config.bcrypt_rounds} "
        f"login_rate_limit_per_minute={config.login_rate_limit_per_minute} "
        f"max_request_size_bytes={config.max_request_size_bytes}"
    )
    logger.info(snapshot)
    return snapshot


def validate_config_snapshot_safety(snapshot: str) -> bool:
    """
    Validate that a config snapshot doesn't contain sensitive values.

    Returns True if safe, False if potentially unsafe.
    """
    snapshot_lower = snapshot.lower()

    # A sensitive word directly followed by "=" must carry a boolean
    for sensitive in SENSITIVE_SUBSTRINGS:
        pattern = rf"{sensitive}=(?!true\b|false\b)"
        if re.search(pattern, snapshot_lower):
            return False

    return True
