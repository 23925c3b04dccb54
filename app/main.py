"""Account Auth API - FastAPI application entrypoint."""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import AppConfig, load_config, log_config_snapshot
from app.correlation import CorrelationIdMiddleware, RequestIdLogFilter
from app.dependencies import build_session_service
from app.envelope import envelope_response
from app.rate_limiter import build_login_limiter
from app.routers import auth
from auth.errors import AuthError, TooManyRequestsError
from auth.password import set_rounds
from auth.service import SERVER_ERROR_MESSAGE
from persistence.db import configure_db, init_db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdLogFilter())
logger = logging.getLogger(__name__)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests exceeding size limit to prevent payload bombs."""

    def __init__(self, app, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_bytes:
            return envelope_response(413, "Request entity too large.")
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        return response


# =============================================================================
# Exception handlers (every error leaves as an envelope)
# =============================================================================


async def handle_auth_error(request: Request, exc: AuthError):
    headers = {}
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"
    if isinstance(exc, TooManyRequestsError):
        headers["Retry-After"] = str(max(1, int(exc.retry_after + 0.999)))
    return envelope_response(exc.status_code, exc.message, headers=headers)


async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    status = request.app.state.invalid_input_statuses.get(request.url.path, 422)

    errors = exc.errors()
    message = "The request body is invalid."
    if errors:
        # Positions inside unparseable JSON are ints; only field names are reported
        loc = [part for part in errors[0].get("loc", ()) if isinstance(part, str) and part != "body"]
        if loc:
            message = f"The {loc[-1]} field is invalid."

    logger.info(f"Rejected malformed request to {request.url.path}: {errors[:1]}")
    return envelope_response(status, message)


async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed."
    return envelope_response(exc.status_code, message, headers=getattr(exc, "headers", None))


async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return envelope_response(500, SERVER_ERROR_MESSAGE)


# =============================================================================
# Application factory
# =============================================================================


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """
    Build the application for a configuration.

    Loads configuration from the environment when none is given.
    """
    config = config or load_config()
    log_config_snapshot(config)

    set_rounds(config.bcrypt_rounds)
    configure_db(config.db_path)
    init_db()

    started_at = datetime.now(timezone.utc)

    app = FastAPI(
        title="Account Auth API",
        description="User registration and bearer-token authentication",
        version=config.service_version,
    )
    app.state.config = config
    app.state.session_service = build_session_service(config)
    app.state.login_limiter = build_login_limiter(
        config.login_rate_limit_per_minute,
        config.login_rate_limit_burst,
    )
    app.state.invalid_input_statuses = auth.invalid_input_statuses()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Added in reverse execution order: CorrelationId runs first
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=config.max_request_size_bytes)
    app.add_middleware(CorrelationIdMiddleware)

    app.add_exception_handler(AuthError, handle_auth_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(auth.build_router(app.state.session_service))

    @app.get("/health")
    async def health():
        """Health check with service observability."""
        return envelope_response(200, "healthy", {
            "service": config.service_name,
            "version": config.service_version,
            "environment": config.environment,
            "token_driver": config.token_driver,
            "started_at": started_at.isoformat(),
        })

    return app


app = create_app()
