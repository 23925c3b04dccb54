"""
Authentication API endpoints.

Routes are declared in ROUTES as (method, path, handler, capabilities);
`build_router` turns the table into a FastAPI router and attaches the
capability checks so they run before each handler.
"""

from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from app.dependencies import (
    CAPABILITIES,
    check_login_throttle,
    get_bearer_token,
    get_session_service,
    require_session,
)
from app.envelope import envelope_response
from auth.models import SessionContext
from auth.service import SessionService


# =============================================================================
# Request Schemas
# =============================================================================

# Fields are optional so missing values reach the rule table and get its messages

class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    c_password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


# =============================================================================
# Handlers
# =============================================================================


def register(
    body: Optional[RegisterRequest] = None,
    service: SessionService = Depends(get_session_service),
):
    """Register a new user account."""
    payload = body.model_dump() if body else {}
    result = service.register(payload)
    return envelope_response(201, "Account registered successfully.", result.to_dict())


def login(
    request: Request,
    body: Optional[LoginRequest] = None,
    service: SessionService = Depends(get_session_service),
):
    """Login with email/password."""
    payload = body.model_dump() if body else {}
    check_login_throttle(request, payload.get("email"))
    result = service.login(payload)
    return envelope_response(200, "Logged in successfully.", result.to_dict())


def logout(
    all_devices: bool = False,
    ctx: SessionContext = Depends(require_session),
    service: SessionService = Depends(get_session_service),
):
    """Revoke the presented token (or every token with ?all_devices=true)."""
    service.logout(ctx, all_devices=all_devices)
    return envelope_response(200, "Logged out successfully.")


def refresh(
    token: str = Depends(get_bearer_token),
    service: SessionService = Depends(get_session_service),
):
    """Exchange a signed token for a new one."""
    result = service.refresh(token)
    return envelope_response(200, "Token refreshed successfully.", result.to_dict())


def get_session(
    ctx: SessionContext = Depends(require_session),
    service: SessionService = Depends(get_session_service),
):
    """Current user for the presented token."""
    user = service.session_check(ctx)
    return envelope_response(200, "Session is active.", {"user": user.to_public_dict()})


# =============================================================================
# Routing table
# =============================================================================


@dataclass(frozen=True)
class RouteSpec:
    """
    One API route.

    Attributes:
        method: HTTP method
        path: URL path
        handler: Endpoint function
        capabilities: Checks that must pass before the handler runs
        invalid_input_status: Status for malformed request bodies
        refresh_only: Only mounted when the token driver can refresh
    """
    method: str
    path: str
    handler: Callable
    capabilities: FrozenSet[str] = frozenset()
    invalid_input_status: int = 422
    refresh_only: bool = False


ROUTES = (
    RouteSpec("POST", "/auth/register", register),
    RouteSpec("POST", "/auth/login", login, invalid_input_status=400),
    RouteSpec("POST", "/auth/logout", logout, frozenset({"session"})),
    RouteSpec("GET", "/auth/refresh", refresh, frozenset({"bearer"}), refresh_only=True),
    RouteSpec("GET", "/auth/get-session", get_session, frozenset({"session"})),
    RouteSpec("GET", "/user", get_session, frozenset({"session"})),
)


def build_router(service: SessionService) -> APIRouter:
    """Mount every route in ROUTES that the service's token driver supports."""
    router = APIRouter(tags=["auth"])

    for spec in ROUTES:
        if spec.refresh_only and not service.supports_refresh:
            continue
        router.add_api_route(
            spec.path,
            spec.handler,
            methods=[spec.method],
            dependencies=[Depends(CAPABILITIES[name]) for name in sorted(spec.capabilities)],
            name=f"{spec.handler.__name__}:{spec.path}",
        )

    return router


def invalid_input_statuses() -> Dict[str, int]:
    """Path -> status used when a request body cannot be parsed."""
    return {spec.path: spec.invalid_input_status for spec in ROUTES}
