"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and level gating.

Token sources are checked in priority order:
  1. "access_token" cookie -- set by POST /auth/login and /auth/refresh.
  2. Authorization: Bearer <token> header -- API clients.

try_get_claims() is the soft variant (returns None on failure).
get_claims() raises 401 if unauthenticated.
require_level(n) runs the Authorization Gate and raises 401/403.
require_admin is require_level(settings.admin_level), resolved per request.

Verified claims are returned to the route as a parameter. Nothing is written
onto the request object.

Layer rule: this module may import from fastapi (Depends/HTTPException/Request)
because it is part of the FastAPI dependency injection system. It reads the
wired SessionManager and Settings from request.app.state.
"""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import HTTPException, Request

from auth.gate import DenyReason, authorize
from auth.models import AccessClaims
from auth.sessions import SessionManager

logger = logging.getLogger("sessiongate.auth")

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def _candidate_tokens(request: Request) -> list[str]:
    tokens = [request.cookies.get(ACCESS_COOKIE), _bearer_token(request)]
    return [t for t in tokens if t]


def try_get_claims(request: Request) -> AccessClaims | None:
    """Return verified access-token claims, or None. Never raises."""
    sessions: SessionManager = request.app.state.sessions
    for token in _candidate_tokens(request):
        claims = sessions.verify_access(token)
        if claims is not None:
            return claims
    return None


def get_claims(request: Request) -> AccessClaims:
    """Require authentication. Raises HTTP 401 if the request carries no valid access token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: AccessClaims = Depends(get_claims)): ...
    """
    claims = try_get_claims(request)
    if claims is None:
        logger.warning("Unauthenticated %s %s", request.method, request.url.path)
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return claims


def _enforce(request: Request, required_level: int) -> AccessClaims:
    claims = try_get_claims(request)
    decision = authorize(claims, required_level)
    if decision.allowed:
        return claims
    if decision.reason is DenyReason.UNAUTHENTICATED:
        logger.warning("Unauthenticated %s %s", request.method, request.url.path)
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    logger.warning(
        "Access denied: principal %s level %d < required %d on %s",
        claims.id,
        claims.level,
        required_level,
        request.url.path,
    )
    raise HTTPException(
        status_code=403,
        detail={"code": "insufficient_level", "message": "You do not have permission for this action."},
    )


def require_level(required_level: int) -> Callable[[Request], AccessClaims]:
    """Build a dependency that allows only claims.level >= required_level.

    Use as a FastAPI dependency:
        @router.get("/reports")
        def route(claims: AccessClaims = Depends(require_level(3))): ...
    """

    def dependency(request: Request) -> AccessClaims:
        return _enforce(request, required_level)

    return dependency


def require_admin(request: Request) -> AccessClaims:
    """Require the configured administrative level (Settings.admin_level)."""
    return _enforce(request, request.app.state.settings.admin_level)


def get_password_change_claims(request: Request) -> AccessClaims:
    """Accept a full access token or the restricted password-change token.

    The restricted token is handed out by a login that hit a forced password
    change; it is honoured only by the change-password route.
    """
    sessions: SessionManager = request.app.state.sessions
    for token in _candidate_tokens(request):
        claims = sessions.verify_access(token) or sessions.verify_password_change(token)
        if claims is not None:
            return claims
    raise HTTPException(
        status_code=401,
        detail={"code": "unauthorized", "message": "Authentication required."},
    )
