"""
api/routes/v1/auth.py -- Session lifecycle REST endpoints.

Routes:
  POST /api/v1/auth/login     -- password login; sets access + refresh cookies
  POST /api/v1/auth/refresh   -- rotate the refresh cookie; new access cookie
  POST /api/v1/auth/logout    -- revoke all refresh tokens; clear cookies; 200
  GET  /api/v1/auth/session   -- current token claims (requires auth)
  POST /api/v1/auth/password  -- change own password (access or password-change token)

Security:
  [H2] /login and /refresh are rate-limited per client IP (Settings).
  [C1] SessionManager.authenticate() equalizes timing; never inline the lookup.
  [M5] Cache-Control: no-store on every response that carries a token.
  [M7] Failed refreshes clear both cookies so a dead token is not replayed.

Do not add `from __future__ import annotations`: FastAPI resolves the
annotations of slowapi-wrapped handlers against slowapi's module globals.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.cookies import clear_session_cookies, set_session_cookies
from api.errors import auth_error_response
from api.limiter import limiter, login_limit, refresh_limit
from api.models import (
    ClaimsResponse,
    ErrorDetail,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    MessageResponse,
    MustChangePasswordResponse,
    PasswordChange,
    PrincipalResponse,
    RefreshResponse,
    SessionResponse,
)
from auth.accounts import AccountService
from auth.dependencies import REFRESH_COOKIE, get_claims, get_password_change_claims, try_get_claims
from auth.errors import AuthError, AuthenticationFailure, MustChangePassword
from auth.models import AccessClaims
from auth.sessions import SessionManager

# Auth policy:
# - POST /api/v1/auth/login:    public
# - POST /api/v1/auth/refresh:  public; the refresh cookie is the credential
# - POST /api/v1/auth/logout:   public; revokes only if a token identifies the caller
# - GET  /api/v1/auth/session:  requires auth (get_claims)
# - POST /api/v1/auth/password: access token or password-change token
router = APIRouter()


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(login_limit)  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with identifier (username or email) and password.

    Wrong identifier and wrong password return the same "bad_credentials"
    error. A correct password on an account flagged for a forced change
    returns 403 with a short-lived password_change_token instead of cookies.
    """
    sessions: SessionManager = request.app.state.sessions
    settings = request.app.state.settings
    try:
        result = sessions.login(body.login_identifier, body.password)
    except MustChangePassword as exc:
        content = MustChangePasswordResponse(
            error=ErrorDetail(code=exc.code, message=exc.message),
            password_change_token=exc.password_change_token,
        ).model_dump()
        return _no_store(JSONResponse(status_code=exc.status_code, content=content))
    except AuthError as exc:
        return _no_store(auth_error_response(exc))

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            user=PrincipalResponse.from_principal(result.principal),
            expires_in=settings.access_token_ttl_seconds,
        ).model_dump(),
    )
    set_session_cookies(resp, result.access_token, result.refresh_token, settings)
    return _no_store(resp)


@router.post("/auth/refresh", response_model=RefreshResponse)
@limiter.limit(refresh_limit)  # [H2]
def refresh(request: Request) -> JSONResponse:
    """Exchange the refresh cookie for a new access + refresh pair.

    The presented refresh token is revoked as part of the exchange; presenting
    it again fails with "refresh_invalid".
    """
    sessions: SessionManager = request.app.state.sessions
    settings = request.app.state.settings
    try:
        pair = sessions.refresh(request.cookies.get(REFRESH_COOKIE))
    except AuthError as exc:
        resp = auth_error_response(exc)
        if isinstance(exc, AuthenticationFailure):
            clear_session_cookies(resp, settings)  # [M7]
        return _no_store(resp)

    resp = JSONResponse(
        status_code=200,
        content=RefreshResponse(expires_in=settings.access_token_ttl_seconds).model_dump(),
    )
    set_session_cookies(resp, pair.access_token, pair.refresh_token, settings)
    return _no_store(resp)


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request) -> JSONResponse:
    """Revoke every refresh token of the caller and clear both cookies.

    The caller is identified by the access token, or by the refresh cookie
    when the access token has already expired. A refresh cookie counts only
    while it matches a live record, so a rotated-away or stolen-and-revoked
    token revokes nothing. Always returns 200.
    """
    sessions: SessionManager = request.app.state.sessions
    claims = try_get_claims(request) or sessions.identify_refresh(request.cookies.get(REFRESH_COOKIE))
    revoked = sessions.logout(claims.id) if claims is not None else 0
    resp = JSONResponse(content=LogoutResponse(revoked=revoked).model_dump())
    clear_session_cookies(resp, request.app.state.settings)
    return _no_store(resp)


@router.get("/auth/session", response_model=SessionResponse)
def session(claims: AccessClaims = Depends(get_claims)) -> SessionResponse:
    """Return the claims of the current access token."""
    return SessionResponse(user=ClaimsResponse.from_claims(claims))


@router.post("/auth/password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: PasswordChange,
    claims: AccessClaims = Depends(get_password_change_claims),
) -> JSONResponse:
    """Change the caller's own password.

    On success the account is active, the forced-change flag is cleared and
    every existing session is revoked, so both cookies are cleared too.
    """
    accounts: AccountService = request.app.state.accounts
    accounts.change_own_password(claims.id, body.current_password, body.new_password)
    resp = JSONResponse(content=MessageResponse(message="Password updated. Please log in again.").model_dump())
    clear_session_cookies(resp, request.app.state.settings)
    return _no_store(resp)
