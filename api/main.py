"""
api/main.py -- FastAPI application factory for SessionGate.

Exposes the session lifecycle (login, refresh, logout) and principal
administration over HTTP. The app is built by create_app(settings); nothing
is wired at import time.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. security_headers      -- nosniff, frame deny, referrer policy; HSTS when
                              secure_cookies is set
  2. log_requests          -- one access-log line per request
  3. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  4. CORSMiddleware        -- adds CORS headers for allowed browser origins
  5. SlowAPIMiddleware     -- enforces the application-wide limit from api.limiter

create_app() builds the store, hasher, codec, session manager and account
service and puts them on app.state. Lifespan handles the purge task and
closes the store on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.errors import auth_error_response, error_response
from api.limiter import configure_limiter, limiter
from api.models import HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.accounts import AccountService
from auth.dependencies import get_claims
from auth.errors import AuthError, StorageError
from auth.hashing import SecretHasher
from auth.models import AccessClaims
from auth.sessions import SessionManager
from auth.store import CredentialStore
from auth.tokens import TokenCodec
from core.config import Settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sessiongate.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Delete long-expired refresh records every purge_interval_seconds.

    Records are kept for refresh_record_retention_days after expiry so
    revoked rows remain available for audit. CancelledError from
    task.cancel() during shutdown propagates out of asyncio.sleep and unwinds
    the coroutine cleanly.
    """
    settings: Settings = app.state.settings
    retention = timedelta(days=settings.refresh_record_retention_days)
    while True:
        await asyncio.sleep(settings.purge_interval_seconds)
        try:
            app.state.sessions.purge_expired(retention)
        except StorageError:
            # Already logged by the store; try again next interval.
            continue


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the purge task on startup; cancel it and close the store on shutdown."""
    logger.info(
        "SessionGate API starting up (principals present=%s)",
        app.state.store.has_principals(),
    )
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.store.close()
    logger.info("SessionGate API shutdown complete")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_components(settings: Settings, store: CredentialStore | None = None) -> tuple:
    """Construct (store, sessions, accounts) from one Settings object.

    Shared by create_app() and the CLI so both run the same configuration.
    """
    store = store or CredentialStore(settings.database_url)
    hasher = SecretHasher(settings.secret_key, rounds=settings.bcrypt_rounds)
    codec = TokenCodec(settings.secret_key, algorithm=settings.jwt_algorithm)
    sessions = SessionManager(
        store,
        hasher,
        codec,
        access_ttl=timedelta(seconds=settings.access_token_ttl_seconds),
        refresh_ttl=timedelta(seconds=settings.refresh_token_ttl_seconds),
        password_change_ttl=timedelta(seconds=settings.password_change_token_ttl_seconds),
    )
    accounts = AccountService(store, hasher)
    return store, sessions, accounts


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings, store: CredentialStore | None = None) -> FastAPI:
    app = FastAPI(
        title="SessionGate API",
        description="Credential authentication, session tokens and level-based authorization.",
        version=VERSION,
        lifespan=lifespan,
        # Built-in /docs and /redoc are replaced by auth-protected routes below.
        docs_url=None,
        redoc_url=None,
    )

    app.state.settings = settings
    app.state.store, app.state.sessions, app.state.accounts = build_components(settings, store)

    # -----------------------------------------------------------------------
    # Middleware stack
    #
    # Each add_middleware() wraps the ones registered before it, so register
    # innermost first: SlowAPI <- CORS <- TrustedHost. The @app.middleware
    # functions below end up outside all three.
    # -----------------------------------------------------------------------

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        # Cookies carry the tokens, so credentials must be allowed.
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    # SlowAPI looks for app.state.limiter by convention.
    configure_limiter(settings)
    app.state.limiter = limiter

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.client.host if request.client else "unknown",
        )
        return response

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
        if settings.secure_cookies:
            # Only deployments served over HTTPS set secure_cookies.
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------

    app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
    app.include_router(users_router, prefix="/api/v1", tags=["Users"])

    @app.get("/docs", include_in_schema=False)
    async def docs(claims: AccessClaims = Depends(get_claims)):
        """Swagger UI -- requires authentication."""
        return get_swagger_ui_html(openapi_url="/openapi.json", title="SessionGate API")

    @app.get("/redoc", include_in_schema=False)
    async def redoc(claims: AccessClaims = Depends(get_claims)):
        """ReDoc UI -- requires authentication."""
        return get_redoc_html(openapi_url="/openapi.json", title="SessionGate API")

    @app.get("/api/v1/health", tags=["Health"])
    def health(request: Request) -> HealthResponse:
        """Liveness plus a credential-store round trip. Never rate limited."""
        try:
            request.app.state.store.has_principals()
            database = "ok"
        except StorageError:
            database = "error"
        return HealthResponse(
            status="healthy" if database == "ok" else "degraded",
            version=VERSION,
            components={"app": "ok", "database": database},
        )

    # Registers the route name with the limiter; the route keeps the plain
    # endpoint so FastAPI resolves its annotations in this module.
    limiter.exempt(health)

    _register_exception_handlers(app)
    return app


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        """Render typed core failures (401/403/404/409/400/500)."""
        return auth_error_response(exc)

    @app.exception_handler(RateLimitExceeded)
    def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Return 429 with a structured error when a rate limit is exceeded.

        Retry-After tells clients how many seconds to wait before retrying.
        Plain def: SlowAPIMiddleware calls this handler directly for the
        application-wide limit and does not await it.
        """
        retry_after = int(getattr(exc, "retry_after", 60))
        response = error_response(429, "rate_limited", "Too many requests.", str(exc.detail))
        response.headers["Retry-After"] = str(retry_after)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed input is a 400 with the field errors attached."""
        errors = [
            {"loc": [str(part) for part in err.get("loc", ())], "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return error_response(400, "validation_error", "Request validation failed.", {"errors": errors})

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Structured dict details are used as the error field directly."""
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
        return error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected server errors.

        The raw exception goes to the log only, never to the response body.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return error_response(500, "internal_error", "An unexpected error occurred.")
