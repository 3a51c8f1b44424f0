"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in the route modules
(to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

Two tiers:
  api     -- application limit, one counter per client IP across every route.
             Enforced by SlowAPIMiddleware; routes registered with
             limiter.exempt() (health) skip it.
  login / refresh -- per-route limits applied by @limiter.limit() on top of
             the api tier.

Limits are callables so the values from Settings apply even though the
decorators run at import time. configure_limiter() is called by create_app()
with the app's Settings.

The limiter and its limits are process-wide. Building a second app in the
same process reconfigures the first: the last create_app() wins, and all
apps count against the same in-memory store. Tests reset it with
limiter.reset().
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

_route_limits: dict[str, str] = {
    "api": "100 per minute",
    "login": "5 per 15 minutes",
    "refresh": "10 per 30 minutes",
}


def api_limit() -> str:
    return _route_limits["api"]


def login_limit() -> str:
    return _route_limits["login"]


def refresh_limit() -> str:
    return _route_limits["refresh"]


limiter = Limiter(
    key_func=get_remote_address,
    application_limits=[api_limit],
    storage_uri="memory://",
)


def configure_limiter(settings) -> None:
    limiter.enabled = settings.rate_limit_enabled
    _route_limits["api"] = settings.api_rate_limit
    _route_limits["login"] = settings.login_rate_limit
    _route_limits["refresh"] = settings.refresh_rate_limit
