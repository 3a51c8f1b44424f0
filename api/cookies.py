"""
api/cookies.py -- Session cookie helpers.

Both tokens travel as cookies:
  httponly=True: JS cannot read them (XSS mitigation).
  samesite="strict": never sent on cross-site requests (CSRF mitigation).
  secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
  max_age: matches each token's TTL so cookie and token expire together.

Logout and failed refreshes overwrite both with an empty value and immediate
expiry.
"""

from __future__ import annotations

from starlette.responses import Response

from auth.dependencies import ACCESS_COOKIE, REFRESH_COOKIE
from core.config import Settings


def set_session_cookies(response: Response, access_token: str, refresh_token: str, settings: Settings) -> None:
    response.set_cookie(
        ACCESS_COOKIE,
        value=access_token,
        max_age=settings.access_token_ttl_seconds,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.secure_cookies,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        value=refresh_token,
        max_age=settings.refresh_token_ttl_seconds,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.secure_cookies,
    )


def clear_session_cookies(response: Response, settings: Settings) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(
            name,
            path="/",
            httponly=True,
            samesite="strict",
            secure=settings.secure_cookies,
        )
