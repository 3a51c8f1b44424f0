"""
auth/tokens.py -- Token Codec: sign and verify compact JWTs.

Security design decisions:
  JWT: python-jose with a fixed symmetric algorithm (HS256 by default). Tokens
       are signed with SECRET_KEY and carry the identity claims, iat, exp, a
       random jti and a typ claim.

  Type-cleaned claims: issue() copies only the identity fields, coerced to
       str/int. Whatever object is passed in (a Principal with its
       password_hash, a previous AccessClaims), nothing else reaches the
       payload.

  typ: "access", "refresh" or "password_change". verify() rejects a token
       presented where another type is expected, so a refresh token cannot
       be replayed as an access token and vice versa.

  jti: two tokens minted for the same principal in the same second would
       otherwise be byte-identical, which would make their refresh-record
       digests collide.

  Uniform failure surface: verify() returns None for malformed, forged,
       expired and wrong-type tokens alike. The reason is logged at DEBUG,
       never returned.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import secrets
import time
from datetime import timedelta
from typing import Any

from jose import JWTError, jwt

from auth.models import ACCESS, AccessClaims

logger = logging.getLogger("sessiongate.auth")

_STR_CLAIMS = ("id", "username", "email", "fullname")
_INT_CLAIMS = ("level", "active")


def _clean_claims(source: Any) -> dict[str, Any]:
    """Build the identity part of a payload from any object carrying identity attributes."""
    claims: dict[str, Any] = {}
    for name in _STR_CLAIMS:
        value = getattr(source, name, None)
        claims[name] = "" if value is None else str(value)
    for name in _INT_CLAIMS:
        try:
            claims[name] = int(getattr(source, name, 0) or 0)
        except (TypeError, ValueError):
            claims[name] = 0
    return claims


class TokenCodec:
    """Issues and verifies signed tokens with a shared secret.

    Usage:
        codec = TokenCodec(settings.secret_key)
        token = codec.issue(principal, timedelta(minutes=15))
        claims = codec.verify(token)   # AccessClaims or None
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256") -> None:
        self._secret = secret_key
        self.algorithm = algorithm

    def issue(self, claims: Any, ttl: timedelta, token_type: str = ACCESS) -> str:
        """Return a signed token for claims that expires ttl from now."""
        now = int(time.time())
        payload = _clean_claims(claims)
        payload.update(
            iat=now,
            exp=now + int(ttl.total_seconds()),
            jti=secrets.token_hex(16),
            typ=token_type,
        )
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str | None, token_type: str = ACCESS) -> AccessClaims | None:
        """Decode and verify token. Returns AccessClaims or None on any failure.

        Returning None (rather than raising) keeps callers simple: any invalid
        token is treated as unauthenticated.
        """
        if not token:
            return None
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self.algorithm])
        except JWTError as exc:
            logger.debug("Token rejected: %s", exc)
            return None
        if payload.get("typ") != token_type:
            logger.debug("Token rejected: expected typ=%s, got %r", token_type, payload.get("typ"))
            return None
        try:
            return AccessClaims(
                id=str(payload["id"]),
                username=str(payload["username"]),
                email=str(payload["email"]),
                fullname=str(payload["fullname"]),
                level=int(payload["level"]),
                active=int(payload["active"]),
                issued_at=int(payload["iat"]),
                expires_at=int(payload["exp"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            logger.debug("Token rejected: malformed claims (%s)", exc)
            return None
