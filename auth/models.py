"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
session manager do the work; these only own the shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass

# Role levels are a flat integer scale. Higher is more privileged.
MIN_LEVEL = 0
MAX_LEVEL = 10

# Token "typ" claim values. A token is only accepted where its type is expected.
ACCESS = "access"
REFRESH = "refresh"
PASSWORD_CHANGE = "password_change"


@dataclass
class PublicPrincipal:
    """The externally visible view of a principal. Has no password field."""

    id: str
    username: str
    email: str
    fullname: str
    level: int
    active: bool
    must_change_password: bool
    created_at: str


@dataclass
class Principal:
    """An account that can authenticate.

    username and email are each globally unique. password_hash is a bcrypt
    hash and must never cross the core boundary -- use public() for anything
    that leaves auth/.

    New accounts created by an administrator start inactive with
    must_change_password set; the first password change activates them.
    """

    username: str
    email: str
    fullname: str
    password_hash: str
    level: int = 1
    active: bool = False
    must_change_password: bool = True
    id: str | None = None
    created_at: str | None = None

    def public(self) -> PublicPrincipal:
        return PublicPrincipal(
            id=self.id or "",
            username=self.username,
            email=self.email,
            fullname=self.fullname,
            level=self.level,
            active=self.active,
            must_change_password=self.must_change_password,
            created_at=self.created_at or "",
        )


@dataclass
class RefreshTokenRecord:
    """Server-side trace of an issued refresh token.

    token_hash is HMAC-SHA256(SECRET_KEY, raw_token). The raw token is never
    persisted. The record is immutable apart from the one-way revoked
    transition (False -> True, stamping revoked_at).
    """

    principal_id: str
    token_hash: str
    expires_at: str
    id: int | None = None
    revoked: bool = False
    revoked_at: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class AccessClaims:
    """Verified identity claims carried by a signed token.

    Not persisted; rebuilt from the token on every request. issued_at and
    expires_at are epoch seconds. active is 0 or 1 on the wire.
    """

    id: str
    username: str
    email: str
    fullname: str
    level: int
    active: int
    issued_at: int = 0
    expires_at: int = 0


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    claims: AccessClaims


@dataclass
class LoginResult:
    """Successful login: both tokens plus the password-stripped principal."""

    principal: PublicPrincipal
    claims: AccessClaims
    access_token: str
    refresh_token: str
