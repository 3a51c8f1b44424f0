"""
API request and response models for SessionGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

No response model has a password or password_hash field.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from auth.models import MAX_LEVEL, MIN_LEVEL, AccessClaims, PublicPrincipal
from auth.policy import MAX_PASSWORD_LENGTH

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Permissive on purpose: allows .local and similar development domains.
EMAIL_PATTERN = r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+$"
USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class MustChangePasswordResponse(ErrorResponse):
    """403 body for a login that requires a password change first."""

    must_change_password: bool = True
    password_change_token: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """POST /auth/login body. identifier may be a username or an email.

    username / email are accepted as aliases for clients that send the
    field they know.
    """

    identifier: Optional[str] = Field(default=None, max_length=255)
    username: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(min_length=1, max_length=MAX_PASSWORD_LENGTH)

    @model_validator(mode="after")
    def require_identifier(self) -> "LoginRequest":
        if not (self.identifier or self.username or self.email):
            raise ValueError("identifier, username or email is required")
        return self

    @property
    def login_identifier(self) -> str:
        return self.identifier or self.username or self.email or ""


class PrincipalResponse(BaseModel):
    id: str
    username: str
    email: str
    fullname: str
    level: int
    active: bool
    must_change_password: bool
    created_at: str

    @classmethod
    def from_principal(cls, principal: PublicPrincipal) -> "PrincipalResponse":
        return cls(
            id=principal.id,
            username=principal.username,
            email=principal.email,
            fullname=principal.fullname,
            level=principal.level,
            active=principal.active,
            must_change_password=principal.must_change_password,
            created_at=principal.created_at,
        )


class ClaimsResponse(BaseModel):
    """The token claim schema: {id, username, email, fullname, level, active, iat, exp}."""

    id: str
    username: str
    email: str
    fullname: str
    level: int
    active: int
    iat: int
    exp: int

    @classmethod
    def from_claims(cls, claims: AccessClaims) -> "ClaimsResponse":
        return cls(
            id=claims.id,
            username=claims.username,
            email=claims.email,
            fullname=claims.fullname,
            level=claims.level,
            active=claims.active,
            iat=claims.issued_at,
            exp=claims.expires_at,
        )


class LoginResponse(BaseModel):
    success: bool = True
    user: PrincipalResponse
    expires_in: int = Field(description="Seconds until the access token expires")


class RefreshResponse(BaseModel):
    success: bool = True
    message: str = "Tokens refreshed."
    expires_in: int


class LogoutResponse(BaseModel):
    success: bool = True
    message: str = "Logged out."
    revoked: int = 0


class SessionResponse(BaseModel):
    success: bool = True
    user: ClaimsResponse


class PasswordChange(BaseModel):
    current_password: str = Field(min_length=1, max_length=MAX_PASSWORD_LENGTH)
    new_password: str = Field(min_length=1, max_length=MAX_PASSWORD_LENGTH)


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# ---------------------------------------------------------------------------
# User administration
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """POST /users body. Password complexity is checked by the account service."""

    username: str = Field(min_length=4, max_length=20, pattern=USERNAME_PATTERN)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    fullname: str = Field(min_length=4, max_length=255)
    password: str = Field(min_length=1, max_length=MAX_PASSWORD_LENGTH)
    level: int = Field(default=1, ge=MIN_LEVEL, le=MAX_LEVEL)
    active: bool = False


class UserPatch(BaseModel):
    fullname: Optional[str] = Field(default=None, min_length=4, max_length=255)
    level: Optional[int] = Field(default=None, ge=MIN_LEVEL, le=MAX_LEVEL)
    active: Optional[bool] = None


class PasswordReset(BaseModel):
    password: str = Field(min_length=1, max_length=MAX_PASSWORD_LENGTH)


class UserListResponse(BaseModel):
    success: bool = True
    users: list[PrincipalResponse]
    total: int
    page: int
    limit: int
