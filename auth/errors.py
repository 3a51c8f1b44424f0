"""
auth/errors.py -- Typed failure taxonomy for the authentication core.

Every failure the core can produce is a subclass of AuthError with a stable
machine-readable code and an HTTP status. The core raises them; only the API
layer turns them into responses (api/main.py registers a single handler).
Nothing in auth/ imports fastapi to decide status codes.

Families:
  AuthenticationFailure (401) -- bad credentials, bad/expired/forged/revoked
      tokens. Messages never reveal whether an account exists.
  AuthorizationFailure  (403) -- identity is known but may not proceed.
  ConflictFailure       (409) -- duplicate username / email.
  NotFoundFailure       (404) -- operation on a missing principal.
  ValidationFailure     (400) -- password policy, empty updates.
  IntegrityFailure      (500) -- storage or signing broke. Logged in full,
      rendered with a generic message.
"""

from __future__ import annotations

from typing import Any, Optional


class AuthError(Exception):
    """Base class for core failures. Carries status_code and code for the API layer."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: Optional[str] = None, *, detail: Optional[dict[str, Any]] = None) -> None:
        self.message = message or self.default_message
        self.detail = detail or {}
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# 401
# ---------------------------------------------------------------------------


class AuthenticationFailure(AuthError):
    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required."


class InvalidCredentials(AuthenticationFailure):
    """Same message for unknown identifier and wrong password."""

    code = "bad_credentials"
    default_message = "Invalid username or password."


class RefreshRequired(AuthenticationFailure):
    code = "refresh_required"
    default_message = "Refresh token required."


class RefreshInvalid(AuthenticationFailure):
    code = "refresh_invalid"
    default_message = "Refresh token is invalid, expired or revoked."


class PrincipalGone(AuthenticationFailure):
    """The principal named by a valid refresh token was deleted after issuance."""

    code = "principal_not_found"
    default_message = "User not found."


# ---------------------------------------------------------------------------
# 403
# ---------------------------------------------------------------------------


class AuthorizationFailure(AuthError):
    status_code = 403
    code = "forbidden"
    default_message = "Access denied."


class AccountInactive(AuthorizationFailure):
    code = "account_inactive"
    default_message = "Account is inactive. Contact an administrator."


class MustChangePassword(AuthorizationFailure):
    """Password is correct but must be changed before full tokens are issued.

    password_change_token is a restricted token accepted only by the
    change-password route.
    """

    code = "must_change_password"
    default_message = "Password change required on first login."

    def __init__(self, password_change_token: str, message: Optional[str] = None) -> None:
        super().__init__(message)
        self.password_change_token = password_change_token


class InsufficientLevel(AuthorizationFailure):
    code = "insufficient_level"
    default_message = "You do not have permission for this action."


# ---------------------------------------------------------------------------
# 409
# ---------------------------------------------------------------------------


class ConflictFailure(AuthError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists."
    field: str = ""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message, detail={"field": self.field} if self.field else None)


class DuplicateUsername(ConflictFailure):
    code = "duplicate_username"
    default_message = "Username already exists."
    field = "username"


class DuplicateEmail(ConflictFailure):
    code = "duplicate_email"
    default_message = "Email is already registered."
    field = "email"


# ---------------------------------------------------------------------------
# 404
# ---------------------------------------------------------------------------


class NotFoundFailure(AuthError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found."


class PrincipalNotFound(NotFoundFailure):
    default_message = "User not found."


# ---------------------------------------------------------------------------
# 400
# ---------------------------------------------------------------------------


class ValidationFailure(AuthError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid input."


class PasswordPolicyError(ValidationFailure):
    """Raised before storage is touched. errors lists every failing rule."""

    code = "password_policy"
    default_message = "Password does not meet the policy."

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors) or None, detail={"errors": list(errors)})
        self.errors = list(errors)


class NoChanges(ValidationFailure):
    code = "no_changes"
    default_message = "No fields to update."


# ---------------------------------------------------------------------------
# 500
# ---------------------------------------------------------------------------


class IntegrityFailure(AuthError):
    status_code = 500
    code = "internal_error"


class StorageError(IntegrityFailure):
    """The credential store could not complete an operation."""
