"""
auth/policy.py -- Password complexity policy.

check_password() reports every failing rule at once so the client can show
the full list instead of fixing one complaint per round-trip. The policy runs
before any hashing or storage call.
"""

from __future__ import annotations

import re

from auth.errors import PasswordPolicyError

MIN_PASSWORD_LENGTH = 6
# bcrypt reads at most 72 bytes; longer passwords are refused up front.
MAX_PASSWORD_LENGTH = 72

_SPECIAL = re.compile(r"""[!@#$%^&*()_+\-=\[\]{};':"\\|,.<>/?`~]""")

_RULES: list[tuple[str, "re.Pattern[str]"]] = [
    ("Password must contain at least one lowercase letter.", re.compile(r"[a-z]")),
    ("Password must contain at least one uppercase letter.", re.compile(r"[A-Z]")),
    ("Password must contain at least one digit.", re.compile(r"[0-9]")),
    ("Password must contain at least one special character (e.g. !@#$%^&*).", _SPECIAL),
]


def check_password(value: str) -> list[str]:
    """Return the list of policy violations for value. Empty list means OK."""
    errors: list[str] = []
    if len(value) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if len(value.encode("utf-8")) > MAX_PASSWORD_LENGTH:
        errors.append(f"Password must be at most {MAX_PASSWORD_LENGTH} bytes.")
    for message, pattern in _RULES:
        if not pattern.search(value):
            errors.append(message)
    return errors


def enforce_password(value: str) -> None:
    """Raise PasswordPolicyError if value breaks any rule."""
    errors = check_password(value)
    if errors:
        raise PasswordPolicyError(errors)
