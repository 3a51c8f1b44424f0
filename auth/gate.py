"""
auth/gate.py -- Authorization Gate: the per-request role-level decision.

authorize() is a pure, total function. It receives the verified claims as an
argument (never from request state) and returns a tagged Decision. Levels are
a flat integer scale compared numerically; there is no role hierarchy graph.

Route wiring lives in auth/dependencies.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from auth.models import AccessClaims


class DenyReason(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    INSUFFICIENT_LEVEL = "insufficient_level"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None


ALLOW = Decision(allowed=True)
DENY_UNAUTHENTICATED = Decision(allowed=False, reason=DenyReason.UNAUTHENTICATED)
DENY_INSUFFICIENT_LEVEL = Decision(allowed=False, reason=DenyReason.INSUFFICIENT_LEVEL)


def authorize(claims: Optional[AccessClaims], required_level: int) -> Decision:
    """Allow iff claims is present and claims.level >= required_level."""
    if claims is None:
        return DENY_UNAUTHENTICATED
    if claims.level < required_level:
        return DENY_INSUFFICIENT_LEVEL
    return ALLOW
