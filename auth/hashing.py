"""
auth/hashing.py -- One-way hashing and constant-time comparison of secrets.

Two kinds of secret, two algorithms:

  Passwords: bcrypt, used directly (no passlib wrapper). Low-entropy secrets
       need bcrypt's cost factor. A dummy hash is computed once per hasher so
       a login for an unknown identifier still pays for one bcrypt check
       [C1 timing equalization].

  Refresh tokens: HMAC-SHA256(SECRET_KEY, raw_token). Refresh tokens are
       long random-bearing JWTs; bcrypt would truncate them at 72 bytes, which
       for a JWT is mostly the shared header. The HMAC digest covers the whole
       token and an attacker with the DB alone cannot forge a match without
       SECRET_KEY. Stored digests are compared with hmac.compare_digest.

Layer rule: no imports from api/ or core/. The secret and cost factor are
passed in by whoever builds the hasher.
"""

from __future__ import annotations

import hashlib
import hmac
import logging

import bcrypt

logger = logging.getLogger("sessiongate.auth")

BCRYPT_MAX_BYTES = 72


class SecretHasher:
    """Hashes and verifies passwords and refresh-token secrets.

    Usage:
        hasher = SecretHasher(settings.secret_key, rounds=settings.bcrypt_rounds)
        stored = hasher.hash_password("S3cret!")
        hasher.verify_password("S3cret!", stored)   # True
    """

    def __init__(self, secret_key: str, rounds: int = 12) -> None:
        self._key = secret_key.encode("utf-8")
        self.rounds = rounds
        self._dummy_hash = self.hash_password("sessiongate_timing_dummy")

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def hash_password(self, plain: str) -> str:
        """Return a salted bcrypt hash of plain.

        bcrypt only reads the first 72 bytes. The API layer caps passwords at
        72 characters; bytes beyond that are cut here so bcrypt 4.x does not
        raise on multi-byte input.
        """
        data = plain.encode("utf-8")[:BCRYPT_MAX_BYTES]
        return bcrypt.hashpw(data, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify_password(self, plain: str, hashed: str | None) -> bool:
        """Return True if plain matches hashed. Constant-time inside bcrypt.

        A None or malformed hash still runs one bcrypt check against the
        dummy hash so the caller's timing does not depend on it.
        """
        data = plain.encode("utf-8")[:BCRYPT_MAX_BYTES]
        if not hashed:
            bcrypt.checkpw(data, self._dummy_hash.encode("utf-8"))
            return False
        try:
            return bcrypt.checkpw(data, hashed.encode("utf-8"))
        except ValueError:
            logger.error("Stored password hash is not a valid bcrypt hash")
            return False

    def burn(self, plain: str) -> None:
        """Spend one bcrypt check on the dummy hash. Used when no principal matched."""
        self.verify_password(plain, None)

    # ------------------------------------------------------------------
    # Refresh-token secrets
    # ------------------------------------------------------------------

    def digest_token(self, raw_token: str) -> str:
        """Return HMAC-SHA256(SECRET_KEY, raw_token) as hex."""
        return hmac.new(self._key, raw_token.encode("utf-8"), hashlib.sha256).hexdigest()

    @staticmethod
    def digests_match(stored: str, presented: str) -> bool:
        return hmac.compare_digest(stored.encode("ascii"), presented.encode("ascii"))
