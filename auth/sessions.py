"""
auth/sessions.py -- Session Manager: login, refresh, logout.

Orchestrates the Credential Store, Secret Hasher and Token Codec. Every
failure is raised as a typed AuthError (auth/errors.py); this module never
decides HTTP status codes or touches cookies.

Policies:
  Rotation -- revoke-on-rotate. A refresh token is single-use: refresh()
      revokes the matched record with a conditional update before minting the
      new pair. Two concurrent refreshes presenting the same token cannot both
      win; the loser gets RefreshInvalid, as does any later replay.

  Sessions -- multi-device. Each login adds a live record; logout (and any
      password change) revokes all of them.

  Login order -- password first, then must_change_password, then active.
      Accounts created by an administrator start inactive with a forced
      password change, so a correct password on such an account yields the
      restricted password-change token rather than a bare "inactive".

  Crash tolerance -- tokens are signed before their record is written. If the
      write never happens the refresh token simply fails validation later.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from auth.errors import (
    AccountInactive,
    IntegrityFailure,
    InvalidCredentials,
    MustChangePassword,
    PrincipalGone,
    RefreshInvalid,
    RefreshRequired,
)
from auth.hashing import SecretHasher
from auth.models import (
    ACCESS,
    PASSWORD_CHANGE,
    REFRESH,
    AccessClaims,
    LoginResult,
    Principal,
    RefreshTokenRecord,
    TokenPair,
)
from auth.store import CredentialStore
from auth.tokens import TokenCodec

logger = logging.getLogger("sessiongate.auth")


class SessionManager:
    """Issues, rotates and revokes session tokens.

    Usage:
        sessions = SessionManager(store, hasher, codec)
        result = sessions.login("admin", "S3cret!")
        pair = sessions.refresh(result.refresh_token)
        sessions.logout(result.claims.id)
    """

    def __init__(
        self,
        store: CredentialStore,
        hasher: SecretHasher,
        codec: TokenCodec,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        password_change_ttl: timedelta = timedelta(minutes=10),
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.codec = codec
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.password_change_ttl = password_change_ttl

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def authenticate(self, identifier: str, password: str) -> Principal:
        """Resolve identifier (username or email) and check password.

        Always runs bcrypt whether or not the principal exists [C1]:
        - Unknown identifier: bcrypt runs against the hasher's dummy hash.
        - Wrong password: bcrypt runs against the real hash.
        Both raise the same InvalidCredentials.
        """
        principal = self.store.find_principal(identifier) if identifier else None
        if principal is None:
            self.hasher.burn(password)
            logger.warning("Login failed: unknown identifier")
            raise InvalidCredentials()
        if not self.hasher.verify_password(password, principal.password_hash):
            logger.warning("Login failed: bad password for principal %s", principal.id)
            raise InvalidCredentials()
        return principal

    def login(self, identifier: str, password: str) -> LoginResult:
        principal = self.authenticate(identifier, password)

        if principal.must_change_password:
            logger.info("Login for principal %s requires a password change", principal.id)
            token = self.codec.issue(principal, self.password_change_ttl, token_type=PASSWORD_CHANGE)
            raise MustChangePassword(password_change_token=token)

        if not principal.active:
            logger.warning("Login refused: principal %s is inactive", principal.id)
            raise AccountInactive()

        pair = self._issue_pair(principal)
        logger.info("Login succeeded for principal %s", principal.id)
        return LoginResult(
            principal=principal.public(),
            claims=pair.claims,
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
        )

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, presented: str | None) -> TokenPair:
        """Exchange a live refresh token for a new access + refresh pair."""
        if not presented:
            raise RefreshRequired()

        token_claims = self.codec.verify(presented, token_type=REFRESH)
        if token_claims is None:
            raise RefreshInvalid()

        match = self._match_live_record(token_claims, presented)
        if match is None:
            logger.warning("Refresh rejected for principal %s: no live record matches", token_claims.id)
            raise RefreshInvalid()

        principal = self.store.find_principal_by_id(token_claims.id)
        if principal is None:
            logger.warning("Refresh rejected: principal %s no longer exists", token_claims.id)
            raise PrincipalGone()
        if not principal.active:
            logger.warning("Refresh rejected: principal %s is inactive", principal.id)
            raise AccountInactive()

        if not self.store.revoke_refresh_record(match.id):
            # Another request rotated this token first.
            logger.warning("Refresh token reuse detected for principal %s (record %s)", principal.id, match.id)
            raise RefreshInvalid()

        return self._issue_pair(principal)

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    def logout(self, principal_id: str) -> int:
        """Revoke every live refresh record of principal_id. Idempotent."""
        count = self.store.revoke_all_refresh_records(principal_id)
        logger.info("Logout for principal %s revoked %d refresh token(s)", principal_id, count)
        return count

    def purge_expired(self, retention: timedelta = timedelta(0)) -> int:
        """Delete refresh records that expired more than `retention` ago."""
        cutoff = datetime.now(timezone.utc) - retention
        count = self.store.purge_refresh_records(cutoff)
        if count:
            logger.info("Purged %d expired refresh record(s)", count)
        return count

    # ------------------------------------------------------------------
    # Token introspection
    # ------------------------------------------------------------------

    def verify_access(self, token: str | None) -> AccessClaims | None:
        return self.codec.verify(token, token_type=ACCESS)

    def identify_refresh(self, token: str | None) -> AccessClaims | None:
        """Claims of a refresh token that still matches a live record.

        Unlike refresh() this never revokes anything. A token that was
        rotated away, revoked by logout or never stored returns None.
        """
        token_claims = self.codec.verify(token, token_type=REFRESH)
        if token_claims is None:
            return None
        if self._match_live_record(token_claims, token) is None:
            logger.warning("Refresh token for principal %s matches no live record", token_claims.id)
            return None
        return token_claims

    def verify_password_change(self, token: str | None) -> AccessClaims | None:
        return self.codec.verify(token, token_type=PASSWORD_CHANGE)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _match_live_record(self, token_claims: AccessClaims, presented: str) -> RefreshTokenRecord | None:
        # O(n) over the principal's live records; n is the number of devices.
        digest = self.hasher.digest_token(presented)
        for record in self.store.list_live_refresh_records(token_claims.id):
            if self.hasher.digests_match(record.token_hash, digest):
                return record
        return None

    def _issue_pair(self, principal: Principal) -> TokenPair:
        access_token = self.codec.issue(principal, self.access_ttl, token_type=ACCESS)
        refresh_token = self.codec.issue(principal, self.refresh_ttl, token_type=REFRESH)
        self.store.insert_refresh_record(
            principal_id=principal.id,
            token_hash=self.hasher.digest_token(refresh_token),
            expires_at=datetime.now(timezone.utc) + self.refresh_ttl,
        )
        claims = self.codec.verify(access_token, token_type=ACCESS)
        if claims is None:
            # Only reachable with a misconfigured codec (non-positive TTL, algorithm mismatch).
            logger.error("Freshly issued access token for principal %s failed verification", principal.id)
            raise IntegrityFailure("Could not issue session tokens.")
        return TokenPair(access_token=access_token, refresh_token=refresh_token, claims=claims)
