"""
auth/accounts.py -- Principal administration on top of the Credential Store.

Wraps the store with the rules it must not know about: the password policy
runs before anything is hashed or written, passwords are hashed here, and
anything that should end existing sessions (deactivation, password change,
password reset) revokes the principal's refresh records.

Every method returns PublicPrincipal views; password hashes stay inside.
"""

from __future__ import annotations

import logging
from typing import Optional

from auth.errors import InvalidCredentials, NoChanges, PrincipalGone, PrincipalNotFound
from auth.hashing import SecretHasher
from auth.models import Principal, PublicPrincipal
from auth.policy import enforce_password
from auth.store import CredentialStore

logger = logging.getLogger("sessiongate.auth")


class AccountService:
    def __init__(self, store: CredentialStore, hasher: SecretHasher) -> None:
        self.store = store
        self.hasher = hasher

    def create(
        self,
        username: str,
        email: str,
        fullname: str,
        password: str,
        level: int = 1,
        active: bool = False,
        must_change_password: bool = True,
    ) -> PublicPrincipal:
        """Create a principal. Raises PasswordPolicyError before storage is touched.

        Emails are stored lowercased; login and uniqueness compare them
        case-insensitively.
        """
        enforce_password(password)
        created = self.store.create_principal(
            Principal(
                username=username,
                email=email.strip().lower(),
                fullname=fullname,
                password_hash=self.hasher.hash_password(password),
                level=level,
                active=active,
                must_change_password=must_change_password,
            )
        )
        logger.info("Created principal %s (%s, level %d)", created.id, created.username, created.level)
        return created.public()

    def get(self, principal_id: str) -> PublicPrincipal:
        principal = self.store.find_principal_by_id(principal_id)
        if principal is None:
            raise PrincipalNotFound()
        return principal.public()

    def list_principals(
        self,
        active: Optional[bool] = None,
        level: Optional[int] = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[PublicPrincipal], int]:
        """Return one page of principals and the total matching count."""
        offset = (max(page, 1) - 1) * limit
        rows = self.store.list_principals(active=active, level=level, limit=limit, offset=offset)
        total = self.store.count_principals(active=active, level=level)
        return [p.public() for p in rows], total

    def update(
        self,
        principal_id: str,
        fullname: Optional[str] = None,
        level: Optional[int] = None,
        active: Optional[bool] = None,
    ) -> PublicPrincipal:
        fields = {k: v for k, v in (("fullname", fullname), ("level", level), ("active", active)) if v is not None}
        if not fields:
            raise NoChanges()
        updated = self.store.update_principal(principal_id, **fields)
        if active is False:
            revoked = self.store.revoke_all_refresh_records(principal_id)
            logger.info("Deactivated principal %s; revoked %d refresh token(s)", principal_id, revoked)
        return updated.public()

    def reset_password(self, principal_id: str, new_password: str) -> None:
        """Administrative reset. Activates the account and ends its sessions."""
        enforce_password(new_password)
        self.store.set_password(principal_id, self.hasher.hash_password(new_password))
        self.store.revoke_all_refresh_records(principal_id)
        logger.info("Password reset for principal %s", principal_id)

    def change_own_password(self, principal_id: str, current_password: str, new_password: str) -> None:
        """Self-service change. The current password must verify."""
        enforce_password(new_password)
        principal = self.store.find_principal_by_id(principal_id)
        if principal is None:
            raise PrincipalGone()
        if not self.hasher.verify_password(current_password, principal.password_hash):
            logger.warning("Password change refused for principal %s: bad current password", principal_id)
            raise InvalidCredentials()
        self.store.set_password(principal_id, self.hasher.hash_password(new_password))
        self.store.revoke_all_refresh_records(principal_id)
        logger.info("Principal %s changed its password", principal_id)

    def delete(self, principal_id: str) -> None:
        self.store.delete_principal(principal_id)
        logger.info("Deleted principal %s", principal_id)
