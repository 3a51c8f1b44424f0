"""
auth/store.py -- SQLAlchemy Core persistence layer for principals and refresh tokens.

Pattern: Repository + Data Mapper.
CredentialStore is the repository; _row_to_principal / _row_to_record are the
mappers. Session and account code never touches SQL directly.

Failure contract:
  Lookups return None when nothing matches. Writes against a missing
  principal raise PrincipalNotFound. Duplicate usernames / emails raise
  DuplicateUsername / DuplicateEmail -- checked up front for a clear error
  and re-checked after an IntegrityError for the concurrent-insert race.
  Any other SQLAlchemyError is logged with its traceback and re-raised as
  StorageError; callers never see driver exceptions.

Concurrency:
  No explicit locking. Every statement relies on the database's row-level
  guarantees. Revocation is monotone (revoked 0 -> 1 only), and
  revoke_refresh_record() is a conditional UPDATE ... WHERE revoked = 0 whose
  rowcount tells exactly one caller that it won a rotation race.

Timestamps are ISO 8601 UTC strings with fixed microsecond precision, so
lexicographic comparison in SQL matches chronological order.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DuplicateEmail, DuplicateUsername, PrincipalNotFound, StorageError
from auth.models import Principal, RefreshTokenRecord

logger = logging.getLogger("sessiongate.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_principals = Table(
    "principals",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("fullname", String(255), nullable=False, server_default=""),
    Column("password_hash", Text, nullable=False),
    Column("level", Integer, nullable=False, server_default="1"),
    Column("active", Integer, nullable=False, server_default="0"),
    Column("must_change_password", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    # Not a FOREIGN KEY: records outlive their principal as revoked audit rows.
    Column("principal_id", String(36), nullable=False),
    Column("token_hash", String(64), nullable=False),  # HMAC-SHA256 hex
    Column("expires_at", String(32), nullable=False),
    Column("revoked", Integer, nullable=False, server_default="0"),
    Column("revoked_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Index("ix_refresh_tokens_principal_live", "principal_id", "revoked", "expires_at"),
)

_UPDATABLE_FIELDS = frozenset({"fullname", "level", "active"})


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases ignore it.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for Principal and RefreshTokenRecord entities.

    Usage:
        store = CredentialStore(settings.database_url)
        store.create_principal(Principal(username="admin", email="a@b.c", fullname="Admin",
                                         password_hash=hasher.hash_password("S3cret!")))
        principal = store.find_principal("admin")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        """Yield a connection; translate driver failures into StorageError.

        IntegrityError passes through untouched -- create_principal() turns
        it into a duplicate error.
        """
        try:
            with self.engine.connect() as conn:
                yield conn
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("Credential store operation failed")
            raise StorageError("Credential store unavailable.") from exc

    # ------------------------------------------------------------------
    # Principal queries
    # ------------------------------------------------------------------

    def has_principals(self) -> bool:
        """Return True if at least one principal exists."""
        with self._connect() as conn:
            result = conn.execute(select(func.count()).select_from(_principals)).scalar()
        return (result or 0) > 0

    def find_principal(self, username_or_email: str) -> Principal | None:
        """Look up by exact username, falling back to case-insensitive email. None if neither matches."""
        with self._connect() as conn:
            row = conn.execute(_principals.select().where(_principals.c.username == username_or_email)).fetchone()
            if row is None:
                row = conn.execute(
                    _principals.select().where(func.lower(_principals.c.email) == username_or_email.lower())
                ).fetchone()
        return _row_to_principal(row) if row is not None else None

    def find_principal_by_id(self, principal_id: str) -> Principal | None:
        with self._connect() as conn:
            row = conn.execute(_principals.select().where(_principals.c.id == principal_id)).fetchone()
        return _row_to_principal(row) if row is not None else None

    def list_principals(
        self,
        active: Optional[bool] = None,
        level: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Principal]:
        """Return principals ordered by username, optionally filtered."""
        query = _principals.select().order_by(_principals.c.username).limit(limit).offset(offset)
        for clause in _filters(active, level):
            query = query.where(clause)
        with self._connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_principal(r) for r in rows]

    def count_principals(self, active: Optional[bool] = None, level: Optional[int] = None) -> int:
        query = select(func.count()).select_from(_principals)
        for clause in _filters(active, level):
            query = query.where(clause)
        with self._connect() as conn:
            return conn.execute(query).scalar() or 0

    def create_principal(self, principal: Principal) -> Principal:
        """Insert a principal and return it as stored.

        Raises DuplicateUsername / DuplicateEmail. The pre-check gives the
        common case a precise error; the IntegrityError branch covers two
        concurrent inserts that both passed the pre-check.
        """
        new_id = principal.id or str(uuid.uuid4())
        with self._connect() as conn:
            _check_unique(conn, principal.username, principal.email)
            try:
                conn.execute(
                    _principals.insert().values(
                        id=new_id,
                        username=principal.username,
                        email=principal.email,
                        fullname=principal.fullname,
                        password_hash=principal.password_hash,
                        level=principal.level,
                        active=1 if principal.active else 0,
                        must_change_password=1 if principal.must_change_password else 0,
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                _check_unique(conn, principal.username, principal.email)
                logger.exception("Principal insert violated a constraint other than username/email")
                raise StorageError("Could not create user.") from exc
        created = self.find_principal_by_id(new_id)
        if created is None:
            raise StorageError("User not found after write.")
        return created

    def update_principal(self, principal_id: str, **fields) -> Principal:
        """Update mutable fields (fullname, level, active) and return the result.

        Unknown keys raise ValueError rather than being ignored -- column names
        come from the whitelist, never from raw input. Raises PrincipalNotFound.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown principal fields: {sorted(unknown)!r}")
        if not fields:
            raise ValueError("No fields to update.")
        if "active" in fields:
            fields["active"] = 1 if fields["active"] else 0
        with self._connect() as conn:
            result = conn.execute(_principals.update().where(_principals.c.id == principal_id).values(**fields))
            conn.commit()
        if result.rowcount == 0:
            raise PrincipalNotFound()
        updated = self.find_principal_by_id(principal_id)
        if updated is None:
            raise PrincipalNotFound()
        return updated

    def set_password(self, principal_id: str, new_hash: str) -> None:
        """Store a new password hash. Always clears must_change_password and activates."""
        with self._connect() as conn:
            result = conn.execute(
                _principals.update()
                .where(_principals.c.id == principal_id)
                .values(password_hash=new_hash, must_change_password=0, active=1)
            )
            conn.commit()
        if result.rowcount == 0:
            raise PrincipalNotFound()

    def delete_principal(self, principal_id: str) -> None:
        """Delete a principal and revoke its refresh records in one transaction."""
        with self._connect() as conn:
            result = conn.execute(_principals.delete().where(_principals.c.id == principal_id))
            if result.rowcount == 0:
                conn.rollback()
                raise PrincipalNotFound()
            conn.execute(_revoke_all_stmt(principal_id))
            conn.commit()

    # ------------------------------------------------------------------
    # Refresh-token records
    # ------------------------------------------------------------------

    def insert_refresh_record(self, principal_id: str, token_hash: str, expires_at: datetime) -> RefreshTokenRecord:
        created_at = _now_iso()
        expires_iso = to_iso(expires_at)
        with self._connect() as conn:
            result = conn.execute(
                _refresh_tokens.insert().values(
                    principal_id=principal_id,
                    token_hash=token_hash,
                    expires_at=expires_iso,
                    revoked=0,
                    created_at=created_at,
                )
            )
            conn.commit()
        return RefreshTokenRecord(
            id=result.inserted_primary_key[0],
            principal_id=principal_id,
            token_hash=token_hash,
            expires_at=expires_iso,
            created_at=created_at,
        )

    def list_live_refresh_records(self, principal_id: str, now: Optional[datetime] = None) -> list[RefreshTokenRecord]:
        """Return non-revoked, unexpired records for a principal (newest first)."""
        cutoff = to_iso(now or datetime.now(timezone.utc))
        with self._connect() as conn:
            rows = conn.execute(
                _refresh_tokens.select()
                .where(
                    (_refresh_tokens.c.principal_id == principal_id)
                    & (_refresh_tokens.c.revoked == 0)
                    & (_refresh_tokens.c.expires_at > cutoff)
                )
                .order_by(_refresh_tokens.c.id.desc())
            ).fetchall()
        return [_row_to_record(r) for r in rows]

    def revoke_refresh_record(self, record_id: int) -> bool:
        """Revoke one record. Returns True only for the call that flipped it."""
        with self._connect() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.id == record_id) & (_refresh_tokens.c.revoked == 0))
                .values(revoked=1, revoked_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def revoke_all_refresh_records(self, principal_id: str) -> int:
        """Revoke every not-yet-revoked record of a principal. Idempotent; returns count."""
        with self._connect() as conn:
            result = conn.execute(_revoke_all_stmt(principal_id))
            conn.commit()
        return result.rowcount

    def purge_refresh_records(self, expired_before: datetime) -> int:
        """Physically delete records that expired before the given moment.

        Maintenance only; the normal flow never deletes records.
        """
        with self._connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at < to_iso(expired_before)))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Statement helpers
# ---------------------------------------------------------------------------


def _filters(active: Optional[bool], level: Optional[int]) -> list:
    clauses = []
    if active is not None:
        clauses.append(_principals.c.active == (1 if active else 0))
    if level is not None:
        clauses.append(_principals.c.level == level)
    return clauses


def _check_unique(conn: Connection, username: str, email: str) -> None:
    if conn.execute(select(_principals.c.id).where(_principals.c.username == username)).first() is not None:
        raise DuplicateUsername()
    taken = select(_principals.c.id).where(func.lower(_principals.c.email) == email.lower())
    if conn.execute(taken).first() is not None:
        raise DuplicateEmail()


def _revoke_all_stmt(principal_id: str):
    return (
        _refresh_tokens.update()
        .where((_refresh_tokens.c.principal_id == principal_id) & (_refresh_tokens.c.revoked == 0))
        .values(revoked=1, revoked_at=_now_iso())
    )


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_principal(row) -> Principal:
    return Principal(
        id=row.id,
        username=row.username,
        email=row.email,
        fullname=row.fullname,
        password_hash=row.password_hash,
        level=row.level,
        active=bool(row.active),
        must_change_password=bool(row.must_change_password),
        created_at=row.created_at,
    )


def _row_to_record(row) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        id=row.id,
        principal_id=row.principal_id,
        token_hash=row.token_hash,
        expires_at=row.expires_at,
        revoked=bool(row.revoked),
        revoked_at=row.revoked_at,
        created_at=row.created_at,
    )
