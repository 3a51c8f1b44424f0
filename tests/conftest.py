"""
tests/conftest.py -- Shared test fixtures for SessionGate tests.

This module provides:
  - make_settings(): Settings for an isolated in-memory DB with fast bcrypt
  - store / hasher / codec / sessions / accounts: wired core components
  - seed_principal(): create a principal directly through the AccountService
  - api: TestClient over create_app() with an admin and a plain user seeded

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. Each
fixture gets a uuid-suffixed name so tests never share rows.

Settings are built explicitly and passed to create_app(); get_settings() and
its cache are never touched.
"""

from __future__ import annotations

import uuid
from collections.abc import Generator
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import create_app
from auth.accounts import AccountService
from auth.hashing import SecretHasher
from auth.models import PublicPrincipal
from auth.sessions import SessionManager
from auth.store import CredentialStore
from auth.tokens import TokenCodec
from core.config import Settings

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"

ADMIN_PASSWORD = "Adm1n!pass"
USER_PASSWORD = "Us3r!pass"


def memory_db_url(prefix: str = "test") -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_settings(**overrides) -> Settings:
    values = dict(
        secret_key=TEST_SECRET,
        database_url=memory_db_url(),
        bcrypt_rounds=4,
        rate_limit_enabled=False,
    )
    values.update(overrides)
    return Settings(**values)


def seed_principal(
    accounts: AccountService,
    username: str,
    password: str,
    level: int = 1,
    active: bool = True,
    must_change_password: bool = False,
) -> PublicPrincipal:
    return accounts.create(
        username=username,
        email=f"{username}@example.com",
        fullname=f"{username.title()} Person",
        password=password,
        level=level,
        active=active,
        must_change_password=must_change_password,
    )


# ---------------------------------------------------------------------------
# Core components
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[CredentialStore, None, None]:
    s = CredentialStore(memory_db_url("store"))
    yield s
    s.close()


@pytest.fixture
def hasher() -> SecretHasher:
    return SecretHasher(TEST_SECRET, rounds=4)


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(TEST_SECRET)


@pytest.fixture
def sessions(store: CredentialStore, hasher: SecretHasher, codec: TokenCodec) -> SessionManager:
    return SessionManager(store, hasher, codec)


@pytest.fixture
def accounts(store: CredentialStore, hasher: SecretHasher) -> AccountService:
    return AccountService(store, hasher)


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    settings: Settings
    admin: PublicPrincipal
    user: PublicPrincipal

    def login(self, identifier: str, password: str):
        return self.client.post("/api/v1/auth/login", json={"identifier": identifier, "password": password})

    def login_admin(self):
        resp = self.login(self.admin.username, ADMIN_PASSWORD)
        assert resp.status_code == 200, resp.text
        return resp

    def login_user(self):
        resp = self.login(self.user.username, USER_PASSWORD)
        assert resp.status_code == 200, resp.text
        return resp


@pytest.fixture
def api() -> Generator[ApiContext, None, None]:
    """Yield an ApiContext over a fresh app.

    The admin sits exactly at the administrative level (5); the user at 1.
    The client's cookie jar starts empty; call ctx.login_admin() or
    ctx.login_user() to get session cookies.
    """
    settings = make_settings()
    app = create_app(settings)
    admin = seed_principal(app.state.accounts, "testadmin", ADMIN_PASSWORD, level=5)
    user = seed_principal(app.state.accounts, "plainuser", USER_PASSWORD, level=1)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client=client, settings=settings, admin=admin, user=user)
    limiter.reset()
