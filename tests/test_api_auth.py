"""
tests/test_api_auth.py -- Integration tests for the /api/v1/auth/* routes.

Runs through the real ASGI stack (create_app + TestClient) so cookie
attributes, error envelopes and status codes are checked as clients see them.
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from api.limiter import api_limit, limiter
from api.main import create_app
from tests.conftest import USER_PASSWORD, ApiContext, make_settings, seed_principal

NEW_PASSWORD = "N3w!secret"


def _set_cookie_headers(resp) -> list[str]:
    return [v for k, v in resp.headers.multi_items() if k.lower() == "set-cookie"]


class TestLogin:
    def test_login_sets_http_only_strict_cookies(self, api: ApiContext) -> None:
        resp = api.login_user()
        body = resp.json()
        assert body["success"] is True
        assert body["user"]["username"] == "plainuser"
        assert "password_hash" not in body["user"]
        assert "password" not in body["user"]
        assert body["expires_in"] == api.settings.access_token_ttl_seconds
        assert resp.headers["cache-control"] == "no-store"

        headers = _set_cookie_headers(resp)
        for name in ("access_token", "refresh_token"):
            header = next(h for h in headers if h.startswith(f"{name}="))
            lowered = header.lower()
            assert "httponly" in lowered
            assert "samesite=strict" in lowered
            assert "path=/" in lowered

    def test_login_by_email(self, api: ApiContext) -> None:
        resp = api.client.post("/api/v1/auth/login", json={"email": "plainuser@example.com", "password": USER_PASSWORD})
        assert resp.status_code == 200

    def test_bad_credentials_are_uniform(self, api: ApiContext) -> None:
        unknown = api.login("nobody", USER_PASSWORD)
        wrong = api.login("plainuser", "Wr0ng!pass")
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()
        assert wrong.json()["error"]["code"] == "bad_credentials"
        assert wrong.headers["cache-control"] == "no-store"

    def test_missing_identifier_is_400(self, api: ApiContext) -> None:
        resp = api.client.post("/api/v1/auth/login", json={"password": USER_PASSWORD})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_inactive_is_403(self, api: ApiContext) -> None:
        seed_principal(api.client.app.state.accounts, "sleepy", USER_PASSWORD, active=False)
        resp = api.login("sleepy", USER_PASSWORD)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "account_inactive"

    def test_forced_password_change_flow(self, api: ApiContext) -> None:
        seed_principal(api.client.app.state.accounts, "fresher", USER_PASSWORD, active=False, must_change_password=True)
        resp = api.login("fresher", USER_PASSWORD)
        assert resp.status_code == 403
        body = resp.json()
        assert body["error"]["code"] == "must_change_password"
        assert body["must_change_password"] is True
        change_token = body["password_change_token"]
        assert "access_token" not in resp.cookies

        # The restricted token does not open ordinary routes.
        headers = {"Authorization": f"Bearer {change_token}"}
        assert api.client.get("/api/v1/auth/session", headers=headers).status_code == 401

        changed = api.client.post(
            "/api/v1/auth/password",
            json={"current_password": USER_PASSWORD, "new_password": NEW_PASSWORD},
            headers=headers,
        )
        assert changed.status_code == 200, changed.text
        assert api.login("fresher", NEW_PASSWORD).status_code == 200


class TestRefresh:
    def test_refresh_rotates_cookies(self, api: ApiContext) -> None:
        login = api.login_user()
        old_refresh = login.cookies["refresh_token"]
        resp = api.client.post("/api/v1/auth/refresh")
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert resp.cookies["refresh_token"] != old_refresh
        assert api.client.get("/api/v1/auth/session").status_code == 200

    def test_replayed_refresh_token_is_rejected(self, api: ApiContext) -> None:
        old_refresh = api.login_user().cookies["refresh_token"]
        assert api.client.post("/api/v1/auth/refresh").status_code == 200

        api.client.cookies.clear()
        api.client.cookies.set("refresh_token", old_refresh)
        resp = api.client.post("/api/v1/auth/refresh")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "refresh_invalid"
        assert any(h.startswith("refresh_token=") for h in _set_cookie_headers(resp))

    def test_refresh_without_cookie(self, api: ApiContext) -> None:
        resp = api.client.post("/api/v1/auth/refresh")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "refresh_required"


class TestLogoutAndSession:
    def test_session_returns_claims(self, api: ApiContext) -> None:
        api.login_admin()
        resp = api.client.get("/api/v1/auth/session")
        assert resp.status_code == 200
        user = resp.json()["user"]
        assert user["id"] == api.admin.id
        assert user["level"] == 5
        assert user["exp"] > user["iat"]

    def test_session_requires_auth(self, api: ApiContext) -> None:
        resp = api.client.get("/api/v1/auth/session")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_bearer_header_is_accepted(self, api: ApiContext) -> None:
        token = api.login_user().cookies["access_token"]
        api.client.cookies.clear()
        resp = api.client.get("/api/v1/auth/session", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200

    def test_logout_revokes_refresh_and_clears_cookies(self, api: ApiContext) -> None:
        refresh_token = api.login_user().cookies["refresh_token"]
        resp = api.client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert resp.json()["revoked"] == 1
        headers = _set_cookie_headers(resp)
        assert any(h.startswith("access_token=") for h in headers)
        assert any(h.startswith("refresh_token=") for h in headers)

        api.client.cookies.clear()
        api.client.cookies.set("refresh_token", refresh_token)
        assert api.client.post("/api/v1/auth/refresh").status_code == 401

    def test_logout_with_rotated_refresh_token_revokes_nothing(self, api: ApiContext) -> None:
        stale = api.login_user().cookies["refresh_token"]
        current = api.client.post("/api/v1/auth/refresh").cookies["refresh_token"]

        api.client.cookies.clear()
        api.client.cookies.set("refresh_token", stale)
        resp = api.client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert resp.json()["revoked"] == 0

        api.client.cookies.clear()
        api.client.cookies.set("refresh_token", current)
        assert api.client.post("/api/v1/auth/refresh").status_code == 200

    def test_logout_without_session_is_ok(self, api: ApiContext) -> None:
        resp = api.client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert resp.json()["revoked"] == 0


class TestPasswordChange:
    def test_change_ends_sessions(self, api: ApiContext) -> None:
        refresh_token = api.login_user().cookies["refresh_token"]
        resp = api.client.post(
            "/api/v1/auth/password",
            json={"current_password": USER_PASSWORD, "new_password": NEW_PASSWORD},
        )
        assert resp.status_code == 200
        api.client.cookies.clear()
        api.client.cookies.set("refresh_token", refresh_token)
        assert api.client.post("/api/v1/auth/refresh").status_code == 401
        assert api.login("plainuser", NEW_PASSWORD).status_code == 200

    def test_weak_new_password_lists_every_rule(self, api: ApiContext) -> None:
        api.login_user()
        resp = api.client.post(
            "/api/v1/auth/password",
            json={"current_password": USER_PASSWORD, "new_password": "abc"},
        )
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "password_policy"
        assert len(error["detail"]["errors"]) == 4

    def test_wrong_current_password(self, api: ApiContext) -> None:
        api.login_user()
        resp = api.client.post(
            "/api/v1/auth/password",
            json={"current_password": "Wr0ng!pass", "new_password": NEW_PASSWORD},
        )
        assert resp.status_code == 401


def test_login_rate_limit_returns_429() -> None:
    settings = make_settings(rate_limit_enabled=True, login_rate_limit="2 per minute")
    app = create_app(settings)
    limiter.reset()
    try:
        with TestClient(app) as client:
            payload = {"identifier": "nobody", "password": "Wr0ng!pass"}
            assert client.post("/api/v1/auth/login", json=payload).status_code == 401
            assert client.post("/api/v1/auth/login", json=payload).status_code == 401
            resp = client.post("/api/v1/auth/login", json=payload)
            assert resp.status_code == 429
            assert resp.json()["error"]["code"] == "rate_limited"
            assert "retry-after" in resp.headers
    finally:
        limiter.reset()
        limiter.enabled = False


def test_api_rate_limit_spans_routes_but_spares_health() -> None:
    settings = make_settings(rate_limit_enabled=True, api_rate_limit="3 per minute")
    app = create_app(settings)
    limiter.reset()
    try:
        with TestClient(app) as client:
            assert client.get("/api/v1/auth/session").status_code == 401
            assert client.post("/api/v1/auth/logout").status_code == 200
            assert client.get("/api/v1/users/missing").status_code == 401
            resp = client.get("/api/v1/auth/session")
            assert resp.status_code == 429
            assert resp.json()["error"]["code"] == "rate_limited"
            assert resp.headers["x-content-type-options"] == "nosniff"
            for _ in range(5):
                assert client.get("/api/v1/health").status_code == 200
    finally:
        limiter.reset()
        limiter.enabled = False


def test_latest_app_configures_the_shared_limiter() -> None:
    first = create_app(make_settings(rate_limit_enabled=True, api_rate_limit="7 per minute"))
    assert limiter.enabled is True
    assert api_limit() == "7 per minute"

    second = create_app(make_settings())
    assert limiter.enabled is False
    assert api_limit() == "100 per minute"
    first.state.store.close()
    second.state.store.close()
