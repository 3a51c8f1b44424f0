"""
tests/test_cli.py -- main.py administrative commands against a temporary SQLite file.
"""

from __future__ import annotations

import getpass

import pytest

import main as cli
from auth.store import CredentialStore
from core.config import get_settings
from tests.conftest import ADMIN_PASSWORD, TEST_SECRET


@pytest.fixture
def db_url(tmp_path, monkeypatch) -> str:
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("SECRET_KEY", TEST_SECRET)
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    get_settings.cache_clear()
    yield url
    get_settings.cache_clear()


def _answer_prompts(monkeypatch, *answers: str) -> None:
    replies = iter(answers)
    monkeypatch.setattr(getpass, "getpass", lambda prompt="": next(replies))


def test_create_user_bootstraps_active_admin(db_url: str, monkeypatch, capsys) -> None:
    _answer_prompts(monkeypatch, ADMIN_PASSWORD, ADMIN_PASSWORD)
    assert cli.main(["create-user", "rootadmin", "Root@Example.com", "Root Admin"]) == 0
    assert "Created rootadmin" in capsys.readouterr().out

    store = CredentialStore(db_url)
    try:
        principal = store.find_principal("root@example.com")
        assert principal.level == 10
        assert principal.active is True
        assert principal.must_change_password is False
    finally:
        store.close()


def test_create_user_rejects_weak_password(db_url: str, monkeypatch, capsys) -> None:
    _answer_prompts(monkeypatch, "abc", "abc")
    assert cli.main(["create-user", "rootadmin", "root@example.com", "Root Admin"]) == 1
    assert "uppercase" in capsys.readouterr().out


def test_create_user_rejects_mismatched_confirmation(db_url: str, monkeypatch) -> None:
    _answer_prompts(monkeypatch, ADMIN_PASSWORD, ADMIN_PASSWORD + "x")
    assert cli.main(["create-user", "rootadmin", "root@example.com", "Root Admin"]) == 1


def test_duplicate_username_is_reported(db_url: str, monkeypatch, capsys) -> None:
    _answer_prompts(monkeypatch, ADMIN_PASSWORD, ADMIN_PASSWORD, ADMIN_PASSWORD, ADMIN_PASSWORD)
    assert cli.main(["create-user", "rootadmin", "root@example.com", "Root Admin"]) == 0
    assert cli.main(["create-user", "rootadmin", "other@example.com", "Root Admin"]) == 1
    assert "Username already exists." in capsys.readouterr().out


def test_purge_tokens(db_url: str, capsys) -> None:
    assert cli.main(["purge-tokens", "--retention-days", "0"]) == 0
    assert "Purged 0 refresh record(s)" in capsys.readouterr().out


def test_no_command_prints_help(db_url: str, capsys) -> None:
    assert cli.main([]) == 0
    assert "create-user" in capsys.readouterr().out
