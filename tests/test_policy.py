"""
tests/test_policy.py -- Password policy rules and their enforcement before storage.
"""

from __future__ import annotations

import pytest

from auth.accounts import AccountService
from auth.errors import PasswordPolicyError
from auth.policy import check_password, enforce_password
from auth.store import CredentialStore


def test_compliant_password_has_no_errors() -> None:
    assert check_password("Abcde1!") == []


def test_all_failures_are_reported_together() -> None:
    errors = check_password("abc")
    assert len(errors) == 4
    joined = " ".join(errors)
    assert "at least 6" in joined
    assert "uppercase" in joined
    assert "digit" in joined
    assert "special" in joined


@pytest.mark.parametrize(
    "password,fragment",
    [
        ("ABCDE1!", "lowercase"),
        ("abcde1!", "uppercase"),
        ("Abcdef!", "digit"),
        ("Abcdef1", "special"),
        ("Ab1!", "at least 6"),
    ],
)
def test_single_rule_failures(password: str, fragment: str) -> None:
    errors = check_password(password)
    assert len(errors) == 1
    assert fragment in errors[0]


def test_over_72_bytes_is_rejected() -> None:
    assert any("72" in e for e in check_password("Aa1!" + "x" * 70))


def test_enforce_raises_with_error_list() -> None:
    with pytest.raises(PasswordPolicyError) as excinfo:
        enforce_password("abc")
    assert excinfo.value.status_code == 400
    assert len(excinfo.value.errors) == 4
    assert excinfo.value.detail == {"errors": excinfo.value.errors}


def test_weak_password_never_reaches_storage(accounts: AccountService, store: CredentialStore) -> None:
    with pytest.raises(PasswordPolicyError):
        accounts.create(username="shorty", email="shorty@example.com", fullname="Short Pass", password="abc")
    assert store.find_principal("shorty") is None
    assert not store.has_principals()
