"""
tests/test_hashing.py -- Unit tests for SecretHasher (bcrypt passwords, HMAC token digests).
"""

from __future__ import annotations

from auth.hashing import SecretHasher
from tests.conftest import TEST_SECRET


class TestPasswords:
    def test_hash_is_not_plaintext_and_verifies(self, hasher: SecretHasher) -> None:
        stored = hasher.hash_password("S3cret!x")
        assert stored != "S3cret!x"
        assert stored.startswith("$2")
        assert hasher.verify_password("S3cret!x", stored)

    def test_wrong_password_fails(self, hasher: SecretHasher) -> None:
        stored = hasher.hash_password("S3cret!x")
        assert not hasher.verify_password("S3cret!y", stored)

    def test_same_password_gets_different_salts(self, hasher: SecretHasher) -> None:
        assert hasher.hash_password("S3cret!x") != hasher.hash_password("S3cret!x")

    def test_missing_hash_returns_false(self, hasher: SecretHasher) -> None:
        """A None hash still runs bcrypt against the dummy and never matches."""
        assert hasher.verify_password("anything", None) is False

    def test_malformed_hash_returns_false(self, hasher: SecretHasher) -> None:
        assert hasher.verify_password("anything", "not-a-bcrypt-hash") is False

    def test_multibyte_password_over_72_bytes_does_not_raise(self, hasher: SecretHasher) -> None:
        password = "Ä" * 50  # 100 bytes in UTF-8
        stored = hasher.hash_password(password)
        assert hasher.verify_password(password, stored)


class TestTokenDigests:
    def test_digest_is_deterministic_hex(self, hasher: SecretHasher) -> None:
        first = hasher.digest_token("token-value")
        assert first == hasher.digest_token("token-value")
        assert len(first) == 64
        int(first, 16)

    def test_digest_depends_on_secret(self, hasher: SecretHasher) -> None:
        other = SecretHasher(TEST_SECRET + "-other", rounds=4)
        assert hasher.digest_token("token-value") != other.digest_token("token-value")

    def test_digest_covers_bytes_past_72(self, hasher: SecretHasher) -> None:
        """Two long tokens sharing a 72-byte prefix must not collide."""
        prefix = "x" * 100
        assert hasher.digest_token(prefix + "a") != hasher.digest_token(prefix + "b")

    def test_digests_match(self, hasher: SecretHasher) -> None:
        digest = hasher.digest_token("token-value")
        assert SecretHasher.digests_match(digest, hasher.digest_token("token-value"))
        assert not SecretHasher.digests_match(digest, hasher.digest_token("other"))
