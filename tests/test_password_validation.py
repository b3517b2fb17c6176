"""Unit tests for password rules and the password/JWT helpers."""
import pytest

from mdshare.auth import (
    create_access_token,
    create_refresh_token,
    hash_password,
    hash_token,
    verify_password,
    verify_token,
)
from mdshare.schemas.auth import validate_password_strength


class TestPasswordStrength:
    def test_accepts_strong_password(self):
        assert validate_password_strength("SecurePass123") == "SecurePass123"

    def test_accepts_exactly_eight_characters(self):
        assert validate_password_strength("Abcdefg1") == "Abcdefg1"

    @pytest.mark.parametrize(
        "password, message",
        [
            ("Abcde1", "at least 8 characters"),
            ("lowercase123", "uppercase"),
            ("UPPERCASE123", "lowercase"),
            ("NoNumbersHere", "number"),
        ],
    )
    def test_rejects_weak_password(self, password: str, message: str):
        with pytest.raises(ValueError, match=message):
            validate_password_strength(password)


class TestPasswordHashing:
    def test_round_trip(self):
        hashed = hash_password("SecurePass123")
        assert hashed != "SecurePass123"
        assert verify_password("SecurePass123", hashed)
        assert not verify_password("SecurePass124", hashed)

    def test_missing_hash_never_matches(self):
        assert not verify_password("anything", None)
        assert not verify_password("anything", "")

    def test_malformed_hash_never_matches(self):
        assert not verify_password("anything", "not-a-bcrypt-hash")

    def test_long_password_is_accepted(self):
        long_password = "Aa1" + "x" * 200
        assert verify_password(long_password, hash_password(long_password))


class TestTokens:
    def test_access_token_round_trip(self):
        claims = verify_token(create_access_token("user-1"))
        assert claims["sub"] == "user-1"
        assert claims["type"] == "access"

    def test_refresh_token_not_accepted_as_access(self):
        refresh = create_refresh_token("user-1")
        assert verify_token(refresh) is None
        assert verify_token(refresh, token_type="refresh")["sub"] == "user-1"

    def test_tokens_are_unique(self):
        assert create_refresh_token("user-1") != create_refresh_token("user-1")

    def test_garbage_token(self):
        assert verify_token("not.a.jwt") is None

    def test_hash_token_is_stable(self):
        assert hash_token("abc") == hash_token("abc")
        assert hash_token("abc") != hash_token("abd")
        assert len(hash_token("abc")) == 64
