"""
Unit tests for core.security module.
Tests credential validation, password hashing and token generation.
"""
import pytest

from conftest import client_hash
from rotur.core.security import (
    generate_id,
    generate_token,
    hash_password,
    needs_rehash,
    validate_password_hash,
    validate_username,
    verify_password,
)


class TestPasswordHashing:
    """Tests for password hashing and verification."""

    def test_hash_password_returns_different_hash_each_time(self):
        """Password hashing should produce different hashes (salt included)."""
        hashed = client_hash("TestPassword123")
        assert hash_password(hashed) != hash_password(hashed)

    def test_hash_password_uses_argon2(self):
        hashed = hash_password(client_hash("TestPassword123"))
        assert hashed.startswith("$argon2")
        assert needs_rehash(hashed) is False

    def test_verify_password_correct_password(self):
        password = client_hash("TestPassword123")
        assert verify_password(password, hash_password(password)) is True

    def test_verify_password_incorrect_password(self):
        """verify_password should return False for incorrect password."""
        stored = hash_password(client_hash("TestPassword123"))
        assert verify_password(client_hash("WrongPassword456"), stored) is False

    def test_verify_legacy_raw_hash(self):
        """Stored raw client hashes compare case-insensitively."""
        password = client_hash("legacy")
        assert verify_password(password.upper(), password) is True
        assert verify_password(client_hash("other"), password) is False
        assert needs_rehash(password) is True

    def test_verify_password_empty_stored(self):
        assert verify_password(client_hash("x"), "") is False


class TestValidation:
    """Tests for username and password-hash validation."""

    @pytest.mark.parametrize("username", ["abc", "Alice_99", "a" * 20])
    def test_valid_usernames(self, username):
        assert validate_username(username) is None

    @pytest.mark.parametrize("username", ["", "ab", "a" * 21, "has space", "dots.not.allowed"])
    def test_invalid_usernames(self, username):
        assert validate_username(username) is not None

    def test_password_hash_shape(self):
        assert validate_password_hash(client_hash("pw")) is None
        assert validate_password_hash("pw") == "Password must be a valid hash"
        assert validate_password_hash(client_hash("")) == "Password cannot be empty"


class TestTokens:
    def test_token_shape(self):
        token = generate_token()
        assert len(token) == 32
        int(token, 16)
        assert generate_token() != token

    def test_id_is_uuid(self):
        assert len(generate_id()) == 36
