"""Tests for security module."""

from __future__ import annotations

import pytest

from gitlab_portal.security import (
    AuthError,
    constant_time_equals,
    generate_secure_token,
    hash_password,
    mask_sensitive_data,
    verify_password,
)


class TestAuthError:
    """Tests for AuthError."""

    def test_reason_and_user_message(self) -> None:
        """Test reason is kept and a user message is available."""
        error = AuthError("state_mismatch")
        assert error.reason == "state_mismatch"
        assert error.detail is None
        assert "could not be verified" in error.user_message

    def test_detail_does_not_leak_into_user_message(self) -> None:
        """Test internal details stay out of the user message."""
        error = AuthError("exchange_failed", "Token request failed: 401")
        assert str(error) == "Token request failed: 401"
        assert "401" not in error.user_message


class TestConstantTimeEquals:
    """Tests for constant_time_equals function."""

    def test_equal_strings(self) -> None:
        """Test equal strings return True."""
        assert constant_time_equals("abc", "abc") is True

    def test_unequal_strings(self) -> None:
        """Test unequal strings return False."""
        assert constant_time_equals("abc", "abd") is False
        assert constant_time_equals("abc", "abcd") is False

    def test_missing_values_never_match(self) -> None:
        """Test that a missing value matches nothing, not even another."""
        assert constant_time_equals(None, None) is False
        assert constant_time_equals(None, "abc") is False
        assert constant_time_equals("abc", None) is False


class TestGenerateSecureToken:
    """Tests for generate_secure_token function."""

    def test_token_length(self) -> None:
        """Test that 32 random bytes give at least 43 URL-safe characters."""
        assert len(generate_secure_token()) >= 43

    def test_tokens_unique(self) -> None:
        """Test that tokens are unique."""
        tokens = {generate_secure_token() for _ in range(100)}
        assert len(tokens) == 100

    def test_url_safe(self) -> None:
        """Test that tokens are URL-safe."""
        token = generate_secure_token()
        assert all(c.isalnum() or c in "-_" for c in token)


class TestPasswordHashing:
    """Tests for bcrypt password helpers."""

    def test_hash_and_verify(self) -> None:
        """Test a hashed password verifies and a wrong one does not."""
        hashed = hash_password("correct horse battery")
        assert hashed != "correct horse battery"
        assert verify_password("correct horse battery", hashed) is True
        assert verify_password("wrong horse battery", hashed) is False

    def test_malformed_hash(self) -> None:
        """Test that a malformed hash fails verification."""
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestMaskSensitiveData:
    """Tests for mask_sensitive_data function."""

    @pytest.mark.parametrize("key", ["access_token", "refresh_token", "client_secret", "code"])
    def test_masks_sensitive_keys(self, key: str) -> None:
        """Test that token request secrets are masked."""
        assert mask_sensitive_data({key: "value"})[key] == "***"

    def test_keeps_other_keys_and_nests(self) -> None:
        """Test non-sensitive keys survive and nested dicts are masked."""
        masked = mask_sensitive_data({
            "grant_type": "authorization_code",
            "nested": {"password": "pw"},
        })
        assert masked["grant_type"] == "authorization_code"
        assert masked["nested"]["password"] == "***"
