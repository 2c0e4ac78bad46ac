"""Security utilities for GitLab Portal.

Provides the authentication error type, secret redaction, constant-time
comparison, random token generation and password hashing.
"""

from __future__ import annotations

import hmac
import secrets
from typing import Any, Literal

import bcrypt

from gitlab_portal.logging_config import get_logger

logger = get_logger(__name__)

AuthErrorReason = Literal[
    "state_mismatch",
    "exchange_failed",
    "refresh_failed",
    "not_authenticated",
    "session_error",
    "invalid_credentials",
]

_AUTH_ERROR_MESSAGES: dict[str, str] = {
    "state_mismatch": "The login attempt could not be verified. Please try again.",
    "exchange_failed": "GitLab did not accept the login. Please try again.",
    "refresh_failed": "Your GitLab session could not be renewed. Please log in again.",
    "not_authenticated": "You need to log in first.",
    "session_error": "Your session could not be saved. Please try again.",
    "invalid_credentials": "Wrong username or password.",
}

# Minimum entropy for state tokens and session ids
TOKEN_BYTES = 32

# bcrypt ignores everything past 72 bytes
BCRYPT_MAX_BYTES = 72


class AuthError(Exception):
    """Raised when an authentication step fails.

    Attributes:
        reason: Machine-readable failure reason
    """

    def __init__(self, reason: AuthErrorReason, detail: str | None = None) -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(detail or _AUTH_ERROR_MESSAGES[reason])

    @property
    def user_message(self) -> str:
        """Message safe to show to the end user."""
        return _AUTH_ERROR_MESSAGES[self.reason]


def redact(value: str | None) -> str:
    """Stand-in text for a secret in log output: ``***`` or ``<empty>``."""
    if value is None or value == "":
        return "<empty>"
    return "***"


def constant_time_equals(a: str | None, b: str | None) -> bool:
    """Timing-safe string comparison.

    A missing value never matches, not even another missing value.
    """
    if a is None or b is None:
        return False
    return hmac.compare_digest(a.encode(), b.encode())


def generate_secure_token(nbytes: int = TOKEN_BYTES) -> str:
    """Return a URL-safe random token built from ``nbytes`` random bytes."""
    return secrets.token_urlsafe(nbytes)


def hash_password(plain: str) -> str:
    """Hash a password with bcrypt."""
    password_bytes = plain.encode("utf-8")[:BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Check a password against a bcrypt hash."""
    password_bytes = plain.encode("utf-8")[:BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(password_bytes, hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


DEFAULT_MASKED_KEYS = frozenset(
    {
        "access_token",
        "refresh_token",
        "secret",
        "password",
        "client_secret",
        "authorization",
        "code",
    }
)


def mask_sensitive_data(
    data: dict[str, Any], sensitive_keys: set[str] | frozenset[str] | None = None
) -> dict[str, Any]:
    """Copy ``data`` with secret-looking values replaced by ``***``.

    A key is masked when any of ``sensitive_keys`` occurs in its lowercased
    name. Nested dictionaries are masked too.
    """
    keys = DEFAULT_MASKED_KEYS if sensitive_keys is None else sensitive_keys

    masked: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            masked[key] = mask_sensitive_data(value, keys)
        elif any(part in key.lower() for part in keys):
            masked[key] = "***"
        else:
            masked[key] = value
    return masked
