"""Per-browser session state.

A WebSession carries the CSRF state token, the OAuth token record or the
local username, and a one-shot flash notice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from gitlab_portal.config import AuthScheme
from gitlab_portal.oauth.flows import TokenRecord

# Default session timeout
DEFAULT_SESSION_TIMEOUT = timedelta(hours=24)


@dataclass
class Notice:
    """Transient user-facing message shown on the next rendered view."""

    type: str
    text: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "text": self.text}


@dataclass
class WebSession:
    """Server-side session bound to a browser by its session cookie.

    Attributes:
        session_id: Unique session identifier
        csrf_state_token: OAuth state token of the pending login attempt
        auth_data: OAuth token record, present iff logged in via GitLab
        username: Local account name, present iff logged in locally
        gitlab_username: GitLab identity of the OAuth user
        flash: Notice for the next rendered view
        created_at: Session creation timestamp
        last_accessed: Last activity timestamp
    """

    session_id: str
    csrf_state_token: str | None = None
    auth_data: TokenRecord | None = None
    username: str | None = None
    gitlab_username: str | None = None
    flash: Notice | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_accessed: datetime = field(default_factory=lambda: datetime.now(UTC))

    def touch(self) -> None:
        """Update last accessed timestamp."""
        self.last_accessed = datetime.now(UTC)

    def is_expired(self, timeout: timedelta = DEFAULT_SESSION_TIMEOUT) -> bool:
        """Check if session has expired.

        Args:
            timeout: Session timeout duration

        Returns:
            True if session is expired
        """
        return datetime.now(UTC) > (self.last_accessed + timeout)

    def is_authenticated(self, scheme: AuthScheme) -> bool:
        """Check the marker field of the deployment's auth scheme."""
        if scheme == AuthScheme.OAUTH:
            return self.auth_data is not None
        return self.username is not None

    def identity(self, scheme: AuthScheme) -> str | None:
        """Identity used as the owner of user-created resources."""
        if scheme == AuthScheme.OAUTH:
            if self.auth_data is None:
                return None
            return self.gitlab_username
        return self.username

    def clear(self) -> None:
        """Drop everything tied to the current identity."""
        self.csrf_state_token = None
        self.auth_data = None
        self.username = None
        self.gitlab_username = None
        self.flash = None

    def set_flash(self, type_: str, text: str) -> None:
        self.flash = Notice(type=type_, text=text)

    def pop_flash(self) -> Notice | None:
        notice, self.flash = self.flash, None
        return notice

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistent session stores."""
        return {
            "session_id": self.session_id,
            "csrf_state_token": self.csrf_state_token,
            "auth_data": self.auth_data.to_dict() if self.auth_data else None,
            "username": self.username,
            "gitlab_username": self.gitlab_username,
            "flash": self.flash.to_dict() if self.flash else None,
            "created_at": self.created_at.timestamp(),
            "last_accessed": self.last_accessed.timestamp(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WebSession:
        auth_data = data.get("auth_data")
        flash = data.get("flash")
        return cls(
            session_id=str(data["session_id"]),
            csrf_state_token=data.get("csrf_state_token"),
            auth_data=TokenRecord.from_dict(auth_data) if auth_data else None,
            username=data.get("username"),
            gitlab_username=data.get("gitlab_username"),
            flash=Notice(**flash) if flash else None,
            created_at=datetime.fromtimestamp(float(data["created_at"]), tz=UTC),
            last_accessed=datetime.fromtimestamp(float(data["last_accessed"]), tz=UTC),
        )
