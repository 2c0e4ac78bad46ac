"""Tests for web session state."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from gitlab_portal.config import AuthScheme
from gitlab_portal.oauth.flows import TokenRecord
from gitlab_portal.oauth.session import Notice, WebSession


def create_test_record() -> TokenRecord:
    """Create a TokenRecord for testing."""
    return TokenRecord(
        access_token="test-access-token",
        refresh_token="test-refresh-token",
        created_at=1700000000,
        expires_in=7200,
    )


class TestWebSession:
    """Tests for WebSession dataclass."""

    def test_touch_updates_last_accessed(self) -> None:
        """Test that touch updates last_accessed."""
        session = WebSession(session_id="test")
        before = session.last_accessed

        session.touch()

        assert session.last_accessed >= before

    def test_is_expired(self) -> None:
        """Test expiration check."""
        session = WebSession(session_id="test")
        assert session.is_expired(timedelta(hours=1)) is False

        session.last_accessed = datetime.now(UTC) - timedelta(hours=2)
        assert session.is_expired(timedelta(hours=1)) is True

    def test_oauth_identity(self) -> None:
        """Test the OAuth scheme keys off the token record."""
        session = WebSession(session_id="test", gitlab_username="alice")
        assert session.is_authenticated(AuthScheme.OAUTH) is False
        assert session.identity(AuthScheme.OAUTH) is None

        session.auth_data = create_test_record()
        assert session.is_authenticated(AuthScheme.OAUTH) is True
        assert session.identity(AuthScheme.OAUTH) == "alice"

    def test_local_identity(self) -> None:
        """Test the local scheme keys off the username."""
        session = WebSession(session_id="test", username="bob")
        assert session.is_authenticated(AuthScheme.LOCAL) is True
        assert session.identity(AuthScheme.LOCAL) == "bob"

    def test_flash_is_consumed_once(self) -> None:
        """Test a flash notice is shown exactly once."""
        session = WebSession(session_id="test")
        session.set_flash("success", "Saved.")

        assert session.pop_flash() == Notice("success", "Saved.")
        assert session.pop_flash() is None

    def test_clear(self) -> None:
        """Test clear drops everything tied to the identity."""
        session = WebSession(
            session_id="test",
            csrf_state_token="state",
            auth_data=create_test_record(),
            username="bob",
            gitlab_username="alice",
            flash=Notice("info", "hi"),
        )

        session.clear()

        assert session.session_id == "test"
        assert session.csrf_state_token is None
        assert session.auth_data is None
        assert session.username is None
        assert session.gitlab_username is None
        assert session.flash is None

    def test_dict_roundtrip(self) -> None:
        """Test sessions survive serialization."""
        session = WebSession(
            session_id="test",
            csrf_state_token="state",
            auth_data=create_test_record(),
            gitlab_username="alice",
            flash=Notice("danger", "oops"),
            created_at=datetime(2024, 1, 1, tzinfo=UTC),
            last_accessed=datetime(2024, 1, 2, tzinfo=UTC),
        )

        restored = WebSession.from_dict(session.to_dict())

        assert restored == session
