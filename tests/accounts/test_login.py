"""Tests for local login bound to sessions."""

from __future__ import annotations

import pytest

from gitlab_portal.accounts.login import LocalLoginManager
from gitlab_portal.accounts.users import InMemoryUserRepository
from gitlab_portal.oauth.session import WebSession
from gitlab_portal.oauth.session_store import InMemorySessionStore, SessionStoreError
from gitlab_portal.security import AuthError

PASSWORD = "correct horse battery"


@pytest.fixture
async def users() -> InMemoryUserRepository:
    """Create a repository with one account."""
    repo = InMemoryUserRepository()
    await repo.register("alice", PASSWORD)
    return repo


@pytest.fixture
def store() -> InMemorySessionStore:
    """Create an in-memory session store."""
    return InMemorySessionStore()


class TestLocalLoginManager:
    """Tests for LocalLoginManager."""

    async def test_login_regenerates_session(
        self, users: InMemoryUserRepository, store: InMemorySessionStore
    ) -> None:
        """Test login marks a fresh session as logged in."""
        manager = LocalLoginManager(users, store)
        session = await store.create()
        old_id = session.session_id

        await manager.login(session, "alice", PASSWORD)

        assert session.session_id != old_id
        assert session.username == "alice"
        assert await store.get(old_id) is None
        stored = await store.get(session.session_id)
        assert stored is not None
        assert stored.username == "alice"

    async def test_login_wrong_password(
        self, users: InMemoryUserRepository, store: InMemorySessionStore
    ) -> None:
        """Test failed login leaves the session as it was."""
        manager = LocalLoginManager(users, store)
        session = await store.create()
        old_id = session.session_id

        with pytest.raises(AuthError) as exc_info:
            await manager.login(session, "alice", "wrong password!")

        assert exc_info.value.reason == "invalid_credentials"
        assert session.session_id == old_id
        assert session.username is None

    async def test_login_store_failure(
        self,
        users: InMemoryUserRepository,
        store: InMemorySessionStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test a failed regeneration surfaces as session_error."""
        manager = LocalLoginManager(users, store)
        session = await store.create()

        async def fail(session: WebSession) -> None:
            raise SessionStoreError("store down")

        monkeypatch.setattr(store, "regenerate", fail)

        with pytest.raises(AuthError) as exc_info:
            await manager.login(session, "alice", PASSWORD)
        assert exc_info.value.reason == "session_error"

    async def test_logout(
        self, users: InMemoryUserRepository, store: InMemorySessionStore
    ) -> None:
        """Test logout forgets the user under a new session id."""
        manager = LocalLoginManager(users, store)
        session = await store.create()
        await manager.login(session, "alice", PASSWORD)
        logged_in_id = session.session_id

        assert await manager.logout(session) is True

        assert session.username is None
        assert session.session_id != logged_in_id
        assert await store.get(logged_in_id) is None
