"""Username/password login bound to web sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from gitlab_portal.logging_config import get_logger
from gitlab_portal.oauth.session_store import SessionStoreError
from gitlab_portal.security import AuthError

if TYPE_CHECKING:
    from gitlab_portal.accounts.users import User, UserRepository
    from gitlab_portal.oauth.session import WebSession
    from gitlab_portal.oauth.session_store import SessionStore

logger = get_logger(__name__)


class LocalLoginManager:
    """Logs users in and out with local accounts."""

    def __init__(self, users: UserRepository, session_store: SessionStore) -> None:
        self._users = users
        self._session_store = session_store

    async def login(self, session: WebSession, username: str, password: str) -> User:
        """Authenticate, then regenerate the session and mark it logged in.

        Raises:
            AuthError: invalid_credentials or session_error
        """
        user = await self._users.authenticate(username, password)

        try:
            await self._session_store.regenerate(session)
            session.username = user.username
            await self._session_store.update(session, "username")
        except SessionStoreError as e:
            raise AuthError("session_error", str(e)) from e

        logger.info("User %s logged in", user.username)
        return user

    async def logout(self, session: WebSession) -> bool:
        """Forget the user and regenerate the session.

        Returns:
            False if the store failed; the error is logged, not raised
        """
        username = session.username
        session.username = None
        try:
            await self._session_store.update(session, "username")
            await self._session_store.regenerate(session)
        except SessionStoreError as e:
            logger.error("Logout could not regenerate session: %s", e)
            return False

        logger.info("User %s logged out", username)
        return True
