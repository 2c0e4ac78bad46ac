"""OAuth login lifecycle bound to web sessions.

Ties the authorization code flow to a session: state token generation
and checking, code exchange with session regeneration, refresh on
expiry and logout.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from gitlab_portal.logging_config import get_logger
from gitlab_portal.oauth.session_store import SessionStoreError
from gitlab_portal.security import AuthError, constant_time_equals, generate_secure_token

if TYPE_CHECKING:
    from collections.abc import Callable

    from gitlab_portal.oauth.flows import OAuth2AuthorizationCodeFlow, TokenRecord
    from gitlab_portal.oauth.session import WebSession
    from gitlab_portal.oauth.session_store import SessionStore

logger = get_logger(__name__)


class OAuthFlowManager:
    """Runs the GitLab login for one session at a time.

    Every method takes the request's session explicitly and persists
    it through the session store before returning.
    """

    def __init__(
        self,
        flow: OAuth2AuthorizationCodeFlow,
        session_store: SessionStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the manager.

        Args:
            flow: Provider endpoints and credentials
            session_store: Store the sessions are persisted in
            clock: Source of epoch seconds, replaceable in tests
        """
        self._flow = flow
        self._session_store = session_store
        self._clock = clock

    async def begin_login(self, session: WebSession) -> str:
        """Prepare a login attempt and return the provider redirect URL.

        The state token is generated once per login attempt; repeated
        calls reuse it.
        """
        if session.csrf_state_token is None:
            session.csrf_state_token = generate_secure_token()
            await self._session_store.update(session, "csrf_state_token")
            logger.debug("Generated state token for session %s", session.session_id[:8])

        return self._flow.create_authorization_url(session.csrf_state_token)

    async def complete_login(
        self,
        session: WebSession,
        received_code: str,
        received_state: str | None,
    ) -> TokenRecord:
        """Finish the login from the provider callback.

        On success the session has a new id, carries the token record and
        has been persisted.

        Raises:
            AuthError: state_mismatch, exchange_failed or session_error
        """
        if not constant_time_equals(received_state, session.csrf_state_token):
            logger.warning("OAuth state mismatch for session %s", session.session_id[:8])
            raise AuthError("state_mismatch")

        record = await self._flow.exchange_code_for_tokens(received_code, now=self._clock())

        gitlab_username: str | None = None
        if self._flow.userinfo_url:
            user_info = await self._flow.get_user_info(record.access_token)
            gitlab_username = user_info.get("username")

        try:
            await self._session_store.regenerate(session)
            session.auth_data = record
            session.gitlab_username = gitlab_username
            await self._session_store.update(session, "auth_data", "gitlab_username")
        except SessionStoreError as e:
            raise AuthError("session_error", str(e)) from e

        logger.info("GitLab login completed for %s", gitlab_username or "unknown user")
        return record

    async def get_valid_access_token(self, session: WebSession) -> str:
        """Return an access token, refreshing it first if it has expired.

        Raises:
            AuthError: not_authenticated, refresh_failed or session_error
        """
        record = session.auth_data
        if record is None:
            raise AuthError("not_authenticated")

        now = self._clock()
        if not record.is_expired(now):
            return record.access_token

        if not record.refresh_token:
            raise AuthError("refresh_failed", "Token expired and no refresh token is stored")

        logger.debug("Access token for session %s expired, refreshing", session.session_id[:8])
        new_record = await self._flow.refresh_access_token(record.refresh_token, now=now)

        try:
            stored = await self._session_store.swap_auth_data(
                session, record.access_token, new_record
            )
        except SessionStoreError as e:
            raise AuthError("session_error", str(e)) from e

        return stored.access_token

    async def logout(self, session: WebSession) -> bool:
        """Drop the token record, then regenerate the session.

        The cleared record is stored before regeneration, so it is gone
        even when regeneration fails.

        Returns:
            False if the store failed; the error is logged, not raised
        """
        session.auth_data = None
        session.gitlab_username = None
        try:
            await self._session_store.update(session, "auth_data", "gitlab_username")
            await self._session_store.regenerate(session)
        except SessionStoreError as e:
            logger.error("Logout could not regenerate session: %s", e)
            return False

        logger.info("Logged out; new session %s", session.session_id[:8])
        return True
