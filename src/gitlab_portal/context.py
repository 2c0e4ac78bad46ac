"""Dependency bundle handed to every request handler.

Replaces module-level globals: handlers receive one AppContext holding
the session store, login managers, GitLab client and repositories.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from gitlab_portal.accounts.login import LocalLoginManager
from gitlab_portal.accounts.users import create_user_repository
from gitlab_portal.config import AuthScheme
from gitlab_portal.gitlab.client import GitLabClient
from gitlab_portal.logging_config import get_logger
from gitlab_portal.oauth.flows import OAuth2AuthorizationCodeFlow
from gitlab_portal.oauth.manager import OAuthFlowManager
from gitlab_portal.oauth.session_store import create_session_store
from gitlab_portal.snippets.repository import create_snippet_repository

if TYPE_CHECKING:
    import httpx

    from gitlab_portal.accounts.users import UserRepository
    from gitlab_portal.config import Config
    from gitlab_portal.oauth.session_store import SessionStore
    from gitlab_portal.snippets.repository import SnippetRepository

logger = get_logger(__name__)


@dataclass
class AppContext:
    """Everything a handler may depend on.

    Exactly one of oauth_manager / local_login is set, matching the
    configured auth scheme.
    """

    config: Config
    session_store: SessionStore
    snippets: SnippetRepository
    gitlab: GitLabClient
    oauth_manager: OAuthFlowManager | None = None
    oauth_flow: OAuth2AuthorizationCodeFlow | None = None
    local_login: LocalLoginManager | None = None
    users: UserRepository | None = None

    @property
    def scheme(self) -> AuthScheme:
        return self.config.auth_scheme

    def require_oauth_manager(self) -> OAuthFlowManager:
        if self.oauth_manager is None:
            raise RuntimeError("GitLab OAuth login is not configured")
        return self.oauth_manager

    def require_local_login(self) -> LocalLoginManager:
        if self.local_login is None:
            raise RuntimeError("Local account login is not configured")
        return self.local_login

    def require_users(self) -> UserRepository:
        if self.users is None:
            raise RuntimeError("Local accounts are not configured")
        return self.users

    async def close(self) -> None:
        """Release HTTP clients."""
        await self.gitlab.close()
        if self.oauth_flow is not None:
            await self.oauth_flow.close()


def build_context(
    config: Config,
    http_client: httpx.AsyncClient | None = None,
) -> AppContext:
    """Build the dependency bundle from configuration.

    Args:
        config: Application configuration
        http_client: Optional HTTP client shared by all upstream calls

    Returns:
        Configured AppContext
    """
    session_store = create_session_store(
        encryption_key=(
            config.session_encryption_key.get_secret_value()
            if config.session_encryption_key
            else None
        ),
        file_path=config.session_store_path,
        session_timeout=timedelta(seconds=config.session_timeout_seconds),
    )

    context = AppContext(
        config=config,
        session_store=session_store,
        snippets=create_snippet_repository(config.snippet_store_path),
        gitlab=GitLabClient(config.gitlab_url, http_client, timeout=config.http_timeout),
    )

    if config.auth_scheme == AuthScheme.OAUTH:
        flow = OAuth2AuthorizationCodeFlow(
            authorization_url=config.authorization_endpoint,
            token_url=config.token_endpoint,
            client_id=config.oauth_client_id or "",
            client_secret=(
                config.oauth_client_secret.get_secret_value()
                if config.oauth_client_secret
                else None
            ),
            redirect_uri=config.oauth_redirect_uri or "",
            scope=config.oauth_scope,
            userinfo_url=config.userinfo_endpoint,
            http_client=http_client,
            timeout=config.http_timeout,
        )
        context.oauth_flow = flow
        context.oauth_manager = OAuthFlowManager(flow, session_store)
        logger.info("GitLab OAuth login enabled for %s", config.gitlab_url)
    else:
        users = create_user_repository(config.user_store_path)
        context.users = users
        context.local_login = LocalLoginManager(users, session_store)
        logger.info("Local account login enabled")

    return context
