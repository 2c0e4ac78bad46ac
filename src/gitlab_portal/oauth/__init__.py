"""OAuth 2.0 login against GitLab.

Provides the Authorization Code flow, web sessions and the manager that
binds the two together.
"""

from gitlab_portal.oauth.flows import OAuth2AuthorizationCodeFlow, TokenRecord
from gitlab_portal.oauth.manager import OAuthFlowManager
from gitlab_portal.oauth.session import Notice, WebSession
from gitlab_portal.oauth.session_store import (
    EncryptedFileSessionStore,
    InMemorySessionStore,
    SessionStore,
    SessionStoreError,
    create_session_store,
)

__all__ = [
    "EncryptedFileSessionStore",
    "InMemorySessionStore",
    "Notice",
    "OAuth2AuthorizationCodeFlow",
    "OAuthFlowManager",
    "SessionStore",
    "SessionStoreError",
    "TokenRecord",
    "WebSession",
    "create_session_store",
]
