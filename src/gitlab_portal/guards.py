"""Access checks run before request handlers.

Guards raise instead of returning a result; the web layer turns the
exceptions into 404/403 responses in one place.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from gitlab_portal.exceptions import ForbiddenError, NotFoundError
from gitlab_portal.logging_config import get_logger

if TYPE_CHECKING:
    from gitlab_portal.config import AuthScheme
    from gitlab_portal.oauth.session import WebSession
    from gitlab_portal.snippets.models import Snippet
    from gitlab_portal.snippets.repository import SnippetRepository

logger = get_logger(__name__)


def require_authenticated(session: WebSession, scheme: AuthScheme) -> None:
    """Fail with 404 semantics for anonymous sessions.

    Not Found rather than Unauthorized, so anonymous callers learn
    nothing about which resources exist.

    Raises:
        NotFoundError: If the scheme's login marker is absent
    """
    if not session.is_authenticated(scheme):
        logger.debug("Anonymous session %s rejected", session.session_id[:8])
        raise NotFoundError()


def require_ownership(
    session: WebSession,
    resource_owner: str,
    scheme: AuthScheme,
) -> None:
    """Fail with 403 semantics unless the session owns the resource.

    Callers must confirm the resource exists first.

    Raises:
        ForbiddenError: If the session identity differs from the owner
    """
    identity = session.identity(scheme)
    if identity is None or identity != resource_owner:
        logger.info("Identity %s may not modify resource owned by %s", identity, resource_owner)
        raise ForbiddenError()


async def load_owned_snippet(
    repository: SnippetRepository,
    snippet_id: str,
    session: WebSession,
    scheme: AuthScheme,
) -> Snippet:
    """Load a snippet the session is allowed to modify.

    Raises:
        NotFoundError: If the snippet does not exist
        ForbiddenError: If it belongs to somebody else
    """
    snippet = await repository.find_by_id(snippet_id)
    if snippet is None:
        raise NotFoundError()
    require_ownership(session, snippet.owner, scheme)
    return snippet
