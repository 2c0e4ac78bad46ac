"""GitLab API client.

Provides an async HTTP client for the GitLab REST and GraphQL APIs. The
caller supplies a valid access token on every call.
"""

from __future__ import annotations

from typing import Any

import httpx

from gitlab_portal.gitlab.exceptions import UpstreamError
from gitlab_portal.logging_config import get_logger

logger = get_logger(__name__)

# Default timeout for API requests (seconds)
DEFAULT_TIMEOUT = 30.0

# Largest page GitLab serves
MAX_PER_PAGE = 100

GRAPHQL_PATH = "/api/graphql"

GROUP_PROJECTS_QUERY = """
query GroupProjects($groupLimit: Int!, $projectLimit: Int!) {
  currentUser {
    groupMemberships(first: $groupLimit) {
      pageInfo { hasNextPage }
      nodes {
        group {
          name
          fullPath
          webUrl
          avatarUrl
          projects(includeSubgroups: true, first: $projectLimit) {
            count
            nodes {
              name
              fullPath
              webUrl
              avatarUrl
              repository {
                tree {
                  lastCommit {
                    authoredDate
                    author { name username avatarUrl }
                  }
                }
              }
            }
          }
        }
      }
    }
  }
}
"""


class GitLabClient:
    """Async client for the GitLab REST and GraphQL APIs.

    This client handles:
    - Bearer authentication with a per-call access token
    - Mapping of unsuccessful responses to UpstreamError
    - The activity feed's one-page-plus-one policy

    Example:
        ```python
        client = GitLabClient("https://gitlab.com")
        user = await client.get_current_user(access_token)
        events = await client.fetch_all_activity(access_token)
        ```
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the GitLab client.

        Args:
            base_url: GitLab instance base URL (e.g., "https://gitlab.com")
            http_client: Optional custom HTTP client
            timeout: Timeout for the HTTP client created on demand
        """
        self._base_url = base_url.rstrip("/")
        self._api_url = f"{self._base_url}/api/v4"
        self._timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Accept": "application/json"},
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _auth_headers(access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    @staticmethod
    def _raise_for_response(response: httpx.Response, path: str) -> None:
        """Raise UpstreamError for any non-2xx response."""
        if response.is_success:
            return

        body: dict | str | None
        try:
            body = response.json()
        except ValueError:
            body = response.text or None

        logger.warning(
            "GitLab request %s failed: %s %s",
            path,
            response.status_code,
            response.reason_phrase,
        )
        raise UpstreamError(response.status_code, response.reason_phrase, path, body)

    async def _get(
        self,
        path: str,
        access_token: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make an authenticated GET request and check its status."""
        client = await self._get_client()

        if params:
            params = {k: v for k, v in params.items() if v is not None}

        logger.debug("GitLab API request: GET %s", path)

        try:
            response = await client.get(
                f"{self._api_url}{path}",
                params=params,
                headers=self._auth_headers(access_token),
            )
        except httpx.HTTPError as e:
            logger.error("GitLab request %s error: %s", path, e)
            raise UpstreamError(0, str(e) or type(e).__name__, path) from e

        self._raise_for_response(response, path)
        return response

    async def fetch_json(
        self,
        path: str,
        access_token: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """GET a REST resource and return its parsed JSON.

        Args:
            path: API path below /api/v4 (e.g., "/user")
            access_token: Valid OAuth access token
            params: Query parameters

        Returns:
            Parsed JSON response

        Raises:
            UpstreamError: On non-2xx responses or transport failures
        """
        response = await self._get(path, access_token, params)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def fetch_all_activity(self, access_token: str) -> list[dict[str, Any]]:
        """Fetch the user's activity feed.

        Only the first page of 100 events is read in full. When the feed
        holds more (per the x-total header), the first event of page two
        is appended, so at most 101 events come back.
        """
        path = "/events"
        response = await self._get(path, access_token, {"per_page": MAX_PER_PAGE})
        events: list[dict[str, Any]] = list(response.json())

        total = response.headers.get("x-total")
        if total is not None and total.isdigit() and int(total) > MAX_PER_PAGE:
            next_page = await self._get(
                path, access_token, {"per_page": MAX_PER_PAGE, "page": 2}
            )
            more = next_page.json()
            if more:
                events.append(more[0])

        logger.debug("Fetched %d activity events", len(events))
        return events

    async def fetch_graphql(
        self,
        query: str,
        access_token: str,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """POST a GraphQL query.

        Args:
            query: GraphQL query document
            access_token: Valid OAuth access token
            variables: Optional query variables

        Returns:
            The "data" member of the response

        Raises:
            UpstreamError: On non-2xx responses, transport failures, or an
                errors-only GraphQL response
        """
        client = await self._get_client()

        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        logger.debug("GitLab GraphQL request")

        try:
            response = await client.post(
                f"{self._base_url}{GRAPHQL_PATH}",
                json=payload,
                headers=self._auth_headers(access_token),
            )
        except httpx.HTTPError as e:
            logger.error("GitLab GraphQL error: %s", e)
            raise UpstreamError(0, str(e) or type(e).__name__, GRAPHQL_PATH) from e

        self._raise_for_response(response, GRAPHQL_PATH)

        body = response.json()
        data = body.get("data")
        if data is None and body.get("errors"):
            message = body["errors"][0].get("message", "GraphQL error")
            raise UpstreamError(response.status_code, message, GRAPHQL_PATH, body)
        return dict(data or {})

    async def get_current_user(self, access_token: str) -> dict[str, Any]:
        """Get the authenticated user's profile."""
        result = await self.fetch_json("/user", access_token)
        return dict(result)

    async def list_group_projects(
        self,
        access_token: str,
        group_limit: int = 3,
        project_limit: int = 5,
    ) -> dict[str, Any]:
        """List the user's groups with their projects and last commits.

        Returns:
            {"groups": [...], "has_more_groups": bool}
        """
        data = await self.fetch_graphql(
            GROUP_PROJECTS_QUERY,
            access_token,
            {"groupLimit": group_limit, "projectLimit": project_limit},
        )

        memberships = (data.get("currentUser") or {}).get("groupMemberships") or {}
        groups = [
            _normalize_group(node["group"])
            for node in memberships.get("nodes") or []
            if node.get("group")
        ]
        has_more = bool((memberships.get("pageInfo") or {}).get("hasNextPage"))
        return {"groups": groups, "has_more_groups": has_more}


def _normalize_group(group: dict[str, Any]) -> dict[str, Any]:
    projects = group.get("projects") or {}
    return {
        "name": group.get("name"),
        "full_path": group.get("fullPath"),
        "web_url": group.get("webUrl"),
        "avatar_url": group.get("avatarUrl"),
        "project_count": projects.get("count", 0),
        "projects": [_normalize_project(p) for p in projects.get("nodes") or []],
    }


def _normalize_project(project: dict[str, Any]) -> dict[str, Any]:
    tree = (project.get("repository") or {}).get("tree") or {}
    commit = tree.get("lastCommit")
    last_commit = None
    if commit:
        author = commit.get("author") or {}
        last_commit = {
            "authored_date": commit.get("authoredDate"),
            "author_name": author.get("name"),
            "author_username": author.get("username"),
            "author_avatar_url": author.get("avatarUrl"),
        }
    return {
        "name": project.get("name"),
        "full_path": project.get("fullPath"),
        "web_url": project.get("webUrl"),
        "avatar_url": project.get("avatarUrl"),
        "last_commit": last_commit,
    }
