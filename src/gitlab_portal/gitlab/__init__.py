"""GitLab API client and utilities."""

from gitlab_portal.gitlab.client import GitLabClient
from gitlab_portal.gitlab.exceptions import UpstreamError

__all__ = [
    "GitLabClient",
    "UpstreamError",
]
