"""User-owned text snippets."""

from gitlab_portal.snippets.models import Snippet
from gitlab_portal.snippets.repository import (
    InMemorySnippetRepository,
    JsonFileSnippetRepository,
    SnippetRepository,
    create_snippet_repository,
)

__all__ = [
    "InMemorySnippetRepository",
    "JsonFileSnippetRepository",
    "Snippet",
    "SnippetRepository",
    "create_snippet_repository",
]
