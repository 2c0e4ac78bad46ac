"""Snippet persistence.

Repositories store snippets as documents keyed by id. Missing ids are
reported through return values (None/False), never by raising.
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from gitlab_portal.logging_config import get_logger
from gitlab_portal.snippets.models import Snippet, clean_text
from gitlab_portal.storage import DocumentFile

logger = get_logger(__name__)


class SnippetRepository(ABC):
    """Abstract base class for snippet storage.

    Validation, id generation and timestamps live here; subclasses
    only move documents in and out of their backend.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @abstractmethod
    async def _load_all(self) -> dict[str, dict[str, Any]]:
        """Return all documents keyed by id."""

    @abstractmethod
    async def _store(self, document: dict[str, Any]) -> None:
        """Insert or replace one document."""

    @abstractmethod
    async def _discard(self, snippet_id: str) -> None:
        """Remove one document."""

    async def create(self, title: str, content: str, owner: str) -> Snippet:
        """Create a snippet.

        Raises:
            ValidationError: If title or content is empty after trimming
        """
        snippet = Snippet(
            id=uuid.uuid4().hex,
            title=clean_text("title", title),
            content=clean_text("content", content),
            owner=owner,
        )
        async with self._lock:
            await self._store(snippet.to_dict())

        logger.info("Created snippet %s for %s", snippet.id, owner)
        return snippet

    async def find_by_id(self, snippet_id: str) -> Snippet | None:
        """Look up a snippet; None if it does not exist."""
        async with self._lock:
            document = (await self._load_all()).get(snippet_id)
        return Snippet.from_dict(document) if document else None

    async def list_all(self) -> list[Snippet]:
        """Return all snippets, newest first."""
        async with self._lock:
            documents = list((await self._load_all()).values())
        snippets = [Snippet.from_dict(d) for d in documents]
        snippets.sort(key=lambda s: s.created_at, reverse=True)
        return snippets

    async def update(self, snippet_id: str, title: str, content: str) -> Snippet | None:
        """Change title and content of a snippet.

        Owner and id stay as they are. A snippet deleted in the meantime
        yields None.

        Raises:
            ValidationError: If title or content is empty after trimming
        """
        new_title = clean_text("title", title)
        new_content = clean_text("content", content)

        async with self._lock:
            document = (await self._load_all()).get(snippet_id)
            if document is None:
                return None

            snippet = Snippet.from_dict(document)
            snippet.title = new_title
            snippet.content = new_content
            snippet.updated_at = datetime.now(UTC)
            await self._store(snippet.to_dict())

        logger.info("Updated snippet %s", snippet_id)
        return snippet

    async def delete(self, snippet_id: str) -> bool:
        """Delete a snippet; False if it did not exist."""
        async with self._lock:
            if snippet_id not in await self._load_all():
                return False
            await self._discard(snippet_id)

        logger.info("Deleted snippet %s", snippet_id)
        return True


class InMemorySnippetRepository(SnippetRepository):
    """In-memory snippet storage, lost on restart."""

    def __init__(self) -> None:
        super().__init__()
        self._documents: dict[str, dict[str, Any]] = {}

    async def _load_all(self) -> dict[str, dict[str, Any]]:
        return {key: dict(value) for key, value in self._documents.items()}

    async def _store(self, document: dict[str, Any]) -> None:
        self._documents[document["id"]] = dict(document)

    async def _discard(self, snippet_id: str) -> None:
        self._documents.pop(snippet_id, None)


class JsonFileSnippetRepository(SnippetRepository):
    """Snippets kept in a JSON document file.

    The cached documents are replaced only after the file was written.
    """

    def __init__(self, file_path: str | Path) -> None:
        super().__init__()
        self._file = DocumentFile(file_path)
        self._data: dict[str, dict[str, Any]] | None = None

    async def _cached(self) -> dict[str, dict[str, Any]]:
        if self._data is None:
            self._data = await asyncio.to_thread(self._file.load)
        return self._data

    async def _commit(self, data: dict[str, dict[str, Any]]) -> None:
        await asyncio.to_thread(self._file.save, data)
        self._data = data

    async def _load_all(self) -> dict[str, dict[str, Any]]:
        return {key: dict(value) for key, value in (await self._cached()).items()}

    async def _store(self, document: dict[str, Any]) -> None:
        data = dict(await self._cached())
        data[document["id"]] = dict(document)
        await self._commit(data)

    async def _discard(self, snippet_id: str) -> None:
        data = dict(await self._cached())
        if data.pop(snippet_id, None) is not None:
            await self._commit(data)


def create_snippet_repository(file_path: str | Path | None = None) -> SnippetRepository:
    """Create a file-backed repository when a path is configured."""
    if file_path:
        return JsonFileSnippetRepository(file_path)
    return InMemorySnippetRepository()
