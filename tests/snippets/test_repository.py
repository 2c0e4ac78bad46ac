"""Tests for snippet repositories."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pathlib import Path

from gitlab_portal.exceptions import ValidationError
from gitlab_portal.snippets.repository import (
    InMemorySnippetRepository,
    JsonFileSnippetRepository,
    SnippetRepository,
    create_snippet_repository,
)


@pytest.fixture(params=["memory", "file"])
def repo(request: pytest.FixtureRequest, tmp_path: Path) -> SnippetRepository:
    """Create each repository implementation."""
    if request.param == "memory":
        return InMemorySnippetRepository()
    return JsonFileSnippetRepository(tmp_path / "snippets.json")


class TestSnippetRepository:
    """Tests shared by all snippet repositories."""

    async def test_crud_lifecycle(self, repo: SnippetRepository) -> None:
        """Test create, read, update and delete of one snippet."""
        snippet = await repo.create("  Hello  ", " print('hi') ", "alice")

        assert snippet.title == "Hello"
        assert snippet.content == "print('hi')"
        assert snippet.owner == "alice"

        found = await repo.find_by_id(snippet.id)
        assert found is not None
        assert found.title == "Hello"

        updated = await repo.update(snippet.id, "Hello again", "print('bye')")
        assert updated is not None
        assert updated.id == snippet.id
        assert updated.owner == "alice"
        assert updated.title == "Hello again"
        assert updated.updated_at >= snippet.updated_at

        assert await repo.delete(snippet.id) is True
        assert await repo.find_by_id(snippet.id) is None

    async def test_missing_ids(self, repo: SnippetRepository) -> None:
        """Test unknown ids are reported through return values."""
        assert await repo.find_by_id("missing") is None
        assert await repo.update("missing", "t", "c") is None
        assert await repo.delete("missing") is False

    @pytest.mark.parametrize(
        ("title", "content", "field"),
        [("", "c", "title"), ("   ", "c", "title"), ("t", "", "content"), ("t", "\n\t", "content")],
    )
    async def test_create_validation(
        self, repo: SnippetRepository, title: str, content: str, field: str
    ) -> None:
        """Test blank title or content is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            await repo.create(title, content, "alice")

        assert exc_info.value.field == field
        assert exc_info.value.message == f"The {field} field is required."
        assert await repo.list_all() == []

    async def test_update_validation_keeps_snippet(self, repo: SnippetRepository) -> None:
        """Test a rejected update leaves the stored snippet unchanged."""
        snippet = await repo.create("Title", "Content", "alice")

        with pytest.raises(ValidationError):
            await repo.update(snippet.id, "New", "  ")

        stored = await repo.find_by_id(snippet.id)
        assert stored is not None
        assert stored.title == "Title"

    async def test_list_all_newest_first(self, repo: SnippetRepository) -> None:
        """Test snippets are listed newest first."""
        first = await repo.create("First", "1", "alice")
        second = await repo.create("Second", "2", "bob")

        listed = await repo.list_all()

        assert [s.id for s in listed] == [second.id, first.id]

    async def test_ids_unique(self, repo: SnippetRepository) -> None:
        """Test generated ids do not repeat."""
        ids = {(await repo.create("T", "C", "alice")).id for _ in range(20)}
        assert len(ids) == 20


class TestJsonFileSnippetRepository:
    """Tests for the JSON file repository."""

    async def test_persists_across_instances(self, tmp_path: Path) -> None:
        """Test snippets survive a restart."""
        path = tmp_path / "snippets.json"
        snippet = await JsonFileSnippetRepository(path).create("T", "C", "alice")

        reopened = JsonFileSnippetRepository(path)
        found = await reopened.find_by_id(snippet.id)

        assert found == snippet

    async def test_delete_persists(self, tmp_path: Path) -> None:
        """Test deletions are written to the file."""
        path = tmp_path / "snippets.json"
        repo = JsonFileSnippetRepository(path)
        snippet = await repo.create("T", "C", "alice")
        await repo.delete(snippet.id)

        assert await JsonFileSnippetRepository(path).list_all() == []

    async def test_failed_write_leaves_no_trace(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test a snippet whose file write failed cannot be found afterwards."""
        repo = JsonFileSnippetRepository(tmp_path / "snippets.json")
        kept = await repo.create("Kept", "C", "alice")

        def fail(documents: dict) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(repo._file, "save", fail)

        with pytest.raises(OSError):
            await repo.create("Lost", "C", "alice")
        with pytest.raises(OSError):
            await repo.delete(kept.id)

        assert [s.title for s in await repo.list_all()] == ["Kept"]
        assert await repo.find_by_id(kept.id) is not None


class TestCreateSnippetRepository:
    """Tests for create_snippet_repository factory."""

    def test_in_memory_by_default(self) -> None:
        """Test the default repository is in memory."""
        assert isinstance(create_snippet_repository(), InMemorySnippetRepository)

    def test_file_with_path(self, tmp_path: Path) -> None:
        """Test a path selects the JSON file repository."""
        repo = create_snippet_repository(tmp_path / "snippets.json")
        assert isinstance(repo, JsonFileSnippetRepository)
