"""Tests for local user accounts."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pathlib import Path

from gitlab_portal.accounts.users import (
    InMemoryUserRepository,
    JsonFileUserRepository,
    create_user_repository,
)
from gitlab_portal.exceptions import ValidationError
from gitlab_portal.security import AuthError

PASSWORD = "correct horse battery"


class TestRegister:
    """Tests for account registration."""

    async def test_register_hashes_password(self) -> None:
        """Test the password is stored only as a hash."""
        users = InMemoryUserRepository()

        user = await users.register("  alice ", PASSWORD)

        assert user.username == "alice"
        assert user.password_hash != PASSWORD
        assert user.password_hash.startswith("$2")

    async def test_duplicate_username(self) -> None:
        """Test a taken username is rejected."""
        users = InMemoryUserRepository()
        await users.register("alice", PASSWORD)

        with pytest.raises(ValidationError) as exc_info:
            await users.register("alice", "another password")

        assert exc_info.value.field == "username"
        assert "taken" in exc_info.value.message

    @pytest.mark.parametrize(
        ("username", "password", "field"),
        [("al", PASSWORD, "username"), ("x" * 65, PASSWORD, "username"), ("alice", "short", "password")],
    )
    async def test_invalid_input(self, username: str, password: str, field: str) -> None:
        """Test length rules for username and password."""
        users = InMemoryUserRepository()

        with pytest.raises(ValidationError) as exc_info:
            await users.register(username, password)
        assert exc_info.value.field == field


class TestAuthenticate:
    """Tests for credential checks."""

    async def test_valid_credentials(self) -> None:
        """Test the right password returns the user."""
        users = InMemoryUserRepository()
        await users.register("alice", PASSWORD)

        user = await users.authenticate("alice", PASSWORD)

        assert user.username == "alice"

    async def test_wrong_password_and_unknown_user(self) -> None:
        """Test both failures look the same to the caller."""
        users = InMemoryUserRepository()
        await users.register("alice", PASSWORD)

        with pytest.raises(AuthError) as wrong:
            await users.authenticate("alice", "wrong password!")
        with pytest.raises(AuthError) as unknown:
            await users.authenticate("bob", PASSWORD)

        assert wrong.value.reason == unknown.value.reason == "invalid_credentials"


class TestJsonFileUserRepository:
    """Tests for the JSON file repository."""

    async def test_persists_across_instances(self, tmp_path: Path) -> None:
        """Test accounts survive a restart."""
        path = tmp_path / "users.json"
        await JsonFileUserRepository(path).register("alice", PASSWORD)

        user = await JsonFileUserRepository(path).authenticate("alice", PASSWORD)

        assert user.username == "alice"
        assert PASSWORD not in path.read_text()

    async def test_failed_write_does_not_register(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test an account whose file write failed cannot log in."""
        repo = JsonFileUserRepository(tmp_path / "users.json")

        def fail(documents: dict) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(repo._file, "save", fail)
        with pytest.raises(OSError):
            await repo.register("alice", PASSWORD)

        monkeypatch.undo()
        with pytest.raises(AuthError):
            await repo.authenticate("alice", PASSWORD)

    def test_factory(self, tmp_path: Path) -> None:
        """Test the factory picks the backend from the path."""
        assert isinstance(create_user_repository(), InMemoryUserRepository)
        assert isinstance(create_user_repository(tmp_path / "u.json"), JsonFileUserRepository)
