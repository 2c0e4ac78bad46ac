"""Local user accounts.

Used by deployments running the local auth scheme instead of GitLab
OAuth.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from gitlab_portal.exceptions import ValidationError
from gitlab_portal.logging_config import get_logger
from gitlab_portal.security import AuthError, hash_password, verify_password
from gitlab_portal.storage import DocumentFile

logger = get_logger(__name__)

MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 64
MIN_PASSWORD_LENGTH = 10


@dataclass
class User:
    username: str
    password_hash: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "password_hash": self.password_hash,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> User:
        return cls(
            username=str(data["username"]),
            password_hash=str(data["password_hash"]),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


class UserRepository(ABC):
    """Abstract base class for user storage, keyed by username."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    @abstractmethod
    async def _get(self, username: str) -> dict[str, Any] | None:
        """Return the stored document for a username."""

    @abstractmethod
    async def _put(self, document: dict[str, Any]) -> None:
        """Insert or replace a user document."""

    async def register(self, username: str, password: str) -> User:
        """Create a local account.

        Raises:
            ValidationError: On a bad or taken username, or a short password
        """
        username = (username or "").strip()
        if not MIN_USERNAME_LENGTH <= len(username) <= MAX_USERNAME_LENGTH:
            raise ValidationError(
                "username",
                f"The username must be {MIN_USERNAME_LENGTH}-{MAX_USERNAME_LENGTH} characters.",
            )
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                "password",
                f"The password must be at least {MIN_PASSWORD_LENGTH} characters.",
            )

        password_hash = await asyncio.to_thread(hash_password, password)

        async with self._lock:
            if await self._get(username) is not None:
                raise ValidationError("username", "The username is already taken.")
            user = User(username=username, password_hash=password_hash)
            await self._put(user.to_dict())

        logger.info("Registered user %s", username)
        return user

    async def authenticate(self, username: str, password: str) -> User:
        """Check credentials.

        Raises:
            AuthError: invalid_credentials on unknown user or wrong password
        """
        username = (username or "").strip()
        async with self._lock:
            document = await self._get(username)

        if document is None:
            logger.info("Login attempt for unknown user %s", username)
            raise AuthError("invalid_credentials")

        user = User.from_dict(document)
        if not await asyncio.to_thread(verify_password, password or "", user.password_hash):
            logger.info("Wrong password for user %s", username)
            raise AuthError("invalid_credentials")

        return user


class InMemoryUserRepository(UserRepository):
    def __init__(self) -> None:
        super().__init__()
        self._documents: dict[str, dict[str, Any]] = {}

    async def _get(self, username: str) -> dict[str, Any] | None:
        document = self._documents.get(username)
        return dict(document) if document is not None else None

    async def _put(self, document: dict[str, Any]) -> None:
        self._documents[document["username"]] = dict(document)


class JsonFileUserRepository(UserRepository):
    def __init__(self, file_path: str | Path) -> None:
        super().__init__()
        self._file = DocumentFile(file_path)
        self._data: dict[str, dict[str, Any]] | None = None

    async def _documents(self) -> dict[str, dict[str, Any]]:
        if self._data is None:
            self._data = await asyncio.to_thread(self._file.load)
        return self._data

    async def _get(self, username: str) -> dict[str, Any] | None:
        document = (await self._documents()).get(username)
        return dict(document) if document is not None else None

    async def _put(self, document: dict[str, Any]) -> None:
        data = dict(await self._documents())
        data[document["username"]] = dict(document)
        await asyncio.to_thread(self._file.save, data)
        self._data = data


def create_user_repository(file_path: str | Path | None = None) -> UserRepository:
    """Create a file-backed repository when a path is configured."""
    if file_path:
        return JsonFileUserRepository(file_path)
    return InMemoryUserRepository()
