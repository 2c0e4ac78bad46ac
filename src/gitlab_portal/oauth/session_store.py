"""Session storage implementations.

Sessions are stored as serialized documents, so every request works on
its own copy. Requests write back only the fields they changed, and only
while the session id still exists.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from gitlab_portal.logging_config import get_logger
from gitlab_portal.oauth.session import DEFAULT_SESSION_TIMEOUT, WebSession
from gitlab_portal.security import generate_secure_token
from gitlab_portal.storage import DocumentFile, StorageError

if TYPE_CHECKING:
    from gitlab_portal.oauth.flows import TokenRecord

logger = get_logger(__name__)

# Fields a request may write back through update()
UPDATABLE_FIELDS = frozenset(
    {"csrf_state_token", "auth_data", "username", "gitlab_username", "flash"}
)


class SessionStoreError(Exception):
    """Error during session storage operations."""


class SessionStore(ABC):
    """Abstract base class for session storage.

    Subclasses provide the document primitives; the base class adds
    locking, expiry, regeneration and the token record swap.
    """

    def __init__(self, session_timeout: timedelta = DEFAULT_SESSION_TIMEOUT) -> None:
        self._session_timeout = session_timeout
        self._lock = asyncio.Lock()

    @abstractmethod
    async def _read(self, session_id: str) -> dict[str, Any] | None:
        """Return the stored document for a session id."""

    @abstractmethod
    async def _write(self, document: dict[str, Any]) -> None:
        """Insert or replace a session document."""

    @abstractmethod
    async def _remove(self, session_id: str) -> None:
        """Delete a session document if present."""

    @abstractmethod
    async def _all_ids(self) -> list[str]:
        """Return all stored session ids."""

    async def create(self) -> WebSession:
        """Create and persist a new anonymous session.

        Raises:
            SessionStoreError: If the backend cannot write it
        """
        session = WebSession(session_id=generate_secure_token())
        async with self._lock:
            try:
                await self._write(session.to_dict())
            except (OSError, StorageError) as e:
                logger.error("Failed to create session: %s", e)
                raise SessionStoreError(f"Failed to create session: {e}") from e
        logger.debug("Created session %s", session.session_id[:8])
        return session

    async def get(self, session_id: str) -> WebSession | None:
        """Load a session by id.

        Expired sessions are removed and reported as missing.

        Args:
            session_id: Session identifier

        Returns:
            A fresh copy of the session, or None
        """
        async with self._lock:
            document = await self._read(session_id)
            if document is None:
                return None

            session = WebSession.from_dict(document)
            if session.is_expired(self._session_timeout):
                logger.debug("Session %s has expired", session_id[:8])
                await self._remove(session_id)
                return None

            session.touch()
            return session

    async def update(self, session: WebSession, *fields: str) -> bool:
        """Write the named fields of a session into its stored document.

        The access time is always written. Nothing is written when the
        session id no longer exists, so a session dropped by logout or
        regeneration is not brought back by a request that loaded it
        earlier.

        Args:
            session: Session carrying the new values
            *fields: Names of the fields the caller changed

        Returns:
            False if the session no longer exists

        Raises:
            ValueError: If a field cannot be written this way
            SessionStoreError: If the backend cannot write it
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update session fields: {sorted(unknown)}")

        async with self._lock:
            try:
                document = await self._read(session.session_id)
                if document is None:
                    logger.debug(
                        "Session %s is gone, dropping update", session.session_id[:8]
                    )
                    return False

                values = session.to_dict()
                for name in (*fields, "last_accessed"):
                    document[name] = values[name]
                await self._write(document)
            except (OSError, StorageError) as e:
                logger.error("Failed to save session %s: %s", session.session_id[:8], e)
                raise SessionStoreError(f"Failed to save session: {e}") from e

        return True

    async def regenerate(self, session: WebSession) -> None:
        """Issue a new identity for the session, invalidating the old one.

        The new document is written before the old id is dropped. The
        session object changes only once both steps succeeded: it then has
        a fresh id and no data, like a brand-new session.

        Raises:
            SessionStoreError: If the new session cannot be written or the
                old id cannot be dropped
        """
        old_id = session.session_id
        fresh = WebSession(session_id=generate_secure_token(), created_at=session.created_at)

        async with self._lock:
            try:
                await self._write(fresh.to_dict())
            except (OSError, StorageError) as e:
                logger.error("Failed to regenerate session %s: %s", old_id[:8], e)
                raise SessionStoreError(f"Failed to regenerate session: {e}") from e

            try:
                await self._remove(old_id)
            except (OSError, StorageError) as e:
                logger.error("Failed to drop session %s: %s", old_id[:8], e)
                await self._discard_quietly(fresh.session_id)
                raise SessionStoreError(f"Failed to regenerate session: {e}") from e

        session.session_id = fresh.session_id
        session.clear()
        session.last_accessed = fresh.last_accessed
        logger.info("Regenerated session %s as %s", old_id[:8], session.session_id[:8])

    async def _discard_quietly(self, session_id: str) -> None:
        try:
            await self._remove(session_id)
        except (OSError, StorageError) as e:
            logger.warning("Could not drop unused session %s: %s", session_id[:8], e)

    async def swap_auth_data(
        self,
        session: WebSession,
        expected_access_token: str,
        new_record: TokenRecord,
    ) -> TokenRecord:
        """Replace the token record only if nobody replaced it first.

        Two requests on one session may refresh the same expired token.
        The first swap wins; later ones adopt the stored record. Only the
        token record of the stored document is written.

        Args:
            session: Session whose record is replaced (updated in place)
            expected_access_token: Access token the caller refreshed from
            new_record: Freshly issued token record

        Returns:
            The record now stored for the session

        Raises:
            SessionStoreError: If the session is gone or logged out, or the
                backend cannot write it
        """
        async with self._lock:
            try:
                document = await self._read(session.session_id)
                stored = WebSession.from_dict(document) if document is not None else None
                if document is None or stored is None or stored.auth_data is None:
                    logger.info(
                        "Session %s ended before its token was refreshed",
                        session.session_id[:8],
                    )
                    raise SessionStoreError("Session no longer holds a token record")

                if stored.auth_data.access_token != expected_access_token:
                    logger.debug(
                        "Token for session %s was already refreshed",
                        session.session_id[:8],
                    )
                    session.auth_data = stored.auth_data
                    return stored.auth_data

                document["auth_data"] = new_record.to_dict()
                await self._write(document)
                session.auth_data = new_record
                return new_record
            except (OSError, StorageError) as e:
                logger.error("Failed to store refreshed token: %s", e)
                raise SessionStoreError(f"Failed to store refreshed token: {e}") from e

    async def cleanup_expired(self) -> int:
        """Remove all expired sessions.

        Returns:
            Number of sessions removed
        """
        async with self._lock:
            expired: list[str] = []
            for session_id in await self._all_ids():
                document = await self._read(session_id)
                if document is None:
                    continue
                if WebSession.from_dict(document).is_expired(self._session_timeout):
                    expired.append(session_id)

            for session_id in expired:
                await self._remove(session_id)

            if expired:
                logger.debug("Cleaned up %d expired sessions", len(expired))

            return len(expired)


class InMemorySessionStore(SessionStore):
    """In-memory session storage.

    Sessions are lost on server restart.
    """

    def __init__(self, session_timeout: timedelta = DEFAULT_SESSION_TIMEOUT) -> None:
        super().__init__(session_timeout)
        self._documents: dict[str, dict[str, Any]] = {}

    async def _read(self, session_id: str) -> dict[str, Any] | None:
        document = self._documents.get(session_id)
        return dict(document) if document is not None else None

    async def _write(self, document: dict[str, Any]) -> None:
        self._documents[document["session_id"]] = dict(document)

    async def _remove(self, session_id: str) -> None:
        self._documents.pop(session_id, None)

    async def _all_ids(self) -> list[str]:
        return list(self._documents)


class EncryptedFileSessionStore(SessionStore):
    """Encrypted file-based session storage.

    Sessions hold OAuth tokens, so the document file is encrypted with
    Fernet and written atomically. The in-memory copy follows the file
    only after a write succeeded.
    """

    def __init__(
        self,
        encryption_key: str,
        file_path: str | Path,
        session_timeout: timedelta = DEFAULT_SESSION_TIMEOUT,
    ) -> None:
        """Initialize encrypted file store.

        Args:
            encryption_key: Fernet-compatible encryption key
            file_path: Path to the session storage file
            session_timeout: Idle timeout for sessions

        Raises:
            SessionStoreError: If encryption key is invalid
        """
        super().__init__(session_timeout)
        try:
            self._file = DocumentFile(file_path, encryption_key)
        except StorageError as e:
            raise SessionStoreError(str(e)) from e
        self._data: dict[str, Any] | None = None

    async def _cached(self) -> dict[str, Any]:
        if self._data is None:
            self._data = await asyncio.to_thread(self._file.load)
        return self._data

    async def _commit(self, data: dict[str, Any]) -> None:
        await asyncio.to_thread(self._file.save, data)
        self._data = data

    async def _read(self, session_id: str) -> dict[str, Any] | None:
        document = (await self._cached()).get(session_id)
        return dict(document) if document is not None else None

    async def _write(self, document: dict[str, Any]) -> None:
        data = dict(await self._cached())
        data[document["session_id"]] = dict(document)
        await self._commit(data)

    async def _remove(self, session_id: str) -> None:
        data = dict(await self._cached())
        if data.pop(session_id, None) is not None:
            await self._commit(data)

    async def _all_ids(self) -> list[str]:
        return list(await self._cached())


def create_session_store(
    encryption_key: str | None = None,
    file_path: str | Path | None = None,
    session_timeout: timedelta = DEFAULT_SESSION_TIMEOUT,
) -> SessionStore:
    """Create appropriate session store based on configuration.

    Args:
        encryption_key: Optional Fernet encryption key
        file_path: Optional path for persistent storage
        session_timeout: Idle timeout for sessions

    Returns:
        Configured SessionStore instance
    """
    if file_path and encryption_key:
        return EncryptedFileSessionStore(encryption_key, file_path, session_timeout)
    return InMemorySessionStore(session_timeout)
