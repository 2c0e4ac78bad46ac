"""JSON document file storage.

A document file holds a single JSON object mapping ids to documents. It
can be Fernet-encrypted at rest and is always written atomically.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from gitlab_portal.logging_config import get_logger

logger = get_logger(__name__)


class StorageError(Exception):
    """Error while reading or writing a document file."""


class DocumentFile:
    """A JSON document file, optionally encrypted.

    Not locked; callers serialize access with their own lock.
    """

    def __init__(self, file_path: str | Path, encryption_key: str | None = None) -> None:
        """Initialize the document file.

        Args:
            file_path: Path to the document file
            encryption_key: Optional Fernet-compatible key

        Raises:
            StorageError: If the encryption key is invalid
        """
        self._file_path = Path(file_path)
        self._fernet: Fernet | None = None
        if encryption_key:
            try:
                self._fernet = Fernet(encryption_key.encode())
            except Exception as e:
                raise StorageError(f"Invalid encryption key: {e}") from e

    @property
    def path(self) -> Path:
        return self._file_path

    def load(self) -> dict[str, Any]:
        """Read all documents.

        Returns:
            Documents keyed by id (empty when the file does not exist)

        Raises:
            StorageError: If the file cannot be decrypted or parsed
        """
        if not self._file_path.exists():
            return {}

        raw = self._file_path.read_bytes()
        if self._fernet is not None:
            try:
                raw = self._fernet.decrypt(raw)
            except InvalidToken:
                logger.error("Failed to decrypt %s - wrong key?", self._file_path)
                raise StorageError(f"Failed to decrypt {self._file_path}") from None

        try:
            data = json.loads(raw.decode())
        except json.JSONDecodeError as e:
            logger.error("Failed to parse %s: %s", self._file_path, e)
            raise StorageError(f"Failed to parse {self._file_path}: {e}") from e

        if not isinstance(data, dict):
            raise StorageError(f"{self._file_path} does not contain a JSON object")

        logger.debug("Loaded %d documents from %s", len(data), self._file_path)
        return data

    def save(self, documents: dict[str, Any]) -> None:
        """Write all documents atomically using a temp file."""
        payload = json.dumps(documents).encode()
        if self._fernet is not None:
            payload = self._fernet.encrypt(payload)

        dir_path = self._file_path.parent
        dir_path.mkdir(parents=True, exist_ok=True)

        fd, temp_path_str = tempfile.mkstemp(dir=dir_path)
        temp_path = Path(temp_path_str)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
            temp_path.replace(self._file_path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise

        logger.debug("Saved %d documents to %s", len(documents), self._file_path)
