"""Snippet entity."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from gitlab_portal.exceptions import ValidationError


def clean_text(field_name: str, value: str | None) -> str:
    """Trim a required text field.

    Raises:
        ValidationError: If nothing is left after trimming
    """
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(field_name)
    return cleaned


@dataclass
class Snippet:
    """A user-owned piece of text.

    Attributes:
        id: Generated identifier, never changes
        title: Non-empty trimmed title
        content: Non-empty trimmed body
        owner: Identity of the creator, never changes
        created_at: Creation timestamp
        updated_at: Last modification timestamp
    """

    id: str
    title: str
    content: str
    owner: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "owner": self.owner,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snippet:
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            content=str(data["content"]),
            owner=str(data["owner"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )
