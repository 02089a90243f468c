"""Tag data model definitions.

Updates: v0.1.1 - 2026-09-10 - Add case-insensitive identity key used for de-duplication.
Updates: v0.1.0 - 2026-09-02 - Introduce Tag dataclass and factory helper.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .common import ensure_datetime, has_text, new_id, pick, utc_now


def tag_key(name: str) -> str:
    """Return the case-insensitive identity key for a tag name."""
    return name.strip().casefold()


@dataclass(slots=True, frozen=True)
class Tag:
    """Short label attachable to many prompts; unique by case-insensitive name."""

    id: str
    name: str
    created_at: datetime = field(default_factory=utc_now, compare=False)

    @property
    def key(self) -> str:
        """Return the case-insensitive identity key for the tag name."""
        return tag_key(self.name)

    def validation_errors(self) -> list[str]:
        """Return human-readable problems with the tag (empty when valid)."""
        if not has_text(self.name):
            return ["Tag name cannot be empty"]
        return []

    def to_record(self) -> dict[str, Any]:
        """Return a plain mapping for JSON persistence and the wire format."""
        return {
            "id": self.id,
            "name": self.name,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> Tag:
        """Hydrate a Tag from a mapping."""
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or "").strip(),
            created_at=ensure_datetime(pick(data, "createdAt", "created_at")),
        )


def new_tag(name: str) -> Tag:
    """Return a tag stamped with a fresh identifier."""
    return Tag(id=new_id(), name=name.strip())


__all__ = ["Tag", "new_tag", "tag_key"]
