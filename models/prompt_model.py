"""Prompt data model definitions.

Updates: v0.2.1 - 2026-09-14 - Accept snake_case aliases when hydrating prompt records.
Updates: v0.2.0 - 2026-09-08 - Add version history entries to prompt records.
Updates: v0.1.0 - 2026-09-02 - Initial Prompt schema with serialization helpers.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .common import clean_optional_text, ensure_datetime, has_text, new_id, pick, utc_now
from .tag_model import Tag


def _coerce_tag(value: Any) -> Tag:
    """Return a Tag from a record, an existing Tag, or a bare name."""
    if isinstance(value, Tag):
        return value
    if isinstance(value, Mapping):
        return Tag.from_record(value)
    text = str(value).strip()
    return Tag(id=text, name=text)


def normalise_tags(values: Iterable[Any] | None) -> tuple[Tag, ...]:
    """Return tags as an ordered tuple with duplicate ids removed."""
    if not values:
        return ()
    seen: set[str] = set()
    tags: list[Tag] = []
    for raw in values:
        tag = _coerce_tag(raw)
        if tag.id in seen:
            continue
        seen.add(tag.id)
        tags.append(tag)
    return tuple(tags)


@dataclass(slots=True, frozen=True)
class VersionEntry:
    """Snapshot of prompt content captured before an edit."""

    version: int
    content: str
    updated_at: datetime

    def to_record(self) -> dict[str, Any]:
        """Return a plain mapping for JSON persistence and the wire format."""
        return {
            "version": self.version,
            "content": self.content,
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> VersionEntry:
        """Hydrate a history entry from a mapping."""
        return cls(
            version=int(data["version"]),
            content=str(data.get("content") or ""),
            updated_at=ensure_datetime(pick(data, "updatedAt", "updated_at")),
        )


@dataclass(slots=True, frozen=True)
class Prompt:
    """Dataclass representation of a stored prompt template."""

    id: str
    title: str
    content: str
    tags: tuple[Tag, ...] = ()
    collection_id: str | None = None
    is_favorite: bool = False
    is_private: bool = False
    created_by: str | None = None
    version: int = 1
    version_history: tuple[VersionEntry, ...] = ()
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def tag_ids(self) -> tuple[str, ...]:
        """Return identifiers of the attached tags in order."""
        return tuple(tag.id for tag in self.tags)

    def has_tag(self, tag_id: str) -> bool:
        """Return ``True`` when a tag with *tag_id* is attached."""
        return any(tag.id == tag_id for tag in self.tags)

    def is_visible_to(self, user_id: str | None) -> bool:
        """Return ``True`` when the prompt is public or owned by *user_id*."""
        if not self.is_private:
            return True
        return user_id is not None and self.created_by == user_id

    def validation_errors(self) -> list[str]:
        """Return human-readable problems with the prompt (empty when valid)."""
        errors: list[str] = []
        if not has_text(self.title):
            errors.append("Prompt title cannot be empty")
        if not has_text(self.content):
            errors.append("Prompt content cannot be empty")
        if self.version < 1:
            errors.append("Prompt version must be at least 1")
        if self.updated_at < self.created_at:
            errors.append("Prompt updatedAt precedes createdAt")
        return errors

    def to_record(self) -> dict[str, Any]:
        """Return a plain mapping for JSON persistence and the wire format."""
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "tags": [tag.to_record() for tag in self.tags],
            "collectionId": self.collection_id,
            "isFavorite": self.is_favorite,
            "isPrivate": self.is_private,
            "createdBy": self.created_by,
            "version": self.version,
            "versionHistory": [entry.to_record() for entry in self.version_history],
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> Prompt:
        """Hydrate a Prompt from a mapping, accepting snake_case aliases."""
        created_at = ensure_datetime(pick(data, "createdAt", "created_at"))
        updated_at = ensure_datetime(pick(data, "updatedAt", "updated_at", default=created_at))
        history = pick(data, "versionHistory", "version_history", default=()) or ()
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or "").strip(),
            content=str(data.get("content") or ""),
            tags=normalise_tags(data.get("tags")),
            collection_id=clean_optional_text(pick(data, "collectionId", "collection_id")),
            is_favorite=bool(pick(data, "isFavorite", "is_favorite", default=False)),
            is_private=bool(pick(data, "isPrivate", "is_private", default=False)),
            created_by=clean_optional_text(pick(data, "createdBy", "created_by", "userId", "user_id")),
            version=int(pick(data, "version", default=1)),
            version_history=tuple(VersionEntry.from_record(entry) for entry in history),
            created_at=created_at,
            updated_at=max(updated_at, created_at),
        )


def new_prompt(
    title: str,
    content: str,
    *,
    tags: Iterable[Tag] = (),
    collection_id: str | None = None,
    is_favorite: bool = False,
    is_private: bool = False,
    created_by: str | None = None,
) -> Prompt:
    """Return a version-1 prompt stamped with a fresh identifier and timestamps."""
    now = utc_now()
    return Prompt(
        id=new_id(),
        title=title.strip(),
        content=content,
        tags=normalise_tags(tags),
        collection_id=collection_id,
        is_favorite=is_favorite,
        is_private=is_private,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )


__all__ = ["Prompt", "VersionEntry", "new_prompt", "normalise_tags"]
