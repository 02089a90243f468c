"""Collection data model definitions.

Updates: v0.1.1 - 2026-09-12 - Track owner and timestamps for collection records.
Updates: v0.1.0 - 2026-09-02 - Introduce Collection dataclass with prompt membership mirror.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from .common import (
    clean_optional_text,
    ensure_datetime,
    has_text,
    new_id,
    pick,
    unique_strings,
    utc_now,
)


@dataclass(slots=True, frozen=True)
class Collection:
    """Named grouping of prompts.

    ``prompt_ids`` mirrors ``Prompt.collection_id`` and is maintained by the
    state layer; a prompt id appears in at most one collection.
    """

    id: str
    name: str
    description: str | None = None
    prompt_ids: tuple[str, ...] = ()
    created_by: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def validation_errors(self) -> list[str]:
        """Return human-readable problems with the collection (empty when valid)."""
        if not has_text(self.name):
            return ["Collection name cannot be empty"]
        return []

    def with_prompt(self, prompt_id: str) -> Collection:
        """Return a copy that lists *prompt_id* as a member."""
        if prompt_id in self.prompt_ids:
            return self
        return replace(self, prompt_ids=(*self.prompt_ids, prompt_id))

    def without_prompt(self, prompt_id: str) -> Collection:
        """Return a copy that no longer lists *prompt_id*."""
        if prompt_id not in self.prompt_ids:
            return self
        return replace(
            self,
            prompt_ids=tuple(member for member in self.prompt_ids if member != prompt_id),
        )

    def to_record(self) -> dict[str, Any]:
        """Return a plain mapping for JSON persistence and the wire format."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "promptIds": list(self.prompt_ids),
            "createdBy": self.created_by,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> Collection:
        """Hydrate a Collection from a mapping."""
        created_at = ensure_datetime(pick(data, "createdAt", "created_at"))
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or "").strip(),
            description=clean_optional_text(data.get("description")),
            prompt_ids=unique_strings(pick(data, "promptIds", "prompt_ids", default=())),
            created_by=clean_optional_text(pick(data, "createdBy", "created_by", "userId", "user_id")),
            created_at=created_at,
            updated_at=ensure_datetime(pick(data, "updatedAt", "updated_at", default=created_at)),
        )


def new_collection(
    name: str,
    *,
    description: str | None = None,
    created_by: str | None = None,
) -> Collection:
    """Return an empty collection stamped with a fresh identifier and timestamps."""
    now = utc_now()
    return Collection(
        id=new_id(),
        name=name.strip(),
        description=clean_optional_text(description),
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )


__all__ = ["Collection", "new_collection"]
