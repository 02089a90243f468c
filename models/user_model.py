"""User data model definitions.

Updates: v0.1.0 - 2026-09-02 - Introduce User dataclass for prompt ownership.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .common import pick


@dataclass(slots=True, frozen=True)
class User:
    """Signed-in account referenced by prompt and collection ownership."""

    id: str
    username: str
    email: str

    def to_record(self) -> dict[str, Any]:
        """Return a plain mapping for JSON persistence and the wire format."""
        return {"id": self.id, "username": self.username, "email": self.email}

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> User:
        """Hydrate a User from a mapping (accepts ``userId`` as the identifier)."""
        identifier = pick(data, "id", "userId", "user_id", "sub")
        if identifier is None:
            raise KeyError("id")
        return cls(
            id=str(identifier),
            username=str(data.get("username") or ""),
            email=str(data.get("email") or ""),
        )


__all__ = ["User"]
