"""Shared identifier, timestamp, and text helpers for entity models.

Updates: v0.1.0 - 2026-09-02 - Collect helpers shared by prompt, tag, and collection models.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def utc_now() -> datetime:
    """Return an aware UTC timestamp."""
    return datetime.now(UTC)


def new_id() -> str:
    """Return a fresh opaque identifier."""
    return str(uuid.uuid4())


def has_text(value: str | None) -> bool:
    """Return ``True`` when *value* contains non-whitespace characters."""
    return bool(value and value.strip())


def ensure_datetime(value: Any) -> datetime:
    """Parse incoming datetime values (isoformat strings or datetime)."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if value is None or value == "":
        return utc_now()
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def clean_optional_text(value: Any) -> str | None:
    """Strip whitespace from optional string inputs."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def pick(data: Any, *keys: str, default: Any = None) -> Any:
    """Return the first present key from *data*, accepting camelCase and snake_case aliases."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def unique_strings(values: Iterable[Any] | None) -> tuple[str, ...]:
    """Return *values* as an ordered tuple of distinct strings."""
    if values is None:
        return ()
    seen: set[str] = set()
    ordered: list[str] = []
    for raw in values:
        text = str(raw)
        if text in seen:
            continue
        seen.add(text)
        ordered.append(text)
    return tuple(ordered)


def slugify(value: str | None) -> str:
    """Return a URL-safe slug derived from the provided value."""
    text = (value or "").strip().lower()
    if not text:
        return ""
    return _SLUG_PATTERN.sub("-", text).strip("-")


__all__ = [
    "clean_optional_text",
    "ensure_datetime",
    "has_text",
    "new_id",
    "pick",
    "slugify",
    "unique_strings",
    "utc_now",
]
