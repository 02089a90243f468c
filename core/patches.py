"""Partial-update helpers for prompts and collections.

A patch is a plain mapping of field name to new value. Keys may use either
snake_case or the camelCase names of the wire format.

Updates:
  v0.1.1 - 2026-09-14 - Accept camelCase patch keys from REST payloads.
  v0.1.0 - 2026-09-09 - Introduce prompt and collection patch helpers.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from models.common import clean_optional_text
from models.prompt_model import normalise_tags
from models.tag_model import Tag

from .exceptions import ValidationError
from .validation import validate_collection_name, validate_content, validate_title
from .versioning import record_version

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from datetime import datetime

    from models.collection_model import Collection
    from models.prompt_model import Prompt

PROMPT_PATCH_FIELDS = frozenset(
    {"title", "content", "tags", "collection_id", "is_favorite", "is_private"}
)
COLLECTION_PATCH_FIELDS = frozenset({"name", "description"})

_ALIASES = {
    "collectionId": "collection_id",
    "isFavorite": "is_favorite",
    "isPrivate": "is_private",
}


def _canonical_keys(patch: Mapping[str, Any], allowed: frozenset[str]) -> dict[str, Any]:
    normalised: dict[str, Any] = {}
    for raw_key, value in patch.items():
        key = _ALIASES.get(raw_key, raw_key)
        if key not in allowed:
            raise ValidationError(f"Unknown patch field: {raw_key}")
        normalised[key] = value
    return normalised


def _coerce_tags(value: Any) -> tuple[Tag, ...]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise ValidationError("Patch field 'tags' must be a sequence of tags")
    tags = normalise_tags(value)
    for tag in tags:
        if tag.validation_errors():
            raise ValidationError("Patch field 'tags' contains an empty tag name")
    return tags


def normalise_prompt_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
    """Return a validated copy of *patch* keyed by snake_case prompt fields.

    Raises:
      ValidationError: for unknown keys, blank title/content, or wrongly typed values.
    """
    values = _canonical_keys(patch, PROMPT_PATCH_FIELDS)
    if "title" in values:
        values["title"] = validate_title(values["title"])
    if "content" in values:
        values["content"] = validate_content(values["content"])
    if "tags" in values:
        values["tags"] = _coerce_tags(values["tags"])
    if "collection_id" in values:
        collection_id = values["collection_id"]
        if collection_id is not None and not isinstance(collection_id, str):
            raise ValidationError("Patch field 'collection_id' must be a string or None")
        values["collection_id"] = clean_optional_text(collection_id)
    for flag in ("is_favorite", "is_private"):
        if flag in values and not isinstance(values[flag], bool):
            raise ValidationError(f"Patch field '{flag}' must be a boolean")
    return values


def apply_prompt_patch(prompt: Prompt, patch: Mapping[str, Any], *, now: datetime) -> Prompt:
    """Return *prompt* with *patch* applied and ``updated_at`` stamped.

    Content changes go through :func:`record_version`, so unchanged content
    leaves version and history untouched.
    """
    values = normalise_prompt_patch(patch)
    updated = prompt
    if "content" in values:
        updated = record_version(updated, values.pop("content"), now=now)
    return replace(updated, **values, updated_at=max(now, prompt.created_at))


def normalise_collection_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
    """Return a validated copy of a collection *patch* (``name``, ``description``)."""
    values = _canonical_keys(patch, COLLECTION_PATCH_FIELDS)
    if "name" in values:
        values["name"] = validate_collection_name(values["name"])
    if "description" in values:
        description = values["description"]
        if description is not None and not isinstance(description, str):
            raise ValidationError("Patch field 'description' must be a string or None")
        values["description"] = clean_optional_text(description)
    return values


def apply_collection_patch(
    collection: Collection,
    patch: Mapping[str, Any],
    *,
    now: datetime,
) -> Collection:
    """Return *collection* with *patch* applied and ``updated_at`` stamped."""
    values = normalise_collection_patch(patch)
    return replace(collection, **values, updated_at=max(now, collection.created_at))


def prompt_patch_to_record(patch: Mapping[str, Any]) -> dict[str, Any]:
    """Return *patch* using the camelCase keys of the wire format."""
    reverse = {snake: camel for camel, snake in _ALIASES.items()}
    record: dict[str, Any] = {}
    for key, value in normalise_prompt_patch(patch).items():
        if key == "tags":
            record["tags"] = [tag.id for tag in value]
        else:
            record[reverse.get(key, key)] = value
    return record


__all__ = [
    "COLLECTION_PATCH_FIELDS",
    "PROMPT_PATCH_FIELDS",
    "apply_collection_patch",
    "apply_prompt_patch",
    "normalise_collection_patch",
    "normalise_prompt_patch",
    "prompt_patch_to_record",
]
