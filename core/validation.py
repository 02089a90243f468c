"""Client-side input validation shared by the mutation engine and gateways.

Updates:
  v0.1.0 - 2026-09-09 - Introduce draft and name validators.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from models.common import has_text

from .exceptions import ValidationError

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from .gateway.base import CollectionDraft, PromptDraft


def validate_title(title: str | None) -> str:
    """Return the stripped *title* or raise when it is blank."""
    if not has_text(title):
        raise ValidationError("Prompt title cannot be empty")
    return str(title).strip()


def validate_content(content: str | None) -> str:
    """Return *content* unchanged or raise when it is blank."""
    if not has_text(content):
        raise ValidationError("Prompt content cannot be empty")
    return str(content)


def validate_prompt_draft(draft: PromptDraft) -> None:
    """Raise :class:`ValidationError` when the draft lacks a title or content."""
    validate_title(draft.title)
    validate_content(draft.content)


def validate_collection_name(name: str | None) -> str:
    """Return the stripped collection *name* or raise when it is blank."""
    if not has_text(name):
        raise ValidationError("Collection name cannot be empty")
    return str(name).strip()


def validate_collection_draft(draft: CollectionDraft) -> None:
    """Raise :class:`ValidationError` when the draft lacks a name."""
    validate_collection_name(draft.name)


def validate_tag_name(name: str | None) -> str:
    """Return the stripped tag *name* or raise when it is blank."""
    if not has_text(name):
        raise ValidationError("Tag name cannot be empty")
    return str(name).strip()


__all__ = [
    "validate_collection_draft",
    "validate_collection_name",
    "validate_content",
    "validate_prompt_draft",
    "validate_tag_name",
    "validate_title",
]
