"""Prompt content versioning helpers.

History is append-only and never pruned, so long-lived prompts accumulate
one entry per content edit.

Updates:
  v0.2.0 - 2026-09-15 - Add version lookup and unified diff rendering.
  v0.1.0 - 2026-09-08 - Introduce record_version for content edits.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from models.common import utc_now
from models.prompt_model import Prompt, VersionEntry

from .exceptions import NotFoundError

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from datetime import datetime

__all__ = [
    "VersionDiff",
    "diff_versions",
    "get_version",
    "list_versions",
    "record_version",
]


@dataclass(slots=True, frozen=True)
class VersionDiff:
    """Unified diff between two content versions of a prompt."""

    prompt_id: str
    base_version: int
    target_version: int
    body_diff: str

    @property
    def has_changes(self) -> bool:
        """Return ``True`` when the two versions differ."""
        return bool(self.body_diff)


def record_version(prompt: Prompt, new_content: str, *, now: datetime | None = None) -> Prompt:
    """Return *prompt* with *new_content*, archiving the previous content.

    Identical content returns the same instance untouched. Otherwise the
    pre-change ``(version, content, updated_at)`` triple is appended to the
    history, ``version`` increases by one, and ``updated_at`` becomes *now*.
    """
    if new_content == prompt.content:
        return prompt
    stamp = now or utc_now()
    entry = VersionEntry(
        version=prompt.version,
        content=prompt.content,
        updated_at=prompt.updated_at,
    )
    return replace(
        prompt,
        content=new_content,
        version=prompt.version + 1,
        version_history=(*prompt.version_history, entry),
        updated_at=max(stamp, prompt.created_at),
    )


def list_versions(prompt: Prompt) -> tuple[VersionEntry, ...]:
    """Return archived versions followed by the live one, oldest first."""
    live = VersionEntry(version=prompt.version, content=prompt.content, updated_at=prompt.updated_at)
    return (*prompt.version_history, live)


def get_version(prompt: Prompt, number: int) -> VersionEntry:
    """Return the entry for version *number*, including the live version."""
    for entry in list_versions(prompt):
        if entry.version == number:
            return entry
    raise NotFoundError(
        f"Prompt {prompt.id} has no version {number}",
        kind="version",
        entity_id=prompt.id,
    )


def _render_text_diff(
    before: str,
    after: str,
    *,
    label_a: str = "before",
    label_b: str = "after",
) -> str:
    diff = difflib.unified_diff(
        before.splitlines(),
        after.splitlines(),
        fromfile=label_a,
        tofile=label_b,
        lineterm="",
    )
    return "\n".join(diff)


def diff_versions(prompt: Prompt, base: int, target: int | None = None) -> VersionDiff:
    """Return a unified diff from version *base* to *target* (live when omitted)."""
    target_number = prompt.version if target is None else target
    base_entry = get_version(prompt, base)
    target_entry = get_version(prompt, target_number)
    return VersionDiff(
        prompt_id=prompt.id,
        base_version=base_entry.version,
        target_version=target_entry.version,
        body_diff=_render_text_diff(
            base_entry.content,
            target_entry.content,
            label_a=f"v{base_entry.version}",
            label_b=f"v{target_entry.version}",
        ),
    )
