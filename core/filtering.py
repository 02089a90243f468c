"""Derive the visible prompt list from entity state and filter selections.

The pipeline is pure and runs in a fixed order: visibility, collection,
tags, search, then a stable sort. Tag selection uses ANY-match semantics:
a prompt is kept when it carries at least one selected tag.

Updates:
  v0.2.0 - 2026-09-19 - Add FilterState value object and apply_filters wrapper.
  v0.1.0 - 2026-09-11 - Introduce derive_visible_prompts pipeline.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from models.prompt_model import Prompt
    from models.user_model import User


class SortOption(str, Enum):
    """Orderings offered for the prompt list."""

    NEWEST = "newest"
    OLDEST = "oldest"
    ALPHABETICAL = "alphabetical"
    UPDATED = "updated"


@dataclass(slots=True, frozen=True)
class FilterState:
    """Current filter and sort selections."""

    selected_collection: str | None = None
    selected_tag_ids: tuple[str, ...] = ()
    search_query: str = ""
    sort_option: SortOption = SortOption.NEWEST

    def with_tag_toggled(self, tag_id: str) -> FilterState:
        """Return a copy with *tag_id* added to or removed from the selection."""
        if tag_id in self.selected_tag_ids:
            remaining = tuple(item for item in self.selected_tag_ids if item != tag_id)
            return replace(self, selected_tag_ids=remaining)
        return replace(self, selected_tag_ids=(*self.selected_tag_ids, tag_id))

    def cleared(self) -> FilterState:
        """Return a copy with collection, tags, and search reset (sort kept)."""
        return FilterState(sort_option=self.sort_option)

    @property
    def is_active(self) -> bool:
        """Return ``True`` when any narrowing filter is selected."""
        return bool(self.selected_collection or self.selected_tag_ids or self.search_query)


def collation_key(text: str) -> tuple[str, str]:
    """Return a locale-style sort key: accent-insensitive and case-insensitive first."""
    decomposed = unicodedata.normalize("NFKD", text)
    base = "".join(char for char in decomposed if not unicodedata.combining(char))
    return (base.casefold(), text)


def _matches_search(prompt: Prompt, needle: str) -> bool:
    if needle in prompt.title.lower() or needle in prompt.content.lower():
        return True
    return any(needle in tag.name.lower() for tag in prompt.tags)


def _sorted(prompts: list[Prompt], sort_option: SortOption) -> list[Prompt]:
    if sort_option is SortOption.OLDEST:
        return sorted(prompts, key=lambda prompt: prompt.created_at)
    if sort_option is SortOption.ALPHABETICAL:
        return sorted(prompts, key=lambda prompt: collation_key(prompt.title))
    if sort_option is SortOption.UPDATED:
        return sorted(prompts, key=lambda prompt: prompt.updated_at, reverse=True)
    return sorted(prompts, key=lambda prompt: prompt.created_at, reverse=True)


def derive_visible_prompts(
    prompts: Iterable[Prompt],
    *,
    selected_collection: str | None = None,
    selected_tag_ids: Sequence[str] = (),
    search_query: str = "",
    sort_option: SortOption | str = SortOption.NEWEST,
    current_user: User | None = None,
) -> tuple[Prompt, ...]:
    """Return the prompts a user should see for the given selections.

    Private prompts are only visible to their owner. Sorting is stable, so
    prompts with equal keys keep their input order.
    """
    user_id = current_user.id if current_user is not None else None
    visible = [prompt for prompt in prompts if prompt.is_visible_to(user_id)]

    if selected_collection:
        visible = [prompt for prompt in visible if prompt.collection_id == selected_collection]

    if selected_tag_ids:
        wanted = set(selected_tag_ids)
        visible = [
            prompt for prompt in visible if any(tag.id in wanted for tag in prompt.tags)
        ]

    if search_query:
        needle = search_query.lower()
        visible = [prompt for prompt in visible if _matches_search(prompt, needle)]

    return tuple(_sorted(visible, SortOption(sort_option)))


def apply_filters(
    prompts: Iterable[Prompt],
    filters: FilterState,
    current_user: User | None = None,
) -> tuple[Prompt, ...]:
    """Run :func:`derive_visible_prompts` with the selections held in *filters*."""
    return derive_visible_prompts(
        prompts,
        selected_collection=filters.selected_collection,
        selected_tag_ids=filters.selected_tag_ids,
        search_query=filters.search_query,
        sort_option=filters.sort_option,
        current_user=current_user,
    )


__all__ = [
    "FilterState",
    "SortOption",
    "apply_filters",
    "collation_key",
    "derive_visible_prompts",
]
