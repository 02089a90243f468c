"""Filter selections and the derived visible prompt list.

Filter changes are local only; they publish a new state synchronously and
never reach the backend.

Updates:
  v0.1.1 - 2026-10-05 - Memoise the visible list per state and user.
  v0.1.0 - 2026-09-28 - Extract filter setters into mixin.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from ..exceptions import ValidationError
from ..filtering import FilterState, SortOption, apply_filters
from .engine import MutationEngine

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from collections.abc import Iterable

    from models.prompt_model import Prompt
    from models.user_model import User

__all__ = ["FilterMixin"]


class FilterMixin(MutationEngine):
    """Filter setters plus memoised :meth:`visible_prompts`."""

    _visible_cache: tuple[tuple[object, object, User | None], tuple[Prompt, ...]] | None

    @property
    def filters(self) -> FilterState:
        """Return the active filter selections."""
        return self._store.state.filters

    def _set_filters(self, filters: FilterState) -> FilterState:
        state = self._store.state
        if filters != state.filters:
            self._store.publish(replace(state, filters=filters))
        return self._store.state.filters

    def set_selected_collection(self, collection_id: str | None) -> FilterState:
        """Show only prompts in *collection_id* (``None`` shows every collection)."""
        selected = self._resolve(collection_id) if collection_id else None
        return self._set_filters(replace(self.filters, selected_collection=selected))

    def toggle_selected_tag(self, tag_id: str) -> FilterState:
        """Add or remove *tag_id* from the tag filter."""
        return self._set_filters(self.filters.with_tag_toggled(self._resolve(tag_id)))

    def set_selected_tags(self, tag_ids: Iterable[str]) -> FilterState:
        """Replace the tag filter; prompts carrying any selected tag match."""
        selected = tuple(dict.fromkeys(self._resolve(tag_id) for tag_id in tag_ids))
        return self._set_filters(replace(self.filters, selected_tag_ids=selected))

    def set_search_query(self, query: str) -> FilterState:
        """Match prompts whose title, content, or tag names contain *query*."""
        return self._set_filters(replace(self.filters, search_query=query or ""))

    def set_sort_option(self, option: SortOption | str) -> FilterState:
        """Change the ordering of :meth:`visible_prompts`."""
        try:
            sort_option = SortOption(option)
        except ValueError as exc:
            raise ValidationError(f"Unknown sort option: {option}") from exc
        return self._set_filters(replace(self.filters, sort_option=sort_option))

    def clear_filters(self) -> FilterState:
        """Reset collection, tag, and search selections; sorting is kept."""
        return self._set_filters(self.filters.cleared())

    def visible_prompts(self) -> tuple[Prompt, ...]:
        """Return prompts visible to the current user under the active filters.

        Recomputed only when prompts, filters, or the signed-in user change.
        """
        state = self._store.state
        user = self.current_user()
        key = (state.prompts, state.filters, user)
        cached = self._visible_cache
        if cached is not None:
            prompts, filters, cached_user = cached[0]
            if prompts is key[0] and filters is key[1] and cached_user == user:
                return cached[1]
        visible = apply_filters(state.prompts, state.filters, user)
        self._visible_cache = (key, visible)
        return visible
