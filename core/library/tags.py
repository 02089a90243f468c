"""Tag mutations and per-prompt tagging.

Tag names are unique case-insensitively. Asking for a tag that already
exists reuses it; asking twice while the first creation is still in flight
returns the same handle.

Updates:
  v0.2.0 - 2026-10-04 - Reuse in-flight tag creations for duplicate names.
  v0.1.0 - 2026-09-28 - Extract tag intents into mixin.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from models.tag_model import new_tag, tag_key

from ..exceptions import AuthError, NotFoundError, ValidationError
from ..validation import validate_tag_name
from .engine import MutationHandle
from .prompts import PromptMutationsMixin

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from models.tag_model import Tag

    from ..state import LibraryState

logger = logging.getLogger("prompt_library.tags")

__all__ = ["TagMutationsMixin"]


class TagMutationsMixin(PromptMutationsMixin):
    """Optimistic tag intents."""

    _tag_creations: dict[str, MutationHandle]

    def add_tag(self, name: str) -> MutationHandle:
        """Return a handle resolving to the tag named *name*, creating it if needed."""
        action = "Create tag"
        try:
            clean = validate_tag_name(name)
        except ValidationError as exc:
            return self._rejected(action, exc)

        existing = self._store.state.find_tag(clean)
        if existing is not None:
            in_flight = self._tag_creations.get(existing.id)
            if in_flight is not None and not in_flight.done():
                return in_flight
            return self._committed(action, existing, entity_id=existing.id)

        tag = new_tag(clean)

        async def dispatch() -> Tag:
            return await self._gateway.create_tag(tag.name)

        handle = self._mutate(
            action,
            optimistic=lambda state: state.with_tag(tag),
            dispatch=dispatch,
            reconcile=lambda state, server: self._reconcile_tag(state, tag.id, server),
            entity_id=tag.id,
        )
        self._tag_creations[tag.id] = handle
        handle.add_done_callback(lambda _handle: self._tag_creations.pop(tag.id, None))
        return handle

    def rename_tag(self, tag_id: str, name: str) -> MutationHandle:
        """Rename a tag everywhere it appears."""
        action = "Rename tag"
        try:
            clean = validate_tag_name(name)
        except ValidationError as exc:
            return self._rejected(action, exc)
        local_id = self._resolve(tag_id)

        def optimistic(state: LibraryState) -> LibraryState:
            current = self._require_tag(state, local_id)
            clash = state.find_tag(clean)
            if clash is not None and clash.id != current.id:
                raise ValidationError(f"A tag named '{clash.name}' already exists")
            return state.with_tag(replace(current, name=clean))

        async def dispatch() -> Tag:
            return await self._gateway.update_tag(self._resolve(local_id), clean)

        return self._mutate(
            action,
            optimistic=optimistic,
            dispatch=dispatch,
            reconcile=lambda state, server: self._reconcile_tag(state, local_id, server),
            entity_id=local_id,
        )

    def delete_tag(self, tag_id: str) -> MutationHandle:
        """Delete a tag and strip it from every prompt and the tag filter."""
        local_id = self._resolve(tag_id)

        def optimistic(state: LibraryState) -> LibraryState:
            self._require_tag(state, local_id)
            return state.without_tag(local_id)

        async def dispatch() -> None:
            await self._gateway.delete_tag(self._resolve(local_id))

        return self._mutate(
            "Delete tag", optimistic=optimistic, dispatch=dispatch, entity_id=local_id
        )

    def add_tag_to_prompt(self, prompt_id: str, name: str) -> MutationHandle:
        """Attach the tag named *name* to a prompt, creating the tag if needed."""
        action = "Tag prompt"
        try:
            clean = validate_tag_name(name)
            prompt = self._require_prompt(self._store.state, prompt_id)
            self._check_editable(prompt)
        except (ValidationError, AuthError, NotFoundError) as exc:
            return self._rejected(action, exc)

        tag_handle = self.add_tag(clean)
        if tag_handle.done() and not tag_handle.result().ok:
            return tag_handle
        tag = self._store.state.find_tag(clean)
        if tag is None:  # pragma: no cover - add_tag always inserts the tag
            return self._rejected(action, NotFoundError(f"Tag '{clean}' not found", kind="tag"))
        if any(tag_key(item.name) == tag.key or item.id == tag.id for item in prompt.tags):
            return self._committed(action, prompt, entity_id=prompt.id)
        return self.update_prompt(prompt.id, tags=(*prompt.tags, tag))

    def remove_tag_from_prompt(self, prompt_id: str, tag_id: str) -> MutationHandle:
        """Detach a tag from a prompt; the tag itself is kept."""
        action = "Untag prompt"
        try:
            prompt = self._require_prompt(self._store.state, prompt_id)
        except NotFoundError as exc:
            return self._rejected(action, exc)
        target = self._resolve(tag_id)
        if not prompt.has_tag(target):
            return self._committed(action, prompt, entity_id=prompt.id)
        remaining = tuple(item for item in prompt.tags if item.id != target)
        logger.debug("Removing tag %s from prompt %s", target, prompt.id)
        return self.update_prompt(prompt.id, tags=remaining)
