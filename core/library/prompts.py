"""Prompt mutations: create, edit, delete, favourite, and version restore.

Updates:
  v0.2.1 - 2026-10-19 - Keep a committed favourite toggle when the follow-up read fails.
  v0.2.0 - 2026-10-03 - Restore earlier versions through the regular update path.
  v0.1.0 - 2026-09-28 - Extract prompt intents into mixin.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from models.common import utc_now
from models.prompt_model import new_prompt, normalise_tags

from ..exceptions import AuthError, NotFoundError, PromptLibraryError, ValidationError
from ..gateway.base import PromptDraft
from ..patches import apply_prompt_patch, normalise_prompt_patch
from ..validation import validate_content, validate_title
from ..versioning import get_version
from .engine import MutationEngine, MutationHandle

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from collections.abc import Iterable, Mapping

    from models.prompt_model import Prompt
    from models.tag_model import Tag

    from ..state import LibraryState

logger = logging.getLogger("prompt_library.prompts")

__all__ = ["PromptMutationsMixin"]


class PromptMutationsMixin(MutationEngine):
    """Optimistic prompt intents."""

    def _known_tags(self, state: LibraryState, tags: Iterable[Tag | str]) -> tuple[Tag, ...]:
        """Return tags by object or id, requiring ids to be held locally."""
        resolved: list[Tag] = []
        for item in tags:
            if isinstance(item, str):
                resolved.append(self._require_tag(state, item))
            else:
                resolved.append(state.tag(self._resolve(item.id)) or item)
        return normalise_tags(resolved)

    def add_prompt(
        self,
        title: str,
        content: str,
        *,
        tags: Iterable[Tag | str] = (),
        collection_id: str | None = None,
        is_favorite: bool = False,
        is_private: bool = False,
    ) -> MutationHandle:
        """Insert a prompt immediately and create it on the backend.

        The handle resolves with the server's prompt; its temporary id is
        replaced everywhere once the backend answers.
        """
        action = "Create prompt"
        try:
            user = self._require_user()
            clean_title = validate_title(title)
            clean_content = validate_content(content)
            state = self._store.state
            prompt_tags = self._known_tags(state, tags)
            target = (
                self._require_collection(state, collection_id).id if collection_id else None
            )
        except (ValidationError, AuthError, NotFoundError) as exc:
            return self._rejected(action, exc)

        prompt = new_prompt(
            clean_title,
            clean_content,
            tags=prompt_tags,
            collection_id=target,
            is_favorite=is_favorite,
            is_private=is_private,
            created_by=user.id,
        )

        async def dispatch() -> Prompt:
            draft = PromptDraft(
                title=prompt.title,
                content=prompt.content,
                tags=self._dispatch_tags(prompt.tags),
                collection_id=self._resolve(target) if target else None,
                is_favorite=prompt.is_favorite,
                is_private=prompt.is_private,
                created_by=user.id,
            )
            return await self._gateway.create_prompt(draft)

        return self._mutate(
            action,
            optimistic=lambda current: current.with_prompt(prompt),
            dispatch=dispatch,
            reconcile=lambda current, server: self._reconcile_prompt(current, prompt.id, server),
            depends_on=self._dependencies(tags=prompt_tags, collection_id=target),
            entity_id=prompt.id,
        )

    def update_prompt(
        self,
        prompt_id: str,
        patch: Mapping[str, Any] | None = None,
        /,
        **fields: Any,
    ) -> MutationHandle:
        """Apply a partial update; content changes bump the version.

        Accepts a patch mapping, keyword fields, or both (keywords win).
        """
        action = "Update prompt"
        try:
            values = normalise_prompt_patch({**(patch or {}), **fields})
        except ValidationError as exc:
            return self._rejected(action, exc)
        local_id = self._resolve(prompt_id)

        def optimistic(state: LibraryState) -> LibraryState:
            current = self._require_prompt(state, local_id)
            self._check_editable(current)
            if values.get("collection_id"):
                values["collection_id"] = self._require_collection(state, values["collection_id"]).id
            if "tags" in values:
                values["tags"] = self._known_tags(state, values["tags"])
            return state.with_prompt(apply_prompt_patch(current, values, now=utc_now()))

        async def dispatch() -> Prompt:
            outgoing = dict(values)
            if "tags" in outgoing:
                outgoing["tags"] = self._dispatch_tags(outgoing["tags"])
            if outgoing.get("collection_id"):
                outgoing["collection_id"] = self._resolve(outgoing["collection_id"])
            return await self._gateway.update_prompt(self._resolve(local_id), outgoing)

        return self._mutate(
            action,
            optimistic=optimistic,
            dispatch=dispatch,
            reconcile=lambda current, server: self._reconcile_prompt(current, local_id, server),
            depends_on=self._dependencies(
                tags=values.get("tags", ()), collection_id=values.get("collection_id")
            ),
            entity_id=local_id,
        )

    def delete_prompt(self, prompt_id: str) -> MutationHandle:
        """Remove a prompt locally and on the backend."""
        local_id = self._resolve(prompt_id)

        def optimistic(state: LibraryState) -> LibraryState:
            self._check_editable(self._require_prompt(state, local_id))
            return state.without_prompt(local_id)

        async def dispatch() -> None:
            await self._gateway.delete_prompt(self._resolve(local_id))

        return self._mutate(
            "Delete prompt", optimistic=optimistic, dispatch=dispatch, entity_id=local_id
        )

    def toggle_favorite(self, prompt_id: str) -> MutationHandle:
        """Flip ``is_favorite``; the backend's answer decides the final value."""
        action = "Toggle favourite"
        local_id = self._resolve(prompt_id)

        def optimistic(state: LibraryState) -> LibraryState:
            self._require_user()
            current = self._require_prompt(state, local_id)
            return state.with_prompt(replace(current, is_favorite=not current.is_favorite))

        async def dispatch() -> Prompt | None:
            server_id = self._resolve(local_id)
            await self._gateway.toggle_favorite(server_id)
            try:
                return await self._gateway.get_prompt(server_id)
            except PromptLibraryError as exc:
                # The flip already happened; keep the optimistic value.
                logger.warning("Could not refresh prompt %s after toggling favourite: %s", server_id, exc)
                return None

        def reconcile(state: LibraryState, server: Prompt | None) -> LibraryState:
            current = state.prompt(self._resolve(local_id))
            if server is None or current is None or self._superseded("prompt", current.id):
                return state
            if current.is_favorite == server.is_favorite:
                return state
            return state.with_prompt(replace(current, is_favorite=server.is_favorite))

        return self._mutate(
            action, optimistic=optimistic, dispatch=dispatch, reconcile=reconcile, entity_id=local_id
        )

    def restore_version(self, prompt_id: str, version: int) -> MutationHandle:
        """Make the content of an earlier *version* the live content again.

        Restoring records a new version rather than rewinding history.
        """
        try:
            prompt = self._require_prompt(self._store.state, prompt_id)
            entry = get_version(prompt, version)
        except NotFoundError as exc:
            return self._rejected("Restore version", exc)
        logger.debug("Restoring prompt %s to version %s", prompt.id, entry.version)
        return self.update_prompt(prompt.id, content=entry.content)
