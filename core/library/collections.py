"""Collection mutations and prompt membership.

A prompt belongs to at most one collection. Membership changes move the
prompt's ``collection_id``; the collection ``prompt_ids`` mirror follows from
the state transition, so both sides always agree.

Updates:
  v0.1.1 - 2026-10-01 - Require sign-in for membership changes.
  v0.1.0 - 2026-09-28 - Extract collection intents into mixin.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from models.collection_model import new_collection
from models.common import utc_now

from ..exceptions import AuthError, NotFoundError, ValidationError
from ..gateway.base import CollectionDraft
from ..patches import apply_collection_patch, normalise_collection_patch
from ..validation import validate_collection_name
from .engine import MutationEngine, MutationHandle

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from collections.abc import Mapping

    from models.collection_model import Collection

    from ..state import LibraryState

__all__ = ["CollectionMutationsMixin"]


class CollectionMutationsMixin(MutationEngine):
    """Optimistic collection intents."""

    def add_collection(self, name: str, description: str | None = None) -> MutationHandle:
        """Create an empty collection owned by the signed-in user."""
        action = "Create collection"
        try:
            user = self._require_user()
            collection = new_collection(
                validate_collection_name(name), description=description, created_by=user.id
            )
        except (ValidationError, AuthError) as exc:
            return self._rejected(action, exc)

        async def dispatch() -> Collection:
            draft = CollectionDraft(
                name=collection.name, description=collection.description, created_by=user.id
            )
            return await self._gateway.create_collection(draft)

        return self._mutate(
            action,
            optimistic=lambda state: state.with_collection(collection),
            dispatch=dispatch,
            reconcile=lambda state, server: self._reconcile_collection(state, collection.id, server),
            entity_id=collection.id,
        )

    def update_collection(
        self,
        collection_id: str,
        patch: Mapping[str, Any] | None = None,
        /,
        **fields: Any,
    ) -> MutationHandle:
        """Rename or re-describe a collection."""
        action = "Update collection"
        try:
            values = normalise_collection_patch({**(patch or {}), **fields})
        except ValidationError as exc:
            return self._rejected(action, exc)
        local_id = self._resolve(collection_id)

        def optimistic(state: LibraryState) -> LibraryState:
            current = self._require_collection(state, local_id)
            return state.with_collection(apply_collection_patch(current, values, now=utc_now()))

        async def dispatch() -> Collection:
            return await self._gateway.update_collection(self._resolve(local_id), values)

        return self._mutate(
            action,
            optimistic=optimistic,
            dispatch=dispatch,
            reconcile=lambda state, server: self._reconcile_collection(state, local_id, server),
            entity_id=local_id,
        )

    def delete_collection(self, collection_id: str) -> MutationHandle:
        """Delete a collection; its prompts stay in the library, unassigned."""
        local_id = self._resolve(collection_id)

        def optimistic(state: LibraryState) -> LibraryState:
            self._require_collection(state, local_id)
            return state.without_collection(local_id)

        async def dispatch() -> None:
            await self._gateway.delete_collection(self._resolve(local_id))

        return self._mutate(
            "Delete collection", optimistic=optimistic, dispatch=dispatch, entity_id=local_id
        )

    def add_prompt_to_collection(self, prompt_id: str, collection_id: str) -> MutationHandle:
        """Move a prompt into *collection_id*, leaving any previous collection."""
        prompt_local = self._resolve(prompt_id)
        collection_local = self._resolve(collection_id)

        def optimistic(state: LibraryState) -> LibraryState:
            self._require_user()
            prompt = self._require_prompt(state, prompt_local)
            self._check_editable(prompt)
            self._require_collection(state, collection_local)
            return state.with_assignment(prompt_local, collection_local)

        async def dispatch() -> None:
            await self._gateway.add_to_collection(
                self._resolve(prompt_local), self._resolve(collection_local)
            )

        return self._mutate(
            "Add prompt to collection",
            optimistic=optimistic,
            dispatch=dispatch,
            depends_on={self._key("prompt", prompt_local), self._key("collection", collection_local)},
            entity_id=prompt_local,
        )

    def remove_prompt_from_collection(
        self, prompt_id: str, collection_id: str | None = None
    ) -> MutationHandle:
        """Detach a prompt from its collection.

        When *collection_id* is given it must name the prompt's current
        collection.
        """
        action = "Remove prompt from collection"
        try:
            self._require_user()
            prompt = self._require_prompt(self._store.state, prompt_id)
        except (AuthError, NotFoundError) as exc:
            return self._rejected(action, exc)
        expected = self._resolve(collection_id) if collection_id else prompt.collection_id
        if expected is None or prompt.collection_id != expected:
            return self._rejected(action, ValidationError("Prompt is not in this collection"))
        prompt_local = prompt.id

        def optimistic(state: LibraryState) -> LibraryState:
            current = self._require_prompt(state, prompt_local)
            self._check_editable(current)
            return state.with_assignment(prompt_local, None)

        async def dispatch() -> None:
            await self._gateway.remove_from_collection(
                self._resolve(prompt_local), self._resolve(expected)
            )

        return self._mutate(
            action,
            optimistic=optimistic,
            dispatch=dispatch,
            depends_on={self._key("prompt", prompt_local), self._key("collection", expected)},
            entity_id=prompt_local,
        )
