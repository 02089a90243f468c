"""Immutable library state and the single-writer state store.

``LibraryState`` is a frozen snapshot of every entity the session holds plus
the active filters. All transitions return a new snapshot; entities that did
not change keep their identity, which lets the mutation engine find touched
entities by comparing two snapshots. Every transition also rebuilds the
collection ``prompt_ids`` mirror from ``Prompt.collection_id``, so a published
state never carries an inconsistent mirror.

Updates:
  v0.2.0 - 2026-09-27 - Add entity re-keying and snapshot restore for rollbacks.
  v0.1.0 - 2026-09-20 - Introduce LibraryState and StateStore.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Literal, Protocol

from models.prompt_model import normalise_tags
from models.tag_model import tag_key

from .filtering import FilterState

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from models.collection_model import Collection
    from models.prompt_model import Prompt
    from models.tag_model import Tag

logger = logging.getLogger("prompt_library.state")

EntityKind = Literal["prompt", "collection", "tag"]
EntityKey = tuple[EntityKind, str]
_KINDS: tuple[EntityKind, ...] = ("prompt", "collection", "tag")


class _HasId(Protocol):
    @property
    def id(self) -> str: ...


def _upsert[E: _HasId](
    items: tuple[E, ...], entity: E, *, prepend: bool = False
) -> tuple[E, ...]:
    for index, item in enumerate(items):
        if item.id == entity.id:
            if item is entity:
                return items
            return (*items[:index], entity, *items[index + 1:])
    return (entity, *items) if prepend else (*items, entity)


def _insert_at[E: _HasId](
    items: tuple[E, ...], entity: E, index: int
) -> tuple[E, ...]:
    position = max(0, min(index, len(items)))
    return (*items[:position], entity, *items[position:])


@dataclass(slots=True, frozen=True)
class LibraryState:
    """Snapshot of prompts, collections, tags, and filter selections."""

    prompts: tuple[Prompt, ...] = ()
    collections: tuple[Collection, ...] = ()
    tags: tuple[Tag, ...] = ()
    filters: FilterState = field(default_factory=FilterState)
    is_loading: bool = False

    # Lookups -------------------------------------------------------------
    def prompt(self, prompt_id: str) -> Prompt | None:
        """Return the prompt with *prompt_id*, if held."""
        return next((item for item in self.prompts if item.id == prompt_id), None)

    def collection(self, collection_id: str) -> Collection | None:
        """Return the collection with *collection_id*, if held."""
        return next((item for item in self.collections if item.id == collection_id), None)

    def tag(self, tag_id: str) -> Tag | None:
        """Return the tag with *tag_id*, if held."""
        return next((item for item in self.tags if item.id == tag_id), None)

    def find_tag(self, name: str) -> Tag | None:
        """Return the tag whose name matches *name* case-insensitively."""
        key = tag_key(name)
        return next((item for item in self.tags if item.key == key), None)

    def entity(self, kind: EntityKind, entity_id: str) -> Prompt | Collection | Tag | None:
        """Return the entity of *kind* with *entity_id*, if held."""
        if kind == "prompt":
            return self.prompt(entity_id)
        if kind == "collection":
            return self.collection(entity_id)
        return self.tag(entity_id)

    def _items(self, kind: EntityKind) -> tuple[Prompt, ...] | tuple[Collection, ...] | tuple[Tag, ...]:
        if kind == "prompt":
            return self.prompts
        if kind == "collection":
            return self.collections
        return self.tags

    # Mirror --------------------------------------------------------------
    def with_mirror(self) -> LibraryState:
        """Return a state whose collection ``prompt_ids`` match prompt assignments."""
        members: dict[str, list[str]] = {collection.id: [] for collection in self.collections}
        for prompt in self.prompts:
            if prompt.collection_id in members:
                members[prompt.collection_id].append(prompt.id)
        rebuilt: list[Collection] = []
        changed = False
        for collection in self.collections:
            wanted = set(members[collection.id])
            kept = [prompt_id for prompt_id in collection.prompt_ids if prompt_id in wanted]
            kept.extend(prompt_id for prompt_id in members[collection.id] if prompt_id not in kept)
            if tuple(kept) == collection.prompt_ids:
                rebuilt.append(collection)
            else:
                changed = True
                rebuilt.append(replace(collection, prompt_ids=tuple(kept)))
        if not changed:
            return self
        return replace(self, collections=tuple(rebuilt))

    # Prompts -------------------------------------------------------------
    def with_prompt(self, prompt: Prompt) -> LibraryState:
        """Insert (newest first) or replace *prompt*."""
        return replace(self, prompts=_upsert(self.prompts, prompt, prepend=True)).with_mirror()

    def without_prompt(self, prompt_id: str) -> LibraryState:
        """Remove a prompt and its id from its collection."""
        prompts = tuple(item for item in self.prompts if item.id != prompt_id)
        return replace(self, prompts=prompts).with_mirror()

    def map_prompts(self, transform: Callable[[Prompt], Prompt]) -> LibraryState:
        """Apply *transform* to every prompt, keeping unchanged instances."""
        prompts = tuple(transform(item) for item in self.prompts)
        if all(new is old for new, old in zip(prompts, self.prompts, strict=True)):
            return self
        return replace(self, prompts=prompts).with_mirror()

    # Collections ---------------------------------------------------------
    def with_collection(self, collection: Collection) -> LibraryState:
        """Insert or replace *collection*."""
        return replace(self, collections=_upsert(self.collections, collection)).with_mirror()

    def without_collection(self, collection_id: str) -> LibraryState:
        """Remove a collection, clearing ``collection_id`` on its prompts."""
        collections = tuple(item for item in self.collections if item.id != collection_id)
        filters = self.filters
        if filters.selected_collection == collection_id:
            filters = replace(filters, selected_collection=None)
        state = replace(self, collections=collections, filters=filters)
        return state.map_prompts(
            lambda prompt: replace(prompt, collection_id=None)
            if prompt.collection_id == collection_id
            else prompt
        )

    def with_assignment(self, prompt_id: str, collection_id: str | None) -> LibraryState:
        """Move a prompt to *collection_id* (or out of any collection) atomically."""
        return self.map_prompts(
            lambda prompt: replace(prompt, collection_id=collection_id)
            if prompt.id == prompt_id and prompt.collection_id != collection_id
            else prompt
        )

    # Tags ----------------------------------------------------------------
    def with_tag(self, tag: Tag) -> LibraryState:
        """Insert or replace *tag*, refreshing copies embedded in prompts."""
        state = replace(self, tags=_upsert(self.tags, tag))

        def _refresh(prompt: Prompt) -> Prompt:
            if not any(item.id == tag.id and item != tag for item in prompt.tags):
                return prompt
            return replace(prompt, tags=tuple(tag if item.id == tag.id else item for item in prompt.tags))

        return state.map_prompts(_refresh)

    def without_tag(self, tag_id: str) -> LibraryState:
        """Remove a tag from the tag list, every prompt, and the tag filter."""
        tags = tuple(item for item in self.tags if item.id != tag_id)
        filters = self.filters
        if tag_id in filters.selected_tag_ids:
            filters = filters.with_tag_toggled(tag_id)
        state = replace(self, tags=tags, filters=filters)
        return state.map_prompts(
            lambda prompt: replace(prompt, tags=tuple(item for item in prompt.tags if item.id != tag_id))
            if prompt.has_tag(tag_id)
            else prompt
        )

    def without_entity(self, kind: EntityKind, entity_id: str) -> LibraryState:
        """Remove an entity of *kind* with the matching cascade."""
        if kind == "prompt":
            return self.without_prompt(entity_id)
        if kind == "collection":
            return self.without_collection(entity_id)
        return self.without_tag(entity_id)

    # Identity ------------------------------------------------------------
    def rekeyed(self, old_id: str, new_id: str) -> LibraryState:
        """Replace every reference to *old_id* with *new_id*.

        A tag re-keyed onto an id that already exists is merged into it.
        """
        if old_id == new_id:
            return self
        state = self
        if state.prompt(old_id) is not None:
            state = replace(
                state,
                prompts=tuple(
                    replace(item, id=new_id) if item.id == old_id else item for item in state.prompts
                ),
                collections=tuple(
                    replace(
                        item,
                        prompt_ids=tuple(new_id if pid == old_id else pid for pid in item.prompt_ids),
                    )
                    if old_id in item.prompt_ids
                    else item
                    for item in state.collections
                ),
            )
        if state.collection(old_id) is not None:
            state = replace(
                state,
                collections=tuple(
                    replace(item, id=new_id) if item.id == old_id else item
                    for item in state.collections
                ),
            )
            if state.filters.selected_collection == old_id:
                state = replace(state, filters=replace(state.filters, selected_collection=new_id))
            state = state.map_prompts(
                lambda prompt: replace(prompt, collection_id=new_id)
                if prompt.collection_id == old_id
                else prompt
            )
        old_tag = state.tag(old_id)
        if old_tag is not None:
            target = state.tag(new_id) or replace(old_tag, id=new_id)
            tags = tuple(item for item in state.tags if item.id not in (old_id, new_id))
            index = next(i for i, item in enumerate(state.tags) if item.id in (old_id, new_id))
            state = replace(state, tags=_insert_at(tags, target, index))
            selected = tuple(
                dict.fromkeys(new_id if tid == old_id else tid for tid in state.filters.selected_tag_ids)
            )
            if selected != state.filters.selected_tag_ids:
                state = replace(state, filters=replace(state.filters, selected_tag_ids=selected))
            state = state.map_prompts(
                lambda prompt: replace(
                    prompt,
                    tags=normalise_tags(target if item.id == old_id else item for item in prompt.tags),
                )
                if prompt.has_tag(old_id)
                else prompt
            )
        return state.with_mirror()

    # Restore -------------------------------------------------------------
    def restored(self, before: LibraryState, keys: Iterable[EntityKey]) -> LibraryState:
        """Return this state with the entities named by *keys* reset to *before*.

        Entities absent from *before* are removed; entities absent now are
        re-inserted at their earlier position.
        """
        state = self
        for kind, entity_id in keys:
            previous = before.entity(kind, entity_id)
            if previous is None:
                if state.entity(kind, entity_id) is not None:
                    state = state._dropped(kind, entity_id)
                continue
            state = state._reinstated(kind, previous, before)
        return state.with_mirror()

    def _dropped(self, kind: EntityKind, entity_id: str) -> LibraryState:
        if kind == "prompt":
            return replace(self, prompts=tuple(i for i in self.prompts if i.id != entity_id))
        if kind == "collection":
            return replace(self, collections=tuple(i for i in self.collections if i.id != entity_id))
        return replace(self, tags=tuple(i for i in self.tags if i.id != entity_id))

    def _reinstated(
        self, kind: EntityKind, entity: Prompt | Collection | Tag, before: LibraryState
    ) -> LibraryState:
        current = self._items(kind)
        if any(item.id == entity.id for item in current):
            items = tuple(entity if item.id == entity.id else item for item in current)
        else:
            index = next(i for i, item in enumerate(before._items(kind)) if item.id == entity.id)
            items = _insert_at(current, entity, index)
        if kind == "prompt":
            return replace(self, prompts=items)
        if kind == "collection":
            return replace(self, collections=items)
        return replace(self, tags=items)


def touched_keys(before: LibraryState, after: LibraryState) -> set[EntityKey]:
    """Return keys of entities added, removed, or replaced between two snapshots."""
    keys: set[EntityKey] = set()
    for kind in _KINDS:
        old = {item.id: item for item in before._items(kind)}
        new = {item.id: item for item in after._items(kind)}
        for entity_id in old.keys() | new.keys():
            if old.get(entity_id) is not new.get(entity_id):
                keys.add((kind, entity_id))
    return keys


class StateSubscription:
    """Disposable handle that detaches a state listener when closed."""

    def __init__(self, store: StateStore, callback: Callable[[LibraryState], None]) -> None:
        self._store = store
        self._callback = callback
        self._closed = False

    def close(self) -> None:
        """Stop receiving state updates."""
        if self._closed:
            return
        self._closed = True
        self._store.unsubscribe(self._callback)

    def __enter__(self) -> StateSubscription:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


class StateStore:
    """Single writer of :class:`LibraryState`; publishes every new snapshot."""

    def __init__(self, initial: LibraryState | None = None) -> None:
        self._state = initial or LibraryState()
        self._subscribers: list[Callable[[LibraryState], None]] = []
        self._version = 0

    @property
    def state(self) -> LibraryState:
        """Return the current snapshot."""
        return self._state

    @property
    def version(self) -> int:
        """Return the number of snapshots published so far."""
        return self._version

    def publish(self, state: LibraryState) -> None:
        """Replace the current snapshot and notify subscribers (no-op when unchanged)."""
        if state is self._state:
            return
        self._state = state
        self._version += 1
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:  # pragma: no cover - subscriber bugs must not break publishing
                logger.exception("State subscriber raised an exception")

    def subscribe(self, callback: Callable[[LibraryState], None]) -> StateSubscription:
        """Register *callback* for future snapshots."""
        self._subscribers.append(callback)
        return StateSubscription(self, callback)

    def unsubscribe(self, callback: Callable[[LibraryState], None]) -> None:
        """Remove *callback* if it is registered."""
        if callback in self._subscribers:
            self._subscribers.remove(callback)


__all__ = [
    "EntityKey",
    "EntityKind",
    "LibraryState",
    "StateStore",
    "StateSubscription",
    "touched_keys",
]
