"""In-memory prompt store with optional JSON file persistence.

The persisted document holds three maps keyed by id::

    {"prompts": {...}, "collections": {...}, "tags": {...}}

It is loaded once at construction and atomically rewritten after every
mutation. Changes are staged on copies and only swapped in once the file
write succeeds, so a failed write leaves the in-memory maps untouched.

Updates:
  v0.2.0 - 2026-09-21 - Stage mutations on copies and persist atomically.
  v0.1.0 - 2026-09-12 - Introduce local prompt store used for offline development.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from models.collection_model import Collection, new_collection
from models.common import utc_now
from models.prompt_model import Prompt, new_prompt
from models.tag_model import Tag, new_tag, tag_key

from ..exceptions import (
    AuthError,
    TransportError,
    ValidationError,
    collection_not_found,
    prompt_not_found,
    tag_not_found,
)
from ..patches import apply_collection_patch, apply_prompt_patch, normalise_prompt_patch
from ..validation import validate_collection_draft, validate_prompt_draft, validate_tag_name
from .base import anonymous, require_user

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from collections.abc import Iterable, Mapping

    from .base import CollectionDraft, PromptDraft, PromptQuery, UserResolver

logger = logging.getLogger("prompt_library.gateway.local")


@dataclass(slots=True)
class _Snapshot:
    prompts: dict[str, Prompt]
    collections: dict[str, Collection]
    tags: dict[str, Tag]

    def copy(self) -> _Snapshot:
        return _Snapshot(dict(self.prompts), dict(self.collections), dict(self.tags))


class LocalPromptStore:
    """Prompt store backed by Python dictionaries and an optional JSON file."""

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        current_user: UserResolver = anonymous,
    ) -> None:
        self._path = Path(path).expanduser() if path else None
        self._current_user = current_user
        self._data = self._load()

    @property
    def path(self) -> Path | None:
        """Return the JSON document path, when persistence is enabled."""
        return self._path

    # Persistence ---------------------------------------------------------
    def _load(self) -> _Snapshot:
        snapshot = _Snapshot({}, {}, {})
        if self._path is None or not self._path.exists():
            return snapshot
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise TransportError(f"Unable to read local store {self._path}") from exc
        try:
            for record in (payload.get("tags") or {}).values():
                tag = Tag.from_record(record)
                snapshot.tags[tag.id] = tag
            for record in (payload.get("collections") or {}).values():
                collection = Collection.from_record(record)
                snapshot.collections[collection.id] = collection
            for record in (payload.get("prompts") or {}).values():
                prompt = Prompt.from_record(record)
                snapshot.prompts[prompt.id] = prompt
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise TransportError(f"Local store {self._path} contains invalid records") from exc
        logger.debug(
            "Loaded local store",
            extra={
                "path": str(self._path),
                "prompts": len(snapshot.prompts),
                "collections": len(snapshot.collections),
                "tags": len(snapshot.tags),
            },
        )
        return snapshot

    def _persist(self, snapshot: _Snapshot) -> None:
        if self._path is None:
            return
        document = {
            "prompts": {key: value.to_record() for key, value in snapshot.prompts.items()},
            "collections": {key: value.to_record() for key, value in snapshot.collections.items()},
            "tags": {key: value.to_record() for key, value in snapshot.tags.items()},
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            handle, temp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
            try:
                with os.fdopen(handle, "w", encoding="utf-8") as stream:
                    json.dump(document, stream, ensure_ascii=False, indent=2)
                os.replace(temp_name, self._path)
            except BaseException:
                Path(temp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise TransportError(f"Unable to write local store {self._path}") from exc

    def _commit(self, snapshot: _Snapshot) -> None:
        self._persist(snapshot)
        self._data = snapshot

    # Lookups -------------------------------------------------------------
    def _user_id(self) -> str | None:
        user = self._current_user()
        return user.id if user is not None else None

    def _prompt(self, snapshot: _Snapshot, prompt_id: str) -> Prompt:
        prompt = snapshot.prompts.get(prompt_id)
        if prompt is None or not prompt.is_visible_to(self._user_id()):
            raise prompt_not_found(prompt_id)
        return prompt

    def _owned_prompt(self, snapshot: _Snapshot, prompt_id: str) -> Prompt:
        prompt = snapshot.prompts.get(prompt_id)
        if prompt is None:
            raise prompt_not_found(prompt_id)
        if prompt.is_private and not prompt.is_visible_to(self._user_id()):
            raise AuthError("Not permitted to modify this prompt")
        return prompt

    def _collection(self, snapshot: _Snapshot, collection_id: str) -> Collection:
        collection = snapshot.collections.get(collection_id)
        if collection is None:
            raise collection_not_found(collection_id)
        return collection

    def _owned_collection(self, snapshot: _Snapshot, collection_id: str) -> Collection:
        collection = self._collection(snapshot, collection_id)
        if collection.created_by and collection.created_by != self._user_id():
            raise AuthError("Not permitted to modify this collection")
        return collection

    def _resolve_tags(self, snapshot: _Snapshot, tags: Iterable[Tag]) -> tuple[Tag, ...]:
        resolved: list[Tag] = []
        for tag in tags:
            stored = snapshot.tags.get(tag.id)
            if stored is None:
                raise tag_not_found(tag.id)
            resolved.append(stored)
        return tuple(resolved)

    @staticmethod
    def _move_membership(
        snapshot: _Snapshot,
        prompt_id: str,
        old_collection_id: str | None,
        new_collection_id: str | None,
    ) -> None:
        if old_collection_id and old_collection_id in snapshot.collections:
            old = snapshot.collections[old_collection_id]
            snapshot.collections[old_collection_id] = old.without_prompt(prompt_id)
        if new_collection_id:
            new = snapshot.collections[new_collection_id]
            snapshot.collections[new_collection_id] = new.with_prompt(prompt_id)

    # Prompts -------------------------------------------------------------
    async def list_prompts(self, query: PromptQuery | None = None) -> list[Prompt]:
        """Return prompts visible to the current user, optionally narrowed by *query*."""
        user_id = self._user_id()
        prompts = [
            prompt
            for prompt in self._data.prompts.values()
            if prompt.is_visible_to(user_id) and (query is None or query.matches(prompt))
        ]
        prompts.sort(key=lambda prompt: prompt.created_at, reverse=True)
        return prompts

    async def get_prompt(self, prompt_id: str) -> Prompt:
        """Return the prompt stored under *prompt_id*."""
        return self._prompt(self._data, prompt_id)

    async def create_prompt(self, draft: PromptDraft) -> Prompt:
        """Store a new prompt owned by the current user."""
        validate_prompt_draft(draft)
        user = require_user(self._current_user)
        snapshot = self._data.copy()
        if draft.collection_id:
            self._collection(snapshot, draft.collection_id)
        prompt = new_prompt(
            draft.title,
            draft.content,
            tags=self._resolve_tags(snapshot, draft.tags),
            collection_id=draft.collection_id,
            is_favorite=draft.is_favorite,
            is_private=draft.is_private,
            created_by=user.id,
        )
        snapshot.prompts[prompt.id] = prompt
        self._move_membership(snapshot, prompt.id, None, prompt.collection_id)
        self._commit(snapshot)
        return prompt

    async def update_prompt(self, prompt_id: str, patch: Mapping[str, Any]) -> Prompt:
        """Apply *patch* to the stored prompt and return the result."""
        values = normalise_prompt_patch(patch)
        snapshot = self._data.copy()
        current = self._owned_prompt(snapshot, prompt_id)
        if "tags" in values:
            values["tags"] = self._resolve_tags(snapshot, values["tags"])
        if values.get("collection_id"):
            self._collection(snapshot, values["collection_id"])
        updated = apply_prompt_patch(current, values, now=utc_now())
        snapshot.prompts[prompt_id] = updated
        if updated.collection_id != current.collection_id:
            self._move_membership(snapshot, prompt_id, current.collection_id, updated.collection_id)
        self._commit(snapshot)
        return updated

    async def delete_prompt(self, prompt_id: str) -> None:
        """Remove the prompt and its collection membership."""
        snapshot = self._data.copy()
        current = self._owned_prompt(snapshot, prompt_id)
        del snapshot.prompts[prompt_id]
        self._move_membership(snapshot, prompt_id, current.collection_id, None)
        self._commit(snapshot)

    async def toggle_favorite(self, prompt_id: str) -> None:
        """Flip the stored favourite flag."""
        require_user(self._current_user)
        snapshot = self._data.copy()
        current = self._prompt(snapshot, prompt_id)
        snapshot.prompts[prompt_id] = replace(current, is_favorite=not current.is_favorite)
        self._commit(snapshot)

    # Collections ---------------------------------------------------------
    async def list_collections(self) -> list[Collection]:
        """Return every stored collection ordered by name."""
        return sorted(self._data.collections.values(), key=lambda item: item.name.casefold())

    async def create_collection(self, draft: CollectionDraft) -> Collection:
        """Store a new, empty collection owned by the current user."""
        validate_collection_draft(draft)
        user = require_user(self._current_user)
        snapshot = self._data.copy()
        collection = new_collection(draft.name, description=draft.description, created_by=user.id)
        snapshot.collections[collection.id] = collection
        self._commit(snapshot)
        return collection

    async def update_collection(self, collection_id: str, patch: Mapping[str, Any]) -> Collection:
        """Rename or re-describe a collection."""
        snapshot = self._data.copy()
        current = self._owned_collection(snapshot, collection_id)
        updated = apply_collection_patch(current, patch, now=utc_now())
        snapshot.collections[collection_id] = updated
        self._commit(snapshot)
        return updated

    async def delete_collection(self, collection_id: str) -> None:
        """Remove the collection and clear ``collection_id`` on member prompts."""
        snapshot = self._data.copy()
        self._owned_collection(snapshot, collection_id)
        del snapshot.collections[collection_id]
        for prompt_id, prompt in list(snapshot.prompts.items()):
            if prompt.collection_id == collection_id:
                snapshot.prompts[prompt_id] = replace(prompt, collection_id=None)
        self._commit(snapshot)

    async def add_to_collection(self, prompt_id: str, collection_id: str) -> None:
        """Move the prompt into *collection_id*, leaving any previous collection."""
        require_user(self._current_user)
        snapshot = self._data.copy()
        prompt = self._owned_prompt(snapshot, prompt_id)
        self._collection(snapshot, collection_id)
        snapshot.prompts[prompt_id] = replace(prompt, collection_id=collection_id)
        self._move_membership(snapshot, prompt_id, prompt.collection_id, collection_id)
        self._commit(snapshot)

    async def remove_from_collection(self, prompt_id: str, collection_id: str) -> None:
        """Detach the prompt from *collection_id*."""
        require_user(self._current_user)
        snapshot = self._data.copy()
        prompt = self._owned_prompt(snapshot, prompt_id)
        self._collection(snapshot, collection_id)
        if prompt.collection_id == collection_id:
            snapshot.prompts[prompt_id] = replace(prompt, collection_id=None)
        self._move_membership(snapshot, prompt_id, collection_id, None)
        self._commit(snapshot)

    # Tags ----------------------------------------------------------------
    async def list_tags(self) -> list[Tag]:
        """Return every stored tag ordered by name."""
        return sorted(self._data.tags.values(), key=lambda tag: tag.key)

    async def create_tag(self, name: str) -> Tag:
        """Return the tag named *name*, creating it when no case-insensitive match exists."""
        clean = validate_tag_name(name)
        existing = self._find_tag(self._data.tags.values(), clean)
        if existing is not None:
            return existing
        snapshot = self._data.copy()
        tag = new_tag(clean)
        snapshot.tags[tag.id] = tag
        self._commit(snapshot)
        return tag

    async def update_tag(self, tag_id: str, name: str) -> Tag:
        """Rename a tag everywhere it is attached."""
        clean = validate_tag_name(name)
        snapshot = self._data.copy()
        current = snapshot.tags.get(tag_id)
        if current is None:
            raise tag_not_found(tag_id)
        clash = self._find_tag(snapshot.tags.values(), clean)
        if clash is not None and clash.id != tag_id:
            raise ValidationError(f"Tag '{clean}' already exists")
        renamed = replace(current, name=clean)
        snapshot.tags[tag_id] = renamed
        for prompt_id, prompt in list(snapshot.prompts.items()):
            if prompt.has_tag(tag_id):
                tags = tuple(renamed if tag.id == tag_id else tag for tag in prompt.tags)
                snapshot.prompts[prompt_id] = replace(prompt, tags=tags)
        self._commit(snapshot)
        return renamed

    async def delete_tag(self, tag_id: str) -> None:
        """Remove a tag and detach it from every prompt."""
        snapshot = self._data.copy()
        if tag_id not in snapshot.tags:
            raise tag_not_found(tag_id)
        del snapshot.tags[tag_id]
        for prompt_id, prompt in list(snapshot.prompts.items()):
            if prompt.has_tag(tag_id):
                tags = tuple(tag for tag in prompt.tags if tag.id != tag_id)
                snapshot.prompts[prompt_id] = replace(prompt, tags=tags)
        self._commit(snapshot)

    @staticmethod
    def _find_tag(tags: Iterable[Tag], name: str) -> Tag | None:
        key = tag_key(name)
        return next((tag for tag in tags if tag.key == key), None)

    async def close(self) -> None:
        """Nothing to release; present for protocol parity."""
        return None


__all__ = ["LocalPromptStore"]
