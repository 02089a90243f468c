"""Optimistic mutation engine shared by the library mixins.

Every intent runs through :meth:`MutationEngine._mutate`:

1. the optimistic transition is computed synchronously and published;
2. the gateway call is scheduled as an asyncio task chained behind any
   earlier, still-running mutation touching the same entity;
3. on success the authoritative entity is reconciled into the state;
4. on failure the touched entities are restored from the pre-intent
   snapshot, and a ``NotFoundError`` also drops the dangling entity.

Validation and permission failures detected client-side resolve the handle
as ``REJECTED`` without publishing anything.

Updates:
  v0.3.0 - 2026-10-02 - Alias table for server-assigned ids and stale-echo guard.
  v0.2.0 - 2026-09-29 - Chain gateway dispatch per touched entity.
  v0.1.0 - 2026-09-26 - Introduce MutationHandle and optimistic apply/rollback.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import Counter
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, cast

from models.common import has_text

from ..exceptions import (
    AuthError,
    NotFoundError,
    PromptLibraryError,
    TransportError,
    ValidationError,
    collection_not_found,
    prompt_not_found,
    tag_not_found,
)
from ..notifications import NotificationCenter, NotificationLevel
from ..state import LibraryState, StateStore, touched_keys

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from collections.abc import Awaitable, Callable, Generator, Iterable

    from models.collection_model import Collection
    from models.prompt_model import Prompt
    from models.tag_model import Tag
    from models.user_model import User

    from ..auth import AuthProvider
    from ..gateway.base import PromptStore
    from ..state import EntityKey, EntityKind

logger = logging.getLogger("prompt_library.engine")

_PRUNABLE_KINDS = {"prompt", "collection", "tag"}


class MutationStatus(str, Enum):
    """Lifecycle of a single optimistic mutation."""

    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    REJECTED = "rejected"


@dataclass(slots=True, frozen=True)
class MutationResult:
    """Final outcome of a mutation; never raised, always returned."""

    status: MutationStatus
    value: Any = None
    error: PromptLibraryError | None = None

    @property
    def ok(self) -> bool:
        """Return ``True`` when the backend accepted the mutation."""
        return self.status is MutationStatus.COMMITTED


class MutationHandle:
    """Awaitable handle returned by every mutation intent."""

    __slots__ = ("_future", "entity_id", "mutation_id", "title")

    def __init__(
        self,
        future: asyncio.Future[MutationResult],
        *,
        mutation_id: str,
        title: str,
        entity_id: str | None = None,
    ) -> None:
        self._future = future
        self.mutation_id = mutation_id
        self.title = title
        self.entity_id = entity_id

    def __await__(self) -> Generator[Any, None, MutationResult]:
        return self._future.__await__()

    def __repr__(self) -> str:
        return f"MutationHandle({self.title!r}, status={self.status.value})"

    @property
    def status(self) -> MutationStatus:
        """Return ``PENDING`` until the mutation settles."""
        if not self._future.done():
            return MutationStatus.PENDING
        return self._future.result().status

    def done(self) -> bool:
        """Return ``True`` once the mutation has settled."""
        return self._future.done()

    def result(self) -> MutationResult:
        """Return the settled result; raises ``asyncio.InvalidStateError`` while pending."""
        return self._future.result()

    def add_done_callback(self, callback: Callable[[MutationHandle], None]) -> None:
        """Invoke *callback* with this handle once the mutation settles."""
        self._future.add_done_callback(lambda _future: callback(self))


@dataclass(slots=True)
class _Mutation:
    mutation_id: str
    title: str
    before: LibraryState
    touched: frozenset[EntityKey]
    alias_mark: int
    dispatch: Callable[[], Awaitable[Any]]
    reconcile: Callable[[LibraryState, Any], LibraryState] | None


class MutationEngine:
    """Single writer of the library state; applies intents optimistically."""

    def __init__(
        self,
        gateway: PromptStore,
        *,
        auth: AuthProvider | None = None,
        notifications: NotificationCenter | None = None,
        initial_state: LibraryState | None = None,
    ) -> None:
        self._gateway = gateway
        self._auth = auth
        self._notifications = notifications or NotificationCenter()
        self._store = StateStore(initial_state)
        self._aliases: dict[str, str] = {}
        self._alias_log: list[tuple[str, str]] = []
        self._pending: Counter[EntityKey] = Counter()
        self._chains: dict[EntityKey, asyncio.Task[MutationResult]] = {}
        self._tasks: set[asyncio.Task[MutationResult]] = set()

    # Identity ------------------------------------------------------------
    def current_user(self) -> User | None:
        """Return the signed-in user according to the auth provider."""
        return self._auth.current_user() if self._auth is not None else None

    def _resolve(self, entity_id: str) -> str:
        """Follow the alias table from a temporary id to the server id."""
        seen: set[str] = set()
        while entity_id in self._aliases and entity_id not in seen:
            seen.add(entity_id)
            entity_id = self._aliases[entity_id]
        return entity_id

    def _key(self, kind: EntityKind, entity_id: str) -> EntityKey:
        return (kind, self._resolve(entity_id))

    def _superseded(self, kind: EntityKind, entity_id: str) -> bool:
        """Return ``True`` while a newer mutation on the entity is still pending."""
        return self._pending[self._key(kind, entity_id)] > 0

    def _rekey(
        self, state: LibraryState, kind: EntityKind, old_id: str, new_id: str
    ) -> LibraryState:
        if old_id == new_id:
            return state
        self._aliases[old_id] = new_id
        self._alias_log.append((old_id, new_id))
        old_key: EntityKey = (kind, old_id)
        new_key: EntityKey = (kind, new_id)
        if old_key in self._pending:
            self._pending[new_key] += self._pending.pop(old_key)
        if old_key in self._chains:
            task = self._chains.pop(old_key)
            self._chains.setdefault(new_key, task)
        logger.debug("Re-keyed %s %s -> %s", kind, old_id, new_id)
        return state.rekeyed(old_id, new_id)

    # Guards --------------------------------------------------------------
    def _require_user(self) -> User:
        user = self.current_user()
        if user is None:
            raise AuthError("Sign in required")
        return user

    def _check_editable(self, prompt: Prompt) -> None:
        if not prompt.is_private:
            return
        user = self.current_user()
        if user is None or prompt.created_by != user.id:
            raise AuthError("Not permitted to modify this prompt")

    def _require_prompt(self, state: LibraryState, prompt_id: str) -> Prompt:
        prompt = state.prompt(self._resolve(prompt_id))
        if prompt is None:
            raise prompt_not_found(prompt_id)
        return prompt

    def _require_collection(self, state: LibraryState, collection_id: str) -> Collection:
        collection = state.collection(self._resolve(collection_id))
        if collection is None:
            raise collection_not_found(collection_id)
        return collection

    def _require_tag(self, state: LibraryState, tag_id: str) -> Tag:
        tag = state.tag(self._resolve(tag_id))
        if tag is None:
            raise tag_not_found(tag_id)
        return tag

    def _dispatch_tags(self, tags: Iterable[Tag]) -> tuple[Tag, ...]:
        """Return *tags* as currently held, raising when one has since disappeared."""
        state = self._store.state
        resolved: list[Tag] = []
        for tag in tags:
            current = state.tag(self._resolve(tag.id))
            if current is None:
                raise tag_not_found(tag.id)
            resolved.append(current)
        return tuple(resolved)

    def _dependencies(
        self, *, tags: Iterable[Tag] = (), collection_id: str | None = None
    ) -> set[EntityKey]:
        keys: set[EntityKey] = {self._key("tag", tag.id) for tag in tags}
        if collection_id:
            keys.add(self._key("collection", collection_id))
        return keys

    # Handles -------------------------------------------------------------
    def _settled(
        self, title: str, result: MutationResult, entity_id: str | None = None
    ) -> MutationHandle:
        future: asyncio.Future[MutationResult] = asyncio.get_running_loop().create_future()
        future.set_result(result)
        return MutationHandle(
            future, mutation_id=f"mutation:{uuid.uuid4()}", title=title, entity_id=entity_id
        )

    def _rejected(self, title: str, error: PromptLibraryError) -> MutationHandle:
        logger.info("Rejected %s: %s", title, error)
        self._notifications.notify(
            title,
            str(error),
            level=NotificationLevel.WARNING,
            metadata={"error": type(error).__name__},
        )
        return self._settled(title, MutationResult(MutationStatus.REJECTED, error=error))

    def _committed(self, title: str, value: Any, entity_id: str | None = None) -> MutationHandle:
        return self._settled(title, MutationResult(MutationStatus.COMMITTED, value=value), entity_id)

    # Core ----------------------------------------------------------------
    def _mutate(
        self,
        title: str,
        *,
        optimistic: Callable[[LibraryState], LibraryState],
        dispatch: Callable[[], Awaitable[Any]],
        reconcile: Callable[[LibraryState, Any], LibraryState] | None = None,
        depends_on: Iterable[EntityKey] = (),
        entity_id: str | None = None,
    ) -> MutationHandle:
        """Apply *optimistic* now, run *dispatch* in the background, and return a handle.

        Must be called from a running event loop.
        """
        loop = asyncio.get_running_loop()
        before = self._store.state
        try:
            after = optimistic(before)
        except (ValidationError, AuthError, NotFoundError) as exc:
            return self._rejected(title, exc)

        touched = frozenset(touched_keys(before, after))
        chain_keys = touched | frozenset(depends_on)
        mutation = _Mutation(
            mutation_id=f"mutation:{uuid.uuid4()}",
            title=title,
            before=before,
            touched=touched,
            alias_mark=len(self._alias_log),
            dispatch=dispatch,
            reconcile=reconcile,
        )
        self._store.publish(after)
        self._pending.update(touched)
        previous = tuple({self._chains[key] for key in chain_keys if key in self._chains})
        task = loop.create_task(self._execute(mutation, previous))
        for key in chain_keys:
            self._chains[key] = task
        self._tasks.add(task)
        task.add_done_callback(self._forget)
        logger.debug(
            "Applied %s optimistically",
            title,
            extra={
                "mutation_id": mutation.mutation_id,
                "touched": sorted(touched),
                "waits_on": len(previous),
            },
        )
        return MutationHandle(task, mutation_id=mutation.mutation_id, title=title, entity_id=entity_id)

    def _forget(self, task: asyncio.Task[MutationResult]) -> None:
        self._tasks.discard(task)
        for key, chained in list(self._chains.items()):
            if chained is task:
                del self._chains[key]

    def _release(self, mutation: _Mutation) -> None:
        for kind, entity_id in mutation.touched:
            key = self._key(kind, entity_id)
            self._pending[key] -= 1
            if self._pending[key] <= 0:
                del self._pending[key]

    async def _execute(
        self,
        mutation: _Mutation,
        previous: tuple[asyncio.Task[MutationResult], ...],
    ) -> MutationResult:
        if previous:
            await asyncio.gather(*previous, return_exceptions=True)
        try:
            with self._notifications.track_mutation(
                title=mutation.title, mutation_id=mutation.mutation_id
            ):
                value = await mutation.dispatch()
        except PromptLibraryError as exc:
            error: PromptLibraryError = exc
        except Exception as exc:
            logger.exception("Unexpected failure while dispatching %s", mutation.title)
            error = TransportError(f"{mutation.title} failed: {exc}")
        else:
            self._release(mutation)
            if mutation.reconcile is not None:
                self._store.publish(mutation.reconcile(self._store.state, value))
            logger.info("Committed %s", mutation.title, extra={"mutation_id": mutation.mutation_id})
            return MutationResult(MutationStatus.COMMITTED, value=value)

        self._release(mutation)
        self._rollback(mutation, error)
        return MutationResult(MutationStatus.ROLLED_BACK, error=error)

    def _rollback(self, mutation: _Mutation, error: PromptLibraryError) -> None:
        before = mutation.before
        for old_id, new_id in self._alias_log[mutation.alias_mark:]:
            before = before.rekeyed(old_id, new_id)
        keys = {self._key(kind, entity_id) for kind, entity_id in mutation.touched}
        state = self._store.state.restored(before, keys)
        if (
            isinstance(error, NotFoundError)
            and error.kind in _PRUNABLE_KINDS
            and has_text(error.entity_id)
        ):
            dangling = self._resolve(str(error.entity_id))
            kind = cast("EntityKind", error.kind)
            if state.entity(kind, dangling) is not None:
                state = state.without_entity(kind, dangling)
                logger.info("Dropped dangling %s %s", kind, dangling)
        self._store.publish(state)
        logger.warning(
            "Rolled back %s: %s",
            mutation.title,
            error,
            extra={"mutation_id": mutation.mutation_id},
        )

    # Reconciliation ------------------------------------------------------
    def _reconcile_prompt(self, state: LibraryState, local_id: str, server: Prompt) -> LibraryState:
        state = self._rekey(state, "prompt", self._resolve(local_id), server.id)
        if state.prompt(server.id) is None or self._superseded("prompt", server.id):
            return state
        return state.with_prompt(server)

    def _reconcile_collection(
        self, state: LibraryState, local_id: str, server: Collection
    ) -> LibraryState:
        state = self._rekey(state, "collection", self._resolve(local_id), server.id)
        current = state.collection(server.id)
        if current is None or self._superseded("collection", server.id):
            return state
        return state.with_collection(replace(server, prompt_ids=current.prompt_ids))

    def _reconcile_tag(self, state: LibraryState, local_id: str, server: Tag) -> LibraryState:
        state = self._rekey(state, "tag", self._resolve(local_id), server.id)
        if state.tag(server.id) is None or self._superseded("tag", server.id):
            return state
        return state.with_tag(server)

    # Lifecycle -----------------------------------------------------------
    @property
    def pending_count(self) -> int:
        """Return the number of mutations not yet settled."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every scheduled mutation has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = ["MutationEngine", "MutationHandle", "MutationResult", "MutationStatus"]
