"""Prompt Library façade: optimistic state over an interchangeable backend.

``PromptLibrary`` composes the prompt, collection, tag, and filter mixins on
top of :class:`~core.library.engine.MutationEngine`. Consumers read snapshots
via :attr:`PromptLibrary.state`, :meth:`PromptLibrary.subscribe`, and
:meth:`PromptLibrary.visible_prompts`; they never write the state directly.

Updates:
  v0.3.1 - 2026-10-19 - Settle every list call before reporting a load failure.
  v0.3.0 - 2026-10-05 - Split intents into mixins and memoise visible prompts.
  v0.2.0 - 2026-10-01 - Load prompts, collections, and tags concurrently.
  v0.1.0 - 2026-09-26 - Introduce PromptLibrary façade.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, cast

from models.prompt_model import normalise_tags

from ..exceptions import PromptLibraryError, TransportError
from ..notifications import NotificationCenter, NotificationLevel
from .collections import CollectionMutationsMixin
from .engine import MutationEngine, MutationHandle, MutationResult, MutationStatus
from .filters import FilterMixin
from .tags import TagMutationsMixin

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from collections.abc import Callable

    from models.collection_model import Collection
    from models.prompt_model import Prompt
    from models.tag_model import Tag

    from ..auth import AuthProvider
    from ..gateway.base import PromptQuery, PromptStore
    from ..state import LibraryState, StateSubscription

logger = logging.getLogger("prompt_library.library")

__all__ = [
    "MutationEngine",
    "MutationHandle",
    "MutationResult",
    "MutationStatus",
    "PromptLibrary",
]


class PromptLibrary(TagMutationsMixin, CollectionMutationsMixin, FilterMixin):
    """Client-side prompt library applying every intent optimistically."""

    def __init__(
        self,
        gateway: PromptStore,
        *,
        auth: AuthProvider | None = None,
        notifications: NotificationCenter | None = None,
        initial_state: LibraryState | None = None,
    ) -> None:
        super().__init__(
            gateway, auth=auth, notifications=notifications, initial_state=initial_state
        )
        self._tag_creations = {}
        self._visible_cache = None

    # Read access ---------------------------------------------------------
    @property
    def state(self) -> LibraryState:
        """Return the current read-only snapshot."""
        return self._store.state

    @property
    def notifications(self) -> NotificationCenter:
        """Return the centre receiving mutation and error events."""
        return self._notifications

    @property
    def gateway(self) -> PromptStore:
        """Return the backend the library dispatches to."""
        return self._gateway

    def subscribe(self, callback: Callable[[LibraryState], None]) -> StateSubscription:
        """Call *callback* with every newly published snapshot."""
        return self._store.subscribe(callback)

    # Lifecycle -----------------------------------------------------------
    async def load(self, query: PromptQuery | None = None) -> MutationResult:
        """Replace held entities with the backend's; filters are kept.

        Pending mutations are drained first. A failure leaves the previous
        entities in place and is reported, not raised.
        """
        await self.drain()
        self._store.publish(replace(self._store.state, is_loading=True))
        try:
            results = await asyncio.gather(
                self._gateway.list_prompts(query),
                self._gateway.list_collections(),
                self._gateway.list_tags(),
                return_exceptions=True,
            )
            for outcome in results:
                if isinstance(outcome, BaseException):
                    raise outcome
            prompts, collections, tags = cast(
                "tuple[list[Prompt], list[Collection], list[Tag]]", tuple(results)
            )
        except PromptLibraryError as exc:
            error: PromptLibraryError = exc
        except Exception as exc:
            logger.exception("Unexpected failure while loading the library")
            error = TransportError(f"Loading failed: {exc}")
        else:
            known = normalise_tags(
                [*tags, *(tag for prompt in prompts for tag in prompt.tags)]
            )
            state = replace(
                self._store.state,
                prompts=tuple(prompts),
                collections=tuple(collections),
                tags=known,
                is_loading=False,
            ).with_mirror()
            self._store.publish(state)
            logger.info(
                "Loaded library",
                extra={"prompts": len(prompts), "collections": len(collections), "tags": len(known)},
            )
            return MutationResult(MutationStatus.COMMITTED, value=state)

        self._store.publish(replace(self._store.state, is_loading=False))
        logger.warning("Loading the library failed: %s", error)
        self._notifications.notify(
            "Load library",
            str(error),
            level=NotificationLevel.ERROR,
            metadata={"error": type(error).__name__},
        )
        return MutationResult(MutationStatus.ROLLED_BACK, error=error)

    async def close(self) -> None:
        """Drain pending mutations and release the backend."""
        await self.drain()
        await self._gateway.close()
