"""Backend gateway contract shared by every prompt store implementation.

Updates:
  v0.2.0 - 2026-09-18 - Add PromptQuery narrowing and user resolver hook.
  v0.1.0 - 2026-09-10 - Define PromptStore protocol and draft payloads.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from models.prompt_model import normalise_tags

from ..exceptions import AuthError

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from models.collection_model import Collection
    from models.prompt_model import Prompt
    from models.tag_model import Tag
    from models.user_model import User

UserResolver = Callable[[], "User | None"]


def anonymous() -> User | None:
    """Resolver used when no auth provider is wired in."""
    return None


def require_user(resolve_user: UserResolver) -> User:
    """Return the signed-in user or raise :class:`AuthError`."""
    user = resolve_user()
    if user is None:
        raise AuthError("Sign in required")
    return user


@dataclass(slots=True, frozen=True)
class PromptDraft:
    """Fields supplied when creating a prompt; the store assigns the rest."""

    title: str
    content: str
    tags: tuple[Tag, ...] = ()
    collection_id: str | None = None
    is_favorite: bool = False
    is_private: bool = False
    created_by: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", normalise_tags(self.tags))

    def to_record(self) -> dict[str, Any]:
        """Return the camelCase payload used by the REST API."""
        return {
            "title": self.title,
            "content": self.content,
            "tags": [tag.id for tag in self.tags],
            "collectionId": self.collection_id,
            "isFavorite": self.is_favorite,
            "isPrivate": self.is_private,
        }


@dataclass(slots=True, frozen=True)
class CollectionDraft:
    """Fields supplied when creating a collection."""

    name: str
    description: str | None = None
    created_by: str | None = None

    def to_record(self) -> dict[str, Any]:
        """Return the camelCase payload used by the REST API."""
        return {"name": self.name, "description": self.description}


@dataclass(slots=True, frozen=True)
class PromptQuery:
    """Optional server-side narrowing for :meth:`PromptStore.list_prompts`."""

    collection_id: str | None = None
    search: str | None = None
    favorites_only: bool = False
    owner_id: str | None = None
    extra: Mapping[str, str] = field(default_factory=dict)

    def matches(self, prompt: Prompt) -> bool:
        """Return ``True`` when *prompt* satisfies every populated criterion."""
        if self.collection_id and prompt.collection_id != self.collection_id:
            return False
        if self.favorites_only and not prompt.is_favorite:
            return False
        if self.owner_id and prompt.created_by != self.owner_id:
            return False
        if self.search:
            needle = self.search.lower()
            haystacks = [prompt.title.lower(), prompt.content.lower()]
            haystacks.extend(tag.name.lower() for tag in prompt.tags)
            if not any(needle in text for text in haystacks):
                return False
        return True

    def to_params(self) -> dict[str, str]:
        """Return query-string parameters for the REST API."""
        params = dict(self.extra)
        if self.collection_id:
            params["collectionId"] = self.collection_id
        if self.search:
            params["search"] = self.search
        if self.favorites_only:
            params["favorites"] = "true"
        if self.owner_id:
            params["userId"] = self.owner_id
        return params


@runtime_checkable
class PromptStore(Protocol):
    """Asynchronous storage contract consumed by the mutation engine.

    Implementations translate backend failures into the library error
    taxonomy: ``ValidationError``, ``AuthError``, ``NotFoundError`` and
    ``TransportError``. Deleting an unknown id raises ``NotFoundError``.
    """

    async def list_prompts(self, query: PromptQuery | None = None) -> list[Prompt]: ...

    async def get_prompt(self, prompt_id: str) -> Prompt: ...

    async def create_prompt(self, draft: PromptDraft) -> Prompt: ...

    async def update_prompt(self, prompt_id: str, patch: Mapping[str, Any]) -> Prompt: ...

    async def delete_prompt(self, prompt_id: str) -> None: ...

    async def toggle_favorite(self, prompt_id: str) -> None: ...

    async def list_collections(self) -> list[Collection]: ...

    async def create_collection(self, draft: CollectionDraft) -> Collection: ...

    async def update_collection(
        self, collection_id: str, patch: Mapping[str, Any]
    ) -> Collection: ...

    async def delete_collection(self, collection_id: str) -> None: ...

    async def add_to_collection(self, prompt_id: str, collection_id: str) -> None: ...

    async def remove_from_collection(self, prompt_id: str, collection_id: str) -> None: ...

    async def list_tags(self) -> list[Tag]: ...

    async def create_tag(self, name: str) -> Tag: ...

    async def update_tag(self, tag_id: str, name: str) -> Tag: ...

    async def delete_tag(self, tag_id: str) -> None: ...

    async def close(self) -> None: ...


__all__ = [
    "CollectionDraft",
    "PromptDraft",
    "PromptQuery",
    "PromptStore",
    "UserResolver",
    "anonymous",
    "require_user",
]
