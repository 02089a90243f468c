"""HTTPX-backed prompt store for the REST API.

Endpoints::

    GET/POST        /api/prompts
    GET/PUT/DELETE  /api/prompts/{id}
    POST            /api/prompts/{id}/favorite
    GET/POST        /api/collections
    PUT/DELETE      /api/collections/{id}
    POST/DELETE     /api/collections/{cid}/prompts/{pid}
    GET/POST        /api/tags
    PUT/DELETE      /api/tags/{id}

Read-only GET requests retry transient failures; mutations are sent once.

Updates:
  v0.1.2 - 2026-10-19 - Attribute membership 404s to the collection in the path.
  v0.1.1 - 2026-09-23 - Clear stored credentials when the API answers 401.
  v0.1.0 - 2026-09-22 - Introduce REST prompt store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from models.collection_model import Collection
from models.prompt_model import Prompt
from models.tag_model import Tag

from ..auth import CredentialStore
from ..exceptions import TransportError
from ..patches import normalise_collection_patch, prompt_patch_to_record
from ..retry import NO_RETRY, RetryPolicy, async_retry, is_retryable_httpx_error
from ..transport import decode_json, is_auth_failure, translate_httpx_error
from ..validation import validate_collection_draft, validate_prompt_draft, validate_tag_name

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from collections.abc import Callable, Mapping

    from .base import CollectionDraft, PromptDraft, PromptQuery

logger = logging.getLogger("prompt_library.gateway.rest")

_LIST_KEYS = ("data", "items", "results", "prompts", "collections", "tags")


def _segment(value: str) -> str:
    return quote(value, safe="")


def _records(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if isinstance(payload, dict):
        for key in _LIST_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return [item for item in value if isinstance(item, dict)]
    raise TransportError("Expected a list payload from the API")


def _record(payload: Any) -> dict[str, Any]:
    if isinstance(payload, dict):
        inner = payload.get("data")
        return inner if isinstance(inner, dict) else payload
    raise TransportError("Expected an object payload from the API")


def _hydrate[T](factory: Callable[[Mapping[str, Any]], T], record: Mapping[str, Any]) -> T:
    try:
        return factory(record)
    except (KeyError, TypeError, ValueError) as exc:
        raise TransportError("API returned a malformed record") from exc


@dataclass(slots=True)
class RestPromptStore:
    """Prompt store talking to the REST API with per-request bearer auth."""

    base_url: str
    credentials: CredentialStore = field(default_factory=CredentialStore)
    timeout: float = 15.0
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    client_factory: Callable[[], httpx.AsyncClient] | None = None
    _client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            if self.client_factory is None:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=self.timeout,
                    headers={"Content-Type": "application/json"},
                )
            else:
                self._client = self.client_factory()
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Mapping[str, str] | None = None,
        kind: str | None = None,
        entity_id: str | None = None,
    ) -> Any:
        client = self._get_client()

        async def _send() -> httpx.Response:
            response = await client.request(
                method,
                path,
                json=json_body,
                params=params,
                headers=self.credentials.auth_headers(),
            )
            response.raise_for_status()
            return response

        policy = self.retry_policy if method == "GET" else NO_RETRY
        try:
            response = await async_retry(_send, policy=policy, should_retry=is_retryable_httpx_error)
        except httpx.HTTPError as exc:
            if isinstance(exc, httpx.HTTPStatusError) and is_auth_failure(exc.response.status_code):
                logger.info("API rejected credentials; clearing stored session")
                self.credentials.clear()
            error = translate_httpx_error(exc, kind=kind, entity_id=entity_id)
            logger.debug("%s %s failed: %s", method, path, error)
            raise error from exc
        return decode_json(response)

    # Prompts -------------------------------------------------------------
    async def list_prompts(self, query: PromptQuery | None = None) -> list[Prompt]:
        """Fetch prompts visible to the signed-in user."""
        params = query.to_params() if query is not None else None
        payload = await self._request("GET", "/api/prompts", params=params)
        return [_hydrate(Prompt.from_record, record) for record in _records(payload)]

    async def get_prompt(self, prompt_id: str) -> Prompt:
        """Fetch one prompt."""
        payload = await self._request(
            "GET", f"/api/prompts/{_segment(prompt_id)}", kind="prompt", entity_id=prompt_id
        )
        return _hydrate(Prompt.from_record, _record(payload))

    async def create_prompt(self, draft: PromptDraft) -> Prompt:
        """Create a prompt; the server assigns id, timestamps, and version."""
        validate_prompt_draft(draft)
        payload = await self._request("POST", "/api/prompts", json_body=draft.to_record())
        return _hydrate(Prompt.from_record, _record(payload))

    async def update_prompt(self, prompt_id: str, patch: Mapping[str, Any]) -> Prompt:
        """Send a partial update and return the server's prompt."""
        payload = await self._request(
            "PUT",
            f"/api/prompts/{_segment(prompt_id)}",
            json_body=prompt_patch_to_record(patch),
            kind="prompt",
            entity_id=prompt_id,
        )
        return _hydrate(Prompt.from_record, _record(payload))

    async def delete_prompt(self, prompt_id: str) -> None:
        """Delete a prompt."""
        await self._request(
            "DELETE", f"/api/prompts/{_segment(prompt_id)}", kind="prompt", entity_id=prompt_id
        )

    async def toggle_favorite(self, prompt_id: str) -> None:
        """Ask the server to flip the favourite flag."""
        await self._request(
            "POST",
            f"/api/prompts/{_segment(prompt_id)}/favorite",
            kind="prompt",
            entity_id=prompt_id,
        )

    # Collections ---------------------------------------------------------
    async def list_collections(self) -> list[Collection]:
        """Fetch collections."""
        payload = await self._request("GET", "/api/collections")
        return [_hydrate(Collection.from_record, record) for record in _records(payload)]

    async def create_collection(self, draft: CollectionDraft) -> Collection:
        """Create a collection."""
        validate_collection_draft(draft)
        payload = await self._request("POST", "/api/collections", json_body=draft.to_record())
        return _hydrate(Collection.from_record, _record(payload))

    async def update_collection(self, collection_id: str, patch: Mapping[str, Any]) -> Collection:
        """Rename or re-describe a collection."""
        payload = await self._request(
            "PUT",
            f"/api/collections/{_segment(collection_id)}",
            json_body=normalise_collection_patch(patch),
            kind="collection",
            entity_id=collection_id,
        )
        return _hydrate(Collection.from_record, _record(payload))

    async def delete_collection(self, collection_id: str) -> None:
        """Delete a collection; the server clears member prompts."""
        await self._request(
            "DELETE",
            f"/api/collections/{_segment(collection_id)}",
            kind="collection",
            entity_id=collection_id,
        )

    async def add_to_collection(self, prompt_id: str, collection_id: str) -> None:
        """Assign a prompt to a collection."""
        await self._request(
            "POST",
            f"/api/collections/{_segment(collection_id)}/prompts/{_segment(prompt_id)}",
            kind="collection",
            entity_id=collection_id,
        )

    async def remove_from_collection(self, prompt_id: str, collection_id: str) -> None:
        """Detach a prompt from a collection."""
        await self._request(
            "DELETE",
            f"/api/collections/{_segment(collection_id)}/prompts/{_segment(prompt_id)}",
            kind="collection",
            entity_id=collection_id,
        )

    # Tags ----------------------------------------------------------------
    async def list_tags(self) -> list[Tag]:
        """Fetch tags."""
        payload = await self._request("GET", "/api/tags")
        return [_hydrate(Tag.from_record, record) for record in _records(payload)]

    async def create_tag(self, name: str) -> Tag:
        """Create a tag; the server answers with the existing tag on a name match."""
        clean = validate_tag_name(name)
        payload = await self._request("POST", "/api/tags", json_body={"name": clean})
        return _hydrate(Tag.from_record, _record(payload))

    async def update_tag(self, tag_id: str, name: str) -> Tag:
        """Rename a tag."""
        clean = validate_tag_name(name)
        payload = await self._request(
            "PUT",
            f"/api/tags/{_segment(tag_id)}",
            json_body={"name": clean},
            kind="tag",
            entity_id=tag_id,
        )
        return _hydrate(Tag.from_record, _record(payload))

    async def delete_tag(self, tag_id: str) -> None:
        """Delete a tag."""
        await self._request("DELETE", f"/api/tags/{_segment(tag_id)}", kind="tag", entity_id=tag_id)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = ["RestPromptStore"]
