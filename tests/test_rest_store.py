"""Tests for the HTTPX-backed REST prompt store.

Updates:
  v0.1.2 - 2026-10-19 - Cover collection attribution of membership 404s.
  v0.1.1 - 2026-09-23 - Cover credential clearing on 401 responses.
  v0.1.0 - 2026-09-22 - Cover status mapping, retries, and payload shapes.
"""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from core.auth import CredentialStore
from core.exceptions import AuthError, NotFoundError, TransportError, ValidationError
from core.gateway import CollectionDraft, PromptDraft, PromptQuery, PromptStore, RestPromptStore
from core.retry import RetryPolicy
from models import Tag, User

BASE_URL = "http://api.test"
PROMPT_RECORD = {
    "id": "p-1",
    "title": "Summarise",
    "content": "Summarise {text}",
    "tags": [{"id": "t-1", "name": "Writing"}],
    "collectionId": None,
    "isFavorite": False,
    "isPrivate": False,
    "userId": "user-alice",
    "version": 1,
    "createdAt": "2026-09-01T10:00:00+00:00",
    "updatedAt": "2026-09-01T10:00:00+00:00",
}

Handler = Callable[[httpx.Request], httpx.Response]


def _store(handler: Handler, *, credentials: CredentialStore | None = None) -> RestPromptStore:
    return RestPromptStore(
        base_url=BASE_URL,
        credentials=credentials or CredentialStore(),
        retry_policy=RetryPolicy(max_attempts=3, base_delay_seconds=0),
        client_factory=lambda: httpx.AsyncClient(
            base_url=BASE_URL, transport=httpx.MockTransport(handler)
        ),
    )


def test_rest_store_satisfies_protocol() -> None:
    assert isinstance(_store(lambda request: httpx.Response(200, json=[])), PromptStore)


@pytest.mark.asyncio()
async def test_list_prompts_accepts_bare_and_wrapped_lists() -> None:
    payloads = iter([[PROMPT_RECORD], {"data": [PROMPT_RECORD]}])
    store = _store(lambda request: httpx.Response(200, json=next(payloads)))

    bare = await store.list_prompts()
    wrapped = await store.list_prompts()

    assert [prompt.id for prompt in bare] == ["p-1"]
    assert [prompt.id for prompt in wrapped] == ["p-1"]
    assert bare[0].created_by == "user-alice"
    assert bare[0].tags == (Tag(id="t-1", name="Writing"),)
    await store.close()


@pytest.mark.asyncio()
async def test_list_prompts_sends_query_params() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"prompts": []})

    store = _store(handler)

    await store.list_prompts(PromptQuery(collection_id="c-1", search="mail", favorites_only=True))

    params = seen[0].url.params
    assert params["collectionId"] == "c-1"
    assert params["search"] == "mail"
    assert params["favorites"] == "true"


@pytest.mark.asyncio()
async def test_requests_carry_bearer_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    credentials = CredentialStore()
    credentials.set("token-123", User(id="u", username="u", email="u@example.com"))
    store = _store(handler, credentials=credentials)

    await store.list_tags()
    credentials.clear()
    await store.list_tags()

    assert seen[0].headers["Authorization"] == "Bearer token-123"
    assert "Authorization" not in seen[1].headers


@pytest.mark.asyncio()
async def test_create_prompt_posts_camel_case_draft() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"data": PROMPT_RECORD})

    store = _store(handler)
    draft = PromptDraft(title="Summarise", content="Summarise {text}", tags=(Tag(id="t-1", name="Writing"),))

    created = await store.create_prompt(draft)

    body = json.loads(seen[0].content)
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/api/prompts"
    assert body["tags"] == ["t-1"]
    assert body["isPrivate"] is False
    assert created.id == "p-1"


@pytest.mark.asyncio()
async def test_update_prompt_sends_wire_patch() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={**PROMPT_RECORD, "isFavorite": True})

    store = _store(handler)

    updated = await store.update_prompt("p-1", {"is_favorite": True, "collection_id": "c-9"})

    assert seen[0].method == "PUT"
    assert json.loads(seen[0].content) == {"isFavorite": True, "collectionId": "c-9"}
    assert updated.is_favorite is True


@pytest.mark.asyncio()
async def test_client_side_validation_skips_the_network() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    store = _store(handler)

    with pytest.raises(ValidationError):
        await store.create_prompt(PromptDraft(title="", content="x"))
    with pytest.raises(ValidationError):
        await store.create_collection(CollectionDraft(name="  "))
    assert calls == []


@pytest.mark.parametrize(
    ("status", "error_type"),
    [
        (400, ValidationError),
        (409, ValidationError),
        (422, ValidationError),
        (403, AuthError),
        (404, NotFoundError),
        (500, TransportError),
    ],
)
@pytest.mark.asyncio()
async def test_status_codes_map_to_library_errors(status: int, error_type: type[Exception]) -> None:
    store = _store(lambda request: httpx.Response(status, json={"message": "nope"}))

    with pytest.raises(error_type):
        await store.delete_prompt("p-1")


@pytest.mark.asyncio()
async def test_not_found_carries_entity_kind() -> None:
    store = _store(lambda request: httpx.Response(404, json={"error": "gone"}))

    with pytest.raises(NotFoundError) as excinfo:
        await store.update_tag("t-7", "renamed")

    assert excinfo.value.kind == "tag"
    assert excinfo.value.entity_id == "t-7"
    assert str(excinfo.value) == "gone"


@pytest.mark.asyncio()
async def test_membership_not_found_names_the_collection() -> None:
    store = _store(lambda request: httpx.Response(404, json={"error": "gone"}))

    for call in (store.add_to_collection, store.remove_from_collection):
        with pytest.raises(NotFoundError) as excinfo:
            await call("p-1", "c-9")

        assert excinfo.value.kind == "collection"
        assert excinfo.value.entity_id == "c-9"


@pytest.mark.asyncio()
async def test_unauthorised_response_clears_credentials() -> None:
    credentials = CredentialStore()
    credentials.set("expired", User(id="u", username="u", email="u@example.com"))
    changes: list[User | None] = []
    credentials.on_change(changes.append)
    store = _store(lambda request: httpx.Response(401, json={"message": "expired"}), credentials=credentials)

    with pytest.raises(AuthError):
        await store.toggle_favorite("p-1")

    assert credentials.token is None
    assert changes == [None]


@pytest.mark.asyncio()
async def test_get_requests_retry_transient_failures() -> None:
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json=PROMPT_RECORD)

    store = _store(handler)

    prompt = await store.get_prompt("p-1")

    assert prompt.title == "Summarise"
    assert len(attempts) == 3


@pytest.mark.asyncio()
async def test_mutations_are_not_retried() -> None:
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        return httpx.Response(503)

    store = _store(handler)

    with pytest.raises(TransportError) as excinfo:
        await store.create_tag("ops")

    assert len(attempts) == 1
    assert excinfo.value.status_code == 503


@pytest.mark.asyncio()
async def test_network_errors_become_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    store = _store(handler)

    with pytest.raises(TransportError):
        await store.list_collections()


@pytest.mark.asyncio()
async def test_path_segments_are_escaped() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    store = _store(handler)

    await store.add_to_collection("p/1", "c 2")

    assert seen[0].url.raw_path == b"/api/collections/c%202/prompts/p%2F1"


@pytest.mark.asyncio()
async def test_malformed_payload_is_a_transport_error() -> None:
    store = _store(lambda request: httpx.Response(200, json={"unexpected": True}))

    with pytest.raises(TransportError):
        await store.list_tags()
