"""Tests for the optimistic PromptLibrary façade and its mutation engine.

Updates:
  v0.3.1 - 2026-10-19 - Cover favourite reconciliation and collection rollbacks.
  v0.3.0 - 2026-10-07 - Cover per-entity ordering, id re-keying, and dependent creations.
  v0.2.0 - 2026-10-03 - Cover rollbacks, pruning of stale entities, and load failures.
  v0.1.0 - 2026-09-28 - Cover optimistic prompt, collection, and tag intents.
"""

from __future__ import annotations

import asyncio

import pytest
from conftest import BOB, ScriptedStore, StaticAuthProvider

from core.exceptions import AuthError, NotFoundError, TransportError, ValidationError
from core.filtering import SortOption
from core.gateway import CollectionDraft, LocalPromptStore, PromptDraft
from core.library import MutationStatus, PromptLibrary
from core.notifications import Notification, NotificationLevel, NotificationStatus
from core.state import LibraryState
from models import Prompt


async def _seed_prompt(library: PromptLibrary, title: str = "Seed", content: str = "seed") -> Prompt:
    result = await library.add_prompt(title, content)
    assert result.ok
    return result.value


# Prompts ----------------------------------------------------------------
@pytest.mark.asyncio()
async def test_add_prompt_is_visible_before_the_backend_answers(library: PromptLibrary) -> None:
    handle = library.add_prompt("Greeting", "Hello {name}")

    assert handle.status is MutationStatus.PENDING
    assert library.state.prompts[0].id == handle.entity_id
    assert library.state.prompts[0].created_by == "user-alice"

    result = await handle

    assert result.status is MutationStatus.COMMITTED
    assert result.value.id != handle.entity_id
    assert [prompt.id for prompt in library.state.prompts] == [result.value.id]
    assert library.state.prompt(handle.entity_id) is None


@pytest.mark.asyncio()
async def test_failed_create_removes_the_optimistic_prompt(
    library: PromptLibrary, scripted: ScriptedStore
) -> None:
    scripted.fail_next("create_prompt", TransportError("offline"))

    handle = library.add_prompt("Draft", "body")
    assert len(library.state.prompts) == 1

    result = await handle

    assert result.status is MutationStatus.ROLLED_BACK
    assert isinstance(result.error, TransportError)
    assert library.state.prompts == ()


@pytest.mark.asyncio()
async def test_failed_update_restores_previous_prompt(
    library: PromptLibrary, scripted: ScriptedStore
) -> None:
    seed = await _seed_prompt(library)
    scripted.fail_next("update_prompt", TransportError("offline"))

    handle = library.update_prompt(seed.id, title="Changed")
    assert library.state.prompt(seed.id).title == "Changed"

    result = await handle

    assert result.status is MutationStatus.ROLLED_BACK
    assert library.state.prompt(seed.id) == seed


@pytest.mark.asyncio()
async def test_client_side_rejection_publishes_nothing(
    library: PromptLibrary, scripted: ScriptedStore
) -> None:
    published: list[LibraryState] = []
    library.subscribe(published.append)

    blank = await library.add_prompt("  ", "body")
    unknown_field = await library.update_prompt("missing", colour="red")
    missing = await library.update_prompt("missing", title="x")

    assert blank.status is MutationStatus.REJECTED
    assert isinstance(blank.error, ValidationError)
    assert isinstance(unknown_field.error, ValidationError)
    assert isinstance(missing.error, NotFoundError)
    assert published == []
    assert scripted.calls == []
    levels = {item.level for item in library.notifications.history()}
    assert levels == {NotificationLevel.WARNING}


@pytest.mark.asyncio()
async def test_signed_out_users_cannot_write(library: PromptLibrary, auth: StaticAuthProvider) -> None:
    seed = await _seed_prompt(library)
    auth.user = None

    results = [
        await library.add_prompt("t", "c"),
        await library.add_collection("C"),
        await library.toggle_favorite(seed.id),
    ]

    assert all(result.status is MutationStatus.REJECTED for result in results)
    assert all(isinstance(result.error, AuthError) for result in results)


@pytest.mark.asyncio()
async def test_private_prompts_are_owner_only(library: PromptLibrary, auth: StaticAuthProvider) -> None:
    secret = (await library.add_prompt("Secret", "x", is_private=True)).value
    assert [prompt.id for prompt in library.visible_prompts()] == [secret.id]

    auth.user = BOB

    assert library.visible_prompts() == ()
    rejected = await library.update_prompt(secret.id, title="mine")
    assert rejected.status is MutationStatus.REJECTED
    assert isinstance(rejected.error, AuthError)


@pytest.mark.asyncio()
async def test_stale_prompt_is_dropped_after_not_found(
    library: PromptLibrary, local_store: LocalPromptStore
) -> None:
    seed = await _seed_prompt(library)
    await local_store.delete_prompt(seed.id)

    result = await library.update_prompt(seed.id, title="Changed")

    assert result.status is MutationStatus.ROLLED_BACK
    assert isinstance(result.error, NotFoundError)
    assert library.state.prompt(seed.id) is None


@pytest.mark.asyncio()
async def test_updates_to_one_prompt_reach_the_backend_in_order(
    library: PromptLibrary, scripted: ScriptedStore
) -> None:
    seed = await _seed_prompt(library, content="v1")
    gate = scripted.hold("update_prompt")

    first = library.update_prompt(seed.id, content="v2")
    second = library.update_prompt(seed.id, content="v3")
    await asyncio.sleep(0)

    assert len(scripted.called("update_prompt")) == 1
    assert library.state.prompt(seed.id).content == "v3"

    gate.set()
    assert (await first).ok
    assert (await second).ok

    current = library.state.prompt(seed.id)
    assert current.content == "v3"
    assert current.version == 3
    assert [entry.content for entry in current.version_history] == ["v1", "v2"]


@pytest.mark.asyncio()
async def test_toggle_favorite_settles_on_server_value(library: PromptLibrary) -> None:
    seed = await _seed_prompt(library)

    handle = library.toggle_favorite(seed.id)
    assert library.state.prompt(seed.id).is_favorite is True

    assert (await handle).ok
    assert library.state.prompt(seed.id).is_favorite is True


@pytest.mark.asyncio()
async def test_toggle_favorite_adopts_a_diverging_server_value(
    library: PromptLibrary, scripted: ScriptedStore, local_store: LocalPromptStore
) -> None:
    seed = await _seed_prompt(library)
    gate = scripted.hold("toggle_favorite")

    handle = library.toggle_favorite(seed.id)
    assert library.state.prompt(seed.id).is_favorite is True
    await local_store.toggle_favorite(seed.id)
    gate.set()

    assert (await handle).ok
    stored = await local_store.get_prompt(seed.id)
    assert stored.is_favorite is False
    assert library.state.prompt(seed.id).is_favorite is False


@pytest.mark.asyncio()
async def test_failed_toggle_favorite_restores_snapshot(
    library: PromptLibrary, scripted: ScriptedStore
) -> None:
    seed = await _seed_prompt(library)
    before = library.state
    scripted.fail_next("toggle_favorite", TransportError("offline"))

    result = await library.toggle_favorite(seed.id)

    assert result.status is MutationStatus.ROLLED_BACK
    assert library.state == before


@pytest.mark.asyncio()
async def test_toggle_favorite_survives_failed_refresh(
    library: PromptLibrary, scripted: ScriptedStore, local_store: LocalPromptStore
) -> None:
    seed = await _seed_prompt(library)
    scripted.fail_next("get_prompt", TransportError("read timed out"))

    result = await library.toggle_favorite(seed.id)

    stored = await local_store.get_prompt(seed.id)
    assert result.status is MutationStatus.COMMITTED
    assert stored.is_favorite is True
    assert library.state.prompt(seed.id).is_favorite is stored.is_favorite


@pytest.mark.asyncio()
async def test_restore_version_records_a_new_version(library: PromptLibrary) -> None:
    seed = await _seed_prompt(library, content="one")
    await library.update_prompt(seed.id, content="two")

    result = await library.restore_version(seed.id, 1)
    missing = await library.restore_version(seed.id, 9)

    current = library.state.prompt(seed.id)
    assert result.ok
    assert current.content == "one"
    assert current.version == 3
    assert [entry.content for entry in current.version_history] == ["one", "two"]
    assert missing.status is MutationStatus.REJECTED


@pytest.mark.asyncio()
async def test_delete_prompt_rolls_back_in_place(
    library: PromptLibrary, scripted: ScriptedStore
) -> None:
    older = await _seed_prompt(library, title="older")
    newer = await _seed_prompt(library, title="newer")
    scripted.fail_next("delete_prompt", TransportError("offline"))

    handle = library.delete_prompt(older.id)
    assert library.state.prompt(older.id) is None

    await handle

    assert [prompt.id for prompt in library.state.prompts] == [newer.id, older.id]


# Collections ------------------------------------------------------------
@pytest.mark.asyncio()
async def test_membership_keeps_both_sides_in_step(library: PromptLibrary) -> None:
    first = (await library.add_collection("First")).value
    second = (await library.add_collection("Second")).value
    prompt = await _seed_prompt(library)

    assert (await library.add_prompt_to_collection(prompt.id, first.id)).ok
    library.add_prompt_to_collection(prompt.id, second.id)

    state = library.state
    assert state.prompt(prompt.id).collection_id == second.id
    assert state.collection(first.id).prompt_ids == ()
    assert state.collection(second.id).prompt_ids == (prompt.id,)
    await library.drain()

    wrong = await library.remove_prompt_from_collection(prompt.id, first.id)
    assert wrong.status is MutationStatus.REJECTED
    assert (await library.remove_prompt_from_collection(prompt.id)).ok
    assert library.state.collection(second.id).prompt_ids == ()
    assert library.state.prompt(prompt.id).collection_id is None


@pytest.mark.asyncio()
async def test_failed_assignment_restores_both_sides(
    library: PromptLibrary, scripted: ScriptedStore
) -> None:
    collection = (await library.add_collection("Work")).value
    prompt = await _seed_prompt(library)
    scripted.fail_next("add_to_collection", TransportError("offline"))

    result = await library.add_prompt_to_collection(prompt.id, collection.id)

    assert result.status is MutationStatus.ROLLED_BACK
    assert library.state.prompt(prompt.id).collection_id is None
    assert library.state.collection(collection.id).prompt_ids == ()


@pytest.mark.asyncio()
async def test_prompt_created_inside_pending_collection(
    library: PromptLibrary, local_store: LocalPromptStore
) -> None:
    collection_handle = library.add_collection("Inbox")
    prompt_handle = library.add_prompt("Note", "body", collection_id=collection_handle.entity_id)

    assert library.state.collections[0].prompt_ids == (prompt_handle.entity_id,)

    created = (await prompt_handle).value
    server_collection = (await collection_handle).value

    stored = await local_store.get_prompt(created.id)
    assert stored.collection_id == server_collection.id
    assert library.state.collection(server_collection.id).prompt_ids == (created.id,)
    assert library.state.prompt(created.id).collection_id == server_collection.id


@pytest.mark.asyncio()
async def test_delete_collection_unassigns_prompts_and_filter(library: PromptLibrary) -> None:
    collection = (await library.add_collection("Temp")).value
    prompt = (await library.add_prompt("A", "b", collection_id=collection.id)).value
    library.set_selected_collection(collection.id)

    handle = library.delete_collection(collection.id)

    assert library.state.prompt(prompt.id).collection_id is None
    assert library.filters.selected_collection is None
    assert (await handle).ok
    assert library.state.collections == ()


@pytest.mark.asyncio()
async def test_update_collection_reconciles_server_copy(library: PromptLibrary) -> None:
    collection = (await library.add_collection("Old", "desc")).value

    result = await library.update_collection(collection.id, name="New")

    assert result.ok
    assert library.state.collection(collection.id).name == "New"
    assert library.state.collection(collection.id).description == "desc"


@pytest.mark.asyncio()
async def test_failed_update_collection_restores_snapshot(
    library: PromptLibrary, scripted: ScriptedStore
) -> None:
    collection = (await library.add_collection("Old", "desc")).value
    member = (await library.add_prompt("A", "b", collection_id=collection.id)).value
    before = library.state
    scripted.fail_next("update_collection", TransportError("offline"))

    handle = library.update_collection(collection.id, name="New")
    assert library.state.collection(collection.id).name == "New"

    result = await handle

    assert result.status is MutationStatus.ROLLED_BACK
    assert library.state == before
    assert library.state.collection(collection.id).prompt_ids == (member.id,)


@pytest.mark.asyncio()
async def test_failed_delete_collection_restores_members(
    library: PromptLibrary, scripted: ScriptedStore
) -> None:
    collection = (await library.add_collection("Keep")).value
    first = (await library.add_prompt("A", "b", collection_id=collection.id)).value
    second = (await library.add_prompt("C", "d", collection_id=collection.id)).value
    before = library.state
    scripted.fail_next("delete_collection", TransportError("offline"))

    handle = library.delete_collection(collection.id)
    assert library.state.collections == ()
    assert library.state.prompt(first.id).collection_id is None

    result = await handle

    assert result.status is MutationStatus.ROLLED_BACK
    assert library.state.prompts == before.prompts
    assert library.state.collections == before.collections
    assert set(library.state.collection(collection.id).prompt_ids) == {first.id, second.id}


# Tags -------------------------------------------------------------------
@pytest.mark.asyncio()
async def test_duplicate_tag_names_share_one_creation(
    library: PromptLibrary, scripted: ScriptedStore
) -> None:
    first = library.add_tag("Draft")
    second = library.add_tag("  draft ")

    assert second is first
    tag = (await first).value

    again = library.add_tag("DRAFT")
    assert again.done()
    assert (await again).value.id == tag.id
    assert len(library.state.tags) == 1
    assert len(scripted.called("create_tag")) == 1


@pytest.mark.asyncio()
async def test_tagging_with_new_name_creates_tag_first(
    library: PromptLibrary, local_store: LocalPromptStore
) -> None:
    prompt = await _seed_prompt(library)

    handle = library.add_tag_to_prompt(prompt.id, "fresh")
    pending_tag = library.state.find_tag("fresh")
    assert library.state.prompt(prompt.id).tags == (pending_tag,)

    assert (await handle).ok
    await library.drain()

    server_tag = library.state.find_tag("fresh")
    assert server_tag.id != pending_tag.id
    assert library.state.prompt(prompt.id).tags == (server_tag,)
    assert (await local_store.get_prompt(prompt.id)).tags == (server_tag,)

    repeat = await library.add_tag_to_prompt(prompt.id, "FRESH")
    assert repeat.ok
    assert len(library.state.prompt(prompt.id).tags) == 1


@pytest.mark.asyncio()
async def test_rename_tag_rejects_clashes_and_cascades(library: PromptLibrary) -> None:
    keep = (await library.add_tag("keep")).value
    other = (await library.add_tag("other")).value
    prompt = (await library.add_prompt("A", "b", tags=[keep.id])).value

    clash = await library.rename_tag(keep.id, "OTHER")
    renamed = await library.rename_tag(keep.id, "kept")

    assert clash.status is MutationStatus.REJECTED
    assert renamed.ok
    assert library.state.prompt(prompt.id).tags[0].name == "kept"
    assert library.state.tag(other.id).name == "other"


@pytest.mark.asyncio()
async def test_delete_tag_strips_prompts_and_filter(
    library: PromptLibrary, scripted: ScriptedStore
) -> None:
    tag = (await library.add_tag("obsolete")).value
    prompt = (await library.add_prompt("A", "b", tags=[tag.id])).value
    library.toggle_selected_tag(tag.id)

    scripted.fail_next("delete_tag", TransportError("offline"))
    failed = await library.delete_tag(tag.id)

    assert failed.status is MutationStatus.ROLLED_BACK
    assert library.state.prompt(prompt.id).tags == (tag,)
    assert library.filters.selected_tag_ids == ()

    library.toggle_selected_tag(tag.id)
    handle = library.delete_tag(tag.id)

    assert library.filters.selected_tag_ids == ()
    assert library.state.prompt(prompt.id).tags == ()
    assert (await handle).ok
    assert library.state.tags == ()


@pytest.mark.asyncio()
async def test_remove_tag_from_prompt_keeps_the_tag(library: PromptLibrary) -> None:
    tag = (await library.add_tag("label")).value
    prompt = (await library.add_prompt("A", "b", tags=[tag.id])).value

    assert (await library.remove_tag_from_prompt(prompt.id, tag.id)).ok

    assert library.state.prompt(prompt.id).tags == ()
    assert library.state.tag(tag.id) is not None


# Filters and visibility -------------------------------------------------
@pytest.mark.asyncio()
async def test_filters_are_local_and_memoised(
    library: PromptLibrary, scripted: ScriptedStore
) -> None:
    alpha = await _seed_prompt(library, title="Alpha")
    beta = await _seed_prompt(library, title="beta")
    calls = len(scripted.calls)

    first = library.visible_prompts()
    assert library.visible_prompts() is first
    assert [prompt.id for prompt in first] == [beta.id, alpha.id]

    library.set_search_query("ALP")
    assert [prompt.id for prompt in library.visible_prompts()] == [alpha.id]

    library.clear_filters()
    library.set_sort_option("alphabetical")
    assert [prompt.id for prompt in library.visible_prompts()] == [alpha.id, beta.id]
    with pytest.raises(ValidationError):
        library.set_sort_option("random")

    library.set_selected_tags(["t1", "t2", "t1"])
    assert library.filters.selected_tag_ids == ("t1", "t2")
    assert library.filters.sort_option is SortOption.ALPHABETICAL
    assert len(scripted.calls) == calls


def test_unchanged_filters_do_not_publish(library: PromptLibrary) -> None:
    published: list[LibraryState] = []
    library.subscribe(published.append)

    library.set_search_query("")
    library.clear_filters()
    library.set_search_query("x")

    assert len(published) == 1


# Loading and lifecycle --------------------------------------------------
@pytest.mark.asyncio()
async def test_load_replaces_entities_and_keeps_filters(
    library: PromptLibrary, local_store: LocalPromptStore
) -> None:
    tag = await local_store.create_tag("ops")
    collection = await local_store.create_collection(CollectionDraft(name="Runbooks"))
    prompt = await local_store.create_prompt(
        PromptDraft(title="Restart", content="steps", tags=(tag,), collection_id=collection.id)
    )
    library.set_search_query("restart")
    loading: list[bool] = []
    library.subscribe(lambda state: loading.append(state.is_loading))

    result = await library.load()

    assert result.ok
    assert loading == [True, False]
    state = library.state
    assert [item.id for item in state.prompts] == [prompt.id]
    assert state.collection(collection.id).prompt_ids == (prompt.id,)
    assert state.tags == (tag,)
    assert library.filters.search_query == "restart"
    assert [item.id for item in library.visible_prompts()] == [prompt.id]


@pytest.mark.asyncio()
async def test_failed_load_keeps_previous_entities(
    library: PromptLibrary, scripted: ScriptedStore
) -> None:
    seed = await _seed_prompt(library)
    scripted.fail_next("list_tags", TransportError("down"))

    result = await library.load()

    assert result.status is MutationStatus.ROLLED_BACK
    assert [prompt.id for prompt in library.state.prompts] == [seed.id]
    assert library.state.is_loading is False
    last = library.notifications.history()[-1]
    assert last.level is NotificationLevel.ERROR
    assert last.title == "Load library"


@pytest.mark.asyncio()
async def test_failed_load_reports_the_first_error_after_all_calls_settle(
    library: PromptLibrary, scripted: ScriptedStore
) -> None:
    scripted.fail_next("list_prompts", TransportError("prompts down"))
    scripted.fail_next("list_tags", TransportError("tags down"))

    result = await library.load()

    assert result.status is MutationStatus.ROLLED_BACK
    assert str(result.error) == "prompts down"
    assert scripted.called("list_collections") == [()]
    assert scripted.called("list_tags") == [()]


@pytest.mark.asyncio()
async def test_mutations_emit_tracking_notifications(library: PromptLibrary) -> None:
    events: list[Notification] = []
    library.notifications.subscribe(events.append)

    handle = library.add_collection("Tracked")
    await handle

    assert [event.status for event in events] == [
        NotificationStatus.STARTED,
        NotificationStatus.SUCCEEDED,
    ]
    assert {event.mutation_id for event in events} == {events[0].mutation_id}


@pytest.mark.asyncio()
async def test_close_drains_pending_mutations(library: PromptLibrary, scripted: ScriptedStore) -> None:
    library.add_prompt("A", "b")
    library.add_collection("C")
    assert library.pending_count == 2

    await library.close()

    assert library.pending_count == 0
    assert len(scripted.called("create_prompt")) == 1
    assert len(scripted.called("create_collection")) == 1
    assert scripted.called("close") == [()]
