"""Tests for JSON persistence of the local prompt store and the SQLite schema.

Updates:
  v0.1.1 - 2026-09-25 - Cover SQLite reopen and foreign key pragmas.
  v0.1.0 - 2026-09-21 - Cover atomic JSON persistence and load failures.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import StaticAuthProvider

from core.exceptions import TransportError
from core.gateway import CollectionDraft, LocalPromptStore, PromptDraft, SqlitePromptStore
from core.gateway.sqlite import connect


@pytest.mark.asyncio()
async def test_local_store_persists_three_maps(tmp_path: Path, auth: StaticAuthProvider) -> None:
    path = tmp_path / "nested" / "library.json"
    store = LocalPromptStore(path, current_user=auth.current_user)
    tag = await store.create_tag("Ideas")
    collection = await store.create_collection(CollectionDraft(name="Inbox"))
    prompt = await store.create_prompt(
        PromptDraft(title="Brainstorm", content="List {n} ideas", tags=(tag,), collection_id=collection.id)
    )

    document = json.loads(path.read_text(encoding="utf-8"))

    assert set(document) == {"prompts", "collections", "tags"}
    assert document["prompts"][prompt.id]["collectionId"] == collection.id
    assert document["collections"][collection.id]["promptIds"] == [prompt.id]
    assert document["tags"][tag.id]["name"] == "Ideas"
    assert not list(path.parent.glob("*.tmp"))


@pytest.mark.asyncio()
async def test_local_store_reloads_saved_document(tmp_path: Path, auth: StaticAuthProvider) -> None:
    path = tmp_path / "library.json"
    first = LocalPromptStore(path, current_user=auth.current_user)
    created = await first.create_prompt(PromptDraft(title="Keep", content="me"))
    await first.update_prompt(created.id, {"content": "me too"})

    reopened = LocalPromptStore(path, current_user=auth.current_user)
    restored = await reopened.get_prompt(created.id)

    assert restored.content == "me too"
    assert restored.version == 2
    assert restored.version_history[0].content == "me"


def test_local_store_rejects_corrupt_document(tmp_path: Path) -> None:
    path = tmp_path / "library.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(TransportError):
        LocalPromptStore(path)


@pytest.mark.asyncio()
async def test_failed_write_leaves_memory_untouched(
    tmp_path: Path, auth: StaticAuthProvider, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = LocalPromptStore(tmp_path / "library.json", current_user=auth.current_user)
    created = await store.create_prompt(PromptDraft(title="t", content="c"))

    def _fail(*_: object, **__: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr("core.gateway.local.os.replace", _fail)

    with pytest.raises(TransportError):
        await store.update_prompt(created.id, {"title": "changed"})
    assert (await store.get_prompt(created.id)).title == "t"


def test_in_memory_store_writes_nothing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    store = LocalPromptStore()

    assert store.path is None
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio()
async def test_sqlite_store_survives_reopen(tmp_path: Path, auth: StaticAuthProvider) -> None:
    db_path = tmp_path / "library.db"
    first = SqlitePromptStore(db_path, current_user=auth.current_user)
    tag = await first.create_tag("Ops")
    created = await first.create_prompt(PromptDraft(title="Deploy", content="v1", tags=(tag,)))
    await first.update_prompt(created.id, {"content": "v2"})

    reopened = SqlitePromptStore(db_path, current_user=auth.current_user)
    restored = await reopened.get_prompt(created.id)

    assert restored.content == "v2"
    assert [entry.version for entry in restored.version_history] == [1]
    assert restored.tags[0].name == "Ops"


def test_sqlite_connect_enables_foreign_keys(tmp_path: Path) -> None:
    conn = connect(tmp_path / "pragmas.db")
    try:
        assert conn.execute("PRAGMA foreign_keys;").fetchone()[0] == 1
        assert str(conn.execute("PRAGMA journal_mode;").fetchone()[0]).lower() == "wal"
    finally:
        conn.close()


@pytest.mark.asyncio()
async def test_sqlite_records_profile_for_authors(tmp_path: Path, auth: StaticAuthProvider) -> None:
    db_path = tmp_path / "library.db"
    store = SqlitePromptStore(db_path, current_user=auth.current_user)

    await store.create_prompt(PromptDraft(title="t", content="c"))

    conn = connect(db_path)
    try:
        row = conn.execute("SELECT username FROM profiles WHERE id = ?;", ("user-alice",)).fetchone()
    finally:
        conn.close()
    assert row["username"] == "alice"
