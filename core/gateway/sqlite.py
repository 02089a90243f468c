"""SQLite prompt store mirroring the hosted relational data platform.

Tables: ``profiles``, ``prompts``, ``collections``, ``tags``, ``prompt_tags``
and ``prompt_versions``. Rows are visible when public or owned by the current
user. Blocking sqlite calls run in a worker thread via ``asyncio.to_thread``.

Updates:
  v0.1.1 - 2026-09-25 - Enforce row-level visibility and ownership checks.
  v0.1.0 - 2026-09-24 - Introduce SQLite prompt store.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from models.collection_model import Collection, new_collection
from models.common import ensure_datetime, new_id, utc_now
from models.prompt_model import Prompt, VersionEntry, new_prompt
from models.tag_model import Tag, new_tag, tag_key

from ..exceptions import (
    AuthError,
    PromptLibraryError,
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
    from collections.abc import Iterable, Mapping, Sequence

    from models.user_model import User

    from .base import CollectionDraft, PromptDraft, PromptQuery, UserResolver

logger = logging.getLogger("prompt_library.gateway.sqlite")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS profiles (
    id TEXT PRIMARY KEY,
    username TEXT NOT NULL,
    email TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS collections (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    name TEXT NOT NULL,
    description TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS tags (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    name_key TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS prompts (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    collection_id TEXT REFERENCES collections(id) ON DELETE SET NULL,
    is_favorite INTEGER NOT NULL DEFAULT 0,
    is_private INTEGER NOT NULL DEFAULT 0,
    version INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS prompt_tags (
    prompt_id TEXT NOT NULL REFERENCES prompts(id) ON DELETE CASCADE,
    tag_id TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    position INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    PRIMARY KEY (prompt_id, tag_id)
);
CREATE TABLE IF NOT EXISTS prompt_versions (
    id TEXT PRIMARY KEY,
    prompt_id TEXT NOT NULL REFERENCES prompts(id) ON DELETE CASCADE,
    content TEXT NOT NULL,
    version INTEGER NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_prompts_collection ON prompts(collection_id);
CREATE INDEX IF NOT EXISTS idx_prompt_versions_prompt ON prompt_versions(prompt_id, version);
"""

_VISIBLE = "(p.is_private = 0 OR p.user_id = :user_id)"


def connect(db_path: Path) -> sqlite3.Connection:
    """Return a configured SQLite connection."""
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA synchronous = NORMAL;")
    return conn


class SqlitePromptStore:
    """Prompt store persisting entities in a local SQLite database."""

    def __init__(self, db_path: Path | str, *, current_user: UserResolver = anonymous) -> None:
        self._db_path = Path(db_path).expanduser()
        self._current_user = current_user
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connection() as conn:
                conn.executescript(_SCHEMA)
        except (sqlite3.Error, OSError) as exc:
            raise TransportError(f"Unable to initialise database {self._db_path}") from exc

    @property
    def db_path(self) -> Path:
        """Return the database file path."""
        return self._db_path

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = connect(self._db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    async def _run[T](self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return await asyncio.to_thread(operation, *args, **kwargs)
        except PromptLibraryError:
            raise
        except sqlite3.Error as exc:
            logger.warning("SQLite operation %s failed: %s", operation.__name__, exc)
            raise TransportError(f"Database operation failed: {exc}") from exc

    def _user(self) -> User | None:
        return self._current_user()

    def _user_id(self) -> str | None:
        user = self._user()
        return user.id if user is not None else None

    # Row helpers ---------------------------------------------------------
    @staticmethod
    def _tag_from_row(row: sqlite3.Row) -> Tag:
        return Tag(id=row["id"], name=row["name"], created_at=ensure_datetime(row["created_at"]))

    def _hydrate_prompts(
        self, conn: sqlite3.Connection, rows: Sequence[sqlite3.Row]
    ) -> list[Prompt]:
        if not rows:
            return []
        ids = [row["id"] for row in rows]
        marks = ", ".join("?" for _ in ids)
        tags: dict[str, list[Tag]] = {prompt_id: [] for prompt_id in ids}
        for row in conn.execute(
            f"SELECT pt.prompt_id, t.id, t.name, t.created_at FROM prompt_tags pt "
            f"JOIN tags t ON t.id = pt.tag_id WHERE pt.prompt_id IN ({marks}) "
            f"ORDER BY pt.position, t.name;",
            ids,
        ):
            tags[row["prompt_id"]].append(self._tag_from_row(row))
        history: dict[str, list[VersionEntry]] = {prompt_id: [] for prompt_id in ids}
        for row in conn.execute(
            f"SELECT prompt_id, version, content, created_at FROM prompt_versions "
            f"WHERE prompt_id IN ({marks}) ORDER BY version;",
            ids,
        ):
            history[row["prompt_id"]].append(
                VersionEntry(
                    version=int(row["version"]),
                    content=row["content"],
                    updated_at=ensure_datetime(row["created_at"]),
                )
            )
        return [
            Prompt(
                id=row["id"],
                title=row["title"],
                content=row["content"],
                tags=tuple(tags[row["id"]]),
                collection_id=row["collection_id"],
                is_favorite=bool(row["is_favorite"]),
                is_private=bool(row["is_private"]),
                created_by=row["user_id"],
                version=int(row["version"]),
                version_history=tuple(history[row["id"]]),
                created_at=ensure_datetime(row["created_at"]),
                updated_at=ensure_datetime(row["updated_at"]),
            )
            for row in rows
        ]

    def _load_prompt(self, conn: sqlite3.Connection, prompt_id: str) -> Prompt | None:
        row = conn.execute("SELECT * FROM prompts WHERE id = ?;", (prompt_id,)).fetchone()
        if row is None:
            return None
        return self._hydrate_prompts(conn, [row])[0]

    def _visible_prompt(self, conn: sqlite3.Connection, prompt_id: str, user_id: str | None) -> Prompt:
        prompt = self._load_prompt(conn, prompt_id)
        if prompt is None or not prompt.is_visible_to(user_id):
            raise prompt_not_found(prompt_id)
        return prompt

    def _owned_prompt(self, conn: sqlite3.Connection, prompt_id: str, user_id: str | None) -> Prompt:
        prompt = self._load_prompt(conn, prompt_id)
        if prompt is None:
            raise prompt_not_found(prompt_id)
        if prompt.is_private and not prompt.is_visible_to(user_id):
            raise AuthError("Not permitted to modify this prompt")
        return prompt

    def _collection_row(self, conn: sqlite3.Connection, collection_id: str) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM collections WHERE id = ?;", (collection_id,)).fetchone()
        if row is None:
            raise collection_not_found(collection_id)
        return row

    def _collection_from_row(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Collection:
        members = conn.execute(
            "SELECT id FROM prompts WHERE collection_id = ? ORDER BY created_at;",
            (row["id"],),
        ).fetchall()
        return Collection(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            prompt_ids=tuple(member["id"] for member in members),
            created_by=row["user_id"],
            created_at=ensure_datetime(row["created_at"]),
            updated_at=ensure_datetime(row["updated_at"]),
        )

    def _owned_collection(
        self, conn: sqlite3.Connection, collection_id: str, user_id: str | None
    ) -> sqlite3.Row:
        row = self._collection_row(conn, collection_id)
        if row["user_id"] and row["user_id"] != user_id:
            raise AuthError("Not permitted to modify this collection")
        return row

    @staticmethod
    def _check_tags(conn: sqlite3.Connection, tags: Iterable[Tag]) -> tuple[Tag, ...]:
        resolved: list[Tag] = []
        for tag in tags:
            row = conn.execute("SELECT * FROM tags WHERE id = ?;", (tag.id,)).fetchone()
            if row is None:
                raise tag_not_found(tag.id)
            resolved.append(SqlitePromptStore._tag_from_row(row))
        return tuple(resolved)

    @staticmethod
    def _write_prompt_tags(conn: sqlite3.Connection, prompt: Prompt) -> None:
        conn.execute("DELETE FROM prompt_tags WHERE prompt_id = ?;", (prompt.id,))
        stamp = utc_now().isoformat()
        conn.executemany(
            "INSERT INTO prompt_tags (prompt_id, tag_id, position, created_at) VALUES (?, ?, ?, ?);",
            [(prompt.id, tag.id, index, stamp) for index, tag in enumerate(prompt.tags)],
        )

    @staticmethod
    def _upsert_profile(conn: sqlite3.Connection, user: User) -> None:
        stamp = utc_now().isoformat()
        conn.execute(
            "INSERT INTO profiles (id, username, email, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?) ON CONFLICT(id) DO UPDATE SET "
            "username = excluded.username, email = excluded.email, updated_at = excluded.updated_at;",
            (user.id, user.username, user.email, stamp, stamp),
        )

    # Prompts -------------------------------------------------------------
    def _list_prompts(self, query: PromptQuery | None, user_id: str | None) -> list[Prompt]:
        clauses = [_VISIBLE]
        params: dict[str, Any] = {"user_id": user_id}
        if query is not None:
            if query.collection_id:
                clauses.append("p.collection_id = :collection_id")
                params["collection_id"] = query.collection_id
            if query.favorites_only:
                clauses.append("p.is_favorite = 1")
            if query.owner_id:
                clauses.append("p.user_id = :owner_id")
                params["owner_id"] = query.owner_id
        sql = f"SELECT p.* FROM prompts p WHERE {' AND '.join(clauses)} ORDER BY p.created_at DESC;"
        with self._connection() as conn:
            prompts = self._hydrate_prompts(conn, conn.execute(sql, params).fetchall())
        if query is not None and query.search:
            prompts = [prompt for prompt in prompts if query.matches(prompt)]
        return prompts

    async def list_prompts(self, query: PromptQuery | None = None) -> list[Prompt]:
        """Return prompts visible to the current user, newest first."""
        return await self._run(self._list_prompts, query, self._user_id())

    def _get_prompt(self, prompt_id: str, user_id: str | None) -> Prompt:
        with self._connection() as conn:
            return self._visible_prompt(conn, prompt_id, user_id)

    async def get_prompt(self, prompt_id: str) -> Prompt:
        """Return one visible prompt."""
        return await self._run(self._get_prompt, prompt_id, self._user_id())

    def _create_prompt(self, draft: PromptDraft, user: User) -> Prompt:
        with self._connection() as conn:
            if draft.collection_id:
                self._collection_row(conn, draft.collection_id)
            prompt = new_prompt(
                draft.title,
                draft.content,
                tags=self._check_tags(conn, draft.tags),
                collection_id=draft.collection_id,
                is_favorite=draft.is_favorite,
                is_private=draft.is_private,
                created_by=user.id,
            )
            self._upsert_profile(conn, user)
            conn.execute(
                "INSERT INTO prompts (id, user_id, title, content, collection_id, is_favorite, "
                "is_private, version, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    prompt.id,
                    prompt.created_by,
                    prompt.title,
                    prompt.content,
                    prompt.collection_id,
                    int(prompt.is_favorite),
                    int(prompt.is_private),
                    prompt.version,
                    prompt.created_at.isoformat(),
                    prompt.updated_at.isoformat(),
                ),
            )
            self._write_prompt_tags(conn, prompt)
        return prompt

    async def create_prompt(self, draft: PromptDraft) -> Prompt:
        """Insert a prompt owned by the current user."""
        validate_prompt_draft(draft)
        user = require_user(self._current_user)
        return await self._run(self._create_prompt, draft, user)

    def _update_prompt(self, prompt_id: str, values: dict[str, Any], user_id: str | None) -> Prompt:
        with self._connection() as conn:
            current = self._owned_prompt(conn, prompt_id, user_id)
            if "tags" in values:
                values["tags"] = self._check_tags(conn, values["tags"])
            if values.get("collection_id"):
                self._collection_row(conn, values["collection_id"])
            updated = apply_prompt_patch(current, values, now=utc_now())
            conn.execute(
                "UPDATE prompts SET title = ?, content = ?, collection_id = ?, is_favorite = ?, "
                "is_private = ?, version = ?, updated_at = ? WHERE id = ?;",
                (
                    updated.title,
                    updated.content,
                    updated.collection_id,
                    int(updated.is_favorite),
                    int(updated.is_private),
                    updated.version,
                    updated.updated_at.isoformat(),
                    prompt_id,
                ),
            )
            for entry in updated.version_history[len(current.version_history):]:
                conn.execute(
                    "INSERT INTO prompt_versions (id, prompt_id, content, version, created_at) "
                    "VALUES (?, ?, ?, ?, ?);",
                    (new_id(), prompt_id, entry.content, entry.version, entry.updated_at.isoformat()),
                )
            if updated.tags != current.tags:
                self._write_prompt_tags(conn, updated)
        return updated

    async def update_prompt(self, prompt_id: str, patch: Mapping[str, Any]) -> Prompt:
        """Apply a partial update, archiving the previous content on change."""
        values = normalise_prompt_patch(patch)
        return await self._run(self._update_prompt, prompt_id, values, self._user_id())

    def _delete_prompt(self, prompt_id: str, user_id: str | None) -> None:
        with self._connection() as conn:
            self._owned_prompt(conn, prompt_id, user_id)
            conn.execute("DELETE FROM prompts WHERE id = ?;", (prompt_id,))

    async def delete_prompt(self, prompt_id: str) -> None:
        """Delete a prompt together with its tag links and history."""
        await self._run(self._delete_prompt, prompt_id, self._user_id())

    def _toggle_favorite(self, prompt_id: str, user_id: str | None) -> None:
        with self._connection() as conn:
            self._visible_prompt(conn, prompt_id, user_id)
            conn.execute(
                "UPDATE prompts SET is_favorite = 1 - is_favorite WHERE id = ?;", (prompt_id,)
            )

    async def toggle_favorite(self, prompt_id: str) -> None:
        """Flip the stored favourite flag."""
        user = require_user(self._current_user)
        await self._run(self._toggle_favorite, prompt_id, user.id)

    # Collections ---------------------------------------------------------
    def _list_collections(self) -> list[Collection]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM collections ORDER BY name COLLATE NOCASE;").fetchall()
            return [self._collection_from_row(conn, row) for row in rows]

    async def list_collections(self) -> list[Collection]:
        """Return every collection with its member prompt ids."""
        return await self._run(self._list_collections)

    def _create_collection(self, draft: CollectionDraft, user: User) -> Collection:
        collection = new_collection(draft.name, description=draft.description, created_by=user.id)
        with self._connection() as conn:
            self._upsert_profile(conn, user)
            conn.execute(
                "INSERT INTO collections (id, user_id, name, description, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?);",
                (
                    collection.id,
                    collection.created_by,
                    collection.name,
                    collection.description,
                    collection.created_at.isoformat(),
                    collection.updated_at.isoformat(),
                ),
            )
        return collection

    async def create_collection(self, draft: CollectionDraft) -> Collection:
        """Insert a collection owned by the current user."""
        validate_collection_draft(draft)
        user = require_user(self._current_user)
        return await self._run(self._create_collection, draft, user)

    def _update_collection(
        self, collection_id: str, patch: Mapping[str, Any], user_id: str | None
    ) -> Collection:
        with self._connection() as conn:
            row = self._owned_collection(conn, collection_id, user_id)
            current = self._collection_from_row(conn, row)
            updated = apply_collection_patch(current, patch, now=utc_now())
            conn.execute(
                "UPDATE collections SET name = ?, description = ?, updated_at = ? WHERE id = ?;",
                (updated.name, updated.description, updated.updated_at.isoformat(), collection_id),
            )
        return updated

    async def update_collection(self, collection_id: str, patch: Mapping[str, Any]) -> Collection:
        """Rename or re-describe a collection."""
        return await self._run(self._update_collection, collection_id, patch, self._user_id())

    def _delete_collection(self, collection_id: str, user_id: str | None) -> None:
        with self._connection() as conn:
            self._owned_collection(conn, collection_id, user_id)
            conn.execute("DELETE FROM collections WHERE id = ?;", (collection_id,))

    async def delete_collection(self, collection_id: str) -> None:
        """Delete a collection; member prompts keep existing with no collection."""
        await self._run(self._delete_collection, collection_id, self._user_id())

    def _set_collection(
        self, prompt_id: str, collection_id: str, user_id: str | None, *, assign: bool
    ) -> None:
        with self._connection() as conn:
            prompt = self._owned_prompt(conn, prompt_id, user_id)
            self._collection_row(conn, collection_id)
            if assign:
                target: str | None = collection_id
            elif prompt.collection_id == collection_id:
                target = None
            else:
                return
            conn.execute("UPDATE prompts SET collection_id = ? WHERE id = ?;", (target, prompt_id))

    async def add_to_collection(self, prompt_id: str, collection_id: str) -> None:
        """Move a prompt into a collection."""
        user = require_user(self._current_user)
        await self._run(self._set_collection, prompt_id, collection_id, user.id, assign=True)

    async def remove_from_collection(self, prompt_id: str, collection_id: str) -> None:
        """Detach a prompt from a collection."""
        user = require_user(self._current_user)
        await self._run(self._set_collection, prompt_id, collection_id, user.id, assign=False)

    # Tags ----------------------------------------------------------------
    def _list_tags(self) -> list[Tag]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM tags ORDER BY name_key;").fetchall()
        return [self._tag_from_row(row) for row in rows]

    async def list_tags(self) -> list[Tag]:
        """Return every tag ordered by name."""
        return await self._run(self._list_tags)

    def _create_tag(self, name: str) -> Tag:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM tags WHERE name_key = ?;", (tag_key(name),)).fetchone()
            if row is not None:
                return self._tag_from_row(row)
            tag = new_tag(name)
            conn.execute(
                "INSERT INTO tags (id, name, name_key, created_at) VALUES (?, ?, ?, ?);",
                (tag.id, tag.name, tag.key, tag.created_at.isoformat()),
            )
        return tag

    async def create_tag(self, name: str) -> Tag:
        """Return the tag named *name*, creating it when no case-insensitive match exists."""
        return await self._run(self._create_tag, validate_tag_name(name))

    def _update_tag(self, tag_id: str, name: str) -> Tag:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM tags WHERE id = ?;", (tag_id,)).fetchone()
            if row is None:
                raise tag_not_found(tag_id)
            clash = conn.execute(
                "SELECT id FROM tags WHERE name_key = ? AND id != ?;", (tag_key(name), tag_id)
            ).fetchone()
            if clash is not None:
                raise ValidationError(f"Tag '{name}' already exists")
            conn.execute(
                "UPDATE tags SET name = ?, name_key = ? WHERE id = ?;", (name, tag_key(name), tag_id)
            )
        return replace(self._tag_from_row(row), name=name)

    async def update_tag(self, tag_id: str, name: str) -> Tag:
        """Rename a tag."""
        return await self._run(self._update_tag, tag_id, validate_tag_name(name))

    def _delete_tag(self, tag_id: str) -> None:
        with self._connection() as conn:
            cursor = conn.execute("DELETE FROM tags WHERE id = ?;", (tag_id,))
            if cursor.rowcount == 0:
                raise tag_not_found(tag_id)

    async def delete_tag(self, tag_id: str) -> None:
        """Delete a tag; links to prompts cascade."""
        await self._run(self._delete_tag, tag_id)

    async def close(self) -> None:
        """Connections are per-operation; nothing to release."""
        return None


__all__ = ["SqlitePromptStore", "connect"]
