"""Tests for client-side validators and partial-update helpers.

Updates:
  v0.1.0 - 2026-10-08 - Cover patch normalisation, camelCase keys, and validators.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from core.exceptions import ValidationError
from core.gateway.base import CollectionDraft, PromptDraft
from core.patches import (
    apply_collection_patch,
    apply_prompt_patch,
    normalise_collection_patch,
    normalise_prompt_patch,
    prompt_patch_to_record,
)
from core.validation import (
    validate_collection_draft,
    validate_collection_name,
    validate_prompt_draft,
    validate_tag_name,
)
from models import Tag, new_collection, new_prompt


def test_validators_strip_and_reject_blank_values() -> None:
    assert validate_collection_name("  Work ") == "Work"
    assert validate_tag_name(" alpha ") == "alpha"
    validate_prompt_draft(PromptDraft(title="T", content="C"))
    validate_collection_draft(CollectionDraft(name="Inbox"))

    with pytest.raises(ValidationError, match="title"):
        validate_prompt_draft(PromptDraft(title=" ", content="C"))
    with pytest.raises(ValidationError, match="content"):
        validate_prompt_draft(PromptDraft(title="T", content=""))
    with pytest.raises(ValidationError):
        validate_collection_name(None)
    with pytest.raises(ValidationError):
        validate_tag_name("\t")


def test_normalise_prompt_patch_accepts_camel_case_keys() -> None:
    values = normalise_prompt_patch(
        {"title": "  Renamed ", "collectionId": " c1 ", "isFavorite": True, "tags": ["alpha"]}
    )

    assert values == {
        "title": "Renamed",
        "collection_id": "c1",
        "is_favorite": True,
        "tags": (Tag(id="alpha", name="alpha"),),
    }


@pytest.mark.parametrize(
    "patch",
    [
        {"owner": "someone"},
        {"title": ""},
        {"content": "   "},
        {"tags": "alpha"},
        {"tags": [" "]},
        {"collection_id": 7},
        {"is_private": "yes"},
    ],
)
def test_normalise_prompt_patch_rejects_bad_input(patch: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        normalise_prompt_patch(patch)


def test_apply_prompt_patch_versions_content_changes() -> None:
    prompt = new_prompt("Greeting", "Hello")
    later = prompt.created_at + timedelta(minutes=1)

    updated = apply_prompt_patch(prompt, {"content": "Hi", "isPrivate": True}, now=later)

    assert updated.version == 2
    assert updated.is_private is True
    assert updated.updated_at == later
    assert [entry.content for entry in updated.version_history] == ["Hello"]


def test_apply_prompt_patch_without_content_keeps_version() -> None:
    prompt = new_prompt("Greeting", "Hello")
    earlier = prompt.created_at - timedelta(days=1)

    updated = apply_prompt_patch(prompt, {"title": "Welcome", "content": "Hello"}, now=earlier)

    assert updated.title == "Welcome"
    assert updated.version == 1
    assert updated.version_history == ()
    assert updated.updated_at == prompt.created_at


def test_collection_patch_normalises_description() -> None:
    collection = new_collection("Work", description="Old")
    later = collection.created_at + timedelta(seconds=30)

    assert normalise_collection_patch({"description": "  "}) == {"description": None}
    updated = apply_collection_patch(collection, {"name": " Jobs ", "description": "New"}, now=later)

    assert (updated.name, updated.description, updated.updated_at) == ("Jobs", "New", later)
    with pytest.raises(ValidationError):
        normalise_collection_patch({"prompt_ids": ["p1"]})
    with pytest.raises(ValidationError):
        normalise_collection_patch({"description": 3})


def test_prompt_patch_to_record_uses_wire_keys() -> None:
    record = prompt_patch_to_record(
        {"is_favorite": False, "collection_id": None, "tags": [Tag(id="t1", name="one")]}
    )

    assert record == {"isFavorite": False, "collectionId": None, "tags": ["t1"]}
