"""Tests for prompt content versioning helpers.

Updates:
  v0.1.0 - 2026-09-09 - Cover version bumps, lookups, and diffs.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from core.exceptions import NotFoundError
from core.versioning import diff_versions, get_version, list_versions, record_version
from models import new_prompt


def test_record_version_archives_previous_content() -> None:
    prompt = new_prompt("Greeting", "Hello")
    later = prompt.created_at + timedelta(minutes=5)

    updated = record_version(prompt, "Hello there", now=later)

    assert updated.version == 2
    assert updated.content == "Hello there"
    assert updated.updated_at == later
    assert len(updated.version_history) == 1
    entry = updated.version_history[0]
    assert (entry.version, entry.content, entry.updated_at) == (1, "Hello", prompt.updated_at)


def test_record_version_with_identical_content_is_a_no_op() -> None:
    prompt = new_prompt("Greeting", "Hello")

    assert record_version(prompt, "Hello") is prompt


def test_record_version_never_moves_updated_at_before_created_at() -> None:
    prompt = new_prompt("Greeting", "Hello")

    updated = record_version(prompt, "Bye", now=datetime(2000, 1, 1, tzinfo=UTC))

    assert updated.updated_at == prompt.created_at


def test_list_and_get_versions_include_live_content() -> None:
    prompt = record_version(record_version(new_prompt("t", "one"), "two"), "three")

    assert [entry.version for entry in list_versions(prompt)] == [1, 2, 3]
    assert get_version(prompt, 2).content == "two"
    assert get_version(prompt, 3).content == "three"
    with pytest.raises(NotFoundError) as excinfo:
        get_version(prompt, 9)
    assert excinfo.value.kind == "version"


def test_diff_versions_defaults_to_live_target() -> None:
    prompt = record_version(new_prompt("t", "line one\nline two"), "line one\nline 2")

    diff = diff_versions(prompt, 1)

    assert diff.target_version == 2
    assert diff.has_changes
    assert "-line two" in diff.body_diff
    assert "+line 2" in diff.body_diff
    assert not diff_versions(prompt, 2, 2).has_changes
