"""Tests for the notification centre."""

from __future__ import annotations

import pytest

from core.notifications import Notification, NotificationCenter, NotificationLevel, NotificationStatus


def test_track_mutation_publishes_start_and_success() -> None:
    center = NotificationCenter()
    events: list[Notification] = []

    center.subscribe(events.append)

    with center.track_mutation(
        title="Save prompt",
        mutation_id="mutation:1",
        success_message="Saved",
        metadata={"prompt": "p1"},
    ) as resolved:
        assert resolved == "mutation:1"

    assert [event.status for event in events] == [
        NotificationStatus.STARTED,
        NotificationStatus.SUCCEEDED,
    ]
    assert events[1].message == "Saved"
    assert events[1].level is NotificationLevel.SUCCESS
    assert events[1].metadata["prompt"] == "p1"
    assert events[1].duration_ms is not None


def test_track_mutation_failure_includes_exception() -> None:
    center = NotificationCenter()
    events: list[Notification] = []
    center.subscribe(events.append)

    with pytest.raises(RuntimeError, match="boom"):
        with center.track_mutation(title="Explode", failure_message="Failed"):
            raise RuntimeError("boom")

    assert events[-1].status is NotificationStatus.FAILED
    assert "Failed" in events[-1].message
    assert "boom" in events[-1].message
    assert events[-1].level is NotificationLevel.ERROR
    assert events[-1].metadata["error"] == "RuntimeError"
    assert events[0].mutation_id == events[-1].mutation_id


def test_notify_publishes_message_events() -> None:
    center = NotificationCenter()

    event = center.notify("Create tag", "Tag name cannot be empty", level=NotificationLevel.WARNING)

    assert event.status is NotificationStatus.MESSAGE
    assert center.history() == (event,)
    assert event.to_dict()["level"] == "warning"


def test_history_is_bounded() -> None:
    center = NotificationCenter(history_limit=2)

    for index in range(3):
        center.notify("n", str(index))

    assert [event.message for event in center.history()] == ["1", "2"]


def test_subscription_can_be_closed() -> None:
    center = NotificationCenter()
    events: list[Notification] = []
    subscription = center.subscribe(events.append)
    subscription.close()

    with center.track_mutation(title="Silent"):
        pass

    assert not events
