"""Notification hub surfacing mutation outcomes to presentation layers.

Updates:
  v0.2.0 - 2026-09-20 - Add one-off notify() events for rejections and load failures.
  v0.1.0 - 2026-09-06 - Introduce notification hub with mutation tracking helpers.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

logger = logging.getLogger("prompt_library.notifications")


class NotificationLevel(str, Enum):
    """Severity levels communicated to listeners."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class NotificationStatus(str, Enum):
    """Lifecycle stage for a mutation notification."""
    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    MESSAGE = "message"


@dataclass(slots=True, frozen=True)
class Notification:
    """Immutable payload describing a notification event."""
    id: uuid.UUID
    title: str
    message: str
    level: NotificationLevel
    status: NotificationStatus
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    mutation_id: str | None = None
    duration_ms: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return a serialisable representation of the notification."""
        return {
            "id": str(self.id),
            "title": self.title,
            "message": self.message,
            "level": self.level.value,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "mutation_id": self.mutation_id,
            "duration_ms": self.duration_ms,
            "metadata": dict(self.metadata),
        }


class NotificationSubscription:
    """Disposable handle that removes its callback when closed."""
    def __init__(
        self,
        center: NotificationCenter,
        callback: Callable[[Notification], None],
    ) -> None:
        self._center = center
        self._callback = callback
        self._closed = False

    def close(self) -> None:
        """Detach the stored callback if it is still active."""
        if self._closed:
            return
        self._closed = True
        self._center.unsubscribe(self._callback)

    def __enter__(self) -> NotificationSubscription:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


class NotificationCenter:
    """Publish/subscribe hub with a bounded history of recent events."""
    def __init__(self, history_limit: int = 200) -> None:
        self._subscribers: list[Callable[[Notification], None]] = []
        self._lock = threading.RLock()
        self._history: deque[Notification] = deque(maxlen=history_limit)

    def subscribe(self, callback: Callable[[Notification], None]) -> NotificationSubscription:
        """Register *callback* to receive future notifications."""
        with self._lock:
            self._subscribers.append(callback)
        return NotificationSubscription(self, callback)

    def unsubscribe(self, callback: Callable[[Notification], None]) -> None:
        """Remove a previously subscribed callback if present."""
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def publish(self, notification: Notification) -> None:
        """Deliver *notification* to all registered subscribers."""
        with self._lock:
            self._history.append(notification)
            subscribers = list(self._subscribers)

        logger.debug(
            "Notification event",
            extra={
                "title": notification.title,
                "status": notification.status.value,
                "level": notification.level.value,
                "mutation_id": notification.mutation_id,
            },
        )

        for callback in subscribers:
            try:
                callback(notification)
            except Exception:  # pragma: no cover - subscriber bugs must not break publishing
                logger.exception("Notification subscriber raised an exception")

    def history(self) -> tuple[Notification, ...]:
        """Return a snapshot of stored notifications."""
        with self._lock:
            return tuple(self._history)

    def notify(
        self,
        title: str,
        message: str,
        *,
        level: NotificationLevel = NotificationLevel.INFO,
        metadata: dict[str, Any] | None = None,
    ) -> Notification:
        """Publish and return a one-off event outside any tracked mutation."""
        notification = Notification(
            id=uuid.uuid4(),
            title=title,
            message=message,
            level=level,
            status=NotificationStatus.MESSAGE,
            metadata=dict(metadata or {}),
        )
        self.publish(notification)
        return notification

    @contextmanager
    def track_mutation(
        self,
        *,
        title: str,
        mutation_id: str | None = None,
        success_message: str | None = None,
        failure_message: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Iterator[str]:
        """Emit STARTED, then SUCCEEDED or FAILED around the managed block.

        Yields the resolved mutation identifier. Exceptions raised inside the
        block are published and then re-raised.
        """
        resolved_id = mutation_id or f"mutation:{uuid.uuid4()}"
        started_at = time.perf_counter()
        details = dict(metadata or {})
        self.publish(
            Notification(
                id=uuid.uuid4(),
                title=title,
                message=f"{title} pending",
                level=NotificationLevel.INFO,
                status=NotificationStatus.STARTED,
                mutation_id=resolved_id,
                metadata=details,
            )
        )

        try:
            yield resolved_id
        except Exception as exc:
            duration_ms = int((time.perf_counter() - started_at) * 1000)
            message = failure_message or f"{title} failed"
            self.publish(
                Notification(
                    id=uuid.uuid4(),
                    title=title,
                    message=f"{message}: {exc}",
                    level=NotificationLevel.ERROR,
                    status=NotificationStatus.FAILED,
                    mutation_id=resolved_id,
                    duration_ms=duration_ms,
                    metadata={**details, "error": type(exc).__name__},
                )
            )
            raise
        else:
            duration_ms = int((time.perf_counter() - started_at) * 1000)
            self.publish(
                Notification(
                    id=uuid.uuid4(),
                    title=title,
                    message=success_message or f"{title} saved",
                    level=NotificationLevel.SUCCESS,
                    status=NotificationStatus.SUCCEEDED,
                    mutation_id=resolved_id,
                    duration_ms=duration_ms,
                    metadata=details,
                )
            )


__all__ = [
    "Notification",
    "NotificationCenter",
    "NotificationLevel",
    "NotificationStatus",
    "NotificationSubscription",
]
