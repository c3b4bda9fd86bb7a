"""Review notifications.

Listeners are called synchronously when an event is emitted. Listener
errors are logged and never reach the emitter, so notifications cannot
block or break decision logic.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ReviewEventType(Enum):
    QUEUED = "review:queued"
    DECIDED = "review:decided"
    BATCH_DECIDED = "review:batch_decided"


@dataclass(frozen=True, slots=True)
class ReviewEvent:
    type: ReviewEventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


EventListener = Callable[[ReviewEvent], None]
"""Listener callback type: (event) -> None"""


class EventBridge:
    """Pub/sub for review events."""

    def __init__(self) -> None:
        self._listeners: dict[ReviewEventType | None, list[EventListener]] = {}
        self._lock = threading.Lock()

    def on(
        self,
        event_type: ReviewEventType | None,
        listener: EventListener,
    ) -> Callable[[], None]:
        """Subscribe to one event type, or to all events with ``None``.

        Returns:
            Unsubscribe function.
        """
        with self._lock:
            self._listeners.setdefault(event_type, []).append(listener)

        def unsubscribe() -> None:
            self.off(event_type, listener)

        return unsubscribe

    def off(self, event_type: ReviewEventType | None, listener: EventListener) -> None:
        with self._lock:
            listeners = self._listeners.get(event_type, [])
            if listener in listeners:
                listeners.remove(listener)

    def emit(self, event: ReviewEvent) -> None:
        with self._lock:
            listeners = [
                *self._listeners.get(event.type, []),
                *self._listeners.get(None, []),
            ]

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed for %s", event.type.value)
