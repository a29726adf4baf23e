"""Input events and the progress event queue.

Ledger notifications are queued rather than delivered inline, so that
subscribers never run in the middle of a ledger mutation. The frame loop
drains the queue once per tick.
"""

import logging
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class InputEvent(BaseModel):
    kind: Literal["tap", "key"]
    x: float = 0.0
    y: float = 0.0
    key: str = ""

    @classmethod
    def tap(cls, x: float, y: float) -> "InputEvent":
        return cls(kind="tap", x=x, y=y)

    @classmethod
    def press(cls, key: str) -> "InputEvent":
        return cls(kind="key", key=key)


class ProgressEventType(str, Enum):
    REPAIR_COMPLETED = "repair_completed"
    DIAGNOSTIC_COMPLETED = "diagnostic_completed"
    CUSTOMIZATION_COMPLETED = "customization_completed"
    GEMS_EARNED = "gems_earned"
    GEMS_SPENT = "gems_spent"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
    MILESTONE_REACHED = "milestone_reached"
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"
    PROGRESS_RESET = "progress_reset"


class ProgressEvent(BaseModel):
    type: ProgressEventType
    data: dict[str, Any] = {}
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[ProgressEvent], None]


class EventQueue:
    def __init__(self):
        self._pending: deque[ProgressEvent] = deque()
        self._subscribers: dict[ProgressEventType, list[Subscriber]] = {}

    def publish(self, event_type: ProgressEventType, data: dict[str, Any] | None = None) -> None:
        self._pending.append(ProgressEvent(type=event_type, data=data or {}))

    def subscribe(self, event_type: ProgressEventType, handler: Subscriber) -> None:
        self._subscribers.setdefault(ProgressEventType(event_type), []).append(handler)

    def unsubscribe(self, event_type: ProgressEventType, handler: Subscriber) -> None:
        handlers = self._subscribers.get(ProgressEventType(event_type), [])
        if handler in handlers:
            handlers.remove(handler)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def drain(self) -> list[ProgressEvent]:
        """Remove and return every queued event, oldest first."""
        events = list(self._pending)
        self._pending.clear()
        return events

    def dispatch_pending(self) -> int:
        """Deliver queued events to subscribers. Returns the number of events delivered.

        A failing subscriber is logged and skipped; the others still receive
        the event. Events published by subscribers wait for the next dispatch.
        """
        events = self.drain()
        for event in events:
            for handler in list(self._subscribers.get(event.type, [])):
                try:
                    handler(event)
                except Exception as e:
                    logger.warning("Subscriber for %s failed: %s", event.type.value, e)
        return len(events)
