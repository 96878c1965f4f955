"""Domain events. The core publishes, collaborators subscribe."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    INTEREST_ADDED = "interest_added"
    INTEREST_UPDATED = "interest_updated"
    INTEREST_REMOVED = "interest_removed"
    CONNECTION_CREATED = "connection_created"
    CORE_CHANGED = "core_changed"
    MEMORY_PROMOTED = "memory_promoted"
    CONSOLIDATED = "consolidated"
    DREAM_STARTED = "dream_started"
    DREAM_CONNECTION = "dream_connection"
    DREAM_ENDED = "dream_ended"
    STRATEGY_SELECTED = "strategy_selected"
    OUTCOME_RECORDED = "outcome_recorded"
    NEW_GENERATION = "new_generation"


@dataclass(frozen=True)
class Event:
    kind: EventKind
    topic: str = ""
    payload: dict = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)


Subscriber = Callable[[Event], None]


class EventBus:
    """Synchronous fan-out. A subscriber that raises is logged and skipped."""

    def __init__(self) -> None:
        self._subscribers: list[tuple[Subscriber, frozenset[EventKind] | None]] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber,
                  kinds: Iterable[EventKind] | None = None) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        entry = (callback, frozenset(kinds) if kinds is not None else None)
        with self._lock:
            self._subscribers.append(entry)

        def _unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return _unsubscribe

    def publish(self, event: Event) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback, kinds in subscribers:
            if kinds is not None and event.kind not in kinds:
                continue
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber %r failed on %s", callback, event.kind.value)

    def publish_all(self, events: Iterable[Event]) -> None:
        for event in events:
            self.publish(event)

    def __len__(self) -> int:
        return len(self._subscribers)
