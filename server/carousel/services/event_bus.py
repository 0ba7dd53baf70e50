"""Per-carousel async event bus for export progress.

The orchestrator publishes coarse status events; subscribers (the Socket.IO
bridge, tests) receive non-blocking delivery via asyncio.create_task.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    EXPORT_STATE = "export_state"
    EXPORT_PROGRESS = "export_progress"
    EXPORT_READY = "export_ready"
    EXPORT_DELIVERED = "export_delivered"
    EXPORT_FAILED = "export_failed"


@dataclass
class Event:
    type: EventType
    data: dict
    timestamp: float = field(default_factory=time.time)


class EventBus:
    """In-process async event bus for a single editing session."""

    def __init__(self, carousel_id: str):
        self.carousel_id = carousel_id
        self._subscribers: dict[EventType, list[Callable[[Event], Awaitable[None]]]] = {}
        self._history: list[Event] = []
        self._max_history = 100

    def subscribe(self, event_type: EventType, callback: Callable[[Event], Awaitable[None]]):
        self._subscribers.setdefault(event_type, []).append(callback)

    def subscribe_all(self, callback: Callable[[Event], Awaitable[None]]):
        """Subscribe to all event types."""
        for et in EventType:
            self.subscribe(et, callback)

    async def publish(self, event: Event):
        """Publish event to all subscribers. Each callback runs as its own task."""
        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

        for cb in self._subscribers.get(event.type, []):
            try:
                asyncio.create_task(cb(event))
            except Exception as e:
                logger.error(
                    f"EventBus [{self.carousel_id}]: error scheduling "
                    f"subscriber for {event.type}: {e}"
                )

    def get_recent_events(
        self, event_type: EventType | None = None, limit: int = 50
    ) -> list[Event]:
        if event_type:
            return [e for e in self._history if e.type == event_type][-limit:]
        return self._history[-limit:]
