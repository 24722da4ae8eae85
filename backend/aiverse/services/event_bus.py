"""In-process publish/subscribe for key pool events."""

import asyncio
import enum
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class KeyEvent(str, enum.Enum):
    """Events published by the key pool."""

    CREATED = "key.created"
    IMPORTED = "key.imported"
    STATUS_CHANGED = "key.status_changed"
    DELETED = "key.deleted"
    TESTED = "key.tested"


@dataclass
class EventData:
    """One published event."""

    event_type: KeyEvent
    payload: dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.utcnow)
    source: Optional[str] = None


class EventBus:
    """
    Delivers events to subscribers in priority order.

    Handlers may be plain functions or coroutines. A failing handler is
    logged and does not affect other handlers or the publisher.
    """

    def __init__(self, history_size: int = 200):
        self._subscribers: dict[KeyEvent, list[tuple[int, Callable]]] = {}
        self._event_history: deque[EventData] = deque(maxlen=history_size)

    def subscribe(self, event_type: KeyEvent, handler: Callable, priority: int = 0) -> None:
        """Register a handler; higher priority runs first."""
        handlers = self._subscribers.setdefault(event_type, [])
        handlers.append((priority, handler))
        handlers.sort(key=lambda item: item[0], reverse=True)

    def unsubscribe(self, event_type: KeyEvent, handler: Callable) -> None:
        """Remove a handler. Unknown handlers are ignored."""
        handlers = self._subscribers.get(event_type, [])
        self._subscribers[event_type] = [(p, h) for p, h in handlers if h is not handler]

    async def emit(
        self,
        event_type: KeyEvent,
        payload: dict[str, Any],
        source: Optional[str] = None,
    ) -> EventData:
        """Record an event and deliver it to every subscriber."""
        event = EventData(event_type=event_type, payload=payload, source=source)
        self._event_history.append(event)

        for _, handler in list(self._subscribers.get(event_type, [])):
            try:
                result = handler(payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception(
                    "Handler %s failed for %s",
                    getattr(handler, "__name__", repr(handler)),
                    event_type.value,
                )
        return event

    def get_history(
        self,
        event_type: Optional[KeyEvent] = None,
        limit: Optional[int] = None,
    ) -> list[EventData]:
        """Past events, oldest first, optionally filtered and limited to the newest ``limit``."""
        history = [e for e in self._event_history if event_type is None or e.event_type == event_type]
        if limit is not None:
            history = history[-limit:]
        return history

    def clear_history(self) -> None:
        self._event_history.clear()

    def get_subscriber_count(self, event_type: Optional[KeyEvent] = None) -> int:
        if event_type is not None:
            return len(self._subscribers.get(event_type, []))
        return sum(len(handlers) for handlers in self._subscribers.values())

    def reset(self) -> None:
        """Drop all subscribers and history."""
        self._subscribers = {}
        self._event_history.clear()


_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get or create the application-wide event bus."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
