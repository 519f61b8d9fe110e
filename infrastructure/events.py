"""In-process event bus for guest check-in / check-out notifications

Delivery never influences correctness: a failing handler is logged and the
remaining handlers still run.
"""
from collections import deque
from typing import Callable, Dict, List, Optional
import logging
import threading

from domain.events import EventType, StayEvent

logger = logging.getLogger(__name__)


class InMemoryEventBus:
    """Thread-safe publish/subscribe bus

    bus.subscribe(EventType.GUEST_CHECKED_OUT, handler)
    bus.publish(StayEvent(...))
    """

    def __init__(self, history_size: int = 100):
        self._subscribers: Dict[EventType, List[Callable[[StayEvent], None]]] = {}
        self._history: deque = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def subscribe(self, event_type: EventType, handler: Callable[[StayEvent], None]) -> None:
        with self._lock:
            handlers = self._subscribers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)
                logger.info(f"Handler {handler.__name__} subscribed to {event_type.value}")

    def unsubscribe(self, event_type: EventType, handler: Callable[[StayEvent], None]) -> None:
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)
                logger.info(f"Handler {handler.__name__} unsubscribed from {event_type.value}")

    def publish(self, event: StayEvent) -> None:
        """Run every handler synchronously; handler errors do not propagate"""
        with self._lock:
            self._history.append(event)
            handlers = list(self._subscribers.get(event.event_type, []))

        if handlers:
            logger.info(f"Publishing {event.event_type.value} to {len(handlers)} handler(s)")

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    f"Event handler {handler.__name__} failed for {event.event_type.value}"
                )

    def get_history(self, event_type: Optional[EventType] = None, limit: int = 50) -> List[StayEvent]:
        """Most recent events first"""
        with self._lock:
            history = list(self._history)
        if event_type:
            history = [e for e in history if e.event_type == event_type]
        return list(reversed(history))[:limit]
