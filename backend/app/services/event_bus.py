"""In-process notification bus.

Services announce what happened (a pool was calculated, a dispute was opened)
after their transaction commits. Delivery is fire-and-forget: a failing
handler is logged and never reaches the publisher.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Event names published by the tip and order services."""
    ORDER_CLOSED = "order.closed"
    TIP_POOL_CALCULATED = "tip_pool.calculated"
    TIP_POOL_FINALIZED = "tip_pool.finalized"
    TIP_DISPUTE_CREATED = "tip_dispute.created"
    TIP_DISPUTE_UPDATED = "tip_dispute.updated"


@dataclass
class Event:
    """A published event."""
    name: str
    data: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


Handler = Callable[[Event], None]


class EventBus:
    """Synchronous publish/subscribe with isolated handlers."""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self._wildcard: List[Handler] = []

    def subscribe(self, event: str, handler: Handler) -> None:
        """Register a handler for one event name."""
        self._handlers[str(getattr(event, "value", event))].append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        """Register a handler for every event."""
        self._wildcard.append(handler)

    def unsubscribe(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(str(getattr(event, "value", event)), [])
        if handler in handlers:
            handlers.remove(handler)

    def clear(self) -> None:
        """Drop all handlers."""
        self._handlers.clear()
        self._wildcard.clear()

    def publish(self, event: str, data: Dict[str, Any]) -> int:
        """Deliver an event to its handlers. Returns the number delivered successfully."""
        name = str(getattr(event, "value", event))
        message = Event(name=name, data=data)
        logger.info(f"Event {name}: {data}")

        delivered = 0
        for handler in [*self._handlers.get(name, []), *self._wildcard]:
            try:
                handler(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Event handler {getattr(handler, '__name__', handler)!s} failed for {name}: {e}",
                               exc_info=True)
        return delivered


# Global bus instance
event_bus = EventBus()
