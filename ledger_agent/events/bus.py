"""
Event Bus

Decouples the ledger, the assistant and the views. The store publishes
ledger-changed after every mutation, the tool executor publishes
transaction-added, transaction-deleted and print-report-requested, and
views subscribe to whatever they render.

DESIGN DECISION: Delivery is synchronous and in subscription order.
A failing handler is logged and skipped. It never fails the publisher
and never stops delivery to the remaining handlers.
"""

from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import structlog

from ledger_agent.models.events import EventType, LedgerEvent


logger = structlog.get_logger(__name__)

EventHandler = Callable[[LedgerEvent], None]


class EventBus:
    """In-process publish/subscribe keyed by EventType."""

    def __init__(self):
        self._handlers: dict[EventType, list[EventHandler]] = {}

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Register a handler. Subscribing the same handler twice to the
        same event type has no additional effect.
        """
        handlers = self._handlers.setdefault(EventType(event_type), [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Remove a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(EventType(event_type), [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: LedgerEvent) -> int:
        """
        Deliver an event to every current subscriber of its type.

        Returns the number of handlers that completed without error.
        """
        # Copy so handlers may unsubscribe themselves while being called
        handlers = list(self._handlers.get(event.event_type, []))
        delivered = 0
        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    "event_handler_failed",
                    event_type=event.event_type.value,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                )
        return delivered

    def subscriber_count(self, event_type: EventType) -> int:
        return len(self._handlers.get(EventType(event_type), []))

    @contextmanager
    def subscription(
        self,
        event_type: EventType,
        handler: EventHandler,
    ) -> Iterator[EventHandler]:
        """Subscribe for the duration of a with-block."""
        self.subscribe(event_type, handler)
        try:
            yield handler
        finally:
            self.unsubscribe(event_type, handler)


_default_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Process-wide bus for callers that are not handed one explicitly."""
    global _default_bus
    if _default_bus is None:
        _default_bus = EventBus()
    return _default_bus
