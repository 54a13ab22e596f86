"""Tests for the in-process event bus."""

from datetime import date

import pytest
from pydantic import ValidationError

from ledger_agent.events import EventBus, get_event_bus
from ledger_agent.models.events import (
    EventType,
    LedgerChanged,
    LedgerOperation,
    PrintReportRequested,
    TransactionAdded,
)


def added_event() -> TransactionAdded:
    return TransactionAdded(date=date(2025, 3, 20), transaction_id="t-1")


class TestEventBus:
    """Tests for subscribe, publish and unsubscribe."""

    def test_publish_reaches_subscribers_of_that_type_only(self):
        """Test routing by event type."""
        bus = EventBus()
        added, changed = [], []
        bus.subscribe(EventType.TRANSACTION_ADDED, added.append)
        bus.subscribe(EventType.LEDGER_CHANGED, changed.append)

        assert bus.publish(added_event()) == 1
        assert len(added) == 1
        assert changed == []

    def test_subscription_order_is_delivery_order(self):
        """Test that handlers run in the order they subscribed."""
        bus = EventBus()
        calls = []
        bus.subscribe(EventType.TRANSACTION_ADDED, lambda e: calls.append("first"))
        bus.subscribe(EventType.TRANSACTION_ADDED, lambda e: calls.append("second"))

        bus.publish(added_event())
        assert calls == ["first", "second"]

    def test_double_subscribe_delivers_once(self):
        """Test that subscribing the same handler twice has no extra effect."""
        bus = EventBus()
        received = []

        def handler(event):
            received.append(event)

        bus.subscribe(EventType.TRANSACTION_ADDED, handler)
        bus.subscribe(EventType.TRANSACTION_ADDED, handler)

        bus.publish(added_event())
        assert len(received) == 1
        assert bus.subscriber_count(EventType.TRANSACTION_ADDED) == 1

    def test_unsubscribe(self):
        """Test that unsubscribed handlers stop receiving, and unknown ones are ignored."""
        bus = EventBus()
        received = []
        bus.subscribe(EventType.TRANSACTION_ADDED, received.append)
        bus.unsubscribe(EventType.TRANSACTION_ADDED, received.append)
        bus.unsubscribe(EventType.TRANSACTION_ADDED, print)

        assert bus.publish(added_event()) == 0
        assert received == []

    def test_failing_handler_does_not_stop_delivery(self):
        """Test that one broken handler is skipped and the rest still run."""
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(EventType.LEDGER_CHANGED, broken)
        bus.subscribe(EventType.LEDGER_CHANGED, received.append)

        delivered = bus.publish(LedgerChanged(operation=LedgerOperation.RESET))

        assert delivered == 1
        assert len(received) == 1

    def test_handler_may_unsubscribe_itself(self):
        """Test that handlers can remove themselves during delivery."""
        bus = EventBus()
        calls = []

        def once(event):
            calls.append(event)
            bus.unsubscribe(EventType.PRINT_REPORT_REQUESTED, once)

        bus.subscribe(EventType.PRINT_REPORT_REQUESTED, once)
        event = PrintReportRequested(
            report_type="monthly",
            date_start=date(2025, 3, 1),
            date_end=date(2025, 3, 31),
        )
        bus.publish(event)
        bus.publish(event)
        assert len(calls) == 1

    def test_subscription_context_manager(self):
        """Test scoped subscriptions."""
        bus = EventBus()
        received = []

        with bus.subscription(EventType.TRANSACTION_ADDED, received.append):
            bus.publish(added_event())
        bus.publish(added_event())

        assert len(received) == 1
        assert bus.subscriber_count(EventType.TRANSACTION_ADDED) == 0

    def test_process_bus_is_shared(self):
        """Test the process-wide default bus."""
        assert get_event_bus() is get_event_bus()

    def test_events_are_immutable(self):
        """Test that subscribers cannot alter an event for later handlers."""
        event = added_event()
        with pytest.raises(ValidationError):
            event.transaction_id = "other"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
