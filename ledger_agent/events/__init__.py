"""In-process event bridge."""

from ledger_agent.events.bus import EventBus, EventHandler, get_event_bus

__all__ = ["EventBus", "EventHandler", "get_event_bus"]
