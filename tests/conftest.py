"""
Shared fixtures.

No test talks to Gemini or Google Sheets: the ledger runs on a local
JSON file under tmp_path and the model is a scripted fake.
"""

from datetime import date
from uuid import UUID

import pytest

from ledger_agent.agents.base import LanguageModel
from ledger_agent.audit import AuditLogger
from ledger_agent.events import EventBus
from ledger_agent.models.audit import AuditEvent
from ledger_agent.models.chat import ModelTurn, ToolCall
from ledger_agent.services.storage import AuditStorageInterface, LocalJsonLedgerStore
from ledger_agent.tools import ToolExecutor


TODAY = date(2025, 3, 20)


class MemoryAuditStorage(AuditStorageInterface):
    """Keeps audit events in a list."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return [e for e in self.events if e.correlation_id == correlation_id]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self.events))[:limit]

    def types(self) -> list[str]:
        return [e.event_type.value for e in self.events]


class ScriptedModel(LanguageModel):
    """
    Plays back a fixed list of turns.

    Each entry is a ModelTurn, or an exception instance to raise. Once
    the script runs out the last entry repeats, which is how a model
    that never stops calling tools is simulated.
    """

    def __init__(self, script: list):
        super().__init__("scripted")
        self.script = list(script)
        self.calls: list[dict] = []

    async def send_turn(self, system_instruction, transcript, tools) -> ModelTurn:
        self.calls.append({
            "system_instruction": system_instruction,
            "transcript": list(transcript),
            "tools": list(tools),
        })
        index = min(len(self.calls) - 1, len(self.script) - 1)
        step = self.script[index]
        if isinstance(step, Exception):
            raise step
        return step


def text_turn(text: str) -> ModelTurn:
    return ModelTurn(text=text)


def tool_turn(*calls: tuple, text: str = "") -> ModelTurn:
    """tool_turn(("addTransaction", {...}), ...)"""
    return ModelTurn(
        text=text,
        tool_calls=[ToolCall(name=name, arguments=arguments) for name, arguments in calls],
    )


def lunch_fields(**overrides) -> dict:
    fields = {
        "date": TODAY,
        "kind": "expense",
        "category": "Food",
        "amount": "120",
        "description": "Lunch",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def audit_storage() -> MemoryAuditStorage:
    return MemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def store(tmp_path, event_bus, audit_logger) -> LocalJsonLedgerStore:
    return LocalJsonLedgerStore(
        tmp_path / "ledger.json",
        event_bus=event_bus,
        audit_logger=audit_logger,
    )


@pytest.fixture
def executor(store, event_bus, audit_logger) -> ToolExecutor:
    return ToolExecutor(store, event_bus=event_bus, audit_logger=audit_logger)


@pytest.fixture
def recorded_events(event_bus):
    """Every event published on the bus, in order."""
    from ledger_agent.models.events import EventType

    received = []
    for event_type in EventType:
        event_bus.subscribe(event_type, received.append)
    return received

