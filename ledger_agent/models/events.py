"""
Domain Events

Notifications published after a ledger mutation or a report request.
They describe what happened; subscribers decide how to react.
"""

from datetime import date
from enum import Enum
from typing import ClassVar, Optional, Union

from pydantic import BaseModel, ConfigDict


class EventType(str, Enum):
    LEDGER_CHANGED = "ledger-changed"
    TRANSACTION_ADDED = "transaction-added"
    TRANSACTION_DELETED = "transaction-deleted"
    PRINT_REPORT_REQUESTED = "print-report-requested"


class LedgerOperation(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"
    RESET = "reset"


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_type: ClassVar[EventType]


class LedgerChanged(_Event):
    """Published by the store after every successful mutation."""

    event_type: ClassVar[EventType] = EventType.LEDGER_CHANGED

    operation: LedgerOperation
    transaction_id: Optional[str] = None


class TransactionAdded(_Event):
    """Published when the assistant added a transaction."""

    event_type: ClassVar[EventType] = EventType.TRANSACTION_ADDED

    date: date
    transaction_id: str


class TransactionDeleted(_Event):
    """Published when the assistant deleted a transaction."""

    event_type: ClassVar[EventType] = EventType.TRANSACTION_DELETED

    transaction_id: str


class PrintReportRequested(_Event):
    """Asks whichever report view is listening to open and print."""

    event_type: ClassVar[EventType] = EventType.PRINT_REPORT_REQUESTED

    report_type: str
    date_start: date
    date_end: date


LedgerEvent = Union[
    LedgerChanged,
    TransactionAdded,
    TransactionDeleted,
    PrintReportRequested,
]
