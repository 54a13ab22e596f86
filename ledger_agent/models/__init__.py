"""
Data Models Package

All Pydantic models used in the Ledger Agent system.
All data flowing through the system must conform to these schemas.
"""

from ledger_agent.models.transaction import (
    CATEGORIES,
    QueryFilter,
    Transaction,
    TransactionDraft,
    TransactionKind,
    TransactionUpdate,
    allowed_categories,
    canonical_category,
    sort_transactions,
    summarize_totals,
)
from ledger_agent.models.chat import (
    ChatReply,
    ChatRole,
    ChatTurn,
    ModelTurn,
    ReplyLanguage,
    ReplyStatus,
    ToolCall,
    ToolError,
    ToolErrorCode,
    ToolResult,
)
from ledger_agent.models.events import (
    EventType,
    LedgerChanged,
    LedgerEvent,
    LedgerOperation,
    PrintReportRequested,
    TransactionAdded,
    TransactionDeleted,
)
from ledger_agent.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CATEGORIES",
    "QueryFilter",
    "Transaction",
    "TransactionDraft",
    "TransactionKind",
    "TransactionUpdate",
    "allowed_categories",
    "canonical_category",
    "sort_transactions",
    "summarize_totals",
    # Chat models
    "ChatReply",
    "ChatRole",
    "ChatTurn",
    "ModelTurn",
    "ReplyLanguage",
    "ReplyStatus",
    "ToolCall",
    "ToolError",
    "ToolErrorCode",
    "ToolResult",
    # Events
    "EventType",
    "LedgerChanged",
    "LedgerEvent",
    "LedgerOperation",
    "PrintReportRequested",
    "TransactionAdded",
    "TransactionDeleted",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
