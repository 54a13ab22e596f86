"""
Audit Models for Ledger Agent

Every ledger mutation and every step of a chat turn that touches the
ledger is recorded. This gives:
1. Traceability of what the assistant did on the user's behalf
2. Debugging information when a tool call goes wrong
3. A way to reconstruct a conversation's effects

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ledger_agent.models.transaction import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Conversation
    MESSAGE_RECEIVED = "message_received"
    MODEL_TURN_COMPLETED = "model_turn_completed"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"

    # Tool calls
    TOOL_CALL_EXECUTED = "tool_call_executed"
    TOOL_CALL_REJECTED = "tool_call_rejected"

    # Ledger mutations
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    LEDGER_RESEEDED = "ledger_reseeded"

    # System events
    MODEL_CREDENTIALS_REJECTED = "model_credentials_rejected"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'tool_call', 'message')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - all events of one chat turn share this
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered directly by the user?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, ensure_ascii=False, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.message_received(text, language, correlation_id)
        event = AuditEventBuilder.tool_call_executed(call_id, tool_name, correlation_id)
    """

    @staticmethod
    def message_received(
        text_length: int,
        language: str,
        correlation_id: UUID,
        script: Optional[str] = None
    ) -> AuditEvent:
        # The message text itself stays out of the audit trail
        return AuditEvent(
            event_type=AuditEventType.MESSAGE_RECEIVED,
            entity_type="message",
            correlation_id=correlation_id,
            description="User message received",
            details={
                "length": text_length,
                "language": language,
                "script": script,
            },
            is_user_action=True,
        )

    @staticmethod
    def model_turn_completed(
        iteration: int,
        tool_call_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MODEL_TURN_COMPLETED,
            severity=AuditSeverity.DEBUG,
            entity_type="model_turn",
            correlation_id=correlation_id,
            description=f"Model turn {iteration} requested {tool_call_count} tool call(s)",
            details={
                "iteration": iteration,
                "tool_call_count": tool_call_count,
            },
        )

    @staticmethod
    def iteration_limit_reached(
        limit: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ITERATION_LIMIT_REACHED,
            severity=AuditSeverity.WARNING,
            entity_type="message",
            correlation_id=correlation_id,
            description=f"Tool loop stopped after {limit} rounds",
            details={"limit": limit},
        )

    @staticmethod
    def tool_call_executed(
        call_id: str,
        tool_name: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOOL_CALL_EXECUTED,
            entity_type="tool_call",
            entity_id=call_id,
            correlation_id=correlation_id,
            description=f"Tool executed: {tool_name}",
            details={"tool": tool_name},
        )

    @staticmethod
    def tool_call_rejected(
        call_id: str,
        tool_name: str,
        error_code: str,
        message: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TOOL_CALL_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="tool_call",
            entity_id=call_id,
            correlation_id=correlation_id,
            description=f"Tool call rejected: {tool_name} ({error_code})",
            details={
                "tool": tool_name,
                "error_code": error_code,
            },
            error_message=message,
        )

    @staticmethod
    def transaction_added(
        transaction_id: str,
        kind: str,
        category: str,
        amount: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction added: {kind} {category} {amount}",
            details={
                "kind": kind,
                "category": category,
                "amount": amount,
            },
        )

    @staticmethod
    def transaction_updated(
        transaction_id: str,
        fields: list[str],
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction updated: {', '.join(fields) or 'no fields'}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
        )

    @staticmethod
    def ledger_reseeded(
        row_count: int,
        marker: str
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_RESEEDED,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            description=f"Ledger reset with {row_count} demo transactions",
            details={
                "row_count": row_count,
                "marker": marker,
            },
        )

    @staticmethod
    def model_credentials_rejected(
        model_name: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MODEL_CREDENTIALS_REJECTED,
            severity=AuditSeverity.ERROR,
            entity_type="model",
            correlation_id=correlation_id,
            description=f"Model rejected the API key: {model_name}",
            details={"model": model_name},
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
