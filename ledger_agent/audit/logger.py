"""
Audit Logger

DESIGN DECISION: Every ledger mutation and every tool call the assistant
makes is logged. This provides:
1. Traceability of what was done on the user's behalf
2. Debugging capability when the model misbehaves
3. A history the user can review in the audit worksheet

The audit logger:
- Is async to not block the chat loop
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to tie all events of one chat turn together
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledger_agent.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from ledger_agent.models.transaction import Transaction


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(ensure_ascii=False)
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit storage backend, when one is configured
    """

    def __init__(self, storage=None):
        """
        Initialize audit logger.

        Args:
            storage: AuditStorageInterface implementation for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    @property
    def has_storage(self) -> bool:
        return self._storage is not None

    async def recent_events(self, limit: int = 50) -> list[AuditEvent]:
        """Newest first. Empty when events are only logged locally."""
        if not self._storage:
            return []
        return await self._storage.get_recent_events(limit)

    async def events_for_turn(self, correlation_id: UUID) -> list[AuditEvent]:
        """Everything recorded for one chat message, oldest first."""
        if not self._storage:
            return []
        return await self._storage.get_events_by_correlation_id(correlation_id)

    async def log_message_received(
        self,
        text: str,
        language: str,
        correlation_id: UUID,
        script: Optional[str] = None,
    ) -> None:
        event = AuditEventBuilder.message_received(
            text_length=len(text),
            language=language,
            correlation_id=correlation_id,
            script=script,
        )
        await self.log(event)

    async def log_model_turn(
        self,
        iteration: int,
        tool_call_count: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.model_turn_completed(
            iteration=iteration,
            tool_call_count=tool_call_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_iteration_limit(self, limit: int, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.iteration_limit_reached(limit, correlation_id))

    async def log_tool_executed(
        self,
        call_id: str,
        tool_name: str,
        correlation_id: Optional[UUID],
    ) -> None:
        event = AuditEventBuilder.tool_call_executed(
            call_id=call_id,
            tool_name=tool_name,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_tool_rejected(
        self,
        call_id: str,
        tool_name: str,
        error_code: str,
        message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        event = AuditEventBuilder.tool_call_rejected(
            call_id=call_id,
            tool_name=tool_name,
            error_code=error_code,
            message=message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_added(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_added(
            transaction_id=transaction.id,
            kind=transaction.kind.value,
            category=transaction.category,
            amount=str(transaction.amount),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_updated(
        self,
        transaction_id: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(
            AuditEventBuilder.transaction_updated(transaction_id, fields, correlation_id)
        )

    async def log_transaction_deleted(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(transaction_id, correlation_id))

    async def log_ledger_reseeded(self, row_count: int, marker: str) -> None:
        await self.log(AuditEventBuilder.ledger_reseeded(row_count, marker))

    async def log_credentials_rejected(self, model_name: str, correlation_id: UUID) -> None:
        await self.log(
            AuditEventBuilder.model_credentials_rejected(model_name, correlation_id)
        )

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Created once per user message and passed through every model turn
    and tool call it triggers.
    """
    return uuid4()
