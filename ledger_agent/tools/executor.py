"""
Tool Executor

Turns a ToolCall requested by the model into a ToolResult.

DESIGN DECISION: Recoverable failures (unknown tool, malformed arguments,
validation errors, unknown ids) become structured error results that go
back to the model, so it can ask the user to correct their input. Only
StoreUnavailableError propagates; the orchestrator treats it as fatal
for the turn.
"""

from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import pydantic
import structlog

from ledger_agent.models.chat import ToolCall, ToolError, ToolErrorCode, ToolResult
from ledger_agent.models.events import (
    PrintReportRequested,
    TransactionAdded,
    TransactionDeleted,
)
from ledger_agent.models.transaction import summarize_totals
from ledger_agent.services.storage.interface import (
    LedgerStore,
    ValidationError,
    issues_from_pydantic,
)
from ledger_agent.tools.contract import (
    ARGUMENT_MODELS,
    AddTransactionArgs,
    DeleteTransactionArgs,
    PrintReportArgs,
    QueryTransactionsArgs,
    ToolName,
    get_tool_spec,
)


logger = structlog.get_logger(__name__)

MAX_QUERY_ROWS = 200


def _money(value: Decimal) -> float:
    return float(value.quantize(Decimal("0.01")))


class ToolFailure(Exception):
    """Internal signal carrying a structured error back to execute()."""

    def __init__(self, error: ToolError):
        super().__init__(error.message)
        self.error = error


class ToolExecutor:
    """
    Executes tool calls against the ledger store and publishes the
    resulting domain events.
    """

    def __init__(
        self,
        store: LedgerStore,
        event_bus=None,
        audit_logger=None,
        max_query_rows: int = MAX_QUERY_ROWS,
    ):
        self._store = store
        self._event_bus = event_bus
        self._audit = audit_logger
        self._max_query_rows = max_query_rows

        self._handlers = {
            ToolName.ADD_TRANSACTION: self._add_transaction,
            ToolName.QUERY_TRANSACTIONS: self._query_transactions,
            ToolName.DELETE_TRANSACTION: self._delete_transaction,
            ToolName.PRINT_REPORT: self._print_report,
        }

    async def execute(
        self,
        call: ToolCall,
        correlation_id: Optional[UUID] = None,
    ) -> ToolResult:
        """
        Execute one tool call.

        Raises:
            StoreUnavailableError: the ledger backend failed
        """
        spec = get_tool_spec(call.name)
        if spec is None:
            error = ToolError(
                code=ToolErrorCode.UNKNOWN_TOOL,
                message=f"Unknown tool '{call.name}'. Available tools: "
                + ", ".join(name.value for name in ToolName),
            )
            return await self._rejected(call, error, correlation_id)

        try:
            args = ARGUMENT_MODELS[spec.name].model_validate(call.arguments or {})
        except pydantic.ValidationError as e:
            error = ToolError(
                code=ToolErrorCode.INVALID_ARGUMENTS,
                message=f"Invalid arguments for {spec.name.value}",
                issues=[issue.model_dump() for issue in issues_from_pydantic(e)],
            )
            return await self._rejected(call, error, correlation_id)

        try:
            output = await self._handlers[spec.name](args, correlation_id)
        except ToolFailure as failure:
            return await self._rejected(call, failure.error, correlation_id)

        logger.info(
            "tool_call_executed",
            tool=spec.name.value,
            call_id=call.call_id,
        )
        if self._audit:
            await self._audit.log_tool_executed(call.call_id, spec.name.value, correlation_id)
        return ToolResult(call_id=call.call_id, name=call.name, output=output)

    async def execute_all(
        self,
        calls: list[ToolCall],
        correlation_id: Optional[UUID] = None,
    ) -> list[ToolResult]:
        """Execute calls one after another, in the order received."""
        results = []
        for call in calls:
            results.append(await self.execute(call, correlation_id))
        return results

    async def _rejected(
        self,
        call: ToolCall,
        error: ToolError,
        correlation_id: Optional[UUID],
    ) -> ToolResult:
        logger.warning(
            "tool_call_rejected",
            tool=call.name,
            call_id=call.call_id,
            code=error.code.value,
            error=error.message,
        )
        if self._audit:
            await self._audit.log_tool_rejected(
                call.call_id, call.name, error.code.value, error.message, correlation_id
            )
        return ToolResult(call_id=call.call_id, name=call.name, error=error)

    def _publish(self, event) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event)

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def _add_transaction(
        self,
        args: AddTransactionArgs,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, Any]:
        try:
            transaction = await self._store.add(args.to_draft_fields(), correlation_id=correlation_id)
        except ValidationError as e:
            raise ToolFailure(ToolError(
                code=ToolErrorCode.VALIDATION_ERROR,
                message=str(e),
                issues=[issue.model_dump() for issue in e.issues],
            ))

        self._publish(TransactionAdded(date=transaction.date, transaction_id=transaction.id))
        return {"success": True, "transaction": transaction.to_record()}

    async def _query_transactions(
        self,
        args: QueryTransactionsArgs,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, Any]:
        transactions = await self._store.query(args.to_filter())
        totals = summarize_totals(transactions)
        shown = transactions[:self._max_query_rows]
        return {
            "count": len(transactions),
            "returned": len(shown),
            "truncated": len(shown) < len(transactions),
            "totals": {name: _money(value) for name, value in totals.items()},
            "transactions": [t.to_record() for t in shown],
        }

    async def _delete_transaction(
        self,
        args: DeleteTransactionArgs,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, Any]:
        if not await self._store.delete(args.transaction_id, correlation_id=correlation_id):
            raise ToolFailure(ToolError(
                code=ToolErrorCode.NOT_FOUND,
                message=f"No transaction with id '{args.transaction_id}'",
            ))

        self._publish(TransactionDeleted(transaction_id=args.transaction_id))
        return {"success": True, "id": args.transaction_id}

    async def _print_report(
        self,
        args: PrintReportArgs,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, Any]:
        self._publish(PrintReportRequested(
            report_type=args.report_type,
            date_start=args.date_start,
            date_end=args.date_end,
        ))
        return {
            "success": True,
            "message": "Report view opened for printing",
            "reportType": args.report_type,
            "dateStart": args.date_start.isoformat(),
            "dateEnd": args.date_end.isoformat(),
        }
