"""Tests for the tool contract and the tool executor."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from conftest import TODAY, lunch_fields
from ledger_agent.models.chat import ToolCall, ToolErrorCode
from ledger_agent.models.events import EventType
from ledger_agent.services.storage import LocalJsonLedgerStore, StoreUnavailableError
from ledger_agent.tools import (
    TOOL_CONTRACT,
    AddTransactionArgs,
    DeleteTransactionArgs,
    PrintReportArgs,
    QueryTransactionsArgs,
    ToolExecutor,
    ToolName,
    get_tool_spec,
)
from ledger_agent.tools.contract import parse_amount, parse_iso_date


def call(name: str, **arguments) -> ToolCall:
    return ToolCall(name=name, arguments=arguments)


class TestToolContract:
    """Tests for the declared tool schemas."""

    def test_exactly_four_tools(self):
        """Test the closed tool set."""
        assert [spec.name for spec in TOOL_CONTRACT] == [
            ToolName.ADD_TRANSACTION,
            ToolName.QUERY_TRANSACTIONS,
            ToolName.DELETE_TRANSACTION,
            ToolName.PRINT_REPORT,
        ]

    def test_add_transaction_schema(self):
        """Test required parameters and JSON schema types."""
        schema = get_tool_spec("addTransaction").to_json_schema()
        assert schema["required"] == ["date", "kind", "category", "amount"]
        assert schema["properties"]["amount"]["type"] == "number"
        assert "Entertainment" in schema["properties"]["category"]["description"]

    def test_query_has_no_required_parameters(self):
        """Test that every query filter is optional."""
        assert "required" not in get_tool_spec("queryTransactions").to_json_schema()

    def test_unknown_tool(self):
        """Test lookup of a name outside the contract."""
        assert get_tool_spec("transferMoney") is None


class TestArgumentParsing:
    """Tests for argument models and parsers."""

    def test_parse_iso_date(self):
        """Test that only YYYY-MM-DD is accepted."""
        assert parse_iso_date("2025-03-01") == date(2025, 3, 1)
        for value in ("03/01/2025", "2025-3-1", "2025-02-30", "yesterday", 20250301):
            with pytest.raises(ValueError):
                parse_iso_date(value)

    def test_parse_amount(self):
        """Test numbers, numeric strings and rejects."""
        assert parse_amount(150) == Decimal("150")
        assert parse_amount("1,200.50") == Decimal("1200.50")
        for value in (True, None, "abc", "NaN", [1]):
            with pytest.raises(ValueError):
                parse_amount(value)

    def test_add_args_accept_type_alias(self):
        """Test that 'type' is accepted as an alias for 'kind'."""
        args = AddTransactionArgs.model_validate({
            "date": "2025-03-20",
            "type": "Expense",
            "category": "food",
            "amount": 150,
        })
        assert args.to_draft_fields() == {
            "date": date(2025, 3, 20),
            "kind": "expense",
            "category": "Food",
            "amount": Decimal("150"),
            "description": "",
        }

    def test_add_args_reject_unknown_category(self):
        """Test that the category is never defaulted."""
        with pytest.raises(ValidationError):
            AddTransactionArgs.model_validate({
                "date": "2025-03-20", "kind": "expense", "category": "Uncategorized", "amount": 1,
            })

    def test_query_args_treat_empty_as_missing(self):
        """Test that empty strings from the model mean 'no filter'."""
        args = QueryTransactionsArgs.model_validate({"dateStart": "", "kind": "", "category": ""})
        assert args.to_filter().is_empty

    def test_query_args_reject_inverted_range(self):
        """Test dateStart after dateEnd."""
        with pytest.raises(ValidationError):
            QueryTransactionsArgs.model_validate({"dateStart": "2025-03-02", "dateEnd": "2025-03-01"})

    def test_delete_args_accept_numeric_id(self):
        """Test that numeric ids are converted to strings."""
        assert DeleteTransactionArgs.model_validate({"id": 42}).transaction_id == "42"

    def test_print_report_args(self):
        """Test report type normalization and required dates."""
        args = PrintReportArgs.model_validate({
            "reportType": "Monthly", "dateStart": "2025-03-01", "dateEnd": "2025-03-31",
        })
        assert args.report_type == "monthly"
        with pytest.raises(ValidationError):
            PrintReportArgs.model_validate({"reportType": "yearly", "dateStart": "2025-03-01", "dateEnd": "2025-03-31"})


class TestToolExecutor:
    """Tests for executing model-requested calls."""

    @pytest.mark.asyncio
    async def test_add_transaction(self, executor, store, recorded_events):
        """Test a successful add and its transaction-added event."""
        result = await executor.execute(call(
            "addTransaction", date="2025-03-20", kind="expense", category="Food", amount=150, description="Lunch",
        ))

        assert result.ok
        assert result.output["success"] is True
        record = result.output["transaction"]
        assert record["amount"] == 150.0
        assert (await store.get(record["id"])).category == "Food"

        added = [e for e in recorded_events if e.event_type == EventType.TRANSACTION_ADDED]
        assert len(added) == 1
        assert added[0].transaction_id == record["id"]
        assert added[0].date == date(2025, 3, 20)

    @pytest.mark.asyncio
    async def test_unknown_tool(self, executor):
        """Test that an unknown tool becomes a structured error."""
        result = await executor.execute(call("transferMoney", amount=10))
        assert result.error.code == ToolErrorCode.UNKNOWN_TOOL
        assert "addTransaction" in result.error.message

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, executor, store):
        """Test that missing or malformed arguments never reach the store."""
        result = await executor.execute(call("addTransaction", date="2025-03-20", kind="expense", amount=10))

        assert result.error.code == ToolErrorCode.INVALID_ARGUMENTS
        assert any(issue["field"] == "category" for issue in result.error.issues)
        assert await store.get_all() == []

    @pytest.mark.asyncio
    async def test_store_validation_error(self, executor, store):
        """Test that a non-positive amount is reported back as a validation error."""
        result = await executor.execute(call(
            "addTransaction", date="2025-03-20", kind="expense", category="Food", amount=-5,
        ))
        assert result.error.code == ToolErrorCode.VALIDATION_ERROR
        assert result.error.issues[0]["field"] == "amount"
        assert await store.get_all() == []

    @pytest.mark.asyncio
    async def test_query_transactions(self, executor, store):
        """Test filtered results with totals."""
        await store.add(lunch_fields(amount="100"))
        await store.add(lunch_fields(amount="50.25"))
        await store.add(lunch_fields(kind="income", category="Salary", amount="3000"))
        await store.add(lunch_fields(date=date(2025, 2, 1)))

        result = await executor.execute(call(
            "queryTransactions", dateStart="2025-03-01", dateEnd="2025-03-31",
        ))

        assert result.output["count"] == 3
        assert result.output["truncated"] is False
        assert result.output["totals"] == {"income": 3000.0, "expense": 150.25, "net": 2849.75}

    @pytest.mark.asyncio
    async def test_query_is_truncated(self, store, event_bus):
        """Test that large results are capped but totals cover every match."""
        executor = ToolExecutor(store, event_bus=event_bus, max_query_rows=2)
        for _ in range(3):
            await store.add(lunch_fields(amount="10"))

        result = await executor.execute(call("queryTransactions"))

        assert result.output["count"] == 3
        assert result.output["returned"] == 2
        assert result.output["truncated"] is True
        assert len(result.output["transactions"]) == 2
        assert result.output["totals"]["expense"] == 30.0

    @pytest.mark.asyncio
    async def test_delete_transaction(self, executor, store, recorded_events):
        """Test delete and its transaction-deleted event."""
        transaction = await store.add(lunch_fields())

        result = await executor.execute(call("deleteTransaction", id=transaction.id))

        assert result.output == {"success": True, "id": transaction.id}
        assert await store.get_all() == []
        assert any(e.event_type == EventType.TRANSACTION_DELETED for e in recorded_events)

    @pytest.mark.asyncio
    async def test_delete_unknown_id(self, executor, recorded_events):
        """Test that a missing id is NOT_FOUND and publishes nothing."""
        result = await executor.execute(call("deleteTransaction", id="missing"))
        assert result.error.code == ToolErrorCode.NOT_FOUND
        assert recorded_events == []

    @pytest.mark.asyncio
    async def test_print_report(self, executor, recorded_events):
        """Test that printReport only signals the report view."""
        result = await executor.execute(call(
            "printReport", reportType="monthly", dateStart="2025-03-01", dateEnd="2025-03-31",
        ))

        assert result.output["success"] is True
        assert result.output["dateEnd"] == "2025-03-31"
        assert len(recorded_events) == 1
        event = recorded_events[0]
        assert event.event_type == EventType.PRINT_REPORT_REQUESTED
        assert (event.date_start, event.date_end) == (date(2025, 3, 1), date(2025, 3, 31))

    @pytest.mark.asyncio
    async def test_execute_all_keeps_order(self, executor):
        """Test that results come back in call order with matching ids."""
        calls = [
            call("addTransaction", date=TODAY.isoformat(), kind="expense", category="Food", amount=10),
            call("deleteTransaction", id="missing"),
            call("queryTransactions"),
        ]

        results = await executor.execute_all(calls)

        assert [r.call_id for r in results] == [c.call_id for c in calls]
        assert [r.ok for r in results] == [True, False, True]
        assert results[2].output["count"] == 1

    @pytest.mark.asyncio
    async def test_store_unavailable_propagates(self, tmp_path):
        """Test that a broken backend is not turned into a tool error."""
        path = tmp_path / "ledger.json"
        path.write_text("[broken", encoding="utf-8")
        executor = ToolExecutor(LocalJsonLedgerStore(path))

        with pytest.raises(StoreUnavailableError):
            await executor.execute(call("queryTransactions"))

    @pytest.mark.asyncio
    async def test_calls_are_audited(self, executor, audit_storage):
        """Test executed and rejected calls in the audit trail."""
        await executor.execute(call("queryTransactions"))
        await executor.execute(call("transferMoney"))

        assert "tool_call_executed" in audit_storage.types()
        assert "tool_call_rejected" in audit_storage.types()

    @pytest.mark.asyncio
    async def test_correlation_id_reaches_ledger_audits(self, executor, audit_storage):
        """Test that add and delete made by tools are audited under the call's correlation id."""
        correlation_id = uuid4()

        added = await executor.execute(
            call("addTransaction", date="2025-03-20", kind="expense", category="Food", amount=10),
            correlation_id,
        )
        await executor.execute(
            call("deleteTransaction", id=added.output["transaction"]["id"]),
            correlation_id,
        )

        ledger_events = [
            e for e in audit_storage.events
            if e.event_type.value in ("transaction_added", "transaction_deleted")
        ]
        assert len(ledger_events) == 2
        assert all(e.correlation_id == correlation_id for e in ledger_events)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
