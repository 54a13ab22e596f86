"""Tool contract and executor for model-requested ledger operations."""

from ledger_agent.tools.contract import (
    TOOL_CONTRACT,
    AddTransactionArgs,
    DeleteTransactionArgs,
    PrintReportArgs,
    QueryTransactionsArgs,
    ToolName,
    ToolParameter,
    ToolSpec,
    get_tool_spec,
)
from ledger_agent.tools.executor import MAX_QUERY_ROWS, ToolExecutor

__all__ = [
    "TOOL_CONTRACT",
    "AddTransactionArgs",
    "DeleteTransactionArgs",
    "PrintReportArgs",
    "QueryTransactionsArgs",
    "ToolName",
    "ToolParameter",
    "ToolSpec",
    "get_tool_spec",
    "MAX_QUERY_ROWS",
    "ToolExecutor",
]
