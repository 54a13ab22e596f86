"""
Tool Contract

The closed set of operations the language model may request, with the
parameter schemas it is shown and the argument models every call is
validated against before it reaches the ledger.

DESIGN DECISION: The schema declared to the model and the validation
applied to its calls live side by side. The model is told what we
accept; anything else comes back to it as a structured error, never as
an exception surfaced to the user.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from ledger_agent.models.transaction import (
    QueryFilter,
    TransactionKind,
    allowed_categories,
    canonical_category,
)


class ToolName(str, Enum):
    ADD_TRANSACTION = "addTransaction"
    QUERY_TRANSACTIONS = "queryTransactions"
    DELETE_TRANSACTION = "deleteTransaction"
    PRINT_REPORT = "printReport"


class ToolParameter(BaseModel):
    """One named parameter as declared to the model."""
    model_config = ConfigDict(frozen=True)

    name: str
    type: Literal["string", "number"]
    description: str


class ToolSpec(BaseModel):
    """Name, description and parameter schema of one tool."""
    model_config = ConfigDict(frozen=True)

    name: ToolName
    description: str
    parameters: tuple[ToolParameter, ...] = ()
    required: tuple[str, ...] = ()

    def to_json_schema(self) -> dict[str, Any]:
        """JSON-Schema-like object schema for model APIs."""
        schema: dict[str, Any] = {
            "type": "object",
            "properties": {
                p.name: {"type": p.type, "description": p.description}
                for p in self.parameters
            },
        }
        if self.required:
            schema["required"] = list(self.required)
        return schema


TOOL_CONTRACT: tuple[ToolSpec, ...] = (
    ToolSpec(
        name=ToolName.ADD_TRANSACTION,
        description="Add a new financial transaction (income or expense) to the ledger.",
        parameters=(
            ToolParameter(name="date", type="string", description="Date in YYYY-MM-DD format."),
            ToolParameter(name="kind", type="string", description="Type of transaction: 'income' or 'expense'."),
            ToolParameter(
                name="category",
                type="string",
                description=(
                    "Category of the transaction. Income: "
                    + ", ".join(allowed_categories(TransactionKind.INCOME))
                    + ". Expense: "
                    + ", ".join(allowed_categories(TransactionKind.EXPENSE))
                    + "."
                ),
            ),
            ToolParameter(name="amount", type="number", description="Amount of money, greater than zero."),
            ToolParameter(name="description", type="string", description="Short description of the transaction."),
        ),
        required=("date", "kind", "category", "amount"),
    ),
    ToolSpec(
        name=ToolName.QUERY_TRANSACTIONS,
        description="Search/Query transactions from the ledger based on filters.",
        parameters=(
            ToolParameter(name="dateStart", type="string", description="Start date (YYYY-MM-DD), inclusive."),
            ToolParameter(name="dateEnd", type="string", description="End date (YYYY-MM-DD), inclusive."),
            ToolParameter(name="kind", type="string", description="Filter by 'income' or 'expense'."),
            ToolParameter(name="category", type="string", description="Filter by category name."),
        ),
    ),
    ToolSpec(
        name=ToolName.DELETE_TRANSACTION,
        description="Delete a transaction by its ID. Query first if the ID is not known.",
        parameters=(
            ToolParameter(name="id", type="string", description="The ID of the transaction to delete."),
        ),
        required=("id",),
    ),
    ToolSpec(
        name=ToolName.PRINT_REPORT,
        description=(
            "Print/Export financial report as PDF. Use this when user asks to "
            "print, export, or download a report."
        ),
        parameters=(
            ToolParameter(name="reportType", type="string", description="Type of report: 'monthly' or 'custom'."),
            ToolParameter(name="dateStart", type="string", description="Start date (YYYY-MM-DD) for the report period."),
            ToolParameter(name="dateEnd", type="string", description="End date (YYYY-MM-DD) for the report period."),
        ),
        required=("reportType", "dateStart", "dateEnd"),
    ),
)


def get_tool_spec(name: str) -> Optional[ToolSpec]:
    """The spec for a tool name, or None if the name is not in the contract."""
    for spec in TOOL_CONTRACT:
        if spec.name.value == name:
            return spec
    return None


# =============================================================================
# ARGUMENT MODELS
# =============================================================================

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_iso_date(value: Any) -> date:
    """Accept only YYYY-MM-DD calendar dates."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _ISO_DATE.match(value.strip()):
        raise ValueError("Date must be an ISO calendar date (YYYY-MM-DD)")
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValueError(f"'{value}' is not a valid calendar date")


def parse_amount(value: Any) -> Decimal:
    """Numbers or numeric strings; never booleans."""
    if isinstance(value, bool) or value is None:
        raise ValueError("Amount must be a number")
    if isinstance(value, (int, float, Decimal)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        try:
            amount = Decimal(value.strip().replace(",", ""))
        except InvalidOperation:
            raise ValueError(f"Amount '{value}' is not a number")
    else:
        raise ValueError("Amount must be a number")
    if not amount.is_finite():
        raise ValueError("Amount must be a finite number")
    return amount


class _ToolArgs(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


class AddTransactionArgs(_ToolArgs):
    transaction_date: date = Field(..., alias="date")
    kind: TransactionKind = Field(
        ...,
        validation_alias=AliasChoices("kind", "type"),
    )
    category: str = Field(..., min_length=1)
    amount: Decimal
    description: Optional[str] = None

    @field_validator('transaction_date', mode='before')
    @classmethod
    def validate_date(cls, v: Any) -> date:
        return parse_iso_date(v)

    @field_validator('kind', mode='before')
    @classmethod
    def normalize_kind(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator('amount', mode='before')
    @classmethod
    def validate_amount(cls, v: Any) -> Decimal:
        return parse_amount(v)

    @model_validator(mode='after')
    def validate_category(self) -> 'AddTransactionArgs':
        canonical = canonical_category(self.kind, self.category)
        if canonical is None:
            allowed = ", ".join(allowed_categories(self.kind))
            raise ValueError(
                f"Unknown {self.kind.value} category '{self.category}'. Allowed: {allowed}"
            )
        self.category = canonical
        return self

    def to_draft_fields(self) -> dict[str, Any]:
        """
        Fields for LedgerStore.add. Amount sign and precision are checked
        by the store, not here.
        """
        return {
            "date": self.transaction_date,
            "kind": self.kind,
            "category": self.category,
            "amount": self.amount,
            "description": self.description or "",
        }


class QueryTransactionsArgs(_ToolArgs):
    date_start: Optional[date] = Field(default=None, alias="dateStart")
    date_end: Optional[date] = Field(default=None, alias="dateEnd")
    kind: Optional[TransactionKind] = Field(
        default=None,
        validation_alias=AliasChoices("kind", "type"),
    )
    category: Optional[str] = None

    @field_validator('date_start', 'date_end', mode='before')
    @classmethod
    def validate_dates(cls, v: Any) -> Optional[date]:
        if v is None or v == "":
            return None
        return parse_iso_date(v)

    @field_validator('kind', mode='before')
    @classmethod
    def normalize_kind(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower()
            return v or None
        return v

    @field_validator('category', mode='before')
    @classmethod
    def empty_category_is_none(cls, v: Any) -> Any:
        return None if v == "" else v

    @model_validator(mode='after')
    def validate_range(self) -> 'QueryTransactionsArgs':
        if self.date_start and self.date_end and self.date_start > self.date_end:
            raise ValueError("dateStart cannot be after dateEnd")
        return self

    def to_filter(self) -> QueryFilter:
        return QueryFilter(
            date_start=self.date_start,
            date_end=self.date_end,
            kind=self.kind,
            category=self.category,
        )


class DeleteTransactionArgs(_ToolArgs):
    transaction_id: str = Field(..., alias="id", min_length=1)

    @field_validator('transaction_id', mode='before')
    @classmethod
    def id_as_string(cls, v: Any) -> Any:
        # Models sometimes send numeric-looking ids as numbers
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class PrintReportArgs(_ToolArgs):
    report_type: Literal["monthly", "custom"] = Field(..., alias="reportType")
    date_start: date = Field(..., alias="dateStart")
    date_end: date = Field(..., alias="dateEnd")

    @field_validator('report_type', mode='before')
    @classmethod
    def normalize_report_type(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator('date_start', 'date_end', mode='before')
    @classmethod
    def validate_dates(cls, v: Any) -> date:
        return parse_iso_date(v)

    @model_validator(mode='after')
    def validate_range(self) -> 'PrintReportArgs':
        if self.date_start > self.date_end:
            raise ValueError("dateStart cannot be after dateEnd")
        return self


ARGUMENT_MODELS: dict[ToolName, type[_ToolArgs]] = {
    ToolName.ADD_TRANSACTION: AddTransactionArgs,
    ToolName.QUERY_TRANSACTIONS: QueryTransactionsArgs,
    ToolName.DELETE_TRANSACTION: DeleteTransactionArgs,
    ToolName.PRINT_REPORT: PrintReportArgs,
}
