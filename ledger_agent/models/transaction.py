"""
Core Ledger Models

These models define the strict schemas for every transaction flowing
through the system, whether it comes from the entry form, from a tool
call emitted by the language model, or from a storage backend.

DESIGN DECISION: Categories come from a controlled vocabulary per kind.
An unknown category is rejected; it is never replaced by a default such
as "Other" or "Uncategorized". Only the spelling is normalized
("food" -> "Food").
"""

import datetime as dt
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS AND VOCABULARY
# =============================================================================

class TransactionKind(str, Enum):
    """Direction of a transaction; determines the sign in every aggregation."""
    INCOME = "income"
    EXPENSE = "expense"


CATEGORIES: dict[TransactionKind, tuple[str, ...]] = {
    TransactionKind.INCOME: (
        "Salary", "Investment", "Bonus", "Freelance", "Gift", "Other",
    ),
    TransactionKind.EXPENSE: (
        "Food", "Transport", "Shopping", "Entertainment", "Health",
        "Utilities", "Rent", "Education", "Travel", "Other",
    ),
}


def allowed_categories(kind: TransactionKind) -> tuple[str, ...]:
    """Categories accepted for a transaction kind."""
    return CATEGORIES[TransactionKind(kind)]


def canonical_category(kind: TransactionKind, category: str) -> Optional[str]:
    """
    Return the canonical spelling of a category, or None if it is not
    part of the vocabulary for that kind.
    """
    wanted = category.strip().lower()
    for candidate in allowed_categories(kind):
        if candidate.lower() == wanted:
            return candidate
    return None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_transaction_id() -> str:
    """Opaque identifier assigned by the store on creation."""
    return uuid4().hex


# =============================================================================
# TRANSACTION MODELS
# =============================================================================

class TransactionDraft(BaseModel):
    """
    The user-controlled fields of a transaction.

    This is what the entry form and the addTransaction tool produce.
    The store turns it into a Transaction by assigning id and created_at.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    date: dt.date = Field(
        ...,
        description="Business date the transaction applies to"
    )
    kind: TransactionKind = Field(
        ...,
        description="income or expense"
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=40,
        description="Category from the vocabulary for this kind"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        max_digits=14,
        decimal_places=2,
        description="Positive amount, currency agnostic"
    )
    description: str = Field(
        default="",
        max_length=200,
        description="Optional free text"
    )

    @field_validator('amount', mode='before')
    @classmethod
    def reject_boolean_amount(cls, v: Any) -> Any:
        """bool is an int subclass; True must not become an amount of 1."""
        if isinstance(v, bool):
            raise ValueError("Amount must be a number")
        return v

    @field_validator('description', mode='before')
    @classmethod
    def none_description_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @model_validator(mode='after')
    def validate_category(self) -> 'TransactionDraft':
        """Category must belong to the vocabulary of the kind."""
        canonical = canonical_category(self.kind, self.category)
        if canonical is None:
            allowed = ", ".join(allowed_categories(self.kind))
            raise ValueError(
                f"Unknown {self.kind.value} category '{self.category}'. "
                f"Allowed: {allowed}"
            )
        self.category = canonical
        return self


class Transaction(TransactionDraft):
    """
    A persisted transaction.

    id and created_at are assigned once by the store and never change.
    created_at is only used as an ordering tie-break, never as a
    business date.
    """

    id: str = Field(
        default_factory=new_transaction_id,
        min_length=1,
        description="Opaque unique identifier"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="Creation timestamp (UTC)"
    )

    @field_validator('created_at')
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Naive timestamps from older rows are treated as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def signed_amount(self) -> Decimal:
        """Amount with the sign convention applied (expenses negative)."""
        if self.kind == TransactionKind.EXPENSE:
            return -self.amount
        return self.amount

    def to_record(self) -> dict:
        """JSON-ready dict, used by storage backends and tool results."""
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "kind": self.kind.value,
            "category": self.category,
            "amount": float(self.amount),
            "description": self.description,
            "created_at": self.created_at.isoformat(),
        }


class TransactionUpdate(BaseModel):
    """
    Partial replacement of a transaction's fields.

    id and created_at are not part of this model; they are immutable.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    date: Optional[dt.date] = None
    kind: Optional[TransactionKind] = None
    category: Optional[str] = None
    amount: Optional[Decimal] = None
    description: Optional[str] = None

    def apply_to(self, transaction: Transaction) -> Transaction:
        """
        Merge these changes into a transaction and re-validate.

        Raises pydantic.ValidationError if the merged result is invalid.
        """
        merged = transaction.model_dump()
        merged.update(self.model_dump(exclude_unset=True, exclude_none=True))
        merged["id"] = transaction.id
        merged["created_at"] = transaction.created_at
        return Transaction.model_validate(merged)


# =============================================================================
# QUERY FILTER
# =============================================================================

class QueryFilter(BaseModel):
    """
    Optional predicates over transactions.

    An empty filter matches everything.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    date_start: Optional[date] = Field(
        default=None,
        description="Inclusive lower bound"
    )
    date_end: Optional[date] = Field(
        default=None,
        description="Inclusive upper bound"
    )
    kind: Optional[TransactionKind] = None
    category: Optional[str] = Field(
        default=None,
        description="Case-insensitive substring of the category"
    )

    @model_validator(mode='after')
    def validate_range(self) -> 'QueryFilter':
        if self.date_start and self.date_end and self.date_start > self.date_end:
            raise ValueError("Start date cannot be after end date")
        return self

    @property
    def is_empty(self) -> bool:
        return not any(
            (self.date_start, self.date_end, self.kind, self.category)
        )

    def matches(self, transaction: Transaction) -> bool:
        if self.date_start and transaction.date < self.date_start:
            return False
        if self.date_end and transaction.date > self.date_end:
            return False
        if self.kind and transaction.kind != self.kind:
            return False
        if self.category and self.category.lower() not in transaction.category.lower():
            return False
        return True


def sort_transactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Most recent business date first, ties broken by newest created_at."""
    return sorted(
        transactions,
        key=lambda t: (t.date, t.created_at),
        reverse=True,
    )


def summarize_totals(transactions: Iterable[Transaction]) -> dict[str, Decimal]:
    """Income, expense and net totals for a set of transactions."""
    income = Decimal("0")
    expense = Decimal("0")
    for transaction in transactions:
        if transaction.kind == TransactionKind.INCOME:
            income += transaction.amount
        else:
            expense += transaction.amount
    return {
        "income": income,
        "expense": expense,
        "net": income - expense,
    }
