"""
Abstract Storage Interface

DESIGN DECISION: The public ledger contract (add, update, delete, get_all,
query, reset_with_seed_data) is implemented once, here. Backends only
supply a handful of raw hooks (load all rows, insert, replace, remove,
replace everything, read/write the reset marker). This allows us to:
1. Keep validation, ordering and event publication identical across backends
2. Use a local file or an in-memory fake for testing
3. Keep the orchestrator and UI unaware of which backend is active

The interface is intentionally simple - we're not building a full ORM.
Filtering and sorting happen in Python; a personal ledger is small.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Mapping, Optional, Union
from uuid import UUID

import pydantic
import structlog
from pydantic import BaseModel

from ledger_agent.models.audit import AuditEvent
from ledger_agent.models.events import LedgerChanged, LedgerOperation
from ledger_agent.models.transaction import (
    QueryFilter,
    Transaction,
    TransactionDraft,
    TransactionUpdate,
    sort_transactions,
)
from ledger_agent.services.demo_data import generate_demo_transactions


logger = structlog.get_logger(__name__)

DEMO_DATA_VERSION = "v2"


# =============================================================================
# EXCEPTIONS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem with submitted transaction fields."""
    field: str
    issue_type: str
    message: str


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ValidationError(StorageError):
    """Submitted fields violate the transaction invariants."""

    def __init__(self, message: str, issues: Optional[list[ValidationIssue]] = None):
        super().__init__(message)
        self.issues = issues or []


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class StoreUnavailableError(StorageError):
    """
    The backend could not be reached or read.

    The message is safe to log but is never shown to the user or the model.
    """
    pass


def issues_from_pydantic(error: pydantic.ValidationError) -> list[ValidationIssue]:
    """Flatten a pydantic error into field-level issues."""
    issues = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        message = item.get("msg", "Invalid value")
        # Model validators report through "Value error, ..." with an empty loc
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        issues.append(ValidationIssue(
            field=location or ("category" if "category" in message else "transaction"),
            issue_type=item.get("type", "value_error"),
            message=message,
        ))
    return issues


def _validation_error(error: pydantic.ValidationError, what: str) -> ValidationError:
    issues = issues_from_pydantic(error)
    summary = "; ".join(f"{i.field}: {i.message}" for i in issues)
    return ValidationError(f"Invalid {what}: {summary}", issues)


# =============================================================================
# LEDGER STORE
# =============================================================================

class LedgerStore(ABC):
    """
    The ledger contract shared by every backend.

    Every successful mutation publishes exactly one LedgerChanged event
    on the injected event bus.
    """

    def __init__(self, event_bus=None, audit_logger=None):
        """
        Args:
            event_bus: EventBus receiving ledger-changed events (optional)
            audit_logger: AuditLogger recording mutations (optional)
        """
        self._event_bus = event_bus
        self._audit = audit_logger

    # -------------------------------------------------------------------------
    # Backend hooks
    # -------------------------------------------------------------------------

    @abstractmethod
    async def _load_all(self) -> list[Transaction]:
        """Every stored transaction, in any order."""
        pass

    @abstractmethod
    async def _insert(self, transaction: Transaction) -> None:
        pass

    @abstractmethod
    async def _replace(self, transaction: Transaction) -> bool:
        """Overwrite the row with the same id. False if it is gone."""
        pass

    @abstractmethod
    async def _remove(self, transaction_id: str) -> bool:
        """Delete the row with this id. False if it was not there."""
        pass

    @abstractmethod
    async def _replace_all(self, transactions: list[Transaction]) -> None:
        pass

    @abstractmethod
    async def _read_reset_marker(self) -> Optional[str]:
        pass

    @abstractmethod
    async def _write_reset_marker(self, marker: str) -> None:
        pass

    @property
    def backend_name(self) -> str:
        return type(self).__name__

    # -------------------------------------------------------------------------
    # Public contract
    # -------------------------------------------------------------------------

    async def add(
        self,
        fields: Union[TransactionDraft, Mapping[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Validate and persist a new transaction.

        Raises:
            ValidationError: amount <= 0, unknown category for the kind,
                unparsable date, or any other invalid field
            StoreUnavailableError: backend failure
        """
        if isinstance(fields, TransactionDraft):
            draft = fields
        else:
            try:
                draft = TransactionDraft.model_validate(dict(fields))
            except pydantic.ValidationError as e:
                raise _validation_error(e, "transaction") from e

        # A Transaction passed in still gets a fresh id and created_at
        transaction = Transaction(**draft.model_dump(include=set(TransactionDraft.model_fields)))
        await self._insert(transaction)

        logger.info(
            "transaction_added",
            backend=self.backend_name,
            transaction_id=transaction.id,
            kind=transaction.kind.value,
            category=transaction.category,
        )
        self._publish(LedgerOperation.ADD, transaction.id)
        if self._audit:
            await self._audit.log_transaction_added(transaction, correlation_id)
        return transaction

    async def update(
        self,
        transaction_id: str,
        changes: Union[TransactionUpdate, Mapping[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Replace some or all user fields of a transaction.

        id and created_at cannot be changed; passing them is a
        ValidationError.

        Raises:
            NotFoundError: no transaction with this id
            ValidationError: the merged transaction is invalid
            StoreUnavailableError: backend failure
        """
        if isinstance(changes, TransactionUpdate):
            update = changes
        else:
            try:
                update = TransactionUpdate.model_validate(dict(changes))
            except pydantic.ValidationError as e:
                raise _validation_error(e, "update") from e

        current = await self._find(transaction_id)
        if current is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        try:
            updated = update.apply_to(current)
        except pydantic.ValidationError as e:
            raise _validation_error(e, "update") from e

        if not await self._replace(updated):
            # Deleted by someone else between the read and the write
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        changed_fields = sorted(update.model_dump(exclude_unset=True, exclude_none=True))
        logger.info(
            "transaction_updated",
            backend=self.backend_name,
            transaction_id=transaction_id,
            fields=changed_fields,
        )
        self._publish(LedgerOperation.UPDATE, transaction_id)
        if self._audit:
            await self._audit.log_transaction_updated(transaction_id, changed_fields, correlation_id)
        return updated

    async def delete(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Hard-delete a transaction.

        Returns False (and publishes nothing) if the id does not exist.
        """
        removed = await self._remove(str(transaction_id))
        if not removed:
            return False

        logger.info(
            "transaction_deleted",
            backend=self.backend_name,
            transaction_id=transaction_id,
        )
        self._publish(LedgerOperation.DELETE, transaction_id)
        if self._audit:
            await self._audit.log_transaction_deleted(transaction_id, correlation_id)
        return True

    async def get(self, transaction_id: str) -> Optional[Transaction]:
        return await self._find(transaction_id)

    async def get_all(self) -> list[Transaction]:
        """All transactions, newest business date first, created_at tie-break."""
        return sort_transactions(await self._load_all())

    async def query(
        self,
        query_filter: Union[QueryFilter, Mapping[str, Any], None] = None,
    ) -> list[Transaction]:
        """
        Transactions matching the filter, ordered like get_all.

        An empty or missing filter returns the same list as get_all.
        """
        if query_filter is None:
            query_filter = QueryFilter()
        elif not isinstance(query_filter, QueryFilter):
            try:
                query_filter = QueryFilter.model_validate(dict(query_filter))
            except pydantic.ValidationError as e:
                raise _validation_error(e, "query filter") from e

        transactions = await self.get_all()
        if query_filter.is_empty:
            return transactions
        return [t for t in transactions if query_filter.matches(t)]

    async def reset_with_seed_data(
        self,
        today: Optional[date] = None,
        force: bool = False,
    ) -> bool:
        """
        Replace every transaction with freshly generated demo data.

        Runs at most once per calendar day: the persisted marker
        "<today>-<version>" makes a second call on the same day a no-op
        unless force is set.

        Returns True if the ledger was reseeded.
        """
        today = today or date.today()
        marker = f"{today.isoformat()}-{DEMO_DATA_VERSION}"

        if not force and await self._read_reset_marker() == marker:
            logger.debug("ledger_reset_skipped", marker=marker)
            return False

        transactions = generate_demo_transactions(today)
        await self._replace_all(transactions)
        await self._write_reset_marker(marker)

        logger.info(
            "ledger_reseeded",
            backend=self.backend_name,
            row_count=len(transactions),
            marker=marker,
        )
        self._publish(LedgerOperation.RESET)
        if self._audit:
            await self._audit.log_ledger_reseeded(len(transactions), marker)
        return True

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _find(self, transaction_id: str) -> Optional[Transaction]:
        for transaction in await self._load_all():
            if transaction.id == str(transaction_id):
                return transaction
        return None

    def _publish(self, operation: LedgerOperation, transaction_id: Optional[str] = None) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(
                LedgerChanged(operation=operation, transaction_id=transaction_id)
            )


# =============================================================================
# AUDIT STORAGE
# =============================================================================

class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events of one chat turn, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent audit events, newest first."""
        pass
