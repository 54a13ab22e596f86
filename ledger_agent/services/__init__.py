"""Services package."""

from ledger_agent.services.demo_data import generate_demo_transactions
from ledger_agent.services.storage import (
    AuditStorageInterface,
    LedgerStore,
    LocalJsonLedgerStore,
    NotFoundError,
    StorageError,
    StoreUnavailableError,
    ValidationError,
    create_audit_storage,
    create_ledger_store,
    prepare_ledger,
)

__all__ = [
    "generate_demo_transactions",
    "AuditStorageInterface",
    "LedgerStore",
    "LocalJsonLedgerStore",
    "NotFoundError",
    "StorageError",
    "StoreUnavailableError",
    "ValidationError",
    "create_audit_storage",
    "create_ledger_store",
    "prepare_ledger",
]
