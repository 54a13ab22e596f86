"""
Storage Services Package

Provides the ledger contract and its backends: Google Sheets for the
remote ledger and a local JSON file as the fallback.
"""

from ledger_agent.services.storage.interface import (
    DEMO_DATA_VERSION,
    AuditStorageInterface,
    LedgerStore,
    NotFoundError,
    StorageError,
    StoreUnavailableError,
    ValidationError,
    ValidationIssue,
)
from ledger_agent.services.storage.local_json import LocalJsonLedgerStore
from ledger_agent.services.storage.factory import (
    create_audit_storage,
    create_ledger_store,
    prepare_ledger,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStore",
    "DEMO_DATA_VERSION",
    # Exceptions
    "NotFoundError",
    "StorageError",
    "StoreUnavailableError",
    "ValidationError",
    "ValidationIssue",
    # Backends
    "LocalJsonLedgerStore",
    "create_audit_storage",
    "create_ledger_store",
    "prepare_ledger",
]
