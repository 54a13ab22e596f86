"""
Backend Selection

The backend is chosen once, at construction time. Nothing downstream
(orchestrator, tools, UI) branches on which one is active.

- ledger_backend=sheets: Google Sheets, failing loudly if not configured
- ledger_backend=local: the JSON file at local_store_path
- ledger_backend=auto: Google Sheets when its settings load, else local
"""

from datetime import date
from typing import Optional

import structlog

from ledger_agent.config import Settings, get_settings
from ledger_agent.services.storage.interface import AuditStorageInterface, LedgerStore
from ledger_agent.services.storage.local_json import LocalJsonLedgerStore


logger = structlog.get_logger(__name__)


def _sheets_settings(settings: Settings):
    try:
        return settings.google_sheets
    except Exception as e:
        logger.info("google_sheets_not_configured", reason=str(e).splitlines()[0])
        return None


def create_ledger_store(
    settings: Optional[Settings] = None,
    event_bus=None,
    audit_logger=None,
) -> LedgerStore:
    """Build the ledger store selected by configuration."""
    settings = settings or get_settings()
    app = settings.app
    backend = app.ledger_backend

    if backend in ("sheets", "auto"):
        sheets = settings.google_sheets if backend == "sheets" else _sheets_settings(settings)
        if sheets is not None:
            from ledger_agent.services.storage.google_sheets import (
                GoogleSheetsClient,
                GoogleSheetsLedgerStore,
            )

            logger.info("ledger_backend_selected", backend="sheets")
            return GoogleSheetsLedgerStore(
                client=GoogleSheetsClient(sheets),
                event_bus=event_bus,
                audit_logger=audit_logger,
            )

    logger.info("ledger_backend_selected", backend="local", path=app.local_store_path)
    return LocalJsonLedgerStore(
        app.local_store_file,
        event_bus=event_bus,
        audit_logger=audit_logger,
    )


def create_audit_storage(settings: Optional[Settings] = None) -> Optional[AuditStorageInterface]:
    """Audit worksheet storage when Google Sheets is configured, else None."""
    settings = settings or get_settings()
    if settings.app.ledger_backend == "local":
        return None
    sheets = _sheets_settings(settings)
    if sheets is None:
        return None

    from ledger_agent.services.storage.google_sheets import (
        GoogleSheetsAuditStorage,
        GoogleSheetsClient,
    )

    return GoogleSheetsAuditStorage(GoogleSheetsClient(sheets))


async def prepare_ledger(
    store: LedgerStore,
    today: Optional[date] = None,
    enabled: bool = True,
) -> bool:
    """
    Startup hook: reseed the ledger with demo data at most once a day.

    Returns True if the ledger was reseeded.
    """
    if not enabled:
        return False
    return await store.reset_with_seed_data(today=today)
