"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the remote ledger backend because:
1. The user can view and fix their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for a personal ledger)
- No transactions (last write wins, the ledger contract allows this)
- Limited query capabilities (we filter in Python)

gspread is synchronous, so every API call runs in a worker thread to
keep the chat loop responsive. Calls are retried with tenacity; anything
that still fails surfaces as StoreUnavailableError.
"""

import asyncio
import json
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import gspread
import pydantic
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from ledger_agent.config import GoogleSheetsSettings, get_settings
from ledger_agent.models.audit import AuditEvent, AuditEventType, AuditSeverity
from ledger_agent.models.transaction import Transaction
from ledger_agent.services.storage.interface import (
    AuditStorageInterface,
    LedgerStore,
    StorageError,
    StoreUnavailableError,
)


logger = structlog.get_logger(__name__)

# Column mappings for the Transactions sheet
TRANSACTION_COLUMNS = [
    "id",
    "date",
    "kind",
    "category",
    "amount",
    "description",
    "created_at",
]

# Column mappings for the AppSettings key/value sheet
SETTINGS_COLUMNS = ["key", "value"]
RESET_MARKER_KEY = "last_reset"

# Column mappings for the Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

sheets_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _column_letter(index: int) -> str:
    """1-based column index to A1 letters."""
    letters = ""
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and creates missing worksheets with headers.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @sheets_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError as e:
                raise StoreUnavailableError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e
            except Exception as e:
                raise StoreUnavailableError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound as e:
                raise StoreUnavailableError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, rows=2000
        )

    def get_settings_sheet(self) -> gspread.Worksheet:
        """Get or create the AppSettings key/value worksheet."""
        return self._get_or_create(
            self._settings.settings_sheet_name, SETTINGS_COLUMNS, rows=20
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsLedgerStore(LedgerStore):
    """
    Google Sheets implementation of the ledger.

    One transaction per row; the first row holds the headers.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        event_bus=None,
        audit_logger=None,
    ):
        super().__init__(event_bus=event_bus, audit_logger=audit_logger)
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _transaction_to_row(transaction: Transaction) -> list:
        """Convert a Transaction to a spreadsheet row."""
        return [
            transaction.id,
            transaction.date.isoformat(),
            transaction.kind.value,
            transaction.category,
            str(transaction.amount),
            transaction.description,
            transaction.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_transaction(row: list) -> Transaction:
        """Convert a spreadsheet row to a Transaction."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return Transaction(
            id=safe_get(0),
            date=safe_get(1),
            kind=safe_get(2),
            category=safe_get(3),
            amount=Decimal(safe_get(4, "0").replace(",", "")),
            description=safe_get(5),
            created_at=datetime.fromisoformat(safe_get(6)),
        )

    async def _run(self, operation: Callable, *args):
        """Run a blocking sheet operation off the event loop."""
        try:
            return await asyncio.to_thread(operation, *args)
        except StoreUnavailableError:
            raise
        except Exception as e:
            logger.error(
                "sheets_operation_failed",
                operation=getattr(operation, "__name__", "sheets_call"),
                error=str(e),
            )
            raise StoreUnavailableError("Google Sheets request failed") from e

    # -------------------------------------------------------------------------
    # Blocking operations (run in a worker thread)
    # -------------------------------------------------------------------------

    @sheets_retry
    def _fetch_rows(self) -> list[list]:
        sheet = self._client.get_transactions_sheet()
        return sheet.get_all_values()[1:]  # Skip header

    def _row_index(self, sheet: gspread.Worksheet, transaction_id: str) -> Optional[int]:
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):  # Row 1 is header
            if row and row[0] == transaction_id:
                return idx
        return None

    @sheets_retry
    def _append(self, row: list) -> None:
        sheet = self._client.get_transactions_sheet()
        sheet.append_row(row, value_input_option="RAW")

    @sheets_retry
    def _overwrite(self, transaction_id: str, row: list) -> bool:
        sheet = self._client.get_transactions_sheet()
        idx = self._row_index(sheet, transaction_id)
        if idx is None:
            return False
        last_column = _column_letter(len(TRANSACTION_COLUMNS))
        sheet.update(
            range_name=f"A{idx}:{last_column}{idx}",
            values=[row],
            value_input_option="RAW",
        )
        return True

    @sheets_retry
    def _delete_row(self, transaction_id: str) -> bool:
        sheet = self._client.get_transactions_sheet()
        idx = self._row_index(sheet, transaction_id)
        if idx is None:
            return False
        sheet.delete_rows(idx)
        return True

    @sheets_retry
    def _rewrite(self, rows: list[list]) -> None:
        sheet = self._client.get_transactions_sheet()
        sheet.clear()
        sheet.append_row(TRANSACTION_COLUMNS)
        if rows:
            sheet.append_rows(rows, value_input_option="RAW")

    @sheets_retry
    def _get_setting(self, key: str) -> Optional[str]:
        sheet = self._client.get_settings_sheet()
        for row in sheet.get_all_values()[1:]:
            if len(row) > 1 and row[0] == key:
                return row[1] or None
        return None

    @sheets_retry
    def _set_setting(self, key: str, value: str) -> None:
        sheet = self._client.get_settings_sheet()
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if row and row[0] == key:
                sheet.update_cell(idx, 2, value)
                return
        sheet.append_row([key, value], value_input_option="RAW")

    # -------------------------------------------------------------------------
    # LedgerStore hooks
    # -------------------------------------------------------------------------

    async def _load_all(self) -> list[Transaction]:
        rows = await self._run(self._fetch_rows)
        transactions = []
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                transactions.append(self._row_to_transaction(row))
            except (pydantic.ValidationError, ValueError, ArithmeticError) as e:
                # Hand-edited rows may not parse; skip them instead of failing the ledger
                logger.warning("sheets_row_skipped", row_id=row[0], error=str(e))
        return transactions

    async def _insert(self, transaction: Transaction) -> None:
        await self._run(self._append, self._transaction_to_row(transaction))

    async def _replace(self, transaction: Transaction) -> bool:
        return await self._run(
            self._overwrite, transaction.id, self._transaction_to_row(transaction)
        )

    async def _remove(self, transaction_id: str) -> bool:
        return await self._run(self._delete_row, transaction_id)

    async def _replace_all(self, transactions: list[Transaction]) -> None:
        rows = [self._transaction_to_row(t) for t in transactions]
        await self._run(self._rewrite, rows)

    async def _read_reset_marker(self) -> Optional[str]:
        return await self._run(self._get_setting, RESET_MARKER_KEY)

    async def _write_reset_marker(self, marker: str) -> None:
        await self._run(self._set_setting, RESET_MARKER_KEY, marker)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _row_to_event(row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    @sheets_retry
    def _append_row(self, row: list) -> None:
        self._client.get_audit_sheet().append_row(row, value_input_option="RAW")

    @sheets_retry
    def _fetch_rows(self) -> list[list]:
        return self._client.get_audit_sheet().get_all_values()[1:]

    def _parse_rows(self, rows: list[list]) -> list[AuditEvent]:
        events = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (pydantic.ValidationError, ValueError) as e:
                logger.warning("audit_row_skipped", row_id=row[0], error=str(e))
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Failures are logged, never raised."""
        try:
            await asyncio.to_thread(self._append_row, event.to_sheets_row())
            return True
        except Exception as e:
            logger.warning(
                "audit_event_not_persisted",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            rows = await asyncio.to_thread(self._fetch_rows)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

        matching = [row for row in rows if len(row) > 6 and row[6] == str(correlation_id)]
        events = self._parse_rows(matching)
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        try:
            rows = await asyncio.to_thread(self._fetch_rows)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

        events = self._parse_rows(rows)
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
