"""
Local JSON Ledger Store

Fallback backend used when no remote spreadsheet is configured. The whole
ledger is one JSON document:

    {
        "transactions": [ {...}, ... ],
        "last_reset": "2025-01-31-v2"
    }

DESIGN DECISION: Writes go to a temp file that replaces the real one with
os.replace, so a crash mid-write never leaves a truncated ledger. Writes
inside one process are serialized with an asyncio.Lock; across processes
it is last-write-wins.

A missing file is an empty ledger. A file that exists but cannot be read
or parsed is a StoreUnavailableError, never an empty result.
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Optional, Union

import pydantic
import structlog

from ledger_agent.models.transaction import Transaction
from ledger_agent.services.storage.interface import (
    LedgerStore,
    StoreUnavailableError,
)


logger = structlog.get_logger(__name__)


class LocalJsonLedgerStore(LedgerStore):
    """Ledger persisted to a single JSON file on local disk."""

    def __init__(
        self,
        path: Union[str, Path],
        event_bus=None,
        audit_logger=None,
    ):
        super().__init__(event_bus=event_bus, audit_logger=audit_logger)
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    # -------------------------------------------------------------------------
    # File access
    # -------------------------------------------------------------------------

    def _read_document(self) -> dict:
        if not self._path.exists():
            return {"transactions": [], "last_reset": None}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("local_store_read_failed", path=str(self._path), error=str(e))
            raise StoreUnavailableError(f"Cannot read ledger file {self._path}") from e

        if not isinstance(document, dict) or not isinstance(document.get("transactions", []), list):
            logger.error("local_store_corrupt", path=str(self._path))
            raise StoreUnavailableError(f"Ledger file {self._path} is not a ledger document")

        document.setdefault("transactions", [])
        document.setdefault("last_reset", None)
        return document

    def _write_document(self, document: dict) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self._path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            logger.error("local_store_write_failed", path=str(self._path), error=str(e))
            raise StoreUnavailableError(f"Cannot write ledger file {self._path}") from e

    async def _read(self) -> dict:
        return await asyncio.to_thread(self._read_document)

    async def _write(self, document: dict) -> None:
        await asyncio.to_thread(self._write_document, document)

    def _parse(self, records: list) -> list[Transaction]:
        transactions = []
        for record in records:
            try:
                transactions.append(Transaction.model_validate(record))
            except pydantic.ValidationError as e:
                # Skip malformed rows rather than hiding the whole ledger
                logger.warning(
                    "local_store_row_skipped",
                    row_id=record.get("id") if isinstance(record, dict) else None,
                    error=str(e),
                )
        return transactions

    # -------------------------------------------------------------------------
    # LedgerStore hooks
    # -------------------------------------------------------------------------

    async def _load_all(self) -> list[Transaction]:
        document = await self._read()
        return self._parse(document["transactions"])

    async def _insert(self, transaction: Transaction) -> None:
        async with self._lock:
            document = await self._read()
            document["transactions"].append(transaction.model_dump(mode="json"))
            await self._write(document)

    async def _replace(self, transaction: Transaction) -> bool:
        async with self._lock:
            document = await self._read()
            records = document["transactions"]
            for index, record in enumerate(records):
                if isinstance(record, dict) and record.get("id") == transaction.id:
                    records[index] = transaction.model_dump(mode="json")
                    await self._write(document)
                    return True
            return False

    async def _remove(self, transaction_id: str) -> bool:
        async with self._lock:
            document = await self._read()
            records = document["transactions"]
            kept = [
                r for r in records
                if not (isinstance(r, dict) and r.get("id") == transaction_id)
            ]
            if len(kept) == len(records):
                return False
            document["transactions"] = kept
            await self._write(document)
            return True

    async def _replace_all(self, transactions: list[Transaction]) -> None:
        async with self._lock:
            document = await self._read()
            document["transactions"] = [t.model_dump(mode="json") for t in transactions]
            await self._write(document)

    async def _read_reset_marker(self) -> Optional[str]:
        document = await self._read()
        return document.get("last_reset")

    async def _write_reset_marker(self, marker: str) -> None:
        async with self._lock:
            document = await self._read()
            document["last_reset"] = marker
            await self._write(document)
