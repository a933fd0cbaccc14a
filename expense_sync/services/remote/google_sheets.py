"""
Google Sheets Remote Store

Keeps each collection in its own worksheet, one record per row, and acts
as the authoritative store for users who don't run the REST backend.

The sheet is the server: it assigns ids and created_at timestamps.
gspread is synchronous, so every call into it runs in a worker thread
(asyncio.to_thread) and never blocks the event loop.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

import gspread
import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from expense_sync.models.entities import EntityFamily, RenameField
from expense_sync.services.remote.interface import (
    RemoteErrorKind,
    RemoteResult,
    RemoteStore,
)
from expense_sync.services.storage.google_sheets import GoogleSheetsClient
from expense_sync.services.storage.interface import ConnectionError


# Column mappings per worksheet. "extra_json" keeps fields we don't model.
TRANSACTION_COLUMNS = [
    "id",
    "created_at",
    "date",
    "type",
    "amount",
    "currency",
    "category",
    "description",
    "payment_method",
    "fully_settled",
    "extra_json",
]

CATEGORY_COLUMNS = [
    "id",
    "created_at",
    "name",
    "type",
    "order",
    "extra_json",
]

PAYMENT_METHOD_COLUMNS = [
    "id",
    "created_at",
    "name",
    "order",
    "extra_json",
]

FAMILY_COLUMNS = {
    EntityFamily.TRANSACTION: TRANSACTION_COLUMNS,
    EntityFamily.CATEGORY: CATEGORY_COLUMNS,
    EntityFamily.PAYMENT_METHOD: PAYMENT_METHOD_COLUMNS,
}

_BOOL_COLUMNS = {"fully_settled"}
_INT_COLUMNS = {"order"}


def record_to_row(record: dict, columns: list[str]) -> list:
    """Flatten a record dict into a row in `columns` order."""
    extra = {k: v for k, v in record.items() if k not in columns}
    row = []
    for column in columns:
        if column == "extra_json":
            row.append(json.dumps(extra, default=str) if extra else "")
            continue
        value = record.get(column)
        row.append("" if value is None else str(value))
    return row


def row_to_record(row: list, columns: list[str]) -> dict:
    """Rebuild a record dict from a row; empty cells become None."""
    def safe_get(index: int) -> str:
        try:
            return row[index]
        except IndexError:
            return ""

    record: dict = {}
    for index, column in enumerate(columns):
        raw = safe_get(index)
        if column == "extra_json":
            if raw:
                record.update(json.loads(raw))
            continue
        if raw == "":
            record[column] = None
        elif column in _BOOL_COLUMNS:
            record[column] = raw.lower() == "true"
        elif column in _INT_COLUMNS:
            record[column] = int(raw)
        else:
            record[column] = raw
    return record


class GoogleSheetsRemoteStore(RemoteStore):
    """
    Google Sheets implementation of the remote store.

    Rows are located by the id in column A. The header row is row 1, so
    the record at list index i lives on sheet row i + 2.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._logger = structlog.get_logger(__name__)

    def _sheet_title(self, family: EntityFamily) -> str:
        settings = self._client.settings
        return {
            EntityFamily.TRANSACTION: settings.transactions_sheet_name,
            EntityFamily.CATEGORY: settings.categories_sheet_name,
            EntityFamily.PAYMENT_METHOD: settings.payment_methods_sheet_name,
        }[family]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _worksheet(self, family: EntityFamily) -> gspread.Worksheet:
        return await asyncio.to_thread(
            self._client.get_worksheet, self._sheet_title(family), FAMILY_COLUMNS[family]
        )

    async def _rows(self, family: EntityFamily) -> tuple[gspread.Worksheet, list[list]]:
        sheet = await self._worksheet(family)
        values = await asyncio.to_thread(sheet.get_all_values)
        return sheet, values[1:]

    @staticmethod
    def _find_row(rows: list[list], entity_id: str) -> Optional[int]:
        for idx, row in enumerate(rows):
            if row and row[0] == entity_id:
                return idx
        return None

    def _failure(self, action: str, family: EntityFamily, error: Exception) -> RemoteResult:
        self._logger.error(
            "sheets_remote_failed", action=action, family=family.value, error=str(error)
        )
        if isinstance(error, ConnectionError):
            return RemoteResult.fail(str(error), RemoteErrorKind.OFFLINE)
        if isinstance(error, gspread.exceptions.APIError):
            return RemoteResult.fail(f"Failed to {action}: {error}", RemoteErrorKind.REJECTED)
        return RemoteResult.fail(f"Failed to {action}: {error}", RemoteErrorKind.UNKNOWN)

    async def fetch_all(self, family: EntityFamily) -> RemoteResult:
        try:
            columns = FAMILY_COLUMNS[family]
            _, rows = await self._rows(family)
            records = [row_to_record(row, columns) for row in rows if row and row[0]]
            return RemoteResult.ok(records)
        except Exception as e:
            return self._failure("list records", family, e)

    async def create(self, family: EntityFamily, payload: dict) -> RemoteResult:
        try:
            columns = FAMILY_COLUMNS[family]
            record = {
                **{k: v for k, v in payload.items() if k not in ("id", "created_at")},
                "id": str(uuid4()),
                "created_at": datetime.now(timezone.utc).isoformat(),
            }
            sheet = await self._worksheet(family)
            await asyncio.to_thread(
                sheet.append_row, record_to_row(record, columns), value_input_option="RAW"
            )
            return RemoteResult.ok(record)
        except Exception as e:
            return self._failure("create record", family, e)

    async def update(
        self,
        family: EntityFamily,
        entity_id: str,
        changes: dict,
    ) -> RemoteResult:
        try:
            columns = FAMILY_COLUMNS[family]
            sheet, rows = await self._rows(family)
            idx = self._find_row(rows, entity_id)
            if idx is None:
                return RemoteResult.fail(f"Record not found: {entity_id}")

            record = row_to_record(rows[idx], columns)
            record.update({k: v for k, v in changes.items() if k not in ("id", "created_at")})
            row_number = idx + 2
            await asyncio.to_thread(
                sheet.update,
                range_name=f"A{row_number}",
                values=[record_to_row(record, columns)],
                value_input_option="RAW",
            )
            return RemoteResult.ok(record)
        except Exception as e:
            return self._failure("update record", family, e)

    async def delete(self, family: EntityFamily, entity_id: str) -> RemoteResult:
        try:
            sheet, rows = await self._rows(family)
            idx = self._find_row(rows, entity_id)
            if idx is None:
                return RemoteResult.fail(f"Record not found: {entity_id}")
            await asyncio.to_thread(sheet.delete_rows, idx + 2)
            return RemoteResult.ok(True)
        except Exception as e:
            return self._failure("delete record", family, e)

    async def bulk_update(
        self,
        field: str,
        old_value: str,
        new_value: str,
    ) -> RemoteResult:
        family = EntityFamily.TRANSACTION
        try:
            field = RenameField(field).value
            columns = FAMILY_COLUMNS[family]
            col_number = columns.index(field) + 1
            sheet, rows = await self._rows(family)

            cells = []
            for idx, row in enumerate(rows):
                value = row[col_number - 1] if len(row) >= col_number else ""
                if row and row[0] and value == old_value:
                    cells.append(gspread.Cell(idx + 2, col_number, new_value))

            # One batch request for every matching row
            if cells:
                await asyncio.to_thread(sheet.update_cells, cells, value_input_option="RAW")
            return RemoteResult.ok({"updated": len(cells)})
        except ValueError as e:
            return RemoteResult.fail(str(e))
        except Exception as e:
            return self._failure("bulk update transactions", family, e)
