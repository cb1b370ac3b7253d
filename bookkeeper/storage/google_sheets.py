"""
Google Sheets Storage Implementation

DESIGN DECISION: A spreadsheet is a legitimate home for a small business's
books. The owner can open it without the app and an accountant can be
given view access instead of a login. The price is speed: every query
reads the whole worksheet and filtering happens in Python, which is fine
for a few thousand rows a year.

Layout: one worksheet per table. Row 1 holds column names; columns are
appended as new fields show up. Lists and dicts are stored as JSON text,
booleans as "true"/"false", nulls as empty cells.
"""

import json
from typing import Any, Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from bookkeeper.config import get_settings
from bookkeeper.models.audit import AuditEvent
from bookkeeper.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecordStorageInterface,
    StorageError,
    sort_value,
    to_storage_filters,
    to_storage_value,
)


SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details",
    "error_code",
    "error_message",
    "is_user_action",
]

# Sheet API calls fail transiently under quota pressure
sheet_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type((DuplicateError, NotFoundError)),
    reraise=True,
)


def encode_cell(value: Any) -> str:
    """Stored value -> sheet cell text."""
    value = to_storage_value(value)
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


def decode_cell(text: str) -> Any:
    """Sheet cell text -> stored value. Pydantic coerces the rest on load."""
    if text == "":
        return None
    if text[:1] in "[{":
        try:
            return json.loads(text)
        except ValueError:
            return text
    return text


def row_to_record(header: list[str], row: list[str]) -> dict[str, Any]:
    padded = row + [""] * (len(header) - len(row))
    return {name: decode_cell(cell) for name, cell in zip(header, padded) if name}


class GoogleSheetsClient:
    """Opens the configured spreadsheet once and caches worksheet handles."""

    def __init__(self):
        self._settings = get_settings().google_sheets
        self._gc: Optional[gspread.Client] = None
        self._book: Optional[gspread.Spreadsheet] = None
        self._sheets: dict[str, gspread.Worksheet] = {}

    @property
    def audit_sheet_name(self) -> str:
        return self._settings.audit_sheet_name

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, min=2, max=10), reraise=True)
    def connect(self) -> gspread.Client:
        if self._gc is not None:
            return self._gc
        path = self._settings.credentials_path
        try:
            creds = Credentials.from_service_account_file(path, scopes=SCOPES)
        except FileNotFoundError:
            raise ConnectionError(f"Service account key file missing: {path}")
        except Exception as e:
            raise ConnectionError(f"Could not load service account key {path}: {e}")
        self._gc = gspread.authorize(creds)
        return self._gc

    def spreadsheet(self) -> gspread.Spreadsheet:
        if self._book is None:
            key = self._settings.spreadsheet_id
            try:
                self._book = self.connect().open_by_key(key)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(f"No spreadsheet with id {key} is shared with the service account")
        return self._book

    def get_worksheet(self, title: str, header: Optional[list[str]] = None) -> gspread.Worksheet:
        """Worksheet by title, created with a header row when absent."""
        sheet = self._sheets.get(title)
        if sheet is not None:
            return sheet
        book = self.spreadsheet()
        try:
            sheet = book.worksheet(title)
        except gspread.WorksheetNotFound:
            columns = header or ["id"]
            sheet = book.add_worksheet(title=title, rows=1000, cols=max(len(columns), 26))
            sheet.append_row(columns)
        self._sheets[title] = sheet
        return sheet


class GoogleSheetsRecordStorage(RecordStorageInterface):
    """One record per row, "id" always in the first column."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _load(self, table: str) -> tuple[gspread.Worksheet, list[str], list[list[str]]]:
        sheet = self._client.get_worksheet(table)
        values = sheet.get_all_values()
        header = values[0] if values else ["id"]
        return sheet, header, values[1:]

    def _ensure_columns(
        self,
        sheet: gspread.Worksheet,
        header: list[str],
        keys: list[str],
    ) -> list[str]:
        """Append header cells for keys the sheet doesn't have yet."""
        missing = [key for key in keys if key not in header]
        if not missing:
            return header
        new_header = header + missing
        if len(new_header) > sheet.col_count:
            sheet.add_cols(len(new_header) - sheet.col_count)
        for col_idx in range(len(header) + 1, len(new_header) + 1):
            sheet.update_cell(1, col_idx, new_header[col_idx - 1])
        return new_header

    def _find_row(self, rows: list[list[str]], record_id: str) -> Optional[int]:
        """Sheet row number (1-based, header is row 1) of a record."""
        for idx, row in enumerate(rows, start=2):
            if row and row[0] == str(record_id):
                return idx
        return None

    @sheet_retry
    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        record = to_storage_value(record)
        try:
            sheet, header, rows = self._load(table)
            if self._find_row(rows, record["id"]):
                raise DuplicateError(f"{table} record already exists: {record['id']}")
            header = self._ensure_columns(sheet, header, ["id"] + list(record))
            sheet.append_row(
                [encode_cell(record.get(name)) for name in header],
                value_input_option="RAW",
            )
            return record
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {table}: {e}")

    async def get(self, table: str, record_id: str) -> Optional[dict[str, Any]]:
        try:
            _, header, rows = self._load(table)
            for row in rows:
                if row and row[0] == str(record_id):
                    return row_to_record(header, row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get {table} record: {e}")

    async def update(
        self,
        table: str,
        record_id: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            sheet, header, rows = self._load(table)
            row_number = self._find_row(rows, record_id)
            if row_number is None:
                raise NotFoundError(f"{table} record not found: {record_id}")
            record = row_to_record(header, rows[row_number - 2])
            record.update(to_storage_value(changes))
            header = self._ensure_columns(sheet, header, list(changes))
            for col_idx, name in enumerate(header, start=1):
                if name in changes:
                    sheet.update_cell(row_number, col_idx, encode_cell(record.get(name)))
            return record
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {table} record: {e}")

    async def delete(self, table: str, record_id: str) -> bool:
        try:
            sheet, _, rows = self._load(table)
            row_number = self._find_row(rows, record_id)
            if row_number is None:
                return False
            sheet.delete_rows(row_number)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete {table} record: {e}")

    def _matching(
        self,
        header: list[str],
        rows: list[list[str]],
        filters: Optional[dict[str, Any]],
    ) -> list[tuple[int, dict[str, Any]]]:
        wanted = {k: encode_cell(v) for k, v in to_storage_filters(filters).items()}
        matches = []
        for idx, row in enumerate(rows, start=2):
            if not row or not row[0]:
                continue
            record = row_to_record(header, row)
            if all(encode_cell(record.get(k)) == v for k, v in wanted.items()):
                matches.append((idx, record))
        return matches

    async def select(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        try:
            _, header, rows = self._load(table)
            records = [record for _, record in self._matching(header, rows, filters)]
        except Exception as e:
            raise StorageError(f"Failed to list {table}: {e}")

        if order_by:
            present = [r for r in records if r.get(order_by) is not None]
            missing = [r for r in records if r.get(order_by) is None]
            present.sort(key=lambda r: sort_value(r.get(order_by)), reverse=descending)
            records = present + missing
        records = records[offset:]
        return records[:limit] if limit is not None else records

    async def update_where(
        self,
        table: str,
        filters: dict[str, Any],
        changes: dict[str, Any],
    ) -> int:
        try:
            sheet, header, rows = self._load(table)
            matches = self._matching(header, rows, filters)
            header = self._ensure_columns(sheet, header, list(changes))
            stored = to_storage_value(changes)
            for row_number, _ in matches:
                for col_idx, name in enumerate(header, start=1):
                    if name in stored:
                        sheet.update_cell(row_number, col_idx, encode_cell(stored[name]))
            return len(matches)
        except Exception as e:
            raise StorageError(f"Failed to update {table}: {e}")

    async def delete_where(self, table: str, filters: dict[str, Any]) -> int:
        try:
            sheet, header, rows = self._load(table)
            matches = self._matching(header, rows, filters)
            # Bottom-up so earlier row numbers stay valid
            for row_number, _ in sorted(matches, reverse=True):
                sheet.delete_rows(row_number)
            return len(matches)
        except Exception as e:
            raise StorageError(f"Failed to delete from {table}: {e}")



class GoogleSheetsAuditStorage(AuditStorageInterface):
    """Append-only audit trail on its own worksheet."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._client.audit_sheet_name, AUDIT_COLUMNS)

    def _events(self) -> list[AuditEvent]:
        try:
            values = self._sheet().get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to read audit log: {e}")
        header = values[0] if values else AUDIT_COLUMNS
        events = []
        for row in values[1:]:
            if not row or not row[0]:
                continue
            data = {k: v for k, v in row_to_record(header, row).items() if v is not None}
            data["is_user_action"] = data.get("is_user_action") == "true"
            events.append(AuditEvent.model_validate(data))
        return events

    @sheet_retry
    async def append_event(self, event: AuditEvent) -> bool:
        fields = event.to_log_dict()
        try:
            self._sheet().append_row(
                [encode_cell(fields.get(name)) for name in AUDIT_COLUMNS],
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._events() if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._events() if e.entity_type == entity_type and e.entity_id == entity_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events(), key=lambda e: e.timestamp, reverse=True)[:limit]
