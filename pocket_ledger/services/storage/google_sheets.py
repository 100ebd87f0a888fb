"""
Google Sheets Table Store

DESIGN DECISION: Google Sheets is used as the hosted backend because:
1. Users can view their ledger directly in Sheets
2. No database setup required
3. Sharing and version history come with the spreadsheet
4. Rows export to CSV for migration to a relational store

TRADEOFFS:
- Every read fetches the whole worksheet (fine for one household ledger)
- No transactions (the aggregator compensates on partial failure)
- Limited query capabilities (we filter and sort in Python)

Every table lives in its own worksheet with a header row. A `user_id`
column scopes rows to their owner, the same way a hosted relational
store would with row-level security.

Connecting is retried with exponential backoff. Row operations are NOT
retried: a failed read or write is terminal for that call.
"""

import json
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID, uuid4

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from pocket_ledger.config import get_settings
from pocket_ledger.models.audit import (
    AUDIT_COLUMNS,
    AuditEvent,
    AuditEventType,
    AuditSeverity,
)
from pocket_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    NotFoundError,
    OrderBy,
    Row,
    StorageError,
    TableStorageInterface,
    sort_rows,
    strip_managed_columns,
)


_BASE_COLUMNS = ["id", "user_id", "created_at", "updated_at"]

# Column mappings per table
TABLE_COLUMNS: dict[str, list[str]] = {
    "accounts": _BASE_COLUMNS + ["name", "type", "balance", "currency"],
    "transactions": _BASE_COLUMNS + [
        "account_id", "amount", "description", "category", "type", "date",
    ],
    "budget_categories": _BASE_COLUMNS + ["name", "budgeted", "spent", "color"],
    "give_take": _BASE_COLUMNS + [
        "name", "amount", "date", "type", "status", "description",
    ],
    "categories": _BASE_COLUMNS + ["name", "type"],
}


def _now() -> str:
    return datetime.utcnow().isoformat(timespec="microseconds")


class GoogleSheetsClient:
    """
    Owns the gspread connection and the worksheet handles.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Authorize against the Sheets API once and reuse the client.

        Authenticates with the service account file from settings.
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
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Open the ledger spreadsheet by id."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # New worksheet starts with its header row
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_table_sheet(self, table: str) -> gspread.Worksheet:
        """Get or create the worksheet backing a ledger table."""
        if table not in TABLE_COLUMNS:
            raise StorageError(f"Unknown table: {table}")
        return self._get_or_create_worksheet(
            self._settings.sheet_name_for(table),
            TABLE_COLUMNS[table],
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Worksheet holding the audit trail, created on first use."""
        return self._get_or_create_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsTableStorage(TableStorageInterface):
    """
    Google Sheets implementation of the table store.

    Values are written RAW as strings; the mirrors parse them back into
    typed models. Empty cells are treated as absent columns.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_values(self, table: str, row: Row) -> list[str]:
        """Convert a row dict to a spreadsheet row."""
        return [
            "" if row.get(column) is None else str(row[column])
            for column in TABLE_COLUMNS[table]
        ]

    def _values_to_row(self, table: str, values: list[str]) -> Row:
        """Convert a spreadsheet row to a row dict."""
        row: Row = {}
        for index, column in enumerate(TABLE_COLUMNS[table]):
            # Trailing empty cells are not returned by the API
            value = values[index] if index < len(values) else ""
            if value != "":
                row[column] = value
        return row

    def _locate(self, sheet: gspread.Worksheet, user_id: str, row_id: UUID) -> tuple[int, list[str]]:
        """Find the 1-based sheet row index and values for a user's row."""
        all_rows = sheet.get_all_values()
        for idx, values in enumerate(all_rows[1:], start=2):  # Row 1 is the header
            if len(values) > 1 and values[0] == str(row_id) and values[1] == user_id:
                return idx, values
        raise NotFoundError(f"Row not found: {row_id}")

    async def select_rows(
        self,
        table: str,
        user_id: str,
        order_by: Sequence[OrderBy] = (),
    ) -> list[Row]:
        try:
            sheet = self._client.get_table_sheet(table)
            all_rows = sheet.get_all_values()[1:]  # Skip header

            rows = [
                self._values_to_row(table, values)
                for values in all_rows
                if len(values) > 1 and values[0] and values[1] == user_id
            ]
            return sort_rows(rows, order_by)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {table}: {e}")

    async def insert_row(self, table: str, user_id: str, fields: Row) -> Row:
        try:
            sheet = self._client.get_table_sheet(table)
            timestamp = _now()
            row = {
                **strip_managed_columns(fields),
                "id": str(uuid4()),
                "user_id": user_id,
                "created_at": timestamp,
                "updated_at": timestamp,
            }
            sheet.append_row(self._row_to_values(table, row), value_input_option="RAW")
            return self._values_to_row(table, self._row_to_values(table, row))
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {table}: {e}")

    async def update_row(self, table: str, user_id: str, row_id: UUID, fields: Row) -> Row:
        try:
            sheet = self._client.get_table_sheet(table)
            idx, values = self._locate(sheet, user_id, row_id)

            row = self._values_to_row(table, values)
            changes = {**strip_managed_columns(fields), "updated_at": _now()}
            row.update(changes)

            # Only the patched cells are written
            new_values = self._row_to_values(table, row)
            columns = TABLE_COLUMNS[table]
            for column in changes:
                if column in columns:
                    col_idx = columns.index(column)
                    sheet.update_cell(idx, col_idx + 1, new_values[col_idx])

            return self._values_to_row(table, new_values)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {table}: {e}")

    async def delete_row(self, table: str, user_id: str, row_id: UUID) -> None:
        try:
            sheet = self._client.get_table_sheet(table)
            idx, _ = self._locate(sheet, user_id, row_id)
            sheet.delete_rows(idx)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete from {table}: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Audit trail kept in its own worksheet.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Parse one audit worksheet row."""
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
            user_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append(self, values: list) -> None:
        sheet = self._client.get_audit_sheet()
        sheet.append_row(values, value_input_option="RAW")

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._append(event.to_sheets_row())
            return True
        except Exception:
            # Audit logging must not break the ledger flow; the caller logs locally
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All steps of one user action, oldest first."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]

            events = []
            for row in all_rows:
                if row and len(row) > 7 and row[7] == str(correlation_id):
                    try:
                        events.append(self._row_to_event(row))
                    except Exception:
                        continue

            # Sort chronologically
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        user_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events for a user."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]

            events = []
            for row in all_rows:
                if row and row[0] and len(row) > 4 and row[4] == user_id:
                    try:
                        events.append(self._row_to_event(row))
                    except Exception:
                        continue

            # Sort newest first
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
