"""
Shared fixtures for the Pocket Ledger test suite.

No real network calls: the table store is in memory and the Google
Sheets client is replaced by a fake holding plain lists of cell values.
"""

from typing import Optional, Sequence
from uuid import UUID, uuid4

import pytest

from pocket_ledger.audit import AuditLogger
from pocket_ledger.auth import AuthUser
from pocket_ledger.models.audit import AUDIT_COLUMNS
from pocket_ledger.orchestrator import LedgerAggregator
from pocket_ledger.services.storage import (
    TABLE_COLUMNS,
    InMemoryAuditStorage,
    InMemoryTableStorage,
    OrderBy,
    Row,
    StorageError,
)
from pocket_ledger.session import LedgerSession


USER_ID = "user-1"
OTHER_USER_ID = "user-2"


class FlakyStorage(InMemoryTableStorage):
    """In-memory store that fails chosen (operation, table) pairs."""

    def __init__(self, tables: Optional[dict[str, list[Row]]] = None):
        super().__init__(tables)
        self.failures: set[tuple[str, str]] = set()
        self.calls: list[tuple[str, str]] = []

    def fail(self, operation: str, table: str) -> None:
        self.failures.add((operation, table))

    def seed(self, table: str, **fields) -> Row:
        """Put a row straight into the store, bypassing failure injection."""
        row = make_row(**fields)
        self._table(table).append(row)
        return row

    def _check(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        if (operation, table) in self.failures:
            raise StorageError(f"{operation} on {table} failed")

    async def select_rows(self, table: str, user_id: str, order_by: Sequence[OrderBy] = ()) -> list[Row]:
        self._check("select", table)
        return await super().select_rows(table, user_id, order_by)

    async def insert_row(self, table: str, user_id: str, fields: Row) -> Row:
        self._check("insert", table)
        return await super().insert_row(table, user_id, fields)

    async def update_row(self, table: str, user_id: str, row_id: UUID, fields: Row) -> Row:
        self._check("update", table)
        return await super().update_row(table, user_id, row_id, fields)

    async def delete_row(self, table: str, user_id: str, row_id: UUID) -> None:
        self._check("delete", table)
        return await super().delete_row(table, user_id, row_id)


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the storage backend."""

    def __init__(self, header: list[str]):
        self.rows: list[list[str]] = [list(header)]

    def get_all_values(self) -> list[list[str]]:
        return [list(r) for r in self.rows]

    def append_row(self, values: list, value_input_option: Optional[str] = None) -> None:
        self.rows.append([str(v) for v in values])

    def update_cell(self, row: int, col: int, value) -> None:
        cells = self.rows[row - 1]
        while len(cells) < col:
            cells.append("")
        cells[col - 1] = str(value)

    def delete_rows(self, start_index: int, end_index: Optional[int] = None) -> None:
        end_index = end_index or start_index
        del self.rows[start_index - 1:end_index]


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient."""

    def __init__(self):
        self.sheets = {table: FakeWorksheet(columns) for table, columns in TABLE_COLUMNS.items()}
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_table_sheet(self, table: str) -> FakeWorksheet:
        if table not in self.sheets:
            raise StorageError(f"Unknown table: {table}")
        return self.sheets[table]

    def get_audit_sheet(self) -> FakeWorksheet:
        return self.audit


def make_row(user_id: str = USER_ID, created_at: str = "2026-01-01T00:00:00.000000", **fields) -> Row:
    """A stored row as the table store would return it."""
    return {
        "id": str(uuid4()),
        "user_id": user_id,
        "created_at": created_at,
        "updated_at": created_at,
        **fields,
    }


@pytest.fixture
def row_factory():
    return make_row


@pytest.fixture
def storage() -> FlakyStorage:
    return FlakyStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def user() -> AuthUser:
    return AuthUser(id=USER_ID, email="ana@example.com")


@pytest.fixture
def session(storage, user, audit_logger) -> LedgerSession:
    return LedgerSession(storage, user, audit_logger)


@pytest.fixture
def aggregator(session, audit_logger) -> LedgerAggregator:
    return LedgerAggregator(session, audit_logger=audit_logger, sync_policy="rollback")


@pytest.fixture
def fake_sheets() -> FakeSheetsClient:
    return FakeSheetsClient()
