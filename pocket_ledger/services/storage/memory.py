"""
In-Memory Storage Implementation

Same semantics as the remote backends, held in a dict of tables.
Used by the test suite and as the fallback backend when Google Sheets
is not configured. Nothing survives the process.
"""

import copy
from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID, uuid4

from pocket_ledger.models.audit import AuditEvent
from pocket_ledger.services.storage.interface import (
    AuditStorageInterface,
    NotFoundError,
    OrderBy,
    Row,
    TableStorageInterface,
    sort_rows,
    strip_managed_columns,
)


def _now() -> str:
    return datetime.utcnow().isoformat(timespec="microseconds")


class InMemoryTableStorage(TableStorageInterface):
    """Dict-backed table store. Rows are copied in and out."""

    def __init__(self, tables: Optional[dict[str, list[Row]]] = None):
        self._tables: dict[str, list[Row]] = tables if tables is not None else {}

    def _table(self, table: str) -> list[Row]:
        return self._tables.setdefault(table, [])

    def _find(self, table: str, user_id: str, row_id: UUID) -> Row:
        for row in self._table(table):
            if row["id"] == str(row_id) and row["user_id"] == user_id:
                return row
        raise NotFoundError(f"{table} row not found: {row_id}")

    async def select_rows(
        self,
        table: str,
        user_id: str,
        order_by: Sequence[OrderBy] = (),
    ) -> list[Row]:
        rows = [copy.deepcopy(r) for r in self._table(table) if r["user_id"] == user_id]
        return sort_rows(rows, order_by)

    async def insert_row(self, table: str, user_id: str, fields: Row) -> Row:
        timestamp = _now()
        row = {
            **strip_managed_columns(fields),
            "id": str(uuid4()),
            "user_id": user_id,
            "created_at": timestamp,
            "updated_at": timestamp,
        }
        self._table(table).append(row)
        return copy.deepcopy(row)

    async def update_row(self, table: str, user_id: str, row_id: UUID, fields: Row) -> Row:
        row = self._find(table, user_id, row_id)
        row.update(strip_managed_columns(fields))
        row["updated_at"] = _now()
        return copy.deepcopy(row)

    async def delete_row(self, table: str, user_id: str, row_id: UUID) -> None:
        row = self._find(table, user_id, row_id)
        self._table(table).remove(row)

    def all_rows(self, table: str) -> list[Row]:
        """Every row of a table regardless of owner."""
        return [copy.deepcopy(r) for r in self._table(table)]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, user_id: str, limit: int = 100) -> list[AuditEvent]:
        events = [e for e in self._events if e.user_id == user_id]
        return sorted(events, key=lambda e: e.timestamp, reverse=True)[:limit]
