"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the remote table store.
This allows us to:
1. Swap Google Sheets for a hosted relational database later
2. Use in-memory storage for testing
3. Keep the mirrors decoupled from the storage implementation

The interface mirrors what a hosted table API offers and nothing more:
select rows for a user (ordered), insert a row, patch a row by id,
delete a row by id. Every operation is scoped by user id.

Rows cross this boundary as JSON-compatible dicts. The store owns the
`id`, `user_id`, `created_at` and `updated_at` columns.
"""

from abc import ABC, abstractmethod
from typing import Any, Sequence
from uuid import UUID

from pocket_ledger.models.audit import AuditEvent


# (column, descending)
OrderBy = tuple[str, bool]

Row = dict[str, Any]

STORE_MANAGED_COLUMNS = ("id", "user_id", "created_at", "updated_at")


class TableStorageInterface(ABC):
    """
    Abstract interface for per-user table storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods. None of them retry.
    """

    @abstractmethod
    async def select_rows(
        self,
        table: str,
        user_id: str,
        order_by: Sequence[OrderBy] = (),
    ) -> list[Row]:
        """
        Select all rows owned by a user.

        Args:
            table: Table name
            user_id: Owning user
            order_by: Sort keys, applied left to right

        Returns:
            List of rows

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def insert_row(
        self,
        table: str,
        user_id: str,
        fields: Row,
    ) -> Row:
        """
        Insert a new row.

        Args:
            table: Table name
            user_id: Owning user
            fields: Column values (store-managed columns are ignored)

        Returns:
            The stored row, including id and timestamps

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def update_row(
        self,
        table: str,
        user_id: str,
        row_id: UUID,
        fields: Row,
    ) -> Row:
        """
        Patch a row. Columns not present in `fields` are left untouched.

        Returns:
            The merged row as stored

        Raises:
            NotFoundError: If no row with this id belongs to the user
            StorageError: If the update fails
        """
        pass

    @abstractmethod
    async def delete_row(
        self,
        table: str,
        user_id: str,
        row_id: UUID,
    ) -> None:
        """
        Delete a row.

        Raises:
            NotFoundError: If no row with this id belongs to the user
            StorageError: If the delete fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one add-transaction flow).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        user_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events for a user.

        Returns:
            List of recent events (newest first)
        """
        pass


def strip_managed_columns(fields: Row) -> Row:
    """Drop columns the store owns from a caller-supplied dict."""
    return {k: v for k, v in fields.items() if k not in STORE_MANAGED_COLUMNS}


def sort_rows(rows: list[Row], order_by: Sequence[OrderBy]) -> list[Row]:
    """
    Sort rows by several keys with independent directions.

    Applies the keys right to left so the leftmost key wins; relies on
    sort stability.
    """
    result = list(rows)
    for column, descending in reversed(list(order_by)):
        result.sort(key=lambda row: str(row.get(column) or ""), reverse=descending)
    return result


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
