"""
Storage Services Package

Provides the abstract table-store interface and its implementations.
Google Sheets is the hosted backend; the in-memory backend serves tests
and runs without configuration.
"""

from pocket_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    NotFoundError,
    OrderBy,
    Row,
    StorageError,
    TableStorageInterface,
)
from pocket_ledger.services.storage.google_sheets import (
    TABLE_COLUMNS,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTableStorage,
)
from pocket_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryTableStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "OrderBy",
    "Row",
    "TableStorageInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Google Sheets implementation
    "TABLE_COLUMNS",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTableStorage",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryTableStorage",
]
