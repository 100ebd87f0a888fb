"""Services package."""

from pocket_ledger.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTableStorage,
    InMemoryAuditStorage,
    InMemoryTableStorage,
    NotFoundError,
    StorageError,
    TableStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTableStorage",
    "InMemoryAuditStorage",
    "InMemoryTableStorage",
    "NotFoundError",
    "StorageError",
    "TableStorageInterface",
]
