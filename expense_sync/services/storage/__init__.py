"""
Storage Services Package

Provides the durable client-side stores used by the queue and the cache,
plus Google Sheets audit log storage.
"""

from expense_sync.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    KeyValueStore,
    StorageError,
)
from expense_sync.services.storage.local import InMemoryStore, JsonFileStore
from expense_sync.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "KeyValueStore",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # Local stores
    "InMemoryStore",
    "JsonFileStore",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
]
