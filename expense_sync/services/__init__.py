"""Services package."""

from expense_sync.services.remote import (
    GoogleSheetsRemoteStore,
    HttpRemoteStore,
    OfflineError,
    RemoteError,
    RemoteErrorKind,
    RemoteRejectedError,
    RemoteResult,
    RemoteStore,
    UnauthenticatedError,
    UnknownRemoteError,
)
from expense_sync.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryStore,
    JsonFileStore,
    KeyValueStore,
    StorageError,
)

__all__ = [
    # Remote store
    "GoogleSheetsRemoteStore",
    "HttpRemoteStore",
    "OfflineError",
    "RemoteError",
    "RemoteErrorKind",
    "RemoteRejectedError",
    "RemoteResult",
    "RemoteStore",
    "UnauthenticatedError",
    "UnknownRemoteError",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueStore",
    "StorageError",
]
