"""
Remote Store Package

The contract every authoritative backend implements, the error taxonomy
for remote failures, and the REST and Google Sheets backends.
"""

from expense_sync.services.remote.interface import (
    OfflineError,
    RemoteError,
    RemoteErrorKind,
    RemoteRejectedError,
    RemoteResult,
    RemoteStore,
    UnauthenticatedError,
    UnknownRemoteError,
    raise_for_result,
)
from expense_sync.services.remote.http_client import HttpRemoteStore
from expense_sync.services.remote.google_sheets import GoogleSheetsRemoteStore

__all__ = [
    # Contract
    "RemoteResult",
    "RemoteStore",
    "raise_for_result",
    # Errors
    "OfflineError",
    "RemoteError",
    "RemoteErrorKind",
    "RemoteRejectedError",
    "UnauthenticatedError",
    "UnknownRemoteError",
    # Backends
    "GoogleSheetsRemoteStore",
    "HttpRemoteStore",
]
