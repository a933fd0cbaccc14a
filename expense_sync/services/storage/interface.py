"""
Abstract Storage Interfaces

DESIGN DECISION: The queue and the cache never touch files directly.
They talk to a small key-value interface. This allows us to:
1. Use a JSON file store on a real device
2. Use in-memory storage for deterministic tests
3. Keep the queue and cache logic decoupled from where bytes live

Each key holds one whole JSON document (the full queue, or one full
collection snapshot) and is replaced atomically on every write.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from expense_sync.models.audit import AuditEvent


class KeyValueStore(ABC):
    """
    Durable client-side store.

    Values are JSON-compatible Python objects. `set` replaces the whole
    value under the key in one step: readers see either the old value or
    the new one, never a mix.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """
        Read the value stored under `key`.

        Returns:
            The decoded value, or None if the key was never written

        Raises:
            StorageError: If the value exists but cannot be read or decoded
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """
        Atomically replace the value stored under `key`.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove `key`. Deleting a missing key is not an error."""
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
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass

    @abstractmethod
    async def get_events_by_operation(
        self,
        operation_id: str,
    ) -> list[AuditEvent]:
        """
        Get every event recorded for one queued operation.

        Returns:
            List of events in chronological order
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
