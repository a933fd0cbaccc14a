"""
Optimistic Cache

One full-collection snapshot per entity family, persisted as a unit.
Snapshots are replaced wholesale, never merged; that is only safe because
a single running client owns the store.
"""

from typing import Optional

import structlog

from expense_sync.models.entities import EntityFamily
from expense_sync.services.storage.interface import KeyValueStore, StorageError


class OptimisticCache:
    """Last-known collections, used for offline reads and optimistic writes."""

    def __init__(self, store: KeyValueStore, audit_logger=None):
        self._store = store
        self._audit_logger = audit_logger
        self._logger = structlog.get_logger(__name__)

    async def load(self, family: EntityFamily) -> list[dict]:
        """Read a family's snapshot; a missing or unreadable one is empty."""
        try:
            records = await self._store.get(family.cache_key)
        except StorageError as e:
            self._logger.error("cache_read_failed", family=family.value, error=str(e))
            return []
        if not isinstance(records, list):
            if records is not None:
                self._logger.warning("cache_snapshot_malformed", family=family.value)
            return []
        return [record for record in records if isinstance(record, dict)]

    async def save(self, family: EntityFamily, records: list[dict]) -> bool:
        """Replace a family's snapshot. Failures are logged, not raised."""
        try:
            await self._store.set(family.cache_key, list(records))
            return True
        except Exception as e:
            self._logger.error(
                "cache_persist_failed",
                family=family.value,
                size=len(records),
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_persistence_failed(family.cache_key, str(e))
            return False

    async def clear(self, family: Optional[EntityFamily] = None) -> None:
        families = [family] if family else list(EntityFamily)
        for item in families:
            try:
                await self._store.delete(item.cache_key)
            except StorageError as e:
                self._logger.error("cache_clear_failed", family=item.value, error=str(e))
