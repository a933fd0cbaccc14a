"""
Transaction Facade

Transactions plus the one cross-record write the tracker has: renaming a
category or payment method on every transaction that uses it.
"""

from typing import Optional

from expense_sync.models.entities import (
    EntityFamily,
    RenameField,
    Transaction,
    TransactionType,
)
from expense_sync.models.queue import OperationKind
from expense_sync.services.remote.interface import RemoteStore
from expense_sync.sync.cache import OptimisticCache
from expense_sync.sync.connectivity import ConnectivityMonitor
from expense_sync.sync.engine import SyncEngine
from expense_sync.sync.queue import MutationQueue
from expense_sync.facade.base import (
    InvalidEntityError,
    OfflineFirstCollection,
    rename_field,
)


class TransactionFacade(OfflineFirstCollection):
    """Offline-first access to transactions, newest first."""

    def __init__(
        self,
        remote: RemoteStore,
        queue: MutationQueue,
        cache: OptimisticCache,
        connectivity: ConnectivityMonitor,
        engine: Optional[SyncEngine] = None,
        audit_logger=None,
    ):
        super().__init__(
            EntityFamily.TRANSACTION,
            Transaction,
            remote,
            queue,
            cache,
            connectivity,
            engine=engine,
            audit_logger=audit_logger,
        )

    def _sort(self, records: list[dict]) -> list[dict]:
        return sorted(
            records,
            key=lambda r: (str(r.get("date") or ""), str(r.get("created_at") or "")),
            reverse=True,
        )

    def by_type(self, transaction_type: TransactionType) -> list[Transaction]:
        return [t for t in self.items if t.type == transaction_type]

    async def bulk_rename(self, field: RenameField | str, old_value: str, new_value: str) -> int:
        """
        Rename a category or payment method on every transaction using it.

        One local pass, then one remote bulk update (or one queued
        bulk_rename operation), never one call per row.

        Returns:
            Number of visible transactions that were rewritten

        Raises:
            InvalidEntityError: unknown field or empty new value
            RemoteError: the direct bulk update failed (local rename stays)
        """
        try:
            field = RenameField(field)
        except ValueError as e:
            raise InvalidEntityError(f"Cannot bulk rename field: {field}") from e
        new_value = (new_value or "").strip()
        if not new_value:
            raise InvalidEntityError("New value cannot be empty")
        if old_value == new_value:
            return 0

        renamed = rename_field(self._records, field.value, old_value, new_value)
        await self._commit()

        if await self._should_defer():
            await self._queue.append(
                OperationKind.BULK_RENAME,
                self.family,
                payload={
                    "field": field.value,
                    "old_value": old_value,
                    "new_value": new_value,
                },
            )
            return renamed

        result = await self._call_remote(
            self._remote.bulk_update(field.value, old_value, new_value)
        )
        if not result.success:
            await self._direct_write_failed(OperationKind.BULK_RENAME, None, result)
        self._logger.info(
            "bulk_rename_applied",
            field=field.value,
            old_value=old_value,
            new_value=new_value,
            renamed=renamed,
        )
        return renamed
