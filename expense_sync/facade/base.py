"""
Offline-First Collection

The per-family facade UI code talks to. Every mutation follows the same
three steps:
1. Apply the change optimistically to the visible collection
2. Persist the snapshot to the optimistic cache
3. Either queue a deferred write or write to the remote store directly

DESIGN DECISION: Failed direct writes are NOT rolled back.
The error reaches the caller, the optimistic state stays visible, and the
next full remote read brings local and remote state back together. This
is an eventual-consistency contract, not a transactional one.

A write is deferred (queued) instead of sent directly when:
- the device is offline
- it targets a record that still has a temporary id
- earlier writes of the same family are still waiting in the queue, so a
  direct write would overtake them
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from expense_sync.models.entities import (
    Entity,
    EntityFamily,
    is_temporary_id,
    new_temporary_id,
)
from expense_sync.models.queue import OperationKind, QueueOperation, SyncResult
from expense_sync.services.remote.interface import (
    RemoteResult,
    RemoteStore,
    raise_for_result,
)
from expense_sync.sync.cache import OptimisticCache
from expense_sync.sync.connectivity import ConnectivityMonitor
from expense_sync.sync.engine import SyncEngine
from expense_sync.sync.queue import MutationQueue


class InvalidEntityError(ValueError):
    """The record (or change) doesn't pass validation."""
    pass


class DuplicateEntityError(ValueError):
    """A record with the same name already exists."""
    pass


class EntityNotFoundError(LookupError):
    """No visible record has the given id or name."""
    pass


# =============================================================================
# QUEUE OVERLAY
# =============================================================================

def rename_field(records: list[dict], field: str, old_value: Any, new_value: Any) -> int:
    """Rewrite `field` in place on every record where it equals old_value."""
    renamed = 0
    for record in records:
        if record.get(field) == old_value:
            record[field] = new_value
            renamed += 1
    return renamed


def apply_operation(records: list[dict], op: QueueOperation) -> list[dict]:
    """
    Replay one queued operation onto a collection snapshot.

    Applying the same operation twice gives the same result, so this is
    safe on snapshots that already contain the optimistic change.
    """
    if op.kind == OperationKind.CREATE:
        if op.temp_id and not any(r.get("id") == op.temp_id for r in records):
            records.append({**op.payload, "id": op.temp_id})
    elif op.kind == OperationKind.UPDATE:
        for record in records:
            if record.get("id") == op.entity_id:
                record.update(op.payload)
    elif op.kind == OperationKind.DELETE:
        records[:] = [r for r in records if r.get("id") != op.entity_id]
    elif op.kind == OperationKind.BULK_RENAME:
        rename_field(
            records,
            op.payload.get("field"),
            op.payload.get("old_value"),
            op.payload.get("new_value"),
        )
    return records


# =============================================================================
# FACADE
# =============================================================================

class OfflineFirstCollection:
    """
    Visible collection of one entity family plus its write paths.

    Records are held as JSON-safe dicts (the same shape the cache stores);
    `items` exposes them as validated models.
    """

    def __init__(
        self,
        family: EntityFamily,
        model: type[Entity],
        remote: RemoteStore,
        queue: MutationQueue,
        cache: OptimisticCache,
        connectivity: ConnectivityMonitor,
        engine: Optional[SyncEngine] = None,
        audit_logger=None,
    ):
        self.family = family
        self.model = model
        self._remote = remote
        self._queue = queue
        self._cache = cache
        self._connectivity = connectivity
        self._engine = engine
        self._audit_logger = audit_logger
        self._logger = structlog.get_logger(__name__).bind(family=family.value)

        self._records: list[dict] = []
        self.last_error: Optional[str] = None

        connectivity.add_listener(self._on_connectivity_change)
        if engine is not None:
            engine.add_id_listener(self._on_id_reconciled)
            engine.add_pass_listener(self._on_sync_pass)

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def is_offline(self) -> bool:
        return self._connectivity.is_offline

    @property
    def items(self) -> list[Entity]:
        models = []
        for record in self._records:
            try:
                models.append(self.model.model_validate(record))
            except ValidationError as e:
                self._logger.warning("record_invalid", record_id=record.get("id"), error=str(e))
        return models

    def records(self) -> list[dict]:
        """Raw snapshot records (copies)."""
        return [dict(record) for record in self._records]

    def get(self, entity_id: str) -> Optional[Entity]:
        index = self._index_of(entity_id)
        if index is None:
            return None
        return self.model.model_validate(self._records[index])

    def __len__(self) -> int:
        return len(self._records)

    async def load(self) -> list[Entity]:
        """
        Cold start.

        Offline: the last persisted snapshot, verbatim.
        Online: a full remote read that replaces the snapshot.
        """
        return await self.refresh()

    async def refresh(self) -> list[Entity]:
        """Re-read the collection; still-queued writes are laid over remote data."""
        if self._connectivity.is_offline:
            self._records = self._sort(await self._cache.load(self.family))
            return self.items

        result = await self._fetch_remote()
        if not result.success:
            self.last_error = result.error or f"Failed to load {self.family.value} records"
            self._logger.warning(
                "remote_read_failed",
                error=self.last_error,
                error_kind=result.error_kind.value if result.error_kind else None,
            )
            self._records = self._sort(await self._cache.load(self.family))
            return self.items

        records = [self._normalize(record) for record in result.data or [] if isinstance(record, dict)]
        for op in await self._queue.list_operations():
            if op.entity_family == self.family:
                apply_operation(records, op)

        self._records = self._sort(records)
        self.last_error = None
        await self._cache.save(self.family, self._records)
        self._logger.info("collection_refreshed", count=len(self._records))
        return self.items

    async def _fetch_remote(self) -> RemoteResult:
        try:
            return await self._remote.fetch_all(self.family)
        except Exception as e:
            return RemoteResult.fail(str(e) or type(e).__name__)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create(self, data: Entity | dict) -> Entity:
        """
        Add a record.

        The record is visible immediately under a temporary id. Once the
        remote store confirms it, the server record takes its place.

        Raises:
            InvalidEntityError: the data doesn't validate
            RemoteError: the direct write failed (the record stays visible)
        """
        entity = self._validate(data)
        self._check_new(entity)

        temp_id = new_temporary_id()
        payload = entity.to_payload()
        record = entity.model_copy(
            update={
                "id": temp_id,
                "created_at": entity.created_at or datetime.now(timezone.utc),
            }
        ).to_record()

        self._records.append(record)
        await self._commit()

        if await self._should_defer():
            await self._queue.append(
                OperationKind.CREATE, self.family, payload=payload, temp_id=temp_id
            )
            return self.model.model_validate(record)

        result = await self._call_remote(self._remote.create(self.family, payload))
        if not result.success:
            await self._direct_write_failed(OperationKind.CREATE, temp_id, result)

        server_record = self._normalize(result.data) if isinstance(result.data, dict) else None
        if server_record and server_record.get("id"):
            self._replace(temp_id, server_record)
            await self._commit()
            return self.model.model_validate(server_record)
        return self.model.model_validate(record)

    async def update(self, entity_id: str, changes: dict) -> Entity:
        """
        Apply a partial change to one record.

        Raises:
            EntityNotFoundError: no visible record has this id
            InvalidEntityError: the changed record doesn't validate
            RemoteError: the direct write failed (the change stays visible)
        """
        index = self._require_index(entity_id)
        changes = {k: v for k, v in changes.items() if k not in ("id", "created_at")}
        updated = self._validate({**self._records[index], **changes}).to_record()
        clean = {key: updated[key] for key in changes if key in updated}

        self._records[index] = updated
        await self._commit()

        if await self._should_defer(entity_id):
            await self._queue.append(
                OperationKind.UPDATE, self.family, payload=clean, entity_id=entity_id
            )
            return self.model.model_validate(updated)

        result = await self._call_remote(self._remote.update(self.family, entity_id, clean))
        if not result.success:
            await self._direct_write_failed(OperationKind.UPDATE, entity_id, result)

        if isinstance(result.data, dict) and result.data.get("id") == entity_id:
            updated = {**updated, **self._normalize(result.data)}
            self._replace(entity_id, updated)
            await self._commit()
        return self.model.model_validate(updated)

    async def delete(self, entity_id: str) -> None:
        """
        Remove a record.

        Raises:
            EntityNotFoundError: no visible record has this id
            RemoteError: the direct write failed (the record stays removed locally)
        """
        index = self._require_index(entity_id)
        del self._records[index]
        await self._commit()

        if await self._should_defer(entity_id):
            await self._queue.append(OperationKind.DELETE, self.family, entity_id=entity_id)
            return

        result = await self._call_remote(self._remote.delete(self.family, entity_id))
        if not result.success:
            await self._direct_write_failed(OperationKind.DELETE, entity_id, result)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _validate(self, data: Entity | dict) -> Entity:
        try:
            if isinstance(data, Entity):
                return self.model.model_validate(data.model_dump())
            return self.model.model_validate(data)
        except ValidationError as e:
            raise InvalidEntityError(str(e)) from e

    def _check_new(self, entity: Entity) -> None:
        """Extra checks before a create. Subclasses raise to refuse it."""
        pass

    def _normalize(self, record: dict) -> dict:
        """Canonical JSON form of a remote record; unparseable ones are kept raw."""
        try:
            return self.model.model_validate(record).to_record()
        except ValidationError as e:
            self._logger.warning("remote_record_invalid", record_id=record.get("id"), error=str(e))
            return dict(record)

    def _sort(self, records: list[dict]) -> list[dict]:
        return records

    def _index_of(self, entity_id: str) -> Optional[int]:
        for index, record in enumerate(self._records):
            if record.get("id") == entity_id:
                return index
        return None

    def _require_index(self, entity_id: str) -> int:
        index = self._index_of(entity_id)
        if index is None:
            raise EntityNotFoundError(f"No {self.family.value} with id {entity_id}")
        return index

    def _replace(self, entity_id: str, record: dict) -> None:
        index = self._index_of(entity_id)
        if index is not None:
            self._records[index] = record

    async def _commit(self) -> None:
        self._records = self._sort(self._records)
        await self._cache.save(self.family, self._records)

    async def _should_defer(self, entity_id: Optional[str] = None) -> bool:
        if self._connectivity.is_offline or is_temporary_id(entity_id):
            return True
        return any(op.entity_family == self.family for op in await self._queue.pending())

    @staticmethod
    async def _call_remote(call) -> RemoteResult:
        try:
            return await call
        except Exception as e:
            return RemoteResult.fail(str(e) or type(e).__name__)

    async def _direct_write_failed(
        self,
        kind: OperationKind,
        entity_id: Optional[str],
        result: RemoteResult,
    ) -> None:
        """Record a failed direct write and raise it as a RemoteError."""
        message = result.error or f"Failed to {kind.value} {self.family.value}"
        self.last_error = message
        self._logger.warning(
            "direct_write_failed",
            kind=kind.value,
            entity_id=entity_id,
            error_kind=result.error_kind.value if result.error_kind else None,
            error=message,
        )
        if self._audit_logger:
            await self._audit_logger.log_direct_write_failed(
                kind=kind.value,
                entity_type=self.family.value,
                entity_id=entity_id,
                error_kind=result.error_kind.value if result.error_kind else "unknown",
                error_message=message,
            )
        raise_for_result(result, message)

    # -------------------------------------------------------------------------
    # Sync events
    # -------------------------------------------------------------------------

    async def _on_connectivity_change(self, online: bool) -> None:
        if not online:
            return
        if self._engine is None:
            await self.refresh()
            return
        # Drain the queue before trusting remote reads again
        result = await self._engine.run_sync_pass()
        if result.processed_count == 0:
            await self.refresh()

    async def _on_sync_pass(self, result: SyncResult) -> None:
        if result.processed_count > 0:
            await self.refresh()

    async def _on_id_reconciled(
        self,
        family: EntityFamily,
        temp_id: str,
        server_id: str,
        server_record: Optional[dict],
    ) -> None:
        if family != self.family:
            return
        index = self._index_of(temp_id)
        if index is None:
            return
        record = dict(self._records[index])
        record["id"] = server_id
        if isinstance(server_record, dict) and server_record.get("created_at"):
            record["created_at"] = server_record["created_at"]
        self._records[index] = record
        await self._commit()
        self._logger.info("temp_id_replaced", temp_id=temp_id, server_id=server_id)
