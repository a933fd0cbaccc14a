"""
Mutation Queue

DESIGN DECISION: The queue is an explicitly constructed object that owns
one key of an injected KeyValueStore. Nothing about it is global, so tests
build a fresh queue on an InMemoryStore.

Guarantees:
- Operations are kept in insertion order and never reordered.
  A create followed by an update of the same unconfirmed record relies on it.
- `enqueued_at` is strictly increasing, even if the wall clock stalls or
  steps back.
- Every mutation rewrites the whole list under the store key in one step.
- A failed durable write is logged and swallowed: the operation stays in the
  in-memory queue and is written again with the next successful mutation.
- Once a temporary id has been rewritten to its server id, later appends
  that still name the temporary id are queued under the server id.
"""

import asyncio
import time
from typing import Any, Callable, Iterable, Optional

import structlog
from pydantic import ValidationError

from expense_sync.models.entities import EntityFamily
from expense_sync.models.queue import (
    DEFAULT_RETRY_BUDGET,
    OperationKind,
    QueueOperation,
)
from expense_sync.services.storage.interface import KeyValueStore, StorageError


DEFAULT_QUEUE_KEY = "offline_operations_queue"


class InvalidOperationError(ValueError):
    """The operation can't be queued as described."""
    pass


class MutationQueue:
    """
    Durable, ordered store of pending write operations.

    Also owns retry bookkeeping: an operation is pending while
    retry_count < retry_budget and quarantined once they are equal.
    """

    def __init__(
        self,
        store: KeyValueStore,
        key: str = DEFAULT_QUEUE_KEY,
        retry_budget: int = DEFAULT_RETRY_BUDGET,
        audit_logger=None,
        clock: Callable[[], float] = time.time,
    ):
        if retry_budget < 1:
            raise ValueError("retry_budget must be at least 1")
        self._store = store
        self._key = key
        self._retry_budget = retry_budget
        self._audit_logger = audit_logger
        self._clock = clock
        self._lock = asyncio.Lock()
        self._operations: Optional[list[QueueOperation]] = None
        # temp id -> server id, for writes aimed at a record confirmed mid-flight
        self._reconciled_ids: dict[str, str] = {}
        self._logger = structlog.get_logger(__name__)

    @property
    def retry_budget(self) -> int:
        return self._retry_budget

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def _load(self) -> list[QueueOperation]:
        """Return the in-memory queue, reading the store on first use."""
        if self._operations is not None:
            return self._operations

        operations: list[QueueOperation] = []
        try:
            raw = await self._store.get(self._key)
        except StorageError as e:
            self._logger.error("queue_read_failed", key=self._key, error=str(e))
            raw = None

        for item in raw or []:
            try:
                operations.append(QueueOperation.model_validate(item))
            except ValidationError as e:
                self._logger.error("queue_entry_dropped", key=self._key, error=str(e))

        self._operations = operations
        return operations

    async def _persist(self, operations: list[QueueOperation]) -> bool:
        try:
            await self._store.set(
                self._key,
                [op.model_dump(mode="json") for op in operations],
            )
            return True
        except Exception as e:
            self._logger.error(
                "queue_persist_failed",
                key=self._key,
                size=len(operations),
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_persistence_failed(self._key, str(e))
            return False

    async def reload(self) -> None:
        """Drop the in-memory copy and read the store again."""
        async with self._lock:
            self._operations = None
            await self._load()

    def _next_timestamp(self, operations: list[QueueOperation]) -> float:
        now = self._clock()
        if operations:
            latest = max(op.enqueued_at for op in operations)
            if now <= latest:
                now = latest + 1e-6
        return now

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def append(
        self,
        kind: OperationKind | str,
        entity_family: EntityFamily | str,
        payload: Optional[dict[str, Any]] = None,
        entity_id: Optional[str] = None,
        temp_id: Optional[str] = None,
    ) -> QueueOperation:
        """
        Queue a write for later replay.

        Assigns the id, `enqueued_at` and a fresh retry budget.

        Raises:
            InvalidOperationError: update/delete without an entity_id, or an
                unknown kind/family
        """
        try:
            kind = OperationKind(kind)
            entity_family = EntityFamily(entity_family)
        except ValueError as e:
            raise InvalidOperationError(str(e))

        if kind.requires_entity_id and not entity_id:
            raise InvalidOperationError(
                f"{kind.value} on {entity_family.value} requires an entity_id"
            )

        async with self._lock:
            if entity_id in self._reconciled_ids:
                entity_id = self._reconciled_ids[entity_id]
            operations = await self._load()
            operation = QueueOperation(
                kind=kind,
                entity_family=entity_family,
                entity_id=entity_id,
                temp_id=temp_id,
                payload=dict(payload or {}),
                enqueued_at=self._next_timestamp(operations),
                retry_count=0,
                retry_budget=self._retry_budget,
            )
            operations.append(operation)
            await self._persist(operations)

        self._logger.info(
            "operation_queued",
            operation_id=operation.id,
            kind=kind.value,
            entity_family=entity_family.value,
        )
        if self._audit_logger:
            await self._audit_logger.log_operation_queued(
                operation_id=operation.id,
                kind=kind.value,
                entity_type=entity_family.value,
                entity_id=entity_id or temp_id,
            )
        return operation.model_copy(deep=True)

    async def remove(self, operation_id: str) -> bool:
        """Delete one operation. Returns False if it wasn't queued."""
        async with self._lock:
            operations = await self._load()
            remaining = [op for op in operations if op.id != operation_id]
            if len(remaining) == len(operations):
                return False
            operations[:] = remaining
            await self._persist(operations)
            return True

    async def increment_retry(self, operation_id: str) -> Optional[QueueOperation]:
        """
        Record one failed attempt.

        retry_count never goes past the budget. Returns the updated
        operation, or None if it wasn't queued.
        """
        async with self._lock:
            operations = await self._load()
            for op in operations:
                if op.id == operation_id:
                    op.retry_count = min(op.retry_count + 1, op.retry_budget)
                    await self._persist(operations)
                    return op.model_copy(deep=True)
            return None

    async def reset_retries(self, operation_ids: Optional[Iterable[str]] = None) -> int:
        """
        Give operations a fresh retry budget.

        With no ids, resets every quarantined operation. Returns how many
        operations were reset.
        """
        wanted = set(operation_ids) if operation_ids is not None else None
        async with self._lock:
            operations = await self._load()
            reset = 0
            for op in operations:
                selected = op.id in wanted if wanted is not None else op.is_quarantined
                if selected and op.retry_count:
                    op.retry_count = 0
                    reset += 1
            if reset:
                await self._persist(operations)
            return reset

    async def remove_quarantined(self) -> int:
        """Delete every quarantined operation, leaving pending ones untouched."""
        async with self._lock:
            operations = await self._load()
            remaining = [op for op in operations if op.is_pending]
            removed = len(operations) - len(remaining)
            if removed:
                operations[:] = remaining
                await self._persist(operations)
            return removed

    async def rewrite_entity_id(self, old_id: str, new_id: str) -> int:
        """
        Point queued operations at a new record id.

        Used once the remote store confirms a create that was queued under
        a temporary id. The mapping is remembered, so a write appended later
        under the old id (a caller that hasn't seen the new id yet) is
        queued against the new one. Returns the number of operations
        rewritten.
        """
        async with self._lock:
            self._reconciled_ids[old_id] = new_id
            operations = await self._load()
            rewritten = 0
            for op in operations:
                if op.entity_id == old_id:
                    op.entity_id = new_id
                    rewritten += 1
            if rewritten:
                await self._persist(operations)
            return rewritten

    async def clear(self) -> None:
        async with self._lock:
            operations = await self._load()
            operations.clear()
            await self._persist(operations)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def list_operations(self) -> list[QueueOperation]:
        """Full contents in insertion order (copies)."""
        async with self._lock:
            return [op.model_copy(deep=True) for op in await self._load()]

    async def get(self, operation_id: str) -> Optional[QueueOperation]:
        async with self._lock:
            for op in await self._load():
                if op.id == operation_id:
                    return op.model_copy(deep=True)
            return None

    async def pending(self) -> list[QueueOperation]:
        return [op for op in await self.list_operations() if op.is_pending]

    async def quarantined(self) -> list[QueueOperation]:
        return [op for op in await self.list_operations() if op.is_quarantined]

    async def oldest(self) -> Optional[QueueOperation]:
        operations = await self.list_operations()
        if not operations:
            return None
        return min(operations, key=lambda op: op.enqueued_at)

    async def size(self) -> int:
        async with self._lock:
            return len(await self._load())
