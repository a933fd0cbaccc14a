"""
Tests for the durable mutation queue.
"""

import pytest

from expense_sync.models.entities import EntityFamily
from expense_sync.models.queue import OperationKind
from expense_sync.services.storage.interface import KeyValueStore, StorageError
from expense_sync.services.storage.local import InMemoryStore
from expense_sync.sync.queue import DEFAULT_QUEUE_KEY, InvalidOperationError, MutationQueue


class StepClock:
    """Clock returning queued values, then repeating the last one."""

    def __init__(self, *values: float):
        self._values = list(values)

    def __call__(self) -> float:
        if len(self._values) > 1:
            return self._values.pop(0)
        return self._values[0]


class FailingWriteStore(InMemoryStore):
    """Store whose writes fail until `healthy` is set."""

    def __init__(self):
        super().__init__()
        self.healthy = False

    async def set(self, key, value):
        if not self.healthy:
            raise StorageError("disk full")
        await super().set(key, value)


async def _fill(queue: MutationQueue, count: int) -> list:
    ops = []
    for index in range(count):
        ops.append(await queue.append(
            OperationKind.UPDATE,
            EntityFamily.TRANSACTION,
            payload={"amount": f"{index + 1}.00"},
            entity_id=f"srv_{index + 1}",
        ))
    return ops


class TestAppend:
    """Tests for enqueueing operations."""

    @pytest.mark.asyncio
    async def test_append_grows_queue_by_one(self, queue):
        """Test every valid append adds exactly one fresh entry."""
        for expected in range(1, 4):
            op = await queue.append(
                OperationKind.CREATE,
                EntityFamily.TRANSACTION,
                payload={"amount": "10.00"},
            )
            assert await queue.size() == expected
            assert op.retry_count == 0
            assert op.retry_budget == 3

    @pytest.mark.asyncio
    async def test_append_accepts_plain_strings(self, queue):
        """Test kind and family can be given by value."""
        op = await queue.append("delete", "category", entity_id="cat-1")
        assert op.kind == OperationKind.DELETE
        assert op.entity_family == EntityFamily.CATEGORY

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", [OperationKind.UPDATE, OperationKind.DELETE])
    async def test_update_and_delete_need_entity_id(self, queue, kind):
        """Test update/delete without an entity id are refused."""
        with pytest.raises(InvalidOperationError):
            await queue.append(kind, EntityFamily.TRANSACTION, payload={})
        assert await queue.size() == 0

    @pytest.mark.asyncio
    async def test_unknown_kind_rejected(self, queue):
        """Test unknown operation kinds are refused."""
        with pytest.raises(InvalidOperationError):
            await queue.append("upsert", EntityFamily.TRANSACTION)

    @pytest.mark.asyncio
    async def test_enqueued_at_strictly_increasing(self, store):
        """Test FIFO timestamps never repeat, even with a stalled clock."""
        queue = MutationQueue(store, clock=StepClock(100.0, 100.0, 99.0))
        ops = [
            await queue.append(OperationKind.CREATE, EntityFamily.TRANSACTION)
            for _ in range(3)
        ]
        stamps = [op.enqueued_at for op in ops]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == 3

    @pytest.mark.asyncio
    async def test_append_returns_copy(self, queue):
        """Test mutating the returned operation doesn't touch the queue."""
        op = await queue.append(
            OperationKind.CREATE, EntityFamily.TRANSACTION, payload={"amount": "1.00"}
        )
        op.payload["amount"] = "999.00"
        stored = await queue.get(op.id)
        assert stored.payload["amount"] == "1.00"


class TestDurability:
    """Tests for persistence through the key-value store."""

    @pytest.mark.asyncio
    async def test_queue_survives_restart(self, store):
        """Test a new queue on the same store sees the same operations in order."""
        first = MutationQueue(store)
        ops = await _fill(first, 3)

        second = MutationQueue(store)
        restored = await second.list_operations()
        assert [op.id for op in restored] == [op.id for op in ops]

    @pytest.mark.asyncio
    async def test_whole_list_under_one_key(self, store, queue):
        """Test the queue is stored as one list under the well-known key."""
        await _fill(queue, 2)
        raw = await store.get(DEFAULT_QUEUE_KEY)
        assert isinstance(raw, list)
        assert len(raw) == 2

    @pytest.mark.asyncio
    async def test_persistence_failure_is_swallowed(self):
        """Test a failing durable write never reaches the caller."""
        store = FailingWriteStore()
        queue = MutationQueue(store)

        op = await queue.append(OperationKind.CREATE, EntityFamily.TRANSACTION)

        assert op.id
        assert await queue.size() == 1
        assert await store.get(DEFAULT_QUEUE_KEY) is None

    @pytest.mark.asyncio
    async def test_failed_write_retried_on_next_mutation(self):
        """Test an unpersisted operation is written with the next mutation."""
        store = FailingWriteStore()
        queue = MutationQueue(store)
        await queue.append(OperationKind.CREATE, EntityFamily.TRANSACTION)

        store.healthy = True
        await queue.append(OperationKind.CREATE, EntityFamily.CATEGORY)

        assert len(await store.get(DEFAULT_QUEUE_KEY)) == 2

    @pytest.mark.asyncio
    async def test_corrupt_entries_dropped_on_load(self):
        """Test unreadable entries don't take the whole queue down."""
        store = InMemoryStore({
            DEFAULT_QUEUE_KEY: [
                {"kind": "nonsense"},
                {
                    "id": "op-1",
                    "kind": "create",
                    "entity_family": "transaction",
                    "enqueued_at": 1.0,
                },
            ]
        })
        queue = MutationQueue(store)
        ops = await queue.list_operations()
        assert [op.id for op in ops] == ["op-1"]

    @pytest.mark.asyncio
    async def test_reload_reads_store_again(self, store, queue):
        """Test reload picks up changes written by someone else."""
        await _fill(queue, 1)
        await store.set(DEFAULT_QUEUE_KEY, [])
        assert await queue.size() == 1

        await queue.reload()
        assert await queue.size() == 0


class TestRetryBookkeeping:
    """Tests for retry counting and quarantine."""

    @pytest.mark.asyncio
    async def test_increment_retry(self, queue):
        """Test a failed attempt bumps the counter."""
        [op] = await _fill(queue, 1)
        updated = await queue.increment_retry(op.id)
        assert updated.retry_count == 1
        assert (await queue.get(op.id)).retry_count == 1

    @pytest.mark.asyncio
    async def test_increment_unknown_operation(self, queue):
        """Test incrementing a missing operation returns None."""
        assert await queue.increment_retry("missing") is None

    @pytest.mark.asyncio
    async def test_quarantine_at_budget(self, queue):
        """Test an operation at its budget is quarantined, not pending."""
        [op] = await _fill(queue, 1)
        for _ in range(3):
            await queue.increment_retry(op.id)

        assert [q.id for q in await queue.quarantined()] == [op.id]
        assert await queue.pending() == []

    @pytest.mark.asyncio
    async def test_retry_count_capped_at_budget(self, queue):
        """Test retry_count never goes past the budget."""
        [op] = await _fill(queue, 1)
        for _ in range(5):
            await queue.increment_retry(op.id)
        assert (await queue.get(op.id)).retry_count == 3

    @pytest.mark.asyncio
    async def test_custom_budget(self, store):
        """Test a queue with a budget of 1 quarantines on first failure."""
        queue = MutationQueue(store, retry_budget=1)
        [op] = await _fill(queue, 1)
        await queue.increment_retry(op.id)
        assert (await queue.get(op.id)).is_quarantined

    def test_budget_must_be_positive(self, store):
        """Test a zero budget is refused."""
        with pytest.raises(ValueError):
            MutationQueue(store, retry_budget=0)

    @pytest.mark.asyncio
    async def test_reset_retries_defaults_to_quarantined(self, queue):
        """Test reset_retries() only touches quarantined operations."""
        quarantined, pending = await _fill(queue, 2)
        for _ in range(3):
            await queue.increment_retry(quarantined.id)
        await queue.increment_retry(pending.id)

        assert await queue.reset_retries() == 1
        assert (await queue.get(quarantined.id)).retry_count == 0
        assert (await queue.get(pending.id)).retry_count == 1

    @pytest.mark.asyncio
    async def test_remove_quarantined_leaves_pending(self, queue):
        """Test clearing quarantine removes exactly the quarantined operations."""
        ops = await _fill(queue, 4)
        for op in ops[:2]:
            for _ in range(3):
                await queue.increment_retry(op.id)
        await queue.increment_retry(ops[2].id)

        assert await queue.remove_quarantined() == 2
        remaining = await queue.list_operations()
        assert [op.id for op in remaining] == [ops[2].id, ops[3].id]
        assert remaining[0].retry_count == 1


class TestQueries:
    """Tests for read access and removal."""

    @pytest.mark.asyncio
    async def test_list_in_insertion_order(self, queue):
        """Test list_operations keeps FIFO order."""
        ops = await _fill(queue, 5)
        assert [op.id for op in await queue.list_operations()] == [op.id for op in ops]

    @pytest.mark.asyncio
    async def test_remove(self, queue):
        """Test remove deletes one operation and reports it."""
        ops = await _fill(queue, 3)
        assert await queue.remove(ops[1].id)
        assert not await queue.remove(ops[1].id)
        assert [op.id for op in await queue.list_operations()] == [ops[0].id, ops[2].id]

    @pytest.mark.asyncio
    async def test_clear(self, store, queue):
        """Test clear empties the queue and the durable copy."""
        await _fill(queue, 3)
        await queue.clear()
        assert await queue.size() == 0
        assert await store.get(DEFAULT_QUEUE_KEY) == []

    @pytest.mark.asyncio
    async def test_oldest_of_empty_queue(self, queue):
        """Test oldest() on an empty queue is None."""
        assert await queue.oldest() is None

    @pytest.mark.asyncio
    async def test_oldest_is_minimum_enqueued_at(self):
        """Test oldest() picks the smallest enqueued_at, not the first entry."""
        store = InMemoryStore({
            DEFAULT_QUEUE_KEY: [
                {"id": f"op-{t}", "kind": "create", "entity_family": "transaction", "enqueued_at": t}
                for t in (5.0, 2.0, 9.0)
            ]
        })
        queue = MutationQueue(store)
        oldest = await queue.oldest()
        assert oldest.id == "op-2.0"
        assert oldest.enqueued_at == 2.0

    @pytest.mark.asyncio
    async def test_rewrite_entity_id(self, queue):
        """Test operations queued against a temporary id are re-pointed."""
        await queue.append(
            OperationKind.CREATE, EntityFamily.TRANSACTION, payload={}, temp_id="temp_a"
        )
        update = await queue.append(
            OperationKind.UPDATE, EntityFamily.TRANSACTION, payload={}, entity_id="temp_a"
        )
        other = await queue.append(
            OperationKind.DELETE, EntityFamily.TRANSACTION, entity_id="srv_9"
        )

        assert await queue.rewrite_entity_id("temp_a", "srv_1") == 1
        assert (await queue.get(update.id)).entity_id == "srv_1"
        assert (await queue.get(other.id)).entity_id == "srv_9"

    @pytest.mark.asyncio
    async def test_append_after_rewrite_uses_server_id(self, queue):
        """Test a write still naming a reconciled temp id is queued under the server id."""
        await queue.rewrite_entity_id("temp_a", "srv_1")

        late = await queue.append(
            OperationKind.UPDATE, EntityFamily.TRANSACTION, payload={}, entity_id="temp_a"
        )
        unrelated = await queue.append(
            OperationKind.DELETE, EntityFamily.TRANSACTION, entity_id="temp_b"
        )

        assert late.entity_id == "srv_1"
        assert unrelated.entity_id == "temp_b"


def test_store_interface_is_abstract():
    """Test KeyValueStore can't be instantiated directly."""
    with pytest.raises(TypeError):
        KeyValueStore()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
