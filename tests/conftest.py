"""
Shared fixtures for Expense Sync tests.

No real network or disk access: the durable store is an InMemoryStore and
the remote store is a scripted in-memory fake.
"""

import copy
from datetime import datetime, timezone
from typing import Optional

import pytest

from expense_sync.models.entities import EntityFamily, RenameField
from expense_sync.services.remote.interface import (
    RemoteErrorKind,
    RemoteResult,
    RemoteStore,
)
from expense_sync.services.storage.local import InMemoryStore
from expense_sync.sync import ConnectivityMonitor, MutationQueue, OptimisticCache, SyncEngine


class FakeRemoteStore(RemoteStore):
    """
    In-memory remote store that records every call.

    Write calls are numbered from 1; `fail_writes(2, 5)` makes the second
    and fifth write fail with a rejected error.
    """

    def __init__(self, data: Optional[dict[EntityFamily, list[dict]]] = None):
        self.data: dict[EntityFamily, list[dict]] = {family: [] for family in EntityFamily}
        for family, records in (data or {}).items():
            self.data[family] = copy.deepcopy(records)
        self.calls: list[tuple] = []
        self.write_count = 0
        self.failing_writes: dict[int, RemoteResult] = {}
        self.fail_all_writes: Optional[RemoteResult] = None
        self.read_failure: Optional[RemoteResult] = None
        self._next_id = 1

    def fail_writes(self, *numbers: int, error: str = "Rejected by server") -> None:
        for number in numbers:
            self.failing_writes[number] = RemoteResult.fail(error, RemoteErrorKind.REJECTED)

    def calls_named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    def _scripted_failure(self) -> Optional[RemoteResult]:
        self.write_count += 1
        if self.fail_all_writes is not None:
            return self.fail_all_writes
        return self.failing_writes.get(self.write_count)

    def _find(self, family: EntityFamily, entity_id: str) -> Optional[dict]:
        for record in self.data[family]:
            if record.get("id") == entity_id:
                return record
        return None

    async def fetch_all(self, family: EntityFamily) -> RemoteResult:
        self.calls.append(("fetch_all", family))
        if self.read_failure is not None:
            return self.read_failure
        return RemoteResult.ok(copy.deepcopy(self.data[family]))

    async def create(self, family: EntityFamily, payload: dict) -> RemoteResult:
        self.calls.append(("create", family, copy.deepcopy(payload)))
        failure = self._scripted_failure()
        if failure:
            return failure
        record = {
            **payload,
            "id": f"srv_{self._next_id}",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self._next_id += 1
        self.data[family].append(record)
        return RemoteResult.ok(copy.deepcopy(record))

    async def update(self, family: EntityFamily, entity_id: str, changes: dict) -> RemoteResult:
        self.calls.append(("update", family, entity_id, copy.deepcopy(changes)))
        failure = self._scripted_failure()
        if failure:
            return failure
        record = self._find(family, entity_id)
        if record is None:
            return RemoteResult.fail(f"Record not found: {entity_id}")
        record.update(changes)
        return RemoteResult.ok(copy.deepcopy(record))

    async def delete(self, family: EntityFamily, entity_id: str) -> RemoteResult:
        self.calls.append(("delete", family, entity_id))
        failure = self._scripted_failure()
        if failure:
            return failure
        record = self._find(family, entity_id)
        if record is None:
            return RemoteResult.fail(f"Record not found: {entity_id}")
        self.data[family].remove(record)
        return RemoteResult.ok(True)

    async def bulk_update(self, field: str, old_value: str, new_value: str) -> RemoteResult:
        self.calls.append(("bulk_update", field, old_value, new_value))
        failure = self._scripted_failure()
        if failure:
            return failure
        field = RenameField(field).value
        updated = 0
        for record in self.data[EntityFamily.TRANSACTION]:
            if record.get(field) == old_value:
                record[field] = new_value
                updated += 1
        return RemoteResult.ok({"updated": updated})


def transaction_payload(**overrides) -> dict:
    payload = {
        "date": "2024-03-01",
        "type": "expense",
        "amount": "250.00",
        "currency": "INR",
        "category": "Food",
        "description": "Lunch",
        "payment_method": "UPI",
        "fully_settled": True,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def connectivity():
    return ConnectivityMonitor(initial_online=True)


@pytest.fixture
def queue(store):
    return MutationQueue(store)


@pytest.fixture
def cache(store):
    return OptimisticCache(store)


@pytest.fixture
def engine(queue, remote, connectivity):
    return SyncEngine(queue, remote, connectivity, interval_seconds=0.05)


@pytest.fixture
def make_transaction():
    return transaction_payload
