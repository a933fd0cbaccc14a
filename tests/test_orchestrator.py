"""
End-to-end tests for the wired client: offline writes, reconnect, restart.
"""

import pytest

from conftest import FakeRemoteStore, transaction_payload
from expense_sync.config import Settings
from expense_sync.models.entities import EntityFamily, is_temporary_id
from expense_sync.orchestrator import OfflineFirstClient, create_app_components
from expense_sync.services.storage.local import InMemoryStore


def _client(remote, store, online):
    return create_app_components(
        settings=Settings(),
        remote=remote,
        store=store,
        online=online,
    )


class TestWiring:
    """Tests for component construction."""

    def test_components_share_queue_and_cache(self):
        """Test the facades and engine use the same queue and store."""
        client = _client(FakeRemoteStore(), InMemoryStore(), online=True)

        assert isinstance(client, OfflineFirstClient)
        assert client.transactions._queue is client.queue
        assert client.categories._queue is client.queue
        assert client.engine._queue is client.queue
        assert client.payment_methods._cache is client.cache


class TestOfflineFirstFlow:
    """Tests for the whole offline-then-online lifecycle."""

    @pytest.mark.asyncio
    async def test_offline_create_syncs_on_reconnect(self):
        """Test a record written offline reaches the server once online."""
        remote = FakeRemoteStore()
        client = _client(remote, InMemoryStore(), online=False)
        await client.start()

        created = await client.transactions.create(transaction_payload())
        assert is_temporary_id(created.id)
        assert remote.calls_named("create") == []
        assert (await client.status()).pending == 1

        await client.set_online(True)

        assert len(remote.calls_named("create")) == 1
        assert [t.id for t in client.transactions.items] == ["srv_1"]
        assert (await client.status()).total == 0
        await client.stop()

    @pytest.mark.asyncio
    async def test_restart_keeps_queue_and_cache(self):
        """Test queued writes and cached records survive a restart."""
        remote = FakeRemoteStore()
        store = InMemoryStore()

        first = _client(remote, store, online=False)
        await first.start(auto_sync=False)
        await first.categories.add("Travel", "expense")
        await first.stop()

        second = _client(remote, store, online=False)
        await second.start(auto_sync=False)

        assert second.categories.names() == ["Travel"]
        assert (await second.status()).pending == 1

        await second.set_online(True)

        assert remote.data[EntityFamily.CATEGORY][0]["name"] == "Travel"
        assert (await second.status()).total == 0
        await second.stop()

    @pytest.mark.asyncio
    async def test_sync_now_offline_is_skipped(self):
        """Test a manual sync while offline does nothing."""
        remote = FakeRemoteStore()
        client = _client(remote, InMemoryStore(), online=False)
        await client.start(auto_sync=False)
        await client.transactions.create(transaction_payload())

        result = await client.sync_now()

        assert result.processed_count == 0
        assert result.failed_count == 0
        assert remote.calls_named("create") == []
        await client.stop()

    @pytest.mark.asyncio
    async def test_online_start_reads_remote(self):
        """Test an online cold start loads remote records into the cache."""
        remote = FakeRemoteStore({
            EntityFamily.PAYMENT_METHOD: [
                {"id": "pm-2", "name": "Card", "order": 1},
                {"id": "pm-1", "name": "Cash", "order": 0},
            ]
        })
        client = _client(remote, InMemoryStore(), online=True)

        await client.start(auto_sync=False)

        assert client.payment_methods.names() == ["Cash", "Card"]
        cached = await client.cache.load(EntityFamily.PAYMENT_METHOD)
        assert [r["id"] for r in cached] == ["pm-1", "pm-2"]
        await client.stop()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
