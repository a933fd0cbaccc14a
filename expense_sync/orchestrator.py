"""
Main Orchestrator for Expense Sync

This module wires the components together:
1. Durable store → mutation queue + optimistic cache
2. Remote store + connectivity → sync engine
3. Everything above → one facade per entity family

DESIGN DECISION: Components are constructed explicitly and passed in.
Nothing here is a module-level singleton, so tests build a complete client
on an in-memory store and a fake remote store.
"""

from typing import Awaitable, Callable, Optional

import structlog

from expense_sync.audit import SyncAuditLogger, configure_logging
from expense_sync.config import Settings, get_settings
from expense_sync.facade import CategoryFacade, PaymentMethodFacade, TransactionFacade
from expense_sync.models.queue import QueueStatus, SyncResult
from expense_sync.services.remote import (
    GoogleSheetsRemoteStore,
    HttpRemoteStore,
    RemoteStore,
)
from expense_sync.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    JsonFileStore,
    KeyValueStore,
)
from expense_sync.sync import (
    ConnectivityMonitor,
    MutationQueue,
    OptimisticCache,
    SyncEngine,
    remote_health_probe,
)


logger = structlog.get_logger(__name__)


class OfflineFirstClient:
    """
    The running client instance.

    Owns the queue and the cache exclusively; two clients must not share
    one durable store.
    """

    def __init__(
        self,
        store: KeyValueStore,
        remote: RemoteStore,
        queue: MutationQueue,
        cache: OptimisticCache,
        connectivity: ConnectivityMonitor,
        engine: SyncEngine,
        transactions: TransactionFacade,
        categories: CategoryFacade,
        payment_methods: PaymentMethodFacade,
        audit_logger: SyncAuditLogger,
    ):
        self.store = store
        self.remote = remote
        self.queue = queue
        self.cache = cache
        self.connectivity = connectivity
        self.engine = engine
        self.transactions = transactions
        self.categories = categories
        self.payment_methods = payment_methods
        self.audit_logger = audit_logger

    async def start(self, auto_sync: bool = True) -> None:
        """Cold start: load every collection, then start the periodic sync."""
        for facade in (self.transactions, self.categories, self.payment_methods):
            await facade.load()
        if auto_sync:
            self.engine.start()
        logger.info(
            "client_started",
            online=self.connectivity.is_online,
            auto_sync=auto_sync,
        )

    async def stop(self) -> None:
        """Stop scheduling passes, let a running one finish, release the remote."""
        self.engine.stop()
        await self.engine.wait_idle()
        await self.remote.close()
        logger.info("client_stopped")

    async def sync_now(self) -> SyncResult:
        return await self.engine.trigger()

    async def status(self) -> QueueStatus:
        return await self.engine.get_status()

    async def set_online(self, online: bool) -> bool:
        return await self.connectivity.set_online(online)

    async def check_connectivity(self) -> bool:
        return await self.connectivity.check()


def create_app_components(
    settings: Optional[Settings] = None,
    remote: Optional[RemoteStore] = None,
    store: Optional[KeyValueStore] = None,
    online: bool = True,
    token_provider: Optional[Callable[[], Awaitable[Optional[str]]]] = None,
    use_audit_sheet: bool = False,
) -> OfflineFirstClient:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use. Defaults to get_settings().
        remote: Remote store. Defaults to the REST API when a token
                provider is given, otherwise Google Sheets.
        store: Durable key-value store. Defaults to JSON files under
               SYNC_DATA_DIR.
        online: Initial connectivity state.
        token_provider: Async callable returning the session token.
        use_audit_sheet: Also persist audit events to Google Sheets.

    Returns:
        A wired, not yet started, OfflineFirstClient
    """
    settings = settings or get_settings()
    sync_settings = settings.sync
    app_settings = settings.app
    configure_logging(app_settings.log_level)
    logger.info("creating_components", environment=app_settings.app_environment, online=online)

    audit_storage = None
    if use_audit_sheet:
        try:
            audit_storage = GoogleSheetsAuditStorage(GoogleSheetsClient())
        except Exception as e:
            # Audit sheet not configured - continue with local logging
            logger.warning("audit_storage_unavailable", error=str(e))
    audit_logger = SyncAuditLogger(audit_storage)

    if remote is None:
        if token_provider is not None:
            remote = HttpRemoteStore(token_provider)
        else:
            remote = GoogleSheetsRemoteStore()

    store = store or JsonFileStore(sync_settings.data_path)

    queue = MutationQueue(
        store,
        key=sync_settings.queue_key,
        retry_budget=sync_settings.retry_budget,
        audit_logger=audit_logger,
    )
    cache = OptimisticCache(store, audit_logger=audit_logger)
    connectivity = ConnectivityMonitor(
        initial_online=online,
        probe=remote_health_probe(remote),
        audit_logger=audit_logger,
    )
    engine = SyncEngine(
        queue,
        remote,
        connectivity,
        interval_seconds=sync_settings.interval_seconds,
        audit_logger=audit_logger,
    )

    facade_args = dict(
        remote=remote,
        queue=queue,
        cache=cache,
        connectivity=connectivity,
        engine=engine,
        audit_logger=audit_logger,
    )

    return OfflineFirstClient(
        store=store,
        remote=remote,
        queue=queue,
        cache=cache,
        connectivity=connectivity,
        engine=engine,
        transactions=TransactionFacade(**facade_args),
        categories=CategoryFacade(**facade_args),
        payment_methods=PaymentMethodFacade(**facade_args),
        audit_logger=audit_logger,
    )
