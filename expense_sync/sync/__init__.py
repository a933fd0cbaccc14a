"""
Offline Sync Package

The durable mutation queue, the optimistic cache, the connectivity signal
and the engine that drains the queue against the remote store.
"""

from expense_sync.sync.cache import OptimisticCache
from expense_sync.sync.connectivity import (
    ConnectivityMonitor,
    notify_listeners,
    remote_health_probe,
)
from expense_sync.sync.engine import DEFAULT_SYNC_INTERVAL_SECONDS, SyncEngine
from expense_sync.sync.queue import (
    DEFAULT_QUEUE_KEY,
    InvalidOperationError,
    MutationQueue,
)

__all__ = [
    # Queue
    "DEFAULT_QUEUE_KEY",
    "InvalidOperationError",
    "MutationQueue",
    # Cache
    "OptimisticCache",
    # Connectivity
    "ConnectivityMonitor",
    "notify_listeners",
    "remote_health_probe",
    # Engine
    "DEFAULT_SYNC_INTERVAL_SECONDS",
    "SyncEngine",
]
