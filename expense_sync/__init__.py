"""
Expense Sync - Source Package

The offline-first core of a personal expense tracker: a durable queue of
pending writes, an optimistic local cache of every collection, and a sync
engine that replays queued writes once the device is back online.

DESIGN PRINCIPLES:
1. The UI never waits on the network to reflect a change
2. Nothing the user did offline is silently dropped
3. Failures are retried a bounded number of times, then quarantined
4. Every sync step is auditable
5. Storage and remote backends are swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Sync Team"
