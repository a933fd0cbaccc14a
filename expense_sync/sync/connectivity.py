"""
Connectivity Monitor

The process-wide "became online" / "became offline" signal.

The host application reports transitions with set_online() (for example
from OS network events); check() can also derive the state from a probe
such as the remote health endpoint. Listeners run only on real
transitions, concurrently, so a sync triggered by two listeners at once
coalesces into one pass.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional

import structlog

from expense_sync.services.remote.interface import RemoteStore


ConnectivityListener = Callable[[bool], Any]
Probe = Callable[[], Awaitable[bool]]

_logger = structlog.get_logger(__name__)


async def notify_listeners(listeners: list[Callable[..., Any]], *args: Any) -> None:
    """
    Call sync or async listeners concurrently.

    A failing listener is logged; it never stops the others.
    """
    async def call(listener: Callable[..., Any]) -> None:
        try:
            result = listener(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            _logger.error(
                "listener_failed",
                listener=getattr(listener, "__qualname__", repr(listener)),
                error=str(e),
            )

    if listeners:
        await asyncio.gather(*(call(listener) for listener in list(listeners)))


def remote_health_probe(remote: RemoteStore) -> Probe:
    """Build a probe that reports online when the remote health check succeeds."""
    async def probe() -> bool:
        result = await remote.health_check()
        return result.success

    return probe


class ConnectivityMonitor:
    """
    Tracks whether the remote store is reachable.

    State changes only through set_online() and check().
    """

    def __init__(
        self,
        initial_online: bool = True,
        probe: Optional[Probe] = None,
        audit_logger=None,
    ):
        self._online = initial_online
        self._probe = probe
        self._audit_logger = audit_logger
        self._listeners: list[ConnectivityListener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_offline(self) -> bool:
        return not self._online

    def add_listener(self, listener: ConnectivityListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ConnectivityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def set_online(self, online: bool) -> bool:
        """
        Record the current state.

        Returns True if this was a transition (listeners were notified).
        """
        if online == self._online:
            return False
        self._online = online
        _logger.info("connectivity_changed", online=online)
        if self._audit_logger:
            await self._audit_logger.log_connectivity_changed(online)
        await notify_listeners(self._listeners, online)
        return True

    async def mark_online(self) -> bool:
        return await self.set_online(True)

    async def mark_offline(self) -> bool:
        return await self.set_online(False)

    async def check(self) -> bool:
        """Run the probe (if any), update the state and return it."""
        if self._probe is None:
            return self._online
        try:
            online = bool(await self._probe())
        except Exception as e:
            _logger.warning("connectivity_probe_failed", error=str(e))
            online = False
        await self.set_online(online)
        return online
