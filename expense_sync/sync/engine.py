"""
Sync Engine

Drains the mutation queue against the remote store.

DESIGN DECISION: A sync pass is best-effort over the whole queue.
- Operations are attempted strictly in FIFO order within a pass
- A failure bumps that operation's retry count and the pass moves on
- An operation that spends its retry budget is quarantined until someone
  explicitly retries or clears it

Three things can start a pass: the periodic timer, a connectivity-regained
event and a manual trigger. They can fire at the same time, so a pass runs
as a single task and every caller that arrives while it is in flight awaits
that same task instead of starting a second one.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional

import structlog

from expense_sync.models.entities import EntityFamily, RenameField
from expense_sync.models.queue import (
    OperationKind,
    QueueOperation,
    QueueStatus,
    SyncResult,
)
from expense_sync.services.remote.interface import (
    RemoteErrorKind,
    RemoteResult,
    RemoteStore,
)
from expense_sync.sync.connectivity import ConnectivityMonitor, notify_listeners
from expense_sync.sync.queue import MutationQueue


DEFAULT_SYNC_INTERVAL_SECONDS = 30.0

Handler = Callable[[QueueOperation], Awaitable[RemoteResult]]
PassListener = Callable[[SyncResult], Any]
IdListener = Callable[[EntityFamily, str, str, Optional[dict]], Any]


class SyncEngine:
    """
    Replays queued writes with bounded retries and failure quarantine.

    Listeners:
    - pass listeners get every completed online SyncResult
    - id listeners get (family, temp_id, server_id, server_record) when a
      queued create is confirmed and its temporary id is replaced
    """

    def __init__(
        self,
        queue: MutationQueue,
        remote: RemoteStore,
        connectivity: ConnectivityMonitor,
        interval_seconds: float = DEFAULT_SYNC_INTERVAL_SECONDS,
        audit_logger=None,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._queue = queue
        self._remote = remote
        self._connectivity = connectivity
        self._interval = interval_seconds
        self._audit_logger = audit_logger
        self._logger = structlog.get_logger(__name__)

        self._dispatch = self._build_dispatch_table()
        self._current_pass: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.Task] = None
        self._pass_listeners: list[PassListener] = []
        self._id_listeners: list[IdListener] = []

        connectivity.add_listener(self._on_connectivity_change)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _build_dispatch_table(self) -> dict[tuple[EntityFamily, OperationKind], Handler]:
        table: dict[tuple[EntityFamily, OperationKind], Handler] = {}
        for family in EntityFamily:
            table[(family, OperationKind.CREATE)] = self._replay_create
            table[(family, OperationKind.UPDATE)] = self._replay_update
            table[(family, OperationKind.DELETE)] = self._replay_delete
        table[(EntityFamily.TRANSACTION, OperationKind.BULK_RENAME)] = self._replay_bulk_rename
        return table

    async def _replay_create(self, op: QueueOperation) -> RemoteResult:
        return await self._remote.create(op.entity_family, op.payload)

    async def _replay_update(self, op: QueueOperation) -> RemoteResult:
        return await self._remote.update(op.entity_family, op.entity_id, op.payload)

    async def _replay_delete(self, op: QueueOperation) -> RemoteResult:
        return await self._remote.delete(op.entity_family, op.entity_id)

    async def _replay_bulk_rename(self, op: QueueOperation) -> RemoteResult:
        try:
            field = RenameField(op.payload["field"]).value
            old_value = op.payload["old_value"]
            new_value = op.payload["new_value"]
        except (KeyError, ValueError) as e:
            return RemoteResult.fail(f"Malformed bulk rename payload: {e}")
        return await self._remote.bulk_update(field, old_value, new_value)

    async def _process(self, op: QueueOperation) -> RemoteResult:
        handler = self._dispatch.get((op.entity_family, op.kind))
        if handler is None:
            return RemoteResult.fail(
                f"Unsupported operation: {op.kind.value} on {op.entity_family.value}"
            )
        try:
            return await handler(op)
        except Exception as e:
            self._logger.error("operation_replay_error", operation_id=op.id, error=str(e))
            return RemoteResult.fail(str(e) or type(e).__name__, RemoteErrorKind.UNKNOWN)

    # -------------------------------------------------------------------------
    # Sync passes
    # -------------------------------------------------------------------------

    @property
    def sync_in_progress(self) -> bool:
        return self._current_pass is not None and not self._current_pass.done()

    async def run_sync_pass(self) -> SyncResult:
        """
        Drain every pending operation once.

        Offline: returns an offline result without touching the queue.
        If a pass is already running, waits for it and returns its result.
        """
        if not self._connectivity.is_online:
            self._logger.debug("sync_pass_skipped", reason="offline")
            return SyncResult.skipped_offline()

        if not self.sync_in_progress:
            self._current_pass = asyncio.ensure_future(self._drain())
        # Shielded so a cancelled caller (e.g. the stopped timer) never
        # cancels a pass other callers are waiting on.
        return await asyncio.shield(self._current_pass)

    async def trigger(self) -> SyncResult:
        """Manual sync, e.g. from a "Sync now" button."""
        return await self.run_sync_pass()

    async def _drain(self) -> SyncResult:
        processed = 0
        failed = 0
        errors: list[str] = []

        for queued in await self._queue.pending():
            # Re-read: an earlier create in this pass may have rewritten its id
            op = await self._queue.get(queued.id)
            if op is None or not op.is_pending:
                continue

            result = await self._process(op)

            if result.success:
                await self._queue.remove(op.id)
                processed += 1
                self._logger.info(
                    "operation_synced", operation_id=op.id, operation=op.describe()
                )
                if self._audit_logger:
                    await self._audit_logger.log_operation_synced(
                        operation_id=op.id,
                        kind=op.kind.value,
                        entity_type=op.entity_family.value,
                        entity_id=op.entity_id,
                    )
                if op.kind == OperationKind.CREATE and op.temp_id:
                    await self._reconcile_temp_id(op, result.data)
            else:
                updated = await self._queue.increment_retry(op.id)
                failed += 1
                message = result.error or "Unknown error"
                errors.append(f"Operation {op.id}: {message}")
                retry_count = updated.retry_count if updated else op.retry_count + 1
                self._logger.warning(
                    "operation_failed",
                    operation_id=op.id,
                    operation=op.describe(),
                    retry_count=retry_count,
                    retry_budget=op.retry_budget,
                    error=message,
                )
                if self._audit_logger:
                    await self._audit_logger.log_operation_failed(
                        operation_id=op.id,
                        kind=op.kind.value,
                        entity_type=op.entity_family.value,
                        retry_count=retry_count,
                        retry_budget=op.retry_budget,
                        error_message=message,
                    )

        result = SyncResult(
            success=failed == 0,
            processed_count=processed,
            failed_count=failed,
            errors=errors,
        )
        self._logger.info(
            "sync_pass_completed",
            processed_count=processed,
            failed_count=failed,
        )
        if self._audit_logger and (processed or failed):
            await self._audit_logger.log_sync_pass(processed, failed, errors)
        await notify_listeners(self._pass_listeners, result)
        return result

    async def _reconcile_temp_id(self, op: QueueOperation, data: Any) -> None:
        """Point later operations at the id the remote store assigned."""
        server_id = data.get("id") if isinstance(data, dict) else None
        if not server_id or server_id == op.temp_id:
            return
        rewritten = await self._queue.rewrite_entity_id(op.temp_id, str(server_id))
        self._logger.info(
            "temp_id_reconciled",
            temp_id=op.temp_id,
            server_id=server_id,
            rewritten=rewritten,
        )
        if self._audit_logger:
            await self._audit_logger.log_id_reconciled(
                entity_type=op.entity_family.value,
                temp_id=op.temp_id,
                server_id=str(server_id),
                rewritten=rewritten,
            )
        await notify_listeners(
            self._id_listeners, op.entity_family, op.temp_id, str(server_id), data
        )

    async def wait_idle(self) -> None:
        """Wait for an in-flight pass, if any, to finish."""
        if self.sync_in_progress:
            await asyncio.shield(self._current_pass)

    # -------------------------------------------------------------------------
    # Quarantine
    # -------------------------------------------------------------------------

    async def retry_all_quarantined(self) -> SyncResult:
        """
        Give every quarantined operation a fresh retry budget, then sync.

        A pass already in flight is allowed to finish first so the reset
        operations are picked up by the new pass.
        """
        await self.wait_idle()
        count = await self._queue.reset_retries()
        self._logger.info("quarantine_retried", count=count)
        if self._audit_logger:
            await self._audit_logger.log_quarantine_retried(count)
        return await self.run_sync_pass()

    async def clear_quarantined(self) -> int:
        """Discard every quarantined operation. Returns how many were removed."""
        count = await self._queue.remove_quarantined()
        self._logger.warning("quarantine_cleared", count=count)
        if self._audit_logger:
            await self._audit_logger.log_quarantine_cleared(count)
        return count

    async def get_status(self) -> QueueStatus:
        """Queue counts plus the oldest still-pending operation and its age."""
        operations = await self._queue.list_operations()
        pending = [op for op in operations if op.is_pending]
        oldest = min(pending, key=lambda op: op.enqueued_at) if pending else None
        return QueueStatus(
            total=len(operations),
            pending=len(pending),
            quarantined=len(operations) - len(pending),
            oldest=oldest,
            oldest_age_seconds=max(0.0, time.time() - oldest.enqueued_at) if oldest else None,
            sync_in_progress=self.sync_in_progress,
        )

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self) -> None:
        """Start the periodic timer. Calling it again while running is a no-op."""
        if self.is_running:
            return
        self._timer = asyncio.get_running_loop().create_task(self._periodic())
        self._logger.info("auto_sync_started", interval_seconds=self._interval)

    def stop(self) -> None:
        """Stop future scheduled passes. A pass already running completes."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            self._logger.info("auto_sync_stopped")

    async def _periodic(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if not self._connectivity.is_online:
                continue
            try:
                await self.run_sync_pass()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._logger.error("auto_sync_failed", error=str(e))

    async def _on_connectivity_change(self, online: bool) -> None:
        if online:
            self._logger.info("device_online_syncing")
            await self.run_sync_pass()
        else:
            self._logger.info("device_offline_queueing")

    def add_pass_listener(self, listener: PassListener) -> None:
        if listener not in self._pass_listeners:
            self._pass_listeners.append(listener)

    def add_id_listener(self, listener: IdListener) -> None:
        if listener not in self._id_listeners:
            self._id_listeners.append(listener)

    def detach(self) -> None:
        """Stop the timer and stop listening to connectivity."""
        self.stop()
        self._connectivity.remove_listener(self._on_connectivity_change)
