"""
Sync Audit Logger

DESIGN DECISION: Every transition of a queued write is logged.
This provides:
1. Complete traceability of offline edits
2. Debugging capability when replay keeps failing
3. A history the status screen can show

The audit logger:
- Is async to not block the sync flow
- Gracefully handles failures (doesn't crash the app if logging fails)
"""

import logging
import sys
from typing import Optional

import structlog

from expense_sync.models.audit import AuditEvent, AuditEventBuilder
from expense_sync.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog's JSON lines to stderr at `level`."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )


class SyncAuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when configured (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("expense_sync.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_operation_queued(
        self,
        operation_id: str,
        kind: str,
        entity_type: str,
        entity_id: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.operation_queued(
            operation_id=operation_id,
            kind=kind,
            entity_type=entity_type,
            entity_id=entity_id,
        ))

    async def log_operation_synced(
        self,
        operation_id: str,
        kind: str,
        entity_type: str,
        entity_id: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.operation_synced(
            operation_id=operation_id,
            kind=kind,
            entity_type=entity_type,
            entity_id=entity_id,
        ))

    async def log_operation_failed(
        self,
        operation_id: str,
        kind: str,
        entity_type: str,
        retry_count: int,
        retry_budget: int,
        error_message: str,
    ) -> None:
        """Log a failed replay; becomes a quarantine event once the budget is spent."""
        await self.log(AuditEventBuilder.operation_failed(
            operation_id=operation_id,
            kind=kind,
            entity_type=entity_type,
            retry_count=retry_count,
            retry_budget=retry_budget,
            error_message=error_message,
        ))

    async def log_id_reconciled(
        self,
        entity_type: str,
        temp_id: str,
        server_id: str,
        rewritten: int,
    ) -> None:
        await self.log(AuditEventBuilder.id_reconciled(
            entity_type=entity_type,
            temp_id=temp_id,
            server_id=server_id,
            rewritten=rewritten,
        ))

    async def log_sync_pass(
        self,
        processed_count: int,
        failed_count: int,
        errors: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.sync_pass_completed(
            processed_count=processed_count,
            failed_count=failed_count,
            errors=errors,
        ))

    async def log_quarantine_retried(self, count: int) -> None:
        await self.log(AuditEventBuilder.quarantine_retried(count))

    async def log_quarantine_cleared(self, count: int) -> None:
        await self.log(AuditEventBuilder.quarantine_cleared(count))

    async def log_direct_write_failed(
        self,
        kind: str,
        entity_type: str,
        entity_id: Optional[str],
        error_kind: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.direct_write_failed(
            kind=kind,
            entity_type=entity_type,
            entity_id=entity_id,
            error_kind=error_kind,
            error_message=error_message,
        ))

    async def log_connectivity_changed(self, online: bool) -> None:
        await self.log(AuditEventBuilder.connectivity_changed(online))

    async def log_persistence_failed(self, key: str, error_message: str) -> None:
        await self.log(AuditEventBuilder.persistence_failed(key, error_message))
