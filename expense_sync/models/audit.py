"""
Audit Models for Expense Sync

Every significant sync step is logged for audit purposes.
This provides:
1. Traceability of every write the user made while offline
2. Debugging information when replay fails
3. A record of administrative actions on quarantined operations

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every transition of a queued operation has its own event type.
    """
    # Queue
    OPERATION_QUEUED = "operation_queued"
    OPERATION_SYNCED = "operation_synced"
    OPERATION_FAILED = "operation_failed"
    OPERATION_QUARANTINED = "operation_quarantined"
    OPERATION_ID_RECONCILED = "operation_id_reconciled"

    # Sync passes
    SYNC_PASS_COMPLETED = "sync_pass_completed"

    # Administrative actions
    QUARANTINE_RETRIED = "quarantine_retried"
    QUARANTINE_CLEARED = "quarantine_cleared"

    # Direct (online) writes
    DIRECT_WRITE_FAILED = "direct_write_failed"

    # Environment
    CONNECTIVITY_CHANGED = "connectivity_changed"
    PERSISTENCE_FAILED = "persistence_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Entity family (e.g., 'transaction', 'category')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the record this event relates to"
    )
    operation_id: Optional[str] = Field(
        default=None,
        description="ID of the queued operation, if any"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "operation_id": self.operation_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         operation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            self.operation_id or "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.operation_queued(operation)
        event = AuditEventBuilder.sync_pass_completed(result)
    """

    @staticmethod
    def operation_queued(
        operation_id: str,
        kind: str,
        entity_type: str,
        entity_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_QUEUED,
            entity_type=entity_type,
            entity_id=entity_id,
            operation_id=operation_id,
            description=f"Queued {kind} for {entity_type}",
            details={"kind": kind},
        )

    @staticmethod
    def operation_synced(
        operation_id: str,
        kind: str,
        entity_type: str,
        entity_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_SYNCED,
            entity_type=entity_type,
            entity_id=entity_id,
            operation_id=operation_id,
            description=f"Synced {kind} for {entity_type}",
            details={"kind": kind},
        )

    @staticmethod
    def operation_failed(
        operation_id: str,
        kind: str,
        entity_type: str,
        retry_count: int,
        retry_budget: int,
        error_message: str,
    ) -> AuditEvent:
        quarantined = retry_count >= retry_budget
        return AuditEvent(
            event_type=(
                AuditEventType.OPERATION_QUARANTINED
                if quarantined
                else AuditEventType.OPERATION_FAILED
            ),
            severity=AuditSeverity.ERROR if quarantined else AuditSeverity.WARNING,
            entity_type=entity_type,
            operation_id=operation_id,
            description=(
                f"{kind} for {entity_type} quarantined after {retry_count} attempts"
                if quarantined
                else f"{kind} for {entity_type} failed (attempt {retry_count}/{retry_budget})"
            ),
            details={
                "kind": kind,
                "retry_count": retry_count,
                "retry_budget": retry_budget,
            },
            error_message=error_message,
        )

    @staticmethod
    def id_reconciled(
        entity_type: str,
        temp_id: str,
        server_id: str,
        rewritten: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_ID_RECONCILED,
            entity_type=entity_type,
            entity_id=server_id,
            description=f"Temporary id replaced in {rewritten} queued operations",
            details={
                "temp_id": temp_id,
                "server_id": server_id,
                "rewritten_operations": rewritten,
            },
        )

    @staticmethod
    def sync_pass_completed(
        processed_count: int,
        failed_count: int,
        errors: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_PASS_COMPLETED,
            severity=AuditSeverity.WARNING if failed_count else AuditSeverity.INFO,
            description=f"Sync pass: {processed_count} synced, {failed_count} failed",
            details={
                "processed_count": processed_count,
                "failed_count": failed_count,
                "errors": errors,
            },
        )

    @staticmethod
    def quarantine_retried(count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUARANTINE_RETRIED,
            description=f"Reset retry budget of {count} quarantined operations",
            details={"count": count},
        )

    @staticmethod
    def quarantine_cleared(count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUARANTINE_CLEARED,
            severity=AuditSeverity.WARNING,
            description=f"Discarded {count} quarantined operations",
            details={"count": count},
        )

    @staticmethod
    def direct_write_failed(
        kind: str,
        entity_type: str,
        entity_id: Optional[str],
        error_kind: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DIRECT_WRITE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"Direct {kind} for {entity_type} rejected ({error_kind})",
            details={"kind": kind, "error_kind": error_kind},
            error_message=error_message,
        )

    @staticmethod
    def connectivity_changed(online: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONNECTIVITY_CHANGED,
            description="Device came online" if online else "Device went offline",
            details={"online": online},
        )

    @staticmethod
    def persistence_failed(key: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            description=f"Failed to persist {key}",
            details={"key": key},
            error_message=error_message,
        )
