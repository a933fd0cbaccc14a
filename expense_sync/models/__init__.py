"""
Data Models Package

This package contains all Pydantic models used by Expense Sync.
Everything persisted to the durable store conforms to these schemas.
"""

from expense_sync.models.entities import (
    FAMILY_MODELS,
    Category,
    Entity,
    EntityFamily,
    PaymentMethod,
    RenameField,
    Transaction,
    TransactionType,
    is_temporary_id,
    new_temporary_id,
)
from expense_sync.models.queue import (
    DEFAULT_RETRY_BUDGET,
    OperationKind,
    OperationState,
    QueueOperation,
    QueueStatus,
    SyncResult,
)
from expense_sync.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Entity models
    "FAMILY_MODELS",
    "Category",
    "Entity",
    "EntityFamily",
    "PaymentMethod",
    "RenameField",
    "Transaction",
    "TransactionType",
    "is_temporary_id",
    "new_temporary_id",
    # Queue models
    "DEFAULT_RETRY_BUDGET",
    "OperationKind",
    "OperationState",
    "QueueOperation",
    "QueueStatus",
    "SyncResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
