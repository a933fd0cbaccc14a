"""
Queue Models for Expense Sync

A QueueOperation is a write the user already sees locally but the remote
store hasn't confirmed yet. The queue is the only record of that intent,
so these models are persisted verbatim in the durable store.

Lifecycle of one operation:

    PENDING  --(remote success)-->  removed
    PENDING  --(failure, retries left)-->  PENDING (retry_count + 1)
    PENDING  --(failure, budget spent)-->  QUARANTINED
    QUARANTINED  --(retry all)-->  PENDING (retry_count = 0)
    QUARANTINED  --(clear)-->  removed
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from expense_sync.models.entities import EntityFamily


DEFAULT_RETRY_BUDGET = 3


class OperationKind(str, Enum):
    """Kinds of deferred writes."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    BULK_RENAME = "bulk_rename"

    @property
    def requires_entity_id(self) -> bool:
        return self in (OperationKind.UPDATE, OperationKind.DELETE)


class OperationState(str, Enum):
    PENDING = "pending"
    QUARANTINED = "quarantined"


class QueueOperation(BaseModel):
    """
    A pending write intent.

    `enqueued_at` is strictly increasing across the queue and defines the
    FIFO replay order.
    """

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Opaque operation id, assigned at enqueue time"
    )
    kind: OperationKind
    entity_family: EntityFamily
    entity_id: Optional[str] = Field(
        default=None,
        description="Target record; required for update and delete"
    )
    temp_id: Optional[str] = Field(
        default=None,
        description="Local id a create was optimistically applied under"
    )
    payload: dict[str, Any] = Field(default_factory=dict)
    enqueued_at: float = Field(
        ...,
        description="Monotonic enqueue timestamp (epoch seconds)"
    )
    retry_count: int = Field(default=0, ge=0)
    retry_budget: int = Field(default=DEFAULT_RETRY_BUDGET, ge=1)

    @model_validator(mode='after')
    def validate_operation(self) -> 'QueueOperation':
        if self.kind.requires_entity_id and not self.entity_id:
            raise ValueError(f"{self.kind.value} operations require an entity_id")
        if self.retry_count > self.retry_budget:
            raise ValueError("retry_count cannot exceed retry_budget")
        return self

    @property
    def is_pending(self) -> bool:
        return self.retry_count < self.retry_budget

    @property
    def is_quarantined(self) -> bool:
        return self.retry_count >= self.retry_budget

    @property
    def state(self) -> OperationState:
        return OperationState.PENDING if self.is_pending else OperationState.QUARANTINED

    @property
    def enqueued_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.enqueued_at, tz=timezone.utc)

    def describe(self) -> str:
        target = self.entity_id or self.temp_id or "-"
        return f"{self.kind.value} {self.entity_family.value} {target}"


class SyncResult(BaseModel):
    """Outcome of one sync pass."""

    success: bool
    processed_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)
    errors: list[str] = Field(default_factory=list)
    offline: bool = Field(
        default=False,
        description="True when the pass was skipped because the device is offline"
    )

    @classmethod
    def skipped_offline(cls) -> 'SyncResult':
        return cls(success=False, offline=True, errors=["Device is offline"])


class QueueStatus(BaseModel):
    """
    Queue health snapshot for a status display.

    `oldest` and `oldest_age_seconds` describe the oldest pending operation;
    quarantined operations only show up in the counts.
    """

    total: int = 0
    pending: int = 0
    quarantined: int = 0
    oldest: Optional[QueueOperation] = None
    oldest_age_seconds: Optional[float] = None
    sync_in_progress: bool = False
