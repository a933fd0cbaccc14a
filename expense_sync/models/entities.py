"""
Core Entity Models for Expense Sync

These models define the schemas of the three collections the tracker keeps
in sync with the remote store: transactions, categories and payment methods.
They are designed to:
1. Enforce type safety at runtime
2. Be serializable for the durable cache and the queue payloads
3. Round-trip whatever extra fields the remote store attaches

DESIGN DECISION: Identifiers are opaque strings.
Records created while offline carry a temporary id ("temp_...") until the
remote store assigns the real one.
"""

from datetime import date as date_type, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


TEMP_ID_PREFIX = "temp_"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class EntityFamily(str, Enum):
    """
    The collections kept in the optimistic cache.

    Each family has its own cache snapshot and its own remote endpoints.
    """
    TRANSACTION = "transaction"
    CATEGORY = "category"
    PAYMENT_METHOD = "payment_method"

    @property
    def cache_key(self) -> str:
        """Durable store key holding this family's snapshot."""
        return _CACHE_KEYS[self]


_CACHE_KEYS = {
    EntityFamily.TRANSACTION: "cache:transactions",
    EntityFamily.CATEGORY: "cache:categories",
    EntityFamily.PAYMENT_METHOD: "cache:payment_methods",
}


class TransactionType(str, Enum):
    """Direction of money flow."""
    EXPENSE = "expense"
    INCOME = "income"


class RenameField(str, Enum):
    """Transaction fields that can be bulk-renamed."""
    CATEGORY = "category"
    PAYMENT_METHOD = "payment_method"


# =============================================================================
# ENTITY MODELS
# =============================================================================

class Entity(BaseModel):
    """Fields shared by every synced record."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="allow")

    id: Optional[str] = Field(
        default=None,
        description="Server-assigned id, or a temporary id while unconfirmed"
    )
    created_at: Optional[datetime] = Field(
        default=None,
        description="Creation timestamp as reported by the remote store"
    )

    @property
    def is_temporary(self) -> bool:
        return is_temporary_id(self.id)

    def to_record(self) -> dict:
        """JSON-safe dict used for cache snapshots and queue payloads."""
        return self.model_dump(mode="json")

    def to_payload(self) -> dict:
        """Fields sent to the remote store on create (no id, no timestamps)."""
        return self.model_dump(mode="json", exclude={"id", "created_at"}, exclude_none=True)


class Transaction(Entity):
    """
    A single income or expense entry.

    Mirrors the remote `transactions` table.
    """
    date: date_type = Field(
        ...,
        description="Date the money moved"
    )
    type: TransactionType = Field(
        ...,
        description="expense or income"
    )
    amount: Annotated[
        Decimal,
        Field(gt=0, decimal_places=2, description="Amount in `currency`")
    ]
    currency: str = Field(
        default="INR",
        min_length=3,
        max_length=3,
        description="ISO currency code"
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Category name"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=500,
    )
    payment_method: Optional[str] = Field(
        default=None,
        max_length=100,
    )
    fully_settled: bool = Field(
        default=False,
        description="Whether the transaction has been fully paid/received"
    )

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class Category(Entity):
    """A user-visible category name, scoped to expense or income."""
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    type: TransactionType
    order: Optional[int] = Field(
        default=None,
        ge=0,
        description="Display position within its type"
    )


class PaymentMethod(Entity):
    """A payment method name (cash, card, UPI...)."""
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    order: Optional[int] = Field(
        default=None,
        ge=0,
        description="Display position"
    )


FAMILY_MODELS: dict[EntityFamily, type[Entity]] = {
    EntityFamily.TRANSACTION: Transaction,
    EntityFamily.CATEGORY: Category,
    EntityFamily.PAYMENT_METHOD: PaymentMethod,
}


def new_temporary_id() -> str:
    """Create a local id for a record the remote store hasn't confirmed yet."""
    return f"{TEMP_ID_PREFIX}{uuid4().hex}"


def is_temporary_id(entity_id: Optional[str]) -> bool:
    return bool(entity_id) and entity_id.startswith(TEMP_ID_PREFIX)
