"""
Data Access Facades

What UI code calls: one facade per entity family, each deciding per call
whether to write directly or to queue, and keeping the optimistic cache
consistent with whichever path was taken.
"""

from expense_sync.facade.base import (
    DuplicateEntityError,
    EntityNotFoundError,
    InvalidEntityError,
    OfflineFirstCollection,
    apply_operation,
    rename_field,
)
from expense_sync.facade.reference_data import (
    CategoryFacade,
    NamedCollection,
    PaymentMethodFacade,
)
from expense_sync.facade.transactions import TransactionFacade

__all__ = [
    # Errors
    "DuplicateEntityError",
    "EntityNotFoundError",
    "InvalidEntityError",
    # Facades
    "CategoryFacade",
    "NamedCollection",
    "OfflineFirstCollection",
    "PaymentMethodFacade",
    "TransactionFacade",
    # Overlay helpers
    "apply_operation",
    "rename_field",
]
