"""
Reference Data Facades

Categories and payment methods: short named lists the transaction forms
pick from. Names are unique within their scope (a category's type; all
payment methods share one scope) and the lists carry a user-defined order.
"""

from typing import Optional

from expense_sync.models.entities import (
    Category,
    Entity,
    EntityFamily,
    PaymentMethod,
    TransactionType,
)
from expense_sync.services.remote.interface import RemoteStore
from expense_sync.sync.cache import OptimisticCache
from expense_sync.sync.connectivity import ConnectivityMonitor
from expense_sync.sync.engine import SyncEngine
from expense_sync.sync.queue import MutationQueue
from expense_sync.facade.base import (
    DuplicateEntityError,
    EntityNotFoundError,
    InvalidEntityError,
    OfflineFirstCollection,
)


class NamedCollection(OfflineFirstCollection):
    """
    Shared behaviour of named, ordered reference lists.

    `scope` narrows a lookup to one category type; payment methods ignore it.
    """

    def _in_scope(self, record: dict, scope: Optional[TransactionType]) -> bool:
        return True

    def _scope_of(self, entity: Entity) -> Optional[TransactionType]:
        return None

    def _sort(self, records: list[dict]) -> list[dict]:
        return sorted(
            records,
            key=lambda r: (r.get("order") is None, r.get("order") or 0),
        )

    def _check_new(self, entity: Entity) -> None:
        scope = self._scope_of(entity)
        if entity.name in self.names(scope):
            raise DuplicateEntityError(
                f"{self.family.value} '{entity.name}' already exists"
            )

    def names(self, scope: Optional[TransactionType] = None) -> list[str]:
        """Names in display order."""
        return [
            record.get("name")
            for record in self._records
            if self._in_scope(record, scope)
        ]

    def find_by_name(
        self,
        name: str,
        scope: Optional[TransactionType] = None,
    ) -> Optional[dict]:
        for record in self._records:
            if record.get("name") == name and self._in_scope(record, scope):
                return dict(record)
        return None

    def _require_by_name(self, name: str, scope: Optional[TransactionType]) -> dict:
        record = self.find_by_name(name, scope)
        if record is None:
            raise EntityNotFoundError(f"No {self.family.value} named '{name}'")
        return record

    async def _remove_named(self, name: str, scope: Optional[TransactionType]) -> None:
        record = self._require_by_name(name, scope)
        await self.delete(record["id"])

    async def _reorder(self, ordered_names: list[str], scope: Optional[TransactionType]) -> None:
        """
        Give each named record its position in `ordered_names`.

        Every name must exist; nothing changes otherwise. Only records whose
        position actually changes are written.
        """
        if len(set(ordered_names)) != len(ordered_names):
            raise InvalidEntityError("Order contains duplicate names")
        records = [self._require_by_name(name, scope) for name in ordered_names]
        for position, record in enumerate(records):
            if record.get("order") != position:
                await self.update(record["id"], {"order": position})


def _category_type(value: TransactionType | str) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError as e:
        raise InvalidEntityError(f"Unknown category type: {value}") from e


class CategoryFacade(NamedCollection):
    """Expense and income categories."""

    def __init__(
        self,
        remote: RemoteStore,
        queue: MutationQueue,
        cache: OptimisticCache,
        connectivity: ConnectivityMonitor,
        engine: Optional[SyncEngine] = None,
        audit_logger=None,
    ):
        super().__init__(
            EntityFamily.CATEGORY,
            Category,
            remote,
            queue,
            cache,
            connectivity,
            engine=engine,
            audit_logger=audit_logger,
        )

    def _in_scope(self, record: dict, scope: Optional[TransactionType]) -> bool:
        return scope is None or record.get("type") == TransactionType(scope).value

    def _scope_of(self, entity: Entity) -> Optional[TransactionType]:
        return entity.type

    async def add(self, name: str, category_type: TransactionType | str) -> Category:
        """
        Add a category at the end of its type's list.

        Raises:
            InvalidEntityError: empty name or unknown type
            DuplicateEntityError: the type already has this name
        """
        category_type = _category_type(category_type)
        return await self.create({
            "name": name,
            "type": category_type,
            "order": len(self.names(category_type)),
        })

    async def remove(self, name: str, category_type: TransactionType | str) -> None:
        await self._remove_named(name, _category_type(category_type))

    async def reorder(self, category_type: TransactionType | str, ordered_names: list[str]) -> None:
        await self._reorder(ordered_names, _category_type(category_type))


class PaymentMethodFacade(NamedCollection):
    """Payment methods (cash, card, UPI...)."""

    def __init__(
        self,
        remote: RemoteStore,
        queue: MutationQueue,
        cache: OptimisticCache,
        connectivity: ConnectivityMonitor,
        engine: Optional[SyncEngine] = None,
        audit_logger=None,
    ):
        super().__init__(
            EntityFamily.PAYMENT_METHOD,
            PaymentMethod,
            remote,
            queue,
            cache,
            connectivity,
            engine=engine,
            audit_logger=audit_logger,
        )

    async def add(self, name: str) -> PaymentMethod:
        """
        Add a payment method at the end of the list.

        Raises:
            InvalidEntityError: empty name
            DuplicateEntityError: the name already exists
        """
        return await self.create({"name": name, "order": len(self._records)})

    async def remove(self, name: str) -> None:
        await self._remove_named(name, None)

    async def reorder(self, ordered_names: list[str]) -> None:
        await self._reorder(ordered_names, None)
