"""
Remote Store Contract

DESIGN DECISION: Remote calls never raise for expected failures.
Every call returns a RemoteResult carrying {data, error, success} plus a
classification of the failure. The sync engine records these per
operation; the facades turn them into exceptions for direct writes.

Error taxonomy:
- unauthenticated: no valid session for the call
- offline: the remote store could not be reached
- rejected: the remote store answered with a domain/validation error
- unknown: anything else
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from expense_sync.models.entities import EntityFamily


class RemoteErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    OFFLINE = "offline"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


class RemoteResult(BaseModel):
    """Response envelope of every remote call."""

    data: Any = None
    error: Optional[str] = None
    success: bool = False
    error_kind: Optional[RemoteErrorKind] = None

    @classmethod
    def ok(cls, data: Any = None) -> 'RemoteResult':
        return cls(data=data, success=True)

    @classmethod
    def fail(
        cls,
        error: str,
        kind: RemoteErrorKind = RemoteErrorKind.REJECTED,
    ) -> 'RemoteResult':
        return cls(error=error, success=False, error_kind=kind)


class RemoteError(Exception):
    """Base exception for failed remote writes."""

    kind = RemoteErrorKind.UNKNOWN

    def __init__(self, message: str, result: Optional[RemoteResult] = None):
        self.result = result
        super().__init__(message)


class UnauthenticatedError(RemoteError):
    """No valid session for a direct remote call."""
    kind = RemoteErrorKind.UNAUTHENTICATED


class OfflineError(RemoteError):
    """No connectivity to the remote store."""
    kind = RemoteErrorKind.OFFLINE


class RemoteRejectedError(RemoteError):
    """The remote store returned a domain or validation error."""
    kind = RemoteErrorKind.REJECTED


class UnknownRemoteError(RemoteError):
    """Unexpected failure while talking to the remote store."""
    kind = RemoteErrorKind.UNKNOWN


_ERRORS_BY_KIND: dict[RemoteErrorKind, type[RemoteError]] = {
    RemoteErrorKind.UNAUTHENTICATED: UnauthenticatedError,
    RemoteErrorKind.OFFLINE: OfflineError,
    RemoteErrorKind.REJECTED: RemoteRejectedError,
    RemoteErrorKind.UNKNOWN: UnknownRemoteError,
}


def raise_for_result(result: RemoteResult, default_message: str) -> RemoteResult:
    """Return `result` if it succeeded, otherwise raise the matching RemoteError."""
    if result.success:
        return result
    error_cls = _ERRORS_BY_KIND[result.error_kind or RemoteErrorKind.UNKNOWN]
    raise error_cls(result.error or default_message, result)


class RemoteStore(ABC):
    """
    Abstract interface for the authoritative remote data store.

    Any backend (REST API, Google Sheets, ...) must implement these
    methods. Implementations must not raise for remote failures; they
    return RemoteResult.fail(...) instead.
    """

    @abstractmethod
    async def fetch_all(self, family: EntityFamily) -> RemoteResult:
        """
        Read the full collection of a family.

        Returns:
            RemoteResult whose data is a list of record dicts
        """
        pass

    @abstractmethod
    async def create(self, family: EntityFamily, payload: dict) -> RemoteResult:
        """
        Create a record.

        Returns:
            RemoteResult whose data is the stored record, including the
            server-assigned id
        """
        pass

    @abstractmethod
    async def update(
        self,
        family: EntityFamily,
        entity_id: str,
        changes: dict,
    ) -> RemoteResult:
        """
        Apply a partial update to one record.

        Returns:
            RemoteResult whose data is the updated record
        """
        pass

    @abstractmethod
    async def delete(self, family: EntityFamily, entity_id: str) -> RemoteResult:
        """Delete one record."""
        pass

    @abstractmethod
    async def bulk_update(
        self,
        field: str,
        old_value: str,
        new_value: str,
    ) -> RemoteResult:
        """
        Rewrite `field` from `old_value` to `new_value` on every transaction
        in one call.
        """
        pass

    async def health_check(self) -> RemoteResult:
        """Cheap reachability probe. Backends without one report healthy."""
        return RemoteResult.ok({"status": "healthy"})

    async def close(self) -> None:
        """Release network resources."""
        return None
