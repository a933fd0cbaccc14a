"""
HTTP Remote Store

Talks to the expense tracker REST API. Every endpoint answers with the
envelope {"data": ..., "success": bool, "error": str | null}; requests
carry the user's session token as a bearer token.

Failures are classified, never raised:
- no session token -> unauthenticated (no request is sent)
- 401 / 403 -> unauthenticated
- other non-2xx -> rejected, with the server's "error" message
- transport errors (DNS, refused, timeout) -> offline
- anything else -> unknown
"""

from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog

from expense_sync.config import get_settings
from expense_sync.models.entities import EntityFamily
from expense_sync.services.remote.interface import (
    RemoteErrorKind,
    RemoteResult,
    RemoteStore,
)


TokenProvider = Callable[[], Awaitable[Optional[str]]]

FAMILY_PATHS = {
    EntityFamily.TRANSACTION: "/transactions",
    EntityFamily.CATEGORY: "/categories",
    EntityFamily.PAYMENT_METHOD: "/payment-methods",
}


class HttpRemoteStore(RemoteStore):
    """
    REST implementation of the remote store.

    The token provider is the seam to the identity service: it returns the
    current session's access token, or None when nobody is signed in.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings().remote_api
        self._token_provider = token_provider
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.base_url,
            timeout=timeout_seconds or settings.timeout_seconds,
        )
        self._logger = structlog.get_logger(__name__)

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        authenticated: bool = True,
    ) -> RemoteResult:
        headers = {"Content-Type": "application/json"}
        try:
            if authenticated:
                token = await self._token_provider()
                if not token:
                    return RemoteResult.fail(
                        "Not authenticated", RemoteErrorKind.UNAUTHENTICATED
                    )
                headers["Authorization"] = f"Bearer {token}"

            response = await self._client.request(method, path, json=json, headers=headers)
        except httpx.TransportError as e:
            self._logger.warning("remote_unreachable", method=method, path=path, error=str(e))
            return RemoteResult.fail(str(e) or "Network error occurred", RemoteErrorKind.OFFLINE)
        except Exception as e:
            self._logger.error("remote_request_error", method=method, path=path, error=str(e))
            return RemoteResult.fail(str(e), RemoteErrorKind.UNKNOWN)

        return self._parse_response(response)

    def _parse_response(self, response: httpx.Response) -> RemoteResult:
        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        if response.is_success:
            if body.get("success") is False:
                return RemoteResult.fail(body.get("error") or "Request failed")
            return RemoteResult.ok(body.get("data"))

        message = body.get("error") or f"Request failed with status {response.status_code}"
        if response.status_code in (401, 403):
            return RemoteResult.fail(message, RemoteErrorKind.UNAUTHENTICATED)
        return RemoteResult.fail(message, RemoteErrorKind.REJECTED)

    async def fetch_all(self, family: EntityFamily) -> RemoteResult:
        return await self._request("GET", FAMILY_PATHS[family])

    async def create(self, family: EntityFamily, payload: dict) -> RemoteResult:
        return await self._request("POST", FAMILY_PATHS[family], json=payload)

    async def update(
        self,
        family: EntityFamily,
        entity_id: str,
        changes: dict,
    ) -> RemoteResult:
        return await self._request("PATCH", f"{FAMILY_PATHS[family]}/{entity_id}", json=changes)

    async def delete(self, family: EntityFamily, entity_id: str) -> RemoteResult:
        return await self._request("DELETE", f"{FAMILY_PATHS[family]}/{entity_id}")

    async def bulk_update(
        self,
        field: str,
        old_value: str,
        new_value: str,
    ) -> RemoteResult:
        return await self._request(
            "PATCH",
            f"{FAMILY_PATHS[EntityFamily.TRANSACTION]}/bulk",
            json={"field": field, "old_value": old_value, "new_value": new_value},
        )

    async def health_check(self) -> RemoteResult:
        """GET /health; no session required."""
        return await self._request("GET", "/health", authenticated=False)

    async def close(self) -> None:
        await self._client.aclose()
