"""
Tests for the REST remote store, using httpx.MockTransport.
"""

import json

import httpx
import pytest

from expense_sync.models.entities import EntityFamily
from expense_sync.services.remote.http_client import HttpRemoteStore
from expense_sync.services.remote.interface import (
    OfflineError,
    RemoteErrorKind,
    RemoteRejectedError,
    raise_for_result,
)


class RecordingHandler:
    """MockTransport handler that records requests and replies from a script."""

    def __init__(self, response=None):
        self.requests: list[httpx.Request] = []
        self.response = response or httpx.Response(200, json={"success": True, "data": []})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def _store(handler, token="secret-token"):
    async def token_provider():
        return token

    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url="http://expense.test/api",
    )
    return HttpRemoteStore(token_provider, client=client)


class TestRequests:
    """Tests for what the client sends."""

    @pytest.mark.asyncio
    async def test_fetch_all_sends_bearer_token(self):
        """Test reads are authenticated and hit the family endpoint."""
        handler = RecordingHandler(
            httpx.Response(200, json={"success": True, "data": [{"id": "1"}]})
        )
        remote = _store(handler)

        result = await remote.fetch_all(EntityFamily.TRANSACTION)

        assert result.success
        assert result.data == [{"id": "1"}]
        [request] = handler.requests
        assert request.method == "GET"
        assert request.url.path == "/api/transactions"
        assert request.headers["Authorization"] == "Bearer secret-token"

    @pytest.mark.asyncio
    async def test_update_path_and_body(self):
        """Test updates PATCH the record endpoint with the changed fields."""
        handler = RecordingHandler(
            httpx.Response(200, json={"success": True, "data": {"id": "pm-1", "name": "Card"}})
        )
        remote = _store(handler)

        result = await remote.update(EntityFamily.PAYMENT_METHOD, "pm-1", {"name": "Card"})

        assert result.data["name"] == "Card"
        [request] = handler.requests
        assert request.method == "PATCH"
        assert request.url.path == "/api/payment-methods/pm-1"
        assert json.loads(request.content) == {"name": "Card"}

    @pytest.mark.asyncio
    async def test_bulk_update_is_one_request(self):
        """Test a bulk rename is a single PATCH to the bulk endpoint."""
        handler = RecordingHandler(httpx.Response(200, json={"success": True, "data": {"updated": 3}}))
        remote = _store(handler)

        result = await remote.bulk_update("category", "Food", "Dining")

        assert result.success
        [request] = handler.requests
        assert request.url.path == "/api/transactions/bulk"
        assert json.loads(request.content) == {
            "field": "category",
            "old_value": "Food",
            "new_value": "Dining",
        }

    @pytest.mark.asyncio
    async def test_delete(self):
        """Test deletes hit the record endpoint."""
        handler = RecordingHandler(httpx.Response(200, json={"success": True}))
        remote = _store(handler)

        result = await remote.delete(EntityFamily.CATEGORY, "cat-1")

        assert result.success
        assert handler.requests[0].method == "DELETE"
        assert handler.requests[0].url.path == "/api/categories/cat-1"

    @pytest.mark.asyncio
    async def test_health_check_needs_no_session(self):
        """Test the health probe works without a token."""
        handler = RecordingHandler(httpx.Response(200, json={"success": True, "data": {"status": "ok"}}))
        remote = _store(handler, token=None)

        result = await remote.health_check()

        assert result.success
        assert "Authorization" not in handler.requests[0].headers


class TestErrorClassification:
    """Tests for mapping failures onto the error taxonomy."""

    @pytest.mark.asyncio
    async def test_missing_token_is_unauthenticated(self):
        """Test no request is sent without a session."""
        handler = RecordingHandler()
        remote = _store(handler, token=None)

        result = await remote.create(EntityFamily.TRANSACTION, {"amount": "1.00"})

        assert result.error_kind == RemoteErrorKind.UNAUTHENTICATED
        assert handler.requests == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_statuses(self, status):
        """Test 401/403 are unauthenticated."""
        remote = _store(RecordingHandler(httpx.Response(status, json={"error": "Invalid token"})))

        result = await remote.fetch_all(EntityFamily.CATEGORY)

        assert result.error_kind == RemoteErrorKind.UNAUTHENTICATED
        assert result.error == "Invalid token"

    @pytest.mark.asyncio
    async def test_validation_error_is_rejected(self):
        """Test a 400 carries the server's message as a rejection."""
        remote = _store(RecordingHandler(httpx.Response(400, json={"error": "Amount must be positive"})))

        result = await remote.create(EntityFamily.TRANSACTION, {"amount": "-1"})

        assert not result.success
        assert result.error_kind == RemoteErrorKind.REJECTED
        assert result.error == "Amount must be positive"
        with pytest.raises(RemoteRejectedError):
            raise_for_result(result, "Failed")

    @pytest.mark.asyncio
    async def test_status_without_body(self):
        """Test a bare error status still produces a message."""
        remote = _store(RecordingHandler(httpx.Response(500)))

        result = await remote.fetch_all(EntityFamily.TRANSACTION)

        assert result.error == "Request failed with status 500"

    @pytest.mark.asyncio
    async def test_envelope_failure_on_success_status(self):
        """Test success=false in a 200 response is a rejection."""
        remote = _store(RecordingHandler(httpx.Response(200, json={"success": False, "error": "Duplicate"})))

        result = await remote.create(EntityFamily.CATEGORY, {"name": "Food"})

        assert result.error_kind == RemoteErrorKind.REJECTED
        assert result.error == "Duplicate"

    @pytest.mark.asyncio
    async def test_transport_error_is_offline(self):
        """Test an unreachable server is classified as offline."""
        remote = _store(RecordingHandler(httpx.ConnectError("connection refused")))

        result = await remote.fetch_all(EntityFamily.TRANSACTION)

        assert result.error_kind == RemoteErrorKind.OFFLINE
        with pytest.raises(OfflineError):
            raise_for_result(result, "Failed")

    @pytest.mark.asyncio
    async def test_close(self):
        """Test closing releases the underlying client."""
        remote = _store(RecordingHandler())
        await remote.close()
        assert remote._client.is_closed


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
