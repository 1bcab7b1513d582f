"""Tests for timetable.sync.http.HttpStatusStore."""

from __future__ import annotations

import json

import httpx
import pytest

from timetable.errors import StatusRejectedError, TransientNetworkError
from timetable.sync.http import HttpStatusStore

pytestmark = pytest.mark.unit


def _store(handler) -> HttpStatusStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    return HttpStatusStore(client=client)


def _ok(value: str) -> httpx.Response:
    return httpx.Response(200, json={"data": {"value": value}, "meta": {}})


class TestHttpStatusStore:
    async def test_write_sends_put_and_returns_canonical(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _ok("ATTENDING")

        store = _store(handler)
        assert await store.write_status("event 1", "attendance", "attending") == "ATTENDING"

        (request,) = seen
        assert request.method == "PUT"
        assert request.url.raw_path == b"/api/status/event%201/attendance"
        assert json.loads(request.content) == {"value": "attending"}

    async def test_read_returns_value(self):
        store = _store(lambda request: _ok("DONE"))
        assert await store.read_status("task-1", "task_progress") == "DONE"

    async def test_read_missing_returns_none(self):
        store = _store(lambda request: httpx.Response(404, json={"detail": "Not found"}))
        assert await store.read_status("task-1", "task_progress") is None

    async def test_client_error_is_rejection(self):
        body = {"error": {"code": "STATUS_REJECTED", "message": "expected one of DONE"}}
        store = _store(lambda request: httpx.Response(400, json=body))

        with pytest.raises(StatusRejectedError) as exc_info:
            await store.write_status("task-1", "task_progress", "nope")

        assert exc_info.value.reason == "expected one of DONE"
        assert exc_info.value.value == "nope"

    async def test_server_error_is_transient(self):
        store = _store(lambda request: httpx.Response(503, text="maintenance"))
        with pytest.raises(TransientNetworkError, match="503"):
            await store.write_status("task-1", "task_progress", "done")

    @pytest.mark.parametrize("status", [408, 429])
    async def test_throttling_is_transient(self, status):
        store = _store(lambda request: httpx.Response(status, json={"detail": "slow down"}))
        with pytest.raises(TransientNetworkError, match=str(status)):
            await store.write_status("task-1", "task_progress", "done")

    async def test_transport_error_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        store = _store(handler)
        with pytest.raises(TransientNetworkError):
            await store.read_status("task-1", "task_progress")

    async def test_borrowed_client_is_not_closed(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: _ok("DONE")))
        store = HttpStatusStore(client=client)
        await store.aclose()
        assert client.is_closed is False
        await client.aclose()

    def test_requires_base_url_or_client(self):
        with pytest.raises(ValueError):
            HttpStatusStore()
