"""Tests for the status endpoints, including a controller talking to them over HTTP."""

from __future__ import annotations

import httpx
import pytest

from timetable.api.app import create_app
from timetable.api.deps import wire_dependencies
from timetable.errors import MutationFailedError, StatusRejectedError
from timetable.sync.controller import MutationState, ResilientMutationController
from timetable.sync.http import HttpStatusStore
from timetable.sync.store import LocalStatusView

pytestmark = pytest.mark.unit


@pytest.fixture
def app(service, status_store):
    app = create_app()
    wire_dependencies(app, service, status_store)
    return app


@pytest.fixture
async def client(app):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client


class TestStatusEndpoints:
    async def test_put_canonicalizes_and_get_reads_back(self, client, status_store):
        resp = await client.put("/api/status/event-1/attendance", json={"value": " attended "})

        assert resp.status_code == 200
        assert resp.json()["data"]["value"] == "ATTENDED"
        assert status_store.values[("event-1", "attendance")] == "ATTENDED"

        resp = await client.get("/api/status/event-1/attendance")
        assert resp.json()["data"] == {
            "entity_id": "event-1",
            "field_key": "attendance",
            "value": "ATTENDED",
            "updated_at": None,
        }

    async def test_missing_value_is_404(self, client):
        resp = await client.get("/api/status/event-1/checklist_progress")
        assert resp.status_code == 404

    async def test_value_outside_enum_is_400(self, client, status_store):
        resp = await client.put("/api/status/task-1/task_progress", json={"value": "ABSENT"})

        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "STATUS_REJECTED"
        assert error["details"]["field_key"] == "task_progress"
        assert status_store.values == {}

    async def test_unknown_field_is_400(self, client):
        resp = await client.get("/api/status/task-1/mood")
        assert resp.status_code == 400


class TestControllerOverHttp:
    async def test_mutation_confirmed_through_api(self, client, status_store):
        view = LocalStatusView({("event-1", "attendance"): "PENDING"})
        controller = ResilientMutationController(
            HttpStatusStore(client=client), view, base_delay=0
        )

        result = await controller.mutate("event-1", "attendance", "maybe")

        assert result.state is MutationState.CONFIRMED
        assert view.get("event-1", "attendance") == "MAYBE"
        assert status_store.values[("event-1", "attendance")] == "MAYBE"

    async def test_rejection_is_retried_then_rolled_back(self, client, status_store):
        view = LocalStatusView({("event-1", "attendance"): "PENDING"})
        controller = ResilientMutationController(
            HttpStatusStore(client=client), view, base_delay=0
        )

        with pytest.raises(MutationFailedError) as exc_info:
            await controller.mutate("event-1", "attendance", "late")

        assert isinstance(exc_info.value.last_error, StatusRejectedError)
        assert view.get("event-1", "attendance") == "PENDING"
        assert len(status_store.writes) == 3
