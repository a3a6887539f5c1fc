"""Integration tests for the calendar HTTP API."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp.test_utils import TestClient, TestServer

from agencycal.calendar.models import CalendarEvent, Task, TaskAssignee
from agencycal.calendar.query_engine import CalendarQueryEngine
from agencycal.domain.access import ActorVisibilityPolicy
from agencycal.domain.memory_store import InMemoryCalendarStore
from agencycal.server import make_app

pytestmark = pytest.mark.integration

MEMBER_HEADERS = {"X-Actor-Id": "user-1", "X-Actor-Role": "member"}
ADMIN_HEADERS = {"X-Actor-Id": "admin-1", "X-Actor-Role": "ADMIN"}
JANUARY = {"start": "2024-01-01T00:00:00Z", "end": "2024-01-31T23:59:59Z"}


@pytest.fixture
def calendar_store():
    start = datetime(2024, 1, 1, 9, tzinfo=UTC)
    return InMemoryCalendarStore(
        events=[
            CalendarEvent(
                id="weekly",
                title="Team sync",
                start_time=start,
                end_time=start + timedelta(hours=1),
                recurrence="FREQ=WEEKLY;COUNT=4",
                created_by_id="user-1",
            ),
            CalendarEvent(
                id="private",
                title="Board meeting",
                start_time=datetime(2024, 1, 5, 14, tzinfo=UTC),
                end_time=datetime(2024, 1, 5, 15, tzinfo=UTC),
                created_by_id="owner-1",
            ),
            CalendarEvent(
                id="broken",
                title="Legacy",
                start_time=datetime(2024, 1, 3, 9, tzinfo=UTC),
                recurrence="FREQ=HOURLY",
                created_by_id="user-1",
            ),
        ],
        tasks=[
            Task(
                id="t1",
                title="Deliver brief",
                deadline=datetime(2024, 1, 12, 17, tzinfo=UTC),
                created_by_id="owner-1",
                assignees=[TaskAssignee(user_id="user-1", name="User One", email="one@example.com")],
            ),
        ],
    )


@pytest.fixture
async def client(calendar_store):
    engine = CalendarQueryEngine(
        event_repository=calendar_store,
        task_repository=calendar_store,
        visibility_policy=ActorVisibilityPolicy(calendar_store),
    )
    async with TestClient(TestServer(make_app(engine))) as test_client:
        yield test_client


@pytest.fixture
async def failing_client():
    events = MagicMock()
    events.find_events = AsyncMock(side_effect=ConnectionError("database unavailable"))
    tasks = MagicMock()
    tasks.find_tasks_with_deadline_in_window = AsyncMock(return_value=[])
    engine = CalendarQueryEngine(
        event_repository=events,
        task_repository=tasks,
        visibility_policy=ActorVisibilityPolicy(),
    )
    async with TestClient(TestServer(make_app(engine))) as test_client:
        yield test_client


class TestListEvents:
    async def test_member_sees_expanded_occurrences_and_deadline(self, client) -> None:
        response = await client.get("/api/events", params=JANUARY, headers=MEMBER_HEADERS)

        assert response.status == 200
        data = await response.json()
        assert data["total"] == 5
        assert data["totalPages"] == 1
        assert [entry["startTime"] for entry in data["events"]] == [
            "2024-01-01T09:00:00Z",
            "2024-01-08T09:00:00Z",
            "2024-01-12T17:00:00Z",
            "2024-01-15T09:00:00Z",
            "2024-01-22T09:00:00Z",
        ]
        assert data["events"][2]["kind"] == "deadline"
        assert data["events"][2]["id"] == "task-t1"
        assert data["events"][1]["kind"] == "occurrence"
        assert data["events"][1]["anchorEventId"] == "weekly"

    async def test_admin_sees_private_events(self, client) -> None:
        response = await client.get("/api/events", params=JANUARY, headers=ADMIN_HEADERS)
        data = await response.json()
        assert "private" in {entry["id"] for entry in data["events"]}
        assert data["total"] == 6

    async def test_pagination(self, client) -> None:
        params = {**JANUARY, "page": "2", "limit": "2"}
        response = await client.get("/api/events", params=params, headers=MEMBER_HEADERS)

        data = await response.json()
        assert data["page"] == 2
        assert data["limit"] == 2
        assert data["total"] == 5
        assert data["totalPages"] == 3
        assert [entry["startTime"] for entry in data["events"]] == [
            "2024-01-12T17:00:00Z",
            "2024-01-15T09:00:00Z",
        ]

    async def test_page_past_end_is_empty(self, client) -> None:
        params = {**JANUARY, "page": "9", "limit": "2"}
        data = await (await client.get("/api/events", params=params, headers=MEMBER_HEADERS)).json()
        assert data["events"] == []
        assert data["total"] == 5

    async def test_type_filter_excludes_deadlines(self, client) -> None:
        params = {**JANUARY, "type": "meeting"}
        data = await (await client.get("/api/events", params=params, headers=MEMBER_HEADERS)).json()
        assert {entry["kind"] for entry in data["events"]} == {"occurrence"}

    async def test_request_id_echoed(self, client) -> None:
        response = await client.get(
            "/api/events", params=JANUARY, headers={**MEMBER_HEADERS, "X-Request-ID": "req-123"}
        )
        assert response.headers["X-Request-ID"] == "req-123"

    async def test_request_id_generated(self, client) -> None:
        response = await client.get("/api/events", params=JANUARY, headers=MEMBER_HEADERS)
        assert response.headers["X-Request-ID"]

    async def test_missing_actor_is_401(self, client) -> None:
        response = await client.get("/api/events", params=JANUARY)
        assert response.status == 401
        assert "X-Actor-Id" in (await response.json())["error"]

    @pytest.mark.parametrize(
        ("params", "headers"),
        [
            ({"start": "2024-02-01T00:00:00Z", "end": "2024-01-01T00:00:00Z"}, MEMBER_HEADERS),
            ({"start": "not-a-date", "end": "2024-01-31T00:00:00Z"}, MEMBER_HEADERS),
            ({"end": "2024-01-31T00:00:00Z"}, MEMBER_HEADERS),
            ({**JANUARY, "limit": "101"}, MEMBER_HEADERS),
            ({**JANUARY, "limit": "0"}, MEMBER_HEADERS),
            ({**JANUARY, "page": "zero"}, MEMBER_HEADERS),
            ({**JANUARY, "type": "PARTY"}, MEMBER_HEADERS),
            (JANUARY, {"X-Actor-Id": "user-1", "X-Actor-Role": "OWNER"}),
        ],
    )
    async def test_bad_input_is_400(self, client, params, headers) -> None:
        response = await client.get("/api/events", params=params, headers=headers)
        assert response.status == 400
        assert "error" in await response.json()

    async def test_upstream_failure_is_502(self, failing_client) -> None:
        response = await failing_client.get("/api/events", params=JANUARY, headers=MEMBER_HEADERS)
        assert response.status == 502
        assert "database unavailable" in (await response.json())["error"]


class TestListDeadlines:
    async def test_deadlines(self, client) -> None:
        response = await client.get("/api/events/deadlines", params=JANUARY, headers=MEMBER_HEADERS)

        assert response.status == 200
        data = await response.json()
        assert [entry["id"] for entry in data] == ["task-t1"]
        assert data[0]["isAllDay"] is True
        assert data[0]["attendees"][0]["status"] == "accepted"

    async def test_deadlines_hidden_from_outsider(self, client) -> None:
        headers = {"X-Actor-Id": "user-9"}
        data = await (await client.get("/api/events/deadlines", params=JANUARY, headers=headers)).json()
        assert data == []


class TestRecurrenceRoutes:
    async def test_validate_valid(self, client) -> None:
        response = await client.post("/api/recurrence/validate", json={"recurrence": "freq=weekly;byday=FR,MO"})

        assert response.status == 200
        data = await response.json()
        assert data["valid"] is True
        assert data["error"] is None
        assert data["description"] == "Every week on Monday, Friday"
        assert data["normalized"] == "FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,FR"

    async def test_validate_invalid(self, client) -> None:
        response = await client.post("/api/recurrence/validate", json={"recurrence": "FREQ=HOURLY"})

        assert response.status == 200
        data = await response.json()
        assert data["valid"] is False
        assert data["token"] == "FREQ=HOURLY"
        assert data["description"] is None

    async def test_validate_until_before_start(self, client) -> None:
        body = {"recurrence": "FREQ=DAILY;UNTIL=20231231T000000Z", "startTime": "2024-01-01T09:00:00Z"}
        data = await (await client.post("/api/recurrence/validate", json=body)).json()
        assert data["valid"] is False
        assert data["token"].startswith("UNTIL=")

    @pytest.mark.parametrize("body", ["{not json", "[1, 2]", "{}"])
    async def test_validate_bad_body(self, client, body) -> None:
        response = await client.post(
            "/api/recurrence/validate", data=body, headers={"Content-Type": "application/json"}
        )
        assert response.status == 400

    async def test_patterns(self, client) -> None:
        data = await (await client.get("/api/recurrence/patterns")).json()
        assert [p["label"] for p in data["patterns"]] == ["Daily", "Weekly", "Weekdays", "Monthly", "Yearly"]
        assert data["patterns"][2]["value"] == "FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,TU,WE,TH,FR"

    async def test_next_occurrence(self, client) -> None:
        params = {
            "recurrence": "FREQ=DAILY;COUNT=10",
            "startTime": "2024-01-01T09:00:00Z",
            "after": "2024-01-03T12:00:00Z",
        }
        data = await (await client.get("/api/recurrence/next", params=params)).json()
        assert data == {"next": "2024-01-04T09:00:00Z", "description": "Every day, 10 times"}

    async def test_next_occurrence_after_series_end(self, client) -> None:
        params = {
            "recurrence": "FREQ=DAILY;COUNT=2",
            "startTime": "2024-01-01T09:00:00Z",
            "after": "2024-02-01T00:00:00Z",
        }
        data = await (await client.get("/api/recurrence/next", params=params)).json()
        assert data["next"] is None

    async def test_next_occurrence_bad_rule(self, client) -> None:
        params = {"recurrence": "FREQ=SOMETIMES", "startTime": "2024-01-01T09:00:00Z"}
        response = await client.get("/api/recurrence/next", params=params)
        assert response.status == 400


async def test_health(client, monkeypatch) -> None:
    monkeypatch.setenv("AGENCYCAL_TEST_TIME", "2024-01-15T09:00:00Z")
    response = await client.get("/api/health")

    assert response.status == 200
    data = await response.json()
    assert data["status"] == "ok"
    assert data["server_time_iso"] == "2024-01-15T09:00:00Z"
    assert data["version"]
    assert set(data["logging"]) == {"root", "agencycal", "aiohttp.access", "aiohttp.server", "asyncio"}
