"""Tests for pushing tasks to Google Calendar through the API."""
from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from calendar_sync.push import task_to_event
from planner_server.config import Settings
from planner_server.errors import ValidationError
from planner_server.models import Task
from planner_server.store import InMemoryPlannerStore
from services.planner_service.app import create_app

DUE = datetime(2026, 9, 10, 9, 0, tzinfo=timezone.utc)


class FakeGoogle:
    """In-process stand-in for the Calendar and OAuth endpoints."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.fail = False
        self.next_id = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            return httpx.Response(500, text="backendError")
        if request.url.path == "/token":
            return httpx.Response(200, json={"access_token": "ya29.exchanged", "refresh_token": "1//r"})
        if request.url.path.endswith("/watch"):
            return httpx.Response(200, json={"id": "chan", "resourceId": "res", "expiration": 0})
        if request.method == "POST":
            self.next_id += 1
            return httpx.Response(200, json={"id": f"evt-{self.next_id}", **json.loads(request.content)})
        if request.method == "PUT":
            return httpx.Response(200, json={"id": request.url.path.rsplit("/", 1)[-1]})
        if request.method == "DELETE":
            return httpx.Response(204)
        return httpx.Response(404)


@pytest.fixture
def google() -> FakeGoogle:
    return FakeGoogle()


@pytest.fixture
def calendar_client(store: InMemoryPlannerStore, settings: Settings, google: FakeGoogle) -> TestClient:
    app = create_app(store=store, settings=settings, calendar_transport=httpx.MockTransport(google))
    return TestClient(app)


def connect(client: TestClient) -> None:
    response = client.post("/calendar/connect", json={"accessToken": "ya29.token", "refreshToken": "1//r"})
    assert response.status_code == 200


def create_task(client: TestClient, **fields) -> dict:
    response = client.post("/tasks", json=fields)
    assert response.status_code == 201
    return response.json()


def test_task_to_event() -> None:
    task = Task(id="t1", title="HW1", description="Problems 1-5", created_at=DUE, updated_at=DUE, due_date=DUE)

    event = task_to_event(task, duration_minutes=90)

    assert event == {
        "summary": "HW1",
        "description": "Problems 1-5",
        "start": {"dateTime": "2026-09-10T09:00:00+00:00"},
        "end": {"dateTime": "2026-09-10T10:30:00+00:00"},
    }


def test_task_to_event_requires_due_date() -> None:
    task = Task(id="t1", title="HW1", created_at=DUE, updated_at=DUE)
    with pytest.raises(ValidationError):
        task_to_event(task)


def test_push_creates_then_updates_event(calendar_client: TestClient, google: FakeGoogle) -> None:
    connect(calendar_client)
    task = create_task(calendar_client, title="HW1", dueDate="2026-09-10T09:00:00Z")

    first = calendar_client.post(f"/calendar/push/{task['id']}")
    second = calendar_client.post(f"/calendar/push/{task['id']}")

    assert first.status_code == 200
    assert first.json()["googleCalendarEventId"] == "evt-1"
    assert second.json()["googleCalendarEventId"] == "evt-1"
    assert [r.method for r in google.requests] == ["POST", "PUT"]
    assert google.requests[0].headers["Authorization"] == "Bearer ya29.token"
    assert calendar_client.get(f"/tasks/{task['id']}").json()["googleCalendarEventId"] == "evt-1"


def test_push_requires_connection(calendar_client: TestClient, google: FakeGoogle) -> None:
    task = create_task(calendar_client, title="HW1", dueDate="2026-09-10T09:00:00Z")

    response = calendar_client.post(f"/calendar/push/{task['id']}")

    assert response.status_code == 409
    assert google.requests == []


def test_push_errors(calendar_client: TestClient, google: FakeGoogle) -> None:
    connect(calendar_client)
    undated = create_task(calendar_client, title="Someday")
    dated = create_task(calendar_client, title="HW1", dueDate="2026-09-10T09:00:00Z")

    assert calendar_client.post("/calendar/push/missing").status_code == 404
    assert calendar_client.post(f"/calendar/push/{undated['id']}").status_code == 400

    google.fail = True
    failed = calendar_client.post(f"/calendar/push/{dated['id']}")
    assert failed.status_code == 502
    assert calendar_client.get(f"/tasks/{dated['id']}").json()["googleCalendarEventId"] is None


def test_remove_event_clears_reference(calendar_client: TestClient, google: FakeGoogle) -> None:
    connect(calendar_client)
    task = create_task(calendar_client, title="HW1", dueDate="2026-09-10T09:00:00Z")
    calendar_client.post(f"/calendar/push/{task['id']}")

    response = calendar_client.delete(f"/calendar/push/{task['id']}")

    assert response.status_code == 200
    assert response.json()["googleCalendarEventId"] is None
    assert google.requests[-1].method == "DELETE"
    assert google.requests[-1].url.path.endswith("/events/evt-1")


def test_disconnect_blocks_push(calendar_client: TestClient) -> None:
    connect(calendar_client)
    calendar_client.post("/calendar/disconnect")
    task = create_task(calendar_client, title="HW1", dueDate="2026-09-10T09:00:00Z")

    assert calendar_client.post(f"/calendar/push/{task['id']}").status_code == 409


def test_oauth_exchange_connects_and_registers_webhook(store: InMemoryPlannerStore, google: FakeGoogle) -> None:
    settings = Settings(
        seed_subjects=False,
        google_client_id="client-123",
        google_client_secret="secret",
        google_redirect_uri="http://localhost/cb",
        webhook_url="https://planner.example.com/calendar/webhook",
    )
    client = TestClient(create_app(store=store, settings=settings, calendar_transport=httpx.MockTransport(google)))

    auth_url = client.get("/calendar/auth-url")
    exchanged = client.post("/calendar/oauth/exchange", json={"code": "4/code"})

    assert auth_url.status_code == 200
    assert "client_id=client-123" in auth_url.json()["url"]
    assert exchanged.status_code == 200
    assert exchanged.json()["googleCalendarConnected"] is True
    assert exchanged.json()["googleAccessToken"] == "ya29.exchanged"
    assert google.requests[-1].url.path.endswith("/events/watch")


def test_oauth_exchange_failure(store: InMemoryPlannerStore, google: FakeGoogle) -> None:
    settings = Settings(
        seed_subjects=False,
        google_client_id="client-123",
        google_client_secret="secret",
        google_redirect_uri="http://localhost/cb",
    )
    client = TestClient(create_app(store=store, settings=settings, calendar_transport=httpx.MockTransport(google)))
    google.fail = True

    response = client.post("/calendar/oauth/exchange", json={"code": "bad"})

    assert response.status_code == 502
    assert client.get("/preferences").json()["googleCalendarConnected"] is False


def test_connect_survives_failed_webhook_registration(store: InMemoryPlannerStore, google: FakeGoogle) -> None:
    settings = Settings(seed_subjects=False, webhook_url="https://planner.example.com/calendar/webhook")
    client = TestClient(create_app(store=store, settings=settings, calendar_transport=httpx.MockTransport(google)))
    google.fail = True

    response = client.post("/calendar/connect", json={"accessToken": "ya29.token"})

    assert response.status_code == 200
    assert response.json()["googleCalendarConnected"] is True
    assert google.requests[0].url.path.endswith("/events/watch")
