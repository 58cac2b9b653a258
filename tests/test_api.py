import asyncio

import pytest
from fastapi.testclient import TestClient

from dashboard.app import create_app
from database.memory_store import InMemoryDocumentStore
from services import close_all_services, initialize_all_services


@pytest.fixture
def client(clock):
    assert initialize_all_services(store=InMemoryDocumentStore(), clock=clock, timezone="UTC")
    app = create_app(manage_services=False, enable_scheduler=False)
    with TestClient(app) as test_client:
        yield test_client
    asyncio.run(close_all_services())


def test_health_and_ping(client):
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"
    assert "X-Process-Time" in health.headers

    assert client.get("/ping").json()["message"] == "pong"


def test_habit_lifecycle(client):
    created = client.post("/api/users/u1/habits/", json={"title": "Read", "description": "20 pages"})
    assert created.status_code == 201
    habit_id = created.json()["id"]

    toggled = client.post(f"/api/users/u1/habits/{habit_id}/toggle")
    assert toggled.status_code == 200
    body = toggled.json()
    assert body["completed"] and body["awarded_points"] == 2
    assert body["habit"]["currentStreak"] == 1

    listed = client.get("/api/users/u1/habits/").json()
    assert [h["id"] for h in listed] == [habit_id]

    # чужая привычка не видна
    assert client.get(f"/api/users/u2/habits/{habit_id}").status_code == 404

    assert client.delete(f"/api/users/u1/habits/{habit_id}").status_code == 204
    missing = client.get(f"/api/users/u1/habits/{habit_id}")
    assert missing.status_code == 404
    assert missing.json()["error"] == "NotFound"
    assert missing.json()["retryable"] is False


def test_blank_habit_title_is_rejected(client):
    assert client.post("/api/users/u1/habits/", json={"title": "   "}).status_code == 422


def test_month_view_has_status_for_every_day(client):
    response = client.get("/api/users/u1/schedules/month")
    assert response.status_code == 200
    view = response.json()
    assert view["key"] == "2025-03"
    assert len(view["dayStatus"]) == 31
    assert view["isCurrent"] and not view["canGoForward"]


def test_past_day_action_needs_confirmation(client):
    url = "/api/users/u1/schedules/day/2025-03-14"
    assert client.get(f"{url}/confirmation", params={"action": "add"}).json() == {"required": True}

    rejected = client.post(f"{url}/actions", json={"action": "add", "title": "Catch up"})
    assert rejected.status_code == 409
    assert rejected.json()["error"] == "InvalidTransition"

    accepted = client.post(f"{url}/actions", json={"action": "add", "title": "Catch up", "confirmed": True})
    assert accepted.status_code == 200
    assert [p["title"] for p in accepted.json()["priorities"]] == ["Catch up"]

    imported = client.post("/api/users/u1/schedules/day/2025-03-15/import")
    assert imported.json() == {"count": 1}


def test_navigation_is_bounded(client):
    response = client.post("/api/users/u1/schedules/day/navigate", json={"key": "2025-03-15", "direction": 1})
    assert response.status_code == 200
    assert response.json() == {"accepted": False, "key": "2025-03-15", "reason": "beyond_current_period"}

    assert client.get("/api/users/u1/schedules/day/bounds").json() == {"min": 0, "max": 0}
    assert client.post(
        "/api/users/u1/schedules/day/navigate", json={"key": "2025-03-15", "direction": 2}
    ).status_code == 422


def test_week_start_setting(client):
    assert client.put("/api/users/u1/settings/week-start", json={"index": 7}).status_code == 422

    profile = client.put("/api/users/u1/settings/week-start", json={"index": 1}).json()
    assert profile["weekStartChanges"] == [{"date": "2025-03-15", "index": 1}]

    week = client.get("/api/users/u1/schedules/week", params={"anchor": "2025-03-15"}).json()
    assert week["key"] == "2025-03-10"
