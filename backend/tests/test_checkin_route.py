from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

import moneymind.checkin as checkin_router
from fake_habits_db import FakeHabitsConnection
from moneymind.utils import local_today


@pytest.fixture
def client_with_overrides(monkeypatch):
    connection = FakeHabitsConnection()
    user_id = uuid4()

    async def override_db_connection():
        yield connection

    monkeypatch.setattr(checkin_router, "_get_llm_provider", lambda: None)
    test_app = FastAPI()
    test_app.include_router(checkin_router.router)
    test_app.dependency_overrides[checkin_router.get_current_user_id] = lambda: user_id
    test_app.dependency_overrides[checkin_router.get_db_connection] = override_db_connection

    with TestClient(test_app) as client:
        yield client, connection

    test_app.dependency_overrides.clear()


def test_local_today_uses_client_timezone() -> None:
    instant = datetime(2026, 3, 1, 5, 0, tzinfo=timezone.utc)

    assert local_today("America/Vancouver", now=instant).isoformat() == "2026-02-28"
    assert local_today(None, now=instant).isoformat() == "2026-03-01"
    with pytest.raises(ValueError):
        local_today("Not/AZone", now=instant)


def test_checkin_then_complete_habit(client_with_overrides) -> None:
    client, connection = client_with_overrides
    headers = {"X-Timezone": "Europe/Berlin"}

    first = client.get("/daily-checkin", headers=headers)
    second = client.post("/daily-checkin", headers=headers)
    done = client.post("/daily-checkin/complete-habit", headers=headers)
    repeat = client.post("/daily-checkin/complete-habit", headers=headers)

    assert first.status_code == 200
    assert first.json()["streak"] == 1
    assert first.json()["streakState"] == {"currentStreak": 1, "longestStreak": 1}
    assert second.json()["checkin"]["id"] == first.json()["checkin"]["id"]
    assert done.json()["checkin"]["habitCompleted"] is True
    assert done.json()["alreadyCompleted"] is False
    assert repeat.json()["alreadyCompleted"] is True
    assert len(connection.checkins) == 1


def test_bad_timezone_header_is_rejected(client_with_overrides) -> None:
    client, connection = client_with_overrides

    response = client.get("/daily-checkin", headers={"X-Timezone": "Atlantis/Capital"})

    assert response.status_code == 422
    assert connection.checkins == {}
