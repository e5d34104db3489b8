from __future__ import annotations

import asyncio
from datetime import date, timedelta
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

import moneymind.money_reset as money_reset_router
from fake_habits_db import FakeHabitsConnection
from moneymind.errors import InvalidInput, PlaybookRequired, UpstreamProviderError
from moneymind.services import money_reset_service as reset

START = date(2026, 3, 1)
PLAN = {
    "week1": ["Track every purchase", "List your money beliefs"],
    "week2": ["No takeout today"],
    "week3": ["Automate a $10 transfer"],
    "week4": ["Write your money vision"],
}


def _run(coro):
    return asyncio.run(coro)


class FakeCoach:
    def __init__(self, reply="You showed up all week.", *, fail=False):
        self.reply = reply
        self.fail = fail
        self.prompts: list[str] = []

    async def complete(self, prompt, *, system_prompt=""):
        self.prompts.append(prompt)
        if self.fail:
            raise UpstreamProviderError("The assistant is unavailable right now. Try again shortly.")
        return self.reply


def _enrolled(current_day=1, *, last_unlocked_on=START):
    connection = FakeHabitsConnection()
    user_id = uuid4()
    connection.add_playbook(user_id, thirty_day_plan=PLAN)
    enrollment = connection.add_enrollment(
        user_id, start_date=START, last_unlocked_on=last_unlocked_on, current_day=current_day
    )
    return connection, user_id, enrollment


@pytest.mark.parametrize(
    ("day", "mission_type", "description"),
    [
        (1, "identity", "Track every purchase"),
        (2, "identity", "List your money beliefs"),
        (3, "identity", "Track every purchase"),
        (7, "reflection", "Track every purchase"),
        (8, "detox", "No takeout today"),
        (15, "habit", "Automate a $10 transfer"),
        (30, "action", "Write your money vision"),
    ],
)
def test_build_mission_walks_the_plan(day, mission_type, description) -> None:
    mission = reset.build_mission(day, {"thirty_day_plan": PLAN, "daily_habit": "x"})

    assert mission["mission_type"] == mission_type
    assert mission["description"] == description
    assert mission["week_number"] == reset.week_for_day(day)


@pytest.mark.parametrize("day", [0, 31])
def test_build_mission_rejects_days_outside_programme(day) -> None:
    with pytest.raises(InvalidInput):
        reset.build_mission(day, {"thirty_day_plan": PLAN})


def test_badges_follow_longest_streak() -> None:
    assert reset.earned_badges(6) == []
    assert reset.earned_badges(14) == ["week_one", "two_weeks"]
    assert reset.earned_badges(45) == ["week_one", "two_weeks", "three_weeks", "champion"]


def test_enroll_requires_playbook() -> None:
    connection = FakeHabitsConnection()

    with pytest.raises(PlaybookRequired):
        _run(reset.enroll(connection, uuid4(), START))
    assert connection.enrollments == []


def test_enroll_twice_keeps_one_active_enrollment() -> None:
    connection = FakeHabitsConnection()
    user_id = uuid4()
    connection.add_playbook(user_id)

    first, created = _run(reset.enroll(connection, user_id, START))
    second, created_again = _run(reset.enroll(connection, user_id, START + timedelta(days=1)))

    assert (created, created_again) == (True, False)
    assert first["id"] == second["id"]
    assert first["current_day"] == 1
    assert first["last_unlocked_on"] == START
    assert len(connection.enrollments) == 1


def test_complete_mission_is_idempotent() -> None:
    connection, user_id, _enrollment = _enrolled()

    first = _run(reset.complete_mission(connection, user_id, 1, "  Spent more on snacks than I thought.  "))
    second = _run(reset.complete_mission(connection, user_id, 1, "again"))

    assert first["already_completed"] is False
    assert first["enrollment"]["total_missions_completed"] == 1
    assert second["already_completed"] is True
    assert second["enrollment"]["total_missions_completed"] == 1
    reflections = _run(reset.list_reflections(connection, user_id))
    assert reflections["mission_reflections"][0]["reflection"] == "Spent more on snacks than I thought."


def test_only_current_day_can_be_completed() -> None:
    connection, user_id, _enrollment = _enrolled(current_day=3)

    with pytest.raises(InvalidInput) as exc_info:
        _run(reset.complete_mission(connection, user_id, 4, None))

    assert exc_info.value.field == "mission_id"
    assert connection.completions == {}


def test_next_day_rules() -> None:
    connection, user_id, _enrollment = _enrolled()

    with pytest.raises(InvalidInput):
        _run(reset.next_day(connection, user_id, START + timedelta(days=1)))

    _run(reset.complete_mission(connection, user_id, 1, None))
    with pytest.raises(InvalidInput) as same_day:
        _run(reset.next_day(connection, user_id, START))

    unlocked = _run(reset.next_day(connection, user_id, START + timedelta(days=1)))
    assert unlocked["unlocked"] is True
    assert unlocked["enrollment"]["current_day"] == 2
    assert "tomorrow" in same_day.value.message

    _run(reset.complete_mission(connection, user_id, 2, None))
    with pytest.raises(InvalidInput):
        _run(reset.next_day(connection, user_id, START + timedelta(days=1)))


def test_programme_moments_fire_once() -> None:
    connection, user_id, enrollment = _enrolled(current_day=7)

    result = _run(reset.complete_mission(connection, user_id, 7, None))
    enrollment["current_day"] = 15
    halfway = _run(reset.complete_mission(connection, user_id, 15, None))

    assert [moment["moment_type"] for moment in result["moments"]] == ["weekly_win"]
    assert result["moments"][0]["title"] == "Week 1 Complete: The Mirror"
    assert [moment["moment_type"] for moment in halfway["moments"]] == ["milestone"]
    assert len(connection.moments) == 2


def test_day_thirty_completes_the_programme() -> None:
    connection, user_id, _enrollment = _enrolled(current_day=30)

    result = _run(reset.complete_mission(connection, user_id, 30, "I made it."))

    assert result["enrollment"]["status"] == "completed"
    assert result["enrollment"]["completed_at"] is not None
    assert [moment["moment_type"] for moment in result["moments"]] == ["completion"]
    with pytest.raises(LookupError):
        _run(reset.next_day(connection, user_id, START + timedelta(days=40)))


def test_weekly_reflection_gating_and_idempotence() -> None:
    connection, user_id, _enrollment = _enrolled(current_day=3)
    coach = FakeCoach()

    with pytest.raises(InvalidInput) as too_early:
        _run(reset.submit_weekly_reflection(connection, user_id, 1, {"q1": "ok"}, coach, START))
    assert too_early.value.field == "reflection_id"

    connection.enrollments[0]["current_day"] = 7
    row, created = _run(reset.submit_weekly_reflection(connection, user_id, 1, {"q1": "I eat out a lot."}, coach, START))
    again, created_again = _run(reset.submit_weekly_reflection(connection, user_id, 1, {"q1": "changed"}, coach, START))

    assert (created, created_again) == (True, False)
    assert row["ai_coaching_response"] == "You showed up all week."
    assert again["user_responses"] == {"q1": "I eat out a lot."}
    assert len(coach.prompts) == 1


def test_weekly_reflection_falls_back_without_coach() -> None:
    connection, user_id, _enrollment = _enrolled(current_day=14)

    row, created = _run(
        reset.submit_weekly_reflection(connection, user_id, 2, {"q1": "Hard week"}, FakeCoach(fail=True), START)
    )

    assert created is True
    assert "week 2 (The Detox)" in row["ai_coaching_response"]


@pytest.mark.parametrize(
    ("week", "responses", "field"),
    [
        (5, {"q1": "hi"}, "reflection_id"),
        (1, {"q1": "   "}, "responses"),
    ],
)
def test_weekly_reflection_validation(week, responses, field) -> None:
    connection, user_id, _enrollment = _enrolled(current_day=7)

    with pytest.raises(InvalidInput) as exc_info:
        _run(reset.submit_weekly_reflection(connection, user_id, week, responses, None, START))

    assert exc_info.value.field == field
    assert connection.reflections == {}


def test_reset_state_before_and_after_enrolling() -> None:
    connection = FakeHabitsConnection()
    user_id = uuid4()
    for offset in range(7):
        connection.add_checkin(user_id, START - timedelta(days=offset))

    before = _run(reset.get_reset_state(connection, user_id, START))
    connection.add_playbook(user_id, thirty_day_plan=PLAN)
    connection.add_enrollment(user_id, start_date=START, last_unlocked_on=START, current_day=7)
    after = _run(reset.get_reset_state(connection, user_id, START))

    assert before["enrolled"] is False
    assert before["streak"] == {"current_streak": 7, "longest_streak": 7, "badges": ["week_one"]}
    assert after["enrolled"] is True
    assert after["is_reflection_day"] is True
    assert after["today_mission"]["mission_type"] == "reflection"
    assert after["weekly_reflection"]["is_completed"] is False
    assert len(after["weekly_reflection"]["prompt_questions"]) == 3
    assert after["week_number"] == 1


@pytest.fixture
def client_with_overrides(monkeypatch):
    connection = FakeHabitsConnection()
    user_id = uuid4()

    async def override_db_connection():
        yield connection

    monkeypatch.setattr(money_reset_router, "_get_llm_provider", lambda: None)
    test_app = FastAPI()
    test_app.include_router(money_reset_router.router)
    test_app.dependency_overrides[money_reset_router.get_current_user_id] = lambda: user_id
    test_app.dependency_overrides[money_reset_router.get_db_connection] = override_db_connection

    with TestClient(test_app) as client:
        yield client, connection, user_id

    test_app.dependency_overrides.clear()


def test_money_reset_routes(client_with_overrides) -> None:
    client, connection, user_id = client_with_overrides

    blocked = client.post("/money-reset/enroll")
    connection.add_playbook(user_id, thirty_day_plan=PLAN)
    enrolled = client.post("/money-reset/enroll")
    state = client.get("/money-reset")
    completed = client.post("/money-reset/complete-mission", json={"missionId": 1, "reflection": "Noticed a lot."})
    wrong_day = client.post("/money-reset/complete-mission", json={"missionId": 5})
    reflections = client.get("/money-reset/reflections")
    moments = client.get("/money-reset/moments")

    assert blocked.status_code == 409
    assert enrolled.json()["created"] is True
    assert state.json()["todayMission"]["title"] == "Day 1: The Mirror"
    assert completed.json()["enrollment"]["totalMissionsCompleted"] == 1
    assert wrong_day.status_code == 422
    assert reflections.json()["missionReflections"][0]["missionType"] == "identity"
    assert moments.json() == []


def test_money_reset_routes_without_enrollment(client_with_overrides) -> None:
    client, _connection, _user_id = client_with_overrides

    assert client.post("/money-reset/next-day").status_code == 404
    assert client.post("/money-reset/submit-reflection", json={"reflectionId": 1, "responses": {"q1": "x"}}).status_code == 404
    assert client.get("/money-reset").json()["enrolled"] is False
