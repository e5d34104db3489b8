from __future__ import annotations

import asyncio
from datetime import date, timedelta
from uuid import uuid4

import pytest

from fake_habits_db import FakeHabitsConnection
from moneymind.errors import UpstreamProviderError
from moneymind.services import checkin_service

TODAY = date(2026, 3, 10)


def _run(coro):
    return asyncio.run(coro)


class FakeCoach:
    def __init__(self, reply="Great focus today.", *, fail=False):
        self.reply = reply
        self.fail = fail
        self.prompts: list[str] = []

    async def complete(self, prompt, *, system_prompt=""):
        self.prompts.append(prompt)
        if self.fail:
            raise UpstreamProviderError("The assistant is unavailable right now. Try again shortly.")
        return self.reply


def _days_before(today, *offsets):
    return [today - timedelta(days=offset) for offset in offsets]


def test_streak_resets_after_a_missed_day() -> None:
    day1 = date(2026, 3, 1)
    history = [day1, day1 + timedelta(days=1), day1 + timedelta(days=2), day1 + timedelta(days=4)]

    assert checkin_service.compute_streak(history, day1 + timedelta(days=4)) == 1
    assert checkin_service.compute_streak(history, day1 + timedelta(days=2)) == 3
    assert checkin_service.longest_streak(history) == 3


def test_streak_is_zero_without_a_checkin_today() -> None:
    history = _days_before(TODAY, 1, 2, 3)

    assert checkin_service.compute_streak(history, TODAY) == 0
    assert checkin_service.streak_state(history, TODAY) == {"current_streak": 0, "longest_streak": 3}


def test_completion_rate_counts_only_the_previous_seven_days() -> None:
    history = [
        {"checkin_date": TODAY, "habit_completed": True},
        {"checkin_date": TODAY - timedelta(days=1), "habit_completed": True},
        {"checkin_date": TODAY - timedelta(days=2), "habit_completed": False},
        {"checkin_date": TODAY - timedelta(days=7), "habit_completed": True},
        {"checkin_date": TODAY - timedelta(days=8), "habit_completed": True},
    ]

    assert checkin_service.completion_rate(history, TODAY) == pytest.approx(2 / 7)


@pytest.mark.parametrize(
    ("rate", "previous_streak", "expected"),
    [
        (0.0, 0, 30),
        (1.0, 0, 70),
        (0.5, 4, 62),
        (1.0, 10, 100),
        (1.0, 500, 100),
        (0.0, -3, 30),
    ],
)
def test_money_mind_score_stays_in_range(rate, previous_streak, expected) -> None:
    assert checkin_service.money_mind_score(rate, previous_streak) == expected


def test_pick_habit_prefers_playbook_habit() -> None:
    assert checkin_service.pick_habit(TODAY, {"daily_habit": "  Skip one coffee run.  "}) == "Skip one coffee run."
    assert checkin_service.pick_habit(TODAY, None) in checkin_service.DEFAULT_HABITS
    assert checkin_service.pick_habit(TODAY, None) == checkin_service.pick_habit(TODAY, {"daily_habit": ""})


def test_repeated_calls_create_one_checkin() -> None:
    connection = FakeHabitsConnection()
    user_id = uuid4()
    coach = FakeCoach()

    results = [_run(checkin_service.get_or_create_today_checkin(connection, user_id, TODAY, coach)) for _ in range(3)]

    assert [result["created"] for result in results] == [True, False, False]
    assert len(connection.checkins) == 1
    assert len({result["checkin"]["id"] for result in results}) == 1
    assert len(coach.prompts) == 1


def test_checkin_scores_from_history_and_uses_playbook_habit() -> None:
    connection = FakeHabitsConnection()
    user_id = uuid4()
    for day in _days_before(TODAY, 1, 2, 3, 4):
        connection.add_checkin(user_id, day, habit_completed=True)
    connection.add_playbook(user_id, daily_habit="Note one purchase you skipped.", personality_type="The Saver")
    coach = FakeCoach()

    result = _run(checkin_service.get_or_create_today_checkin(connection, user_id, TODAY, coach))

    checkin = result["checkin"]
    # 30 + round(40 * 4/7) + min(3 * 4, 30)
    assert checkin["money_mind_score"] == 65
    assert checkin["habit_text"] == "Note one purchase you skipped."
    assert checkin["streak_at_creation"] == 5
    assert result["streak"] == {"current_streak": 5, "longest_streak": 5}
    assert "The Saver" in coach.prompts[0]


def test_concurrent_creation_reuses_winner_row() -> None:
    connection = FakeHabitsConnection()
    user_id = uuid4()
    winner: dict = {}

    def create_first(owner, day):
        winner.update(connection.add_checkin(owner, day, ai_insight="from the other request"))

    connection.before_checkin_insert = create_first

    result = _run(checkin_service.get_or_create_today_checkin(connection, user_id, TODAY, None))

    assert result["created"] is False
    assert result["checkin"]["id"] == winner["id"]
    assert len(connection.checkins) == 1


def test_insight_falls_back_when_provider_fails() -> None:
    connection = FakeHabitsConnection()

    result = _run(
        checkin_service.get_or_create_today_checkin(connection, uuid4(), TODAY, FakeCoach(fail=True))
    )

    assert "Money Mind score" in result["checkin"]["ai_insight"]


def test_complete_habit_is_idempotent() -> None:
    connection = FakeHabitsConnection()
    user_id = uuid4()

    first = _run(checkin_service.complete_habit(connection, user_id, TODAY, None))
    second = _run(checkin_service.complete_habit(connection, user_id, TODAY, None))

    assert first["already_completed"] is False
    assert first["checkin"]["habit_completed"] is True
    assert second["already_completed"] is True
    assert second["checkin"]["id"] == first["checkin"]["id"]
    assert len(connection.checkins) == 1


def test_seventh_day_emits_one_streak_achievement() -> None:
    connection = FakeHabitsConnection()
    user_id = uuid4()
    for day in _days_before(TODAY, 1, 2, 3, 4, 5, 6):
        connection.add_checkin(user_id, day)

    _run(checkin_service.get_or_create_today_checkin(connection, user_id, TODAY, None))
    _run(checkin_service.complete_habit(connection, user_id, TODAY, None))

    moments = list(connection.moments.values())
    assert len(moments) == 1
    assert moments[0]["moment_type"] == "streak_achievement"
    assert moments[0]["day_number"] == 7
    assert moments[0]["title"] == "7-Day Streak!"


def test_no_moment_off_threshold() -> None:
    connection = FakeHabitsConnection()
    user_id = uuid4()
    for day in _days_before(TODAY, 1, 2):
        connection.add_checkin(user_id, day)

    _run(checkin_service.get_or_create_today_checkin(connection, user_id, TODAY, None))

    assert connection.moments == {}
