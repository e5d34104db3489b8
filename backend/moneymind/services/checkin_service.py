"""Daily check-in and streak engine.

One check-in per user per local calendar day. Streaks are derived from the
check-in history on every read and never stored.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any
from uuid import UUID

from moneymind.ai.prompts import COACH_PERSONA, build_checkin_insight_prompt
from moneymind.ai.provider import LLMProvider
from moneymind.errors import UpstreamProviderError
from moneymind.services.moments_service import emit_streak_achievement
from moneymind.services.playbook_service import get_latest_playbook

if TYPE_CHECKING:
    from psycopg import AsyncConnection
else:
    AsyncConnection = Any

logger = logging.getLogger(__name__)

CHECKIN_COLUMNS = (
    "id, user_id, checkin_date, money_mind_score, habit_text, habit_completed, "
    "ai_insight, streak_at_creation, created_at, completed_at"
)

SCORE_BASE = 30
SCORE_COMPLETION_WEIGHT = 40
SCORE_STREAK_STEP = 3
SCORE_STREAK_CAP = 30
COMPLETION_WINDOW_DAYS = 7

DEFAULT_HABITS: tuple[str, ...] = (
    "Check your account balance before your first purchase today.",
    "Write down every purchase you make today, no matter how small.",
    "Wait 24 hours before buying anything that is not a need.",
    "Move $5 into savings and notice how it feels.",
    "Name one thing you are grateful to already own.",
    "Unsubscribe from one store email list.",
    "Pack or cook one meal instead of buying it.",
)


def compute_streak(dates: Iterable[date], today: date) -> int:
    """Consecutive check-in days ending at `today`; zero when today has none."""
    seen = set(dates)
    streak = 0
    cursor = today
    while cursor in seen:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def longest_streak(dates: Iterable[date]) -> int:
    ordered = sorted(set(dates))
    best = 0
    run = 0
    previous: date | None = None
    for current in ordered:
        run = run + 1 if previous is not None and current - previous == timedelta(days=1) else 1
        best = max(best, run)
        previous = current
    return best


def completion_rate(history: list[dict[str, Any]], today: date) -> float:
    """Share of the previous seven days with a completed habit."""
    window_start = today - timedelta(days=COMPLETION_WINDOW_DAYS)
    completed = sum(
        1
        for row in history
        if window_start <= row["checkin_date"] < today and row["habit_completed"]
    )
    return completed / COMPLETION_WINDOW_DAYS


def money_mind_score(completion_rate_7d: float, previous_streak: int) -> int:
    """
    Daily score in [0, 100].

    Formula:
    30 + round(40 * completion_rate_last_7_days) + min(3 * previous_streak, 30)
    """
    raw = (
        SCORE_BASE
        + round(SCORE_COMPLETION_WEIGHT * completion_rate_7d)
        + min(SCORE_STREAK_STEP * max(previous_streak, 0), SCORE_STREAK_CAP)
    )
    return max(0, min(100, raw))


def pick_habit(today: date, playbook: dict[str, Any] | None) -> str:
    if playbook and (playbook.get("daily_habit") or "").strip():
        return playbook["daily_habit"].strip()
    return DEFAULT_HABITS[today.toordinal() % len(DEFAULT_HABITS)]


def fallback_insight(score: int, streak: int) -> str:
    if streak > 1:
        return f"{streak} days in a row. Your Money Mind score is {score}; keep the chain going with today's habit."
    if score >= 60:
        return f"Your Money Mind score is {score}. One small habit today keeps the momentum."
    return f"Your Money Mind score is {score}. Every streak starts with a single day; today's habit is a good start."


def streak_state(history_dates: Iterable[date], today: date) -> dict[str, int]:
    dates = list(history_dates)
    return {
        "current_streak": compute_streak(dates, today),
        "longest_streak": longest_streak(dates),
    }


async def fetch_checkin_dates(connection: AsyncConnection, user_id: UUID) -> list[dict[str, Any]]:
    async with connection.cursor() as cursor:
        await cursor.execute(
            """
            SELECT checkin_date, habit_completed
            FROM daily_checkins
            WHERE user_id = %s
            ORDER BY checkin_date DESC
            """,
            (user_id,),
        )
        return await cursor.fetchall()


async def get_checkin(connection: AsyncConnection, user_id: UUID, checkin_date: date) -> dict[str, Any] | None:
    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            SELECT {CHECKIN_COLUMNS}
            FROM daily_checkins
            WHERE user_id = %s
              AND checkin_date = %s
            """,
            (user_id, checkin_date),
        )
        return await cursor.fetchone()


async def _generate_insight(
    provider: LLMProvider | None,
    *,
    today: date,
    score: int,
    streak: int,
    habit_text: str,
    personality_type: str | None,
) -> str:
    if provider is None:
        return fallback_insight(score, streak)
    try:
        text = await provider.complete(
            build_checkin_insight_prompt(
                today=today,
                score=score,
                streak=streak,
                habit_text=habit_text,
                personality_type=personality_type,
            ),
            system_prompt=COACH_PERSONA,
        )
    except UpstreamProviderError:
        logger.warning("Check-in insight fell back to default text")
        return fallback_insight(score, streak)
    return text.strip() or fallback_insight(score, streak)


async def get_or_create_today_checkin(
    connection: AsyncConnection,
    user_id: UUID,
    today: date,
    provider: LLMProvider | None,
) -> dict[str, Any]:
    """
    Return today's check-in, creating it on first call.

    Concurrent first calls race on the unique `(user_id, checkin_date)` key;
    the loser re-reads the winner's row, so exactly one record exists.
    """
    existing = await get_checkin(connection, user_id, today)
    if existing is not None:
        history = await fetch_checkin_dates(connection, user_id)
        return {
            "checkin": existing,
            "streak": streak_state((row["checkin_date"] for row in history), today),
            "created": False,
        }

    history = await fetch_checkin_dates(connection, user_id)
    previous_streak = compute_streak((row["checkin_date"] for row in history), today - timedelta(days=1))
    score = money_mind_score(completion_rate(history, today), previous_streak)

    playbook = await get_latest_playbook(connection, user_id)
    habit_text = pick_habit(today, playbook)
    insight = await _generate_insight(
        provider,
        today=today,
        score=score,
        streak=previous_streak + 1,
        habit_text=habit_text,
        personality_type=playbook["personality_type"] if playbook else None,
    )

    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            INSERT INTO daily_checkins (user_id, checkin_date, money_mind_score, habit_text, ai_insight, streak_at_creation)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (user_id, checkin_date) DO NOTHING
            RETURNING {CHECKIN_COLUMNS}
            """,
            (user_id, today, score, habit_text, insight, previous_streak + 1),
        )
        row = await cursor.fetchone()

    created = row is not None
    if not created:
        logger.info("Check-in for user %s on %s was created concurrently; reusing it", user_id, today)
        row = await get_checkin(connection, user_id, today)

    dates = [item["checkin_date"] for item in history]
    if today not in dates:
        dates.append(today)
    state = streak_state(dates, today)

    if created:
        await emit_streak_achievement(connection, user_id, state["current_streak"])

    return {"checkin": row, "streak": state, "created": created}


async def complete_habit(
    connection: AsyncConnection,
    user_id: UUID,
    today: date,
    provider: LLMProvider | None,
) -> dict[str, Any]:
    """Mark today's habit done. Repeat calls are no-ops flagged `already_completed`."""
    current = await get_or_create_today_checkin(connection, user_id, today, provider)

    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            UPDATE daily_checkins
            SET habit_completed = TRUE,
                completed_at = NOW()
            WHERE user_id = %s
              AND checkin_date = %s
              AND habit_completed = FALSE
            RETURNING {CHECKIN_COLUMNS}
            """,
            (user_id, today),
        )
        row = await cursor.fetchone()

    if row is None:
        logger.debug("Habit for user %s on %s was already completed", user_id, today)
        return {"checkin": current["checkin"], "streak": current["streak"], "already_completed": True}

    await emit_streak_achievement(connection, user_id, current["streak"]["current_streak"])
    return {"checkin": row, "streak": current["streak"], "already_completed": False}
