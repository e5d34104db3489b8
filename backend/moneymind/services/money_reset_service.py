"""30-Day Money Reset programme.

Missions come from the latest playbook's four-week plan. A user works through
one mission per day: complete today's mission, then unlock the next day (at
most one unlock per calendar day). Weekly reflections close out each week.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import TYPE_CHECKING, Any
from uuid import UUID

from moneymind.ai.prompts import COACH_PERSONA, build_weekly_coaching_prompt
from moneymind.ai.provider import LLMProvider
from moneymind.errors import InvalidInput, PlaybookRequired, UpstreamProviderError
from moneymind.services.checkin_service import fetch_checkin_dates, streak_state
from moneymind.services.moments_service import emit_moment
from moneymind.services.playbook_service import get_latest_playbook

if TYPE_CHECKING:
    from psycopg import AsyncConnection
else:
    AsyncConnection = Any

logger = logging.getLogger(__name__)

PROGRAMME_DAYS = 30
HALFWAY_DAY = 15

WEEK_NAMES: dict[int, str] = {
    1: "The Mirror",
    2: "The Detox",
    3: "The Rewire",
    4: "The New You",
}

WEEK_MISSION_TYPES: dict[int, str] = {
    1: "identity",
    2: "detox",
    3: "habit",
    4: "action",
}

# Reflection day -> week it closes.
REFLECTION_DAYS: dict[int, int] = {7: 1, 14: 2, 21: 3, 28: 4}

WEEKLY_PROMPTS: dict[int, tuple[str, ...]] = {
    1: (
        "What did you notice about your spending that surprised you?",
        "Which money belief from your interview showed up this week?",
        "What is one thing you want to keep doing?",
    ),
    2: (
        "Which spending trigger was hardest to resist?",
        "What did you do instead of spending?",
        "How did it feel to go without?",
    ),
    3: (
        "Which new habit felt most natural?",
        "Where did you slip, and what would you do differently?",
        "What is your money story now?",
    ),
    4: (
        "What is the biggest change you have made in 30 days?",
        "Which habit will you carry forward?",
        "What would you tell yourself from day one?",
    ),
}

# (badge id, longest check-in streak required)
BADGES: tuple[tuple[str, int], ...] = (
    ("week_one", 7),
    ("two_weeks", 14),
    ("three_weeks", 21),
    ("champion", 30),
)

ENROLLMENT_COLUMNS = (
    "id, user_id, status, current_day, start_date, last_unlocked_on, "
    "total_missions_completed, completed_at, created_at"
)
REFLECTION_COLUMNS = "id, enrollment_id, week_number, user_responses, ai_coaching_response, weekly_stats, completed_at"


def week_for_day(day: int) -> int:
    return min((day - 1) // 7 + 1, 4)


def earned_badges(longest: int) -> list[str]:
    return [badge for badge, threshold in BADGES if longest >= threshold]


def build_mission(day: int, playbook: dict[str, Any]) -> dict[str, Any]:
    """
    Mission for one programme day.

    Day d uses week `min((d-1)//7 + 1, 4)` of the plan and task
    `(d-1) % 7` of that week, wrapping when the week has fewer tasks.
    """
    if day < 1 or day > PROGRAMME_DAYS:
        raise InvalidInput("mission_id", f"must be between 1 and {PROGRAMME_DAYS}")

    week = week_for_day(day)
    plan = playbook["thirty_day_plan"] or {}
    tasks = plan.get(f"week{week}") or [playbook.get("daily_habit") or "Check in with your money today."]
    task = tasks[(day - 1) % 7 % len(tasks)]

    if day in REFLECTION_DAYS:
        return {
            "day": day,
            "week_number": week,
            "week_name": WEEK_NAMES[week],
            "mission_type": "reflection",
            "title": f"Day {day}: Week {week} Reflection",
            "description": task,
            "action_prompt": "Look back on this week and answer the reflection questions.",
        }

    return {
        "day": day,
        "week_number": week,
        "week_name": WEEK_NAMES[week],
        "mission_type": WEEK_MISSION_TYPES[week],
        "title": f"Day {day}: {WEEK_NAMES[week]}",
        "description": task,
        "action_prompt": task,
    }


def fallback_coaching(week_number: int, stats: dict[str, Any]) -> str:
    completed = stats.get("missions_completed", 0)
    return (
        f"You finished week {week_number} ({WEEK_NAMES[week_number]}) with {completed} missions completed. "
        "Every honest answer here is progress. Pick one habit from this week and carry it into the next."
    )


async def _get_latest_enrollment(connection: AsyncConnection, user_id: UUID) -> dict[str, Any] | None:
    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            SELECT {ENROLLMENT_COLUMNS}
            FROM reset_enrollments
            WHERE user_id = %s
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (user_id,),
        )
        return await cursor.fetchone()


async def _get_active_enrollment(connection: AsyncConnection, user_id: UUID) -> dict[str, Any]:
    enrollment = await _get_latest_enrollment(connection, user_id)
    if enrollment is None or enrollment["status"] != "active":
        raise LookupError("No active Money Reset enrollment")
    return enrollment


async def _completed_days(connection: AsyncConnection, enrollment_id: UUID) -> set[int]:
    async with connection.cursor() as cursor:
        await cursor.execute(
            "SELECT day_number FROM mission_completions WHERE enrollment_id = %s",
            (enrollment_id,),
        )
        rows = await cursor.fetchall()
    return {row["day_number"] for row in rows}


async def _get_weekly_reflection(
    connection: AsyncConnection,
    enrollment_id: UUID,
    week_number: int,
) -> dict[str, Any] | None:
    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            SELECT {REFLECTION_COLUMNS}
            FROM weekly_reflections
            WHERE enrollment_id = %s
              AND week_number = %s
            """,
            (enrollment_id, week_number),
        )
        return await cursor.fetchone()


async def get_streak_summary(connection: AsyncConnection, user_id: UUID, today: date) -> dict[str, Any]:
    history = await fetch_checkin_dates(connection, user_id)
    state = streak_state((row["checkin_date"] for row in history), today)
    return {**state, "badges": earned_badges(state["longest_streak"])}


async def enroll(connection: AsyncConnection, user_id: UUID, today: date) -> tuple[dict[str, Any], bool]:
    """Start the programme. Needs a playbook; repeat calls return the active enrollment."""
    if await get_latest_playbook(connection, user_id) is None:
        raise PlaybookRequired("Complete the Money Mind Interview to unlock the 30-Day Money Reset.")

    existing = await _get_latest_enrollment(connection, user_id)
    if existing is not None and existing["status"] == "active":
        return existing, False

    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            INSERT INTO reset_enrollments (user_id, status, current_day, start_date, last_unlocked_on)
            VALUES (%s, 'active', 1, %s, %s)
            ON CONFLICT (user_id) WHERE status = 'active' DO NOTHING
            RETURNING {ENROLLMENT_COLUMNS}
            """,
            (user_id, today, today),
        )
        row = await cursor.fetchone()

    if row is None:
        return await _get_active_enrollment(connection, user_id), False

    logger.info("User %s enrolled in the Money Reset", user_id)
    return row, True


async def get_reset_state(connection: AsyncConnection, user_id: UUID, today: date) -> dict[str, Any]:
    streak = await get_streak_summary(connection, user_id, today)
    enrollment = await _get_latest_enrollment(connection, user_id)
    if enrollment is None:
        return {
            "enrolled": False,
            "enrollment": None,
            "today_mission": None,
            "streak": streak,
            "completed_missions": 0,
            "total_missions": PROGRAMME_DAYS,
            "is_reflection_day": False,
            "weekly_reflection": None,
            "week_number": 0,
        }

    playbook = await get_latest_playbook(connection, user_id)
    day = enrollment["current_day"]
    completed = await _completed_days(connection, enrollment["id"])

    mission = None
    if playbook is not None:
        mission = {**build_mission(day, playbook), "is_completed": day in completed}

    week_number = week_for_day(day)
    reflection_week = REFLECTION_DAYS.get(day)
    weekly_reflection = None
    if reflection_week is not None:
        stored = await _get_weekly_reflection(connection, enrollment["id"], reflection_week)
        weekly_reflection = {
            "week_number": reflection_week,
            "week_name": WEEK_NAMES[reflection_week],
            "prompt_questions": list(WEEKLY_PROMPTS[reflection_week]),
            "is_completed": stored is not None,
            "ai_coaching_response": stored["ai_coaching_response"] if stored else None,
        }

    return {
        "enrolled": enrollment["status"] == "active",
        "enrollment": enrollment,
        "today_mission": mission,
        "streak": streak,
        "completed_missions": len(completed),
        "total_missions": PROGRAMME_DAYS,
        "is_reflection_day": reflection_week is not None,
        "weekly_reflection": weekly_reflection,
        "week_number": week_number,
    }


async def _emit_programme_moments(
    connection: AsyncConnection,
    user_id: UUID,
    day: int,
    total_completed: int,
) -> list[dict[str, Any]]:
    emitted: list[dict[str, Any]] = []

    if day in REFLECTION_DAYS:
        week = REFLECTION_DAYS[day]
        row, created = await emit_moment(
            connection,
            user_id,
            moment_type="weekly_win",
            day_number=day,
            title=f"Week {week} Complete: {WEEK_NAMES[week]}",
            stat_label="Missions completed",
            stat_value=str(total_completed),
        )
        if created:
            emitted.append(row)

    if day == HALFWAY_DAY:
        row, created = await emit_moment(
            connection,
            user_id,
            moment_type="milestone",
            day_number=day,
            title="Halfway There!",
            stat_label="Days completed",
            stat_value=str(day),
        )
        if created:
            emitted.append(row)

    if day == PROGRAMME_DAYS:
        row, created = await emit_moment(
            connection,
            user_id,
            moment_type="completion",
            day_number=day,
            title="30-Day Money Reset Complete!",
            stat_label="Missions completed",
            stat_value=str(total_completed),
        )
        if created:
            emitted.append(row)

    return emitted


async def complete_mission(
    connection: AsyncConnection,
    user_id: UUID,
    day: int,
    reflection: str | None,
) -> dict[str, Any]:
    """
    Complete the current day's mission.

    Only the current day can be completed. A repeat call returns
    `already_completed=True` and changes nothing.
    """
    enrollment = await _get_active_enrollment(connection, user_id)
    if day != enrollment["current_day"]:
        raise InvalidInput("mission_id", f"only today's mission (day {enrollment['current_day']}) can be completed")

    reflection_text = (reflection or "").strip() or None

    async with connection.transaction():
        async with connection.cursor() as cursor:
            await cursor.execute(
                """
                INSERT INTO mission_completions (enrollment_id, day_number, reflection)
                VALUES (%s, %s, %s)
                ON CONFLICT (enrollment_id, day_number) DO NOTHING
                RETURNING id
                """,
                (enrollment["id"], day, reflection_text),
            )
            inserted = await cursor.fetchone()

            if inserted is None:
                logger.debug("Mission day %d already completed for user %s", day, user_id)
                return {"enrollment": enrollment, "already_completed": True, "moments": []}

            await cursor.execute(
                f"""
                UPDATE reset_enrollments
                SET total_missions_completed = total_missions_completed + 1,
                    status = CASE WHEN %s >= %s THEN 'completed' ELSE status END,
                    completed_at = CASE WHEN %s >= %s THEN NOW() ELSE completed_at END
                WHERE id = %s
                RETURNING {ENROLLMENT_COLUMNS}
                """,
                (day, PROGRAMME_DAYS, day, PROGRAMME_DAYS, enrollment["id"]),
            )
            updated = await cursor.fetchone()

    moments = await _emit_programme_moments(connection, user_id, day, updated["total_missions_completed"])
    return {"enrollment": updated, "already_completed": False, "moments": moments}


async def next_day(connection: AsyncConnection, user_id: UUID, today: date) -> dict[str, Any]:
    """Unlock the next programme day; at most once per calendar day."""
    enrollment = await _get_active_enrollment(connection, user_id)
    day = enrollment["current_day"]

    if day >= PROGRAMME_DAYS:
        raise InvalidInput("current_day", "this is the final day of the programme")
    if day not in await _completed_days(connection, enrollment["id"]):
        raise InvalidInput("current_day", "complete today's mission before moving on")
    last_unlocked = enrollment.get("last_unlocked_on")
    if last_unlocked is not None and last_unlocked >= today:
        raise InvalidInput("current_day", "your next mission unlocks tomorrow")

    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            UPDATE reset_enrollments
            SET current_day = current_day + 1,
                last_unlocked_on = %s
            WHERE id = %s
              AND current_day = %s
              AND (last_unlocked_on IS NULL OR last_unlocked_on < %s)
            RETURNING {ENROLLMENT_COLUMNS}
            """,
            (today, enrollment["id"], day, today),
        )
        row = await cursor.fetchone()

    if row is None:
        # Another request unlocked the day first.
        return {"enrollment": await _get_active_enrollment(connection, user_id), "unlocked": False}

    logger.info("User %s unlocked Money Reset day %d", user_id, row["current_day"])
    return {"enrollment": row, "unlocked": True}


def _clean_responses(responses: dict[str, Any]) -> dict[str, str]:
    cleaned = {str(key): str(value).strip() for key, value in responses.items() if value is not None}
    cleaned = {key: value for key, value in cleaned.items() if value}
    if not cleaned:
        raise InvalidInput("responses", "answer at least one reflection question")
    return cleaned


async def submit_weekly_reflection(
    connection: AsyncConnection,
    user_id: UUID,
    week_number: int,
    responses: dict[str, Any],
    provider: LLMProvider | None,
    today: date,
) -> tuple[dict[str, Any], bool]:
    """Store one week's reflection with coaching text. One per week; repeats return the stored row."""
    if week_number not in WEEK_NAMES:
        raise InvalidInput("reflection_id", "must be a week number between 1 and 4")

    enrollment = await _get_latest_enrollment(connection, user_id)
    if enrollment is None:
        raise LookupError("No Money Reset enrollment")
    if enrollment["current_day"] < 7 * week_number:
        raise InvalidInput("reflection_id", f"week {week_number} reflection opens on day {7 * week_number}")

    existing = await _get_weekly_reflection(connection, enrollment["id"], week_number)
    if existing is not None:
        return existing, False

    answers = _clean_responses(responses)
    week_days = range(7 * (week_number - 1) + 1, 7 * week_number + 1)
    completed = await _completed_days(connection, enrollment["id"])
    streak = await get_streak_summary(connection, user_id, today)
    stats = {
        "missions_completed": sum(1 for day in week_days if day in completed),
        "current_streak": streak["current_streak"],
    }

    coaching = fallback_coaching(week_number, stats)
    if provider is not None:
        try:
            text = await provider.complete(
                build_weekly_coaching_prompt(
                    week_number=week_number,
                    week_name=WEEK_NAMES[week_number],
                    responses=answers,
                    stats=stats,
                ),
                system_prompt=COACH_PERSONA,
            )
            coaching = text.strip() or coaching
        except UpstreamProviderError:
            logger.warning("Weekly coaching for user %s fell back to default text", user_id)

    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            INSERT INTO weekly_reflections (enrollment_id, week_number, user_responses, ai_coaching_response, weekly_stats)
            VALUES (%s, %s, %s::jsonb, %s, %s::jsonb)
            ON CONFLICT (enrollment_id, week_number) DO NOTHING
            RETURNING {REFLECTION_COLUMNS}
            """,
            (enrollment["id"], week_number, json.dumps(answers), coaching, json.dumps(stats)),
        )
        row = await cursor.fetchone()

    if row is None:
        return await _get_weekly_reflection(connection, enrollment["id"], week_number), False
    return row, True


async def list_reflections(connection: AsyncConnection, user_id: UUID) -> dict[str, list[dict[str, Any]]]:
    async with connection.cursor() as cursor:
        await cursor.execute(
            """
            SELECT mc.day_number, mc.reflection, mc.completed_at
            FROM mission_completions mc
            JOIN reset_enrollments e ON e.id = mc.enrollment_id
            WHERE e.user_id = %s
              AND mc.reflection IS NOT NULL
            ORDER BY mc.completed_at DESC
            """,
            (user_id,),
        )
        mission_rows = await cursor.fetchall()

        await cursor.execute(
            """
            SELECT wr.week_number, wr.user_responses, wr.ai_coaching_response, wr.weekly_stats, wr.completed_at
            FROM weekly_reflections wr
            JOIN reset_enrollments e ON e.id = wr.enrollment_id
            WHERE e.user_id = %s
            ORDER BY wr.completed_at DESC
            """,
            (user_id,),
        )
        weekly_rows = await cursor.fetchall()

    mission_reflections = [
        {
            "day_number": row["day_number"],
            "mission_type": "reflection" if row["day_number"] in REFLECTION_DAYS else WEEK_MISSION_TYPES[week_for_day(row["day_number"])],
            "reflection": row["reflection"],
            "completed_at": row["completed_at"],
        }
        for row in mission_rows
    ]
    weekly_reflections = [
        {**row, "week_name": WEEK_NAMES.get(row["week_number"], "Reflection")}
        for row in weekly_rows
    ]
    return {"mission_reflections": mission_reflections, "weekly_reflections": weekly_reflections}
