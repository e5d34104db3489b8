"""Transformation moments: append-only, shareable records of milestones."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Literal
from uuid import UUID

if TYPE_CHECKING:
    from psycopg import AsyncConnection
else:
    AsyncConnection = Any

logger = logging.getLogger(__name__)

MomentType = Literal["milestone", "weekly_win", "streak_achievement", "completion"]

MOMENT_COLUMNS = "id, user_id, moment_type, day_number, title, stat_label, stat_value, quote, created_at"

MOMENT_QUOTES: dict[str, tuple[str, ...]] = {
    "streak_achievement": (
        "Small steps, taken every day, become the path.",
        "Consistency is quieter than motivation, and it lasts longer.",
        "I showed up for my money again today.",
    ),
    "weekly_win": (
        "Another week of choosing my future self.",
        "I am learning what my money has been trying to tell me.",
        "Progress counts even when nobody is watching.",
    ),
    "milestone": (
        "Halfway there, and I am not the same person who started.",
        "My habits are changing my story.",
    ),
    "completion": (
        "Thirty days ago I made a promise. Today I kept it.",
        "I did not just reset my money. I reset my mindset.",
    ),
}

STREAK_THRESHOLDS: tuple[int, ...] = (7, 14, 21, 30)


def pick_quote(moment_type: str, day_number: int) -> str:
    quotes = MOMENT_QUOTES[moment_type]
    return quotes[day_number % len(quotes)]


async def emit_moment(
    connection: AsyncConnection,
    user_id: UUID,
    *,
    moment_type: MomentType,
    day_number: int,
    title: str,
    stat_label: str,
    stat_value: str,
) -> tuple[dict[str, Any], bool]:
    """
    Insert one moment unless `(user, type, day)` already exists.

    Returns `(row, created)`; a duplicate returns the stored row with
    `created=False`.
    """
    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            INSERT INTO transformation_moments (user_id, moment_type, day_number, title, stat_label, stat_value, quote)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (user_id, moment_type, day_number) DO NOTHING
            RETURNING {MOMENT_COLUMNS}
            """,
            (user_id, moment_type, day_number, title, stat_label, stat_value, pick_quote(moment_type, day_number)),
        )
        row = await cursor.fetchone()
        if row is not None:
            logger.info("Emitted %s moment for user %s at day %d", moment_type, user_id, day_number)
            return row, True

        await cursor.execute(
            f"""
            SELECT {MOMENT_COLUMNS}
            FROM transformation_moments
            WHERE user_id = %s
              AND moment_type = %s
              AND day_number = %s
            """,
            (user_id, moment_type, day_number),
        )
        existing = await cursor.fetchone()

    logger.debug("Suppressed duplicate %s moment for user %s at day %d", moment_type, user_id, day_number)
    return existing, False


async def emit_streak_achievement(
    connection: AsyncConnection,
    user_id: UUID,
    streak: int,
) -> dict[str, Any] | None:
    """Emit a streak moment when `streak` lands exactly on a threshold."""
    if streak not in STREAK_THRESHOLDS:
        return None
    row, _ = await emit_moment(
        connection,
        user_id,
        moment_type="streak_achievement",
        day_number=streak,
        title=f"{streak}-Day Streak!",
        stat_label="Days in a row",
        stat_value=str(streak),
    )
    return row


async def list_moments(connection: AsyncConnection, user_id: UUID) -> list[dict[str, Any]]:
    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            SELECT {MOMENT_COLUMNS}
            FROM transformation_moments
            WHERE user_id = %s
            ORDER BY created_at DESC, day_number DESC
            """,
            (user_id,),
        )
        return await cursor.fetchall()
