"""Money Playbook generation from a completed interview."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal, get_args
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from moneymind.ai.prompts import PLAYBOOK_SYSTEM_PROMPT, build_playbook_prompt
from moneymind.ai.provider import LLMProvider
from moneymind.errors import UpstreamProviderError
from moneymind.interview import answered_questions, validate_interview_responses

if TYPE_CHECKING:
    from psycopg import AsyncConnection
else:
    AsyncConnection = Any

logger = logging.getLogger(__name__)

PersonalityType = Literal[
    "The Saver",
    "The Spender",
    "The Avoider",
    "The Overthinker",
    "The Dreamer",
    "The Hustler",
    "The People-Pleaser",
    "The Impulse Buyer",
    "The Planner",
    "The Survivor",
]
PERSONALITY_TYPES: tuple[str, ...] = get_args(PersonalityType)

PLAYBOOK_COLUMNS = (
    "id, user_id, interview_id, personality_type, personality_description, "
    "saving_habit_score, financial_awareness_score, spending_trigger_intensity, "
    "thirty_day_plan, daily_habit, strengths, weaknesses, spending_triggers, "
    "purpose_statement, encouragement, created_at"
)
INTERVIEW_COLUMNS = "id, user_id, responses, completed_at, created_at"


class _PlaybookModel(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class PlaybookScores(_PlaybookModel):
    saving_habit: int = Field(ge=0, le=100)
    financial_awareness: int = Field(ge=0, le=100)
    spending_trigger_intensity: int = Field(ge=0, le=100)


class ThirtyDayPlan(_PlaybookModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    week1: list[str] = Field(min_length=1)
    week2: list[str] = Field(min_length=1)
    week3: list[str] = Field(min_length=1)
    week4: list[str] = Field(min_length=1)

    @field_validator("week1", "week2", "week3", "week4")
    @classmethod
    def tasks_not_blank(cls, tasks: list[str]) -> list[str]:
        if any(not task for task in tasks):
            raise ValueError("tasks must be non-empty strings")
        return tasks

    def weeks(self) -> list[list[str]]:
        return [self.week1, self.week2, self.week3, self.week4]


class PlaybookPayload(_PlaybookModel):
    personality_type: PersonalityType
    personality_description: str = Field(min_length=1)
    scores: PlaybookScores
    thirty_day_plan: ThirtyDayPlan
    daily_habit: str = Field(min_length=1, max_length=300)
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    spending_triggers: list[str] = Field(default_factory=list)
    purpose_statement: str = ""
    encouragement: str = ""


async def generate_playbook(
    connection: AsyncConnection,
    user_id: UUID,
    responses: Any,
    completed_at: datetime | None,
    provider: LLMProvider | None,
) -> dict[str, Any]:
    """
    Validate the interview, ask the model for a playbook, then persist both.

    Nothing is written unless the model produced a fully valid playbook
    (`provider.extract` retries once and raises `ExtractionFailed` after).
    """
    validated = validate_interview_responses(responses)
    if provider is None:
        raise UpstreamProviderError("Playbook generation is unavailable because no language model is configured.")

    payload = await provider.extract(
        build_playbook_prompt(answered_questions(validated), list(PERSONALITY_TYPES)),
        PlaybookPayload,
        system_prompt=PLAYBOOK_SYSTEM_PROMPT,
    )

    async with connection.transaction():
        async with connection.cursor() as cursor:
            await cursor.execute(
                f"""
                INSERT INTO interviews (user_id, responses, completed_at)
                VALUES (%s, %s::jsonb, COALESCE(%s, NOW()))
                RETURNING {INTERVIEW_COLUMNS}
                """,
                (user_id, json.dumps(validated), completed_at),
            )
            interview = await cursor.fetchone()

            await cursor.execute(
                f"""
                INSERT INTO money_playbooks (
                    user_id, interview_id, personality_type, personality_description,
                    saving_habit_score, financial_awareness_score, spending_trigger_intensity,
                    thirty_day_plan, daily_habit, strengths, weaknesses, spending_triggers,
                    purpose_statement, encouragement
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s::jsonb, %s, %s::jsonb, %s::jsonb, %s::jsonb, %s, %s)
                RETURNING {PLAYBOOK_COLUMNS}
                """,
                (
                    user_id,
                    interview["id"],
                    payload.personality_type,
                    payload.personality_description,
                    payload.scores.saving_habit,
                    payload.scores.financial_awareness,
                    payload.scores.spending_trigger_intensity,
                    json.dumps(payload.thirty_day_plan.model_dump()),
                    payload.daily_habit,
                    json.dumps(payload.strengths),
                    json.dumps(payload.weaknesses),
                    json.dumps(payload.spending_triggers),
                    payload.purpose_statement,
                    payload.encouragement,
                ),
            )
            playbook = await cursor.fetchone()

    logger.info("Generated %s playbook for user %s", payload.personality_type, user_id)
    return {"interview": interview, "playbook": playbook}


async def get_latest_playbook(connection: AsyncConnection, user_id: UUID) -> dict[str, Any] | None:
    """Most recent playbook; a retaken interview supersedes older ones."""
    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            SELECT {PLAYBOOK_COLUMNS}
            FROM money_playbooks
            WHERE user_id = %s
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (user_id,),
        )
        return await cursor.fetchone()


async def get_playbook_for_interview(
    connection: AsyncConnection, user_id: UUID, interview_id: UUID
) -> dict[str, Any] | None:
    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            SELECT {PLAYBOOK_COLUMNS}
            FROM money_playbooks
            WHERE user_id = %s AND interview_id = %s
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (user_id, interview_id),
        )
        return await cursor.fetchone()


async def get_latest_interview(connection: AsyncConnection, user_id: UUID) -> dict[str, Any]:
    # Latest by insertion; a backdated completedAt does not reorder retakes.
    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            SELECT {INTERVIEW_COLUMNS}
            FROM interviews
            WHERE user_id = %s
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (user_id,),
        )
        interview = await cursor.fetchone()

    if interview is None:
        return {"has_interview": False, "interview": None, "playbook": None}

    return {
        "has_interview": True,
        "interview": interview,
        "playbook": await get_playbook_for_interview(connection, user_id, interview["id"]),
    }
