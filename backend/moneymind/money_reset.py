"""30-Day Money Reset endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

from .ai.provider import LLMProvider, get_llm_provider
from .auth import get_current_user_id
from .database import get_db_connection
from .errors import InvalidInput, PlaybookRequired
from .schemas import CamelModel
from .services.moments_service import list_moments
from .services.money_reset_service import (
    complete_mission,
    enroll,
    get_reset_state,
    list_reflections,
    next_day,
    submit_weekly_reflection,
)
from .utils import get_local_today

router = APIRouter(prefix="/money-reset", tags=["money-reset"])


class EnrollmentOut(CamelModel):
    id: UUID
    status: str
    current_day: int
    start_date: date
    total_missions_completed: int
    completed_at: datetime | None = None


class MissionOut(CamelModel):
    day: int
    week_number: int
    week_name: str
    mission_type: str
    title: str
    description: str
    action_prompt: str
    is_completed: bool = False


class StreakSummaryOut(CamelModel):
    current_streak: int
    longest_streak: int
    badges: list[str]


class WeeklyReflectionStateOut(CamelModel):
    week_number: int
    week_name: str
    prompt_questions: list[str]
    is_completed: bool
    ai_coaching_response: str | None = None


class ResetStateResponse(CamelModel):
    enrolled: bool
    enrollment: EnrollmentOut | None = None
    today_mission: MissionOut | None = None
    streak: StreakSummaryOut
    completed_missions: int
    total_missions: int
    is_reflection_day: bool
    weekly_reflection: WeeklyReflectionStateOut | None = None
    week_number: int


class EnrollResponse(CamelModel):
    enrollment: EnrollmentOut
    created: bool


class CompleteMissionRequest(CamelModel):
    mission_id: int = Field(ge=1, le=30)
    reflection: str | None = Field(default=None, max_length=4000)


class MomentOut(CamelModel):
    id: UUID
    moment_type: str
    day_number: int
    title: str
    stat_label: str
    stat_value: str
    quote: str
    created_at: datetime


class CompleteMissionResponse(CamelModel):
    enrollment: EnrollmentOut
    already_completed: bool
    moments: list[MomentOut] = Field(default_factory=list)


class NextDayResponse(CamelModel):
    enrollment: EnrollmentOut
    unlocked: bool


class SubmitReflectionRequest(CamelModel):
    reflection_id: int = Field(ge=1, le=4)
    responses: dict[str, Any]


class WeeklyReflectionOut(CamelModel):
    week_number: int
    week_name: str | None = None
    user_responses: dict[str, Any]
    ai_coaching_response: str
    weekly_stats: dict[str, Any] | None = None
    completed_at: datetime


class SubmitReflectionResponse(WeeklyReflectionOut):
    created: bool


class MissionReflectionOut(CamelModel):
    day_number: int
    mission_type: str
    reflection: str
    completed_at: datetime


class ReflectionsResponse(CamelModel):
    mission_reflections: list[MissionReflectionOut]
    weekly_reflections: list[WeeklyReflectionOut]


def _get_llm_provider() -> LLMProvider | None:
    return get_llm_provider()


def _invalid(exc: InvalidInput) -> HTTPException:
    return HTTPException(status_code=422, detail={"field": exc.field, "message": exc.message})


def _enrollment_out(row: dict) -> EnrollmentOut:
    return EnrollmentOut(
        id=row["id"],
        status=row["status"],
        current_day=row["current_day"],
        start_date=row["start_date"],
        total_missions_completed=row["total_missions_completed"],
        completed_at=row.get("completed_at"),
    )


@router.get("", response_model=ResetStateResponse)
async def get_state(
    today: date = Depends(get_local_today),
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> ResetStateResponse:
    state = await get_reset_state(connection, user_id, today)
    return ResetStateResponse(
        enrolled=state["enrolled"],
        enrollment=_enrollment_out(state["enrollment"]) if state["enrollment"] else None,
        today_mission=MissionOut(**state["today_mission"]) if state["today_mission"] else None,
        streak=StreakSummaryOut(**state["streak"]),
        completed_missions=state["completed_missions"],
        total_missions=state["total_missions"],
        is_reflection_day=state["is_reflection_day"],
        weekly_reflection=(
            WeeklyReflectionStateOut(**state["weekly_reflection"]) if state["weekly_reflection"] else None
        ),
        week_number=state["week_number"],
    )


@router.post("/enroll", response_model=EnrollResponse)
async def enroll_endpoint(
    today: date = Depends(get_local_today),
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> EnrollResponse:
    try:
        row, created = await enroll(connection, user_id, today)
    except PlaybookRequired as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return EnrollResponse(enrollment=_enrollment_out(row), created=created)


@router.post("/complete-mission", response_model=CompleteMissionResponse)
async def complete_mission_endpoint(
    payload: CompleteMissionRequest,
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> CompleteMissionResponse:
    try:
        result = await complete_mission(connection, user_id, payload.mission_id, payload.reflection)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidInput as exc:
        raise _invalid(exc) from exc
    return CompleteMissionResponse(
        enrollment=_enrollment_out(result["enrollment"]),
        already_completed=result["already_completed"],
        moments=[MomentOut(**row) for row in result["moments"]],
    )


@router.post("/next-day", response_model=NextDayResponse)
async def next_day_endpoint(
    today: date = Depends(get_local_today),
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> NextDayResponse:
    try:
        result = await next_day(connection, user_id, today)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidInput as exc:
        raise _invalid(exc) from exc
    return NextDayResponse(enrollment=_enrollment_out(result["enrollment"]), unlocked=result["unlocked"])


@router.post("/submit-reflection", response_model=SubmitReflectionResponse)
async def submit_reflection_endpoint(
    payload: SubmitReflectionRequest,
    today: date = Depends(get_local_today),
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> SubmitReflectionResponse:
    """Weekly reflection with coaching feedback; one per week."""
    try:
        row, created = await submit_weekly_reflection(
            connection,
            user_id,
            payload.reflection_id,
            payload.responses,
            _get_llm_provider(),
            today,
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidInput as exc:
        raise _invalid(exc) from exc
    return SubmitReflectionResponse(
        week_number=row["week_number"],
        user_responses=row["user_responses"],
        ai_coaching_response=row["ai_coaching_response"],
        weekly_stats=row.get("weekly_stats"),
        completed_at=row["completed_at"],
        created=created,
    )


@router.get("/moments", response_model=list[MomentOut])
async def moments_endpoint(
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> list[MomentOut]:
    rows = await list_moments(connection, user_id)
    return [MomentOut(**row) for row in rows]


@router.get("/reflections", response_model=ReflectionsResponse)
async def reflections_endpoint(
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> ReflectionsResponse:
    result = await list_reflections(connection, user_id)
    return ReflectionsResponse(
        mission_reflections=[MissionReflectionOut(**row) for row in result["mission_reflections"]],
        weekly_reflections=[WeeklyReflectionOut(**row) for row in result["weekly_reflections"]],
    )
