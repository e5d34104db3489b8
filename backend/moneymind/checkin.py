from datetime import date, datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends

from .ai.provider import LLMProvider, get_llm_provider
from .auth import get_current_user_id
from .database import get_db_connection
from .schemas import CamelModel
from .services.checkin_service import complete_habit, get_or_create_today_checkin
from .utils import get_local_today

# Daily check-in: one record per user per local day; streak is derived on read.
router = APIRouter(prefix="/daily-checkin", tags=["daily-checkin"])


class CheckinOut(CamelModel):
    id: UUID
    checkin_date: date
    money_mind_score: int
    habit_text: str
    habit_completed: bool
    ai_insight: str | None
    streak: int
    completed_at: datetime | None = None


class StreakOut(CamelModel):
    current_streak: int
    longest_streak: int


class CheckinResponse(CamelModel):
    checkin: CheckinOut
    streak: int
    streak_state: StreakOut
    already_completed: bool = False


def _get_llm_provider() -> LLMProvider | None:
    return get_llm_provider()


def _to_response(result: dict[str, Any]) -> CheckinResponse:
    row = result["checkin"]
    state = result["streak"]
    return CheckinResponse(
        checkin=CheckinOut(
            id=row["id"],
            checkin_date=row["checkin_date"],
            money_mind_score=row["money_mind_score"],
            habit_text=row["habit_text"],
            habit_completed=row["habit_completed"],
            ai_insight=row.get("ai_insight"),
            streak=state["current_streak"],
            completed_at=row.get("completed_at"),
        ),
        streak=state["current_streak"],
        streak_state=StreakOut(**state),
        already_completed=result.get("already_completed", False),
    )


@router.get("", response_model=CheckinResponse)
async def get_daily_checkin(
    today: date = Depends(get_local_today),
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> CheckinResponse:
    """Today's check-in, created on first visit of the (local) day."""
    result = await get_or_create_today_checkin(connection, user_id, today, _get_llm_provider())
    return _to_response(result)


@router.post("", response_model=CheckinResponse)
async def post_daily_checkin(
    today: date = Depends(get_local_today),
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> CheckinResponse:
    result = await get_or_create_today_checkin(connection, user_id, today, _get_llm_provider())
    return _to_response(result)


@router.post("/complete-habit", response_model=CheckinResponse)
async def complete_daily_habit(
    today: date = Depends(get_local_today),
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> CheckinResponse:
    """Mark today's habit complete. Calling it twice is harmless."""
    result = await complete_habit(connection, user_id, today, _get_llm_provider())
    return _to_response(result)
