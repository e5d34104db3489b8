"""Interview + Money Playbook endpoints (`/ai/interview`)."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from .ai.provider import LLMProvider, get_llm_provider
from .auth import get_current_user_id
from .database import get_db_connection
from .errors import ExtractionFailed, InvalidInput, UpstreamProviderError
from .interview import INTERVIEW_QUESTIONS
from .schemas import CamelModel
from .services.playbook_service import generate_playbook, get_latest_interview

router = APIRouter(prefix="/ai/interview", tags=["playbook"])


class InterviewSubmitRequest(CamelModel):
    responses: dict[str, Any] | list[dict[str, Any]]
    completed_at: datetime | None = None


class PlaybookScoresOut(CamelModel):
    saving_habit: int
    financial_awareness: int
    spending_trigger_intensity: int


class PlaybookOut(CamelModel):
    id: UUID
    interview_id: UUID
    personality_type: str
    personality_description: str
    scores: PlaybookScoresOut
    thirty_day_plan: dict[str, list[str]]
    daily_habit: str
    strengths: list[str]
    weaknesses: list[str]
    spending_triggers: list[str]
    purpose_statement: str
    encouragement: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: dict) -> "PlaybookOut":
        return cls(
            id=row["id"],
            interview_id=row["interview_id"],
            personality_type=row["personality_type"],
            personality_description=row["personality_description"],
            scores=PlaybookScoresOut(
                saving_habit=row["saving_habit_score"],
                financial_awareness=row["financial_awareness_score"],
                spending_trigger_intensity=row["spending_trigger_intensity"],
            ),
            thirty_day_plan=row["thirty_day_plan"],
            daily_habit=row["daily_habit"],
            strengths=row.get("strengths") or [],
            weaknesses=row.get("weaknesses") or [],
            spending_triggers=row.get("spending_triggers") or [],
            purpose_statement=row.get("purpose_statement") or "",
            encouragement=row.get("encouragement") or "",
            created_at=row["created_at"],
        )


class InterviewOut(CamelModel):
    id: UUID
    responses: dict[str, Any]
    completed_at: datetime


class InterviewSubmitResponse(CamelModel):
    interview: InterviewOut
    playbook: PlaybookOut


class LatestInterviewResponse(CamelModel):
    has_interview: bool
    interview: InterviewOut | None = None
    playbook: PlaybookOut | None = None


def _get_llm_provider() -> LLMProvider | None:
    return get_llm_provider()


def _interview_out(row: dict) -> InterviewOut:
    return InterviewOut(id=row["id"], responses=row["responses"], completed_at=row["completed_at"])


@router.get("/questions")
async def list_questions() -> list[dict[str, Any]]:
    return [question.as_dict() for question in INTERVIEW_QUESTIONS]


@router.post("", response_model=InterviewSubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_interview(
    payload: InterviewSubmitRequest,
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> InterviewSubmitResponse:
    """
    Store a completed interview and generate its Money Playbook.

    Retaking the interview creates a new playbook that supersedes the old one.
    """
    try:
        result = await generate_playbook(
            connection,
            user_id,
            payload.responses,
            payload.completed_at,
            _get_llm_provider(),
        )
    except InvalidInput as exc:
        raise HTTPException(status_code=422, detail={"field": exc.field, "message": exc.message}) from exc
    except ExtractionFailed as exc:
        raise HTTPException(
            status_code=502,
            detail="We couldn't build your playbook right now. Your answers were not saved; please try again.",
        ) from exc
    except UpstreamProviderError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return InterviewSubmitResponse(
        interview=_interview_out(result["interview"]),
        playbook=PlaybookOut.from_row(result["playbook"]),
    )


@router.get("/latest", response_model=LatestInterviewResponse)
async def latest_interview(
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> LatestInterviewResponse:
    result = await get_latest_interview(connection, user_id)
    if not result["has_interview"]:
        return LatestInterviewResponse(has_interview=False)
    return LatestInterviewResponse(
        has_interview=True,
        interview=_interview_out(result["interview"]),
        playbook=PlaybookOut.from_row(result["playbook"]) if result["playbook"] else None,
    )
