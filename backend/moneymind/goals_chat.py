"""Conversational goal endpoints (`/goals/ai-create`, `/goals/ai-delete`, `/goals/ai-progress`, `/goals/chat`)."""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

from moneymind.ai.provider import LLMProvider, get_llm_provider
from moneymind.auth import get_current_user_id
from moneymind.database import get_db_connection
from moneymind.errors import InvalidInput, UpstreamProviderError
from moneymind.schemas import CamelModel, GoalOut, MessageRequest
from moneymind.services.goals_ai_service import (
    ai_create_goal,
    ai_delete_goal,
    ai_update_progress,
    handle_goal_message,
)
from moneymind.utils import get_local_today

router = APIRouter(prefix="/goals", tags=["goals-chat"])


class GoalCreateChatResponse(CamelModel):
    response: str
    goal_created: bool
    goal: GoalOut | None = None


class GoalDeleteChatResponse(CamelModel):
    response: str
    goal_deleted: bool
    deleted_goal: GoalOut | None = None
    candidates: list[str] = Field(default_factory=list)


class GoalProgressChatResponse(CamelModel):
    response: str
    progress_updated: bool
    goal: GoalOut | None = None
    candidates: list[str] = Field(default_factory=list)


class GoalChatResponse(CamelModel):
    intent: str
    response: str
    goal_created: bool = False
    goal_deleted: bool = False
    progress_updated: bool = False
    goal: GoalOut | None = None


def _get_llm_provider() -> LLMProvider | None:
    return get_llm_provider()


def _goal_out(row: dict[str, Any] | None) -> GoalOut | None:
    return GoalOut.from_row(row) if row else None


def _message_text(payload: MessageRequest) -> str:
    message_text = payload.message.strip()
    if not message_text:
        raise HTTPException(status_code=422, detail="message must not be empty")
    return message_text


def _provider_unavailable(exc: UpstreamProviderError) -> HTTPException:
    return HTTPException(status_code=503, detail=f"{exc} You can also use the manual goal controls.")


def _invalid(exc: InvalidInput) -> HTTPException:
    return HTTPException(status_code=422, detail={"field": exc.field, "message": exc.message})


@router.post("/ai-create", response_model=GoalCreateChatResponse)
async def ai_create_endpoint(
    payload: MessageRequest,
    today: date = Depends(get_local_today),
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> GoalCreateChatResponse:
    message_text = _message_text(payload)
    try:
        result = await ai_create_goal(connection, user_id, message_text, _get_llm_provider(), today=today)
    except UpstreamProviderError as exc:
        raise _provider_unavailable(exc) from exc
    except InvalidInput as exc:
        raise _invalid(exc) from exc

    return GoalCreateChatResponse(
        response=result["response"],
        goal_created=result["goal_created"],
        goal=_goal_out(result["goal"]),
    )


@router.post("/ai-delete", response_model=GoalDeleteChatResponse)
async def ai_delete_endpoint(
    payload: MessageRequest,
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> GoalDeleteChatResponse:
    """Delete one goal named in the message. Never calls the language model."""
    message_text = _message_text(payload)
    result = await ai_delete_goal(connection, user_id, message_text)
    return GoalDeleteChatResponse(
        response=result["response"],
        goal_deleted=result["goal_deleted"],
        deleted_goal=_goal_out(result["deleted_goal"]),
        candidates=result.get("candidates", []),
    )


@router.post("/ai-progress", response_model=GoalProgressChatResponse)
async def ai_progress_endpoint(
    payload: MessageRequest,
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> GoalProgressChatResponse:
    message_text = _message_text(payload)
    try:
        result = await ai_update_progress(connection, user_id, message_text, _get_llm_provider())
    except UpstreamProviderError as exc:
        raise _provider_unavailable(exc) from exc
    except InvalidInput as exc:
        raise _invalid(exc) from exc

    return GoalProgressChatResponse(
        response=result["response"],
        progress_updated=result["progress_updated"],
        goal=_goal_out(result["goal"]),
        candidates=result.get("candidates", []),
    )


@router.post("/chat", response_model=GoalChatResponse)
async def goal_chat_endpoint(
    payload: MessageRequest,
    today: date = Depends(get_local_today),
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> GoalChatResponse:
    """Single entry point: classify the message, then create, delete or update."""
    message_text = _message_text(payload)
    try:
        result = await handle_goal_message(connection, user_id, message_text, _get_llm_provider(), today=today)
    except UpstreamProviderError as exc:
        raise _provider_unavailable(exc) from exc
    except InvalidInput as exc:
        raise _invalid(exc) from exc

    return GoalChatResponse(
        intent=result["intent"].value,
        response=result["response"],
        goal_created=result["goal_created"],
        goal_deleted=result["goal_deleted"],
        progress_updated=result["progress_updated"],
        goal=_goal_out(result["goal"]),
    )
