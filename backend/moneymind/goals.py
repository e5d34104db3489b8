"""Goals router: manual CRUD and "Add Money" endpoints.

These routes are the deterministic path the conversational endpoints fall back
to; they call the same goal store.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field

from .auth import get_current_user_id
from .database import get_db_connection
from .errors import InvalidInput
from .schemas import CamelModel, GoalOut
from .services.goals_service import (
    add_progress,
    create_goal,
    delete_goal,
    get_goal,
    list_goals,
)
from .utils import get_local_today

router = APIRouter(prefix="/goals", tags=["goals"])


class GoalCreateRequest(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    type: Literal["savings", "debt"] = "savings"
    target_amount: Decimal = Field(gt=Decimal("0"), max_digits=12, decimal_places=2)
    current_amount: Decimal = Field(default=Decimal("0.00"), ge=Decimal("0"), max_digits=12, decimal_places=2)
    deadline: date | None = None


class GoalProgressRequest(CamelModel):
    amount: Decimal = Field(max_digits=12, decimal_places=2)


def _invalid(exc: InvalidInput) -> HTTPException:
    return HTTPException(status_code=422, detail={"field": exc.field, "message": exc.message})


@router.post("", response_model=GoalOut, status_code=status.HTTP_201_CREATED)
async def create_goal_endpoint(
    payload: GoalCreateRequest,
    today: date = Depends(get_local_today),
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> GoalOut:
    """Create one goal from the manual goal form."""
    try:
        row = await create_goal(
            connection,
            user_id,
            {
                "name": payload.name,
                "goal_type": payload.type,
                "target_amount": payload.target_amount,
                "current_amount": payload.current_amount,
                "deadline": payload.deadline,
            },
            today=today,
        )
    except InvalidInput as exc:
        raise _invalid(exc) from exc
    return GoalOut.from_row(row)


@router.get("", response_model=list[GoalOut])
async def list_goals_endpoint(
    type: Literal["savings", "debt"] | None = Query(default=None),
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> list[GoalOut]:
    rows = await list_goals(connection, user_id, goal_type=type)
    return [GoalOut.from_row(row) for row in rows]


@router.get("/{goal_id}", response_model=GoalOut)
async def get_goal_endpoint(
    goal_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> GoalOut:
    try:
        row = await get_goal(connection, user_id, goal_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return GoalOut.from_row(row)


@router.post("/{goal_id}/progress", response_model=GoalOut)
async def add_progress_endpoint(
    goal_id: UUID,
    payload: GoalProgressRequest,
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> GoalOut:
    """Manual "Add Money" control. Negative amounts withdraw, floored at zero."""
    try:
        row = await add_progress(connection, user_id, goal_id, payload.amount)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidInput as exc:
        raise _invalid(exc) from exc
    return GoalOut.from_row(row)


@router.delete("/{goal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_goal_endpoint(
    goal_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
):
    """Delete one goal for the current user."""
    try:
        await delete_goal(connection, user_id, goal_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
