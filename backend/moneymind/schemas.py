"""Shared wire models. JSON field names are camelCase; Python names stay snake_case."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


def _money(value: Decimal) -> str:
    return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GoalOut(CamelModel):
    id: UUID
    user_id: UUID
    type: Literal["savings", "debt"]
    name: str
    target_amount: Decimal
    current_amount: Decimal
    remaining_amount: Decimal
    progress_pct: int
    deadline: date | None
    created_at: datetime

    @field_serializer("target_amount", "current_amount", "remaining_amount")
    def serialize_decimal(self, value: Decimal) -> str:
        return _money(value)

    @classmethod
    def from_row(cls, row: dict) -> "GoalOut":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            type=row["goal_type"],
            name=row["name"],
            target_amount=row["target_amount"],
            current_amount=row["current_amount"],
            remaining_amount=row["remaining_amount"],
            progress_pct=row["progress_pct"],
            deadline=row.get("deadline"),
            created_at=row["created_at"],
        )


class MessageRequest(CamelModel):
    message: str = Field(min_length=1, max_length=2000)
