"""Goal store: CRUD for savings/debt goals plus the atomic progress increment."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_FLOOR, ROUND_HALF_UP
from typing import TYPE_CHECKING, Any, Literal
from uuid import UUID

from moneymind.errors import InvalidInput

if TYPE_CHECKING:
    from psycopg import AsyncConnection
else:
    AsyncConnection = Any

logger = logging.getLogger(__name__)

GoalType = Literal["savings", "debt"]
VALID_GOAL_TYPES: set[str] = {"savings", "debt"}
MONEY_QUANT = Decimal("0.01")
MAX_AMOUNT = Decimal("9999999999.99")

GOAL_COLUMNS = "id, user_id, goal_type, name, target_amount, current_amount, deadline, created_at, updated_at"


def quantize_amount(value: Decimal) -> Decimal:
    """Normalize money values to NUMERIC(12,2) precision."""
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def _normalize_amount(value: Decimal | None) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return quantize_amount(value)


def parse_amount(value: Any, field: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidInput(field, "must be a number") from exc
    if not amount.is_finite():
        raise InvalidInput(field, "must be a finite number")
    amount = quantize_amount(amount)
    if abs(amount) > MAX_AMOUNT:
        raise InvalidInput(field, "is too large")
    return amount


def format_money(value: Decimal) -> str:
    return f"${quantize_amount(value):,.2f}"


def validate_goal_payload(data: dict[str, Any], today: date) -> dict[str, Any]:
    """
    Validate a create payload before it reaches storage.

    Rules:
    - name is non-empty (max 120 chars)
    - goal_type is savings or debt
    - target_amount > 0
    - current_amount >= 0 (may exceed target)
    - deadline, when given, is not in the past
    """
    name = " ".join(str(data.get("name") or "").split())
    if not name:
        raise InvalidInput("name", "is required")
    if len(name) > 120:
        raise InvalidInput("name", "must be at most 120 characters")

    goal_type = str(data.get("goal_type") or "savings").strip().lower()
    if goal_type not in VALID_GOAL_TYPES:
        raise InvalidInput("goal_type", "must be one of: savings, debt")

    if data.get("target_amount") is None:
        raise InvalidInput("target_amount", "is required")
    target_amount = parse_amount(data["target_amount"], "target_amount")
    if target_amount <= Decimal("0.00"):
        raise InvalidInput("target_amount", "must be greater than 0")

    current_amount = parse_amount(data.get("current_amount") or Decimal("0"), "current_amount")
    if current_amount < Decimal("0.00"):
        raise InvalidInput("current_amount", "must be >= 0")

    deadline = data.get("deadline")
    if deadline is not None:
        if not isinstance(deadline, date):
            try:
                deadline = date.fromisoformat(str(deadline))
            except ValueError as exc:
                raise InvalidInput("deadline", "must be a date (YYYY-MM-DD)") from exc
        if deadline < today:
            raise InvalidInput("deadline", "must not be in the past")

    return {
        "name": name,
        "goal_type": goal_type,
        "target_amount": target_amount,
        "current_amount": current_amount,
        "deadline": deadline,
    }


def compute_goal_metrics(goal_row: dict[str, Any]) -> dict[str, Any]:
    """Attach progress fields used in confirmation messages and the UI."""
    target_amount = _normalize_amount(goal_row["target_amount"])
    current_amount = _normalize_amount(goal_row["current_amount"])

    remaining_amount = quantize_amount(max(target_amount - current_amount, Decimal("0.00")))

    progress_pct = 0
    if target_amount > Decimal("0.00"):
        progress_pct = int(((current_amount / target_amount) * Decimal("100")).to_integral_value(rounding=ROUND_FLOOR))
        progress_pct = max(0, min(progress_pct, 100))

    return {
        **goal_row,
        "target_amount": target_amount,
        "current_amount": current_amount,
        "remaining_amount": remaining_amount,
        "progress_pct": progress_pct,
        "is_open": current_amount < target_amount,
    }


async def create_goal(
    connection: AsyncConnection,
    user_id: UUID,
    data: dict[str, Any],
    *,
    today: date | None = None,
) -> dict[str, Any]:
    """Create one goal for the authenticated user and return computed fields."""
    normalized = validate_goal_payload(data, today or date.today())

    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            INSERT INTO goals (user_id, goal_type, name, target_amount, current_amount, deadline)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {GOAL_COLUMNS}
            """,
            (
                user_id,
                normalized["goal_type"],
                normalized["name"],
                normalized["target_amount"],
                normalized["current_amount"],
                normalized["deadline"],
            ),
        )
        row = await cursor.fetchone()

    logger.info("Created %s goal %s for user %s", row["goal_type"], row["id"], user_id)
    return compute_goal_metrics(row)


async def list_goals(
    connection: AsyncConnection,
    user_id: UUID,
    goal_type: str | None = None,
) -> list[dict[str, Any]]:
    """List the user's goals, newest first, optionally filtered by type."""
    sql = f"""
    SELECT {GOAL_COLUMNS}
    FROM goals
    WHERE user_id = %s
    """
    params: list[Any] = [user_id]

    if goal_type is not None:
        normalized_type = goal_type.strip().lower()
        if normalized_type not in VALID_GOAL_TYPES:
            raise InvalidInput("goal_type", "must be one of: savings, debt")
        sql += " AND goal_type = %s"
        params.append(normalized_type)

    sql += " ORDER BY created_at DESC, id DESC"

    async with connection.cursor() as cursor:
        await cursor.execute(sql, tuple(params))
        rows = await cursor.fetchall()

    return [compute_goal_metrics(row) for row in rows]


async def get_goal(
    connection: AsyncConnection,
    user_id: UUID,
    goal_id: UUID,
) -> dict[str, Any]:
    """Fetch one user-scoped goal, including computed fields."""
    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            SELECT {GOAL_COLUMNS}
            FROM goals
            WHERE id = %s
              AND user_id = %s
            """,
            (goal_id, user_id),
        )
        row = await cursor.fetchone()

    if row is None:
        raise LookupError("Goal not found")

    return compute_goal_metrics(row)


async def delete_goal(
    connection: AsyncConnection,
    user_id: UUID,
    goal_id: UUID,
) -> dict[str, Any]:
    """Hard-delete one goal scoped to the user; returns the removed row."""
    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            DELETE FROM goals
            WHERE id = %s
              AND user_id = %s
            RETURNING {GOAL_COLUMNS}
            """,
            (goal_id, user_id),
        )
        row = await cursor.fetchone()

    if row is None:
        raise LookupError("Goal not found")

    logger.info("Deleted goal %s for user %s", goal_id, user_id)
    return compute_goal_metrics(row)


async def add_progress(
    connection: AsyncConnection,
    user_id: UUID,
    goal_id: UUID,
    amount: Decimal,
) -> dict[str, Any]:
    """
    Add `amount` to a goal's current amount in one atomic statement.

    The increment happens inside the UPDATE, so concurrent calls sum instead of
    overwriting each other. The result is clamped at zero.
    """
    delta = parse_amount(amount, "amount")
    if delta == Decimal("0.00"):
        raise InvalidInput("amount", "must not be zero")

    async with connection.cursor() as cursor:
        await cursor.execute(
            f"""
            UPDATE goals
            SET current_amount = GREATEST(current_amount + %s, 0),
                updated_at = NOW()
            WHERE id = %s
              AND user_id = %s
            RETURNING {GOAL_COLUMNS}
            """,
            (delta, goal_id, user_id),
        )
        row = await cursor.fetchone()

    if row is None:
        raise LookupError("Goal not found")

    return compute_goal_metrics(row)
