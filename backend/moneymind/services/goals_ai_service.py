"""Conversational goal operations: utterance in, confirmation message + delta out.

Each operation finishes extraction before it touches the store, and then issues
exactly one write, so a failed or abandoned request never leaves half a change.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING, Any
from uuid import UUID

from moneymind.ai.provider import LLMProvider
from moneymind.errors import ClassificationAmbiguous, ExtractionFailed
from moneymind.services.extraction import (
    extract_create_payload,
    extract_progress_payload,
    resolve_delete_target,
    select_progress_goal,
)
from moneymind.services.goals_service import (
    add_progress,
    create_goal,
    delete_goal,
    format_money,
    list_goals,
)
from moneymind.services.intent import (
    UNKNOWN_INTENT_REPLY,
    Intent,
    classify_intent,
    matched_buckets,
)

if TYPE_CHECKING:
    from psycopg import AsyncConnection
else:
    AsyncConnection = Any

logger = logging.getLogger(__name__)

CREATE_FALLBACK_REPLY = (
    "I apologize, but I couldn't work out the details of that goal. "
    "Please try again with a name and an amount, or create your goal manually using the 'Add New Goal' button."
)
PROGRESS_FALLBACK_REPLY = (
    "I couldn't work out how much to add. Please include an amount like \"$50\", "
    "or use the manual 'Add Money' option on your goal cards."
)


def _describe_deadline(deadline: date | None) -> str:
    if deadline is None:
        return ""
    return f" by {deadline.strftime('%B')} {deadline.day}, {deadline.year}"


def _created_reply(goal: dict[str, Any]) -> str:
    if goal["goal_type"] == "debt":
        lead = f'Done! I set up a debt payoff goal "{goal["name"]}" for {format_money(goal["target_amount"])}'
    else:
        lead = f'Done! I created your savings goal "{goal["name"]}" with a target of {format_money(goal["target_amount"])}'
    return f"{lead}{_describe_deadline(goal.get('deadline'))}. Tell me whenever you add money and I'll track your progress."


def _progress_reply(goal: dict[str, Any], amount: Any, defaulted: bool) -> str:
    verb = "Recorded a payment of" if goal["goal_type"] == "debt" else "Added"
    parts = []
    if defaulted:
        parts.append(f'You didn\'t name a goal, so I applied this to your most recent goal "{goal["name"]}".')
    parts.append(
        f'{verb} {format_money(amount)} to "{goal["name"]}". '
        f"New total: {format_money(goal['current_amount'])} of {format_money(goal['target_amount'])} "
        f"({goal['progress_pct']}%)."
    )
    if not goal["is_open"]:
        parts.append("You've reached your target. Congratulations!")
    return " ".join(parts)


async def ai_create_goal(
    connection: AsyncConnection,
    user_id: UUID,
    message: str,
    provider: LLMProvider | None,
    *,
    today: date | None = None,
) -> dict[str, Any]:
    """Create a goal from free text. Extraction failure creates nothing."""
    today = today or date.today()
    try:
        payload = await extract_create_payload(message, today, provider)
    except ExtractionFailed as exc:
        logger.info("Goal creation extraction failed for user %s: %s", user_id, exc)
        return {"response": CREATE_FALLBACK_REPLY, "goal_created": False, "goal": None}

    goal = await create_goal(connection, user_id, payload.model_dump(), today=today)
    return {"response": _created_reply(goal), "goal_created": True, "goal": goal}


async def ai_delete_goal(
    connection: AsyncConnection,
    user_id: UUID,
    message: str,
) -> dict[str, Any]:
    """Delete exactly one goal named in the message, or ask which one."""
    if Intent.DELETE not in matched_buckets(message):
        return {
            "response": "To delete a goal, tell me which one, e.g. \"Delete my vacation goal\".",
            "goal_deleted": False,
            "deleted_goal": None,
        }

    goals = await list_goals(connection, user_id)
    try:
        target = resolve_delete_target(message, goals)
    except ClassificationAmbiguous as exc:
        return {"response": str(exc), "goal_deleted": False, "deleted_goal": None, "candidates": exc.candidates}

    try:
        deleted = await delete_goal(connection, user_id, target["id"])
    except LookupError:
        return {
            "response": f'"{target["name"]}" was already removed.',
            "goal_deleted": False,
            "deleted_goal": None,
        }

    return {
        "response": f'I deleted your {deleted["goal_type"]} goal "{deleted["name"]}".',
        "goal_deleted": True,
        "deleted_goal": deleted,
    }


async def ai_update_progress(
    connection: AsyncConnection,
    user_id: UUID,
    message: str,
    provider: LLMProvider | None,
) -> dict[str, Any]:
    """Add money to one goal and report the exact new total."""
    goals = await list_goals(connection, user_id)
    if not goals:
        return {
            "response": "You don't have any goals yet. Tell me what you'd like to save for and I'll set one up.",
            "progress_updated": False,
            "goal": None,
        }

    try:
        payload = await extract_progress_payload(message, [goal["name"] for goal in goals], provider)
    except ExtractionFailed as exc:
        logger.info("Progress extraction failed for user %s: %s", user_id, exc)
        return {"response": PROGRESS_FALLBACK_REPLY, "progress_updated": False, "goal": None}

    try:
        target, defaulted = select_progress_goal(message, goals, payload.goal_hint)
    except ClassificationAmbiguous as exc:
        return {"response": str(exc), "progress_updated": False, "goal": None, "candidates": exc.candidates}

    try:
        updated = await add_progress(connection, user_id, target["id"], payload.amount)
    except LookupError:
        return {
            "response": f'"{target["name"]}" no longer exists, so nothing was updated.',
            "progress_updated": False,
            "goal": None,
        }

    if defaulted:
        logger.info("Progress for user %s defaulted to goal %s", user_id, updated["id"])

    return {
        "response": _progress_reply(updated, payload.amount, defaulted),
        "progress_updated": True,
        "goal": updated,
    }


async def handle_goal_message(
    connection: AsyncConnection,
    user_id: UUID,
    message: str,
    provider: LLMProvider | None,
    *,
    today: date | None = None,
) -> dict[str, Any]:
    """Classify one utterance and route it to create, delete or progress."""
    goals = await list_goals(connection, user_id)
    intent = classify_intent(message, has_existing_goals=bool(goals))
    logger.info("Classified goal message for user %s as %s", user_id, intent.value)

    result: dict[str, Any] = {
        "intent": intent,
        "goal_created": False,
        "goal_deleted": False,
        "progress_updated": False,
        "goal": None,
    }

    if intent is Intent.DELETE:
        outcome = await ai_delete_goal(connection, user_id, message)
        result.update(
            response=outcome["response"],
            goal_deleted=outcome["goal_deleted"],
            goal=outcome["deleted_goal"],
        )
    elif intent is Intent.UPDATE_PROGRESS:
        outcome = await ai_update_progress(connection, user_id, message, provider)
        result.update(
            response=outcome["response"],
            progress_updated=outcome["progress_updated"],
            goal=outcome["goal"],
        )
    elif intent is Intent.CREATE:
        outcome = await ai_create_goal(connection, user_id, message, provider, today=today)
        result.update(
            response=outcome["response"],
            goal_created=outcome["goal_created"],
            goal=outcome["goal"],
        )
    else:
        result["response"] = UNKNOWN_INTENT_REPLY

    return result
