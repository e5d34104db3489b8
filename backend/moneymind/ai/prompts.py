"""Prompt constants and builders for every LLM call the engine makes."""

from __future__ import annotations

import json
from datetime import date
from typing import Any

COACH_PERSONA = """
You are Money Mind, a personal financial coach with a friendly, conversational style.
You are encouraging, insightful and practical; advice must feel accessible, never intimidating.
""".strip()

EXTRACTION_SYSTEM_PROMPT = """
You convert a user's message about a financial goal into structured JSON.

Rules:
- Reply with one JSON object only, no prose, no markdown.
- Never invent numbers that are not stated or clearly implied by the message.
- Money amounts are plain numbers without currency symbols or thousands separators.
- Dates are ISO formatted (YYYY-MM-DD).
- Use null for anything the message does not say.
""".strip()

CATEGORIZATION_SYSTEM_PROMPT = """
You assign bank transactions to budget categories.

Rules:
- Reply with one JSON object only, no prose, no markdown.
- Use only the category ids you are given.
- Return exactly one assignment for every transaction index.
- When unsure, use "miscellaneous".
""".strip()

PLAYBOOK_SYSTEM_PROMPT = f"""
{COACH_PERSONA}

You analyse a completed Money Mind interview and write the user's Money Playbook.

Rules:
- Reply with one JSON object only, no prose, no markdown.
- personality_type must be exactly one of the allowed archetypes.
- Every score is an integer between 0 and 100.
- thirty_day_plan has exactly the keys week1, week2, week3, week4, each a non-empty list
  of short, concrete daily tasks.
- daily_habit is one small action the user can repeat every day.
""".strip()


def _today_line(today: date) -> str:
    return f"Today is {today.isoformat()}."


def build_goal_create_prompt(message: str, today: date, partial: dict[str, Any]) -> str:
    known = {key: value for key, value in partial.items() if value is not None}
    return (
        f"{_today_line(today)}\n"
        "Extract a financial goal from the message.\n"
        'Return {"name": string, "target_amount": number, "deadline": "YYYY-MM-DD" or null, '
        '"goal_type": "savings" or "debt"}.\n'
        "goal_type is debt when the user wants to pay something off.\n"
        f"Already understood (keep unless the message contradicts it): {json.dumps(known, default=str)}\n"
        f"Message: {message}"
    )


def build_progress_prompt(message: str, goal_names: list[str]) -> str:
    return (
        "The user is reporting progress toward one of their goals.\n"
        'Return {"amount": number, "goal_hint": string or null}.\n'
        "amount is the money just added or paid (positive). goal_hint is the goal name the "
        "user refers to, copied from the list when possible.\n"
        f"User goals: {json.dumps(goal_names)}\n"
        f"Message: {message}"
    )


def build_categorization_prompt(
    transactions: list[dict[str, Any]],
    categories: list[dict[str, str]],
) -> str:
    rows = [
        {
            "index": index,
            "merchant": item["merchant"],
            "amount": str(item["amount"]),
            "date": item["date"].isoformat(),
        }
        for index, item in enumerate(transactions)
    ]
    return (
        "Categorize each transaction.\n"
        'Return {"assignments": [{"index": number, "category_id": string}]}.\n'
        f"Categories: {json.dumps(categories)}\n"
        f"Transactions: {json.dumps(rows)}"
    )


def build_checkin_insight_prompt(
    *,
    today: date,
    score: int,
    streak: int,
    habit_text: str,
    personality_type: str | None,
) -> str:
    persona = f"The user's money personality is {personality_type}. " if personality_type else ""
    return (
        f"{_today_line(today)} {persona}"
        f"Their Money Mind score today is {score}/100 and their check-in streak is {streak} days. "
        f"Today's habit: {habit_text}\n"
        "Write one or two encouraging sentences of insight for today's check-in. Plain text only."
    )


def build_playbook_prompt(
    answered_questions: list[dict[str, Any]],
    personality_types: list[str],
) -> str:
    return (
        f"Allowed personality types: {json.dumps(personality_types)}\n"
        "Return {"
        '"personality_type": string, "personality_description": string, '
        '"scores": {"saving_habit": int, "financial_awareness": int, "spending_trigger_intensity": int}, '
        '"thirty_day_plan": {"week1": [string], "week2": [string], "week3": [string], "week4": [string]}, '
        '"daily_habit": string, "strengths": [string], "weaknesses": [string], '
        '"spending_triggers": [string], "purpose_statement": string, "encouragement": string'
        "}.\n"
        f"Interview: {json.dumps(answered_questions, default=str)}"
    )


def build_weekly_coaching_prompt(
    *,
    week_number: int,
    week_name: str,
    responses: dict[str, str],
    stats: dict[str, Any],
) -> str:
    return (
        f"The user just finished week {week_number} ({week_name}) of the 30-Day Money Reset.\n"
        f"Their week stats: {json.dumps(stats, default=str)}\n"
        f"Their reflection answers: {json.dumps(responses)}\n"
        "Write a short, warm coaching response (under 120 words) that names one win and one focus "
        "for next week. Plain text only."
    )
