"""Entity extraction for goal utterances.

Rule-based parsing runs first (amounts, relative deadlines, goal names); the
LLM provider is only asked when the rules leave a required field empty, and its
reply is validated against the same pydantic schema the rules produce.
"""

from __future__ import annotations

import calendar
import difflib
import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from moneymind.ai.prompts import (
    EXTRACTION_SYSTEM_PROMPT,
    build_goal_create_prompt,
    build_progress_prompt,
)
from moneymind.ai.provider import LLMProvider
from moneymind.errors import ClassificationAmbiguous, ExtractionFailed
from moneymind.services.intent import DELETE_VOCABULARY, PROGRESS_VOCABULARY

logger = logging.getLogger(__name__)

MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4,
    "may": 5, "june": 6, "july": 7, "august": 8,
    "september": 9, "october": 10, "november": 11, "december": 12,
    "jan": 1, "feb": 2, "mar": 3, "apr": 4,
    "jun": 6, "jul": 7, "aug": 8, "sep": 9, "sept": 9,
    "oct": 10, "nov": 11, "dec": 12,
}

AMOUNT_PATTERNS = [
    re.compile(r"\$\s?(\d[\d,]*(?:\.\d{1,2})?)\s?(k)?\b", re.IGNORECASE),
    re.compile(r"\b(\d[\d,]*(?:\.\d{1,2})?)\s?(k)\b", re.IGNORECASE),
    re.compile(r"\b(\d[\d,]*(?:\.\d{1,2})?)\s?(?:dollars?|bucks|usd)\b", re.IGNORECASE),
]
STRIP_AMOUNT_RE = re.compile(
    r"\$\s?\d[\d,]*(?:\.\d+)?\s?k?\b|\b\d[\d,]*(?:\.\d+)?\s?(?:k|dollars?|bucks|usd)?\b",
    re.IGNORECASE,
)
DEBT_RE = re.compile(r"\b(debt|loan|loans|pay off|paying off|payoff|paid off|paid down|credit card|mortgage)\b", re.IGNORECASE)
ISO_DATE_RE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")

NAME_PATTERNS = [
    re.compile(r"\b(?:pay off|payoff|paying off)\s+(?:(?:my|the|a|an|this|that)\s+)?(.+?)(?=\s+(?:by|in|before|within|next|this|until)\b|[,.!?]|$)", re.IGNORECASE),
    re.compile(r"\b(?:for|towards?|to buy|to get)\s+(?:(?:a|an|my|the|our|some)\s+)?(.+?)(?=\s+(?:by|in|before|within|next|this|until)\b|[,.!?]|$)", re.IGNORECASE),
]
GOAL_NOUN_NAMES = [
    ("emergency fund", "Emergency Fund"),
    ("emergency", "Emergency Fund"),
    ("down payment", "House Down Payment"),
    ("vacation", "Vacation"),
    ("holiday", "Vacation"),
    ("wedding", "Wedding"),
    ("retirement", "Retirement"),
    ("credit card", "Credit Card Debt"),
    ("student loan", "Student Loan"),
    ("car", "New Car"),
    ("house", "House"),
    ("home", "Home"),
    ("laptop", "Laptop"),
]

REFERENCE_STOPWORDS = {
    "a", "about", "all", "an", "and", "any", "can", "could", "for", "from", "goal", "goals",
    "i", "i've", "in", "into", "it", "just", "like", "me", "more", "my", "of", "on", "please",
    "some", "that", "the", "this", "to", "toward", "towards", "want", "would", "you", "today",
    "money", "another", "extra", "now", "have", "has", "ive", "im", "i'm", "was", "so", "far",
}
FUZZY_THRESHOLD = 0.6


class GoalCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    target_amount: Decimal = Field(gt=Decimal("0"), max_digits=12, decimal_places=2)
    deadline: date | None = None
    goal_type: Literal["savings", "debt"] = "savings"

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        normalized = " ".join(value.split())
        if not normalized:
            raise ValueError("name must not be blank")
        return normalized


class ProgressPayload(BaseModel):
    amount: Decimal = Field(gt=Decimal("0"), max_digits=12, decimal_places=2)
    goal_hint: str | None = Field(default=None, max_length=120)


@dataclass
class RuleParse:
    """What the deterministic parser could read from one message."""

    name: str | None
    target_amount: Decimal | None
    deadline: date | None
    goal_type: str

    @property
    def complete(self) -> bool:
        return bool(self.name) and self.target_amount is not None

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "target_amount": self.target_amount,
            "deadline": self.deadline,
            "goal_type": self.goal_type,
        }


def extract_amount(text: str) -> Decimal | None:
    """Extract the first money amount ("$200", "$1,500.50", "5k", "300 dollars")."""
    for pattern in AMOUNT_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        raw = match.group(1).replace(",", "")
        try:
            value = Decimal(raw)
        except InvalidOperation:
            continue
        if match.lastindex and match.lastindex >= 2 and match.group(2):
            value *= Decimal("1000")
        if value > 0:
            return value.quantize(Decimal("0.01"))
    return None


def _add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _end_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def extract_deadline(text: str, today: date) -> date | None:
    """Extract a deadline from ISO dates and common relative phrases."""
    lowered = text.lower()

    iso = ISO_DATE_RE.search(lowered)
    if iso:
        try:
            return date.fromisoformat(iso.group(1))
        except ValueError:
            pass

    # "by December", "by march 2027"; a month already passed means next year.
    month_alternatives = "|".join(sorted(MONTHS, key=len, reverse=True))
    match = re.search(rf"\b(?:by|before|until|in)\s+({month_alternatives})\b(?:\s+(\d{{4}}))?", lowered)
    if match:
        month_num = MONTHS[match.group(1)]
        if match.group(2):
            year = int(match.group(2))
        else:
            year = today.year if month_num > today.month else today.year + 1
        return _end_of_month(year, month_num)

    match = re.search(r"\bin\s+(\d+)\s+months?\b", lowered)
    if match:
        return _add_months(today, int(match.group(1)))

    match = re.search(r"\bin\s+(\d+)\s+years?\b", lowered)
    if match:
        return _add_months(today, 12 * int(match.group(1)))

    match = re.search(r"\bin\s+(\d+)\s+weeks?\b", lowered)
    if match:
        return date.fromordinal(today.toordinal() + 7 * int(match.group(1)))

    if re.search(r"\bnext\s+summer\b", lowered):
        year = today.year if today < date(today.year, 6, 1) else today.year + 1
        return date(year, 6, 1)

    if re.search(r"\bnext\s+year\b", lowered):
        return date(today.year + 1, 12, 31)

    if re.search(r"\b(?:end of (?:the|this) year|this year)\b", lowered):
        return date(today.year, 12, 31)

    return None


def extract_goal_type(text: str) -> str:
    return "debt" if DEBT_RE.search(text) else "savings"


def _clean_name(fragment: str) -> str:
    cleaned = STRIP_AMOUNT_RE.sub(" ", fragment)
    cleaned = re.sub(r"[^\w\s'&-]", " ", cleaned)
    words = [word for word in cleaned.split() if word.lower() not in {"goal", "more", "of", "about"}]
    return " ".join(words).strip()


def extract_goal_name(text: str) -> str | None:
    """Extract a goal name from "for a X", "pay off my X", or a known goal noun."""
    for pattern in NAME_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        candidate = _clean_name(match.group(1))
        if candidate and not candidate.isdigit():
            return candidate.title() if candidate.islower() else candidate

    lowered = text.lower()
    for noun, label in GOAL_NOUN_NAMES:
        if re.search(rf"\b{re.escape(noun)}\b", lowered):
            return label
    return None


def parse_goal_rules(message: str, today: date) -> RuleParse:
    return RuleParse(
        name=extract_goal_name(message),
        target_amount=extract_amount(message),
        deadline=extract_deadline(message, today),
        goal_type=extract_goal_type(message),
    )


async def extract_create_payload(
    message: str,
    today: date,
    provider: LLMProvider | None,
) -> GoalCreatePayload:
    """Produce a validated create payload, asking the LLM only when rules fall short."""
    rules = parse_goal_rules(message, today)
    if rules.complete:
        return GoalCreatePayload.model_validate(rules.as_dict())

    if provider is None:
        raise ExtractionFailed("Goal details are incomplete and no language model is configured")

    logger.info("Rule parse incomplete (%s); asking LLM", rules.as_dict())
    payload = await provider.extract(
        build_goal_create_prompt(message, today, rules.as_dict()),
        GoalCreatePayload,
        system_prompt=EXTRACTION_SYSTEM_PROMPT,
    )

    # Deterministic reads win over model output when both exist.
    updates: dict[str, Any] = {}
    if rules.target_amount is not None:
        updates["target_amount"] = rules.target_amount
    if rules.deadline is not None:
        updates["deadline"] = rules.deadline
    if rules.goal_type == "debt":
        updates["goal_type"] = "debt"
    return payload.model_copy(update=updates)


async def extract_progress_payload(
    message: str,
    goal_names: list[str],
    provider: LLMProvider | None,
) -> ProgressPayload:
    amount = extract_amount(message)
    if amount is not None:
        return ProgressPayload(amount=amount)

    if provider is None:
        raise ExtractionFailed("No amount found in progress message and no language model is configured")

    return await provider.extract(
        build_progress_prompt(message, goal_names),
        ProgressPayload,
        system_prompt=EXTRACTION_SYSTEM_PROMPT,
    )


def reference_fragment(message: str, vocabulary: tuple[str, ...] = ()) -> str:
    """Reduce an utterance to the words that could name a goal."""
    text = message.lower()
    for phrase in vocabulary:
        text = re.sub(rf"\b{re.escape(phrase)}\b", " ", text)
    text = STRIP_AMOUNT_RE.sub(" ", text)
    text = re.sub(r"[^\w\s'&-]", " ", text)
    words = [word for word in text.split() if word not in REFERENCE_STOPWORDS]
    return " ".join(words)


def _contains_words(text: str, phrase: str) -> bool:
    return re.search(rf"\b{re.escape(phrase)}\b", text) is not None


def _match_score(message_lower: str, fragment: str, goal_name: str) -> int:
    name = " ".join(goal_name.lower().split())
    if not name:
        return 0
    if re.search(rf"\b{re.escape(name)}\b", message_lower):
        return 3
    if fragment and (_contains_words(name, fragment) or _contains_words(fragment, name)):
        return 2
    if fragment:
        fragment_words = set(fragment.split())
        name_words = set(name.split())
        if name_words and name_words <= fragment_words:
            return 2
        if difflib.SequenceMatcher(None, fragment, name).ratio() >= FUZZY_THRESHOLD:
            return 1
    return 0


def resolve_goal_reference(
    message: str,
    goals: list[dict[str, Any]],
    vocabulary: tuple[str, ...] = (),
) -> dict[str, Any] | None:
    """
    Resolve free text to one of the user's goals.

    Only the best-scoring tier is considered. Several distinct names in that
    tier raise ClassificationAmbiguous; identical names resolve to the most
    recently created goal. Returns None when nothing matches.
    """
    message_lower = " ".join(message.lower().split())
    fragment = reference_fragment(message, vocabulary)

    scored = [(_match_score(message_lower, fragment, goal["name"]), goal) for goal in goals]
    scored = [(score, goal) for score, goal in scored if score > 0]
    if not scored:
        return None

    best = max(score for score, _ in scored)
    tier = [goal for score, goal in scored if score == best]

    if len({goal["goal_type"] for goal in tier}) > 1:
        wanted_type = extract_goal_type(message)
        typed = [goal for goal in tier if goal["goal_type"] == wanted_type]
        if typed:
            tier = typed

    distinct_names = sorted({goal["name"].strip().lower(): goal["name"] for goal in tier}.values())
    if len(distinct_names) > 1:
        raise ClassificationAmbiguous(
            "That matches more than one goal: " + ", ".join(f'"{name}"' for name in distinct_names) + ". Which one did you mean?",
            distinct_names,
        )

    return max(tier, key=lambda goal: goal["created_at"])


def resolve_delete_target(message: str, goals: list[dict[str, Any]]) -> dict[str, Any]:
    if not goals:
        raise ClassificationAmbiguous("You don't have any goals to delete yet.", [])

    goal = resolve_goal_reference(message, goals, DELETE_VOCABULARY)
    if goal is None:
        names = [item["name"] for item in goals]
        raise ClassificationAmbiguous(
            "I couldn't tell which goal to delete. Your goals are: "
            + ", ".join(f'"{name}"' for name in names)
            + ". Which one should I remove?",
            names,
        )
    return goal


def select_progress_goal(
    message: str,
    goals: list[dict[str, Any]],
    goal_hint: str | None = None,
) -> tuple[dict[str, Any], bool]:
    """
    Pick the goal a progress update applies to.

    Returns (goal, defaulted). Without a recognizable reference the most
    recently created open goal of the message's type is used, and `defaulted`
    is True so the reply can say which goal was chosen.
    """
    if not goals:
        raise ClassificationAmbiguous("You don't have any goals yet. Create one first, then I can track progress.", [])

    for text in (goal_hint, message):
        if not text:
            continue
        goal = resolve_goal_reference(text, goals, PROGRESS_VOCABULARY)
        if goal is not None:
            return goal, False

    goal_type = extract_goal_type(message)
    by_recency = sorted(goals, key=lambda goal: goal["created_at"], reverse=True)
    same_type = [goal for goal in by_recency if goal["goal_type"] == goal_type]
    open_same_type = [goal for goal in same_type if goal["current_amount"] < goal["target_amount"]]

    for pool in (open_same_type, same_type, by_recency):
        if pool:
            return pool[0], True

    raise ClassificationAmbiguous("I couldn't find a goal to update.", [])
