"""Deterministic keyword-bucket intent classifier for goal utterances.

Priority order, highest first: delete > update_progress > create > unknown.
Destructive intent is decided here by fixed vocabulary, never by the model.
"""

from __future__ import annotations

import re
from enum import Enum


class Intent(str, Enum):
    CREATE = "create"
    DELETE = "delete"
    UPDATE_PROGRESS = "update_progress"
    UNKNOWN = "unknown"


INTENT_PRIORITY: tuple[Intent, ...] = (
    Intent.DELETE,
    Intent.UPDATE_PROGRESS,
    Intent.CREATE,
    Intent.UNKNOWN,
)

DELETE_VOCABULARY = ("delete", "remove", "cancel", "stop", "get rid of")
PROGRESS_VOCABULARY = (
    "saved",
    "added",
    "deposited",
    "put in",
    "progress",
    "update",
    "contributed",
    "paid off",
    "paid down",
)
GOAL_NOUNS = (
    "save",
    "saving",
    "savings",
    "goal",
    "fund",
    "emergency",
    "vacation",
    "trip",
    "holiday",
    "car",
    "house",
    "home",
    "down payment",
    "wedding",
    "retirement",
    "college",
    "tuition",
    "debt",
    "loan",
    "credit card",
    "mortgage",
    "pay off",
    "laptop",
    "phone",
)

AMOUNT_SHAPE_RE = re.compile(r"\$\s?\d|\b\d[\d,]*(?:\.\d+)?\s?(?:k|dollars?|bucks|usd)\b", re.IGNORECASE)


def _vocabulary_pattern(words: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(word).replace(r"\ ", r"\s+") for word in words)
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


_DELETE_RE = _vocabulary_pattern(DELETE_VOCABULARY)
_PROGRESS_RE = _vocabulary_pattern(PROGRESS_VOCABULARY)
_GOAL_NOUN_RE = _vocabulary_pattern(GOAL_NOUNS)


def matched_buckets(message: str) -> set[Intent]:
    """Return every keyword bucket the message hits, before priority is applied."""
    buckets: set[Intent] = set()
    if _DELETE_RE.search(message):
        buckets.add(Intent.DELETE)
    if _PROGRESS_RE.search(message):
        buckets.add(Intent.UPDATE_PROGRESS)
    if has_goal_shape(message):
        buckets.add(Intent.CREATE)
    return buckets


def has_goal_shape(message: str) -> bool:
    """A message looks like a goal when it names an amount or a goal noun."""
    return bool(AMOUNT_SHAPE_RE.search(message) or _GOAL_NOUN_RE.search(message))


def classify_intent(message: str, has_existing_goals: bool) -> Intent:
    buckets = matched_buckets(message or "")

    # Nothing exists to update; a progress word alone cannot target a goal.
    if not has_existing_goals and Intent.UPDATE_PROGRESS in buckets and Intent.DELETE not in buckets:
        buckets.discard(Intent.UPDATE_PROGRESS)

    for intent in INTENT_PRIORITY:
        if intent in buckets:
            return intent
    return Intent.UNKNOWN


UNKNOWN_INTENT_REPLY = (
    "I didn't understand that. I can help you:\n"
    "- create a goal, e.g. \"I want to save $5000 for a vacation by next summer\"\n"
    "- update progress, e.g. \"I saved $200 more for my emergency fund\"\n"
    "- delete a goal, e.g. \"Delete my credit card debt goal\""
)
