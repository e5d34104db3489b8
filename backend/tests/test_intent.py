from __future__ import annotations

import pytest

from moneymind.services.intent import INTENT_PRIORITY, Intent, classify_intent, matched_buckets


@pytest.mark.parametrize(
    ("message", "has_goals", "expected"),
    [
        ("Delete my credit card debt goal", True, Intent.DELETE),
        ("I saved $200 more for my emergency fund", True, Intent.UPDATE_PROGRESS),
        ("I want to save $5000 for a vacation by next summer", True, Intent.CREATE),
        ("Cancel the vacation goal, I already saved enough", True, Intent.DELETE),
        ("Please update my vacation goal", True, Intent.UPDATE_PROGRESS),
        ("I need to get   rid of the car goal", True, Intent.DELETE),
        ("What's the weather like?", True, Intent.UNKNOWN),
        ("hello", False, Intent.UNKNOWN),
    ],
)
def test_classify_intent(message, has_goals, expected) -> None:
    assert classify_intent(message, has_existing_goals=has_goals) is expected


def test_progress_words_without_goals_fall_back_to_shape_check() -> None:
    message = "I saved $200 more for my emergency fund"

    assert classify_intent(message, has_existing_goals=False) is Intent.CREATE
    assert classify_intent("I added it", has_existing_goals=False) is Intent.UNKNOWN


def test_delete_wins_over_progress_even_without_goals() -> None:
    assert classify_intent("remove the $200 I saved", has_existing_goals=False) is Intent.DELETE


def test_keywords_match_whole_words_only() -> None:
    assert Intent.DELETE not in matched_buckets("Buy a stopwatch")
    assert Intent.UPDATE_PROGRESS not in matched_buckets("updates are boring")
    assert classify_intent("Buy a stopwatch", has_existing_goals=True) is Intent.UNKNOWN


def test_priority_order_is_documented() -> None:
    assert INTENT_PRIORITY == (Intent.DELETE, Intent.UPDATE_PROGRESS, Intent.CREATE, Intent.UNKNOWN)
    assert Intent.UPDATE_PROGRESS.value == "update_progress"
