from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

from moneymind.errors import ExtractionFailed
from moneymind.services import goals_ai_service, goals_service
from moneymind.services.intent import UNKNOWN_INTENT_REPLY, Intent
from test_goals_service import FakeGoalsConnection

TODAY = date(2026, 3, 1)


def _run(coro):
    return asyncio.run(coro)


class FakeProvider:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = 0

    async def extract(self, prompt, schema, *, system_prompt=""):
        self.calls += 1
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return schema.model_validate(reply)

    async def complete(self, prompt, *, system_prompt=""):
        raise AssertionError("complete() is not used by goal chat")


def _seed(connection, user_id, name, goal_type="savings", target="5000.00", current="0.00"):
    return _run(
        goals_service.create_goal(
            connection,
            user_id,
            {
                "name": name,
                "goal_type": goal_type,
                "target_amount": Decimal(target),
                "current_amount": Decimal(current),
            },
            today=TODAY,
        )
    )


def test_progress_message_updates_the_named_goal() -> None:
    connection = FakeGoalsConnection()
    user_id = uuid4()
    fund = _seed(connection, user_id, "Emergency Fund", current="2500.00")
    vacation = _seed(connection, user_id, "Vacation", current="100.00")

    result = _run(
        goals_ai_service.handle_goal_message(
            connection, user_id, "I saved $200 more for my emergency fund", None, today=TODAY
        )
    )

    assert result["intent"] is Intent.UPDATE_PROGRESS
    assert result["progress_updated"] is True
    assert connection.goals[fund["id"]]["current_amount"] == Decimal("2700.00")
    assert connection.goals[vacation["id"]]["current_amount"] == Decimal("100.00")
    assert '"Emergency Fund"' in result["response"]
    assert "$2,700.00" in result["response"]


def test_delete_message_removes_exactly_the_named_goal() -> None:
    connection = FakeGoalsConnection()
    user_id = uuid4()
    debt = _seed(connection, user_id, "Credit Card Debt", goal_type="debt", target="2400.00")
    vacation = _seed(connection, user_id, "Vacation")

    result = _run(
        goals_ai_service.handle_goal_message(connection, user_id, "Delete my credit card debt goal", None)
    )

    assert result["intent"] is Intent.DELETE
    assert result["goal_deleted"] is True
    assert result["goal"]["id"] == debt["id"]
    assert "Credit Card Debt" in result["response"]
    assert set(connection.goals) == {vacation["id"]}


def test_delete_never_matches_a_name_inside_another_word() -> None:
    connection = FakeGoalsConnection()
    user_id = uuid4()
    car = _seed(connection, user_id, "Car")

    result = _run(goals_ai_service.ai_delete_goal(connection, user_id, "Delete my credit card goal"))

    assert result["goal_deleted"] is False
    assert result["deleted_goal"] is None
    assert result["candidates"] == ["Car"]
    assert set(connection.goals) == {car["id"]}


def test_create_message_from_rules_needs_no_provider() -> None:
    connection = FakeGoalsConnection()
    user_id = uuid4()

    result = _run(
        goals_ai_service.handle_goal_message(
            connection, user_id, "I want to save $5000 for a vacation by next summer", None, today=TODAY
        )
    )

    assert result["intent"] is Intent.CREATE
    assert result["goal_created"] is True
    assert result["goal"]["name"] == "Vacation"
    assert result["goal"]["target_amount"] == Decimal("5000.00")
    assert "$5,000.00" in result["response"]
    assert "June 1, 2026" in result["response"]


def test_create_extraction_failure_creates_nothing() -> None:
    connection = FakeGoalsConnection()
    user_id = uuid4()
    provider = FakeProvider([ExtractionFailed("unreadable", ["name: missing"])])

    result = _run(
        goals_ai_service.ai_create_goal(connection, user_id, "Help me save for a new bike", provider, today=TODAY)
    )

    assert result["goal_created"] is False
    assert result["response"] == goals_ai_service.CREATE_FALLBACK_REPLY
    assert "Add New Goal" in result["response"]
    assert connection.goals == {}


def test_create_without_provider_falls_back_to_manual_form() -> None:
    connection = FakeGoalsConnection()

    result = _run(
        goals_ai_service.ai_create_goal(connection, uuid4(), "Help me save for a new bike", None, today=TODAY)
    )

    assert result["goal_created"] is False
    assert connection.goals == {}


def test_ambiguous_delete_asks_and_keeps_both_goals() -> None:
    connection = FakeGoalsConnection()
    user_id = uuid4()
    _seed(connection, user_id, "Vacation Fund")
    _seed(connection, user_id, "Vacation Home")

    result = _run(goals_ai_service.ai_delete_goal(connection, user_id, "delete my vacation goal"))

    assert result["goal_deleted"] is False
    assert sorted(result["candidates"]) == ["Vacation Fund", "Vacation Home"]
    assert "Which one" in result["response"]
    assert len(connection.goals) == 2


def test_delete_without_delete_words_does_nothing() -> None:
    connection = FakeGoalsConnection()
    user_id = uuid4()
    _seed(connection, user_id, "Vacation")

    result = _run(goals_ai_service.ai_delete_goal(connection, user_id, "my vacation goal"))

    assert result["goal_deleted"] is False
    assert len(connection.goals) == 1


def test_progress_without_amount_returns_manual_fallback() -> None:
    connection = FakeGoalsConnection()
    user_id = uuid4()
    goal = _seed(connection, user_id, "Vacation", current="100.00")

    result = _run(goals_ai_service.ai_update_progress(connection, user_id, "I added some to vacation", None))

    assert result["progress_updated"] is False
    assert result["response"] == goals_ai_service.PROGRESS_FALLBACK_REPLY
    assert connection.goals[goal["id"]]["current_amount"] == Decimal("100.00")


def test_progress_uses_provider_amount_and_hint() -> None:
    connection = FakeGoalsConnection()
    user_id = uuid4()
    vacation = _seed(connection, user_id, "Vacation")
    wedding = _seed(connection, user_id, "Wedding")
    provider = FakeProvider([{"amount": "75", "goal_hint": "Vacation"}])

    result = _run(goals_ai_service.ai_update_progress(connection, user_id, "I added seventy five bucks", provider))

    assert provider.calls == 1
    assert result["progress_updated"] is True
    assert connection.goals[vacation["id"]]["current_amount"] == Decimal("75.00")
    assert connection.goals[wedding["id"]]["current_amount"] == Decimal("0.00")


def test_progress_without_goal_name_defaults_and_says_so() -> None:
    connection = FakeGoalsConnection()
    user_id = uuid4()
    _seed(connection, user_id, "Vacation")
    latest = _seed(connection, user_id, "Wedding")

    result = _run(goals_ai_service.ai_update_progress(connection, user_id, "I put in $50 today", None))

    assert result["goal"]["id"] == latest["id"]
    assert "most recent goal" in result["response"]
    assert '"Wedding"' in result["response"]


def test_progress_with_no_goals_changes_nothing() -> None:
    connection = FakeGoalsConnection()

    result = _run(goals_ai_service.ai_update_progress(connection, uuid4(), "I saved $20", None))

    assert result["progress_updated"] is False
    assert connection.goals == {}


def test_unknown_message_gets_help_reply_and_no_write() -> None:
    connection = FakeGoalsConnection()
    user_id = uuid4()
    _seed(connection, user_id, "Vacation")
    connection.statements.clear()

    result = _run(goals_ai_service.handle_goal_message(connection, user_id, "What's the weather like?", None))

    assert result["intent"] is Intent.UNKNOWN
    assert result["response"] == UNKNOWN_INTENT_REPLY
    assert all(statement.startswith("SELECT") for statement in connection.statements)
