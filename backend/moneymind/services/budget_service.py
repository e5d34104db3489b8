"""Budget reconciliation: transactions -> fixed taxonomy -> planned/actual/remaining.

Reconciliation is a full recompute for one `(user, period)`; planned amounts are
a separate user input and are never touched by a run. Category assignments are
memoized per transaction fingerprint so repeating a run on the same
transactions yields identical totals even though the categorizer is an LLM.
"""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import TYPE_CHECKING, Any
from uuid import UUID

from pydantic import BaseModel, Field

from moneymind.ai.prompts import CATEGORIZATION_SYSTEM_PROMPT, build_categorization_prompt
from moneymind.ai.provider import LLMProvider
from moneymind.budget_taxonomy import (
    CATEGORIES_BY_ID,
    CATEGORY_IDS,
    CATEGORY_TAXONOMY,
    MISCELLANEOUS,
    coerce_category_id,
    prompt_categories,
)
from moneymind.errors import InvalidInput, UpstreamProviderError
from moneymind.services.budget_dates import period_window

if TYPE_CHECKING:
    from psycopg import AsyncConnection
else:
    AsyncConnection = Any

logger = logging.getLogger(__name__)

MONEY_QUANT = Decimal("0.01")
MERCHANT_MAX_LEN = 200


class CategoryAssignment(BaseModel):
    index: int = Field(ge=0)
    category_id: str


class CategorizationPayload(BaseModel):
    assignments: list[CategoryAssignment]


def quantize_amount(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def _normalize_amount(value: Decimal | None) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return quantize_amount(value)


def normalize_transactions(raw: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Validate incoming transactions, naming the first offending field."""
    normalized: list[dict[str, Any]] = []
    for index, item in enumerate(raw):
        merchant = " ".join(str(item.get("merchant") or "").split())
        if not merchant:
            raise InvalidInput(f"transactions[{index}].merchant", "is required")

        try:
            amount = quantize_amount(Decimal(str(item.get("amount"))))
        except (InvalidOperation, ValueError) as exc:
            raise InvalidInput(f"transactions[{index}].amount", "must be a number") from exc
        if not amount.is_finite():
            raise InvalidInput(f"transactions[{index}].amount", "must be a finite number")

        occurred_on = item.get("date")
        if not isinstance(occurred_on, date):
            try:
                occurred_on = date.fromisoformat(str(occurred_on)[:10])
            except ValueError as exc:
                raise InvalidInput(f"transactions[{index}].date", "must be a date (YYYY-MM-DD)") from exc

        normalized.append(
            {
                "merchant": merchant[:MERCHANT_MAX_LEN],
                "amount": amount,
                "date": occurred_on,
            }
        )
    return normalized


def transaction_fingerprint(transaction: dict[str, Any]) -> str:
    """Stable identity of one transaction for category memoization."""
    merchant = re.sub(r"\s+", " ", transaction["merchant"].strip().lower())
    canonical = f"{merchant}|{quantize_amount(transaction['amount'])}|{transaction['date'].isoformat()}"
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def coerce_assignments(payload: CategorizationPayload, count: int) -> list[str]:
    """One category id per transaction index; unknown or missing -> miscellaneous."""
    assigned = [MISCELLANEOUS] * count
    seen: set[int] = set()
    for item in payload.assignments:
        if item.index >= count or item.index in seen:
            continue
        seen.add(item.index)
        assigned[item.index] = coerce_category_id(item.category_id)

    missing = count - len(seen)
    if missing:
        logger.warning("Categorizer skipped %d of %d transactions; using %s", missing, count, MISCELLANEOUS)
    return assigned


async def categorize_transactions(
    transactions: list[dict[str, Any]],
    provider: LLMProvider | None,
) -> list[str]:
    """Categorize the whole batch in a single provider call."""
    if not transactions:
        return []
    if provider is None:
        raise UpstreamProviderError("Spending analysis is unavailable because no language model is configured.")

    payload = await provider.extract(
        build_categorization_prompt(transactions, prompt_categories()),
        CategorizationPayload,
        system_prompt=CATEGORIZATION_SYSTEM_PROMPT,
    )
    return coerce_assignments(payload, len(transactions))


def summarize_spending(
    transactions: list[dict[str, Any]],
    category_by_fingerprint: dict[str, str],
) -> dict[str, Decimal]:
    """Sum amounts per category for every taxonomy id; floors each total at zero."""
    totals = {category_id: Decimal("0.00") for category_id in CATEGORY_IDS}
    for transaction in transactions:
        category_id = category_by_fingerprint.get(transaction["fingerprint"], MISCELLANEOUS)
        totals[category_id] = totals[category_id] + transaction["amount"]
    return {key: quantize_amount(max(value, Decimal("0.00"))) for key, value in totals.items()}


def build_breakdown(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Taxonomy-ordered rows with `remaining = planned - actual` (may be negative)."""
    by_id = {row["category_id"]: row for row in rows}
    breakdown: list[dict[str, Any]] = []
    for item in CATEGORY_TAXONOMY:
        row = by_id.get(item.category_id) or {}
        planned = _normalize_amount(row.get("planned_amount"))
        actual = _normalize_amount(row.get("actual_spent"))
        breakdown.append(
            {
                "category_id": item.category_id,
                "name": item.name,
                "group_name": item.group_name,
                "planned_amount": planned,
                "actual_spent": actual,
                "remaining": quantize_amount(planned - actual),
            }
        )
    return breakdown


def _period_summary(period_key: str, breakdown: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "period_key": period_key,
        "categories": breakdown,
        "categorized_spending": [
            {"category_id": row["category_id"], "amount": row["actual_spent"]}
            for row in breakdown
            if row["actual_spent"] > Decimal("0.00")
        ],
        "total_spent": quantize_amount(sum((row["actual_spent"] for row in breakdown), Decimal("0.00"))),
        "total_planned": quantize_amount(sum((row["planned_amount"] for row in breakdown), Decimal("0.00"))),
    }


async def _fetch_period_rows(connection: AsyncConnection, user_id: UUID, period_key: str) -> list[dict[str, Any]]:
    async with connection.cursor() as cursor:
        await cursor.execute(
            """
            SELECT category_id, planned_amount, actual_spent
            FROM budget_categories
            WHERE user_id = %s
              AND period_key = %s
            """,
            (user_id, period_key),
        )
        return await cursor.fetchall()


async def _fetch_memo(
    connection: AsyncConnection,
    user_id: UUID,
    fingerprints: list[str],
) -> dict[str, str]:
    if not fingerprints:
        return {}
    async with connection.cursor() as cursor:
        await cursor.execute(
            """
            SELECT fingerprint, category_id
            FROM transaction_categories
            WHERE user_id = %s
              AND fingerprint = ANY(%s)
            """,
            (user_id, fingerprints),
        )
        rows = await cursor.fetchall()
    return {row["fingerprint"]: coerce_category_id(row["category_id"]) for row in rows}


async def reconcile_spending(
    connection: AsyncConnection,
    user_id: UUID,
    transactions: list[dict[str, Any]],
    period_key: str,
    provider: LLMProvider | None,
) -> dict[str, Any]:
    """
    Recompute actual spend per category for one period.

    Steps:
    1. keep transactions dated inside the period
    2. reuse memoized categories; one batched LLM call for the rest
    3. under a per-(user, period) advisory lock: store new memo rows, re-read
       the memo, and overwrite `actual_spent` for every taxonomy category
    """
    period_start, period_end = period_window(period_key)
    normalized = normalize_transactions(transactions)

    in_period = [item for item in normalized if period_start <= item["date"] <= period_end]
    skipped = len(normalized) - len(in_period)
    if skipped:
        logger.info("Reconcile %s for user %s: ignored %d out-of-period transactions", period_key, user_id, skipped)

    for item in in_period:
        item["fingerprint"] = transaction_fingerprint(item)

    fingerprints = sorted({item["fingerprint"] for item in in_period})
    known = await _fetch_memo(connection, user_id, fingerprints)

    unseen: dict[str, dict[str, Any]] = {}
    for item in in_period:
        if item["fingerprint"] not in known and item["fingerprint"] not in unseen:
            unseen[item["fingerprint"]] = item
    unseen_items = list(unseen.values())
    fresh = await categorize_transactions(unseen_items, provider)

    lock_key = f"budget:{user_id}:{period_key}"
    async with connection.transaction():
        async with connection.cursor() as cursor:
            await cursor.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (lock_key,))

            for item, category_id in zip(unseen_items, fresh):
                await cursor.execute(
                    """
                    INSERT INTO transaction_categories (user_id, fingerprint, category_id)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (user_id, fingerprint) DO NOTHING
                    """,
                    (user_id, item["fingerprint"], category_id),
                )

        # A concurrent run may have stored a different assignment first; the stored one wins.
        category_by_fingerprint = await _fetch_memo(connection, user_id, fingerprints)
        totals = summarize_spending(in_period, category_by_fingerprint)

        rows = [
            (user_id, period_key, category_id, CATEGORIES_BY_ID[category_id].group_name, totals[category_id])
            for category_id in CATEGORY_IDS
        ]
        async with connection.cursor() as cursor:
            await cursor.executemany(
                """
                INSERT INTO budget_categories (user_id, period_key, category_id, group_name, planned_amount, actual_spent)
                VALUES (%s, %s, %s, %s, 0, %s)
                ON CONFLICT (user_id, period_key, category_id)
                DO UPDATE SET actual_spent = EXCLUDED.actual_spent,
                              updated_at = NOW()
                -- planned_amount is user input and is never overwritten here.
                """,
                rows,
            )

        rows = await _fetch_period_rows(connection, user_id, period_key)

    logger.info(
        "Reconciled %s for user %s: %d transactions, %d newly categorized",
        period_key,
        user_id,
        len(in_period),
        len(unseen_items),
    )
    return _period_summary(period_key, build_breakdown(rows))


async def get_budget_period(
    connection: AsyncConnection,
    user_id: UUID,
    period_key: str,
) -> dict[str, Any]:
    period_window(period_key)
    rows = await _fetch_period_rows(connection, user_id, period_key)
    return _period_summary(period_key, build_breakdown(rows))


async def set_planned_amount(
    connection: AsyncConnection,
    user_id: UUID,
    period_key: str,
    category_id: str,
    planned_amount: Decimal,
) -> dict[str, Any]:
    """User-edited planned amount; reconciliation never overwrites it."""
    period_window(period_key)
    if category_id not in CATEGORIES_BY_ID:
        raise InvalidInput("category_id", "is not a known budget category")

    planned = quantize_amount(Decimal(str(planned_amount)))
    if planned < Decimal("0.00"):
        raise InvalidInput("planned_amount", "must be >= 0")

    async with connection.cursor() as cursor:
        await cursor.execute(
            """
            INSERT INTO budget_categories (user_id, period_key, category_id, group_name, planned_amount, actual_spent)
            VALUES (%s, %s, %s, %s, %s, 0)
            ON CONFLICT (user_id, period_key, category_id)
            DO UPDATE SET planned_amount = EXCLUDED.planned_amount,
                          updated_at = NOW()
            """,
            (user_id, period_key, category_id, CATEGORIES_BY_ID[category_id].group_name, planned),
        )

    return await get_budget_period(connection, user_id, period_key)
