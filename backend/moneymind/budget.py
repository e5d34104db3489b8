from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field, field_serializer

from .ai.provider import LLMProvider, get_llm_provider
from .auth import get_current_user_id
from .database import get_db_connection
from .errors import ExtractionFailed, InvalidInput, UpstreamProviderError
from .schemas import CamelModel, _money
from .services.budget_dates import period_key_for
from .services.budget_service import get_budget_period, reconcile_spending, set_planned_amount
from .utils import get_local_today

# Budget endpoints: transactions -> category actuals, plus user-planned amounts.
router = APIRouter(tags=["budget"])


class TransactionIn(CamelModel):
    merchant: str = Field(min_length=1, max_length=200)
    amount: Decimal = Field(max_digits=12, decimal_places=2)
    date: date


class AnalyzeSpendingRequest(CamelModel):
    transactions: list[TransactionIn] = Field(default_factory=list, max_length=2000)
    period_key: str | None = None


class PlannedAmountRequest(CamelModel):
    planned_amount: Decimal = Field(ge=Decimal("0"), max_digits=12, decimal_places=2)


class CategorySpendOut(CamelModel):
    category_id: str
    amount: Decimal

    @field_serializer("amount")
    def serialize_decimal(self, value: Decimal) -> str:
        return _money(value)


class BudgetCategoryOut(CamelModel):
    category_id: str
    name: str
    group_name: str
    planned_amount: Decimal
    actual_spent: Decimal
    remaining: Decimal

    @field_serializer("planned_amount", "actual_spent", "remaining")
    def serialize_decimal(self, value: Decimal) -> str:
        return _money(value)


class BudgetPeriodResponse(CamelModel):
    period_key: str
    categorized_spending: list[CategorySpendOut]
    categories: list[BudgetCategoryOut]
    total_spent: Decimal
    total_planned: Decimal

    @field_serializer("total_spent", "total_planned")
    def serialize_decimal(self, value: Decimal) -> str:
        return _money(value)


def _get_llm_provider() -> LLMProvider | None:
    return get_llm_provider()


def _invalid(exc: InvalidInput) -> HTTPException:
    return HTTPException(status_code=422, detail={"field": exc.field, "message": exc.message})


def _to_response(summary: dict[str, Any]) -> BudgetPeriodResponse:
    return BudgetPeriodResponse(
        period_key=summary["period_key"],
        categorized_spending=[CategorySpendOut(**item) for item in summary["categorized_spending"]],
        categories=[BudgetCategoryOut(**item) for item in summary["categories"]],
        total_spent=summary["total_spent"],
        total_planned=summary["total_planned"],
    )


@router.post("/ai/analyze-spending", response_model=BudgetPeriodResponse)
async def analyze_spending(
    payload: AnalyzeSpendingRequest,
    today: date = Depends(get_local_today),
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> BudgetPeriodResponse:
    """
    Categorize the given transactions and recompute actual spend for one month.

    Request example:
    {
      "periodKey": "2026-02",
      "transactions": [{"merchant": "Safeway", "amount": "82.10", "date": "2026-02-03"}]
    }

    Running it again with the same transactions yields the same totals.
    """
    period_key = payload.period_key or period_key_for(today)
    try:
        summary = await reconcile_spending(
            connection,
            user_id,
            [item.model_dump() for item in payload.transactions],
            period_key,
            _get_llm_provider(),
        )
    except InvalidInput as exc:
        raise _invalid(exc) from exc
    except ExtractionFailed as exc:
        raise HTTPException(
            status_code=502,
            detail="We couldn't categorize these transactions right now. Nothing was changed; please try again.",
        ) from exc
    except UpstreamProviderError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return _to_response(summary)


@router.get("/budget/{period_key}", response_model=BudgetPeriodResponse)
async def get_budget(
    period_key: str,
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> BudgetPeriodResponse:
    try:
        summary = await get_budget_period(connection, user_id, period_key)
    except InvalidInput as exc:
        raise _invalid(exc) from exc
    return _to_response(summary)


@router.put("/budget/{period_key}/categories/{category_id}", response_model=BudgetPeriodResponse)
async def put_planned_amount(
    period_key: str,
    category_id: str,
    payload: PlannedAmountRequest,
    user_id: UUID = Depends(get_current_user_id),
    connection: Any = Depends(get_db_connection),
) -> BudgetPeriodResponse:
    """Set the planned amount for one category; spending analysis leaves it alone."""
    try:
        summary = await set_planned_amount(connection, user_id, period_key, category_id, payload.planned_amount)
    except InvalidInput as exc:
        raise _invalid(exc) from exc
    return _to_response(summary)
