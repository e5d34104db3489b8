"""Fixed budget category taxonomy, grouped by the 50/30/20 split."""

from __future__ import annotations

from dataclasses import dataclass

MISCELLANEOUS = "miscellaneous"


@dataclass(frozen=True)
class BudgetCategoryDef:
    category_id: str
    name: str
    group_name: str


CATEGORY_TAXONOMY: tuple[BudgetCategoryDef, ...] = (
    BudgetCategoryDef("housing", "Housing", "Needs"),
    BudgetCategoryDef("utilities", "Utilities", "Needs"),
    BudgetCategoryDef("food_dining", "Food & Dining", "Needs"),
    BudgetCategoryDef("transportation", "Transportation", "Needs"),
    BudgetCategoryDef("home_maintenance", "Home Maintenance", "Needs"),
    BudgetCategoryDef("shopping", "Shopping", "Wants"),
    BudgetCategoryDef("entertainment", "Entertainment", "Wants"),
    BudgetCategoryDef("savings", "Savings", "Savings"),
    BudgetCategoryDef(MISCELLANEOUS, "Miscellaneous", "Wants"),
)

CATEGORIES_BY_ID: dict[str, BudgetCategoryDef] = {item.category_id: item for item in CATEGORY_TAXONOMY}
CATEGORY_IDS: tuple[str, ...] = tuple(item.category_id for item in CATEGORY_TAXONOMY)


def coerce_category_id(value: object) -> str:
    """Map anything the categorizer returns onto a known id; unknown -> miscellaneous."""
    if not isinstance(value, str):
        return MISCELLANEOUS
    normalized = value.strip().lower().replace(" & ", "_").replace(" ", "_").replace("-", "_")
    if normalized in CATEGORIES_BY_ID:
        return normalized
    for item in CATEGORY_TAXONOMY:
        if item.name.lower() == value.strip().lower():
            return item.category_id
    return MISCELLANEOUS


def prompt_categories() -> list[dict[str, str]]:
    return [{"id": item.category_id, "name": item.name, "group": item.group_name} for item in CATEGORY_TAXONOMY]
