from typing import Iterable

from sqlalchemy.orm import Session

from kotflow.config import settings
from kotflow.models.core import Category, MenuItem, Subcategory, TicketCategory


def classify_categories(
    names: Iterable[str],
    food: Iterable[str] | None = None,
    beverages: Iterable[str] | None = None,
) -> TicketCategory:
    """Tag a ticket from the distinct category names of its items."""
    food_set = set(food if food is not None else settings.FOOD_CATEGORIES)
    bev_set = set(beverages if beverages is not None else settings.BEVERAGE_CATEGORIES)
    distinct = set(names)
    if not distinct:
        return TicketCategory.MIXED
    if distinct <= food_set:
        return TicketCategory.FOOD
    if distinct <= bev_set:
        return TicketCategory.BEVERAGES
    return TicketCategory.MIXED


def category_names_for_items(db: Session, item_ids: Iterable[str]) -> set[str]:
    ids = list(set(item_ids))
    if not ids:
        return set()
    rows = (
        db.query(Category.name)
        .join(Subcategory, Subcategory.category_id == Category.id)
        .join(MenuItem, MenuItem.subcategory_id == Subcategory.id)
        .filter(MenuItem.id.in_(ids))
        .distinct()
        .all()
    )
    return {name for (name,) in rows}
