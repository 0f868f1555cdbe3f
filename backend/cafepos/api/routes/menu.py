"""Read-only menu catalog, used by clients to pick items for orders."""

from typing import Optional

from fastapi import APIRouter, Query
from sqlalchemy import func
from sqlalchemy.orm import selectinload

from cafepos.core.rbac import CurrentUser
from cafepos.core.responses import list_response
from cafepos.db.session import DbSession
from cafepos.models.menu import Category, MenuItem
from cafepos.schemas.menu import CategoryResponse, MenuItemResponse

router = APIRouter()


def _to_response(item: MenuItem) -> MenuItemResponse:
    inv = item.inventory
    return MenuItemResponse(
        id=item.id,
        name=item.name,
        description=item.description,
        price=item.price,
        category_id=item.category_id,
        category=item.category.name if item.category else None,
        is_active=item.is_active,
        stock_model="counter" if inv is not None else "recipe",
        inventory_quantity=inv.quantity if inv is not None else None,
        low_stock=inv.low_stock if inv is not None else None,
    )


@router.get("/items")
def list_menu_items(
    db: DbSession,
    current_user: CurrentUser,
    category_id: Optional[int] = Query(None, gt=0, alias="categoryId"),
    include_inactive: bool = Query(False, alias="includeInactive"),
):
    """Menu items with category and stock model; active items only by default."""
    query = db.query(MenuItem).options(
        selectinload(MenuItem.category), selectinload(MenuItem.inventory)
    )
    if not include_inactive:
        query = query.filter(MenuItem.is_active.is_(True))
    if category_id is not None:
        query = query.filter(MenuItem.category_id == category_id)
    items = query.order_by(MenuItem.category_id, MenuItem.name).all()
    return list_response([_to_response(item) for item in items])


@router.get("/categories")
def list_categories(db: DbSession, current_user: CurrentUser):
    """Categories with their active item counts."""
    rows = (
        db.query(Category, func.count(MenuItem.id))
        .outerjoin(
            MenuItem, (MenuItem.category_id == Category.id) & MenuItem.is_active.is_(True)
        )
        .group_by(Category.id)
        .order_by(Category.name)
        .all()
    )
    return list_response([
        CategoryResponse(id=category.id, name=category.name, item_count=count)
        for category, count in rows
    ])
