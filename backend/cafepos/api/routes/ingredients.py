"""Ingredient catalog, stock movements and recipes."""

import logging

from fastapi import APIRouter, Query, Request, status

from cafepos.core.rate_limit import limiter
from cafepos.core.rbac import CurrentUser, RequireManager
from cafepos.core.responses import list_response
from cafepos.core.validators import PositiveIntId
from cafepos.db.session import DbSession
from cafepos.schemas.ingredient import (
    IngredientCreate,
    IngredientResponse,
    IngredientUpdate,
    IngredientWithUsage,
    RecipeLineResponse,
    RecipeSet,
    StockChange,
    StockLogResponse,
)
from cafepos.services.stock_ledger import StockLedgerService

logger = logging.getLogger(__name__)

router = APIRouter()


# ==================== INGREDIENTS ====================

@router.get("/")
def list_ingredients(db: DbSession, current_user: CurrentUser):
    """All ingredients with the menu items whose recipes use them."""
    ingredients = StockLedgerService(db).list_ingredients()
    items = [
        IngredientWithUsage(
            **IngredientResponse.model_validate(ing).model_dump(),
            used_in=sorted(link.menu_item.name for link in ing.menu_items if link.menu_item),
        )
        for ing in ingredients
    ]
    return list_response(items)


@router.post("/", response_model=IngredientResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_ingredient(
    request: Request, body: IngredientCreate, db: DbSession, current_user: CurrentUser
):
    return StockLedgerService(db).create_ingredient(
        name=body.name.strip(),
        unit=body.unit,
        current_stock=body.current_stock,
        min_stock=body.min_stock,
        cost_per_unit=body.cost_per_unit,
        supplier=body.supplier,
    )


@router.get("/alerts/low-stock")
def low_stock_ingredients(db: DbSession, current_user: CurrentUser):
    ingredients = StockLedgerService(db).low_stock_ingredients()
    return list_response([IngredientResponse.model_validate(i) for i in ingredients])


@router.put("/{ingredient_id}", response_model=IngredientResponse)
def update_ingredient(
    ingredient_id: PositiveIntId, body: IngredientUpdate, db: DbSession, current_user: CurrentUser
):
    return StockLedgerService(db).update_ingredient(ingredient_id, **body.model_dump())


@router.delete("/{ingredient_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_ingredient(ingredient_id: PositiveIntId, db: DbSession, current_user: RequireManager):
    """Refused while any recipe still uses the ingredient."""
    StockLedgerService(db).delete_ingredient(ingredient_id)
    logger.info(f"Ingredient {ingredient_id} deleted by {current_user.email}")


# ==================== STOCK ====================

@router.post("/{ingredient_id}/add-stock", response_model=IngredientResponse)
@limiter.limit("60/minute")
def add_stock(
    request: Request,
    ingredient_id: PositiveIntId,
    body: StockChange,
    db: DbSession,
    current_user: CurrentUser,
):
    return StockLedgerService(db).add_stock(ingredient_id, body.quantity, body.notes)


@router.post("/{ingredient_id}/wastage", response_model=IngredientResponse)
@limiter.limit("60/minute")
def record_wastage(
    request: Request,
    ingredient_id: PositiveIntId,
    body: StockChange,
    db: DbSession,
    current_user: CurrentUser,
):
    return StockLedgerService(db).record_wastage(ingredient_id, body.quantity, body.notes)


@router.get("/{ingredient_id}/logs")
def stock_logs(
    ingredient_id: PositiveIntId,
    db: DbSession,
    current_user: CurrentUser,
    limit: int = Query(50, ge=1, le=500),
):
    logs = StockLedgerService(db).stock_logs(ingredient_id, limit=limit)
    return list_response([StockLogResponse.model_validate(log) for log in logs])


# ==================== RECIPES ====================

@router.get("/recipe/{menu_item_id}")
def get_recipe(menu_item_id: PositiveIntId, db: DbSession, current_user: CurrentUser):
    recipe = StockLedgerService(db).get_recipe(menu_item_id)
    return list_response([RecipeLineResponse.model_validate(line) for line in recipe])


@router.put("/recipe/{menu_item_id}")
def set_recipe(
    menu_item_id: PositiveIntId, body: RecipeSet, db: DbSession, current_user: CurrentUser
):
    """Replace the recipe. An empty list removes it."""
    recipe = StockLedgerService(db).set_recipe(
        menu_item_id, [(line.ingredient_id, line.quantity) for line in body.ingredients]
    )
    logger.info(f"Recipe for menu item {menu_item_id} set ({len(recipe)} ingredients)")
    return list_response([RecipeLineResponse.model_validate(line) for line in recipe])


@router.get("/check/{menu_item_id}")
def check_availability(menu_item_id: PositiveIntId, db: DbSession, current_user: CurrentUser):
    return StockLedgerService(db).check_availability(menu_item_id, 1)


@router.get("/check/{menu_item_id}/{quantity}")
def check_availability_for_quantity(
    menu_item_id: PositiveIntId, quantity: PositiveIntId, db: DbSession, current_user: CurrentUser
):
    return StockLedgerService(db).check_availability(menu_item_id, quantity)
