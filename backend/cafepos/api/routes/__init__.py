"""API routes."""

from fastapi import APIRouter

from cafepos.api.routes import (
    auth, orders, delivery, tables, menu, ingredients, inventory, modifications, reports,
)

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(delivery.router, prefix="/delivery", tags=["delivery", "takeaway"])
api_router.include_router(tables.router, prefix="/tables", tags=["tables", "reservations"])
api_router.include_router(menu.router, prefix="/menu", tags=["menu"])
api_router.include_router(ingredients.router, prefix="/ingredients", tags=["ingredients", "recipes"])
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
api_router.include_router(modifications.router, prefix="/modifications", tags=["modifications"])
api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
