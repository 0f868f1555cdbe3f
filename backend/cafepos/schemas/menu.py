"""Read-only menu catalog schemas."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class CategoryResponse(BaseModel):
    id: int
    name: str
    item_count: int = 0


class MenuItemResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    category_id: Optional[int] = None
    category: Optional[str] = None
    is_active: bool
    # "counter" items sell from an inventory count, "recipe" items from ingredients
    stock_model: str
    inventory_quantity: Optional[int] = None
    low_stock: Optional[bool] = None
