"""Database models."""

from cafepos.models.user import User
from cafepos.models.table import DiningTable, TableStatus
from cafepos.models.menu import Category, Inventory, MenuItem, MenuItemIngredient, Modification
from cafepos.models.ingredient import (
    Ingredient,
    IngredientStockLog,
    IngredientUnit,
    StockChangeType,
)
from cafepos.models.order import (
    ACTIVE_ORDER_STATUSES,
    DeliveryInfo,
    DeliveryPlatform,
    DeliveryStatus,
    Order,
    OrderItem,
    OrderItemModification,
    OrderStatus,
    OrderType,
    PaymentMode,
)

__all__ = [
    "User",
    "DiningTable",
    "TableStatus",
    "Category",
    "Inventory",
    "MenuItem",
    "MenuItemIngredient",
    "Modification",
    "Ingredient",
    "IngredientStockLog",
    "IngredientUnit",
    "StockChangeType",
    "ACTIVE_ORDER_STATUSES",
    "DeliveryInfo",
    "DeliveryPlatform",
    "DeliveryStatus",
    "Order",
    "OrderItem",
    "OrderItemModification",
    "OrderStatus",
    "OrderType",
    "PaymentMode",
]
