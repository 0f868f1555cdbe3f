"""Stock Ledger - the only code path that changes stock quantities.

Two stock models coexist:

* Finished-goods counters (:class:`Inventory`) are decremented for dine-in
  orders with a conditional ``UPDATE ... WHERE quantity >= n`` so two
  concurrent orders can never oversell the same counter.
* Recipe ingredients (:class:`Ingredient`) are consumed by delivery and
  takeaway orders. Each change is an atomic SQL increment/decrement plus
  one :class:`IngredientStockLog` row written in the same transaction.

Ledger methods that take part in an order only flush; the order service
owns the transaction. The stand-alone stock operations (purchase, wastage,
recipe edits, deletion) commit on success and roll back on failure.
"""

import logging
from collections import OrderedDict
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session, joinedload

from cafepos.core.config import settings
from cafepos.core.exceptions import (
    ConflictError,
    IngredientInUseError,
    InsufficientStockError,
    NoInventoryRecordError,
    NotFoundError,
    ValidationError,
)
from cafepos.core.timeutils import utcnow
from cafepos.models.ingredient import (
    Ingredient,
    IngredientStockLog,
    IngredientUnit,
    StockChangeType,
)
from cafepos.models.menu import Inventory, MenuItem, MenuItemIngredient
from cafepos.models.order import Order, OrderType

logger = logging.getLogger(__name__)


class StockModel(str, Enum):
    """Which stock a menu item is deducted from."""

    COUNTER = "counter"
    RECIPE = "recipe"


def _aggregate(lines: Iterable[Tuple[int, int]]) -> "OrderedDict[int, int]":
    """Sum quantities per menu item, keeping first-seen order."""
    totals: "OrderedDict[int, int]" = OrderedDict()
    for menu_item_id, quantity in lines:
        totals[menu_item_id] = totals.get(menu_item_id, 0) + quantity
    return totals


class InventoryCounterStrategy:
    """Per-menu-item integer counters used by dine-in orders."""

    def __init__(self, db: Session):
        self.db = db

    def check(self, menu_item: MenuItem, quantity: int) -> None:
        """Read-only availability check, raised before any write happens."""
        inventory = self.db.query(Inventory).filter(Inventory.menu_item_id == menu_item.id).first()
        if inventory is None:
            raise NoInventoryRecordError(menu_item.name)
        if inventory.quantity < quantity:
            raise InsufficientStockError(menu_item.name, inventory.quantity, quantity)

    def deduct(self, menu_item: MenuItem, quantity: int) -> None:
        threshold = settings.low_stock_threshold
        result = self.db.execute(
            update(Inventory)
            .where(Inventory.menu_item_id == menu_item.id, Inventory.quantity >= quantity)
            .values(
                quantity=Inventory.quantity - quantity,
                low_stock=(Inventory.quantity - quantity) < threshold,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            inventory = (
                self.db.query(Inventory).filter(Inventory.menu_item_id == menu_item.id).first()
            )
            if inventory is None:
                raise NoInventoryRecordError(menu_item.name)
            self.db.refresh(inventory)
            raise InsufficientStockError(menu_item.name, inventory.quantity, quantity)
        logger.debug(f"Inventory for {menu_item.name} decremented by {quantity}")

    def restore(self, menu_item_id: int, quantity: int) -> None:
        threshold = settings.low_stock_threshold
        result = self.db.execute(
            update(Inventory)
            .where(Inventory.menu_item_id == menu_item_id)
            .values(
                quantity=Inventory.quantity + quantity,
                low_stock=(Inventory.quantity + quantity) < threshold,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(f"No inventory record to restore for menu item {menu_item_id}")


class RecipeStrategy:
    """Ingredient consumption through menu item recipes."""

    def __init__(self, db: Session, strict: Optional[bool] = None):
        self.db = db
        self.strict = settings.strict_recipe_stock if strict is None else strict

    def recipe(self, menu_item_id: int) -> List[MenuItemIngredient]:
        return (
            self.db.query(MenuItemIngredient)
            .options(joinedload(MenuItemIngredient.ingredient))
            .filter(MenuItemIngredient.menu_item_id == menu_item_id)
            .order_by(MenuItemIngredient.id)
            .all()
        )

    def deduct(
        self,
        menu_item: MenuItem,
        quantity: int,
        order_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Consume every recipe ingredient; returns what was deducted."""
        deducted = []
        for link in self.recipe(menu_item.id):
            amount = Decimal(link.quantity) * quantity
            stmt = update(Ingredient).where(Ingredient.id == link.ingredient_id)
            if self.strict:
                stmt = stmt.where(Ingredient.current_stock >= amount)
            result = self.db.execute(
                stmt.values(current_stock=Ingredient.current_stock - amount, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.refresh(link.ingredient)
                raise InsufficientStockError(
                    link.ingredient.name, link.ingredient.current_stock, amount
                )
            self.db.add(IngredientStockLog(
                ingredient_id=link.ingredient_id,
                change_type=StockChangeType.ORDER_USAGE,
                quantity=-amount,
                order_id=order_id,
                notes=notes,
            ))
            deducted.append({"ingredient_id": link.ingredient_id, "quantity": amount})
        if not deducted:
            logger.debug(f"{menu_item.name} has no recipe, nothing deducted")
        return deducted

    def restore_order(self, order_id: int, notes: Optional[str] = None) -> int:
        """Give back every ORDER_USAGE deduction recorded against an order."""
        usages = (
            self.db.query(IngredientStockLog)
            .filter(
                IngredientStockLog.order_id == order_id,
                IngredientStockLog.change_type == StockChangeType.ORDER_USAGE,
                IngredientStockLog.quantity < 0,
            )
            .order_by(IngredientStockLog.id)
            .all()
        )
        for usage in usages:
            amount = -Decimal(usage.quantity)
            self.db.execute(
                update(Ingredient)
                .where(Ingredient.id == usage.ingredient_id)
                .values(current_stock=Ingredient.current_stock + amount, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            self.db.add(IngredientStockLog(
                ingredient_id=usage.ingredient_id,
                change_type=StockChangeType.ORDER_USAGE,
                quantity=amount,
                order_id=order_id,
                notes=notes,
            ))
        return len(usages)


class StockLedgerService:
    """Facade over both stock models plus ingredient bookkeeping."""

    def __init__(self, db: Session):
        self.db = db
        self.counters = InventoryCounterStrategy(db)
        self.recipes = RecipeStrategy(db)

    # ===== ORDER DEDUCTION =====

    def _menu_item(self, menu_item_id: int) -> MenuItem:
        menu_item = self.db.get(MenuItem, menu_item_id)
        if menu_item is None:
            raise NotFoundError("Menu item", menu_item_id)
        return menu_item

    def _model_for(self, menu_item: MenuItem) -> StockModel:
        has_counter = (
            self.db.query(Inventory.id).filter(Inventory.menu_item_id == menu_item.id).first()
            is not None
        )
        return StockModel.COUNTER if has_counter else StockModel.RECIPE

    def check_counters(self, lines: Iterable[Tuple[int, int]]) -> None:
        """Pre-check counter stock for (menu_item_id, quantity) lines."""
        for menu_item_id, quantity in _aggregate(lines).items():
            self.counters.check(self._menu_item(menu_item_id), quantity)

    def deduct_for_order(
        self,
        lines: Iterable[Tuple[int, int]],
        order_id: Optional[int] = None,
        model: Optional[StockModel] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Deduct stock for (menu_item_id, quantity) lines.

        With no ``model`` each item is routed by what it has: an inventory
        counter wins, otherwise its recipe is consumed. Raises on the first
        shortfall; the caller rolls back.
        """
        summary: Dict[str, Any] = {"counters": [], "ingredients": []}
        for menu_item_id, quantity in _aggregate(lines).items():
            menu_item = self._menu_item(menu_item_id)
            item_model = model or self._model_for(menu_item)
            if item_model == StockModel.COUNTER:
                self.counters.deduct(menu_item, quantity)
                summary["counters"].append({"menu_item_id": menu_item_id, "quantity": quantity})
            else:
                summary["ingredients"].extend(
                    self.recipes.deduct(menu_item, quantity, order_id=order_id, notes=notes)
                )
        return summary

    def restore_for_order(self, order: Order, notes: Optional[str] = None) -> None:
        """Undo the deduction made when ``order`` was created."""
        if order.order_type == OrderType.DINE_IN:
            for menu_item_id, quantity in _aggregate(
                (item.menu_item_id, item.quantity) for item in order.items
            ).items():
                self.counters.restore(menu_item_id, quantity)
        else:
            restored = self.recipes.restore_order(
                order.id, notes=notes or f"Cancelled order #{order.bill_number}"
            )
            logger.info(f"Restored {restored} ingredient usages for order {order.bill_number}")

    # ===== INGREDIENT STOCK =====

    def get_ingredient(self, ingredient_id: int) -> Ingredient:
        ingredient = self.db.get(Ingredient, ingredient_id)
        if ingredient is None:
            raise NotFoundError("Ingredient", ingredient_id)
        return ingredient

    def _change_stock(
        self,
        ingredient_id: int,
        delta: Decimal,
        change_type: StockChangeType,
        notes: Optional[str],
        order_id: Optional[int] = None,
    ) -> None:
        self.db.execute(
            update(Ingredient)
            .where(Ingredient.id == ingredient_id)
            .values(current_stock=Ingredient.current_stock + delta, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.add(IngredientStockLog(
            ingredient_id=ingredient_id,
            change_type=change_type,
            quantity=delta,
            order_id=order_id,
            notes=notes,
        ))

    def add_stock(self, ingredient_id: int, quantity: Decimal, notes: Optional[str] = None) -> Ingredient:
        """Record a purchase."""
        quantity = Decimal(quantity)
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")
        ingredient = self.get_ingredient(ingredient_id)
        try:
            self._change_stock(
                ingredient.id, quantity, StockChangeType.PURCHASE, notes or "Stock added"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(ingredient)
        logger.info(f"Added {quantity} {ingredient.unit.value} of {ingredient.name}")
        return ingredient

    def record_wastage(self, ingredient_id: int, quantity: Decimal, notes: Optional[str] = None) -> Ingredient:
        quantity = Decimal(quantity)
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")
        ingredient = self.get_ingredient(ingredient_id)
        try:
            self._change_stock(
                ingredient.id, -quantity, StockChangeType.WASTAGE, notes or "Wastage recorded"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(ingredient)
        logger.info(f"Recorded wastage of {quantity} {ingredient.unit.value} of {ingredient.name}")
        return ingredient

    def stock_logs(self, ingredient_id: int, limit: int = 50) -> List[IngredientStockLog]:
        self.get_ingredient(ingredient_id)
        return (
            self.db.query(IngredientStockLog)
            .filter(IngredientStockLog.ingredient_id == ingredient_id)
            .order_by(IngredientStockLog.created_at.desc(), IngredientStockLog.id.desc())
            .limit(limit)
            .all()
        )

    def low_stock_ingredients(self) -> List[Ingredient]:
        return (
            self.db.query(Ingredient)
            .filter(Ingredient.current_stock <= Ingredient.min_stock)
            .order_by(Ingredient.name)
            .all()
        )

    # ===== INGREDIENT CATALOG =====

    def list_ingredients(self) -> List[Ingredient]:
        return (
            self.db.query(Ingredient)
            .options(joinedload(Ingredient.menu_items).joinedload(MenuItemIngredient.menu_item))
            .order_by(Ingredient.name)
            .all()
        )

    def create_ingredient(
        self,
        name: str,
        unit: IngredientUnit = IngredientUnit.GRAMS,
        current_stock: Decimal = Decimal("0"),
        min_stock: Decimal = Decimal("10"),
        cost_per_unit: Decimal = Decimal("0"),
        supplier: Optional[str] = None,
    ) -> Ingredient:
        """Create an ingredient; opening stock is booked as a purchase."""
        if self.db.query(Ingredient.id).filter(Ingredient.name == name).first():
            raise ConflictError("Ingredient with this name already exists")
        opening = Decimal(current_stock or 0)
        if opening < 0:
            raise ValidationError("Opening stock cannot be negative")
        ingredient = Ingredient(
            name=name,
            unit=unit,
            current_stock=Decimal("0"),
            min_stock=min_stock,
            cost_per_unit=cost_per_unit,
            supplier=supplier,
        )
        try:
            self.db.add(ingredient)
            self.db.flush()
            if opening > 0:
                self._change_stock(ingredient.id, opening, StockChangeType.PURCHASE, "Opening stock")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(ingredient)
        logger.info(f"Created ingredient {ingredient.name} (id={ingredient.id})")
        return ingredient

    def update_ingredient(self, ingredient_id: int, **fields) -> Ingredient:
        """Edit catalog fields. Stock is not editable here."""
        ingredient = self.get_ingredient(ingredient_id)
        new_name = fields.get("name")
        if new_name and new_name != ingredient.name:
            clash = (
                self.db.query(Ingredient.id)
                .filter(Ingredient.name == new_name, Ingredient.id != ingredient_id)
                .first()
            )
            if clash:
                raise ConflictError("Ingredient with this name already exists")
        for key in ("name", "unit", "min_stock", "cost_per_unit", "supplier"):
            if fields.get(key) is not None:
                setattr(ingredient, key, fields[key])
        self.db.commit()
        self.db.refresh(ingredient)
        return ingredient

    def delete_ingredient(self, ingredient_id: int) -> None:
        """Delete an ingredient that no recipe references."""
        ingredient = self.get_ingredient(ingredient_id)
        users = (
            self.db.query(MenuItem.name)
            .join(MenuItemIngredient, MenuItemIngredient.menu_item_id == MenuItem.id)
            .filter(MenuItemIngredient.ingredient_id == ingredient_id)
            .order_by(MenuItem.name)
            .all()
        )
        if users:
            raise IngredientInUseError(ingredient.name, [name for (name,) in users])
        try:
            self.db.delete(ingredient)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Deleted ingredient {ingredient.name} (id={ingredient_id})")

    # ===== RECIPES =====

    def get_recipe(self, menu_item_id: int) -> List[MenuItemIngredient]:
        self._menu_item(menu_item_id)
        return self.recipes.recipe(menu_item_id)

    def set_recipe(
        self, menu_item_id: int, ingredients: Iterable[Tuple[int, Decimal]]
    ) -> List[MenuItemIngredient]:
        """Replace a menu item's recipe with (ingredient_id, quantity) pairs."""
        self._menu_item(menu_item_id)
        merged: "OrderedDict[int, Decimal]" = OrderedDict()
        for ingredient_id, quantity in ingredients:
            quantity = Decimal(quantity)
            if quantity <= 0:
                raise ValidationError("Recipe quantities must be greater than 0")
            self.get_ingredient(ingredient_id)
            merged[ingredient_id] = merged.get(ingredient_id, Decimal("0")) + quantity
        try:
            self.db.query(MenuItemIngredient).filter(
                MenuItemIngredient.menu_item_id == menu_item_id
            ).delete(synchronize_session=False)
            for ingredient_id, quantity in merged.items():
                self.db.add(MenuItemIngredient(
                    menu_item_id=menu_item_id, ingredient_id=ingredient_id, quantity=quantity
                ))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.expire_all()
        return self.recipes.recipe(menu_item_id)

    def check_availability(self, menu_item_id: int, quantity: int = 1) -> Dict[str, Any]:
        """Can ``quantity`` units be made from current ingredient stock?"""
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        recipe = self.get_recipe(menu_item_id)
        if not recipe:
            return {
                "available": True,
                "can_make": quantity,
                "message": "No recipe defined - assuming available",
                "missing_ingredients": [],
            }
        missing = []
        for link in recipe:
            required = Decimal(link.quantity) * quantity
            stock = Decimal(link.ingredient.current_stock)
            if stock < required:
                missing.append({
                    "ingredient_id": link.ingredient_id,
                    "name": link.ingredient.name,
                    "required": required,
                    "available": stock,
                    "unit": link.ingredient.unit.value,
                    "shortage": required - stock,
                })
        return {
            "available": not missing,
            "can_make": quantity if not missing else 0,
            "missing_ingredients": missing,
        }

    # ===== INVENTORY COUNTERS =====

    def list_inventory(self) -> List[Inventory]:
        return (
            self.db.query(Inventory)
            .options(joinedload(Inventory.menu_item).joinedload(MenuItem.category))
            .join(MenuItem, MenuItem.id == Inventory.menu_item_id)
            .order_by(MenuItem.name)
            .all()
        )

    def low_stock_inventory(self) -> List[Inventory]:
        return [inv for inv in self.list_inventory() if inv.low_stock]

    def set_inventory_quantity(self, inventory_id: int, quantity: int) -> Inventory:
        """Manual stock count for a finished-goods counter."""
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative")
        inventory = self.db.get(Inventory, inventory_id)
        if inventory is None:
            raise NotFoundError("Inventory record", inventory_id)
        inventory.quantity = quantity
        inventory.low_stock = quantity < settings.low_stock_threshold
        self.db.commit()
        self.db.refresh(inventory)
        logger.info(f"Inventory {inventory_id} set to {quantity}")
        return inventory
