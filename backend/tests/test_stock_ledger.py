"""Tests for the stock ledger: counters, ingredient stock and recipes."""

from decimal import Decimal

import pytest

from cafepos.core.exceptions import (
    ConflictError,
    IngredientInUseError,
    InsufficientStockError,
    NoInventoryRecordError,
    NotFoundError,
    ValidationError,
)
from cafepos.models import IngredientStockLog, IngredientUnit, MenuItem, StockChangeType
from cafepos.services.stock_ledger import RecipeStrategy, StockLedgerService, StockModel


def _logs(db_session, ingredient):
    return (
        db_session.query(IngredientStockLog)
        .filter(IngredientStockLog.ingredient_id == ingredient.id)
        .order_by(IngredientStockLog.id)
        .all()
    )


# ============== Ingredient stock ==============

class TestIngredientStock:

    def test_add_stock_logs_purchase(self, db_session):
        ledger = StockLedgerService(db_session)
        milk = ledger.create_ingredient(
            name="Milk", unit=IngredientUnit.GRAMS, current_stock=Decimal("500"), min_stock=Decimal("200")
        )
        before = len(_logs(db_session, milk))

        milk = ledger.add_stock(milk.id, Decimal("300"))

        assert milk.current_stock == Decimal("800")
        assert milk.low_stock is False
        new_logs = _logs(db_session, milk)[before:]
        assert len(new_logs) == 1
        assert new_logs[0].change_type == StockChangeType.PURCHASE
        assert new_logs[0].quantity == Decimal("300")

    def test_opening_stock_is_logged(self, db_session):
        sugar = StockLedgerService(db_session).create_ingredient(name="Sugar", current_stock=Decimal("750"))
        logs = _logs(db_session, sugar)
        assert len(logs) == 1
        assert logs[0].change_type == StockChangeType.PURCHASE
        assert logs[0].notes == "Opening stock"

    def test_wastage_is_negative(self, db_session):
        ledger = StockLedgerService(db_session)
        milk = ledger.create_ingredient(name="Milk", current_stock=Decimal("500"))
        milk = ledger.record_wastage(milk.id, Decimal("120"), notes="Spilled")
        assert milk.current_stock == Decimal("380")
        last = _logs(db_session, milk)[-1]
        assert last.change_type == StockChangeType.WASTAGE
        assert last.quantity == Decimal("-120")
        assert last.notes == "Spilled"

    def test_log_sum_matches_stock_change(self, db_session):
        ledger = StockLedgerService(db_session)
        flour = ledger.create_ingredient(name="Flour")
        ledger.add_stock(flour.id, Decimal("1000"))
        ledger.record_wastage(flour.id, Decimal("50"))
        ledger.add_stock(flour.id, Decimal("12.5"))
        flour = ledger.get_ingredient(flour.id)
        assert sum(log.quantity for log in _logs(db_session, flour)) == flour.current_stock
        assert flour.current_stock == Decimal("962.5")

    @pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-5")])
    def test_non_positive_quantities_rejected(self, db_session, quantity):
        ledger = StockLedgerService(db_session)
        milk = ledger.create_ingredient(name="Milk")
        with pytest.raises(ValidationError):
            ledger.add_stock(milk.id, quantity)
        with pytest.raises(ValidationError):
            ledger.record_wastage(milk.id, quantity)
        assert _logs(db_session, milk) == []

    def test_unknown_ingredient(self, db_session):
        with pytest.raises(NotFoundError):
            StockLedgerService(db_session).add_stock(999, Decimal("1"))

    def test_duplicate_name_conflicts(self, db_session):
        ledger = StockLedgerService(db_session)
        ledger.create_ingredient(name="Milk")
        with pytest.raises(ConflictError):
            ledger.create_ingredient(name="Milk")

    def test_low_stock_list(self, db_session):
        ledger = StockLedgerService(db_session)
        ledger.create_ingredient(name="Salt", current_stock=Decimal("5"), min_stock=Decimal("10"))
        ledger.create_ingredient(name="Rice", current_stock=Decimal("50"), min_stock=Decimal("10"))
        ledger.create_ingredient(name="Oil", current_stock=Decimal("10"), min_stock=Decimal("10"))
        assert [i.name for i in ledger.low_stock_ingredients()] == ["Oil", "Salt"]

    def test_stock_logs_newest_first(self, db_session):
        ledger = StockLedgerService(db_session)
        milk = ledger.create_ingredient(name="Milk", current_stock=Decimal("10"))
        ledger.add_stock(milk.id, Decimal("5"))
        logs = ledger.stock_logs(milk.id)
        assert [log.quantity for log in logs] == [Decimal("5"), Decimal("10")]


# ============== Deleting ingredients ==============

class TestDeleteIngredient:

    def test_in_use_lists_every_menu_item(self, catalog):
        db = catalog["db"]
        ledger = StockLedgerService(db)
        mocha = MenuItem(name="Mocha", price=Decimal("200"))
        db.add(mocha)
        db.commit()
        ledger.set_recipe(mocha.id, [(catalog["milk"].id, Decimal("150"))])

        with pytest.raises(IngredientInUseError) as exc:
            ledger.delete_ingredient(catalog["milk"].id)

        assert exc.value.menu_items == ["Cafe Latte", "Mocha"]
        assert "Cafe Latte" in exc.value.message and "Mocha" in exc.value.message
        assert ledger.get_ingredient(catalog["milk"].id) is not None

    def test_unused_ingredient_deleted_with_logs(self, db_session):
        ledger = StockLedgerService(db_session)
        salt = ledger.create_ingredient(name="Salt", current_stock=Decimal("5"))
        ledger.delete_ingredient(salt.id)
        with pytest.raises(NotFoundError):
            ledger.get_ingredient(salt.id)
        assert db_session.query(IngredientStockLog).count() == 0


# ============== Recipes ==============

class TestRecipes:

    def test_set_recipe_replaces_and_merges(self, catalog):
        ledger = StockLedgerService(catalog["db"])
        milk, beans = catalog["milk"], catalog["beans"]
        recipe = ledger.set_recipe(
            catalog["latte"].id,
            [(milk.id, Decimal("100")), (milk.id, Decimal("50")), (beans.id, Decimal("20"))],
        )
        assert {(line.ingredient_id, line.quantity) for line in recipe} == {
            (milk.id, Decimal("150")),
            (beans.id, Decimal("20")),
        }

    def test_empty_recipe_removes_it(self, catalog):
        ledger = StockLedgerService(catalog["db"])
        assert ledger.set_recipe(catalog["latte"].id, []) == []
        assert ledger.get_recipe(catalog["latte"].id) == []

    def test_recipe_quantity_must_be_positive(self, catalog):
        ledger = StockLedgerService(catalog["db"])
        with pytest.raises(ValidationError):
            ledger.set_recipe(catalog["latte"].id, [(catalog["milk"].id, Decimal("0"))])
        assert len(ledger.get_recipe(catalog["latte"].id)) == 2

    def test_check_availability(self, catalog):
        ledger = StockLedgerService(catalog["db"])
        # 1000 ml milk / 200 ml per latte
        assert ledger.check_availability(catalog["latte"].id, 5)["available"] is True
        result = ledger.check_availability(catalog["latte"].id, 6)
        assert result["available"] is False
        assert result["can_make"] == 0
        missing = result["missing_ingredients"]
        assert [m["name"] for m in missing] == ["Milk"]
        assert missing[0]["shortage"] == Decimal("200")

    def test_check_availability_without_recipe(self, catalog):
        result = StockLedgerService(catalog["db"]).check_availability(catalog["coffee"].id, 3)
        assert result["available"] is True
        assert result["can_make"] == 3


# ============== Order deduction ==============

class TestOrderDeduction:

    def test_counter_deduction_sets_low_stock(self, catalog, inventory_of):
        db = catalog["db"]
        ledger = StockLedgerService(db)
        ledger.deduct_for_order([(catalog["coffee"].id, 11)], model=StockModel.COUNTER)
        db.commit()
        assert inventory_of(catalog["coffee"]) == 9
        inv = catalog["coffee"].inventory
        db.refresh(inv)
        assert inv.low_stock is True

    def test_counter_shortfall(self, catalog, inventory_of):
        ledger = StockLedgerService(catalog["db"])
        with pytest.raises(InsufficientStockError) as exc:
            ledger.deduct_for_order([(catalog["sandwich"].id, 6)], model=StockModel.COUNTER)
        assert exc.value.available == 5
        assert exc.value.requested == 6
        catalog["db"].rollback()
        assert inventory_of(catalog["sandwich"]) == 5

    def test_counter_lines_aggregated_before_check(self, catalog):
        ledger = StockLedgerService(catalog["db"])
        with pytest.raises(InsufficientStockError):
            ledger.check_counters([(catalog["sandwich"].id, 3), (catalog["sandwich"].id, 3)])

    def test_missing_counter(self, catalog):
        ledger = StockLedgerService(catalog["db"])
        with pytest.raises(NoInventoryRecordError):
            ledger.check_counters([(catalog["latte"].id, 1)])

    def test_recipe_deduction_logs_usage(self, catalog, stock_of):
        db = catalog["db"]
        ledger = StockLedgerService(db)
        ledger.deduct_for_order(
            [(catalog["latte"].id, 2)], model=StockModel.RECIPE, notes="TAKEAWAY order #TA1"
        )
        db.commit()
        assert stock_of(catalog["milk"]) == Decimal("600")
        assert stock_of(catalog["beans"]) == Decimal("464")
        usage = _logs(db, catalog["milk"])[-1]
        assert usage.change_type == StockChangeType.ORDER_USAGE
        assert usage.quantity == Decimal("-400")
        assert usage.notes == "TAKEAWAY order #TA1"

    def test_permissive_recipe_can_go_negative(self, catalog, stock_of):
        db = catalog["db"]
        StockLedgerService(db).deduct_for_order([(catalog["latte"].id, 6)], model=StockModel.RECIPE)
        db.commit()
        assert stock_of(catalog["milk"]) == Decimal("-200")

    def test_strict_recipe_refuses_shortfall(self, catalog, stock_of):
        db = catalog["db"]
        strategy = RecipeStrategy(db, strict=True)
        with pytest.raises(InsufficientStockError):
            strategy.deduct(catalog["latte"], 6)
        db.rollback()
        assert stock_of(catalog["milk"]) == Decimal("1000")

    def test_routing_by_stock_model(self, catalog, inventory_of, stock_of):
        db = catalog["db"]
        StockLedgerService(db).deduct_for_order([(catalog["coffee"].id, 1), (catalog["latte"].id, 1)])
        db.commit()
        assert inventory_of(catalog["coffee"]) == 19
        assert stock_of(catalog["milk"]) == Decimal("800")


# ============== Inventory counters ==============

class TestInventoryCounters:

    def test_manual_count_updates_low_stock(self, catalog):
        ledger = StockLedgerService(catalog["db"])
        inv = catalog["coffee"].inventory
        assert ledger.set_inventory_quantity(inv.id, 3).low_stock is True
        assert ledger.set_inventory_quantity(inv.id, 30).low_stock is False

    def test_negative_count_rejected(self, catalog):
        with pytest.raises(ValidationError):
            StockLedgerService(catalog["db"]).set_inventory_quantity(catalog["coffee"].inventory.id, -1)

    def test_low_stock_inventory(self, catalog):
        ledger = StockLedgerService(catalog["db"])
        ledger.set_inventory_quantity(catalog["sandwich"].inventory.id, 2)
        assert [inv.menu_item.name for inv in ledger.low_stock_inventory()] == ["Veg Sandwich"]
