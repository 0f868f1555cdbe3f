"""Seed a development database with a small cafe.

Creates users, a menu with inventory counters, ingredients with recipes,
modifications and tables 1-10. Safe to re-run: each section is skipped
when its first row already exists.

Usage:
    cd backend
    python seed_data.py
"""

import os
import sys
from decimal import Decimal

# Ensure the backend package is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from cafepos.core.rbac import UserRole
from cafepos.core.security import get_password_hash
from cafepos.db.base import Base
from cafepos.db.session import SessionLocal, engine
from cafepos.models import (
    Category,
    DiningTable,
    Ingredient,
    IngredientUnit,
    Inventory,
    MenuItem,
    MenuItemIngredient,
    Modification,
    User,
)
from cafepos.services.stock_ledger import StockLedgerService

MENU = {
    "Beverages": [
        ("Cappuccino", "120.00", 50),
        ("Masala Chai", "40.00", 100),
        ("Cold Coffee", "150.00", 40),
    ],
    "Snacks": [
        ("Veg Sandwich", "90.00", 30),
        ("Paneer Roll", "130.00", 25),
    ],
    "Desserts": [
        ("Chocolate Brownie", "110.00", 20),
    ],
}

INGREDIENTS = [
    ("Milk", IngredientUnit.ML, "5000", "1000", "0.06"),
    ("Coffee Beans", IngredientUnit.GRAMS, "2000", "300", "1.20"),
    ("Tea Leaves", IngredientUnit.GRAMS, "1000", "200", "0.50"),
    ("Sugar", IngredientUnit.GRAMS, "3000", "500", "0.05"),
    ("Bread", IngredientUnit.PIECES, "60", "10", "4.00"),
    ("Paneer", IngredientUnit.GRAMS, "2000", "400", "0.40"),
]

RECIPES = {
    "Cappuccino": [("Milk", "150"), ("Coffee Beans", "18")],
    "Masala Chai": [("Milk", "100"), ("Tea Leaves", "5"), ("Sugar", "10")],
    "Cold Coffee": [("Milk", "200"), ("Coffee Beans", "15"), ("Sugar", "15")],
    "Veg Sandwich": [("Bread", "2")],
    "Paneer Roll": [("Paneer", "80")],
}

MODIFICATIONS = [
    ("Extra Shot", "30.00", "Coffee"),
    ("Oat Milk", "40.00", "Milk"),
    ("Less Sugar", "0.00", "Sweetness"),
    ("Extra Cheese", "25.00", "Toppings"),
    ("No Onion", "0.00", "Other"),
]


def seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        _seed_all(db)
        db.commit()
        print("Seed data committed successfully.")
    except Exception as e:
        db.rollback()
        print(f"Error seeding data: {e}")
        raise
    finally:
        db.close()


def _seed_all(db):
    # ---------------------------------------------------------------
    # 1. Users
    # ---------------------------------------------------------------
    if db.query(User).first() is None:
        db.add(User(
            email="owner@cafepos.app",
            password_hash=get_password_hash("owner123"),
            role=UserRole.OWNER,
            name="Owner",
        ))
        db.add(User(
            email="manager@cafepos.app",
            password_hash=get_password_hash("manager123"),
            role=UserRole.MANAGER,
            name="Floor Manager",
        ))
        db.add(User(
            email="staff@cafepos.app",
            password_hash=get_password_hash("staff123"),
            role=UserRole.STAFF,
            name="Counter Staff",
        ))
        db.flush()
        print("  + Users (3)")

    # ---------------------------------------------------------------
    # 2. Menu with inventory counters
    # ---------------------------------------------------------------
    if db.query(MenuItem).first() is None:
        count = 0
        for category_name, items in MENU.items():
            category = Category(name=category_name)
            db.add(category)
            db.flush()
            for name, price, stock in items:
                item = MenuItem(name=name, price=Decimal(price), category_id=category.id)
                item.inventory = Inventory(quantity=stock)
                db.add(item)
                count += 1
        db.flush()
        print(f"  + Menu items ({count})")

    # ---------------------------------------------------------------
    # 3. Ingredients and recipes
    # ---------------------------------------------------------------
    if db.query(Ingredient).first() is None:
        db.commit()
        ledger = StockLedgerService(db)
        by_name = {}
        for name, unit, stock, min_stock, cost in INGREDIENTS:
            by_name[name] = ledger.create_ingredient(
                name=name,
                unit=unit,
                current_stock=Decimal(stock),
                min_stock=Decimal(min_stock),
                cost_per_unit=Decimal(cost),
            )
        for item_name, lines in RECIPES.items():
            item = db.query(MenuItem).filter(MenuItem.name == item_name).first()
            if item is None:
                continue
            for ingredient_name, quantity in lines:
                db.add(MenuItemIngredient(
                    menu_item_id=item.id,
                    ingredient_id=by_name[ingredient_name].id,
                    quantity=Decimal(quantity),
                ))
        db.flush()
        print(f"  + Ingredients ({len(INGREDIENTS)}) and recipes ({len(RECIPES)})")

    # ---------------------------------------------------------------
    # 4. Modifications
    # ---------------------------------------------------------------
    if db.query(Modification).first() is None:
        for name, price, category in MODIFICATIONS:
            db.add(Modification(name=name, price=Decimal(price), category=category))
        db.flush()
        print(f"  + Modifications ({len(MODIFICATIONS)})")

    # ---------------------------------------------------------------
    # 5. Tables
    # ---------------------------------------------------------------
    if db.query(DiningTable).first() is None:
        for number in range(1, 11):
            db.add(DiningTable(number=str(number), capacity=2 if number <= 4 else 4))
        db.flush()
        print("  + Tables (10)")


if __name__ == "__main__":
    seed()
