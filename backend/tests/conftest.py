"""Pytest configuration and fixtures."""

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-at-least-32-characters")
os.environ.setdefault("RESERVATION_SCHEDULER_ENABLED", "false")
os.environ.setdefault("TIMEZONE", "Asia/Kolkata")

from datetime import datetime
from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cafepos.core.rbac import UserRole
from cafepos.core.security import create_access_token, get_password_hash
from cafepos.db.base import Base
from cafepos.db.session import enable_sqlite_foreign_keys, get_db
from cafepos.main import app
# Import all models to ensure they're registered with Base.metadata
from cafepos.models import *  # noqa: F401,F403
from cafepos.models import (
    Category,
    DiningTable,
    Ingredient,
    IngredientUnit,
    Inventory,
    MenuItem,
    Modification,
    User,
)
from cafepos.services.stock_ledger import StockLedgerService

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

# 10:00 in Asia/Kolkata
NOW = datetime(2026, 3, 10, 4, 30)


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiters during tests to avoid flaky failures
    from cafepos.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()


def _make_user(db_session: Session, email: str, role: UserRole) -> User:
    user = User(
        email=email,
        password_hash=get_password_hash("testpass123"),
        role=role,
        name=email.split("@")[0].title(),
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def _headers_for(user: User) -> dict:
    token = create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role.value}
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def test_user(db_session: Session) -> User:
    """Create an owner account."""
    return _make_user(db_session, "owner@example.com", UserRole.OWNER)


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    return _headers_for(test_user)


@pytest.fixture
def staff_headers(db_session: Session) -> dict:
    return _headers_for(_make_user(db_session, "staff@example.com", UserRole.STAFF))


@pytest.fixture
def catalog(db_session: Session) -> dict:
    """Two tables, a small menu with counters and recipes, and modifications.

    Coffee and Sandwich have inventory counters (dine-in); Latte only has a
    recipe (delivery/takeaway).
    """
    drinks = Category(name="Beverages")
    food = Category(name="Snacks")
    db_session.add_all([drinks, food])
    db_session.flush()

    coffee = MenuItem(name="Filter Coffee", price=Decimal("100.00"), category_id=drinks.id)
    sandwich = MenuItem(name="Veg Sandwich", price=Decimal("150.00"), category_id=food.id)
    latte = MenuItem(name="Cafe Latte", price=Decimal("180.00"), category_id=drinks.id)
    retired = MenuItem(name="Old Special", price=Decimal("90.00"), is_active=False)
    db_session.add_all([coffee, sandwich, latte, retired])
    db_session.flush()

    db_session.add_all([
        Inventory(menu_item_id=coffee.id, quantity=20),
        Inventory(menu_item_id=sandwich.id, quantity=5),
    ])

    table1 = DiningTable(number="1", capacity=4)
    table2 = DiningTable(number="2", capacity=2)
    db_session.add_all([table1, table2])

    extra_shot = Modification(name="Extra Shot", price=Decimal("30.00"), category="Coffee")
    no_onion = Modification(name="No Onion", price=Decimal("0"), category="Other")
    db_session.add_all([extra_shot, no_onion])
    db_session.commit()

    ledger = StockLedgerService(db_session)
    milk = ledger.create_ingredient(
        name="Milk", unit=IngredientUnit.ML, current_stock=Decimal("1000"), min_stock=Decimal("200")
    )
    beans = ledger.create_ingredient(
        name="Coffee Beans", unit=IngredientUnit.GRAMS, current_stock=Decimal("500"),
        min_stock=Decimal("100"),
    )
    ledger.set_recipe(latte.id, [(milk.id, Decimal("200")), (beans.id, Decimal("18"))])

    return {
        "coffee": coffee,
        "sandwich": sandwich,
        "latte": latte,
        "retired": retired,
        "table1": table1,
        "table2": table2,
        "extra_shot": extra_shot,
        "no_onion": no_onion,
        "milk": milk,
        "beans": beans,
        "db": db_session,
    }


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def inventory_of(db_session: Session):
    """Fresh counter value for a menu item."""
    def _get(menu_item: MenuItem) -> int:
        db_session.expire_all()
        return db_session.query(Inventory).filter(Inventory.menu_item_id == menu_item.id).one().quantity
    return _get


@pytest.fixture
def stock_of(db_session: Session):
    """Fresh current_stock for an ingredient."""
    def _get(ingredient: Ingredient) -> Decimal:
        db_session.expire_all()
        return db_session.get(Ingredient, ingredient.id).current_stock
    return _get
