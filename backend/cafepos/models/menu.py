"""Menu catalog models: categories, items, inventory counters, modifications."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from cafepos.core.timeutils import utcnow
from cafepos.db.base import Base, TimestampMixin
from cafepos.models.validators import non_negative, positive


class Category(Base):
    """Menu category (Starters, Mains, Beverages...)."""

    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    menu_items: Mapped[list["MenuItem"]] = relationship("MenuItem", back_populates="category")


class MenuItem(Base, TimestampMixin):
    """A sellable dish or drink."""

    __tablename__ = "menu_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    category: Mapped[Optional["Category"]] = relationship("Category", back_populates="menu_items")
    inventory: Mapped[Optional["Inventory"]] = relationship(
        "Inventory", back_populates="menu_item", uselist=False, cascade="all, delete-orphan"
    )
    ingredients: Mapped[list["MenuItemIngredient"]] = relationship(
        "MenuItemIngredient", back_populates="menu_item", cascade="all, delete-orphan"
    )

    @validates("price")
    def _validate_price(self, key, value):
        return non_negative(key, value)


class Inventory(Base):
    """Finished-goods counter for a menu item (used by dine-in orders)."""

    __tablename__ = "inventory"

    id: Mapped[int] = mapped_column(primary_key=True)
    menu_item_id: Mapped[int] = mapped_column(
        ForeignKey("menu_items.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    low_stock: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    menu_item: Mapped["MenuItem"] = relationship("MenuItem", back_populates="inventory")

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return non_negative(key, value)


class MenuItemIngredient(Base):
    """Recipe line: how much of an ingredient one unit of a menu item uses."""

    __tablename__ = "menu_item_ingredients"
    __table_args__ = (
        UniqueConstraint("menu_item_id", "ingredient_id", name="uq_menu_item_ingredient"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    menu_item_id: Mapped[int] = mapped_column(
        ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ingredient_id: Mapped[int] = mapped_column(
        ForeignKey("ingredients.id"), nullable=False, index=True
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)

    menu_item: Mapped["MenuItem"] = relationship("MenuItem", back_populates="ingredients")
    ingredient: Mapped["Ingredient"] = relationship("Ingredient", back_populates="menu_items")

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return positive(key, value)


class Modification(Base, TimestampMixin):
    """Add-on or change applied to an order line (extra cheese, no onion).

    Price may be negative for removals that discount the line.
    """

    __tablename__ = "modifications"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    category: Mapped[str] = mapped_column(String(50), default="Other", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


from cafepos.models.ingredient import Ingredient  # noqa: E402
