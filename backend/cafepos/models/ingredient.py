"""Ingredient stock and its append-only audit log."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cafepos.core.timeutils import utcnow
from cafepos.db.base import Base, TimestampMixin


class IngredientUnit(str, Enum):
    GRAMS = "GRAMS"
    KG = "KG"
    ML = "ML"
    LITERS = "LITERS"
    PIECES = "PIECES"
    CUPS = "CUPS"
    TABLESPOONS = "TABLESPOONS"
    TEASPOONS = "TEASPOONS"


class StockChangeType(str, Enum):
    """Reason recorded on every ingredient stock log row."""

    PURCHASE = "PURCHASE"
    WASTAGE = "WASTAGE"
    ORDER_USAGE = "ORDER_USAGE"


class Ingredient(Base, TimestampMixin):
    """Raw ingredient consumed by recipes.

    ``current_stock`` is changed only through the stock ledger so that
    every change has a matching :class:`IngredientStockLog` row. It may go
    negative when recipe deductions are permissive.
    """

    __tablename__ = "ingredients"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    unit: Mapped[IngredientUnit] = mapped_column(
        SQLEnum(IngredientUnit), default=IngredientUnit.GRAMS, nullable=False
    )
    current_stock: Mapped[Decimal] = mapped_column(
        Numeric(12, 3), default=Decimal("0"), nullable=False
    )
    min_stock: Mapped[Decimal] = mapped_column(
        Numeric(12, 3), default=Decimal("10"), nullable=False
    )
    cost_per_unit: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), nullable=False
    )
    supplier: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    menu_items: Mapped[list["MenuItemIngredient"]] = relationship(
        "MenuItemIngredient", back_populates="ingredient"
    )
    stock_logs: Mapped[list["IngredientStockLog"]] = relationship(
        "IngredientStockLog", back_populates="ingredient", cascade="all, delete-orphan"
    )

    @property
    def low_stock(self) -> bool:
        return self.current_stock <= self.min_stock


class IngredientStockLog(Base):
    """Immutable record of one ingredient stock change (signed quantity)."""

    __tablename__ = "ingredient_stock_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    ingredient_id: Mapped[int] = mapped_column(
        ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    change_type: Mapped[StockChangeType] = mapped_column(SQLEnum(StockChangeType), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    order_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)

    ingredient: Mapped["Ingredient"] = relationship("Ingredient", back_populates="stock_logs")


from cafepos.models.menu import MenuItemIngredient  # noqa: E402
