"""Customer order models: orders, line items, modifications, delivery info."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from cafepos.db.base import Base, TimestampMixin
from cafepos.models.validators import non_negative, positive


class OrderStatus(str, Enum):
    """Kitchen/billing status of an order."""

    PENDING = "PENDING"
    PREPARING = "PREPARING"
    SERVED = "SERVED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


ACTIVE_ORDER_STATUSES = (OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.SERVED)


class OrderType(str, Enum):
    DINE_IN = "DINE_IN"
    DELIVERY = "DELIVERY"
    TAKEAWAY = "TAKEAWAY"


class PaymentMode(str, Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"


class DeliveryPlatform(str, Enum):
    """Channel a delivery/takeaway order arrived through."""

    DIRECT = "DIRECT"
    ZOMATO = "ZOMATO"
    SWIGGY = "SWIGGY"
    TAKEAWAY = "TAKEAWAY"


class DeliveryStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class Order(Base, TimestampMixin):
    """A customer order and its bill."""

    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("bill_number", name="uq_orders_bill_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    bill_number: Mapped[str] = mapped_column(String(20), nullable=False)
    order_type: Mapped[OrderType] = mapped_column(
        SQLEnum(OrderType), default=OrderType.DINE_IN, nullable=False, index=True
    )
    table_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("tables.id"), nullable=True, index=True
    )
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True
    )
    payment_mode: Mapped[Optional[PaymentMode]] = mapped_column(SQLEnum(PaymentMode), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    table: Mapped[Optional["DiningTable"]] = relationship("DiningTable", back_populates="orders")
    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )
    delivery_info: Mapped[Optional["DeliveryInfo"]] = relationship(
        "DeliveryInfo", back_populates="order", uselist=False, cascade="all, delete-orphan"
    )

    @validates("subtotal", "tax", "total")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_ORDER_STATUSES


class OrderItem(Base):
    """One menu item line on an order. Price is captured at order time."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    menu_item_id: Mapped[int] = mapped_column(ForeignKey("menu_items.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    order: Mapped["Order"] = relationship("Order", back_populates="items")
    menu_item: Mapped["MenuItem"] = relationship("MenuItem")
    modifications: Mapped[list["OrderItemModification"]] = relationship(
        "OrderItemModification", back_populates="order_item", cascade="all, delete-orphan"
    )

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return positive(key, value)


class OrderItemModification(Base):
    """Snapshot of a modification's name and price when the order was placed."""

    __tablename__ = "order_item_modifications"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_item_id: Mapped[int] = mapped_column(
        ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    modification_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("modifications.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    order_item: Mapped["OrderItem"] = relationship("OrderItem", back_populates="modifications")


class DeliveryInfo(Base, TimestampMixin):
    """Customer, platform and courier details of a delivery/takeaway order."""

    __tablename__ = "delivery_info"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    platform: Mapped[DeliveryPlatform] = mapped_column(
        SQLEnum(DeliveryPlatform), default=DeliveryPlatform.DIRECT, nullable=False, index=True
    )
    platform_order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    delivery_status: Mapped[DeliveryStatus] = mapped_column(
        SQLEnum(DeliveryStatus), default=DeliveryStatus.PENDING, nullable=False, index=True
    )
    delivery_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    packaging_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    estimated_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    actual_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivery_partner_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    delivery_partner_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    order: Mapped["Order"] = relationship("Order", back_populates="delivery_info")

    @validates("delivery_fee", "packaging_fee")
    def _validate_fees(self, key, value):
        return non_negative(key, value)


# Forward references
from cafepos.models.menu import MenuItem  # noqa: E402
from cafepos.models.table import DiningTable  # noqa: E402
