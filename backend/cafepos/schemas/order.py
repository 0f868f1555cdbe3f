"""Order schemas.

Request bodies accept both snake_case and the camelCase names sent by the
dashboard. Status values are accepted in any case.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from cafepos.models.order import (
    DeliveryPlatform,
    DeliveryStatus,
    OrderStatus,
    OrderType,
    PaymentMode,
)
from cafepos.models.table import TableStatus
from cafepos.schemas.common import coerce_enum


class ModificationSelection(BaseModel):
    """A modification picked for an order line."""

    modification_id: int = Field(
        ..., gt=0, validation_alias=AliasChoices("modification_id", "modificationId", "id")
    )
    quantity: int = Field(default=1, ge=1)


class OrderItemCreate(BaseModel):
    """Order line. ``price`` is only honoured for trusted delivery/takeaway input."""

    menu_item_id: int = Field(
        ..., gt=0, validation_alias=AliasChoices("menu_item_id", "menuItemId")
    )
    quantity: int = Field(..., gt=0)
    price: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)
    modifications: List[ModificationSelection] = []


class OrderCreate(BaseModel):
    """Dine-in order creation schema."""

    table_id: int = Field(..., gt=0, validation_alias=AliasChoices("table_id", "tableId"))
    items: List[OrderItemCreate] = Field(..., min_length=1)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    payment_mode: Optional[PaymentMode] = Field(
        default=None, validation_alias=AliasChoices("payment_mode", "paymentMode")
    )

    @field_validator("status", mode="before")
    @classmethod
    def _status_any_case(cls, v):
        return coerce_enum(OrderStatus, v)

    @field_validator("payment_mode", mode="before")
    @classmethod
    def _payment_any_case(cls, v):
        return coerce_enum(PaymentMode, v)


class OrderItemModificationResponse(BaseModel):
    id: int
    modification_id: Optional[int] = None
    name: str
    price: Decimal
    quantity: int

    model_config = {"from_attributes": True}


class MenuItemBrief(BaseModel):
    id: int
    name: str
    price: Decimal

    model_config = {"from_attributes": True}


class OrderItemResponse(BaseModel):
    id: int
    menu_item_id: int
    quantity: int
    price: Decimal
    notes: Optional[str] = None
    menu_item: Optional[MenuItemBrief] = None
    modifications: List[OrderItemModificationResponse] = []

    model_config = {"from_attributes": True}


class TableBrief(BaseModel):
    id: int
    number: str
    status: TableStatus

    model_config = {"from_attributes": True}


class DeliveryInfoResponse(BaseModel):
    id: int
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    delivery_address: Optional[str] = None
    platform: DeliveryPlatform
    platform_order_id: Optional[str] = None
    delivery_status: DeliveryStatus
    delivery_fee: Decimal
    packaging_fee: Decimal
    special_instructions: Optional[str] = None
    estimated_time: Optional[datetime] = None
    actual_time: Optional[datetime] = None
    delivery_partner_name: Optional[str] = None
    delivery_partner_phone: Optional[str] = None

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    """Order with its lines, table and delivery details."""

    id: int
    bill_number: str
    order_type: OrderType
    table_id: Optional[int] = None
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    status: OrderStatus
    payment_mode: Optional[PaymentMode] = None
    paid_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemResponse] = []
    table: Optional[TableBrief] = None
    delivery_info: Optional[DeliveryInfoResponse] = None

    model_config = {"from_attributes": True}
