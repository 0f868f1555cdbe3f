"""Delivery and takeaway schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from cafepos.models.order import DeliveryPlatform, DeliveryStatus, PaymentMode
from cafepos.schemas.common import coerce_enum
from cafepos.schemas.order import OrderItemCreate


class PlatformOrderCreate(BaseModel):
    """Manual takeaway or delivery order taken by staff."""

    customer_name: str = Field(
        ..., min_length=1, max_length=200,
        validation_alias=AliasChoices("customer_name", "customerName"),
    )
    customer_phone: str = Field(
        ..., min_length=1, max_length=50,
        validation_alias=AliasChoices("customer_phone", "customerPhone"),
    )
    customer_email: Optional[str] = Field(
        default=None, max_length=255,
        validation_alias=AliasChoices("customer_email", "customerEmail"),
    )
    delivery_address: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("delivery_address", "deliveryAddress")
    )
    items: List[OrderItemCreate] = Field(..., min_length=1)
    platform: Optional[DeliveryPlatform] = None
    platform_order_id: Optional[str] = Field(
        default=None, max_length=100,
        validation_alias=AliasChoices("platform_order_id", "platformOrderId"),
    )
    delivery_fee: Optional[Decimal] = Field(
        default=None, ge=0, validation_alias=AliasChoices("delivery_fee", "deliveryFee")
    )
    packaging_fee: Optional[Decimal] = Field(
        default=None, ge=0, validation_alias=AliasChoices("packaging_fee", "packagingFee")
    )
    special_instructions: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("special_instructions", "specialInstructions")
    )
    estimated_time: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("estimated_time", "estimatedTime")
    )

    @field_validator("customer_name", "customer_phone")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("platform", mode="before")
    @classmethod
    def _platform_any_case(cls, v):
        return coerce_enum(DeliveryPlatform, v)


class DeliveryStatusUpdate(BaseModel):
    status: DeliveryStatus = Field(
        ..., validation_alias=AliasChoices("status", "deliveryStatus", "delivery_status")
    )
    delivery_partner_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("delivery_partner_name", "deliveryPartnerName")
    )
    delivery_partner_phone: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("delivery_partner_phone", "deliveryPartnerPhone")
    )
    actual_time: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("actual_time", "actualTime")
    )
    payment_mode: Optional[PaymentMode] = Field(
        default=None, validation_alias=AliasChoices("payment_mode", "paymentMode")
    )

    @field_validator("status", mode="before")
    @classmethod
    def _status_any_case(cls, v):
        return coerce_enum(DeliveryStatus, v)

    @field_validator("payment_mode", mode="before")
    @classmethod
    def _payment_any_case(cls, v):
        return coerce_enum(PaymentMode, v)


class WebhookEvent(BaseModel):
    """Platform webhook envelope.

    Zomato posts ``{"event", "data"}``; Swiggy posts ``{"event_type", "payload"}``.
    """

    event: str = Field(..., min_length=1, validation_alias=AliasChoices("event", "event_type"))
    data: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("data", "payload")
    )
