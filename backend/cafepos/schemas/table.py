"""Table and reservation schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from cafepos.models.order import OrderStatus
from cafepos.models.table import TableStatus
from cafepos.schemas.common import coerce_enum

ReservationStatus = Literal["active", "expiring_soon", "expired"]


class ReservationCreate(BaseModel):
    table_id: int = Field(..., gt=0, validation_alias=AliasChoices("table_id", "tableId"))
    customer_name: str = Field(
        ..., min_length=1, max_length=200,
        validation_alias=AliasChoices("customer_name", "customerName"),
    )
    customer_phone: Optional[str] = Field(
        default=None, max_length=50,
        validation_alias=AliasChoices("customer_phone", "customerPhone"),
    )
    reserved_from: datetime = Field(
        ..., validation_alias=AliasChoices("reserved_from", "reservedFrom")
    )
    reserved_until: datetime = Field(
        ..., validation_alias=AliasChoices("reserved_until", "reservedUntil")
    )

    @field_validator("customer_name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class ReservationExtend(BaseModel):
    reserved_until: datetime = Field(
        ..., validation_alias=AliasChoices("reserved_until", "reservedUntil", "newEndTime")
    )


class TableStatusUpdate(BaseModel):
    status: TableStatus

    @field_validator("status", mode="before")
    @classmethod
    def _status_any_case(cls, v):
        return coerce_enum(TableStatus, v)


class ActiveOrderBrief(BaseModel):
    id: int
    bill_number: str
    status: OrderStatus
    total: Decimal
    created_at: datetime

    model_config = {"from_attributes": True}


class TableResponse(BaseModel):
    id: int
    number: str
    capacity: int
    status: TableStatus
    current_bill: Decimal
    order_time: Optional[datetime] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    reserved_from: Optional[datetime] = None
    reserved_until: Optional[datetime] = None
    updated_at: datetime

    model_config = {"from_attributes": True}


class TableWithStatusResponse(TableResponse):
    """Table as shown on the floor plan."""

    reservation_status: Optional[ReservationStatus] = None
    active_order: Optional[ActiveOrderBrief] = None
