"""Dine-in order routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, status

from cafepos.core.rate_limit import limiter
from cafepos.core.rbac import CurrentUser
from cafepos.core.responses import list_response
from cafepos.core.validators import PositiveIntId
from cafepos.db.session import DbSession
from cafepos.models.order import OrderStatus, OrderType
from cafepos.schemas.common import parse_enum_param
from cafepos.schemas.order import OrderCreate, OrderResponse, OrderStatusUpdate
from cafepos.services.order_service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
def create_order(request: Request, body: OrderCreate, db: DbSession, current_user: CurrentUser):
    """Create a dine-in order, deduct inventory and occupy the table."""
    order = OrderService(db).create_order(body.table_id, body.items)
    logger.info(f"Order {order.bill_number} created by {current_user.email}")
    return order


@router.get("/")
def list_orders(
    db: DbSession,
    current_user: CurrentUser,
    limit: int = Query(50, ge=1, le=500),
    status_filter: Optional[str] = Query(None, alias="status"),
    order_type: Optional[str] = Query(None, alias="type"),
):
    """Most recent orders first."""
    orders = OrderService(db).list_orders(
        limit=limit,
        status=parse_enum_param(OrderStatus, status_filter, "status"),
        order_type=parse_enum_param(OrderType, order_type, "type"),
    )
    return list_response([OrderResponse.model_validate(o) for o in orders])


@router.get("/active")
def active_orders(db: DbSession, current_user: CurrentUser):
    """Orders still in the kitchen or awaiting payment."""
    orders = OrderService(db).active_orders()
    return list_response([OrderResponse.model_validate(o) for o in orders])


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: PositiveIntId, db: DbSession, current_user: CurrentUser):
    return OrderService(db).get_order(order_id)


@router.put("/{order_id}/status", response_model=OrderResponse)
@limiter.limit("120/minute")
def update_order_status(
    request: Request,
    order_id: PositiveIntId,
    body: OrderStatusUpdate,
    db: DbSession,
    current_user: CurrentUser,
):
    """Advance an order: PENDING -> PREPARING -> SERVED -> PAID, or CANCELLED."""
    return OrderService(db).update_order_status(order_id, body.status, payment_mode=body.payment_mode)
