"""Delivery and takeaway routes, including platform webhooks.

Webhooks are unauthenticated; when a platform secret is configured the
raw body must carry a matching HMAC-SHA256 signature header.
"""

import json
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Query, Request, status
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from cafepos.core.config import settings
from cafepos.core.exceptions import AuthenticationError, ValidationError
from cafepos.core.rate_limit import limiter
from cafepos.core.rbac import CurrentUser
from cafepos.core.responses import list_response
from cafepos.core.security import verify_webhook_signature
from cafepos.core.validators import PositiveIntId
from cafepos.db.session import DbSession
from cafepos.models.order import DeliveryPlatform, DeliveryStatus, OrderType
from cafepos.schemas.common import parse_enum_param
from cafepos.schemas.delivery import DeliveryStatusUpdate, PlatformOrderCreate, WebhookEvent
from cafepos.schemas.order import OrderResponse
from cafepos.services.delivery_service import DeliveryService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/takeaway", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
def create_takeaway_order(
    request: Request, body: PlatformOrderCreate, db: DbSession, current_user: CurrentUser
):
    """Counter takeaway order; no address needed."""
    return DeliveryService(db).create_takeaway_order(body)


@router.post("/delivery", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
def create_delivery_order(
    request: Request, body: PlatformOrderCreate, db: DbSession, current_user: CurrentUser
):
    """Phone/direct delivery order (or a platform order keyed in by hand)."""
    return DeliveryService(db).create_delivery_order(body)


@router.get("/")
def list_delivery_orders(
    db: DbSession,
    current_user: CurrentUser,
    order_type: Optional[str] = Query(None, alias="type"),
    platform: Optional[str] = Query(None),
    delivery_status: Optional[str] = Query(None, alias="status"),
    day: Optional[date] = Query(None, alias="date"),
    limit: int = Query(100, ge=1, le=500),
):
    orders = DeliveryService(db).list_delivery_orders(
        order_type=parse_enum_param(OrderType, order_type, "type"),
        platform=parse_enum_param(DeliveryPlatform, platform, "platform"),
        status=parse_enum_param(DeliveryStatus, delivery_status, "status"),
        day=day,
        limit=limit,
    )
    return list_response([OrderResponse.model_validate(o) for o in orders])


@router.get("/stats")
def delivery_stats(db: DbSession, current_user: CurrentUser):
    """Today's delivery and takeaway figures."""
    return DeliveryService(db).delivery_stats()


@router.put("/{order_id}/status", response_model=OrderResponse)
@limiter.limit("120/minute")
def update_delivery_status(
    request: Request,
    order_id: PositiveIntId,
    body: DeliveryStatusUpdate,
    db: DbSession,
    current_user: CurrentUser,
):
    return DeliveryService(db).update_delivery_status(
        order_id,
        body.status,
        delivery_partner_name=body.delivery_partner_name,
        delivery_partner_phone=body.delivery_partner_phone,
        actual_time=body.actual_time,
        payment_mode=body.payment_mode,
    )


async def _read_webhook(request: Request, secret: Optional[str], header: str) -> WebhookEvent:
    body = await request.body()
    if secret and not verify_webhook_signature(body, request.headers.get(header), secret):
        logger.warning(f"Rejected webhook with bad {header} from {request.client.host if request.client else 'unknown'}")
        raise AuthenticationError("Invalid webhook signature")
    try:
        return WebhookEvent.model_validate(json.loads(body or b"{}"))
    except (json.JSONDecodeError, PydanticValidationError) as e:
        raise ValidationError(f"Invalid webhook payload: {e}")


@router.post("/webhook/zomato")
@limiter.limit("300/minute")
async def zomato_webhook(request: Request, db: DbSession):
    event = await _read_webhook(request, settings.zomato_webhook_secret, "X-Zomato-Signature")
    logger.info(f"Zomato webhook received: {event.event}")
    return await run_in_threadpool(DeliveryService(db).handle_zomato_event, event.event, event.data)


@router.post("/webhook/swiggy")
@limiter.limit("300/minute")
async def swiggy_webhook(request: Request, db: DbSession):
    event = await _read_webhook(request, settings.swiggy_webhook_secret, "X-Swiggy-Signature")
    logger.info(f"Swiggy webhook received: {event.event}")
    return await run_in_threadpool(DeliveryService(db).handle_swiggy_event, event.event, event.data)
