"""Delivery and takeaway orders: manual intake, platform webhooks, tracking.

Platform orders never touch a table. Their stock comes out of recipe
ingredients and each consumption is logged against the order with the
note ``"<PLATFORM> order #<bill number>"``.
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Set

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cafepos.core.config import settings
from cafepos.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from cafepos.core.timeutils import utcnow, venue_day_bounds, venue_today
from cafepos.models.menu import MenuItem
from cafepos.models.order import (
    DeliveryInfo,
    DeliveryPlatform,
    DeliveryStatus,
    Order,
    OrderStatus,
    OrderType,
    PaymentMode,
)
from cafepos.schemas.delivery import PlatformOrderCreate
from cafepos.schemas.order import OrderItemCreate
from cafepos.services.billing import bill_prefix_for, calculate_bill, generate_bill_number
from cafepos.services.order_service import (
    OrderService,
    build_order_items,
    is_bill_number_collision,
    price_lines,
)
from cafepos.services.stock_ledger import StockModel

logger = logging.getLogger(__name__)


DELIVERY_SEQUENCE = [
    DeliveryStatus.PENDING,
    DeliveryStatus.CONFIRMED,
    DeliveryStatus.PREPARING,
    DeliveryStatus.READY_FOR_PICKUP,
    DeliveryStatus.OUT_FOR_DELIVERY,
    DeliveryStatus.DELIVERED,
]

TERMINAL_DELIVERY_STATUSES = {DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED}

# Order status each delivery status drives the order to
DELIVERY_TO_ORDER_STATUS = {
    DeliveryStatus.CONFIRMED: OrderStatus.PREPARING,
    DeliveryStatus.PREPARING: OrderStatus.PREPARING,
    DeliveryStatus.READY_FOR_PICKUP: OrderStatus.SERVED,
    DeliveryStatus.OUT_FOR_DELIVERY: OrderStatus.SERVED,
    DeliveryStatus.DELIVERED: OrderStatus.PAID,
    DeliveryStatus.CANCELLED: OrderStatus.CANCELLED,
}

ZOMATO_PLACED_EVENTS = {"order.placed", "order.created"}
SWIGGY_PLACED_EVENTS = {"ORDER_PLACED", "NEW_ORDER"}


def allowed_delivery_transitions(current: DeliveryStatus, order_type: OrderType) -> Set[DeliveryStatus]:
    """Forward moves along the sequence (skips allowed) plus CANCELLED."""
    if current in TERMINAL_DELIVERY_STATUSES:
        return set()
    index = DELIVERY_SEQUENCE.index(current)
    allowed = set(DELIVERY_SEQUENCE[index + 1:])
    if order_type == OrderType.TAKEAWAY:
        allowed.discard(DeliveryStatus.OUT_FOR_DELIVERY)
    allowed.add(DeliveryStatus.CANCELLED)
    return allowed


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _decimal_or(value: Any, default: Optional[Decimal]) -> Optional[Decimal]:
    if value in (None, ""):
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")


class DeliveryService:
    """Delivery/takeaway intake and tracking."""

    def __init__(self, db: Session):
        self.db = db
        self.orders = OrderService(db)

    # ===== CREATION =====

    def create_takeaway_order(self, data: PlatformOrderCreate, now: Optional[datetime] = None) -> Order:
        return self.create_platform_order(data, DeliveryPlatform.TAKEAWAY, now=now)

    def create_delivery_order(self, data: PlatformOrderCreate, now: Optional[datetime] = None) -> Order:
        platform = data.platform or DeliveryPlatform.DIRECT
        if platform == DeliveryPlatform.TAKEAWAY:
            raise ValidationError("Use the takeaway endpoint for takeaway orders")
        return self.create_platform_order(data, platform, now=now)

    def create_platform_order(
        self,
        data: PlatformOrderCreate,
        platform: DeliveryPlatform,
        now: Optional[datetime] = None,
    ) -> Order:
        """Create a delivery or takeaway order and consume recipe stock.

        Line prices are taken from the request when client prices are
        trusted; otherwise (and for webhook orders) from the catalog.
        """
        if not data.customer_name or not data.customer_phone or not data.items:
            raise ValidationError("Customer name, phone and items are required")
        if platform != DeliveryPlatform.TAKEAWAY and not (data.delivery_address or "").strip():
            raise ValidationError("Delivery address is required for delivery orders")
        now = now or utcnow()

        attempts = settings.bill_number_max_attempts
        for attempt in range(1, attempts + 1):
            try:
                order_id = self._create(data, platform, now)
            except IntegrityError as e:
                self.db.rollback()
                if not is_bill_number_collision(e):
                    raise
                logger.warning(f"Bill number collision (attempt {attempt}/{attempts}), retrying")
                continue
            except Exception:
                self.db.rollback()
                raise
            return self.orders.get_order(order_id)

        raise ConflictError("Could not allocate a unique bill number, please retry")

    def _create(self, data: PlatformOrderCreate, platform: DeliveryPlatform, now: datetime) -> int:
        lines = price_lines(self.db, data.items, trust_client_prices=settings.trust_client_prices)
        bill = calculate_bill(
            [line.bill_line() for line in lines],
            delivery_fee=data.delivery_fee,
            packaging_fee=data.packaging_fee,
            include_fees=True,
        )
        order_type = OrderType.TAKEAWAY if platform == DeliveryPlatform.TAKEAWAY else OrderType.DELIVERY
        order = Order(
            bill_number=generate_bill_number(bill_prefix_for(platform), now),
            order_type=order_type,
            table_id=None,
            subtotal=bill.subtotal,
            tax=bill.tax,
            total=bill.total,
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        build_order_items(order, lines)
        order.delivery_info = DeliveryInfo(
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            customer_email=data.customer_email,
            delivery_address=data.delivery_address,
            platform=platform,
            platform_order_id=data.platform_order_id,
            delivery_status=DeliveryStatus.PENDING,
            delivery_fee=bill.delivery_fee,
            packaging_fee=bill.packaging_fee,
            special_instructions=data.special_instructions,
            estimated_time=data.estimated_time,
        )
        self.db.add(order)
        self.db.flush()

        self.orders.ledger.deduct_for_order(
            [(line.menu_item.id, line.quantity) for line in lines],
            order_id=order.id,
            model=StockModel.RECIPE,
            notes=f"{platform.value} order #{order.bill_number}",
        )
        self.db.commit()
        logger.info(
            f"Created {order_type.value} order {order.bill_number} via {platform.value}, "
            f"total {bill.total}"
        )
        return order.id

    # ===== STATUS =====

    def update_delivery_status(
        self,
        order_id: int,
        status: DeliveryStatus,
        delivery_partner_name: Optional[str] = None,
        delivery_partner_phone: Optional[str] = None,
        actual_time: Optional[datetime] = None,
        payment_mode: Optional[PaymentMode] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """Advance the delivery status and drag the order status along with it."""
        now = now or utcnow()
        order = self.orders.get_order(order_id)
        info = order.delivery_info
        if info is None:
            raise NotFoundError("Delivery info for order", order_id)
        if status not in allowed_delivery_transitions(info.delivery_status, order.order_type):
            raise InvalidTransitionError(
                "delivery", info.delivery_status.value, status.value
            )

        try:
            info.delivery_status = status
            if delivery_partner_name is not None:
                info.delivery_partner_name = delivery_partner_name
            if delivery_partner_phone is not None:
                info.delivery_partner_phone = delivery_partner_phone
            if actual_time is not None:
                info.actual_time = actual_time
            elif status == DeliveryStatus.DELIVERED:
                info.actual_time = now

            target = DELIVERY_TO_ORDER_STATUS.get(status)
            if target is not None:
                self.orders.advance_to(order, target, payment_mode=payment_mode, now=now)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Delivery for {order.bill_number} -> {status.value}")
        return self.orders.get_order(order_id)

    def _find_by_platform_id(self, platform: DeliveryPlatform, platform_order_id: str) -> Optional[DeliveryInfo]:
        return (
            self.db.query(DeliveryInfo)
            .filter(
                DeliveryInfo.platform == platform,
                DeliveryInfo.platform_order_id == str(platform_order_id),
            )
            .first()
        )

    # ===== WEBHOOKS =====

    def _match_menu_item(self, name: Optional[str]) -> Optional[MenuItem]:
        if not name:
            return None
        return (
            self.db.query(MenuItem)
            .filter(MenuItem.is_active.is_(True), func.lower(MenuItem.name).contains(name.lower()))
            .order_by(MenuItem.id)
            .first()
        )

    def _map_webhook_items(self, raw_items: List[Dict[str, Any]], platform: DeliveryPlatform) -> List[OrderItemCreate]:
        mapped = []
        for index, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                raise ValidationError(f"items.{index}: expected an object")
            name = raw.get("name") or raw.get("item_name")
            name = str(name) if name is not None else None
            menu_item = self._match_menu_item(name)
            if menu_item is None:
                logger.warning(f"{platform.value} item {name!r} has no matching menu item, skipped")
                continue
            notes = (
                raw.get("variant_name") or raw.get("instructions")
                or raw.get("customizations") or raw.get("variant")
            )
            quantity = raw.get("quantity") or 1
            try:
                quantity = int(quantity)
            except (TypeError, ValueError):
                raise ValidationError(f"items.{index}.quantity: invalid quantity {quantity!r}")
            if quantity <= 0:
                raise ValidationError(f"items.{index}.quantity: must be greater than 0")
            mapped.append(OrderItemCreate(
                menu_item_id=menu_item.id,
                quantity=quantity,
                price=menu_item.price,
                notes=str(notes) if notes else None,
            ))
        if not mapped:
            raise ValidationError("No matching menu items")
        return mapped

    def _webhook_order_data(
        self, platform: DeliveryPlatform, raw_items: List[Dict[str, Any]], **fields: Any
    ) -> PlatformOrderCreate:
        """Validate a platform payload into an order request; bad fields become a 400."""
        if not isinstance(raw_items, list):
            raise ValidationError("items: expected a list")
        try:
            return PlatformOrderCreate(items=self._map_webhook_items(raw_items, platform), **fields)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ()))
            logger.warning(f"Rejected {platform.value} webhook payload: {field}: {first.get('msg')}")
            raise ValidationError(f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid payload"))

    def _webhook_order(self, data: PlatformOrderCreate, platform: DeliveryPlatform) -> Order:
        """Create a webhook order priced from the catalog."""
        existing = None
        if data.platform_order_id:
            existing = self._find_by_platform_id(platform, data.platform_order_id)
        if existing is not None:
            logger.info(f"{platform.value} order {data.platform_order_id} already received")
            return self.orders.get_order(existing.order_id)
        return self.create_platform_order(data, platform)

    def _cancel_platform_order(self, platform: DeliveryPlatform, platform_order_id: Any) -> Optional[Order]:
        if not platform_order_id:
            return None
        info = self._find_by_platform_id(platform, platform_order_id)
        if info is None:
            logger.warning(f"{platform.value} cancellation for unknown order {platform_order_id}")
            return None
        if info.delivery_status in TERMINAL_DELIVERY_STATUSES:
            return self.orders.get_order(info.order_id)
        return self.update_delivery_status(info.order_id, DeliveryStatus.CANCELLED)

    def _picked_up(
        self, platform: DeliveryPlatform, platform_order_id: Any, partner: Optional[Dict[str, Any]]
    ) -> Optional[Order]:
        if not platform_order_id:
            return None
        info = self._find_by_platform_id(platform, platform_order_id)
        if info is None:
            logger.warning(f"{platform.value} pickup for unknown order {platform_order_id}")
            return None
        partner = _as_dict(partner)
        return self.update_delivery_status(
            info.order_id,
            DeliveryStatus.OUT_FOR_DELIVERY,
            delivery_partner_name=partner.get("name"),
            delivery_partner_phone=partner.get("phone"),
        )

    def handle_zomato_event(self, event: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if event in ZOMATO_PLACED_EVENTS:
            customer = _as_dict(data.get("customer"))
            address = _as_dict(_as_dict(data.get("delivery")).get("address"))
            order_data = self._webhook_order_data(
                DeliveryPlatform.ZOMATO,
                data.get("items") or [],
                customer_name=customer.get("name") or "Zomato Customer",
                customer_phone=customer.get("phone") or customer.get("mobile") or "-",
                customer_email=customer.get("email"),
                delivery_address=(
                    address.get("full_address") or data.get("delivery_address")
                    or "Address not provided"
                ),
                platform_order_id=str(data.get("order_id") or data.get("id") or "") or None,
                delivery_fee=_decimal_or(data.get("delivery_fee"), Decimal("0")),
                packaging_fee=_decimal_or(data.get("packaging_fee"), None),
                special_instructions=data.get("special_instructions") or data.get("customer_note"),
            )
            order = self._webhook_order(order_data, DeliveryPlatform.ZOMATO)
            logger.info(f"New Zomato order {order.bill_number}")
            return {"success": True, "message": "Order received",
                    "order_id": order.id, "bill_number": order.bill_number}
        if event == "order.cancelled":
            self._cancel_platform_order(DeliveryPlatform.ZOMATO, data.get("order_id"))
        elif event == "order.picked_up":
            self._picked_up(DeliveryPlatform.ZOMATO, data.get("order_id"), data.get("delivery_boy"))
        else:
            logger.info(f"Unhandled Zomato event: {event}")
        return {"success": True, "message": "Webhook processed"}

    def handle_swiggy_event(self, event: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if event in SWIGGY_PLACED_EVENTS:
            customer = _as_dict(data.get("customer"))
            address = data.get("delivery_address")
            if isinstance(address, dict):
                address = address.get("full_address")
            order_data = self._webhook_order_data(
                DeliveryPlatform.SWIGGY,
                data.get("items") or data.get("order_items") or [],
                customer_name=customer.get("name") or data.get("customer_name") or "Swiggy Customer",
                customer_phone=customer.get("phone") or data.get("customer_phone") or "-",
                customer_email=customer.get("email"),
                delivery_address=address or data.get("address") or "Address not provided",
                platform_order_id=str(data.get("order_id") or data.get("id") or "") or None,
                delivery_fee=_decimal_or(data.get("delivery_charges"), Decimal("0")),
                packaging_fee=_decimal_or(data.get("packing_charges"), None),
                special_instructions=data.get("instructions") or data.get("special_request"),
            )
            order = self._webhook_order(order_data, DeliveryPlatform.SWIGGY)
            logger.info(f"New Swiggy order {order.bill_number}")
            return {"success": True, "order_id": order.id, "bill_number": order.bill_number}
        if event == "ORDER_CANCELLED":
            self._cancel_platform_order(DeliveryPlatform.SWIGGY, data.get("order_id"))
        elif event == "ORDER_PICKED_UP":
            self._picked_up(DeliveryPlatform.SWIGGY, data.get("order_id"), data.get("delivery_executive"))
        else:
            logger.info(f"Unhandled Swiggy event: {event}")
        return {"success": True}

    # ===== QUERIES =====

    def list_delivery_orders(
        self,
        order_type: Optional[OrderType] = None,
        platform: Optional[DeliveryPlatform] = None,
        status: Optional[DeliveryStatus] = None,
        day: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[Order]:
        query = (
            self.orders.query_orders()
            .join(DeliveryInfo, DeliveryInfo.order_id == Order.id)
            .filter(Order.order_type.in_((OrderType.DELIVERY, OrderType.TAKEAWAY)))
        )
        if order_type is not None:
            query = query.filter(Order.order_type == order_type)
        if platform is not None:
            query = query.filter(DeliveryInfo.platform == platform)
        if status is not None:
            query = query.filter(DeliveryInfo.delivery_status == status)
        if day is not None:
            start, end = venue_day_bounds(day.date() if isinstance(day, datetime) else day)
            query = query.filter(Order.created_at >= start, Order.created_at < end)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()

    def delivery_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Today's delivery/takeaway counts and paid revenue."""
        start, end = venue_day_bounds(venue_today(now))
        rows = (
            self.db.query(Order, DeliveryInfo)
            .join(DeliveryInfo, DeliveryInfo.order_id == Order.id)
            .filter(
                Order.order_type.in_((OrderType.DELIVERY, OrderType.TAKEAWAY)),
                Order.created_at >= start,
                Order.created_at < end,
            )
            .all()
        )
        by_platform = {p.value.lower(): 0 for p in DeliveryPlatform}
        by_status = {s.value.lower(): 0 for s in DeliveryStatus}
        revenue = Decimal("0")
        for order, info in rows:
            by_platform[info.platform.value.lower()] += 1
            by_status[info.delivery_status.value.lower()] += 1
            if order.status == OrderStatus.PAID:
                revenue += Decimal(order.total)
        return {
            "total_orders": len(rows),
            "takeaway_orders": sum(1 for o, _ in rows if o.order_type == OrderType.TAKEAWAY),
            "delivery_orders": sum(1 for o, _ in rows if o.order_type == OrderType.DELIVERY),
            "by_platform": by_platform,
            "by_status": by_status,
            "total_revenue": revenue,
        }
