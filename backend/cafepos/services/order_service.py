"""Order lifecycle: dine-in creation and the order status state machine.

Creating a dine-in order is one transaction: the order, its lines and
modification snapshots, the inventory counter decrements and the table
update commit together or not at all. A bill-number collision on the
unique constraint restarts the whole transaction with a fresh number.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from cafepos.core.config import settings
from cafepos.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ReservationConflictError,
    ValidationError,
)
from cafepos.core.timeutils import utcnow
from cafepos.models.menu import MenuItem, Modification
from cafepos.models.order import (
    ACTIVE_ORDER_STATUSES,
    DeliveryStatus,
    Order,
    OrderItem,
    OrderItemModification,
    OrderStatus,
    OrderType,
    PaymentMode,
)
from cafepos.models.table import DiningTable, TableStatus
from cafepos.schemas.order import OrderItemCreate
from cafepos.services.billing import (
    DINE_IN_BILL_PREFIX,
    BillLine,
    ModLine,
    calculate_bill,
    generate_bill_number,
)
from cafepos.services.stock_ledger import StockLedgerService, StockModel

logger = logging.getLogger(__name__)


ORDER_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.SERVED, OrderStatus.CANCELLED},
    OrderStatus.SERVED: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: set(),
    OrderStatus.CANCELLED: set(),
}

# Forward path used when an order is advanced several steps at once
ORDER_PROGRESSION = [
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.SERVED,
    OrderStatus.PAID,
]


def is_bill_number_collision(error: IntegrityError) -> bool:
    return "bill_number" in str(error.orig)


@dataclass
class PricedLine:
    """An order line resolved against the catalog."""

    menu_item: MenuItem
    quantity: int
    price: Decimal
    notes: Optional[str] = None
    modifications: List[Tuple[Modification, int]] = field(default_factory=list)

    def bill_line(self) -> BillLine:
        return BillLine(
            price=self.price,
            quantity=self.quantity,
            modifications=[ModLine(price=mod.price, quantity=qty) for mod, qty in self.modifications],
        )


def price_lines(
    db: Session, items: Iterable[OrderItemCreate], trust_client_prices: bool = False
) -> List[PricedLine]:
    """Resolve menu items and modifications; modification prices always come from the catalog."""
    priced = []
    for item in items:
        menu_item = db.get(MenuItem, item.menu_item_id)
        if menu_item is None:
            raise NotFoundError("Menu item", item.menu_item_id)
        if not menu_item.is_active:
            raise ValidationError(f"{menu_item.name} is not available")

        if trust_client_prices and item.price is not None:
            price = Decimal(item.price)
        else:
            price = Decimal(menu_item.price)

        mods = []
        for selection in item.modifications:
            mod = db.get(Modification, selection.modification_id)
            if mod is None:
                raise NotFoundError("Modification", selection.modification_id)
            if not mod.is_active:
                raise ValidationError(f"Modification {mod.name} is not available")
            mods.append((mod, selection.quantity))

        priced.append(PricedLine(
            menu_item=menu_item,
            quantity=item.quantity,
            price=price,
            notes=item.notes,
            modifications=mods,
        ))
    return priced


def build_order_items(order: Order, lines: Iterable[PricedLine]) -> None:
    """Attach line items and modification snapshots to an unsaved order."""
    for line in lines:
        order_item = OrderItem(
            menu_item_id=line.menu_item.id,
            quantity=line.quantity,
            price=line.price,
            notes=line.notes,
        )
        for mod, qty in line.modifications:
            order_item.modifications.append(OrderItemModification(
                modification_id=mod.id,
                name=mod.name,
                price=mod.price,
                quantity=qty,
            ))
        order.items.append(order_item)


class OrderService:
    """Dine-in orders and the shared order status machine."""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = StockLedgerService(db)

    # ===== QUERIES =====

    def query_orders(self):
        return self.db.query(Order).options(
            selectinload(Order.items).joinedload(OrderItem.menu_item),
            selectinload(Order.items).selectinload(OrderItem.modifications),
            joinedload(Order.table),
            joinedload(Order.delivery_info),
        )

    def get_order(self, order_id: int) -> Order:
        order = self.query_orders().filter(Order.id == order_id).first()
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    def list_orders(
        self,
        limit: int = 50,
        status: Optional[OrderStatus] = None,
        order_type: Optional[OrderType] = None,
    ) -> List[Order]:
        query = self.query_orders()
        if status is not None:
            query = query.filter(Order.status == status)
        if order_type is not None:
            query = query.filter(Order.order_type == order_type)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()

    def active_orders(self) -> List[Order]:
        return (
            self.query_orders()
            .filter(Order.status.in_(ACTIVE_ORDER_STATUSES))
            .order_by(Order.created_at.asc(), Order.id.asc())
            .all()
        )

    # ===== CREATION =====

    def create_order(
        self,
        table_id: Optional[int],
        items: List[OrderItemCreate],
        now: Optional[datetime] = None,
    ) -> Order:
        """Create a dine-in order for a table.

        Raises:
            ValidationError: missing table or items.
            NotFoundError: unknown table, menu item or modification.
            ReservationConflictError: table reserved for a window not yet open.
            NoInventoryRecordError / InsufficientStockError: counter shortfall.
            ConflictError: no unique bill number after the configured attempts.
        """
        if not table_id or not items:
            raise ValidationError("Table ID and items are required")
        now = now or utcnow()

        attempts = settings.bill_number_max_attempts
        for attempt in range(1, attempts + 1):
            try:
                order_id = self._create_dine_in(table_id, items, now)
            except IntegrityError as e:
                self.db.rollback()
                if not is_bill_number_collision(e):
                    raise
                logger.warning(f"Bill number collision (attempt {attempt}/{attempts}), retrying")
                continue
            except Exception:
                self.db.rollback()
                raise
            return self.get_order(order_id)

        logger.error(f"Could not allocate a unique bill number after {attempts} attempts")
        raise ConflictError("Could not allocate a unique bill number, please retry")

    def _create_dine_in(self, table_id: int, items: List[OrderItemCreate], now: datetime) -> int:
        table = (
            self.db.query(DiningTable)
            .filter(DiningTable.id == table_id)
            .with_for_update()
            .first()
        )
        if table is None:
            raise NotFoundError("Table", table_id)
        if (
            table.status == TableStatus.RESERVED
            and table.reserved_from is not None
            and now < table.reserved_from
        ):
            raise ReservationConflictError(
                f"Table {table.number} is reserved from {table.reserved_from:%Y-%m-%d %H:%M} "
                f"to {table.reserved_until:%Y-%m-%d %H:%M} UTC"
            )

        lines = price_lines(self.db, items, trust_client_prices=False)
        stock_lines = [(line.menu_item.id, line.quantity) for line in lines]
        self.ledger.check_counters(stock_lines)

        bill = calculate_bill([line.bill_line() for line in lines])
        order = Order(
            bill_number=generate_bill_number(DINE_IN_BILL_PREFIX, now),
            order_type=OrderType.DINE_IN,
            table_id=table.id,
            subtotal=bill.subtotal,
            tax=bill.tax,
            total=bill.total,
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        build_order_items(order, lines)
        self.db.add(order)
        self.db.flush()

        self.ledger.deduct_for_order(stock_lines, order_id=order.id, model=StockModel.COUNTER)

        if table.status == TableStatus.RESERVED:
            # Reservation becomes occupancy; guest name stays on the table
            table.clear_reservation_window()
        table.status = TableStatus.OCCUPIED
        if table.order_time is None:
            table.order_time = now
        table.current_bill = Decimal(table.current_bill or 0) + bill.total

        self.db.commit()
        logger.info(
            f"Created order {order.bill_number} for table {table.number}: "
            f"{len(lines)} lines, total {bill.total}"
        )
        return order.id

    # ===== STATUS =====

    def update_order_status(
        self,
        order_id: int,
        new_status: OrderStatus,
        payment_mode: Optional[PaymentMode] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """Move an order one step along the status machine."""
        now = now or utcnow()
        order = self.get_order(order_id)
        if new_status not in ORDER_TRANSITIONS[order.status]:
            raise InvalidTransitionError("order", order.status.value, new_status.value)
        if new_status == OrderStatus.PAID and payment_mode is None:
            raise ValidationError("Payment mode (cash, card or upi) is required to mark an order as paid")

        try:
            self.apply_status(order, new_status, payment_mode=payment_mode, now=now)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Order {order.bill_number} -> {new_status.value}")
        return self.get_order(order_id)

    def advance_to(
        self,
        order: Order,
        target: OrderStatus,
        payment_mode: Optional[PaymentMode] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """Walk an order forward to ``target`` through each intermediate status.

        Does not commit. Already at or past the target is a no-op; a
        terminal order can only stay where it is.
        """
        now = now or utcnow()
        if order.status == target:
            return
        if target == OrderStatus.CANCELLED:
            if OrderStatus.CANCELLED not in ORDER_TRANSITIONS[order.status]:
                raise InvalidTransitionError("order", order.status.value, target.value)
            self.apply_status(order, target, now=now)
            return
        if order.status == OrderStatus.CANCELLED:
            raise InvalidTransitionError("order", order.status.value, target.value)

        current = ORDER_PROGRESSION.index(order.status)
        wanted = ORDER_PROGRESSION.index(target)
        for status in ORDER_PROGRESSION[current + 1:wanted + 1]:
            self.apply_status(order, status, payment_mode=payment_mode, now=now)

    def apply_status(
        self,
        order: Order,
        new_status: OrderStatus,
        payment_mode: Optional[PaymentMode] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """Set the status and its side effects. Caller validates and commits."""
        now = now or utcnow()
        order.status = new_status
        order.updated_at = now

        if new_status == OrderStatus.PAID:
            order.payment_mode = payment_mode
            order.paid_at = now

        if new_status == OrderStatus.CANCELLED:
            if settings.restore_stock_on_cancel:
                self.ledger.restore_for_order(order)
            info = order.delivery_info
            if info is not None and info.delivery_status not in (
                DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED
            ):
                info.delivery_status = DeliveryStatus.CANCELLED

        if new_status in (OrderStatus.PAID, OrderStatus.CANCELLED) and order.table_id:
            self._settle_table(order)

    def _settle_table(self, order: Order) -> None:
        """Take a closed order off its table, freeing the table if it was the last one."""
        table = (
            self.db.query(DiningTable)
            .filter(DiningTable.id == order.table_id)
            .with_for_update()
            .first()
        )
        if table is None:
            return
        remaining = (
            self.db.query(Order.id)
            .filter(
                Order.table_id == table.id,
                Order.id != order.id,
                Order.status.in_(ACTIVE_ORDER_STATUSES),
            )
            .count()
        )
        if remaining == 0 and table.status == TableStatus.OCCUPIED:
            table.clear()
            logger.info(f"Table {table.number} is now available")
        else:
            table.current_bill = max(
                Decimal("0"), Decimal(table.current_bill or 0) - Decimal(order.total)
            )
