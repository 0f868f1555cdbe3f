"""Tables and reservations."""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from cafepos.core.config import settings
from cafepos.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from cafepos.core.timeutils import to_naive_utc, utcnow
from cafepos.models.order import ACTIVE_ORDER_STATUSES, Order
from cafepos.models.table import DiningTable, TableStatus

logger = logging.getLogger(__name__)

# Manual status overrides; RESERVED is only entered through a reservation
MANUAL_TABLE_TRANSITIONS = {
    TableStatus.AVAILABLE: {TableStatus.OCCUPIED},
    TableStatus.OCCUPIED: {TableStatus.AVAILABLE},
    TableStatus.RESERVED: {TableStatus.AVAILABLE, TableStatus.OCCUPIED},
}


def reservation_status(table: DiningTable, now: datetime) -> Optional[str]:
    """Derived view of a reservation: active, expiring_soon or expired."""
    if table.status != TableStatus.RESERVED or table.reserved_until is None:
        return None
    remaining = table.reserved_until - now
    if remaining <= timedelta(0):
        return "expired"
    if remaining <= timedelta(minutes=settings.reservation_expiring_soon_minutes):
        return "expiring_soon"
    return "active"


def table_sort_key(table: DiningTable):
    """Numeric table numbers in numeric order, named tables after them."""
    number = table.number.strip()
    if number.isdigit():
        return (0, int(number), "")
    return (1, 0, number.lower())


class TableService:
    def __init__(self, db: Session):
        self.db = db

    def get_table(self, table_id: int, lock: bool = False) -> DiningTable:
        query = self.db.query(DiningTable).filter(DiningTable.id == table_id)
        if lock:
            query = query.with_for_update()
        table = query.first()
        if table is None:
            raise NotFoundError("Table", table_id)
        return table

    def _has_active_orders(self, table_id: int) -> bool:
        return (
            self.db.query(Order.id)
            .filter(Order.table_id == table_id, Order.status.in_(ACTIVE_ORDER_STATUSES))
            .first()
            is not None
        )

    def list_tables(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Tables ordered by number, each with its latest active order."""
        now = now or utcnow()
        tables = sorted(self.db.query(DiningTable).all(), key=table_sort_key)
        active = (
            self.db.query(Order)
            .filter(Order.table_id.isnot(None), Order.status.in_(ACTIVE_ORDER_STATUSES))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )
        latest: Dict[int, Order] = {}
        for order in active:
            latest.setdefault(order.table_id, order)
        return [
            {
                "table": table,
                "active_order": latest.get(table.id),
                "reservation_status": reservation_status(table, now),
            }
            for table in tables
        ]

    def create_reservation(
        self,
        table_id: int,
        customer_name: str,
        reserved_from: datetime,
        reserved_until: datetime,
        customer_phone: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DiningTable:
        now = now or utcnow()
        start = to_naive_utc(reserved_from)
        end = to_naive_utc(reserved_until)
        if not customer_name or not customer_name.strip():
            raise ValidationError("Customer name is required")
        if start >= end:
            raise ValidationError("Reservation start time must be before end time")
        if end <= now:
            raise ValidationError("Reservation end time must be in the future")

        try:
            table = self.get_table(table_id, lock=True)
            if table.status != TableStatus.AVAILABLE:
                raise ValidationError(
                    f"Table {table.number} is not available (current status: {table.status.value})"
                )
            table.status = TableStatus.RESERVED
            table.customer_name = customer_name.strip()
            table.customer_phone = customer_phone
            table.reserved_from = start
            table.reserved_until = end
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(table)
        logger.info(f"Table {table.number} reserved for {table.customer_name} {start} - {end}")
        return table

    def cancel_reservation(self, table_id: int) -> DiningTable:
        try:
            table = self.get_table(table_id, lock=True)
            if table.status != TableStatus.RESERVED:
                raise ValidationError(f"Table {table.number} is not reserved")
            table.clear()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(table)
        logger.info(f"Reservation on table {table.number} cancelled")
        return table

    def extend_reservation(
        self, table_id: int, new_end: datetime, now: Optional[datetime] = None
    ) -> DiningTable:
        now = now or utcnow()
        new_end = to_naive_utc(new_end)
        if new_end <= now:
            raise ValidationError("New end time must be in the future")
        try:
            table = self.get_table(table_id, lock=True)
            if table.status != TableStatus.RESERVED:
                raise ValidationError(f"Table {table.number} is not reserved")
            if table.reserved_until is not None and new_end <= table.reserved_until:
                raise ValidationError("New end time must be after the current end time")
            table.reserved_until = new_end
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(table)
        logger.info(f"Reservation on table {table.number} extended to {new_end}")
        return table

    def update_table_status(self, table_id: int, status: TableStatus) -> DiningTable:
        """Manual override from the floor plan."""
        try:
            table = self.get_table(table_id, lock=True)
            if table.status == status:
                return table
            if status not in MANUAL_TABLE_TRANSITIONS[table.status]:
                if status == TableStatus.RESERVED:
                    raise ValidationError("Use a reservation to reserve a table")
                raise InvalidTransitionError("table", table.status.value, status.value)
            if status == TableStatus.AVAILABLE:
                if self._has_active_orders(table.id):
                    raise ValidationError(
                        f"Table {table.number} still has active orders; settle them first"
                    )
                table.clear()
            else:
                table.clear_reservation_window()
                table.status = status
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(table)
        logger.info(f"Table {table.number} set to {status.value}")
        return table
