"""Read-only dashboard and sales aggregates.

Day boundaries follow the venue timezone. Sales figures only count PAID
orders; order counts include every status.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from cafepos.core.exceptions import ValidationError
from cafepos.core.timeutils import to_venue_local, utcnow, venue_day_bounds, venue_today
from cafepos.models.ingredient import Ingredient
from cafepos.models.menu import Category, Inventory, MenuItem
from cafepos.models.order import (
    ACTIVE_ORDER_STATUSES,
    Order,
    OrderItem,
    OrderStatus,
    OrderType,
    PaymentMode,
)
from cafepos.models.table import DiningTable, TableStatus
from cafepos.services.billing import money

logger = logging.getLogger(__name__)

TOP_SELLERS_DAYS = 7
MAX_REPORT_DAYS = 366


def _growth(current: Decimal, previous: Decimal) -> Decimal:
    """Percent change, one decimal place; 0 when there is no baseline."""
    if not previous:
        return Decimal("0")
    return ((Decimal(current) - Decimal(previous)) / Decimal(previous) * 100).quantize(Decimal("0.1"))


class ReportService:
    def __init__(self, db: Session):
        self.db = db

    def _orders_between(self, start: datetime, end: datetime) -> List[Order]:
        return (
            self.db.query(Order)
            .options(selectinload(Order.items))
            .filter(Order.created_at >= start, Order.created_at < end)
            .all()
        )

    def _day_summary(self, day: date) -> Dict[str, Any]:
        start, end = venue_day_bounds(day)
        orders = self._orders_between(start, end)
        paid = [o for o in orders if o.status == OrderStatus.PAID]
        sales = sum((Decimal(o.total) for o in paid), Decimal("0"))
        items_sold = sum(item.quantity for o in paid for item in o.items)
        return {
            "orders": orders,
            "paid": paid,
            "sales": money(sales),
            "items_sold": items_sold,
            "avg_order_value": money(sales / len(paid)) if paid else Decimal("0.00"),
        }

    def top_selling_items(self, since: datetime, limit: int = 10) -> List[Dict[str, Any]]:
        rows = (
            self.db.query(
                MenuItem.id,
                MenuItem.name,
                Category.name,
                func.sum(OrderItem.quantity).label("sold"),
                func.sum(OrderItem.price * OrderItem.quantity).label("revenue"),
            )
            .join(OrderItem, OrderItem.menu_item_id == MenuItem.id)
            .join(Order, Order.id == OrderItem.order_id)
            .outerjoin(Category, Category.id == MenuItem.category_id)
            .filter(Order.status == OrderStatus.PAID, Order.created_at >= since)
            .group_by(MenuItem.id, MenuItem.name, Category.name)
            .order_by(func.sum(OrderItem.quantity).desc(), MenuItem.id)
            .limit(limit)
            .all()
        )
        return [
            {
                "id": item_id,
                "name": name,
                "category": category or "Uncategorized",
                "total_sold": int(sold or 0),
                "revenue": money(revenue or 0),
            }
            for item_id, name, category, sold, revenue in rows
        ]

    def sales_by_category(self, since: datetime) -> List[Dict[str, Any]]:
        rows = (
            self.db.query(
                Category.name,
                func.sum(OrderItem.quantity),
                func.sum(OrderItem.price * OrderItem.quantity),
            )
            .select_from(OrderItem)
            .join(Order, Order.id == OrderItem.order_id)
            .join(MenuItem, MenuItem.id == OrderItem.menu_item_id)
            .outerjoin(Category, Category.id == MenuItem.category_id)
            .filter(Order.status == OrderStatus.PAID, Order.created_at >= since)
            .group_by(Category.name)
            .all()
        )
        result = [
            {"name": name or "Uncategorized", "items": int(qty or 0), "value": money(value or 0)}
            for name, qty, value in rows
        ]
        return sorted(result, key=lambda row: row["value"], reverse=True)

    def dashboard_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Today vs yesterday plus stock and floor snapshots."""
        now = now or utcnow()
        today = venue_today(now)
        current = self._day_summary(today)
        previous = self._day_summary(today - timedelta(days=1))

        payment_breakdown = {mode.value: 0 for mode in PaymentMode}
        for order in current["paid"]:
            if order.payment_mode is not None:
                payment_breakdown[order.payment_mode.value] += 1

        hourly: Dict[int, int] = defaultdict(int)
        for order in current["orders"]:
            hourly[to_venue_local(order.created_at).hour] += 1
        peak_hours = sorted(
            ({"hour": hour, "orders": count} for hour, count in hourly.items()),
            key=lambda row: (-row["orders"], row["hour"]),
        )[:5]

        tables = self.db.query(DiningTable.status, func.count(DiningTable.id)).group_by(DiningTable.status).all()
        table_counts = {status.value.lower(): 0 for status in TableStatus}
        for status, count in tables:
            table_counts[status.value.lower()] = count
        total_tables = sum(table_counts.values())

        low_inventory = (
            self.db.query(Inventory)
            .options(selectinload(Inventory.menu_item))
            .filter(Inventory.low_stock.is_(True))
            .all()
        )
        low_ingredients = (
            self.db.query(func.count(Ingredient.id))
            .filter(Ingredient.current_stock <= Ingredient.min_stock)
            .scalar()
        )
        active_orders = (
            self.db.query(func.count(Order.id))
            .filter(Order.status.in_(ACTIVE_ORDER_STATUSES))
            .scalar()
        )
        since = now - timedelta(days=TOP_SELLERS_DAYS)

        return {
            "today_sales": current["sales"],
            "today_orders": len(current["orders"]),
            "today_paid_orders": len(current["paid"]),
            "total_items_sold": current["items_sold"],
            "avg_order_value": current["avg_order_value"],
            "yesterday_sales": previous["sales"],
            "yesterday_orders": len(previous["orders"]),
            "yesterday_paid_orders": len(previous["paid"]),
            "yesterday_items_sold": previous["items_sold"],
            "yesterday_avg_order_value": previous["avg_order_value"],
            "sales_growth": _growth(current["sales"], previous["sales"]),
            "orders_growth": _growth(len(current["orders"]), len(previous["orders"])),
            "items_growth": _growth(current["items_sold"], previous["items_sold"]),
            "payment_breakdown": payment_breakdown,
            "peak_hours": peak_hours,
            "active_orders": active_orders or 0,
            "tables": table_counts,
            "total_tables": total_tables,
            "table_utilization": (
                round(table_counts["occupied"] * 100 / total_tables) if total_tables else 0
            ),
            "low_stock_count": len(low_inventory),
            "low_stock_items": [
                {
                    "id": inv.menu_item_id,
                    "name": inv.menu_item.name if inv.menu_item else None,
                    "quantity": inv.quantity,
                }
                for inv in low_inventory
            ],
            "low_stock_ingredients": low_ingredients or 0,
            "top_selling_items": self.top_selling_items(since),
            "sales_by_category": self.sales_by_category(since),
        }

    def sales_report(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Per-day sales between two venue-local dates (inclusive); last 7 days by default."""
        end = end or venue_today(now)
        start = start or end - timedelta(days=7)
        if start > end:
            raise ValidationError("Start date must be on or before end date")
        if (end - start).days > MAX_REPORT_DAYS:
            raise ValidationError(f"Report range cannot exceed {MAX_REPORT_DAYS} days")

        range_start, _ = venue_day_bounds(start)
        _, range_end = venue_day_bounds(end)
        orders = self._orders_between(range_start, range_end)

        days: Dict[str, Dict[str, Any]] = {}
        cursor = start
        while cursor <= end:
            days[cursor.isoformat()] = {"sales": Decimal("0.00"), "orders": 0, "items": 0}
            cursor += timedelta(days=1)

        by_type = {t.value: {"sales": Decimal("0.00"), "orders": 0} for t in OrderType}
        for order in orders:
            bucket = days.get(to_venue_local(order.created_at).date().isoformat())
            if bucket is None:
                continue
            bucket["orders"] += 1
            if order.status == OrderStatus.PAID:
                bucket["sales"] += Decimal(order.total)
                bucket["items"] += sum(item.quantity for item in order.items)
                by_type[order.order_type.value]["sales"] += Decimal(order.total)
                by_type[order.order_type.value]["orders"] += 1

        return {
            "start": start.isoformat(),
            "end": end.isoformat(),
            "days": [{"date": day, **values} for day, values in days.items()],
            "by_order_type": by_type,
            "total_sales": sum((d["sales"] for d in days.values()), Decimal("0.00")),
            "total_orders": sum(d["orders"] for d in days.values()),
        }
