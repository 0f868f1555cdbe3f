"""Dining table model."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from cafepos.db.base import Base, TimestampMixin
from cafepos.models.validators import non_negative


class TableStatus(str, Enum):
    """Seating status of a table."""

    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    RESERVED = "RESERVED"


class DiningTable(Base, TimestampMixin):
    """A physical table on the floor.

    ``reserved_from``/``reserved_until`` are set only while the table is
    RESERVED. ``current_bill`` is the running total of active dine-in
    orders seated at the table.
    """

    __tablename__ = "tables"

    id: Mapped[int] = mapped_column(primary_key=True)
    number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    status: Mapped[TableStatus] = mapped_column(
        SQLEnum(TableStatus), default=TableStatus.AVAILABLE, nullable=False, index=True
    )
    current_bill: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), nullable=False
    )
    order_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    reserved_from: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    reserved_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    orders: Mapped[list["Order"]] = relationship("Order", back_populates="table")

    @validates("current_bill")
    def _validate_current_bill(self, key, value):
        return non_negative(key, value)

    def clear(self) -> None:
        """Return the table to AVAILABLE with every guest field wiped."""
        self.status = TableStatus.AVAILABLE
        self.current_bill = Decimal("0")
        self.order_time = None
        self.customer_name = None
        self.customer_phone = None
        self.reserved_from = None
        self.reserved_until = None

    def clear_reservation_window(self) -> None:
        self.reserved_from = None
        self.reserved_until = None


from cafepos.models.order import Order  # noqa: E402
