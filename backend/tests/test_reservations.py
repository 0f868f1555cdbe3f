"""Tests for tables, reservations and the reservation scheduler."""

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from cafepos.core.exceptions import (
    InvalidTransitionError,
    ReservationConflictError,
    ValidationError,
)
from cafepos.core.timeutils import utcnow
from cafepos.models import DiningTable, Order, OrderStatus, OrderType, TableStatus
from cafepos.schemas.order import OrderItemCreate
from cafepos.services.order_service import OrderService
from cafepos.services.reservation_scheduler import (
    ReservationScheduler,
    get_expiring_reservations,
    release_expired_reservations,
)
from cafepos.services.table_service import TableService, reservation_status

DAY = datetime(2026, 3, 10)
AT = lambda hour, minute=0: DAY.replace(hour=hour, minute=minute)  # noqa: E731


@pytest.fixture
def reserved_table(catalog):
    """Table 1 reserved 14:00-15:00, booked at 10:00."""
    return TableService(catalog["db"]).create_reservation(
        catalog["table1"].id,
        customer_name="Asha",
        customer_phone="9876543210",
        reserved_from=AT(14),
        reserved_until=AT(15),
        now=AT(10),
    )


def _coffee(catalog, qty=1):
    return [OrderItemCreate(menu_item_id=catalog["coffee"].id, quantity=qty)]


# ============== Reservations ==============

class TestReservations:

    def test_reserve_sets_window(self, reserved_table):
        assert reserved_table.status == TableStatus.RESERVED
        assert reserved_table.customer_name == "Asha"
        assert reserved_table.reserved_from == AT(14)
        assert reserved_table.reserved_until == AT(15)

    def test_order_before_window_rejected(self, catalog, reserved_table, inventory_of):
        with pytest.raises(ReservationConflictError):
            OrderService(catalog["db"]).create_order(reserved_table.id, _coffee(catalog), now=AT(13))
        assert inventory_of(catalog["coffee"]) == 20
        assert catalog["db"].query(Order).count() == 0

    def test_order_inside_window_seats_guest(self, catalog, reserved_table):
        db = catalog["db"]
        OrderService(db).create_order(reserved_table.id, _coffee(catalog), now=AT(14, 30))
        db.refresh(reserved_table)
        assert reserved_table.status == TableStatus.OCCUPIED
        assert reserved_table.reserved_from is None
        assert reserved_table.reserved_until is None
        assert reserved_table.customer_name == "Asha"

    def test_cannot_reserve_busy_table(self, catalog, reserved_table):
        with pytest.raises(ValidationError):
            TableService(catalog["db"]).create_reservation(
                reserved_table.id, "Ravi", AT(16), AT(17), now=AT(10)
            )

    @pytest.mark.parametrize("start,end", [(AT(15), AT(14)), (AT(14), AT(14))])
    def test_window_must_be_ordered(self, catalog, start, end):
        with pytest.raises(ValidationError):
            TableService(catalog["db"]).create_reservation(
                catalog["table2"].id, "Ravi", start, end, now=AT(10)
            )

    def test_window_must_end_in_future(self, catalog):
        with pytest.raises(ValidationError):
            TableService(catalog["db"]).create_reservation(
                catalog["table2"].id, "Ravi", AT(8), AT(9), now=AT(10)
            )

    def test_cancel_clears_everything(self, catalog, reserved_table):
        table = TableService(catalog["db"]).cancel_reservation(reserved_table.id)
        assert table.status == TableStatus.AVAILABLE
        assert table.customer_name is None
        assert table.customer_phone is None
        assert table.reserved_from is None and table.reserved_until is None

    def test_cancel_requires_reservation(self, catalog):
        with pytest.raises(ValidationError):
            TableService(catalog["db"]).cancel_reservation(catalog["table2"].id)

    def test_extend(self, catalog, reserved_table):
        service = TableService(catalog["db"])
        table = service.extend_reservation(reserved_table.id, AT(16), now=AT(14, 50))
        assert table.reserved_until == AT(16)
        with pytest.raises(ValidationError):
            service.extend_reservation(reserved_table.id, AT(15, 30), now=AT(14, 50))


# ============== Reservation status ==============

class TestReservationStatus:

    @pytest.mark.parametrize("now,expected", [
        (AT(14, 40), "active"),
        (AT(14, 45), "expiring_soon"),
        (AT(14, 59), "expiring_soon"),
        (AT(15), "expired"),
    ])
    def test_status_by_remaining_time(self, reserved_table, now, expected):
        assert reservation_status(reserved_table, now) == expected

    def test_not_reserved_has_no_status(self, catalog):
        assert reservation_status(catalog["table2"], AT(10)) is None

    def test_expiring_window(self, catalog, reserved_table):
        db = catalog["db"]
        assert get_expiring_reservations(db, minutes_ahead=15, now=AT(14, 30)) == []
        assert [t.id for t in get_expiring_reservations(db, 15, now=AT(14, 50))] == [reserved_table.id]
        assert get_expiring_reservations(db, 15, now=AT(15, 1)) == []

    def test_list_tables_includes_status_and_order(self, catalog, reserved_table):
        db = catalog["db"]
        order = OrderService(db).create_order(catalog["table2"].id, _coffee(catalog), now=AT(14))
        rows = {row["table"].number: row for row in TableService(db).list_tables(now=AT(14, 50))}
        assert rows["1"]["reservation_status"] == "expiring_soon"
        assert rows["1"]["active_order"] is None
        assert rows["2"]["active_order"].id == order.id

    def test_list_tables_in_numeric_order(self, catalog):
        db = catalog["db"]
        db.add_all([
            DiningTable(number="10", capacity=4),
            DiningTable(number="Patio", capacity=6),
            DiningTable(number="3", capacity=2),
        ])
        db.commit()
        numbers = [row["table"].number for row in TableService(db).list_tables(now=AT(10))]
        assert numbers == ["1", "2", "3", "10", "Patio"]


# ============== Manual table status ==============

class TestTableStatus:

    def test_reserved_only_through_reservation(self, catalog):
        with pytest.raises(ValidationError, match="reservation"):
            TableService(catalog["db"]).update_table_status(catalog["table2"].id, TableStatus.RESERVED)

    def test_cannot_free_table_with_active_orders(self, catalog, now):
        db = catalog["db"]
        OrderService(db).create_order(catalog["table1"].id, _coffee(catalog), now=now)
        with pytest.raises(ValidationError):
            TableService(db).update_table_status(catalog["table1"].id, TableStatus.AVAILABLE)

    def test_release_reserved_table_manually(self, catalog, reserved_table):
        table = TableService(catalog["db"]).update_table_status(reserved_table.id, TableStatus.AVAILABLE)
        assert table.status == TableStatus.AVAILABLE
        assert table.reserved_until is None

    def test_same_status_is_noop(self, catalog):
        table = TableService(catalog["db"]).update_table_status(catalog["table2"].id, TableStatus.AVAILABLE)
        assert table.status == TableStatus.AVAILABLE

    def test_occupied_to_reserved_is_invalid(self, catalog):
        service = TableService(catalog["db"])
        service.update_table_status(catalog["table2"].id, TableStatus.OCCUPIED)
        with pytest.raises(ValidationError):
            service.update_table_status(catalog["table2"].id, TableStatus.RESERVED)

    def test_invalid_transition_error_type(self):
        err = InvalidTransitionError("table", "OCCUPIED", "RESERVED")
        assert "OCCUPIED" in err.message and "RESERVED" in err.message


# ============== Release scheduler ==============

class TestReleaseExpired:

    def test_release_is_idempotent(self, catalog, reserved_table):
        db = catalog["db"]
        first = release_expired_reservations(db, now=AT(15, 1))
        assert first["success"] is True
        assert first["released"] == 1
        assert first["tables"] == ["1"]

        db.refresh(reserved_table)
        assert reserved_table.status == TableStatus.AVAILABLE
        assert reserved_table.customer_name is None

        second = release_expired_reservations(db, now=AT(15, 2))
        assert second["processed"] == 0
        assert second["released"] == 0

    def test_not_released_before_end(self, catalog, reserved_table):
        result = release_expired_reservations(catalog["db"], now=AT(14, 59))
        assert result["processed"] == 0

    def test_table_with_active_order_becomes_occupied(self, catalog, reserved_table):
        db = catalog["db"]
        db.add(Order(
            bill_number="DI2603100001",
            order_type=OrderType.DINE_IN,
            table_id=reserved_table.id,
            subtotal=Decimal("100"),
            tax=Decimal("5"),
            total=Decimal("105"),
            status=OrderStatus.PREPARING,
        ))
        db.commit()

        result = release_expired_reservations(db, now=AT(15, 1))
        assert result["occupied"] == 1
        assert result["occupied_tables"] == ["1"]
        db.refresh(reserved_table)
        assert reserved_table.status == TableStatus.OCCUPIED
        assert reserved_table.reserved_until is None
        assert reserved_table.customer_name == "Asha"


class TestReservationScheduler:

    def _expired_reservation(self, db):
        table = DiningTable(
            number="9",
            capacity=2,
            status=TableStatus.RESERVED,
            customer_name="Late Guest",
            reserved_from=utcnow() - timedelta(hours=2),
            reserved_until=utcnow() - timedelta(minutes=1),
        )
        db.add(table)
        db.commit()
        return table

    def test_run_once_uses_own_session(self, db_engine, db_session):
        table = self._expired_reservation(db_session)
        scheduler = ReservationScheduler(
            interval_seconds=3600, session_factory=sessionmaker(bind=db_engine)
        )

        result = asyncio.run(scheduler.run_once())

        assert result["released"] == 1
        assert scheduler.run_count == 1
        assert scheduler.get_status()["last_error"] is None
        db_session.refresh(table)
        assert table.status == TableStatus.AVAILABLE

    def test_start_and_stop(self, db_engine):
        scheduler = ReservationScheduler(
            interval_seconds=3600, session_factory=sessionmaker(bind=db_engine)
        )

        async def _cycle():
            scheduler.start()
            assert scheduler.running
            for _ in range(100):
                if scheduler.run_count:
                    break
                await asyncio.sleep(0.02)
            await scheduler.stop()

        asyncio.run(_cycle())

        status = scheduler.get_status()
        assert status["running"] is False
        assert status["run_count"] >= 1
        assert status["last_result"]["success"] is True
