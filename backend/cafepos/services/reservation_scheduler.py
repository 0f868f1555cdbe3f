"""Reservation Scheduler.

Releases reservations whose window has ended. A table that still has an
active order becomes OCCUPIED (only the reservation window is cleared);
otherwise it goes back to AVAILABLE with every guest field wiped.

The scan is idempotent, so an overlapping manual trigger and timer tick
are harmless. The timer is an asyncio task started and stopped by the
application lifespan; each tick runs the synchronous scan in a worker
thread with its own session.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from cafepos.core.config import settings
from cafepos.core.timeutils import utcnow
from cafepos.models.order import ACTIVE_ORDER_STATUSES, Order
from cafepos.models.table import DiningTable, TableStatus

logger = logging.getLogger(__name__)


def release_expired_reservations(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Release every RESERVED table whose ``reserved_until`` has passed.

    Returns a summary dict; never raises. On error the transaction is
    rolled back and ``success`` is False.
    """
    now = now or utcnow()
    results: Dict[str, Any] = {
        "success": True,
        "processed": 0,
        "released": 0,
        "occupied": 0,
        "tables": [],
        "occupied_tables": [],
    }
    try:
        expired = (
            db.query(DiningTable)
            .filter(
                DiningTable.status == TableStatus.RESERVED,
                DiningTable.reserved_until.isnot(None),
                DiningTable.reserved_until < now,
            )
            .order_by(DiningTable.id)
            .with_for_update()
            .all()
        )
        results["processed"] = len(expired)
        if not expired:
            return results

        for table in expired:
            has_active_order = (
                db.query(Order.id)
                .filter(Order.table_id == table.id, Order.status.in_(ACTIVE_ORDER_STATUSES))
                .first()
                is not None
            )
            if has_active_order:
                table.status = TableStatus.OCCUPIED
                table.clear_reservation_window()
                results["occupied"] += 1
                results["occupied_tables"].append(table.number)
            else:
                table.clear()
                results["released"] += 1
                results["tables"].append(table.number)

        db.commit()
        logger.info(
            f"Reservation release: {results['released']} released, "
            f"{results['occupied']} kept occupied"
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Reservation release failed: {e}", exc_info=True)
        return {"success": False, "error": str(e)}
    return results


def get_expiring_reservations(
    db: Session, minutes_ahead: int = 15, now: Optional[datetime] = None
) -> List[DiningTable]:
    """RESERVED tables whose window ends within the next ``minutes_ahead`` minutes."""
    now = now or utcnow()
    horizon = now + timedelta(minutes=minutes_ahead)
    return (
        db.query(DiningTable)
        .filter(
            DiningTable.status == TableStatus.RESERVED,
            DiningTable.reserved_until > now,
            DiningTable.reserved_until <= horizon,
        )
        .order_by(DiningTable.reserved_until)
        .all()
    )


def run_release_expired_reservations(
    session_factory: Optional[Callable[[], Session]] = None,
) -> Dict[str, Any]:
    """Standalone scan with its own session (called from the background scheduler)."""
    if session_factory is None:
        from cafepos.db.session import SessionLocal
        session_factory = SessionLocal
    db = session_factory()
    try:
        return release_expired_reservations(db)
    finally:
        db.close()


class ReservationScheduler:
    """Asyncio timer around :func:`run_release_expired_reservations`.

    ``start()`` schedules the loop on the running event loop: one scan
    immediately, then one every ``interval_seconds``. ``stop()`` cancels
    and awaits it. State is in-memory only.
    """

    def __init__(
        self,
        interval_seconds: Optional[int] = None,
        session_factory: Optional[Callable[[], Session]] = None,
    ):
        self.interval_seconds = interval_seconds or settings.reservation_check_interval_seconds
        self.session_factory = session_factory
        self._task: Optional[asyncio.Task] = None
        self.last_run: Optional[datetime] = None
        self.run_count = 0
        self.last_result: Optional[Dict[str, Any]] = None
        self.last_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            logger.debug("Reservation scheduler already running")
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info(f"Reservation scheduler started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reservation scheduler stopped")

    async def run_once(self) -> Dict[str, Any]:
        result = await asyncio.to_thread(run_release_expired_reservations, self.session_factory)
        self.last_run = datetime.now(timezone.utc)
        self.run_count += 1
        self.last_result = result
        self.last_error = None if result.get("success") else result.get("error")
        return result

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.last_error = str(e)
                logger.error(f"Reservation scheduler tick failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval_seconds)

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "last_result": self.last_result,
            "last_error": self.last_error,
        }


reservation_scheduler = ReservationScheduler()
