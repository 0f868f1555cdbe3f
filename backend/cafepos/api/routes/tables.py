"""Table floor plan and reservation routes."""

import logging

from fastapi import APIRouter, Query, Request, status

from cafepos.core.rate_limit import limiter
from cafepos.core.rbac import CurrentUser, RequireManager
from cafepos.core.responses import list_response
from cafepos.core.validators import PositiveIntId
from cafepos.db.session import DbSession
from cafepos.schemas.table import (
    ActiveOrderBrief,
    ReservationCreate,
    ReservationExtend,
    TableResponse,
    TableStatusUpdate,
    TableWithStatusResponse,
)
from cafepos.services.reservation_scheduler import (
    get_expiring_reservations,
    release_expired_reservations,
)
from cafepos.services.table_service import TableService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
def list_tables(db: DbSession, current_user: CurrentUser):
    """All tables with their latest active order and reservation status."""
    rows = TableService(db).list_tables()
    items = [
        TableWithStatusResponse(
            **TableResponse.model_validate(row["table"]).model_dump(),
            reservation_status=row["reservation_status"],
            active_order=(
                ActiveOrderBrief.model_validate(row["active_order"]) if row["active_order"] else None
            ),
        )
        for row in rows
    ]
    return list_response(items)


@router.post("/reserve", response_model=TableResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_reservation(
    request: Request, body: ReservationCreate, db: DbSession, current_user: CurrentUser
):
    return TableService(db).create_reservation(
        body.table_id,
        customer_name=body.customer_name,
        customer_phone=body.customer_phone,
        reserved_from=body.reserved_from,
        reserved_until=body.reserved_until,
    )


@router.delete("/{table_id}/reservation", response_model=TableResponse)
def cancel_reservation(table_id: PositiveIntId, db: DbSession, current_user: CurrentUser):
    return TableService(db).cancel_reservation(table_id)


@router.put("/{table_id}/extend", response_model=TableResponse)
def extend_reservation(
    table_id: PositiveIntId, body: ReservationExtend, db: DbSession, current_user: CurrentUser
):
    return TableService(db).extend_reservation(table_id, body.reserved_until)


@router.post("/release-expired")
@limiter.limit("10/minute")
def release_expired(request: Request, db: DbSession, current_user: RequireManager):
    """Run the reservation release scan now."""
    result = release_expired_reservations(db)
    logger.info(f"Manual reservation release by {current_user.email}: {result}")
    return result


@router.get("/expiring")
def expiring_reservations(
    db: DbSession,
    current_user: CurrentUser,
    minutes: int = Query(15, ge=1, le=24 * 60),
):
    tables = get_expiring_reservations(db, minutes_ahead=minutes)
    return list_response([TableResponse.model_validate(t) for t in tables])


@router.put("/{table_id}/status", response_model=TableResponse)
def update_table_status(
    table_id: PositiveIntId, body: TableStatusUpdate, db: DbSession, current_user: RequireManager
):
    """Manual floor override. RESERVED can only be set through a reservation."""
    return TableService(db).update_table_status(table_id, body.status)
