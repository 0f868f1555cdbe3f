"""Dashboard and sales reports."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Query

from cafepos.core.rbac import CurrentUser
from cafepos.db.session import DbSession
from cafepos.services.report_service import ReportService

router = APIRouter()


@router.get("/stats")
def dashboard_stats(db: DbSession, current_user: CurrentUser):
    return ReportService(db).dashboard_stats()


@router.get("/sales")
def sales_report(
    db: DbSession,
    current_user: CurrentUser,
    start_date: Optional[date] = Query(None, alias="start"),
    end_date: Optional[date] = Query(None, alias="end"),
):
    """Daily paid sales between two venue dates, inclusive."""
    return ReportService(db).sales_report(start_date, end_date)
