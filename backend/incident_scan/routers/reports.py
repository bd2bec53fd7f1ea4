from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from incident_scan.db.session import get_session
from incident_scan.errors import InvalidInput
from incident_scan.models.reports import DashboardSummary, MonthlyReport
from incident_scan.services import incident_store
from incident_scan.services.reports import dashboard_summary, month_bounds, monthly_report

router = APIRouter(prefix="/api/reports", tags=["reports"])


@router.get("/monthly", response_model=MonthlyReport)
async def get_monthly_report(
    month: str | None = Query(default=None, pattern=r"^\d{4}-\d{2}$"),
    session: AsyncSession = Depends(get_session),
):
    """Statistics for one calendar month (defaults to the current month)."""
    month = month or date.today().strftime("%Y-%m")
    try:
        start, end = month_bounds(month)
    except ValueError as e:
        raise InvalidInput(f"Invalid month: {month}.") from e

    incidents = await incident_store.list_incidents(
        session, date_from=start, date_to=end, limit=10_000
    )
    return monthly_report(incidents, month)


@router.get("/dashboard", response_model=DashboardSummary)
async def get_dashboard(session: AsyncSession = Depends(get_session)):
    incidents = await incident_store.list_incidents(session, limit=10_000)
    people = await incident_store.count_involved_people(session)
    return dashboard_summary(incidents, people, date.today())
