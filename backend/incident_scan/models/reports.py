from __future__ import annotations

from pydantic import BaseModel


class MonthlyReport(BaseModel):
    """Monthly activity report for the department."""

    month: str  # YYYY-MM
    total_incidents: int
    total_injured: int
    total_involved: int
    total_affected: int
    avg_response_minutes: float | None = None
    compliance_percentage: int  # share of reports with the mandatory header fields
    incidents_by_nature: dict[str, int] = {}
    incidents_by_company: dict[str, int] = {}


class MonthCount(BaseModel):
    month: str
    count: int


class LocationCount(BaseModel):
    location: str
    count: int


class DashboardSummary(BaseModel):
    total_incidents: int
    this_month: int
    total_people: int
    avg_response_minutes: int | None = None
    recent_incident_ids: list[int] = []
    top_locations: list[LocationCount] = []
    incidents_trend: list[MonthCount] = []
