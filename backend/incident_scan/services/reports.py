"""Aggregate statistics over stored incidents (monthly report and dashboard).

Pure functions over rows already loaded from the store; charting is left to
the front end.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from datetime import date

from dateutil.relativedelta import relativedelta

from incident_scan.db.tables import Incident
from incident_scan.models.reports import DashboardSummary, LocationCount, MonthCount, MonthlyReport

_COMPLETENESS_COLUMNS = ("act_number", "report_date", "call_time", "address", "commander")


def _minutes(hhmm: str | None) -> int | None:
    if not hhmm or ":" not in hhmm:
        return None
    hours, _, minutes = hhmm.strip().partition(":")
    if not (hours.isdigit() and minutes[:2].isdigit()):
        return None
    h, m = int(hours), int(minutes[:2])
    if h > 23 or m > 59:
        return None
    return h * 60 + m


def response_minutes(call_time: str | None, arrival_time: str | None) -> int | None:
    """Minutes from the call to arrival on scene; ``None`` if either time is unusable."""
    start, end = _minutes(call_time), _minutes(arrival_time)
    if start is None or end is None:
        return None
    if end < start:
        end += 24 * 60  # call before midnight, arrival after
    return end - start


def month_bounds(month: str) -> tuple[str, str]:
    """``"YYYY-MM"`` → first and last ISO day of that month."""
    first = date.fromisoformat(f"{month}-01")
    last = first + relativedelta(months=1, days=-1)
    return first.isoformat(), last.isoformat()


def _average_response(incidents: Iterable[Incident]) -> float | None:
    times = [
        minutes
        for i in incidents
        if (minutes := response_minutes(i.call_time, i.arrival_time)) is not None
    ]
    return sum(times) / len(times) if times else None


def monthly_report(incidents: list[Incident], month: str) -> MonthlyReport:
    total = len(incidents)
    complete = sum(
        1 for i in incidents if all(getattr(i, column) for column in _COMPLETENESS_COLUMNS)
    )
    return MonthlyReport(
        month=month,
        total_incidents=total,
        total_injured=sum(i.injured_count or 0 for i in incidents),
        total_involved=sum(i.involved_count or 0 for i in incidents),
        total_affected=sum(i.affected_count or 0 for i in incidents),
        avg_response_minutes=_average_response(incidents),
        compliance_percentage=round(complete / total * 100) if total else 0,
        incidents_by_nature=dict(Counter(i.nature for i in incidents if i.nature)),
        incidents_by_company=dict(Counter(i.company_commander for i in incidents if i.company_commander)),
    )


def dashboard_summary(incidents: list[Incident], people_count: int, today: date) -> DashboardSummary:
    """``incidents`` must be ordered newest first."""
    month_start = today.replace(day=1)

    avg = _average_response(incidents)
    locations = Counter(i.address for i in incidents if i.address)

    trend: list[MonthCount] = []
    for back in range(5, -1, -1):
        start = month_start - relativedelta(months=back)
        end = start + relativedelta(months=1, days=-1)
        count = sum(
            1 for i in incidents
            if i.report_date and start.isoformat() <= i.report_date <= end.isoformat()
        )
        trend.append(MonthCount(month=start.strftime("%Y-%m"), count=count))

    return DashboardSummary(
        total_incidents=len(incidents),
        this_month=sum(1 for i in incidents if i.report_date and i.report_date >= month_start.isoformat()),
        total_people=people_count,
        avg_response_minutes=round(avg) if avg is not None else None,
        recent_incident_ids=[i.id for i in incidents[:5]],
        top_locations=[LocationCount(location=loc, count=n) for loc, n in locations.most_common(5)],
        incidents_trend=trend,
    )
