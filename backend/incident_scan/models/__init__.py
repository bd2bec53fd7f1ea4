from .extraction import (
    ILLEGIBLE,
    ExtractionParseFailure,
    ExtractionSuccess,
    IncidentExtractionV1,
    IncidentExtractionV2,
)
from .incident import IncidentDetail, IncidentSaveRequest, IncidentSummary, IncidentUpdate
from .persistence import PersistResult, PersistStep
from .reports import DashboardSummary, MonthlyReport

__all__ = [
    "ILLEGIBLE",
    "ExtractionParseFailure",
    "ExtractionSuccess",
    "IncidentExtractionV1",
    "IncidentExtractionV2",
    "IncidentDetail",
    "IncidentSaveRequest",
    "IncidentSummary",
    "IncidentUpdate",
    "PersistResult",
    "PersistStep",
    "DashboardSummary",
    "MonthlyReport",
]
