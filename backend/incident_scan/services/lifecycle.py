from __future__ import annotations

from typing import Dict, Set

from incident_scan.db.tables import IncidentStatus
from incident_scan.errors import InvalidTransition

# Deletion removes the row, so it has no status of its own; it is allowed
# from every stored status.
_ALLOWED: Dict[IncidentStatus, Set[IncidentStatus]] = {
    IncidentStatus.DRAFT: {IncidentStatus.SAVED},
    IncidentStatus.SAVED: {IncidentStatus.EDITED, IncidentStatus.RE_EXTRACTED},
    IncidentStatus.EDITED: {IncidentStatus.EDITED, IncidentStatus.RE_EXTRACTED},
    IncidentStatus.RE_EXTRACTED: {IncidentStatus.EDITED, IncidentStatus.RE_EXTRACTED},
}


def ensure_transition_allowed(from_status: IncidentStatus, to_status: IncidentStatus) -> None:
    allowed = _ALLOWED.get(from_status, set())
    if to_status not in allowed:
        raise InvalidTransition(f"Cannot move a report from {from_status.value} to {to_status.value}.")
