"""Incident report endpoints: list, read, save, re-extract, edit, delete."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from incident_scan.db.session import get_session
from incident_scan.models.incident import (
    IncidentDetail,
    IncidentSaveRequest,
    IncidentSummary,
    IncidentUpdate,
)
from incident_scan.models.persistence import PersistResult
from incident_scan.services import incident_store
from incident_scan.services.mapper import map_extraction

router = APIRouter(prefix="/api/incidents", tags=["incidents"])

ISO_DATE = r"^\d{4}-\d{2}-\d{2}$"


@router.get("", response_model=list[IncidentSummary])
async def list_incidents(
    date_from: str | None = Query(default=None, pattern=ISO_DATE),
    date_to: str | None = Query(default=None, pattern=ISO_DATE),
    q: str | None = Query(default=None, max_length=100),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    incidents = await incident_store.list_incidents(
        session, date_from=date_from, date_to=date_to, q=q, limit=limit, offset=offset
    )
    return [IncidentSummary.model_validate(i) for i in incidents]


@router.get("/{incident_id}", response_model=IncidentDetail)
async def get_incident(incident_id: int, session: AsyncSession = Depends(get_session)):
    incident = await incident_store.get_incident(session, incident_id)
    return IncidentDetail.model_validate(incident)


@router.post("", response_model=PersistResult, status_code=201)
async def create_incident(req: IncidentSaveRequest, session: AsyncSession = Depends(get_session)):
    """Store a reviewed extraction as a new incident report.

    The incident row is written first; each child collection is then saved on
    its own. A failed collection shows up as an ``error`` step while the
    incident itself is kept.
    """
    logger.info(
        "Save request received — schema {}, {} top-level field(s)",
        req.schema_version,
        len(req.extraction),
    )
    mapped = map_extraction(req.extraction, req.schema_version)
    return await incident_store.create_incident(session, mapped)


@router.put("/{incident_id}/extraction", response_model=PersistResult)
async def reextract_incident(
    incident_id: int,
    req: IncidentSaveRequest,
    session: AsyncSession = Depends(get_session),
):
    """Replace an incident with a newer extraction of the same form."""
    mapped = map_extraction(req.extraction, req.schema_version)
    return await incident_store.reextract_incident(session, incident_id, mapped)


@router.patch("/{incident_id}", response_model=IncidentDetail)
async def update_incident(
    incident_id: int,
    req: IncidentUpdate,
    session: AsyncSession = Depends(get_session),
):
    incident = await incident_store.update_incident(
        session, incident_id, req.model_dump(exclude_unset=True)
    )
    return IncidentDetail.model_validate(incident)


@router.delete("/{incident_id}", status_code=204)
async def delete_incident(incident_id: int, session: AsyncSession = Depends(get_session)):
    await incident_store.delete_incident(session, incident_id)
    return Response(status_code=204)
