"""Incident persistence: root record plus full-replace child collections.

Save sequence for one extraction:
1. Write the ``incidents`` row and commit, which yields its id
2. For each child collection (vehicles, involved people, institutions):
   delete every row of the incident and insert the new rows, in one
   transaction per collection

A child collection that fails is rolled back on its own and reported as an
``error`` step; the committed root record is kept. Concurrent edits of the same
incident are last-writer-wins.
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from incident_scan.db.tables import CHILD_TABLES, Incident, IncidentInvolvedPerson, IncidentStatus
from incident_scan.errors import NotFound, PersistenceFailure
from incident_scan.models.persistence import PersistResult, PersistStep
from incident_scan.services.lifecycle import ensure_transition_allowed
from incident_scan.services.mapper import MappedIncident


async def replace_children(
    session: AsyncSession,
    incident_id: int,
    collection: str,
    rows: list[dict[str, Any]],
) -> int:
    """Delete every row of ``collection`` for the incident, then insert ``rows``.

    Runs as one transaction: on failure nothing of the collection changes.
    """
    table = CHILD_TABLES[collection]
    try:
        await session.execute(delete(table).where(table.incident_id == incident_id))
        session.add_all([table(incident_id=incident_id, **row) for row in rows])
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return len(rows)


async def _replace_all_children(
    session: AsyncSession,
    incident_id: int,
    mapped: MappedIncident,
    steps: list[PersistStep],
) -> None:
    for collection, rows in mapped.child_rows().items():
        step = PersistStep(name=f"replace_{collection}", status="running")
        steps.append(step)
        try:
            step.rows = await replace_children(session, incident_id, collection, rows)
            step.status = "success" if rows else "skipped"
            step.detail = f"{step.rows} row(s) written" if rows else "No rows extracted"
        except (SQLAlchemyError, TypeError, ValueError) as e:
            step.status = "error"
            step.detail = f"Could not save {collection.replace('_', ' ')}"
            logger.error("Replacing {} for incident {} failed: {}", collection, incident_id, e)


def _finish(incident_id: int, status: IncidentStatus, steps: list[PersistStep]) -> PersistResult:
    success = all(s.status in ("success", "skipped") for s in steps)
    if not success:
        failed = [s.name for s in steps if s.status == "error"]
        logger.warning("Incident {} saved incomplete — failed steps: {}", incident_id, failed)
    return PersistResult(success=success, incident_id=incident_id, status=status.value, steps=steps)


async def create_incident(session: AsyncSession, mapped: MappedIncident) -> PersistResult:
    """Store a new incident from one extraction (``draft`` → ``saved``)."""
    ensure_transition_allowed(IncidentStatus.DRAFT, IncidentStatus.SAVED)
    steps: list[PersistStep] = []

    step = PersistStep(name="insert_incident", status="running")
    steps.append(step)
    incident = Incident(status=IncidentStatus.SAVED, **mapped.root_columns())
    try:
        session.add(incident)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Inserting incident failed: {}", e)
        raise PersistenceFailure() from e

    incident_id = incident.id
    step.status = "success"
    step.rows = 1
    step.detail = f"Created incident {incident_id}"
    logger.info("Created incident {} (schema {})", incident_id, mapped.schema_version)

    await _replace_all_children(session, incident_id, mapped, steps)
    return _finish(incident_id, IncidentStatus.SAVED, steps)


async def _load_root(session: AsyncSession, incident_id: int) -> Incident:
    res = await session.execute(select(Incident).where(Incident.id == incident_id))
    incident = res.scalar_one_or_none()
    if incident is None:
        raise NotFound()
    return incident


async def reextract_incident(
    session: AsyncSession, incident_id: int, mapped: MappedIncident
) -> PersistResult:
    """Overwrite an incident with a new extraction and fully replace its children."""
    incident = await _load_root(session, incident_id)
    ensure_transition_allowed(incident.status, IncidentStatus.RE_EXTRACTED)
    steps: list[PersistStep] = []

    step = PersistStep(name="overwrite_incident", status="running")
    steps.append(step)
    try:
        for column, value in mapped.root_columns().items():
            setattr(incident, column, value)
        incident.status = IncidentStatus.RE_EXTRACTED
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Overwriting incident {} failed: {}", incident_id, e)
        raise PersistenceFailure() from e

    step.status = "success"
    step.rows = 1
    step.detail = f"Overwrote incident {incident_id}"
    logger.info("Re-extracted incident {} (schema {})", incident_id, mapped.schema_version)

    await _replace_all_children(session, incident_id, mapped, steps)
    return _finish(incident_id, IncidentStatus.RE_EXTRACTED, steps)


async def update_incident(session: AsyncSession, incident_id: int, changes: dict[str, Any]) -> Incident:
    """Overwrite root fields edited by a user. Child collections are untouched."""
    incident = await _load_root(session, incident_id)
    ensure_transition_allowed(incident.status, IncidentStatus.EDITED)

    try:
        for column, value in changes.items():
            setattr(incident, column, value)
        incident.status = IncidentStatus.EDITED
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Updating incident {} failed: {}", incident_id, e)
        raise PersistenceFailure() from e

    logger.info("Edited incident {} ({} field(s))", incident_id, len(changes))
    return await get_incident(session, incident_id)


async def delete_incident(session: AsyncSession, incident_id: int) -> None:
    """Delete an incident and every child row referencing it, atomically.

    Children go with the root through ``ON DELETE CASCADE`` in the same
    transaction (collections already loaded in the session are deleted by the
    ORM cascade instead).
    """
    incident = await _load_root(session, incident_id)
    try:
        await session.delete(incident)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Deleting incident {} failed: {}", incident_id, e)
        raise PersistenceFailure() from e
    logger.info("Deleted incident {}", incident_id)


async def get_incident(session: AsyncSession, incident_id: int) -> Incident:
    """Load an incident with its child collections."""
    res = await session.execute(
        select(Incident)
        .where(Incident.id == incident_id)
        .options(
            selectinload(Incident.vehicles),
            selectinload(Incident.involved_people),
            selectinload(Incident.institutions),
        )
        .execution_options(populate_existing=True)
    )
    incident = res.scalar_one_or_none()
    if incident is None:
        raise NotFound()
    return incident


async def list_incidents(
    session: AsyncSession,
    *,
    date_from: str | None = None,
    date_to: str | None = None,
    q: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Incident]:
    """Newest first, optionally filtered by report date range and free text."""
    stmt = select(Incident)
    if date_from:
        stmt = stmt.where(Incident.report_date >= date_from)
    if date_to:
        stmt = stmt.where(Incident.report_date <= date_to)
    if q and q.strip():
        pattern = f"%{q.strip()}%"
        stmt = stmt.where(
            or_(
                Incident.act_number.ilike(pattern),
                Incident.address.ilike(pattern),
                Incident.nature.ilike(pattern),
                Incident.commander.ilike(pattern),
            )
        )
    stmt = stmt.order_by(Incident.created_at.desc(), Incident.id.desc()).limit(limit).offset(offset)
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def count_involved_people(session: AsyncSession) -> int:
    res = await session.execute(select(func.count(IncidentInvolvedPerson.id)))
    return res.scalar_one()
