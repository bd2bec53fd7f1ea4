from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from incident_scan.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IncidentStatus(str, enum.Enum):
    DRAFT = "draft"  # extraction only, never stored
    SAVED = "saved"
    EDITED = "edited"
    RE_EXTRACTED = "re_extracted"


class Incident(Base):
    __tablename__ = "incidents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status: Mapped[IncidentStatus] = mapped_column(
        Enum(IncidentStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=IncidentStatus.SAVED,
    )
    schema_version: Mapped[str] = mapped_column(String(16), nullable=False)

    # Identification
    act_number: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    ticket_number: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Timing: report_date is ISO YYYY-MM-DD, times are free text (HH:MM)
    report_date: Mapped[str | None] = mapped_column(String(10), nullable=True, index=True)
    call_time: Mapped[str | None] = mapped_column(String(16), nullable=True)
    arrival_time: Mapped[str | None] = mapped_column(String(16), nullable=True)
    departure_time: Mapped[str | None] = mapped_column(String(16), nullable=True)

    # Location
    address: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    corner: Mapped[str | None] = mapped_column(String(255), nullable=True)
    district: Mapped[str | None] = mapped_column(String(128), nullable=True)
    area: Mapped[str | None] = mapped_column(String(128), nullable=True)
    box_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_rural: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    # Command
    commander: Mapped[str | None] = mapped_column(String(128), nullable=True)
    company_commander: Mapped[str | None] = mapped_column(String(128), nullable=True)
    safety_officer: Mapped[str | None] = mapped_column(String(128), nullable=True)
    total_volunteers: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Classification
    nature: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    origin: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cause: Mapped[str | None] = mapped_column(String(255), nullable=True)
    damage: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Casualty counters
    injured_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    involved_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    affected_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Flattened from the "insurance" object
    insurance_company: Mapped[str | None] = mapped_column(String(128), nullable=True)
    insurance_policy: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Company attendance grid, one counter per company
    attendance_company_1: Mapped[int | None] = mapped_column(Integer, nullable=True)
    attendance_company_2: Mapped[int | None] = mapped_column(Integer, nullable=True)
    attendance_company_3: Mapped[int | None] = mapped_column(Integer, nullable=True)
    attendance_company_4: Mapped[int | None] = mapped_column(Integer, nullable=True)
    attendance_company_5: Mapped[int | None] = mapped_column(Integer, nullable=True)
    attendance_company_6: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Narrative
    observations: Mapped[str | None] = mapped_column(Text, nullable=True)
    other_observations: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Audit side-channels
    raw_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    unmapped_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    illegible_fields: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    vehicles: Mapped[list[IncidentVehicle]] = relationship(
        back_populates="incident", cascade="all, delete-orphan", passive_deletes=True,
        order_by="IncidentVehicle.id",
    )
    involved_people: Mapped[list[IncidentInvolvedPerson]] = relationship(
        back_populates="incident", cascade="all, delete-orphan", passive_deletes=True,
        order_by="IncidentInvolvedPerson.id",
    )
    institutions: Mapped[list[IncidentInstitution]] = relationship(
        back_populates="incident", cascade="all, delete-orphan", passive_deletes=True,
        order_by="IncidentInstitution.id",
    )


class IncidentVehicle(Base):
    __tablename__ = "incident_vehicles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    incident_id: Mapped[int] = mapped_column(
        ForeignKey("incidents.id", ondelete="CASCADE"), nullable=False, index=True
    )

    brand: Mapped[str | None] = mapped_column(String(64), nullable=True)
    model: Mapped[str | None] = mapped_column(String(64), nullable=True)
    plate: Mapped[str | None] = mapped_column(String(16), nullable=True)
    driver: Mapped[str | None] = mapped_column(String(128), nullable=True)
    driver_run: Mapped[str | None] = mapped_column(String(16), nullable=True)

    incident: Mapped[Incident] = relationship(back_populates="vehicles")


class IncidentInvolvedPerson(Base):
    __tablename__ = "incident_involved_people"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    incident_id: Mapped[int] = mapped_column(
        ForeignKey("incidents.id", ondelete="CASCADE"), nullable=False, index=True
    )

    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    run: Mapped[str | None] = mapped_column(String(16), nullable=True)
    received_medical_attention: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    status: Mapped[str | None] = mapped_column(String(128), nullable=True)
    observation: Mapped[str | None] = mapped_column(Text, nullable=True)

    incident: Mapped[Incident] = relationship(back_populates="involved_people")


class IncidentInstitution(Base):
    __tablename__ = "incident_institutions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    incident_id: Mapped[int] = mapped_column(
        ForeignKey("incidents.id", ondelete="CASCADE"), nullable=False, index=True
    )

    institution_type: Mapped[str] = mapped_column(String(32), nullable=False)  # carabineros, samu, ...
    present: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    rank: Mapped[str | None] = mapped_column(String(64), nullable=True)
    precinct: Mapped[str | None] = mapped_column(String(64), nullable=True)
    mobile_unit: Mapped[str | None] = mapped_column(String(32), nullable=True)
    entity_name: Mapped[str | None] = mapped_column(String(128), nullable=True)

    incident: Mapped[Incident] = relationship(back_populates="institutions")


CHILD_TABLES = {
    "vehicles": IncidentVehicle,
    "involved_people": IncidentInvolvedPerson,
    "institutions": IncidentInstitution,
}
