from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from incident_scan.db.tables import IncidentStatus

_TAGS = re.compile(r"[<>]")
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+=", re.IGNORECASE)


def sanitize_text(value: str | None) -> str | None:
    """Strip markup that could be rendered by a browser from an edited value."""
    if value is None:
        return None
    value = _TAGS.sub("", value)
    value = _JS_PROTOCOL.sub("", value)
    value = _EVENT_HANDLER.sub("", value)
    return value.strip() or None


class VehicleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    brand: str | None = None
    model: str | None = None
    plate: str | None = None
    driver: str | None = None
    driver_run: str | None = None


class InvolvedPersonOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str | None = None
    run: str | None = None
    received_medical_attention: bool | None = None
    status: str | None = None
    observation: str | None = None


class InstitutionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    institution_type: str
    present: bool | None = None
    rank: str | None = None
    precinct: str | None = None
    mobile_unit: str | None = None
    entity_name: str | None = None


class IncidentSummary(BaseModel):
    """One row of the incident list."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    status: IncidentStatus
    schema_version: str
    act_number: str | None = None
    report_date: str | None = None
    call_time: str | None = None
    address: str | None = None
    nature: str | None = None
    commander: str | None = None
    company_commander: str | None = None
    created_at: datetime
    updated_at: datetime


class IncidentDetail(IncidentSummary):
    """An incident with every column and its child collections."""

    ticket_number: str | None = None
    arrival_time: str | None = None
    departure_time: str | None = None
    corner: str | None = None
    district: str | None = None
    area: str | None = None
    box_number: str | None = None
    is_rural: bool | None = None
    safety_officer: str | None = None
    total_volunteers: int | None = None
    origin: str | None = None
    cause: str | None = None
    damage: str | None = None
    injured_count: int | None = None
    involved_count: int | None = None
    affected_count: int | None = None
    insurance_company: str | None = None
    insurance_policy: str | None = None
    attendance_company_1: int | None = None
    attendance_company_2: int | None = None
    attendance_company_3: int | None = None
    attendance_company_4: int | None = None
    attendance_company_5: int | None = None
    attendance_company_6: int | None = None
    observations: str | None = None
    other_observations: str | None = None
    raw_data: dict[str, Any] = {}
    unmapped_data: dict[str, Any] = {}
    illegible_fields: list[str] = []

    vehicles: list[VehicleOut] = []
    involved_people: list[InvolvedPersonOut] = []
    institutions: list[InstitutionOut] = []


class IncidentSaveRequest(BaseModel):
    """An extraction (possibly reviewed by the user) to be stored."""

    schema_version: str = "v2"
    extraction: dict[str, Any]


class IncidentUpdate(BaseModel):
    """Root fields a user may edit in place. Child collections are not editable here."""

    model_config = ConfigDict(extra="forbid")

    act_number: str | None = None
    ticket_number: str | None = None
    report_date: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    call_time: str | None = None
    arrival_time: str | None = None
    departure_time: str | None = None
    address: str | None = None
    corner: str | None = None
    district: str | None = None
    area: str | None = None
    box_number: str | None = None
    is_rural: bool | None = None
    commander: str | None = None
    company_commander: str | None = None
    safety_officer: str | None = None
    total_volunteers: int | None = Field(default=None, ge=0)
    nature: str | None = None
    origin: str | None = None
    cause: str | None = None
    damage: str | None = None
    injured_count: int | None = Field(default=None, ge=0)
    involved_count: int | None = Field(default=None, ge=0)
    affected_count: int | None = Field(default=None, ge=0)
    insurance_company: str | None = None
    insurance_policy: str | None = None
    attendance_company_1: int | None = Field(default=None, ge=0)
    attendance_company_2: int | None = Field(default=None, ge=0)
    attendance_company_3: int | None = Field(default=None, ge=0)
    attendance_company_4: int | None = Field(default=None, ge=0)
    attendance_company_5: int | None = Field(default=None, ge=0)
    attendance_company_6: int | None = Field(default=None, ge=0)
    observations: str | None = None
    other_observations: str | None = None

    @field_validator(
        "act_number", "ticket_number", "call_time", "arrival_time", "departure_time",
        "address", "corner", "district", "area", "box_number", "commander",
        "company_commander", "safety_officer", "nature", "origin", "cause", "damage",
        "insurance_company", "insurance_policy", "observations", "other_observations",
    )
    @classmethod
    def _sanitize(cls, value: str | None) -> str | None:
        return sanitize_text(value)


class InlineExtractionRequest(BaseModel):
    """Images captured in the browser, as base64 data URIs."""

    images: list[str]
    spec_version: str | None = None
