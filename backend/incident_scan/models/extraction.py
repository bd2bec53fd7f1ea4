"""Declared shapes of the JSON the extraction model returns, one per field spec.

Every field is optional: a handwritten form may leave anything blank. The
models coerce loosely-typed values (numbers written as strings, checkbox marks
written as "x" or "si") and keep the literal ``"illegible"`` sentinel intact
so the mapper can tell "nothing written" from "written but unreadable".

Keys the model does not declare are kept in ``model_extra``.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

ILLEGIBLE = "illegible"

_TRUE_MARKS = {"true", "si", "sí", "yes", "x", "✓", "1"}
_FALSE_MARKS = {"false", "no", "0"}


def _is_illegible(value: Any) -> bool:
    return isinstance(value, str) and value.strip().lower() == ILLEGIBLE


def _coerce_text(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return None if value is None else str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        value = value.strip()
        if _is_illegible(value):
            return ILLEGIBLE
        return value or None
    # Objects or lists where text was expected are not projected.
    return None


def _coerce_flag(value: Any) -> Any:
    if isinstance(value, dict):
        value = value.get("present")
    if value is None or isinstance(value, bool):
        return value
    if _is_illegible(value):
        return ILLEGIBLE
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        mark = value.strip().lower()
        if mark in _TRUE_MARKS:
            return True
        if mark in _FALSE_MARKS:
            return False
    # An unrecognised mark is unknown, never a negative.
    return None


def _coerce_count(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return None
    if _is_illegible(value):
        return ILLEGIBLE
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        digits = value.strip()
        if digits.isdigit():
            return int(digits)
    return None


Text = Annotated[Union[str, None], BeforeValidator(_coerce_text)]
Flag = Annotated[Union[bool, Literal["illegible"], None], BeforeValidator(_coerce_flag)]
Count = Annotated[Union[int, Literal["illegible"], None], BeforeValidator(_coerce_count)]


def _object_or_none(value: Any) -> Any:
    return value if isinstance(value, dict) else None


def _institutions_by_type(value: Any) -> Any:
    """Accept the mapping form, a list of tagged rows, or bare presence marks."""
    if isinstance(value, list):
        rows = {}
        for item in value:
            if isinstance(item, dict):
                tag = item.get("institution_type") or item.get("type")
                if isinstance(tag, str) and tag.strip():
                    rows[tag.strip().lower()] = {
                        k: v for k, v in item.items() if k not in ("institution_type", "type")
                    }
        return rows
    if not isinstance(value, dict):
        return {}
    return {
        str(tag): detail if isinstance(detail, dict) else {"present": detail}
        for tag, detail in value.items()
    }


def _drop_non_objects(value: Any) -> Any:
    """Tolerate ``null`` or a bare object where a list of rows was expected."""
    if value is None:
        return []
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    return []


class _Loose(BaseModel):
    model_config = ConfigDict(extra="allow")


class ExtractedVehicle(_Loose):
    """A vehicle row as written on the form."""

    brand: Text = None
    model: Text = None
    plate: Text = None
    driver: Text = None
    run: Text = None  # driver national ID


class ExtractedPersonV1(_Loose):
    """An involved person (v1 form, '132' attendance column)."""

    name: Text = None
    run: Text = None
    attended_by_132: Flag = None
    observation: Text = None
    status: Text = None


class ExtractedPersonV2(_Loose):
    """An involved person (v2 form)."""

    name: Text = None
    run: Text = None
    received_medical_attention: Flag = None
    observation: Text = None
    status: Text = None


class InstitutionsV1(_Loose):
    """Flat presence checkboxes of the v1 form."""

    carabineros: Flag = None
    samu: Flag = None
    municipal_security: Flag = None
    chilquinta: Flag = None
    esval: Flag = None
    gas_station: Flag = None


class InstitutionDetail(_Loose):
    present: Flag = None
    rank: Text = None
    precinct: Text = None
    mobile_unit: Text = None
    entity_name: Text = None


class InsuranceInfo(_Loose):
    company: Text = None
    policy_number: Text = None


class CompanyAttendance(_Loose):
    """Volunteers present per company (fixed grid on the v2 form)."""

    company_1: Count = None
    company_2: Count = None
    company_3: Count = None
    company_4: Count = None
    company_5: Count = None
    company_6: Count = None


VehicleList = Annotated[list[ExtractedVehicle], BeforeValidator(_drop_non_objects)]


class IncidentExtractionV1(_Loose):
    """Field specification v1: the original single-page form."""

    schema_version: Literal["v1"] = "v1"

    act_number: Text = None
    ticket_number: Text = None
    date: Text = None
    time: Text = None
    address: Text = None
    corner: Text = None
    area: Text = None
    box: Text = None
    nature: Text = None
    origin: Text = None
    cause: Text = None
    damage: Text = None
    commander: Text = None
    company_commander: Text = None
    total_volunteers: Count = None
    safety_officer: Text = None
    observations: Text = None
    vehicles: VehicleList = Field(default_factory=list)
    involved_people: Annotated[
        list[ExtractedPersonV1], BeforeValidator(_drop_non_objects)
    ] = Field(default_factory=list)
    institutions_present: Annotated[InstitutionsV1 | None, BeforeValidator(_object_or_none)] = None


class IncidentExtractionV2(_Loose):
    """Field specification v2: adds timings, counters, insurance and attendance grid."""

    schema_version: Literal["v2"] = "v2"

    act_number: Text = None
    ticket_number: Text = None
    date: Text = None
    time: Text = None
    arrival_time: Text = None
    departure_time: Text = None
    address: Text = None
    corner: Text = None
    district: Text = None
    area: Text = None
    box: Text = None
    is_rural: Flag = None
    nature: Text = None
    origin: Text = None
    cause: Text = None
    damage: Text = None
    commander: Text = None
    company_commander: Text = None
    total_volunteers: Count = None
    safety_officer: Text = None
    injured_count: Count = None
    involved_count: Count = None
    affected_count: Count = None
    insurance: Annotated[InsuranceInfo | None, BeforeValidator(_object_or_none)] = None
    company_attendance: Annotated[CompanyAttendance | None, BeforeValidator(_object_or_none)] = None
    observations: Text = None
    other_observations: Text = None
    vehicles: VehicleList = Field(default_factory=list)
    involved_people: Annotated[
        list[ExtractedPersonV2], BeforeValidator(_drop_non_objects)
    ] = Field(default_factory=list)
    institutions_present: Annotated[
        dict[str, InstitutionDetail], BeforeValidator(_institutions_by_type)
    ] = Field(default_factory=dict)


IncidentExtraction = Annotated[
    Union[IncidentExtractionV1, IncidentExtractionV2],
    Field(discriminator="schema_version"),
]


# -- Extraction outcomes -----------------------------------------------------


class ExtractionSuccess(BaseModel):
    """The model answered with a JSON object."""

    outcome: Literal["extracted"] = "extracted"
    schema_version: str
    fields: dict[str, Any]
    image_count: int
    is_empty: bool = False  # every value null; a blank form, not a failure
    note: str | None = None


class ExtractionParseFailure(BaseModel):
    """The model answered, but not with a JSON object. Safe to retry."""

    outcome: Literal["parse_failure"] = "parse_failure"
    schema_version: str
    fields: dict[str, Any] = Field(default_factory=dict)
    image_count: int
    is_empty: bool = True
    note: str = "The form could not be read this time. Please try the extraction again."


ExtractionOutcome = Annotated[
    Union[ExtractionSuccess, ExtractionParseFailure],
    Field(discriminator="outcome"),
]
