"""Normalization & persistence mapping: extracted JSON to relational rows.

The extracted object is validated against the declared model of its field
specification version, then projected onto the ``incidents`` columns through a
fixed per-version mapping table. Nested objects (insurance, company attendance)
are flattened onto root columns; rows of the three tables become child rows.

Nothing reaches a typed column without a mapping entry. Keys the declared model
does not know are collected verbatim into ``unmapped_data`` and the whole
response is kept in ``raw_data`` together with its ``schema_version``.

The literal ``"illegible"`` survives in text columns only. Boolean, integer
and date columns store NULL and list the field in ``illegible_fields``. The
date rule takes precedence even though ``report_date`` is a string column:
it must hold an ISO date or NULL so that date-range filters and reports never
see a non-date value. The verbatim value stays in ``raw_data``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, TypeAdapter

from incident_scan.errors import InvalidInput
from incident_scan.models.extraction import (
    ILLEGIBLE,
    IncidentExtraction,
    IncidentExtractionV1,
    IncidentExtractionV2,
)

ColumnKind = Literal["text", "date", "flag", "count"]

_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")

_extraction_adapter: TypeAdapter = TypeAdapter(IncidentExtraction)


def normalize_date(text: str | None) -> str | None:
    """Rewrite a ``DD/MM/YYYY`` date as ``YYYY-MM-DD``.

    Anything that is not exactly three slash-delimited numeric parts forming a
    real calendar date (four-digit year) becomes ``None``; a partial date is
    never completed into a plausible-looking one.
    """
    if not isinstance(text, str):
        return None
    match = _DATE_RE.match(text.strip())
    if not match:
        return None
    day, month, year = (int(part) for part in match.groups())
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


# column, path in the extracted model, kind
_SHARED_ROOT_MAP: list[tuple[str, tuple[str, ...], ColumnKind]] = [
    ("act_number", ("act_number",), "text"),
    ("ticket_number", ("ticket_number",), "text"),
    ("report_date", ("date",), "date"),
    ("call_time", ("time",), "text"),
    ("address", ("address",), "text"),
    ("corner", ("corner",), "text"),
    ("area", ("area",), "text"),
    ("box_number", ("box",), "text"),
    ("nature", ("nature",), "text"),
    ("origin", ("origin",), "text"),
    ("cause", ("cause",), "text"),
    ("damage", ("damage",), "text"),
    ("commander", ("commander",), "text"),
    ("company_commander", ("company_commander",), "text"),
    ("safety_officer", ("safety_officer",), "text"),
    ("total_volunteers", ("total_volunteers",), "count"),
    ("observations", ("observations",), "text"),
]

ROOT_FIELD_MAPS: dict[str, list[tuple[str, tuple[str, ...], ColumnKind]]] = {
    "v1": _SHARED_ROOT_MAP,
    "v2": _SHARED_ROOT_MAP + [
        ("arrival_time", ("arrival_time",), "text"),
        ("departure_time", ("departure_time",), "text"),
        ("district", ("district",), "text"),
        ("is_rural", ("is_rural",), "flag"),
        ("injured_count", ("injured_count",), "count"),
        ("involved_count", ("involved_count",), "count"),
        ("affected_count", ("affected_count",), "count"),
        ("insurance_company", ("insurance", "company"), "text"),
        ("insurance_policy", ("insurance", "policy_number"), "text"),
        ("other_observations", ("other_observations",), "text"),
    ] + [
        (f"attendance_company_{n}", ("company_attendance", f"company_{n}"), "count")
        for n in range(1, 7)
    ],
}

# Every root column the mapper owns; columns a version does not map are reset
# to None so a re-extraction never keeps values from an older pass.
ROOT_COLUMNS: list[str] = [column for column, _, _ in ROOT_FIELD_MAPS["v2"]]

VEHICLE_FIELD_MAP: list[tuple[str, str, ColumnKind]] = [
    ("brand", "brand", "text"),
    ("model", "model", "text"),
    ("plate", "plate", "text"),
    ("driver", "driver", "text"),
    ("driver_run", "run", "text"),
]

PERSON_FIELD_MAPS: dict[str, list[tuple[str, str, ColumnKind]]] = {
    "v1": [
        ("name", "name", "text"),
        ("run", "run", "text"),
        ("received_medical_attention", "attended_by_132", "flag"),
        ("status", "status", "text"),
        ("observation", "observation", "text"),
    ],
    "v2": [
        ("name", "name", "text"),
        ("run", "run", "text"),
        ("received_medical_attention", "received_medical_attention", "flag"),
        ("status", "status", "text"),
        ("observation", "observation", "text"),
    ],
}

INSTITUTION_FIELD_MAP: list[tuple[str, str, ColumnKind]] = [
    ("present", "present", "flag"),
    ("rank", "rank", "text"),
    ("precinct", "precinct", "text"),
    ("mobile_unit", "mobile_unit", "text"),
    ("entity_name", "entity_name", "text"),
]


@dataclass
class MappedIncident:
    """Rows produced from one extraction, ready to be written."""

    schema_version: str
    root: dict[str, Any]
    vehicles: list[dict[str, Any]] = field(default_factory=list)
    involved_people: list[dict[str, Any]] = field(default_factory=list)
    institutions: list[dict[str, Any]] = field(default_factory=list)
    raw_data: dict[str, Any] = field(default_factory=dict)
    unmapped_data: dict[str, Any] = field(default_factory=dict)
    illegible_fields: list[str] = field(default_factory=list)

    def root_columns(self) -> dict[str, Any]:
        """Every root column, including the audit side-channels."""
        return {
            **self.root,
            "schema_version": self.schema_version,
            "raw_data": self.raw_data,
            "unmapped_data": self.unmapped_data,
            "illegible_fields": self.illegible_fields,
        }

    def child_rows(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "vehicles": self.vehicles,
            "involved_people": self.involved_people,
            "institutions": self.institutions,
        }


class _Projector:
    """Carries the illegible/unmapped bookkeeping through one mapping pass."""

    def __init__(self) -> None:
        self.unmapped: dict[str, Any] = {}
        self.illegible: list[str] = []

    def value(self, raw: Any, kind: ColumnKind, label: str) -> Any:
        if kind == "date":
            normalized = normalize_date(raw)
            if raw == ILLEGIBLE:
                self.illegible.append(label)
            elif raw is not None and normalized is None:
                logger.debug("Dropping unparseable date {!r} for {}", raw, label)
            return normalized
        if raw == ILLEGIBLE and kind != "text":
            # Typed columns cannot hold the sentinel; remember where it was.
            self.illegible.append(label)
            return None
        return raw

    def collect_extra(self, model: BaseModel | None, prefix: str) -> None:
        if model is None or not model.model_extra:
            return
        for key, raw in model.model_extra.items():
            self.unmapped[f"{prefix}{key}"] = raw

    def row(
        self,
        model: BaseModel,
        field_map: list[tuple[str, str, ColumnKind]],
        label: str,
    ) -> dict[str, Any]:
        self.collect_extra(model, f"{label}.")
        return {
            column: self.value(getattr(model, attr), kind, f"{label}.{attr}")
            for column, attr, kind in field_map
        }


def _resolve(model: BaseModel, path: tuple[str, ...]) -> Any:
    value: Any = model
    for part in path:
        if value is None:
            return None
        value = getattr(value, part)
    return value


def parse_extraction(
    raw: dict[str, Any], schema_version: str
) -> IncidentExtractionV1 | IncidentExtractionV2:
    """Validate a raw extracted object as the declared model of its version."""
    if schema_version not in ROOT_FIELD_MAPS:
        raise InvalidInput(f"Unknown field specification version: {schema_version}.")
    if not isinstance(raw, dict):
        raise InvalidInput("The extraction must be a JSON object.")
    payload = {key: value for key, value in raw.items() if key != "schema_version"}
    return _extraction_adapter.validate_python({**payload, "schema_version": schema_version})


def _institution_rows(extraction: IncidentExtractionV1 | IncidentExtractionV2, p: _Projector) -> list[dict]:
    rows: list[dict[str, Any]] = []

    if isinstance(extraction, IncidentExtractionV1):
        flags = extraction.institutions_present
        if flags is None:
            return rows
        p.collect_extra(flags, "institutions_present.")
        for tag in type(flags).model_fields:
            present = p.value(getattr(flags, tag), "flag", f"institutions_present.{tag}")
            if present is None:
                continue
            rows.append({
                "institution_type": tag,
                "present": present,
                "rank": None,
                "precinct": None,
                "mobile_unit": None,
                "entity_name": None,
            })
        return rows

    for tag, detail in extraction.institutions_present.items():
        label = f"institutions_present.{tag}"
        row = p.row(detail, INSTITUTION_FIELD_MAP, label)
        if all(v is None for v in row.values()) and f"{label}.present" not in p.illegible:
            continue
        rows.append({"institution_type": tag[:32], **row})
    return rows


def map_extraction(raw: dict[str, Any], schema_version: str) -> MappedIncident:
    """Project one extracted object onto root columns and child rows.

    Absent fields become ``None``; ``"illegible"`` is kept verbatim in text
    columns and recorded in ``illegible_fields`` for typed ones.
    """
    extraction = parse_extraction(raw, schema_version)
    p = _Projector()

    mapped_root = {
        column: p.value(_resolve(extraction, path), kind, ".".join(path))
        for column, path, kind in ROOT_FIELD_MAPS[schema_version]
    }
    root = {column: mapped_root.get(column) for column in ROOT_COLUMNS}

    p.collect_extra(extraction, "")
    if isinstance(extraction, IncidentExtractionV2):
        p.collect_extra(extraction.insurance, "insurance.")
        p.collect_extra(extraction.company_attendance, "company_attendance.")

    vehicles = [
        p.row(vehicle, VEHICLE_FIELD_MAP, f"vehicles[{i}]")
        for i, vehicle in enumerate(extraction.vehicles)
    ]
    people = [
        p.row(person, PERSON_FIELD_MAPS[schema_version], f"involved_people[{i}]")
        for i, person in enumerate(extraction.involved_people)
    ]
    institutions = _institution_rows(extraction, p)

    if p.unmapped:
        logger.info("Extraction carried {} unmapped key(s): {}", len(p.unmapped), sorted(p.unmapped))

    return MappedIncident(
        schema_version=schema_version,
        root=root,
        vehicles=vehicles,
        involved_people=people,
        institutions=institutions,
        raw_data=raw,
        unmapped_data=p.unmapped,
        illegible_fields=p.illegible,
    )
