from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class PersistStep(BaseModel):
    """Status of a single write in the save sequence."""

    name: str
    status: Literal["pending", "running", "success", "error", "skipped"] = "pending"
    rows: int = 0
    detail: str | None = None


class PersistResult(BaseModel):
    """Result of saving one extraction: the root write plus each child collection.

    ``success`` is False when any step failed. The incident still exists as
    long as ``incident_id`` is set; only the failed collections are missing.
    """

    success: bool
    incident_id: int | None = None
    status: str | None = None
    steps: list[PersistStep] = []
