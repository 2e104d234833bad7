"""Reconciled output records and the per-run summary.

These are the only objects that leave the pipeline.  Every record carries
enough provenance (``source_urls``, ``job_indices``), conflict detail
(``conflicts``) and unapplied suggestions (``suggestions``) for an external
reviewer to approve or reject it without re-running extraction.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from karaoke_scout.models.browser import ScrapeFailureKind
from karaoke_scout.models.extraction import ErrorKind


class RecordStatus(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Validation outcome of a reconciled show.

    Listed in classification priority order (highest first); ``TIME_FIXED``
    and ``GEO_FIXED`` share a rank.
    """

    ERROR = "error"
    SKIPPED = "skipped"
    TIME_FIXED = "time_fixed"
    GEO_FIXED = "geo_fixed"
    CONFLICT = "conflict"
    VALIDATED = "validated"


class FieldConflict(BaseModel):
    """Two sources (or a source and an oracle) disagreed about one field."""

    model_config = ConfigDict(frozen=True)

    field: str
    kept: Any = None
    other: Any = None
    source: str  # "dedup", "geocoding", "venue_lookup", "time_validation"
    detail: str | None = None


class Suggestion(BaseModel):
    """A proposed correction, applied or held for review."""

    model_config = ConfigDict(frozen=True)

    source: str  # "geo_completion", "venue_lookup", "geocoding", "time_validation"
    fields: dict[str, Any] = Field(default_factory=dict)
    confidence: float | None = None
    applied: bool = False
    reason: str | None = None


class ShowRecord(BaseModel):
    """A deduplicated karaoke show."""

    model_config = ConfigDict(frozen=True)

    venue: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    lat: float | None = None
    lng: float | None = None
    day: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    dj_name: str | None = None
    venue_phone: str | None = None
    venue_website: str | None = None
    description: str | None = None
    confidence: float | None = None
    status: RecordStatus = RecordStatus.VALIDATED
    status_reason: str | None = None
    source_urls: list[str] = Field(default_factory=list)
    job_indices: list[int] = Field(default_factory=list)
    conflicts: list[FieldConflict] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)


class DJRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    aliases: list[str] = Field(default_factory=list)
    confidence: float | None = None
    context: str | None = None
    source_urls: list[str] = Field(default_factory=list)


class VendorRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    website: str | None = None
    description: str | None = None
    confidence: float | None = None
    source_urls: list[str] = Field(default_factory=list)


class TargetFailure(BaseModel):
    """A source URL the browser driver could not turn into targets."""

    model_config = ConfigDict(frozen=True)

    source_url: str
    failure: ScrapeFailureKind
    message: str


class RunSummary(BaseModel):
    """Operator-facing counts for one run.  Partial success is normal."""

    model_config = ConfigDict(frozen=True)

    sources: int = 0
    sources_failed: int = 0
    jobs: int = 0
    succeeded: int = 0
    failed: int = 0
    shows: int = 0
    validated: int = 0
    conflicted: int = 0
    skipped: int = 0
    geo_fixed: int = 0
    time_fixed: int = 0
    errors: int = 0
    error_kinds: dict[ErrorKind, int] = Field(default_factory=dict)


class ExtractionRunResult(BaseModel):
    """Everything a run hands to the persistence / review collaborator."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    shows: list[ShowRecord] = Field(default_factory=list)
    djs: list[DJRecord] = Field(default_factory=list)
    vendors: list[VendorRecord] = Field(default_factory=list)
    target_failures: list[TargetFailure] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    summary: RunSummary = Field(default_factory=RunSummary)
