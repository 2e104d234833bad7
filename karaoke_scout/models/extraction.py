"""Raw extraction models: what one model call produced for one job.

Everything here is the *typed boundary* between untyped model JSON and the
rest of the system.  The payload decoder
(``karaoke_scout/services/payload_decoder.py``) builds these objects; no
downstream code ever reads a model's raw dict.

All fields on :class:`PartialShowFields` are optional -- a single photo of
a chalkboard may carry a weekday and a DJ name and nothing else.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# ErrorKind -- the failure taxonomy shared by every stage.
# ---------------------------------------------------------------------------
class ErrorKind(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """Why a job (or a target) did not produce a usable result."""

    AUTHENTICATION_REQUIRED = "authentication_required"  # login wall, no session
    TRANSIENT_NETWORK = "transient_network"              # retryable by the driver
    QUOTA_EXCEEDED = "quota_exceeded"                    # backoff exhausted
    MALFORMED_MODEL_OUTPUT = "malformed_model_output"    # no parseable JSON
    TIMEOUT = "timeout"                                  # per-job deadline hit
    VALIDATION_FAILURE = "validation_failure"            # wrong top-level shape
    PROVIDER_ERROR = "provider_error"                    # any other provider error
    UNEXPECTED = "unexpected"                            # crash inside a worker


class PartialShowFields(BaseModel):
    """One show as observed in one source; every field may be missing."""

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
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class DJObservation(BaseModel):
    """A karaoke host / DJ mentioned in a source."""

    model_config = ConfigDict(frozen=True)

    name: str
    aliases: list[str] = Field(default_factory=list)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    context: str | None = None


class VendorObservation(BaseModel):
    """A karaoke company / vendor mentioned in a source."""

    model_config = ConfigDict(frozen=True)

    name: str
    website: str | None = None
    description: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class RawExtractionResult(BaseModel):
    """Exactly one of these exists per :class:`ExtractionJob`.

    Failed jobs still produce a result (``success=False`` with an
    ``error_kind``) so the dispatcher's output always has one entry per
    job index.  A successful result with no shows is normal -- the
    image simply was not a karaoke schedule.
    """

    model_config = ConfigDict(frozen=True)

    job_index: int
    success: bool
    source_url: str
    page_url: str | None = None
    shows: list[PartialShowFields] = Field(default_factory=list)
    djs: list[DJObservation] = Field(default_factory=list)
    vendors: list[VendorObservation] = Field(default_factory=list)
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    model_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    dropped_fields: list[str] = Field(default_factory=list)
    not_relevant_reason: str | None = None

    @property
    def show(self) -> PartialShowFields | None:
        return self.shows[0] if self.shows else None

    @property
    def dj(self) -> DJObservation | None:
        return self.djs[0] if self.djs else None

    @property
    def vendor(self) -> VendorObservation | None:
        return self.vendors[0] if self.vendors else None

    @classmethod
    def failure(
        cls,
        job_index: int,
        source_url: str,
        error_kind: ErrorKind,
        error_message: str,
        page_url: str | None = None,
    ) -> RawExtractionResult:
        """Build a failed result for *job_index*."""
        return cls(
            job_index=job_index,
            success=False,
            source_url=source_url,
            page_url=page_url,
            error_kind=error_kind,
            error_message=error_message,
        )
