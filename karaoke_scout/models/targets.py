"""Targets, jobs and session state -- the input side of an extraction run.

Lifecycle:
    ExtractionTarget  created at the start of a run (explicit URL list or
                      the browser driver's discovery of photos on a feed)
    ExtractionJob     created by the pipeline, one per target, or one per
                      text chunk for oversized pages; discarded after the
                      dispatcher collects its result
    SessionState      written once per successful login, then shared
                      read-only by every scraping task using that session
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class TargetKind(str, Enum):  # noqa: UP042 - StrEnum requires Python 3.11+
    """What a target points at."""

    PAGE = "page"              # a public web page (text snapshot)
    PHOTO = "photo"            # a single image (URL or bytes)
    GROUP_FEED = "group_feed"  # an access-gated group's media feed


class PromptKind(str, Enum):  # noqa: UP042
    """The fixed prompt/schema contracts the extraction engine knows."""

    SHOW_DETAIL = "show_detail"
    GEO_COMPLETION = "geo_completion"
    POPUP_CLASSIFICATION = "popup_classification"
    GROUP_NAME = "group_name"
    VENUE_LOOKUP = "venue_lookup"


class ExtractionTarget(BaseModel):
    """One thing to scrape or extract from.

    ``source_url`` is always set (for raw image bytes it is a synthetic
    ``upload://`` reference) so provenance survives into the output records.
    """

    model_config = ConfigDict(frozen=True)

    source_url: str
    kind: TargetKind
    session_ref: str | None = None
    image_bytes: bytes | None = Field(default=None, repr=False)
    text: str | None = Field(default=None, repr=False)
    page_url: str | None = None

    @property
    def has_payload(self) -> bool:
        """True when the target already carries its content (no fetch needed)."""
        return self.image_bytes is not None or self.text is not None


class ExtractionJob(BaseModel):
    """A unit of work for the dispatcher.

    ``index`` is the job's position in the run; the dispatcher returns
    results sorted by it.  ``content`` overrides ``target.text`` when the
    target was split into chunks.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    target: ExtractionTarget
    prompt_kind: PromptKind = PromptKind.SHOW_DETAIL
    index: int = Field(ge=0)
    chunk_index: int = 0
    content: str | None = Field(default=None, repr=False)

    @property
    def text_payload(self) -> str | None:
        return self.content if self.content is not None else self.target.text


class Credentials(BaseModel):
    """Login credentials supplied through the interactive channel."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: SecretStr


class SessionState(BaseModel):
    """Authenticated browser session, immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    session_ref: str
    cookies: list[dict] = Field(default_factory=list)
    credentials: Credentials | None = None
    login_verified_at: datetime | None = None

    @property
    def is_verified(self) -> bool:
        return self.login_verified_at is not None

    @classmethod
    def verified(
        cls,
        session_ref: str,
        cookies: list[dict],
        credentials: Credentials | None = None,
    ) -> SessionState:
        """Build a state stamped with the current UTC time."""
        return cls(
            session_ref=session_ref,
            cookies=list(cookies),
            credentials=credentials,
            login_verified_at=datetime.now(tz=timezone.utc),  # noqa: UP017
        )
