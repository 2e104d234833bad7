"""Typed progress events emitted on the one-way observability channel.

Every event carries a ``kind`` literal so the union can be decoded from
JSON by consumers (``ProgressEventAdapter.validate_json``).  Events are
fire-and-forget; nothing flows back to the pipeline except through the
separate credential channel.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class _EventBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: str
    timestamp: datetime = Field(default_factory=_utcnow)


class StatusEvent(_EventBase):
    """A human-readable status line."""

    kind: Literal["status"] = "status"
    message: str
    stage: str | None = None


class PercentEvent(_EventBase):
    """Coarse completion percentage for the whole run."""

    kind: Literal["percent"] = "percent"
    percent: float = Field(ge=0.0, le=100.0)
    completed: int = 0
    total: int = 0


class SnapshotEvent(_EventBase):
    """A periodic screenshot of the page the driver is working on."""

    kind: Literal["snapshot"] = "snapshot"
    source_url: str
    state: str
    image_png: bytes = Field(repr=False)


class CredentialsRequestedEvent(_EventBase):
    """Emitted when a login wall is hit and interactive login is possible."""

    kind: Literal["credentials_requested"] = "credentials_requested"
    session_ref: str
    source_url: str
    timeout_s: float


ProgressEvent = Annotated[
    Union[StatusEvent, PercentEvent, SnapshotEvent, CredentialsRequestedEvent],
    Field(discriminator="kind"),
]

ProgressEventAdapter: TypeAdapter[ProgressEvent] = TypeAdapter(ProgressEvent)
