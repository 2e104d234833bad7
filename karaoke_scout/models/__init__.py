"""karaoke-scout domain models -- re-exports all public model classes.

Submodules by concern:
    - targets.py    - ExtractionTarget / ExtractionJob / SessionState (input side)
    - extraction.py - RawExtractionResult and the ErrorKind taxonomy
    - browser.py    - driver states and tagged scrape outcomes
    - records.py    - reconciled Show/DJ/Vendor records and RunSummary
    - events.py     - typed progress events
"""

from __future__ import annotations

from karaoke_scout.models.browser import (
    DriverState,
    LoginCheck,
    PopupClearReport,
    PopupDecision,
    ScrapeFailureKind,
    ScrapeMetadata,
    ScrapeOutcome,
    ScrollReport,
)
from karaoke_scout.models.events import (
    CredentialsRequestedEvent,
    PercentEvent,
    ProgressEvent,
    ProgressEventAdapter,
    SnapshotEvent,
    StatusEvent,
)
from karaoke_scout.models.extraction import (
    DJObservation,
    ErrorKind,
    PartialShowFields,
    RawExtractionResult,
    VendorObservation,
)
from karaoke_scout.models.records import (
    DJRecord,
    ExtractionRunResult,
    FieldConflict,
    RecordStatus,
    RunSummary,
    ShowRecord,
    Suggestion,
    TargetFailure,
    VendorRecord,
)
from karaoke_scout.models.targets import (
    Credentials,
    ExtractionJob,
    ExtractionTarget,
    PromptKind,
    SessionState,
    TargetKind,
)

__all__ = [
    # targets
    "Credentials",
    "ExtractionJob",
    "ExtractionTarget",
    "PromptKind",
    "SessionState",
    "TargetKind",
    # extraction
    "DJObservation",
    "ErrorKind",
    "PartialShowFields",
    "RawExtractionResult",
    "VendorObservation",
    # browser
    "DriverState",
    "LoginCheck",
    "PopupClearReport",
    "PopupDecision",
    "ScrapeFailureKind",
    "ScrapeMetadata",
    "ScrapeOutcome",
    "ScrollReport",
    # records
    "DJRecord",
    "ExtractionRunResult",
    "FieldConflict",
    "RecordStatus",
    "RunSummary",
    "ShowRecord",
    "Suggestion",
    "TargetFailure",
    "VendorRecord",
    # events
    "CredentialsRequestedEvent",
    "PercentEvent",
    "ProgressEvent",
    "ProgressEventAdapter",
    "SnapshotEvent",
    "StatusEvent",
]
