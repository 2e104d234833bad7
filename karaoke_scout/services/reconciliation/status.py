"""Per-record working state and status classification.

Reconciliation steps never edit a frozen :class:`ShowRecord` in place;
they work on a :class:`WorkingShow` that accumulates field updates,
status flags, conflicts and suggestions, and is frozen back into a
record by :meth:`WorkingShow.finalize`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from karaoke_scout.models.records import FieldConflict, RecordStatus, ShowRecord, Suggestion

# error > skipped > time_fixed / geo_fixed > conflict > validated
STATUS_PRIORITY: tuple[RecordStatus, ...] = (
    RecordStatus.ERROR,
    RecordStatus.SKIPPED,
    RecordStatus.TIME_FIXED,
    RecordStatus.GEO_FIXED,
    RecordStatus.CONFLICT,
    RecordStatus.VALIDATED,
)


def classify_status(flags: set[RecordStatus]) -> RecordStatus:
    """Highest-priority status among *flags*; ``VALIDATED`` when there are none."""
    for status in STATUS_PRIORITY:
        if status in flags:
            return status
    return RecordStatus.VALIDATED


@dataclass
class WorkingShow:
    """A show record being reconciled."""

    record: ShowRecord
    flags: set[RecordStatus] = field(default_factory=set)
    reasons: dict[RecordStatus, str] = field(default_factory=dict)
    conflicts: list[FieldConflict] = field(default_factory=list)
    suggestions: list[Suggestion] = field(default_factory=list)

    @classmethod
    def wrap(cls, record: ShowRecord) -> WorkingShow:
        return cls(
            record=record,
            conflicts=list(record.conflicts),
            suggestions=list(record.suggestions),
        )

    @property
    def skipped(self) -> bool:
        """Skipped records are frozen: later steps must not modify them."""
        return RecordStatus.SKIPPED in self.flags

    def get(self, name: str) -> Any:
        return getattr(self.record, name)

    def update(self, **fields: Any) -> None:
        if fields:
            self.record = self.record.model_copy(update=fields)

    def flag(self, status: RecordStatus, reason: str) -> None:
        self.flags.add(status)
        # keep the first reason per status; later ones are usually consequences
        self.reasons.setdefault(status, reason)

    def finalize(self) -> ShowRecord:
        status = classify_status(self.flags)
        return self.record.model_copy(
            update={
                "status": status,
                "status_reason": self.reasons.get(status),
                "conflicts": list(self.conflicts),
                "suggestions": list(self.suggestions),
            }
        )
