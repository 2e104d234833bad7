"""Show-time parsing and plausibility checks.

Karaoke runs in the evening.  A start hour of 6-11 written without AM/PM
("9:00") is read as PM and the corrected value is written back as
``HH:MM``.  Durations over 8 hours or under 1 hour are flagged for review,
and a range crossing midnight is noted.  Formatting-only differences
("8 PM" vs "20:00") are never rewritten.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import structlog

from karaoke_scout.models.records import FieldConflict, RecordStatus, Suggestion
from karaoke_scout.services.reconciliation.status import WorkingShow

logger = structlog.get_logger(logger_name=__name__)

_TIME_RE = re.compile(
    r"^\s*(?P<hour>\d{1,2})(?:[:.](?P<minute>\d{2}))?\s*(?P<meridiem>[ap])?\.?\s*(?:m\.?)?\s*$",
    re.IGNORECASE,
)
_NAMED_TIMES = {"noon": (12, 0), "midnight": (0, 0)}

_MAX_DURATION_MIN = 8 * 60
_MIN_DURATION_MIN = 60


@dataclass(frozen=True)
class ParsedTime:
    hour: int  # 0-23
    minute: int
    had_meridiem: bool

    @property
    def minutes(self) -> int:
        return self.hour * 60 + self.minute

    def as_hhmm(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


@dataclass
class TimeCheck:
    """Outcome of :func:`validate_times` for one show."""

    fixes: dict[str, str] = field(default_factory=dict)
    issues: list[str] = field(default_factory=list)
    crosses_midnight: bool = False


def parse_time(value: str | None) -> ParsedTime | None:
    """Parse "8 PM", "8:00 pm", "20:00" or "noon"; ``None`` when unparseable."""
    if not value:
        return None
    text = value.strip().lower()
    if text in _NAMED_TIMES:
        hour, minute = _NAMED_TIMES[text]
        return ParsedTime(hour, minute, True)
    match = _TIME_RE.match(text)
    if not match:
        return None
    hour = int(match.group("hour"))
    minute = int(match.group("minute") or 0)
    meridiem = match.group("meridiem")
    if minute > 59:
        return None
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        hour = hour % 12 + (12 if meridiem == "p" else 0)
        return ParsedTime(hour, minute, True)
    if hour > 23:
        return None
    return ParsedTime(hour, minute, False)


def normalize_time(value: str | None) -> str | None:
    """``HH:MM`` for a parseable time, else the stripped original (or ``None``)."""
    parsed = parse_time(value)
    if parsed is not None:
        return parsed.as_hhmm()
    if value is None:
        return None
    return value.strip() or None


def evening_time(value: str | None) -> str | None:
    """Like :func:`normalize_time`, but a bare 6-11 hour is read as PM.

    This is the value :func:`validate_times` would write back, so shows
    written "9 PM" and "9:00" compare equal before validation runs.
    """
    parsed = parse_time(value)
    if parsed is None:
        return normalize_time(value)
    if not parsed.had_meridiem and 6 <= parsed.hour <= 11:
        parsed = ParsedTime(parsed.hour + 12, parsed.minute, True)
    return parsed.as_hhmm()


def validate_times(start: str | None, end: str | None) -> TimeCheck:
    """Check a start/end pair; see the module docstring for the rules."""
    check = TimeCheck()
    start_t = parse_time(start)
    end_t = parse_time(end)

    if start_t is not None and not start_t.had_meridiem and 6 <= start_t.hour <= 11:
        start_t = ParsedTime(start_t.hour + 12, start_t.minute, True)
        check.fixes["start_time"] = start_t.as_hhmm()
        check.issues.append(f"start time {start!r} has no AM/PM; read as PM")
    elif start_t is not None and start_t.had_meridiem and 6 <= start_t.hour <= 11:
        check.issues.append(f"start time {start!r} is in the morning")

    if (
        end_t is not None
        and not end_t.had_meridiem
        and 6 <= end_t.hour <= 11
        and start_t is not None
        and start_t.hour >= 12
    ):
        end_t = ParsedTime(end_t.hour + 12, end_t.minute, True)
        check.fixes["end_time"] = end_t.as_hhmm()
        check.issues.append(f"end time {end!r} has no AM/PM; read as PM")

    if start_t is not None and end_t is not None:
        duration = end_t.minutes - start_t.minutes
        if duration < 0:
            duration += 24 * 60
            check.crosses_midnight = True
        if duration > _MAX_DURATION_MIN:
            check.issues.append(f"show lasts {duration / 60:.1f} hours")
        elif duration < _MIN_DURATION_MIN:
            check.issues.append(f"show lasts only {duration} minutes")
    return check


def apply_time_validation(show: WorkingShow) -> TimeCheck:
    """Run :func:`validate_times` on *show*, applying fixes and flagging issues.

    Confidence is left untouched: a corrected meridiem says nothing about
    how sure the model was of the rest of the record.
    """
    start, end = show.get("start_time"), show.get("end_time")
    check = validate_times(start, end)

    if check.fixes:
        show.suggestions.append(
            Suggestion(
                source="time_validation",
                fields=dict(check.fixes),
                applied=True,
                reason="; ".join(i for i in check.issues if "AM/PM" in i),
            )
        )
        show.update(**check.fixes)
        show.flag(RecordStatus.TIME_FIXED, "show time read as PM")

    for issue in check.issues:
        if "AM/PM" in issue:
            continue
        show.conflicts.append(
            FieldConflict(
                field="start_time" if "start" in issue else "end_time",
                kept=show.get("start_time") if "start" in issue else show.get("end_time"),
                source="time_validation",
                detail=issue,
            )
        )
        show.flag(RecordStatus.CONFLICT, issue)

    if check.fixes or check.issues or check.crosses_midnight:
        logger.debug(
            "time_validation",
            venue=show.get("venue"),
            fixes=check.fixes,
            issues=check.issues,
            crosses_midnight=check.crosses_midnight,
        )
    return check
