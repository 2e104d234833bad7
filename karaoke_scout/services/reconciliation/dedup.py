"""Intra-batch deduplication of raw extraction results.

Shows are grouped by the normalized ``(venue, day, start time or DJ)``
key.  Within a group the first non-null value of each scalar field wins,
later disagreeing values are recorded as conflicts, provenance lists are
unioned and the confidence is the group maximum.  Observations without a
venue are never merged: there is nothing to anchor them to.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

import structlog

from karaoke_scout.models.extraction import PartialShowFields, RawExtractionResult
from karaoke_scout.models.records import DJRecord, FieldConflict, RecordStatus, ShowRecord, VendorRecord
from karaoke_scout.services.reconciliation.status import WorkingShow
from karaoke_scout.services.reconciliation.time_validation import evening_time
from karaoke_scout.utils.geo import has_usable_coordinates
from karaoke_scout.utils.text_normalizer import normalize_day, normalize_dj_name, normalize_key_part

logger = structlog.get_logger(logger_name=__name__)

SCALAR_SHOW_FIELDS: tuple[str, ...] = (
    "venue",
    "address",
    "city",
    "state",
    "zip",
    "day",
    "start_time",
    "end_time",
    "dj_name",
    "venue_phone",
    "venue_website",
    "description",
)

# Sources disagreeing on any of these put the record up for review.
LOCATION_FIELDS: frozenset[str] = frozenset({"address", "city", "state", "zip", "coordinates"})

ShowKey = tuple[str, str, str]


def show_key(show: PartialShowFields) -> ShowKey | None:
    """Normalized dedup key, or ``None`` when the show has no venue."""
    venue = normalize_key_part(show.venue)
    if not venue:
        return None
    day = normalize_key_part(normalize_day(show.day))
    when = normalize_key_part(evening_time(show.start_time)) or normalize_dj_name(show.dj_name)
    return venue, day, when


def _same(field_name: str, left: Any, right: Any) -> bool:
    if field_name in ("start_time", "end_time"):
        return evening_time(left) == evening_time(right)
    if field_name == "day":
        return normalize_day(left) == normalize_day(right)
    if isinstance(left, str) and isinstance(right, str):
        return normalize_key_part(left) == normalize_key_part(right)
    return left == right


class _ShowGroup:
    """Accumulates the observations that share one key."""

    def __init__(self) -> None:
        self.values: dict[str, Any] = {}
        self.coords: tuple[float, float] | None = None
        self.fallback_coords: tuple[float | None, float | None] | None = None
        self.confidence: float | None = None
        self.source_urls: list[str] = []
        self.job_indices: list[int] = []
        self.conflicts: list[FieldConflict] = []

    def add(self, show: PartialShowFields, source_url: str, job_index: int) -> None:
        for name in SCALAR_SHOW_FIELDS:
            value = getattr(show, name)
            if value is None:
                continue
            if name == "day":
                value = normalize_day(value)
            current = self.values.get(name)
            if current is None:
                self.values[name] = value
            elif not _same(name, current, value):
                self.conflicts.append(
                    FieldConflict(field=name, kept=current, other=value, source="dedup", detail=source_url)
                )

        if has_usable_coordinates(show.lat, show.lng):
            pair = (show.lat, show.lng)
            if self.coords is None:
                self.coords = pair
            elif self.coords != pair:
                self.conflicts.append(
                    FieldConflict(
                        field="coordinates",
                        kept=list(self.coords),
                        other=list(pair),
                        source="dedup",
                        detail=source_url,
                    )
                )
        elif self.fallback_coords is None and (show.lat is not None or show.lng is not None):
            self.fallback_coords = (show.lat, show.lng)

        if show.confidence is not None:
            self.confidence = (
                show.confidence if self.confidence is None else max(self.confidence, show.confidence)
            )
        if source_url not in self.source_urls:
            self.source_urls.append(source_url)
        if job_index not in self.job_indices:
            self.job_indices.append(job_index)

    def to_record(self) -> ShowRecord:
        lat, lng = self.coords or self.fallback_coords or (None, None)
        return ShowRecord(
            **self.values,
            lat=lat,
            lng=lng,
            confidence=self.confidence,
            source_urls=list(self.source_urls),
            job_indices=sorted(self.job_indices),
            conflicts=list(self.conflicts),
        )


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------


def dedup_shows(results: list[RawExtractionResult]) -> list[ShowRecord]:
    """Collapse the shows of *results* into one record per key, in first-seen order."""
    groups: dict[ShowKey, _ShowGroup] = {}
    ordered: list[_ShowGroup] = []
    observations = 0
    for result in sorted(results, key=lambda r: r.job_index):
        if not result.success:
            continue
        for show in result.shows:
            observations += 1
            key = show_key(show)
            group = groups.get(key) if key is not None else None
            if group is None:
                group = _ShowGroup()
                ordered.append(group)
                if key is not None:
                    groups[key] = group
            group.add(show, result.source_url, result.job_index)

    records = [group.to_record() for group in ordered]
    logger.info("shows_deduplicated", observations=observations, records=len(records))
    return records


def flag_location_disagreements(show: WorkingShow) -> None:
    """Flag ``CONFLICT`` when merged sources disagreed on where the show is."""
    fields = sorted(
        {c.field for c in show.conflicts if c.source == "dedup" and c.field in LOCATION_FIELDS}
    )
    if fields:
        show.flag(RecordStatus.CONFLICT, f"sources disagree on {', '.join(fields)}")


def dedup_djs(results: list[RawExtractionResult]) -> list[DJRecord]:
    """One record per normalized DJ name; display-name variants become aliases."""
    merged: dict[str, dict[str, Any]] = {}
    for result in sorted(results, key=lambda r: r.job_index):
        if not result.success:
            continue
        for dj in result.djs:
            key = normalize_dj_name(dj.name)
            if not key:
                continue
            entry = merged.get(key)
            if entry is None:
                entry = merged[key] = {
                    "name": dj.name,
                    "aliases": [],
                    "confidence": None,
                    "context": None,
                    "source_urls": [],
                }
            for alias in [dj.name, *dj.aliases]:
                if alias != entry["name"] and alias not in entry["aliases"]:
                    entry["aliases"].append(alias)
            if dj.confidence is not None:
                current = entry["confidence"]
                entry["confidence"] = dj.confidence if current is None else max(current, dj.confidence)
            if entry["context"] is None and dj.context:
                entry["context"] = dj.context
            if result.source_url not in entry["source_urls"]:
                entry["source_urls"].append(result.source_url)
    return [DJRecord(**entry) for entry in merged.values()]


def _website_key(website: str | None) -> str:
    if not website:
        return ""
    text = website.strip().lower()
    parsed = urlparse(text if "://" in text else f"http://{text}")
    host = parsed.netloc.removeprefix("www.")
    return f"{host}{parsed.path.rstrip('/')}"


def dedup_vendors(results: list[RawExtractionResult]) -> list[VendorRecord]:
    """One record per normalized ``(name, website)``."""
    merged: dict[tuple[str, str], dict[str, Any]] = {}
    for result in sorted(results, key=lambda r: r.job_index):
        if not result.success:
            continue
        for vendor in result.vendors:
            name_key = normalize_key_part(vendor.name)
            if not name_key:
                continue
            key = (name_key, _website_key(vendor.website))
            entry = merged.get(key)
            if entry is None:
                entry = merged[key] = {
                    "name": vendor.name,
                    "website": vendor.website,
                    "description": None,
                    "confidence": None,
                    "source_urls": [],
                }
            if entry["description"] is None and vendor.description:
                entry["description"] = vendor.description
            if vendor.confidence is not None:
                current = entry["confidence"]
                entry["confidence"] = (
                    vendor.confidence if current is None else max(current, vendor.confidence)
                )
            if result.source_url not in entry["source_urls"]:
                entry["source_urls"].append(result.source_url)
    return [VendorRecord(**entry) for entry in merged.values()]
