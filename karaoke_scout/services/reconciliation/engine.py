"""Data reconciliation engine.

Turns the dispatcher's ordered raw results into the run's final records:

1. **Dedup** -- one :class:`ShowRecord` per normalized key, plus DJ and
   vendor records (``dedup.py``).
2. **Time validation** -- AM/PM repairs and duration checks
   (``time_validation.py``).
3. **Geo completion** -- incomplete records go back to the model in
   batches (``geo_completion.py``).
4. **Geocoding cross-check** -- model coordinates against an oracle
   (``geo_conflicts.py``).
5. **Venue validation** -- optional model lookup (``venue_validation.py``).
6. **Status** -- each record's flags collapse to one status.

No record is ever dropped, and confidence values only pass through: the
engine never computes a record confidence of its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from karaoke_scout.interfaces.geocoding_provider import IGeocodingProvider
from karaoke_scout.models.extraction import RawExtractionResult
from karaoke_scout.models.records import DJRecord, ShowRecord, VendorRecord
from karaoke_scout.services.extraction_engine import StructuredExtractionEngine
from karaoke_scout.services.reconciliation.dedup import (
    dedup_djs,
    dedup_shows,
    dedup_vendors,
    flag_location_disagreements,
)
from karaoke_scout.services.reconciliation.geo_completion import GeoCompleter
from karaoke_scout.services.reconciliation.geo_conflicts import GeoConflictResolver
from karaoke_scout.services.reconciliation.status import WorkingShow
from karaoke_scout.services.reconciliation.time_validation import apply_time_validation
from karaoke_scout.services.reconciliation.venue_validation import VenueValidator
from karaoke_scout.utils.logging import get_logger


@dataclass
class ReconciledRecords:
    shows: list[ShowRecord] = field(default_factory=list)
    djs: list[DJRecord] = field(default_factory=list)
    vendors: list[VendorRecord] = field(default_factory=list)


class ReconciliationEngine:
    """Merges raw results into validated show, DJ and vendor records.

    Parameters
    ----------
    engine:
        Extraction engine for the geo-completion and venue-lookup prompts.
        ``None`` (or an unavailable provider) skips both passes.
    geocoder:
        Optional geocoding oracle for the coordinate cross-check.
    batch_size:
        Records per geo-completion call.
    auto_apply_threshold:
        Model confidence at or above which geo completions are applied.
    skip_threshold:
        Model confidence below which a record is ``skipped`` untouched.
    adjacency_threshold_m:
        Oracle-vs-model distance above which the oracle's coordinates win.
    lookup_threshold_m:
        Distance at which a venue lookup's coordinates count as different.
    venue_auto_apply_threshold:
        Confidence at or above which venue-lookup suggestions are applied.
    venue_validation:
        Run the venue-lookup pass.
    """

    def __init__(
        self,
        engine: StructuredExtractionEngine | None = None,
        geocoder: IGeocodingProvider | None = None,
        *,
        batch_size: int = 5,
        auto_apply_threshold: float = 0.9,
        skip_threshold: float = 0.4,
        adjacency_threshold_m: float = 50.0,
        lookup_threshold_m: float = 804.672,
        venue_auto_apply_threshold: float = 0.8,
        venue_validation: bool = False,
        time_validation: bool = True,
    ) -> None:
        self._engine = engine
        self._geocoder = geocoder
        self._time_validation = time_validation
        self._completer = (
            GeoCompleter(engine, batch_size, auto_apply_threshold, skip_threshold)
            if engine is not None
            else None
        )
        self._resolver = (
            GeoConflictResolver(geocoder, adjacency_threshold_m) if geocoder is not None else None
        )
        self._venues = (
            VenueValidator(engine, venue_auto_apply_threshold, skip_threshold, lookup_threshold_m)
            if engine is not None and venue_validation
            else None
        )
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def reconcile(self, results: list[RawExtractionResult]) -> ReconciledRecords:
        shows = [WorkingShow.wrap(record) for record in dedup_shows(results)]
        djs = dedup_djs(results)
        vendors = dedup_vendors(results)
        for show in shows:
            flag_location_disagreements(show)

        if self._time_validation:
            for show in shows:
                apply_time_validation(show)

        if self._completer is not None and self._engine is not None and self._engine.is_available():
            calls = await self._completer.complete(shows)
            self._logger.info("geo_completion_done", calls=calls)

        if self._resolver is not None and self._geocoder is not None and self._geocoder.is_available():
            for show in shows:
                await self._resolver.resolve(show)

        if self._venues is not None and self._engine is not None and self._engine.is_available():
            for show in shows:
                await self._venues.validate(show)

        records = [show.finalize() for show in shows]
        self._logger.info(
            "reconciliation_complete",
            results=len(results),
            shows=len(records),
            djs=len(djs),
            vendors=len(vendors),
        )
        return ReconciledRecords(shows=records, djs=djs, vendors=vendors)

    async def complete_geo(self, records: list[ShowRecord]) -> list[ShowRecord]:
        """Run only the geo-completion and cross-check passes over existing records."""
        shows = [WorkingShow.wrap(record) for record in records]
        if self._completer is not None:
            await self._completer.complete(shows)
        if self._resolver is not None:
            for show in shows:
                await self._resolver.resolve(show)
        return [show.finalize() for show in shows]
