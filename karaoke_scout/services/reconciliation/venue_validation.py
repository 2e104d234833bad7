"""Optional model-based venue verification.

Each show's venue is looked up with a VENUE_LOOKUP prompt.  A venue the
model cannot find, or finds with confidence below the skip floor, is
``skipped``.  Otherwise the suggested data is compared field by field
(names by containment, coordinates at the venue-lookup distance); at or
above the auto-apply threshold missing fields are filled and suggested
time corrections applied, below it everything is attached for review.
"""

from __future__ import annotations

from typing import Any

import structlog

from karaoke_scout.models.records import FieldConflict, RecordStatus, Suggestion
from karaoke_scout.models.targets import PromptKind
from karaoke_scout.services import prompts
from karaoke_scout.services.extraction_engine import StructuredExtractionEngine
from karaoke_scout.services.payload_decoder import VenueLookup, decode_venue_lookup
from karaoke_scout.services.reconciliation.status import WorkingShow
from karaoke_scout.services.reconciliation.time_validation import normalize_time
from karaoke_scout.utils.errors import ValidationFailureError
from karaoke_scout.utils.geo import haversine_m, has_usable_coordinates
from karaoke_scout.utils.logging import get_logger
from karaoke_scout.utils.text_normalizer import names_match, normalize_key_part

_FILLABLE: tuple[str, ...] = ("address", "city", "state", "zip", "venue_phone", "venue_website")
_LOOKUP_FIELDS: tuple[str, ...] = (
    "venue", "address", "city", "state", "zip", "lat", "lng", "day", "start_time", "end_time",
)


class VenueValidator:
    def __init__(
        self,
        engine: StructuredExtractionEngine,
        auto_apply_threshold: float = 0.8,
        skip_threshold: float = 0.4,
        threshold_m: float = 804.672,
    ) -> None:
        self._engine = engine
        self._auto_apply = auto_apply_threshold
        self._skip = skip_threshold
        self._threshold_m = threshold_m
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def validate(self, show: WorkingShow) -> None:
        if show.skipped or not show.get("venue"):
            return
        listing = {name: show.get(name) for name in _LOOKUP_FIELDS if show.get(name) is not None}
        outcome = await self._engine.run_prompt(
            PromptKind.VENUE_LOOKUP, prompts.venue_lookup_prompt(listing), max_tokens=1000
        )
        if not outcome.ok:
            show.flag(RecordStatus.ERROR, f"venue lookup failed: {outcome.error_message}")
            return
        try:
            lookup = decode_venue_lookup(outcome.payload)
        except ValidationFailureError as exc:
            show.flag(RecordStatus.ERROR, f"venue lookup reply rejected: {exc.message}")
            return

        if not lookup.venue_found or lookup.confidence is None or lookup.confidence < self._skip:
            show.suggestions.append(
                Suggestion(
                    source="venue_lookup",
                    fields=dict(lookup.suggested),
                    confidence=lookup.confidence,
                    reason="venue not found" if not lookup.venue_found else "low confidence",
                )
            )
            show.flag(RecordStatus.SKIPPED, "venue not found or low confidence")
            self._logger.info(
                "venue_lookup_skipped", venue=show.get("venue"), confidence=lookup.confidence
            )
            return

        conflicts = self._compare(show, lookup.suggested)
        show.conflicts.extend(conflicts)

        if lookup.confidence >= self._auto_apply:
            self._apply(show, lookup)
        else:
            if lookup.suggested or lookup.suggested_times:
                show.suggestions.append(
                    Suggestion(
                        source="venue_lookup",
                        fields={**lookup.suggested, **lookup.suggested_times},
                        confidence=lookup.confidence,
                        reason="confidence below auto-apply threshold",
                    )
                )
            if conflicts or lookup.time_issues:
                show.flag(RecordStatus.CONFLICT, f"venue lookup needs review ({lookup.confidence:.2f})")

        if lookup.confidence >= self._auto_apply and conflicts:
            show.flag(RecordStatus.CONFLICT, f"{len(conflicts)} field(s) disagree with venue lookup")
        for issue in lookup.time_issues:
            show.conflicts.append(
                FieldConflict(field="start_time", kept=show.get("start_time"), source="venue_lookup", detail=issue)
            )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _compare(self, show: WorkingShow, suggested: dict[str, Any]) -> list[FieldConflict]:
        conflicts: list[FieldConflict] = []
        current_venue, suggested_venue = show.get("venue"), suggested.get("venue")
        if current_venue and suggested_venue and not names_match(current_venue, suggested_venue):
            conflicts.append(
                FieldConflict(field="venue", kept=current_venue, other=suggested_venue, source="venue_lookup")
            )
        for name in ("address", "city", "state"):
            current, other = show.get(name), suggested.get(name)
            if current and other and normalize_key_part(current) != normalize_key_part(other):
                conflicts.append(FieldConflict(field=name, kept=current, other=other, source="venue_lookup"))

        lat, lng = show.get("lat"), show.get("lng")
        s_lat, s_lng = suggested.get("lat"), suggested.get("lng")
        if has_usable_coordinates(lat, lng) and has_usable_coordinates(s_lat, s_lng):
            distance = haversine_m(lat, lng, s_lat, s_lng)
            if distance > self._threshold_m:
                conflicts.append(
                    FieldConflict(
                        field="coordinates",
                        kept=[lat, lng],
                        other=[s_lat, s_lng],
                        source="venue_lookup",
                        detail=f"{distance:.0f} m apart",
                    )
                )
        return conflicts

    def _apply(self, show: WorkingShow, lookup: VenueLookup) -> None:
        updates: dict[str, Any] = {
            name: lookup.suggested[name]
            for name in _FILLABLE
            if show.get(name) in (None, "") and lookup.suggested.get(name)
        }
        s_lat, s_lng = lookup.suggested.get("lat"), lookup.suggested.get("lng")
        if not has_usable_coordinates(show.get("lat"), show.get("lng")) and has_usable_coordinates(s_lat, s_lng):
            updates.update(lat=s_lat, lng=s_lng)

        time_updates = {
            name: normalize_time(value)
            for name, value in lookup.suggested_times.items()
            if normalize_time(value) != normalize_time(show.get(name))
        }

        if updates:
            show.suggestions.append(
                Suggestion(source="venue_lookup", fields=updates, confidence=lookup.confidence, applied=True)
            )
            show.update(**updates)
            show.flag(RecordStatus.GEO_FIXED, "venue lookup filled " + ", ".join(sorted(updates)))
        if time_updates:
            show.suggestions.append(
                Suggestion(
                    source="venue_lookup",
                    fields=time_updates,
                    confidence=lookup.confidence,
                    applied=True,
                    reason="; ".join(lookup.time_issues) or None,
                )
            )
            show.update(**time_updates)
            show.flag(RecordStatus.TIME_FIXED, "venue lookup corrected show time")
        self._logger.debug(
            "venue_lookup_applied",
            venue=show.get("venue"),
            fields=sorted(updates),
            times=sorted(time_updates),
        )
