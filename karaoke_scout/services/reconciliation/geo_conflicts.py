"""Cross-checks record coordinates against a geocoding oracle.

For a record with an address, the oracle's coordinates for that address
are compared with the record's (model-proposed) coordinates.  Farther
apart than the threshold, the oracle wins and the disagreement is kept
as a conflict; within it, the model's coordinates stand.  A record with
an address but no usable coordinates takes the oracle's outright.
Oracle failures are logged and leave the record as it was.
"""

from __future__ import annotations

import structlog

from karaoke_scout.interfaces.geocoding_provider import IGeocodingProvider
from karaoke_scout.models.records import FieldConflict, RecordStatus, Suggestion
from karaoke_scout.services.reconciliation.status import WorkingShow
from karaoke_scout.utils.errors import KaraokeScoutError
from karaoke_scout.utils.geo import haversine_m, has_usable_coordinates
from karaoke_scout.utils.logging import get_logger


def geocode_query(show: WorkingShow) -> str | None:
    """Address string for the oracle, or ``None`` when there is too little to go on."""
    address, city = show.get("address"), show.get("city")
    state, zip_code = show.get("state"), show.get("zip")
    if not address and not (show.get("venue") and (city or zip_code)):
        return None
    head = address or show.get("venue")
    region = " ".join(part for part in (state, zip_code) if part)
    return ", ".join(part for part in (head, city, region) if part)


class GeoConflictResolver:
    """Applies the distance-threshold policy against an :class:`IGeocodingProvider`."""

    def __init__(self, geocoder: IGeocodingProvider, threshold_m: float = 50.0) -> None:
        self._geocoder = geocoder
        self._threshold_m = threshold_m
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def resolve(self, show: WorkingShow) -> None:
        if show.skipped:
            return
        query = geocode_query(show)
        if query is None:
            return
        try:
            oracle = await self._geocoder.geocode(query)
        except KaraokeScoutError as exc:
            self._logger.warning("geocode_check_failed", query=query, error=str(exc))
            return
        if oracle is None:
            self._logger.debug("geocode_no_match", query=query)
            return

        oracle_fields = {"lat": oracle.lat, "lng": oracle.lng}
        lat, lng = show.get("lat"), show.get("lng")
        if not has_usable_coordinates(lat, lng):
            show.suggestions.append(
                Suggestion(
                    source="geocoding",
                    fields=oracle_fields,
                    applied=True,
                    reason=f"coordinates from {oracle.provider or self._geocoder.get_provider_name()}",
                )
            )
            show.update(**oracle_fields)
            show.flag(RecordStatus.GEO_FIXED, "coordinates geocoded from address")
            return

        distance = haversine_m(lat, lng, oracle.lat, oracle.lng)
        if distance <= self._threshold_m:
            self._logger.debug("geocode_agrees", query=query, distance_m=round(distance, 1))
            return

        show.conflicts.append(
            FieldConflict(
                field="coordinates",
                kept=[oracle.lat, oracle.lng],
                other=[lat, lng],
                source="geocoding",
                detail=f"model coordinates {distance:.0f} m from geocoded address",
            )
        )
        show.suggestions.append(
            Suggestion(
                source="geocoding",
                fields=oracle_fields,
                applied=True,
                reason=f"{distance:.0f} m exceeds {self._threshold_m:.0f} m threshold",
            )
        )
        show.update(**oracle_fields)
        show.flag(RecordStatus.GEO_FIXED, f"coordinates moved {distance:.0f} m to geocoded address")
        self._logger.info(
            "geocode_override", venue=show.get("venue"), distance_m=round(distance, 1)
        )
