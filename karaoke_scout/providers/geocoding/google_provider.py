"""Google Geocoding API oracle.

GET https://maps.googleapis.com/maps/api/geocode/json?address=...&key=...

Only ``status == "OK"`` is a hit; ``ZERO_RESULTS`` is a clean miss;
``OVER_QUERY_LIMIT`` / ``OVER_DAILY_LIMIT`` surface as :class:`RateLimitError`
and every other status as :class:`GeocodingError`.
"""

from __future__ import annotations

import httpx
import structlog

from karaoke_scout.interfaces.geocoding_provider import GeocodeResult, IGeocodingProvider
from karaoke_scout.utils.errors import GeocodingError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"


class GoogleGeocodingProvider(IGeocodingProvider):
    """Geocoding oracle backed by the Google Maps Geocoding API.

    The ``httpx.AsyncClient`` is injected so callers control pooling and
    tests can substitute a mock transport.
    """

    def __init__(self, http_client: httpx.AsyncClient, api_key: str) -> None:
        self._http = http_client
        self._api_key = api_key

    async def geocode(self, address: str) -> GeocodeResult | None:
        if not address.strip():
            return None
        try:
            response = await self._http.get(
                _GEOCODE_URL,
                params={"address": address, "key": self._api_key},
                timeout=10.0,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise GeocodingError(
                f"Geocoding request failed: {exc}", self.get_provider_name()
            ) from exc
        except ValueError as exc:
            raise GeocodingError(
                "Geocoding response was not JSON", self.get_provider_name()
            ) from exc

        status = payload.get("status")
        if status == "ZERO_RESULTS":
            logger.debug("geocode_no_match", address=address)
            return None
        if status in ("OVER_QUERY_LIMIT", "OVER_DAILY_LIMIT"):
            raise RateLimitError(f"Geocoding quota: {status}", self.get_provider_name())
        if status != "OK" or not payload.get("results"):
            raise GeocodingError(
                f"Geocoding status {status}: {payload.get('error_message', '')}".strip(),
                self.get_provider_name(),
            )

        first = payload["results"][0]
        geometry = first.get("geometry", {})
        location = geometry.get("location", {})
        try:
            lat, lng = float(location["lat"]), float(location["lng"])
        except (KeyError, TypeError, ValueError) as exc:
            raise GeocodingError(
                "Geocoding result missing coordinates", self.get_provider_name()
            ) from exc

        result = GeocodeResult(
            lat=lat,
            lng=lng,
            formatted_address=first.get("formatted_address"),
            location_type=geometry.get("location_type"),
            provider=self.get_provider_name(),
        )
        logger.debug("geocode_hit", address=address, lat=lat, lng=lng)
        return result

    def get_provider_name(self) -> str:
        return "google-geocoding"

    def is_available(self) -> bool:
        return bool(self._api_key)
