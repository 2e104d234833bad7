"""OpenStreetMap Nominatim geocoding oracle (no API key).

Nominatim's usage policy asks for an identifying User-Agent and at most
one request per second; requests are serialized through a lock with a
minimum spacing.
"""

from __future__ import annotations

import asyncio
import time

import httpx
import structlog

from karaoke_scout.interfaces.geocoding_provider import GeocodeResult, IGeocodingProvider
from karaoke_scout.utils.errors import GeocodingError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_SEARCH_URL = "https://nominatim.openstreetmap.org/search"
_MIN_INTERVAL_S = 1.0


class NominatimGeocodingProvider(IGeocodingProvider):
    """Free geocoding oracle used when no Google key is configured."""

    def __init__(self, http_client: httpx.AsyncClient, user_agent: str) -> None:
        self._http = http_client
        self._user_agent = user_agent
        self._lock = asyncio.Lock()
        self._last_request = 0.0

    async def geocode(self, address: str) -> GeocodeResult | None:
        if not address.strip():
            return None
        async with self._lock:
            wait = _MIN_INTERVAL_S - (time.monotonic() - self._last_request)
            if wait > 0:
                await asyncio.sleep(wait)
            try:
                response = await self._http.get(
                    _SEARCH_URL,
                    params={"q": address, "format": "jsonv2", "limit": 1},
                    headers={"User-Agent": self._user_agent},
                    timeout=10.0,
                )
            except httpx.HTTPError as exc:
                raise GeocodingError(
                    f"Nominatim request failed: {exc}", self.get_provider_name()
                ) from exc
            finally:
                self._last_request = time.monotonic()

        if response.status_code == 429:
            raise RateLimitError("Nominatim rate limit", self.get_provider_name())
        if response.status_code != 200:
            raise GeocodingError(
                f"Nominatim HTTP {response.status_code}", self.get_provider_name()
            )
        try:
            hits = response.json()
        except ValueError as exc:
            raise GeocodingError("Nominatim response was not JSON", self.get_provider_name()) from exc
        if not hits:
            return None

        first = hits[0]
        try:
            lat, lng = float(first["lat"]), float(first["lon"])
        except (KeyError, TypeError, ValueError) as exc:
            raise GeocodingError(
                "Nominatim result missing coordinates", self.get_provider_name()
            ) from exc
        return GeocodeResult(
            lat=lat,
            lng=lng,
            formatted_address=first.get("display_name"),
            provider=self.get_provider_name(),
        )

    def get_provider_name(self) -> str:
        return "nominatim"

    def is_available(self) -> bool:
        return bool(self._user_agent)
