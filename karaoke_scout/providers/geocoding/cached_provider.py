"""TTL cache in front of any geocoding oracle.

A run typically asks about the same handful of venues many times (one
per photo of the same weekly flyer), so lookups are memoized per
normalized address with ``cachetools.TTLCache``.  Misses (``None``) are
cached too; errors are not.
"""

from __future__ import annotations

import structlog
from cachetools import TTLCache

from karaoke_scout.interfaces.geocoding_provider import GeocodeResult, IGeocodingProvider

logger = structlog.get_logger(logger_name=__name__)

_MISS = object()


class CachedGeocodingProvider(IGeocodingProvider):
    """Decorator adding a TTL cache to another :class:`IGeocodingProvider`."""

    def __init__(self, inner: IGeocodingProvider, max_size: int = 2048, ttl: int = 86400) -> None:
        self._inner = inner
        self._cache: TTLCache[str, object] = TTLCache(maxsize=max_size, ttl=ttl)

    async def geocode(self, address: str) -> GeocodeResult | None:
        key = " ".join(address.lower().split())
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("geocode_cache_hit", address=key)
            return None if cached is _MISS else cached  # type: ignore[return-value]
        result = await self._inner.geocode(address)
        self._cache[key] = _MISS if result is None else result
        return result

    def get_provider_name(self) -> str:
        return self._inner.get_provider_name()

    def is_available(self) -> bool:
        return self._inner.is_available()
