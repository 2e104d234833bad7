"""Geocoding oracle adapters (Google, Nominatim) and a TTL cache wrapper."""

from karaoke_scout.providers.geocoding.cached_provider import CachedGeocodingProvider
from karaoke_scout.providers.geocoding.google_provider import GoogleGeocodingProvider
from karaoke_scout.providers.geocoding.nominatim_provider import NominatimGeocodingProvider

__all__ = ["CachedGeocodingProvider", "GoogleGeocodingProvider", "NominatimGeocodingProvider"]
