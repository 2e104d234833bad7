"""Abstract base class for geocoding oracles.

A geocoding oracle turns an address into authoritative coordinates.  The
reconciliation engine uses it to cross-check coordinates the model
inferred; it is optional -- without an oracle the model's coordinates
stand.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict


class GeocodeResult(BaseModel):
    """A resolved address.

    ``location_type`` is the oracle's own precision label (Google's
    ``ROOFTOP``, ``APPROXIMATE`` ...), passed through as-is.
    """

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float
    formatted_address: str | None = None
    location_type: str | None = None
    provider: str = ""


# Concrete implementations: GoogleGeocodingProvider, NominatimGeocodingProvider
# Located in: karaoke_scout/providers/geocoding/
class IGeocodingProvider(ABC):
    """Contract for address -> coordinate lookups."""

    @abstractmethod
    async def geocode(self, address: str) -> GeocodeResult | None:
        """Resolve *address* to coordinates.

        Parameters
        ----------
        address:
            Free-form address ("123 Main St, Columbus, OH 43215").

        Returns
        -------
        GeocodeResult or None
            ``None`` when the oracle has no match for the address.

        Raises
        ------
        GeocodingError
            When the oracle could not be queried (HTTP / quota failure).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"google-geocoding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the oracle is configured."""
