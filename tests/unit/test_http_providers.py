"""Unit tests for the HTTP-backed providers: image fetcher and geocoding oracles.

All traffic goes through ``httpx.MockTransport``; nothing leaves the process.
"""

from __future__ import annotations

import io
from collections.abc import Callable

import httpx
import pytest
from PIL import Image

from karaoke_scout.interfaces.geocoding_provider import GeocodeResult, IGeocodingProvider
from karaoke_scout.providers.geocoding import (
    CachedGeocodingProvider,
    GoogleGeocodingProvider,
    NominatimGeocodingProvider,
)
from karaoke_scout.services.image_fetcher import ImageFetcher
from karaoke_scout.utils.errors import (
    GeocodingError,
    ProviderUnavailableError,
    RateLimitError,
    TransientNetworkError,
    ValidationFailureError,
)


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ======================================================================
# ImageFetcher
# ======================================================================


class TestImageFetcher:
    @pytest.mark.asyncio()
    async def test_small_image_returned_unchanged(self, small_png: bytes) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert "karaoke-scout" in request.headers["user-agent"]
            return httpx.Response(200, content=small_png, headers={"content-type": "image/png"})

        async with _client(handler) as http:
            data = await ImageFetcher(http).fetch("https://scontent.example/flyer.png")
        assert data == small_png

    @pytest.mark.asyncio()
    async def test_large_image_downscaled(self, large_jpeg: bytes) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=large_jpeg, headers={"content-type": "image/jpeg"})

        async with _client(handler) as http:
            data = await ImageFetcher(http, max_dimension=1000).fetch("https://scontent.example/big.jpg")
        with Image.open(io.BytesIO(data)) as img:
            assert max(img.size) == 1000

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        ("status", "error"),
        [
            (429, RateLimitError),
            (503, TransientNetworkError),
            (404, ProviderUnavailableError),
            (403, ProviderUnavailableError),
        ],
    )
    async def test_status_mapping(self, status: int, error: type[Exception]) -> None:
        async with _client(lambda request: httpx.Response(status)) as http:
            with pytest.raises(error):
                await ImageFetcher(http).fetch("https://scontent.example/x.jpg")

    @pytest.mark.asyncio()
    async def test_timeout_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        async with _client(handler) as http:
            with pytest.raises(TransientNetworkError):
                await ImageFetcher(http).fetch("https://scontent.example/x.jpg")

    @pytest.mark.asyncio()
    async def test_html_is_rejected(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>login</html>", headers={"content-type": "text/html"})

        async with _client(handler) as http:
            with pytest.raises(ValidationFailureError):
                await ImageFetcher(http).fetch("https://scontent.example/x.jpg")

    @pytest.mark.asyncio()
    async def test_oversized_and_empty_rejected(self, small_png: bytes) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = b"" if request.url.path == "/empty.png" else small_png
            return httpx.Response(200, content=body, headers={"content-type": "image/png"})

        async with _client(handler) as http:
            fetcher = ImageFetcher(http, max_bytes=10)
            with pytest.raises(ValidationFailureError):
                await fetcher.fetch("https://scontent.example/flyer.png")
            with pytest.raises(ValidationFailureError):
                await fetcher.fetch("https://scontent.example/empty.png")


# ======================================================================
# GoogleGeocodingProvider
# ======================================================================


def _google_reply(status: str = "OK", location_type: str = "ROOFTOP") -> dict:
    reply: dict = {"status": status, "results": []}
    if status == "OK":
        reply["results"] = [
            {
                "formatted_address": "12 Main St, Columbus, OH 43215, USA",
                "geometry": {"location": {"lat": 39.9612, "lng": -82.9988}, "location_type": location_type},
            }
        ]
    return reply


class TestGoogleGeocodingProvider:
    @pytest.mark.asyncio()
    async def test_hit(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_google_reply())

        async with _client(handler) as http:
            result = await GoogleGeocodingProvider(http, "maps-key").geocode("12 Main St, Columbus")

        assert result == GeocodeResult(
            lat=39.9612,
            lng=-82.9988,
            formatted_address="12 Main St, Columbus, OH 43215, USA",
            location_type="ROOFTOP",
            provider="google-geocoding",
        )
        assert seen[0].url.params["address"] == "12 Main St, Columbus"
        assert seen[0].url.params["key"] == "maps-key"

    @pytest.mark.asyncio()
    async def test_location_type_passed_through_without_confidence(self) -> None:
        async with _client(lambda r: httpx.Response(200, json=_google_reply(location_type="APPROXIMATE"))) as http:
            result = await GoogleGeocodingProvider(http, "k").geocode("Columbus")
        assert result.location_type == "APPROXIMATE"
        assert "confidence" not in result.model_dump()

    @pytest.mark.asyncio()
    async def test_zero_results_is_miss(self) -> None:
        async with _client(lambda r: httpx.Response(200, json=_google_reply("ZERO_RESULTS"))) as http:
            assert await GoogleGeocodingProvider(http, "k").geocode("nowhere") is None

    @pytest.mark.asyncio()
    async def test_quota(self) -> None:
        async with _client(lambda r: httpx.Response(200, json=_google_reply("OVER_QUERY_LIMIT"))) as http:
            with pytest.raises(RateLimitError):
                await GoogleGeocodingProvider(http, "k").geocode("x")

    @pytest.mark.asyncio()
    async def test_denied_and_http_errors(self) -> None:
        async with _client(lambda r: httpx.Response(200, json=_google_reply("REQUEST_DENIED"))) as http:
            with pytest.raises(GeocodingError):
                await GoogleGeocodingProvider(http, "k").geocode("x")
        async with _client(lambda r: httpx.Response(500)) as http:
            with pytest.raises(GeocodingError):
                await GoogleGeocodingProvider(http, "k").geocode("x")

    def test_available_only_with_key(self) -> None:
        client = httpx.AsyncClient()
        assert GoogleGeocodingProvider(client, "").is_available() is False
        assert GoogleGeocodingProvider(client, "k").is_available() is True


# ======================================================================
# NominatimGeocodingProvider
# ======================================================================


class TestNominatimGeocodingProvider:
    @pytest.mark.asyncio()
    async def test_hit(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["user-agent"] == "karaoke-scout-tests"
            assert request.url.params["format"] == "jsonv2"
            return httpx.Response(
                200,
                json=[{"lat": "39.9612", "lon": "-82.9988", "display_name": "Columbus", "importance": 0.45}],
            )

        async with _client(handler) as http:
            result = await NominatimGeocodingProvider(http, "karaoke-scout-tests").geocode("Columbus, OH")
        assert (result.lat, result.lng) == (39.9612, -82.9988)
        assert result.provider == "nominatim"
        assert result.location_type is None

    @pytest.mark.asyncio()
    async def test_no_hits(self) -> None:
        async with _client(lambda r: httpx.Response(200, json=[])) as http:
            assert await NominatimGeocodingProvider(http, "ua").geocode("nowhere") is None

    @pytest.mark.asyncio()
    async def test_rate_limited(self) -> None:
        async with _client(lambda r: httpx.Response(429)) as http:
            with pytest.raises(RateLimitError):
                await NominatimGeocodingProvider(http, "ua").geocode("x")

    @pytest.mark.asyncio()
    async def test_server_error(self) -> None:
        async with _client(lambda r: httpx.Response(502)) as http:
            with pytest.raises(GeocodingError):
                await NominatimGeocodingProvider(http, "ua").geocode("x")


# ======================================================================
# CachedGeocodingProvider
# ======================================================================


class _CountingGeocoder(IGeocodingProvider):
    def __init__(self, answer: GeocodeResult | None) -> None:
        self.answer = answer
        self.calls = 0

    async def geocode(self, address: str) -> GeocodeResult | None:
        self.calls += 1
        return self.answer

    def get_provider_name(self) -> str:
        return "counting"

    def is_available(self) -> bool:
        return True


class TestCachedGeocodingProvider:
    @pytest.mark.asyncio()
    async def test_hits_cached_by_normalized_address(self) -> None:
        inner = _CountingGeocoder(GeocodeResult(lat=1.0, lng=2.0))
        cached = CachedGeocodingProvider(inner)
        first = await cached.geocode("12 Main St,  Columbus")
        second = await cached.geocode("12 MAIN ST, columbus")
        assert first == second
        assert inner.calls == 1
        assert cached.get_provider_name() == "counting"

    @pytest.mark.asyncio()
    async def test_misses_cached(self) -> None:
        inner = _CountingGeocoder(None)
        cached = CachedGeocodingProvider(inner)
        assert await cached.geocode("nowhere") is None
        assert await cached.geocode("nowhere") is None
        assert inner.calls == 1
