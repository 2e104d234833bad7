"""Unit tests for geo helpers, image helpers and the error taxonomy."""

from __future__ import annotations

import io

import pytest
from PIL import Image

from karaoke_scout.models.extraction import ErrorKind
from karaoke_scout.utils.errors import (
    AuthenticationRequiredError,
    BrowserAutomationError,
    KaraokeScoutError,
    MalformedModelOutputError,
    RateLimitError,
    TransientNetworkError,
    ValidationFailureError,
    error_kind_for,
)
from karaoke_scout.utils.geo import (
    haversine_km,
    haversine_m,
    haversine_miles,
    has_usable_coordinates,
    miles_to_meters,
)
from karaoke_scout.utils.image import detect_media_type, downscale_image


# ======================================================================
# Geo
# ======================================================================


class TestHaversine:
    def test_zero_distance(self) -> None:
        assert haversine_m(39.96, -83.0, 39.96, -83.0) == pytest.approx(0.0)

    def test_one_degree_of_latitude(self) -> None:
        assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.19, abs=0.05)

    def test_units_agree(self) -> None:
        km = haversine_km(39.96, -83.0, 40.0, -83.1)
        assert haversine_m(39.96, -83.0, 40.0, -83.1) == pytest.approx(km * 1000)
        assert haversine_miles(39.96, -83.0, 40.0, -83.1) == pytest.approx(km * 0.6214, rel=1e-3)

    def test_half_mile_in_meters(self) -> None:
        assert miles_to_meters(0.5) == pytest.approx(804.672)


class TestUsableCoordinates:
    def test_normal_pair(self) -> None:
        assert has_usable_coordinates(39.96, -83.0)

    def test_zero_zero_placeholder(self) -> None:
        assert not has_usable_coordinates(0.0, 0.0)

    @pytest.mark.parametrize(
        ("lat", "lng"), [(None, -83.0), (39.96, None), (91.0, 0.5), (10.0, 181.0), (float("nan"), 1.0)]
    )
    def test_invalid(self, lat: float | None, lng: float | None) -> None:
        assert not has_usable_coordinates(lat, lng)


# ======================================================================
# Images
# ======================================================================


class TestDetectMediaType:
    def test_png(self, small_png: bytes) -> None:
        assert detect_media_type(small_png) == "image/png"

    def test_gif_and_webp(self) -> None:
        assert detect_media_type(b"GIF89a....") == "image/gif"
        assert detect_media_type(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"

    def test_unknown_defaults_to_jpeg(self) -> None:
        assert detect_media_type(b"\x00\x01\x02") == "image/jpeg"


class TestDownscaleImage:
    def test_small_image_unchanged(self, small_png: bytes) -> None:
        assert downscale_image(small_png, max_dimension=2048) is small_png

    def test_large_image_shrunk(self, large_jpeg: bytes) -> None:
        scaled = downscale_image(large_jpeg, max_dimension=1000)
        with Image.open(io.BytesIO(scaled)) as img:
            assert max(img.size) == 1000
            assert img.size == (1000, 500)

    def test_undecodable_data_unchanged(self) -> None:
        data = b"definitely not an image"
        assert downscale_image(data) == data


# ======================================================================
# Errors
# ======================================================================


class TestErrors:
    def test_str_includes_provider(self) -> None:
        exc = RateLimitError("Too many requests", provider_name="openai")
        assert str(exc) == "[openai] Too many requests"
        assert exc.message == "Too many requests"

    def test_str_without_provider(self) -> None:
        assert str(KaraokeScoutError("boom")) == "boom"

    @pytest.mark.parametrize(
        ("exc", "kind"),
        [
            (AuthenticationRequiredError("login"), ErrorKind.AUTHENTICATION_REQUIRED),
            (RateLimitError(), ErrorKind.QUOTA_EXCEEDED),
            (TransientNetworkError(), ErrorKind.TRANSIENT_NETWORK),
            (MalformedModelOutputError(), ErrorKind.MALFORMED_MODEL_OUTPUT),
            (ValidationFailureError(), ErrorKind.VALIDATION_FAILURE),
            (TimeoutError(), ErrorKind.TIMEOUT),
            (BrowserAutomationError(), ErrorKind.PROVIDER_ERROR),
            (RuntimeError("bug"), ErrorKind.UNEXPECTED),
        ],
    )
    def test_error_kind_for(self, exc: BaseException, kind: ErrorKind) -> None:
        assert error_kind_for(exc) == kind
