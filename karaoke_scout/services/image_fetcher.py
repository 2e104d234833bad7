"""Downloads photo targets for the vision model.

Photo URLs discovered on a feed are fetched lazily, inside the job that
extracts them, so the download counts against the per-job timeout.
"""

from __future__ import annotations

import asyncio

import httpx
import structlog

from karaoke_scout.utils.errors import (
    ProviderUnavailableError,
    RateLimitError,
    TransientNetworkError,
    ValidationFailureError,
)
from karaoke_scout.utils.image import downscale_image

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; karaoke-scout/0.1)",
    "Accept": "image/avif,image/webp,image/png,image/jpeg,*/*;q=0.8",
}
_MAX_BYTES = 20 * 1024 * 1024


class ImageFetcher:
    """Fetches an image URL and downscales it for the vision model."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        max_dimension: int = 2048,
        max_bytes: int = _MAX_BYTES,
    ) -> None:
        self._client = http_client
        self._max_dimension = max_dimension
        self._max_bytes = max_bytes

    async def fetch(self, url: str) -> bytes:
        """Return the (possibly downscaled) bytes of the image at *url*.

        Raises
        ------
        TransientNetworkError
            On connection failures, timeouts and 5xx responses.
        RateLimitError
            On HTTP 429.
        ProviderUnavailableError
            On any other non-success status.
        ValidationFailureError
            If the response is not an image or is too large.
        """
        try:
            response = await self._client.get(url, headers=_DEFAULT_HEADERS, follow_redirects=True)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise TransientNetworkError(
                message=f"Timeout fetching image {url}", provider_name="image-fetch"
            ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 429:
                raise RateLimitError(
                    message=f"HTTP 429 fetching image {url}", provider_name="image-fetch"
                ) from exc
            if status >= 500:
                raise TransientNetworkError(
                    message=f"HTTP {status} fetching image {url}", provider_name="image-fetch"
                ) from exc
            raise ProviderUnavailableError(
                message=f"HTTP {status} fetching image {url}", provider_name="image-fetch"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransientNetworkError(
                message=f"HTTP error fetching image {url}: {exc}", provider_name="image-fetch"
            ) from exc

        content_type = response.headers.get("content-type", "")
        if content_type and not content_type.startswith("image/"):
            raise ValidationFailureError(
                message=f"Not an image ({content_type}): {url}", provider_name="image-fetch"
            )
        data = response.content
        if not data or len(data) > self._max_bytes:
            raise ValidationFailureError(
                message=f"Image size {len(data)} bytes out of bounds: {url}",
                provider_name="image-fetch",
            )

        scaled = await asyncio.to_thread(downscale_image, data, self._max_dimension)
        logger.debug("image_fetched", url=url, bytes=len(data), scaled_bytes=len(scaled))
        return scaled
