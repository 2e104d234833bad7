"""Utility modules for karaoke-scout.

- **errors** -- exception hierarchy rooted at KaraokeScoutError, plus the
  mapping from exceptions to the ErrorKind taxonomy.
- **logging** -- structlog setup with console / JSON renderers.
- **concurrency** -- bounded gather and the quota retry policy.
- **json_extract** -- tolerant recovery of JSON from model replies.
- **geo** -- haversine distances and coordinate sanity checks.
- **text_normalizer** -- venue, DJ and weekday normalization for dedup keys.
- **image** (not re-exported here) -- media-type sniffing and Pillow downscaling.
"""

from karaoke_scout.utils.concurrency import RetryPolicy, retry_on_rate_limit, throttled_gather
from karaoke_scout.utils.errors import (
    ConfigurationError,
    KaraokeScoutError,
    PipelineError,
    RateLimitError,
    error_kind_for,
)
from karaoke_scout.utils.json_extract import extract_json_payload

__all__ = [
    "ConfigurationError",
    "KaraokeScoutError",
    "PipelineError",
    "RateLimitError",
    "RetryPolicy",
    "error_kind_for",
    "extract_json_payload",
    "retry_on_rate_limit",
    "throttled_gather",
]
