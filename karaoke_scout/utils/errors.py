"""Custom exception hierarchy for karaoke-scout.

All application exceptions inherit from :class:`KaraokeScoutError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "google-geocoding", "playwright") caused
the failure.

The hierarchy mirrors the failure taxonomy used by the extraction pipeline:

    KaraokeScoutError  (base -- catch-all for any karaoke-scout error)
    +-- AuthenticationRequiredError (login wall, no usable session)
    +-- TransientNetworkError       (connection reset, DNS, provider timeout)
    +-- RateLimitError              (provider quota exceeded -- backoff retry)
    +-- MalformedModelOutputError   (no parseable JSON in a model response)
    +-- ValidationFailureError      (payload shape does not match the schema)
    +-- LLMError                    (any other LLM API call failure)
    +-- GeocodingError              (geocoding oracle failure)
    +-- BrowserAutomationError      (browser could not be launched / driven)
    +-- PipelineError               (batch setup / orchestration failure)
    +-- ConfigurationError          (startup / missing config)
    +-- ProviderUnavailableError    (external service down / unreachable)

:func:`error_kind_for` maps an exception onto the :class:`ErrorKind`
recorded on a failed :class:`~karaoke_scout.models.extraction.RawExtractionResult`.
"""

from __future__ import annotations

from karaoke_scout.models.extraction import ErrorKind


class KaraokeScoutError(Exception):
    """Base exception for all karaoke-scout errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  ``__str__`` prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Access / network errors
# ---------------------------------------------------------------------------

class AuthenticationRequiredError(KaraokeScoutError):
    """Raised when a target sits behind a login wall and no session is usable.

    Not retryable until new credentials or cookies are supplied.
    """

    def __init__(
        self,
        message: str = "Authentication required",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class TransientNetworkError(KaraokeScoutError):
    """Raised on connection-level failures that may succeed on a later attempt.

    The extraction engine does not retry these; the browser driver may.
    """

    def __init__(
        self,
        message: str = "Transient network failure",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(KaraokeScoutError):
    """Raised when a provider quota or rate limit is exceeded.

    This is the only error class the extraction engine retries with
    exponential backoff.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderUnavailableError(KaraokeScoutError):
    """Raised when an external service or provider is unreachable."""

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Model output errors
# ---------------------------------------------------------------------------

class LLMError(KaraokeScoutError):
    """Raised when an LLM API call fails for a reason other than quota."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class MalformedModelOutputError(KaraokeScoutError):
    """Raised when no JSON payload can be recovered from a model response."""

    def __init__(
        self,
        message: str = "Model output is not valid JSON",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ValidationFailureError(KaraokeScoutError):
    """Raised when a parsed payload does not have the expected top-level shape."""

    def __init__(
        self,
        message: str = "Model payload failed validation",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Collaborator errors
# ---------------------------------------------------------------------------

class GeocodingError(KaraokeScoutError):
    """Raised when a geocoding oracle request fails."""

    def __init__(
        self,
        message: str = "Geocoding request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class BrowserAutomationError(KaraokeScoutError):
    """Raised when a browser session cannot be established or driven."""

    def __init__(
        self,
        message: str = "Browser automation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class PipelineError(KaraokeScoutError):
    """Raised when a run cannot be set up (e.g. no browser, no LLM provider)."""

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(KaraokeScoutError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Taxonomy mapping
# ---------------------------------------------------------------------------

_KIND_BY_TYPE: tuple[tuple[type[BaseException], ErrorKind], ...] = (
    (AuthenticationRequiredError, ErrorKind.AUTHENTICATION_REQUIRED),
    (RateLimitError, ErrorKind.QUOTA_EXCEEDED),
    (TransientNetworkError, ErrorKind.TRANSIENT_NETWORK),
    (MalformedModelOutputError, ErrorKind.MALFORMED_MODEL_OUTPUT),
    (ValidationFailureError, ErrorKind.VALIDATION_FAILURE),
    (TimeoutError, ErrorKind.TIMEOUT),
    (KaraokeScoutError, ErrorKind.PROVIDER_ERROR),
)


def error_kind_for(exc: BaseException) -> ErrorKind:
    """Return the :class:`ErrorKind` that classifies *exc*.

    Exceptions outside the karaoke-scout hierarchy (and not a timeout)
    are reported as :attr:`ErrorKind.UNEXPECTED`.
    """
    for exc_type, kind in _KIND_BY_TYPE:
        if isinstance(exc, exc_type):
            return kind
    return ErrorKind.UNEXPECTED
