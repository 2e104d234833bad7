"""karaoke-scout composition root.

Wires providers, services and the pipeline together from a
:class:`Settings` instance.  Nothing else in the package constructs
providers; the CLI (and any embedding application) goes through
:func:`build_pipeline` / :func:`run_extraction`.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from karaoke_scout.config.settings import Settings
from karaoke_scout.interfaces.geocoding_provider import IGeocodingProvider
from karaoke_scout.interfaces.llm_provider import ILLMProvider
from karaoke_scout.models.records import ExtractionRunResult
from karaoke_scout.models.targets import ExtractionTarget
from karaoke_scout.pipeline.dispatcher import TaskDispatcher
from karaoke_scout.pipeline.orchestrator import ShowExtractionPipeline
from karaoke_scout.pipeline.progress_tracker import ProgressTracker
from karaoke_scout.pipeline.session_registry import SessionRegistry
from karaoke_scout.providers.browser.playwright_provider import PlaywrightBrowserProvider
from karaoke_scout.providers.geocoding.cached_provider import CachedGeocodingProvider
from karaoke_scout.providers.geocoding.google_provider import GoogleGeocodingProvider
from karaoke_scout.providers.geocoding.nominatim_provider import NominatimGeocodingProvider
from karaoke_scout.providers.llm.anthropic_provider import AnthropicLLMProvider
from karaoke_scout.providers.llm.ollama_provider import OllamaLLMProvider
from karaoke_scout.providers.llm.openai_provider import OpenAILLMProvider
from karaoke_scout.providers.page_classifier.llm_classifier import LLMPageClassifier
from karaoke_scout.providers.page_classifier.selector_classifier import SelectorPageClassifier
from karaoke_scout.providers.session.cookie_file_store import CookieFileStore
from karaoke_scout.providers.session.interactive_channel import InteractiveCredentialChannel
from karaoke_scout.services.browser.driver import BrowserAutomationDriver
from karaoke_scout.services.browser.login_detector import LoginDetector
from karaoke_scout.services.browser.popup_handler import PopupHandler
from karaoke_scout.services.browser.scroll_loader import PlateauScrollLoader
from karaoke_scout.services.extraction_engine import StructuredExtractionEngine
from karaoke_scout.services.image_fetcher import ImageFetcher
from karaoke_scout.services.reconciliation.engine import ReconciliationEngine
from karaoke_scout.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Select the first configured LLM provider.

    Priority order: Anthropic -> OpenAI -> Ollama.  Ollama is returned even
    when no URL is set; it then reports itself unavailable and the run
    fails fast with a ``PipelineError``.
    """
    if app_settings.anthropic_api_key:
        return AnthropicLLMProvider(settings=app_settings)
    if app_settings.openai_api_key:
        return OpenAILLMProvider(settings=app_settings)
    return OllamaLLMProvider(settings=app_settings)


def _build_geocoder(
    app_settings: Settings, http_client: httpx.AsyncClient
) -> IGeocodingProvider | None:
    """Google when a key is configured, Nominatim otherwise, both cached."""
    if not app_settings.geocoding_enabled:
        return None
    inner: IGeocodingProvider
    if app_settings.google_maps_api_key:
        inner = GoogleGeocodingProvider(http_client, app_settings.google_maps_api_key)
    else:
        inner = NominatimGeocodingProvider(http_client, app_settings.nominatim_user_agent)
    return CachedGeocodingProvider(inner, ttl=app_settings.geocode_cache_ttl_s)


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def build_pipeline(
    app_settings: Settings | None = None,
    *,
    venue_validation: bool | None = None,
    interactive_login: bool | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Construct every component of an extraction run.

    Parameters
    ----------
    app_settings:
        Settings to build from.  Defaults to a fresh ``Settings()``.
    venue_validation:
        Override ``settings.venue_validation_enabled`` for this run.
    interactive_login:
        Override ``settings.interactive_login`` for this run.
    http_client:
        Shared client for image downloads and geocoding.  One is created
        when omitted; the caller owns closing it (``components["http_client"]``).

    Returns
    -------
    dict
        Components keyed by role name; ``"pipeline"`` is the entry point.
    """
    s = app_settings or Settings()
    if venue_validation is None:
        venue_validation = s.venue_validation_enabled
    if interactive_login is None:
        interactive_login = s.interactive_login

    http = http_client or httpx.AsyncClient(timeout=30.0, follow_redirects=True)
    tracker = ProgressTracker()

    # -- Model --
    llm = _build_llm_provider(s)
    engine = StructuredExtractionEngine(llm, retry_policy=s.retry_policy())

    # -- Reconciliation --
    geocoder = _build_geocoder(s, http)
    reconciler = ReconciliationEngine(
        engine,
        geocoder,
        venue_validation=venue_validation,
        **s.reconciliation_options(),
    )

    # -- Browser automation --
    sessions = SessionRegistry(CookieFileStore(s.cookies_dir))
    channel = InteractiveCredentialChannel(tracker, enabled=interactive_login)
    navigation_timeout_ms = int(s.navigation_timeout_s * 1000)
    browser = PlaywrightBrowserProvider(
        headless=s.browser_headless,
        user_agent=s.browser_user_agent,
        navigation_timeout_ms=navigation_timeout_ms,
    )
    popup_handler = PopupHandler(
        [LLMPageClassifier(engine), SelectorPageClassifier()],
        max_rounds=s.popup_max_rounds,
    )
    driver = BrowserAutomationDriver(
        browser,
        sessions,
        LoginDetector(),
        popup_handler,
        PlateauScrollLoader(**s.scroll_options()),
        engine=engine,
        credential_channel=channel,
        tracker=tracker,
        navigation_timeout_ms=navigation_timeout_ms,
        feed_zoom=s.feed_zoom,
        min_text_chars=s.page_min_text_chars,
        credential_timeout=s.credential_timeout_s,
        snapshots_enabled=s.snapshots_enabled,
    )

    pipeline = ShowExtractionPipeline(
        engine,
        TaskDispatcher(**s.dispatcher_options()),
        reconciler,
        tracker,
        driver=driver,
        browser=browser,
        image_fetcher=ImageFetcher(http),
        scrape_concurrency=s.scrape_concurrency,
        chunk_chars=s.page_chunk_chars,
    )

    _logger.info(
        "pipeline_built",
        llm_provider=llm.get_provider_name(),
        geocoder=geocoder.get_provider_name() if geocoder is not None else None,
        venue_validation=venue_validation,
        interactive_login=interactive_login,
    )
    return {
        "pipeline": pipeline,
        "progress_tracker": tracker,
        "credential_channel": channel,
        "session_registry": sessions,
        "engine": engine,
        "reconciler": reconciler,
        "browser": browser,
        "http_client": http,
    }


async def run_extraction(
    targets: list[ExtractionTarget],
    components: dict[str, Any] | None = None,
    run_id: str | None = None,
) -> ExtractionRunResult:
    """Run *targets* through a pipeline built by :func:`build_pipeline`.

    Closes the shared HTTP client and waits for pending progress listeners
    before returning.
    """
    parts = components or build_pipeline()
    try:
        return await parts["pipeline"].run(targets, run_id=run_id)
    finally:
        await parts["progress_tracker"].drain()
        await parts["http_client"].aclose()
