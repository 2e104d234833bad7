"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read (highest priority first) from:
#
#   1. Environment variables - e.g. OPENAI_API_KEY=sk-abc123
#   2. .env file in the working directory
#   3. The defaults below
#
# Field ``dispatch_concurrency`` maps to env var ``DISPATCH_CONCURRENCY``.
#
# The ``*_options()`` / ``retry_policy()`` helpers turn the flat settings
# into the small option objects each component takes, so components never
# depend on Settings directly and tests can build them in one line.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict

from karaoke_scout.utils.concurrency import RetryPolicy


class Settings(BaseSettings):
    """karaoke-scout settings.  Environment variables override defaults."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # === LLM Providers ===
    # Empty string = "not configured"; provider selection skips it.
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_text_model: str = ""
    openai_vision_model: str = ""
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    ollama_base_url: str = ""
    llm_timeout_s: float = 25.0

    # === Geocoding oracle ===
    google_maps_api_key: str = ""
    nominatim_user_agent: str = "karaoke-scout/0.1"
    geocoding_enabled: bool = True
    geocode_cache_ttl_s: int = 86400

    # === Task dispatcher ===
    dispatch_concurrency: int = 3
    job_timeout_s: float = 30.0
    inter_batch_delay_s: float = 0.1

    # === Quota retry policy ===
    retry_max_attempts: int = 4
    retry_base_delay_s: float = 1.0
    retry_max_delay_s: float = 30.0
    retry_jitter: float = 0.25

    # === Browser automation ===
    browser_headless: bool = True
    browser_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    navigation_timeout_s: float = 30.0
    scrape_concurrency: int = 2
    scroll_viewport_fraction: float = 0.8
    scroll_settle_ms: int = 3000
    scroll_plateau_iterations: int = 2
    scroll_max_iterations: int = 20
    scroll_final_wait_ms: int = 5000
    feed_zoom: float = 0.5
    popup_max_rounds: int = 3
    snapshots_enabled: bool = True
    page_min_text_chars: int = 200
    page_chunk_chars: int = 12000

    # === Sessions / credentials ===
    cookies_dir: str = "data/cookies"
    credential_timeout_s: float = 10.0
    interactive_login: bool = False

    # === Reconciliation ===
    geo_completion_batch_size: int = 5
    geo_completion_auto_apply: float = 0.9
    venue_lookup_auto_apply: float = 0.8
    low_confidence_skip: float = 0.4
    venue_adjacency_threshold_m: float = 50.0
    venue_lookup_threshold_miles: float = 0.5
    venue_validation_enabled: bool = False

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_llm_providers(self) -> list[str]:
        """Return provider names that have credentials or a URL configured."""
        providers: list[str] = []
        if self.anthropic_api_key:
            providers.append("anthropic")
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers

    # ------------------------------------------------------------------
    # Component option builders
    # ------------------------------------------------------------------

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay_s,
            max_delay=self.retry_max_delay_s,
            jitter=self.retry_jitter,
        )

    def dispatcher_options(self) -> dict[str, float | int]:
        return {
            "concurrency": self.dispatch_concurrency,
            "job_timeout": self.job_timeout_s,
            "inter_batch_delay": self.inter_batch_delay_s,
        }

    def scroll_options(self) -> dict[str, float | int]:
        return {
            "viewport_fraction": self.scroll_viewport_fraction,
            "settle_ms": self.scroll_settle_ms,
            "plateau_iterations": self.scroll_plateau_iterations,
            "max_iterations": self.scroll_max_iterations,
            "final_wait_ms": self.scroll_final_wait_ms,
        }

    def reconciliation_options(self) -> dict[str, float | int]:
        return {
            "batch_size": self.geo_completion_batch_size,
            "auto_apply_threshold": self.geo_completion_auto_apply,
            "skip_threshold": self.low_confidence_skip,
            "lookup_threshold_m": self.venue_lookup_threshold_miles * 1609.344,
            "adjacency_threshold_m": self.venue_adjacency_threshold_m,
            "venue_auto_apply_threshold": self.venue_lookup_auto_apply,
        }
