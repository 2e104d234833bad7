"""Shared pytest fixtures for the karaoke-scout test suite."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from PIL import Image

from fakes import FakePage, make_mock_llm
from karaoke_scout.config.settings import Settings
from karaoke_scout.pipeline.progress_tracker import ProgressTracker

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep real API keys and a developer's .env out of every test."""
    for name in (
        "OPENAI_API_KEY",
        "OPENAI_BASE_URL",
        "ANTHROPIC_API_KEY",
        "OLLAMA_BASE_URL",
        "GOOGLE_MAPS_API_KEY",
        "APP_ENV",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        anthropic_api_key="test-anthropic",
        cookies_dir=str(tmp_path / "cookies"),
        inter_batch_delay_s=0.0,
        geocoding_enabled=False,
    )


# ---------------------------------------------------------------------------
# Progress tracking
# ---------------------------------------------------------------------------


@pytest.fixture
def tracker() -> ProgressTracker:
    return ProgressTracker()


@pytest.fixture
def events(tracker: ProgressTracker) -> list:
    """Every event published on ``tracker`` (all runs)."""
    received: list = []
    tracker.register_listener("*", received.append)
    return received


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------


def _image_bytes(size: tuple[int, int], fmt: str) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color=(200, 30, 30)).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def small_png() -> bytes:
    return _image_bytes((64, 48), "PNG")


@pytest.fixture
def large_jpeg() -> bytes:
    return _image_bytes((3000, 1500), "JPEG")


# ---------------------------------------------------------------------------
# Doubles
# ---------------------------------------------------------------------------


@pytest.fixture
def page() -> FakePage:
    return FakePage("https://example.com/events")


@pytest.fixture
def mock_llm():
    return make_mock_llm()
