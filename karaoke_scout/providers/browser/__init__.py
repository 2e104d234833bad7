"""Headless browser backends."""

from karaoke_scout.providers.browser.playwright_provider import PlaywrightBrowserProvider

__all__ = ["PlaywrightBrowserProvider"]
