"""Headless Chromium via Playwright's async API.

One provider instance owns one browser process.  Each page is created in
its own ``BrowserContext`` so cookies never leak between sessions; the
context is closed together with its page.
"""

from __future__ import annotations

from typing import Any

import structlog
from playwright.async_api import Browser, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from karaoke_scout.interfaces.browser_provider import IBrowserProvider
from karaoke_scout.utils.errors import BrowserAutomationError

logger = structlog.get_logger(logger_name=__name__)

_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--disable-notifications",
    "--no-sandbox",
]


class PlaywrightBrowserProvider(IBrowserProvider):
    """:class:`IBrowserProvider` backed by Playwright Chromium.

    Usable as an async context manager::

        async with PlaywrightBrowserProvider(headless=True) as browser:
            page = await browser.new_page(cookies)
    """

    def __init__(
        self,
        headless: bool = True,
        user_agent: str | None = None,
        viewport: dict[str, int] | None = None,
        navigation_timeout_ms: int = 30000,
    ) -> None:
        self._headless = headless
        self._user_agent = user_agent
        self._viewport = viewport or {"width": 1366, "height": 900}
        self._navigation_timeout_ms = navigation_timeout_ms
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    async def __aenter__(self) -> PlaywrightBrowserProvider:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # IBrowserProvider implementation
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._browser is not None:
            return
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless, args=_LAUNCH_ARGS
            )
        except PlaywrightError as exc:
            await self.close()
            raise BrowserAutomationError(
                f"Could not launch Chromium: {exc.message}", self.get_provider_name()
            ) from exc
        logger.info("browser_launched", headless=self._headless)

    async def new_page(self, cookies: list[dict] | None = None) -> Any:
        if self._browser is None:
            raise BrowserAutomationError("Browser not started", self.get_provider_name())
        try:
            context = await self._browser.new_context(
                viewport=self._viewport,
                user_agent=self._user_agent,
                locale="en-US",
                permissions=[],
            )
            if cookies:
                await context.add_cookies(cookies)
            page = await context.new_page()
        except PlaywrightError as exc:
            raise BrowserAutomationError(
                f"Could not open page: {exc.message}", self.get_provider_name()
            ) from exc
        page.set_default_navigation_timeout(self._navigation_timeout_ms)
        page.set_default_timeout(min(self._navigation_timeout_ms, 15000))
        return page

    async def close_page(self, page: Any) -> None:
        try:
            await page.context.close()
        except PlaywrightError as exc:
            logger.debug("page_close_failed", error=exc.message)

    async def close(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as exc:
                logger.debug("browser_close_failed", error=exc.message)
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    def get_provider_name(self) -> str:
        return "playwright-chromium"
