"""Abstract base class for the headless browser backend.

The driver only needs pages: a browser provider starts one browser per
scraping task and hands out isolated pages (each with its own cookie jar).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


# Concrete implementation: PlaywrightBrowserProvider
# Located in: karaoke_scout/providers/browser/
class IBrowserProvider(ABC):
    """Contract for launching a browser and creating pages."""

    @abstractmethod
    async def start(self) -> None:
        """Launch the browser.

        Raises
        ------
        BrowserAutomationError
            If the browser cannot be launched.  This is a batch-setup
            failure and propagates to the pipeline's caller.
        """

    @abstractmethod
    async def new_page(self, cookies: list[dict] | None = None) -> Any:
        """Open a fresh page in a new context, seeded with *cookies*."""

    @abstractmethod
    async def close_page(self, page: Any) -> None:
        """Close *page* and its context.  Never raises."""

    @abstractmethod
    async def close(self) -> None:
        """Shut the browser down.  Safe to call more than once."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"playwright-chromium"``."""
