"""Scroll-to-load with plateau detection.

Each iteration scrolls by a fraction of the viewport, waits for the
network to settle, then counts extractable items.  The loop stops when
the count has not grown for ``plateau_iterations`` consecutive iterations
or after ``max_iterations``, whichever comes first.  A final jump to the
absolute bottom plus an extended wait catches lazy-loaded stragglers.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from karaoke_scout.models.browser import ScrollReport
from karaoke_scout.services.browser import scripts
from karaoke_scout.utils.logging import get_logger

ItemCounter = Callable[[Any], Awaitable[int]]


class PlateauScrollLoader:
    """Scroll until the item count plateaus.

    Parameters
    ----------
    viewport_fraction:
        Fraction of ``window.innerHeight`` scrolled per iteration.
    settle_ms:
        Upper bound on waiting for network idle after each scroll.
    plateau_iterations:
        Consecutive unchanged counts that end the loop (2-3).
    max_iterations:
        Hard cap on scroll iterations.
    final_wait_ms:
        Wait after the final scroll-to-bottom.
    """

    def __init__(
        self,
        viewport_fraction: float = 0.8,
        settle_ms: int = 3000,
        plateau_iterations: int = 2,
        max_iterations: int = 20,
        final_wait_ms: int = 5000,
    ) -> None:
        if plateau_iterations < 1:
            raise ValueError("plateau_iterations must be >= 1")
        self._fraction = viewport_fraction
        self._settle_ms = settle_ms
        self._plateau = plateau_iterations
        self._max_iterations = max_iterations
        self._final_wait_ms = final_wait_ms
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def load(self, page: Any, count_items: ItemCounter, max_iterations: int | None = None) -> ScrollReport:
        """Scroll *page* until *count_items* stops growing."""
        cap = self._max_iterations if max_iterations is None else max_iterations
        count = await count_items(page)
        stable = 0
        iterations = 0
        plateaued = False

        while iterations < cap:
            iterations += 1
            await page.evaluate(scripts.SCROLL_BY_VIEWPORT, self._fraction)
            await self._settle(page)
            current = await count_items(page)
            self._logger.debug(
                "scroll_iteration", iteration=iterations, items=current, previous=count
            )
            if current == count:
                stable += 1
                if stable >= self._plateau:
                    plateaued = True
                    break
            else:
                stable = 0
                count = current

        await page.evaluate(scripts.SCROLL_TO_BOTTOM)
        await page.wait_for_timeout(self._final_wait_ms)
        count = max(count, await count_items(page))

        report = ScrollReport(
            iterations=iterations,
            item_count=count,
            plateaued=plateaued,
            hit_cap=not plateaued and iterations >= cap,
        )
        self._logger.info(
            "scroll_complete",
            iterations=iterations,
            items=count,
            plateaued=plateaued,
            hit_cap=report.hit_cap,
        )
        return report

    async def _settle(self, page: Any) -> None:
        try:
            await page.wait_for_load_state("networkidle", timeout=self._settle_ms)
        except PlaywrightTimeoutError:
            # Feeds keep long-polling connections open; idle may never come.
            pass
        except PlaywrightError as exc:
            self._logger.debug("scroll_settle_failed", error=exc.message)
