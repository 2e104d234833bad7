"""Clears blocking popups by consulting page classifiers in priority order.

Each round asks the classifiers, in order, for a verdict and applies the
first *actionable* one (click a selector, click by button text, or press
Escape), then re-checks.  The loop ends when every classifier that
answered reports nothing blocking, when no classifier has an actionable
answer, or after ``max_rounds`` -- in every case the driver proceeds.
Popup handling is never fatal.
"""

from __future__ import annotations

from typing import Any, Callable

import structlog
from playwright.async_api import Error as PlaywrightError

from karaoke_scout.interfaces.page_classifier import IPageClassifier
from karaoke_scout.models.browser import PopupClearReport, PopupDecision
from karaoke_scout.services.browser import scripts
from karaoke_scout.utils.logging import get_logger


class PopupHandler:
    """Applies :class:`IPageClassifier` strategies until the page is clear."""

    def __init__(
        self,
        classifiers: list[IPageClassifier],
        max_rounds: int = 3,
        settle_ms: int = 600,
    ) -> None:
        self._classifiers = classifiers
        self._max_rounds = max_rounds
        self._settle_ms = settle_ms
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def clear(
        self,
        page: Any,
        on_popup: Callable[[PopupDecision], None] | None = None,
    ) -> PopupClearReport:
        """Dismiss overlays on *page*.

        Parameters
        ----------
        page:
            The Playwright page.
        on_popup:
            Called with each actionable decision before it is applied
            (the driver uses it to record the POPUP_PRESENT state).
        """
        dismissed = 0
        used: list[str] = []
        for round_no in range(1, self._max_rounds + 1):
            decision, all_clear = await self._consult(page)
            if decision is None:
                report = PopupClearReport(
                    rounds=round_no, dismissed=dismissed, cleared=all_clear, strategies_used=used
                )
                self._logger.debug(
                    "popup_check_done", rounds=round_no, dismissed=dismissed, cleared=all_clear
                )
                return report

            if on_popup is not None:
                on_popup(decision)
            used.append(decision.strategy)
            if await self._apply(page, decision):
                dismissed += 1
            self._logger.info(
                "popup_dismiss_attempt",
                round=round_no,
                strategy=decision.strategy,
                selector=decision.selector,
                button_text=decision.button_text,
                escape=decision.press_escape,
            )
            await page.wait_for_timeout(self._settle_ms)

        self._logger.warning("popup_rounds_exhausted", rounds=self._max_rounds, dismissed=dismissed)
        return PopupClearReport(
            rounds=self._max_rounds, dismissed=dismissed, cleared=False, strategies_used=used
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _consult(self, page: Any) -> tuple[PopupDecision | None, bool]:
        """Return the first actionable decision, and whether all verdicts said 'clear'."""
        verdicts = 0
        all_clear = True
        for classifier in self._classifiers:
            decision = await classifier.classify(page)
            if decision is None:
                continue
            verdicts += 1
            if decision.actionable:
                return decision, False
            if decision.present:
                all_clear = False
        return None, all_clear and verdicts > 0

    async def _apply(self, page: Any, decision: PopupDecision) -> bool:
        try:
            if decision.selector:
                handle = await page.query_selector(decision.selector)
                if handle is not None:
                    await handle.click(timeout=3000)
                    return True
            if decision.button_text:
                if await page.evaluate(scripts.CLICK_BY_TEXT, decision.button_text):
                    return True
            if decision.press_escape:
                await page.keyboard.press("Escape")
                return True
        except PlaywrightError as exc:
            self._logger.debug("popup_dismiss_failed", strategy=decision.strategy, error=exc.message)
        return False
