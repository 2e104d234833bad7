"""Deterministic popup classifier: prioritized selectors and button texts.

Tried after the model-based classifier, or first when no model is
available.  Order matters: the least destructive dismissal comes first
("Not now" before "Close", "Block" for notification prompts), and the
Escape key is the last resort for an unlabeled full-screen overlay.
"""

from __future__ import annotations

from typing import Any

import structlog
from playwright.async_api import Error as PlaywrightError

from karaoke_scout.interfaces.page_classifier import IPageClassifier
from karaoke_scout.models.browser import PopupDecision
from karaoke_scout.services.browser import scripts

logger = structlog.get_logger(logger_name=__name__)

DEFAULT_SELECTORS: tuple[str, ...] = (
    '[aria-label="Not now"]',
    '[aria-label="Close"]',
    '[role="dialog"] [aria-label="Close"]',
    'button[data-cookiebanner="accept_only_essential_button"]',
    '[data-testid="cookie-policy-manage-dialog-decline-button"]',
    "#onetrust-reject-all-handler",
    "#onetrust-accept-btn-handler",
    'button[aria-label*="dismiss" i]',
)

DEFAULT_BUTTON_TEXTS: tuple[str, ...] = (
    "Not now",
    "Not Now",
    "Block",
    "Decline optional cookies",
    "Only allow essential cookies",
    "Reject all",
    "Close",
    "No thanks",
    "Maybe later",
    "Accept all",
)


class SelectorPageClassifier(IPageClassifier):
    """Finds known dismiss buttons by selector, then by visible text."""

    def __init__(
        self,
        selectors: tuple[str, ...] = DEFAULT_SELECTORS,
        button_texts: tuple[str, ...] = DEFAULT_BUTTON_TEXTS,
        escape_on_overlay: bool = True,
    ) -> None:
        self._selectors = selectors
        self._button_texts = button_texts
        self._escape_on_overlay = escape_on_overlay

    async def classify(self, page: Any) -> PopupDecision | None:
        try:
            for selector in self._selectors:
                handle = await page.query_selector(selector)
                if handle is not None and await handle.is_visible():
                    return PopupDecision(
                        present=True,
                        selector=selector,
                        strategy=self.get_strategy_name(),
                        reason="known dismiss selector visible",
                    )

            matched = await page.evaluate(scripts.FIND_BUTTON_TEXT, list(self._button_texts))
            if matched:
                return PopupDecision(
                    present=True,
                    button_text=matched,
                    strategy=self.get_strategy_name(),
                    reason="known dismiss text visible",
                )

            if self._escape_on_overlay and await page.evaluate(scripts.HAS_BLOCKING_OVERLAY):
                return PopupDecision(
                    present=True,
                    press_escape=True,
                    strategy=self.get_strategy_name(),
                    reason="high z-index overlay without known button",
                )
        except PlaywrightError as exc:
            logger.debug("selector_classifier_failed", error=exc.message)
            return None

        return PopupDecision(present=False, strategy=self.get_strategy_name())

    def get_strategy_name(self) -> str:
        return "selector"
