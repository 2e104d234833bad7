"""Pluggable page classifiers for popup / overlay negotiation.

Social sites change their DOM without notice, so overlay detection is a
chain of strategies tried in priority order rather than one hard-coded
fallthrough.  The popup handler asks each classifier in turn; the first
*actionable* :class:`~karaoke_scout.models.browser.PopupDecision` wins.

Strategies shipped:
    - LLMPageClassifier       (model reads the visible buttons)
    - SelectorPageClassifier  (prioritized selector / button-text list)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from karaoke_scout.models.browser import PopupDecision


class IPageClassifier(ABC):
    """Contract for a strategy that spots blocking overlays on a page."""

    @abstractmethod
    async def classify(self, page: Any) -> PopupDecision | None:
        """Inspect *page* and decide whether an overlay blocks it.

        Parameters
        ----------
        page:
            A Playwright ``Page`` (or a compatible test double).

        Returns
        -------
        PopupDecision or None
            ``None`` when this strategy cannot reach a verdict (e.g. the
            model is unavailable), so the next strategy should be tried.
            Implementations never raise.
        """

    @abstractmethod
    def get_strategy_name(self) -> str:
        """Return a short identifier used in logs and reports."""
