"""Model-based popup classifier.

Collects the page's visible interactive elements (text, aria-label, role,
a CSS selector) and asks the extraction engine which one dismisses a
blocking dialog.  Returns ``None`` -- "no verdict" -- whenever the model
is unavailable, the call fails, or the answer points at an element that
was not on the list, so the popup handler falls through to the next
strategy.
"""

from __future__ import annotations

from typing import Any

import structlog
from playwright.async_api import Error as PlaywrightError

from karaoke_scout.interfaces.page_classifier import IPageClassifier
from karaoke_scout.models.browser import PopupDecision
from karaoke_scout.models.targets import PromptKind
from karaoke_scout.services import prompts
from karaoke_scout.services.browser import scripts
from karaoke_scout.services.extraction_engine import StructuredExtractionEngine
from karaoke_scout.services.payload_decoder import decode_popup_decision
from karaoke_scout.utils.errors import ValidationFailureError

logger = structlog.get_logger(logger_name=__name__)


class LLMPageClassifier(IPageClassifier):
    def __init__(self, engine: StructuredExtractionEngine) -> None:
        self._engine = engine

    async def classify(self, page: Any) -> PopupDecision | None:
        if not self._engine.is_available():
            return None
        try:
            elements = await page.evaluate(scripts.VISIBLE_ELEMENTS) or []
        except PlaywrightError as exc:
            logger.debug("visible_elements_failed", error=exc.message)
            return None
        if not elements:
            return PopupDecision(present=False, strategy=self.get_strategy_name())

        outcome = await self._engine.run_prompt(
            PromptKind.POPUP_CLASSIFICATION,
            user_prompt=prompts.popup_classification_prompt(elements, page.url),
            max_tokens=300,
        )
        if not outcome.ok:
            return None
        try:
            decision = decode_popup_decision(outcome.payload, self.get_strategy_name())
        except ValidationFailureError as exc:
            logger.debug("popup_reply_rejected", error=exc.message)
            return None

        if not decision.present:
            return decision

        known_selectors = {el.get("selector") for el in elements}
        known_texts = {(el.get("text") or "").strip().lower() for el in elements}
        selector = decision.selector if decision.selector in known_selectors else None
        text = decision.button_text
        if text and text.strip().lower() not in known_texts:
            text = None
        if selector is None and text is None:
            logger.info("popup_reply_not_actionable", reason=decision.reason)
            return None
        return decision.model_copy(update={"selector": selector, "button_text": text})

    def get_strategy_name(self) -> str:
        return "llm"
