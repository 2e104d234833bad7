"""Popup/overlay page classifier strategies (see interfaces/page_classifier.py)."""

from karaoke_scout.providers.page_classifier.llm_classifier import LLMPageClassifier
from karaoke_scout.providers.page_classifier.selector_classifier import SelectorPageClassifier

__all__ = ["LLMPageClassifier", "SelectorPageClassifier"]
