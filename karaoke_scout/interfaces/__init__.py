"""Abstract interfaces for every external collaborator.

Each concrete provider lives under ``karaoke_scout/providers/`` and is
wired together in ``karaoke_scout/main.py``.
"""

from karaoke_scout.interfaces.browser_provider import IBrowserProvider
from karaoke_scout.interfaces.geocoding_provider import GeocodeResult, IGeocodingProvider
from karaoke_scout.interfaces.llm_provider import ILLMProvider
from karaoke_scout.interfaces.page_classifier import IPageClassifier
from karaoke_scout.interfaces.session_provider import ICredentialChannel, ISessionStore

__all__ = [
    "GeocodeResult",
    "IBrowserProvider",
    "ICredentialChannel",
    "IGeocodingProvider",
    "ILLMProvider",
    "IPageClassifier",
    "ISessionStore",
]
