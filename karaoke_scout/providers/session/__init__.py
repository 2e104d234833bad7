"""Session persistence and interactive credential supply."""

from karaoke_scout.providers.session.cookie_file_store import CookieFileStore
from karaoke_scout.providers.session.interactive_channel import InteractiveCredentialChannel

__all__ = ["CookieFileStore", "InteractiveCredentialChannel"]
