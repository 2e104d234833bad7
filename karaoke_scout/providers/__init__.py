"""Concrete adapters for the interfaces in ``karaoke_scout.interfaces``."""
