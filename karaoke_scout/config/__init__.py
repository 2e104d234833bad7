"""Configuration module - exports Settings and the YAML loader."""

from karaoke_scout.config.loader import build_settings, load_config
from karaoke_scout.config.settings import Settings

__all__ = ["Settings", "build_settings", "load_config"]
