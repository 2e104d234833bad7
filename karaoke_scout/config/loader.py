"""YAML configuration loader layered under environment variables.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
#   1. YAML file (optional, e.g. config/config.yaml) - per-deployment tuning
#   2. .env file                                    - local overrides
#   3. Environment variables                        - always win
#
# The YAML file is flat-or-sectioned; sections are flattened so that
#
#   dispatch:
#     concurrency: 2
#
# becomes the Settings field ``dispatch_concurrency``.  Values explicitly
# present in the environment override YAML values with the same name.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from karaoke_scout.config.settings import Settings
from karaoke_scout.utils.errors import ConfigurationError


def load_config(path: str | None = "config/config.yaml") -> dict[str, Any]:
    """Load YAML config and merge environment-based Settings on top.

    Args:
        path: Path to the YAML file.  A missing file yields ``{}``.

    Returns:
        A flat dict of setting names to values.

    Raises:
        ConfigurationError: If the file exists but is not a YAML mapping.
    """
    yaml_config: dict[str, Any] = {}
    if path:
        config_path = Path(path)
        if config_path.exists():
            with open(config_path, encoding="utf-8") as f:
                try:
                    loaded = yaml.safe_load(f) or {}
                except yaml.YAMLError as exc:
                    raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
            if not isinstance(loaded, dict):
                raise ConfigurationError(f"{path} must contain a mapping at top level")
            yaml_config = _flatten(loaded)

    env_settings = Settings()
    env_overrides = {
        name: getattr(env_settings, name)
        for name in env_settings.model_fields_set
    }

    merged: dict[str, Any] = {}
    _deep_merge(merged, yaml_config)
    _deep_merge(merged, env_overrides)
    return merged


def build_settings(path: str | None = "config/config.yaml") -> Settings:
    """Return a :class:`Settings` reflecting YAML + .env + environment."""
    resolved = load_config(path)
    known = {k: v for k, v in resolved.items() if k in Settings.model_fields}
    return Settings(**known)


def _flatten(tree: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested sections into ``section_key`` names."""
    flat: dict[str, Any] = {}
    for key, value in tree.items():
        name = f"{prefix}_{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(_flatten(value, name))
        else:
            flat[name] = value
    return flat


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
