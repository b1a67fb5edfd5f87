"""Configuration hierarchy: later sources override earlier ones.

  1. Package defaults
  2. Global config    (~/.gentrack/config.yaml)
  3. Project config   (gentrack.yaml in cwd or the nearest parent)
  4. Environment      (RUNWARE_API_KEY, GENTRACK_<KEY>)
  5. Runtime overrides (None means "not given")
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from gentrack.config.defaults import get_defaults

logger = logging.getLogger(__name__)

_GLOBAL_CONFIG_PATH = Path.home() / ".gentrack" / "config.yaml"
_PROJECT_CONFIG_NAME = "gentrack.yaml"
_ENV_PREFIX = "GENTRACK_"

# Every default key is settable as GENTRACK_<KEY>; the API key keeps the service's name
_ENV_MAP: dict[str, str] = {
    "RUNWARE_API_KEY": "api_key",
    **{f"{_ENV_PREFIX}{key.upper()}": key for key in get_defaults()},
}


def load_config_hierarchy(**runtime_overrides: Any) -> dict[str, Any]:
    """Merge every configuration source into one flat dict."""
    config = get_defaults()

    layers = [_load_yaml_config(_GLOBAL_CONFIG_PATH)]
    project_path = _find_project_config()
    if project_path is not None:
        layers.append(_load_yaml_config(project_path))
    layers.append(_load_env_vars())

    for layer in layers:
        if layer:
            config.update(layer)

    config.update({k: v for k, v in runtime_overrides.items() if v is not None})
    return config


def _load_yaml_config(path: Path) -> dict[str, Any] | None:
    if not path.is_file():
        return None
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load config %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.warning("Config file %s is not a mapping, ignoring", path)
        return None
    return data


def _find_project_config() -> Path | None:
    cwd = Path.cwd()
    candidates = (directory / _PROJECT_CONFIG_NAME for directory in (cwd, *cwd.parents))
    return next((c for c in candidates if c.is_file()), None)


def _load_env_vars() -> dict[str, Any]:
    return {
        key: _coerce_env_value(key, os.environ[name])
        for name, key in _ENV_MAP.items()
        if name in os.environ
    }


def _coerce_env_value(key: str, value: str) -> Any:
    """Convert ``value`` to the type of the key's default.

    Unparseable values are passed through; settings validation reports them.
    """
    default = get_defaults().get(key)
    if isinstance(default, bool) or not isinstance(default, (int, float)):
        return value
    try:
        return type(default)(value)
    except ValueError:
        logger.warning(
            "Cannot convert %s%s=%r to %s", _ENV_PREFIX, key.upper(), value, type(default).__name__
        )
        return value
