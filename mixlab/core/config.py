"""
mixlab configuration — persistent defaults for budget allocation.

Stores user preferences at ~/.mixlab/config.yaml.
Supports a precedence chain: CLI flags > env vars > config file > defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from mixlab.mmm.models.base import SUPPORTED_OBJECTIVES

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".mixlab"
CONFIG_FILE = CONFIG_DIR / "config.yaml"

SUPPORTED_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

# Env var name per config field
_ENV_KEYS: dict[str, str] = {
    "step": "MIXLAB_STEP",
    "objective": "MIXLAB_OBJECTIVE",
    "exhaust_budget": "MIXLAB_EXHAUST_BUDGET",
    "max_grid_channels": "MIXLAB_MAX_GRID_CHANNELS",
    "log_level": "MIXLAB_LOG_LEVEL",
}

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


@dataclass
class MixlabConfig:
    """User configuration for mixlab."""

    step: float = 1.0
    objective: str = "maximize_outcome"
    exhaust_budget: bool = True
    max_grid_channels: int = 3
    log_level: str = "WARNING"

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "objective": self.objective,
            "exhaust_budget": self.exhaust_budget,
            "max_grid_channels": self.max_grid_channels,
            "log_level": self.log_level,
        }


def _coerce(key: str, value: Any) -> Any:
    """Convert a raw YAML/env/CLI value to the field's type."""
    if key == "step":
        return float(value)
    if key == "max_grid_channels":
        return int(value)
    if key == "exhaust_budget":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise ValueError(f"Invalid boolean for exhaust_budget: '{value}'")
    if key == "log_level":
        return str(value).upper()
    if key == "objective":
        return str(value)
    raise KeyError(f"Unknown config key: '{key}'. Known keys: {list(_ENV_KEYS)}")


def _validate(config: MixlabConfig) -> MixlabConfig:
    if config.objective not in SUPPORTED_OBJECTIVES:
        raise ValueError(
            f"Unsupported objective: '{config.objective}'. Supported objectives: {SUPPORTED_OBJECTIVES}"
        )
    if config.step <= 0:
        raise ValueError(f"step must be positive, got {config.step}")
    if config.max_grid_channels < 1:
        raise ValueError(f"max_grid_channels must be at least 1, got {config.max_grid_channels}")
    if config.log_level not in SUPPORTED_LOG_LEVELS:
        raise ValueError(
            f"Unsupported log level: '{config.log_level}'. Supported levels: {SUPPORTED_LOG_LEVELS}"
        )
    return config


def load_config(config_path: Path | None = None) -> MixlabConfig:
    """
    Load config from YAML file.

    Returns defaults if the file doesn't exist or can't be parsed.
    """
    path = config_path or CONFIG_FILE

    if not path.exists():
        return MixlabConfig()

    try:
        raw = yaml.safe_load(path.read_text()) or {}
    except FileNotFoundError:
        return MixlabConfig()
    except yaml.YAMLError:
        logger.warning("Failed to parse config at %s, using defaults.", path)
        return MixlabConfig()

    if not isinstance(raw, dict):
        logger.warning("Config at %s is not a mapping, using defaults.", path)
        return MixlabConfig()

    values = {}
    for key, value in raw.items():
        if key not in _ENV_KEYS:
            logger.warning("Ignoring unknown config key '%s' in %s", key, path)
            continue
        try:
            values[key] = _coerce(key, value)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid value %r for '%s' in %s", value, key, path)

    return MixlabConfig(**values)


def save_config(config: MixlabConfig, config_path: Path | None = None) -> Path:
    """
    Save config to YAML.

    Returns the path written to.
    """
    path = config_path or CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(config.to_dict(), default_flow_style=False))
    return path


def set_config_value(key: str, value: str, config_path: Path | None = None) -> MixlabConfig:
    """Update a single key in the saved config, validating the result."""
    config = load_config(config_path)
    setattr(config, key, _coerce(key, value))
    _validate(config)
    save_config(config, config_path)
    return config


def resolve_config(
    step: float | None = None,
    objective: str | None = None,
    exhaust_budget: bool | None = None,
    max_grid_channels: int | None = None,
    log_level: str | None = None,
    config_path: Path | None = None,
) -> MixlabConfig:
    """
    Build a resolved config using precedence: CLI flags > env vars > config file > defaults.

    Raises:
        ValueError: If a resolved value is invalid (e.g. unknown objective).
    """
    cli_values = {
        "step": step,
        "objective": objective,
        "exhaust_budget": exhaust_budget,
        "max_grid_channels": max_grid_channels,
        "log_level": log_level,
    }
    resolved = load_config(config_path).to_dict()

    for key, env_name in _ENV_KEYS.items():
        env_value = os.environ.get(env_name)
        if env_value:
            resolved[key] = _coerce(key, env_value)
        if cli_values[key] is not None:
            resolved[key] = _coerce(key, cli_values[key])

    return _validate(MixlabConfig(**resolved))
