"""Configuration defaults, config file loading, and environment overrides."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".conductor.json"

# Agent selection
DEFAULT_ALTERNATIVES_CAP = 3
DEFAULT_LOW_CONFIDENCE_THRESHOLD = 0.5

# Stage cache
DEFAULT_CACHE_TTL_SECONDS = 3600
DEFAULT_CACHE_DB_NAME = "stage-cache.db"


def get_data_dir() -> Path:
    env = os.environ.get("CONDUCTOR_DATA_DIR")
    if env:
        return Path(env)
    return Path.home() / ".conductor" / "data"


@dataclass
class ConductorConfig:
    dynamic_agent_selection: bool = False
    dynamic_agent_selection_implement_only: bool = True
    analytics_enabled: bool = False
    analytics_url: str | None = None
    alternatives_cap: int = DEFAULT_ALTERNATIVES_CAP
    low_confidence_threshold: float = DEFAULT_LOW_CONFIDENCE_THRESHOLD
    cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS
    commands_dir: str = ".conductor/commands"
    registry_path: str | None = None
    provider_url: str | None = None

    @property
    def sessions_dir(self) -> Path:
        return get_data_dir() / "sessions"

    @property
    def cache_db_path(self) -> Path:
        return get_data_dir() / DEFAULT_CACHE_DB_NAME

    def dynamic_selection_enabled_for(self, command_name: str) -> bool:
        """Dynamic selection runs for every command when enabled, else only for ``implement``."""
        if self.dynamic_agent_selection:
            return True
        return self.dynamic_agent_selection_implement_only and command_name == "implement"


def load_config(path: Path | None = None) -> ConductorConfig:
    """Load config from the ``conductor`` section of a JSON file with env var overrides."""
    config = ConductorConfig()

    if path and path.exists():
        try:
            data = json.loads(path.read_text())
            section = data.get("conductor", {})
            if isinstance(section, dict):
                _apply(config, section)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    if env_dynamic := os.environ.get("CONDUCTOR_DYNAMIC_AGENT_SELECTION"):
        config.dynamic_agent_selection = env_dynamic.lower() in ("true", "1", "yes")
    if env_analytics := os.environ.get("CONDUCTOR_ANALYTICS_URL"):
        config.analytics_url = env_analytics
        config.analytics_enabled = True
    if env_provider := os.environ.get("CONDUCTOR_PROVIDER_URL"):
        config.provider_url = env_provider
    if env_ttl := os.environ.get("CONDUCTOR_CACHE_TTL_SECONDS"):
        try:
            config.cache_ttl_seconds = int(env_ttl)
        except ValueError:
            logger.warning(f"Ignoring invalid CONDUCTOR_CACHE_TTL_SECONDS: {env_ttl!r}")

    return config


def _apply(config: ConductorConfig, data: dict[str, object]) -> None:
    for key in (
        "dynamic_agent_selection",
        "dynamic_agent_selection_implement_only",
        "analytics_enabled",
    ):
        if key in data and isinstance(data[key], bool):
            setattr(config, key, data[key])
    for key in ("analytics_url", "commands_dir", "registry_path", "provider_url"):
        if key in data and isinstance(data[key], str):
            setattr(config, key, data[key])
    cap = data.get("alternatives_cap")
    if isinstance(cap, int) and not isinstance(cap, bool) and cap >= 0:
        config.alternatives_cap = cap
    threshold = data.get("low_confidence_threshold")
    if isinstance(threshold, int | float) and not isinstance(threshold, bool):
        config.low_confidence_threshold = float(threshold)
    ttl = data.get("cache_ttl_seconds")
    if isinstance(ttl, int) and not isinstance(ttl, bool) and ttl >= 0:
        config.cache_ttl_seconds = ttl
