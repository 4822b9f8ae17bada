"""
Paths and engine settings for wtsync.

Paths honour WTSYNC_STATE_DIR so tests and parallel installs can isolate
their state. Engine settings are layered: built-in defaults, then the
``engine:`` section of the config file, then WTSYNC_* environment variables.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from .config import get_engine_config, get_projects_dir_setting
from .logging_config import get_logger
from .status_constants import (
    DEFAULT_CAPTURE_LINES,
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_MERGE_HISTORY_LIMIT,
    DEFAULT_QUICK_TIMEOUT,
    DEFAULT_REFRESH_INTERVAL,
    DEFAULT_VISIBLE_DEBOUNCE,
    DEFAULT_WINDOW_SECONDS,
)

logger = get_logger("settings")


# =============================================================================
# Paths
# =============================================================================

def get_state_dir() -> Path:
    """Root directory for wtsync state (~/.wtsync unless WTSYNC_STATE_DIR is set)."""
    env = os.environ.get("WTSYNC_STATE_DIR")
    if env:
        return Path(env)
    return Path.home() / ".wtsync"


def get_cache_path() -> Path:
    """Durable PR status cache file."""
    return get_state_dir() / "pr_status_cache.json"


def get_projects_dir() -> Path:
    """Directory holding ``<project>/`` and ``<project>-branches/`` folders.

    WTSYNC_PROJECTS_DIR wins over the config file's ``projects_dir``; the
    current directory is the fallback.
    """
    env = os.environ.get("WTSYNC_PROJECTS_DIR")
    if env:
        return Path(env).expanduser()
    configured = get_projects_dir_setting()
    if configured:
        return Path(configured).expanduser()
    return Path.cwd()


# =============================================================================
# Engine Settings
# =============================================================================

@dataclass
class EngineSettings:
    """Timing and sizing knobs of the status engine."""

    window_seconds: float = DEFAULT_WINDOW_SECONDS
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    visible_debounce: float = DEFAULT_VISIBLE_DEBOUNCE
    capture_lines: int = DEFAULT_CAPTURE_LINES
    merge_history_limit: int = DEFAULT_MERGE_HISTORY_LIMIT
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    quick_timeout: float = DEFAULT_QUICK_TIMEOUT

    @classmethod
    def load(cls, overrides: Optional[Dict[str, Any]] = None) -> "EngineSettings":
        """Resolve settings from defaults, config file and environment.

        Args:
            overrides: Values applied last (e.g. from CLI options)

        Invalid values are logged and ignored.
        """
        settings = cls()
        settings._apply(get_engine_config(), "config")

        env_values = {}
        for f in fields(cls):
            env_name = f"WTSYNC_{f.name.upper()}"
            if env_name in os.environ:
                env_values[f.name] = os.environ[env_name]
        settings._apply(env_values, "environment")

        if overrides:
            settings._apply(overrides, "overrides")
        return settings

    def _apply(self, values: Dict[str, Any], source: str) -> None:
        known = {f.name: f for f in fields(self)}
        for key, raw in values.items():
            if key not in known:
                logger.warning("Unknown engine setting %r in %s", key, source)
                continue
            cast = int if known[key].type in (int, "int") else float
            try:
                value = cast(raw)
            except (TypeError, ValueError):
                logger.warning("Invalid value %r for %s in %s", raw, key, source)
                continue
            if value <= 0:
                logger.warning("Ignoring non-positive %s=%r from %s", key, raw, source)
                continue
            setattr(self, key, value)
