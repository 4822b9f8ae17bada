"""
User configuration for wtsync.

Config file: ~/.wtsync/config.yaml

Example:
    projects_dir: ~/code
    engine:
      window_seconds: 0.5
      refresh_interval: 5
    tools:
      aider:
        display_name: Aider
        process_patterns: [aider]
        working_patterns: ["Thinking"]
        waiting_patterns: ["?", "\\d+\\."]
        idle_patterns: ["> ", ""]
"""

from pathlib import Path
from typing import Any, Dict

import yaml


CONFIG_PATH = Path.home() / ".wtsync" / "config.yaml"


def load_config() -> dict:
    """Load configuration from config file.

    Returns an empty dict when the file is missing, unreadable, or not a
    mapping.
    """
    if not CONFIG_PATH.exists():
        return {}

    try:
        with open(CONFIG_PATH) as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, IOError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(config: dict) -> None:
    """Write configuration to the config file, replacing its contents."""
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    with open(CONFIG_PATH, "w") as f:
        yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)


def _section(name: str) -> Dict[str, Any]:
    value = load_config().get(name)
    return value if isinstance(value, dict) else {}


def get_tool_overrides() -> Dict[str, Any]:
    """Tool pattern tables from the ``tools:`` section."""
    return _section("tools")


def get_engine_config() -> Dict[str, Any]:
    """Engine timing overrides from the ``engine:`` section."""
    return _section("engine")


def get_projects_dir_setting() -> str | None:
    value = load_config().get("projects_dir")
    return str(value) if value else None
