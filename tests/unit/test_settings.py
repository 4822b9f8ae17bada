"""
Unit tests for settings module.
"""

from pathlib import Path

import pytest

from wtsync import config
from wtsync.settings import EngineSettings, get_cache_path, get_projects_dir, get_state_dir
from wtsync.status_constants import DEFAULT_REFRESH_INTERVAL, DEFAULT_WINDOW_SECONDS


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    monkeypatch.setattr(config, "CONFIG_PATH", path)
    return path


class TestPaths:
    """Tests for state and project directory resolution."""

    def test_state_dir_from_env(self, isolated_state_dir):
        assert get_state_dir() == isolated_state_dir

    def test_state_dir_default(self, monkeypatch):
        monkeypatch.delenv("WTSYNC_STATE_DIR")
        assert get_state_dir() == Path.home() / ".wtsync"

    def test_cache_path(self, isolated_state_dir):
        assert get_cache_path() == isolated_state_dir / "pr_status_cache.json"

    def test_projects_dir_env_wins(self, config_file, monkeypatch, tmp_path):
        config_file.write_text("projects_dir: /from/config\n")
        monkeypatch.setenv("WTSYNC_PROJECTS_DIR", str(tmp_path))
        assert get_projects_dir().resolve() == tmp_path.resolve()

    def test_projects_dir_from_config(self, config_file):
        config_file.write_text("projects_dir: /from/config\n")
        assert get_projects_dir() == Path("/from/config")

    def test_projects_dir_defaults_to_cwd(self, config_file, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        assert get_projects_dir().resolve() == tmp_path.resolve()


class TestEngineSettings:
    """Tests for layered engine settings."""

    def test_defaults(self, config_file):
        settings = EngineSettings.load()
        assert settings.window_seconds == DEFAULT_WINDOW_SECONDS
        assert settings.refresh_interval == DEFAULT_REFRESH_INTERVAL

    def test_config_section(self, config_file):
        config_file.write_text("engine:\n  window_seconds: 1.5\n  capture_lines: 80\n")
        settings = EngineSettings.load()
        assert settings.window_seconds == 1.5
        assert settings.capture_lines == 80

    def test_env_beats_config(self, config_file, monkeypatch):
        config_file.write_text("engine:\n  refresh_interval: 10\n")
        monkeypatch.setenv("WTSYNC_REFRESH_INTERVAL", "20")
        assert EngineSettings.load().refresh_interval == 20.0

    def test_overrides_applied_last(self, config_file, monkeypatch):
        monkeypatch.setenv("WTSYNC_REFRESH_INTERVAL", "20")
        assert EngineSettings.load({"refresh_interval": 3}).refresh_interval == 3.0

    def test_int_fields_cast(self, config_file, monkeypatch):
        monkeypatch.setenv("WTSYNC_MERGE_HISTORY_LIMIT", "40")
        value = EngineSettings.load().merge_history_limit
        assert value == 40 and isinstance(value, int)

    def test_invalid_values_ignored(self, config_file, caplog):
        config_file.write_text("engine:\n  window_seconds: soon\n  refresh_interval: -1\n  bogus: 1\n")
        settings = EngineSettings.load()
        assert settings.window_seconds == DEFAULT_WINDOW_SECONDS
        assert settings.refresh_interval == DEFAULT_REFRESH_INTERVAL
        assert "Unknown engine setting" in caplog.text
        assert "Invalid value" in caplog.text
        assert "non-positive" in caplog.text
