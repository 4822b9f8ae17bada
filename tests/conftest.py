"""
Pytest configuration for wtsync tests.
"""

import os

import pytest


@pytest.fixture(autouse=True)
def isolated_state_dir(tmp_path, monkeypatch):
    """Keep every test away from the user's ~/.wtsync."""
    state_dir = tmp_path / "wtsync-state"
    monkeypatch.setenv("WTSYNC_STATE_DIR", str(state_dir))
    for name in list(os.environ):
        if name.startswith("WTSYNC_") and name != "WTSYNC_STATE_DIR":
            monkeypatch.delenv(name, raising=False)
    return state_dir
