"""
Unit test fixtures: mocks wired together on a simulated clock.
"""

import pytest

from wtsync.mocks import ManualScheduler, MemoryCacheStore, MockGit, MockHosting, MockTmux
from wtsync.pr_fetcher import PRStatusFetcher
from wtsync.status_cache import StatusCache


@pytest.fixture
def scheduler():
    return ManualScheduler()

@pytest.fixture
def store():
    return MemoryCacheStore()

@pytest.fixture
def cache(scheduler, store):
    return StatusCache(store=store, clock=scheduler.now)

@pytest.fixture
def mock_git():
    git = MockGit()
    for project, feature in [("web", "feat-a"), ("web", "feat-b"), ("web", "feat-c"),
                             ("api", "fix-a"), ("api", "fix-b")]:
        git.add_worktree(f"/p/{project}-branches/{feature}", feature)
    return git

@pytest.fixture
def mock_hosting():
    return MockHosting()

@pytest.fixture
def mock_tmux():
    return MockTmux()

@pytest.fixture
def fetcher(mock_git, mock_hosting):
    return PRStatusFetcher(mock_git, mock_hosting)
