"""
Mock implementations of protocol interfaces for testing.

These mocks allow unit testing without real git, gh, tmux or timers.
Each mock records the calls made to it so tests can assert on how many
external queries a code path issued.
"""

import copy
import heapq
import itertools
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from .exceptions import ExternalCommandError
from .models import PaneProcess


class MockGit:
    """Mock implementation of GitInterface.

    Worktrees are registered with add_worktree(); worktree_branches() lists
    every registered worktree with a branch, whatever repository path it is
    asked about.
    """

    def __init__(self):
        self.branches: Dict[str, Optional[str]] = {}
        self.listed: Set[str] = set()
        self.merged: Dict[str, List[int]] = {}
        self.default_merged: List[int] = []
        self.porcelain: Dict[str, List[str]] = {}
        self.upstreams: Dict[str, str] = {}
        self.refs: Dict[str, Set[str]] = {}
        self.divergence: Dict[Tuple[str, str], Tuple[int, int]] = {}
        self.fail_paths: Set[str] = set()
        self.calls: List[Tuple[str, Any]] = []

    def add_worktree(self, path: str, branch: Optional[str], listed: bool = True) -> None:
        """Register a worktree. Unlisted ones only resolve via resolve_branch()."""
        self.branches[path] = branch
        if listed:
            self.listed.add(path)
        else:
            self.listed.discard(path)

    def set_merged(self, numbers: Iterable[int], repo_path: Optional[str] = None) -> None:
        if repo_path is None:
            self.default_merged = list(numbers)
        else:
            self.merged[repo_path] = list(numbers)

    def _check(self, path: str) -> None:
        if path in self.fail_paths:
            raise ExternalCommandError(["git", "-C", path], "mock failure", 128)

    def calls_to(self, method: str) -> List[Any]:
        return [args for name, args in self.calls if name == method]

    async def worktree_branches(self, repo_path: str) -> Dict[str, str]:
        self.calls.append(("worktree_branches", repo_path))
        self._check(repo_path)
        return {
            path: branch for path, branch in self.branches.items()
            if path in self.listed and branch
        }

    async def resolve_branch(self, worktree_path: str) -> Optional[str]:
        self.calls.append(("resolve_branch", worktree_path))
        self._check(worktree_path)
        return self.branches.get(worktree_path)

    async def recent_merged_pr_numbers(self, repo_path: str, limit: int) -> List[int]:
        self.calls.append(("recent_merged_pr_numbers", (repo_path, limit)))
        self._check(repo_path)
        return list(self.merged.get(repo_path, self.default_merged))[:limit]

    async def status_porcelain(self, worktree_path: str) -> List[str]:
        self.calls.append(("status_porcelain", worktree_path))
        self._check(worktree_path)
        return list(self.porcelain.get(worktree_path, []))

    async def upstream(self, worktree_path: str) -> Optional[str]:
        self.calls.append(("upstream", worktree_path))
        self._check(worktree_path)
        return self.upstreams.get(worktree_path)

    async def ref_exists(self, worktree_path: str, ref: str) -> bool:
        self.calls.append(("ref_exists", (worktree_path, ref)))
        self._check(worktree_path)
        return ref in self.refs.get(worktree_path, set())

    async def ahead_behind(self, worktree_path: str, ref: str) -> Tuple[int, int]:
        self.calls.append(("ahead_behind", (worktree_path, ref)))
        self._check(worktree_path)
        return self.divergence.get((worktree_path, ref), (0, 0))


class MockHosting:
    """Mock implementation of HostingInterface.

    PR rows are registered per head branch. Rows are returned for every
    requested branch that has one, regardless of repository.
    """

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.extra_rows: List[Dict[str, Any]] = []
        self.fail_repos: Set[str] = set()
        self.error: Optional[ExternalCommandError] = None
        self.calls: List[Tuple[str, List[str]]] = []

    def add_pr(self, branch: str, number: int, state: str = "OPEN",
               checks: Optional[List[Dict[str, Any]]] = None,
               mergeable: str = "MERGEABLE", title: str = "", url: str = "") -> None:
        self.rows[branch] = {
            "headRefName": branch,
            "number": number,
            "state": state,
            "statusCheckRollup": checks if checks is not None else [],
            "mergeable": mergeable,
            "title": title or f"PR {number}",
            "url": url or f"https://example.invalid/pull/{number}",
        }

    async def list_pr_status(self, repo_path: str, branches: List[str]) -> List[Dict[str, Any]]:
        self.calls.append((repo_path, list(branches)))
        if self.error is not None:
            raise self.error
        if repo_path in self.fail_repos:
            raise ExternalCommandError(["gh", "pr", "list"], "mock failure", 1)
        rows = [copy.deepcopy(self.rows[b]) for b in branches if b in self.rows]
        return rows + copy.deepcopy(self.extra_rows)


class MockTmux:
    """Mock implementation of TmuxInterface."""

    def __init__(self):
        # session -> list of (PaneProcess, content)
        self.sessions: Dict[str, List[Tuple[PaneProcess, str]]] = {}
        self.fail = False
        self.captures: List[Tuple[str, Optional[str], int]] = []

    def set_pane(self, session: str, command: str, content: str,
                 pane_id: Optional[str] = None) -> str:
        panes = self.sessions.setdefault(session, [])
        pane_id = pane_id or f"%{sum(len(p) for p in self.sessions.values())}"
        panes.append((PaneProcess(pane_id=pane_id, command=command), content))
        return pane_id

    def _check(self) -> None:
        if self.fail:
            raise ExternalCommandError(["tmux"], "mock failure")

    async def list_processes(self, session: str) -> List[PaneProcess]:
        self._check()
        return [process for process, _ in self.sessions.get(session, [])]

    async def capture(self, session: str, pane_id: Optional[str] = None,
                      lines: int = 50) -> Optional[str]:
        self._check()
        self.captures.append((session, pane_id, lines))
        for process, content in self.sessions.get(session, []):
            if pane_id is None or process.pane_id == pane_id:
                return '\n'.join(content.split('\n')[-lines:])
        return None


class ManualTimer:
    def __init__(self, when: float):
        self.when = when
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """SchedulerInterface driven by hand.

    Time only moves when advance() is called; due callbacks then run in
    due-time order, with the clock set to each callback's due time.
    """

    def __init__(self, start: float = 1_000_000.0):
        self._now = start
        self._queue: List[Tuple[float, int, ManualTimer, Callable[[], None]]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self._now + max(0.0, delay))
        heapq.heappush(self._queue, (timer.when, next(self._seq), timer, callback))
        return timer

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due callbacks. Returns how many ran."""
        target = self._now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, timer, callback = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = max(self._now, when)
            callback()
            fired += 1
        self._now = target
        return fired

    @property
    def pending(self) -> int:
        return sum(1 for _, _, timer, _ in self._queue if not timer.cancelled)


class MemoryCacheStore:
    """In-memory CacheStoreInterface that keeps a copy of every save."""

    def __init__(self, entries: Optional[Dict[str, Dict[str, Any]]] = None):
        self.entries: Dict[str, Dict[str, Any]] = copy.deepcopy(entries or {})
        self.saves = 0

    def load(self) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self.entries)

    def save(self, entries: Dict[str, Dict[str, Any]]) -> bool:
        self.entries = copy.deepcopy(entries)
        self.saves += 1
        return True
