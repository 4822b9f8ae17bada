"""
Protocol definitions for external dependencies.

These interfaces allow dependency injection for testing, enabling us to
swap real implementations (git/gh subprocesses, tmux, wall-clock timers,
file I/O) with mock implementations in tests.
"""

from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from .models import PaneProcess


@runtime_checkable
class GitInterface(Protocol):
    """Interface for local revision-control queries.

    Every method may raise ExternalCommandError. "No result" (detached
    HEAD, no upstream, empty history) is a normal return value, not an error.
    """

    async def worktree_branches(self, repo_path: str) -> Dict[str, str]:
        """Map every worktree path of a repository to its checked-out branch."""
        ...

    async def resolve_branch(self, worktree_path: str) -> Optional[str]:
        """Branch currently checked out in a worktree, or None if detached."""
        ...

    async def recent_merged_pr_numbers(self, repo_path: str, limit: int) -> List[int]:
        """PR numbers referenced by the most recent commits on the main line."""
        ...

    async def status_porcelain(self, worktree_path: str) -> List[str]:
        """Lines of `git status --porcelain`."""
        ...

    async def upstream(self, worktree_path: str) -> Optional[str]:
        """Upstream ref of the current branch, or None."""
        ...

    async def ref_exists(self, worktree_path: str, ref: str) -> bool:
        ...

    async def ahead_behind(self, worktree_path: str, ref: str) -> Tuple[int, int]:
        """(ahead, behind) commit counts of HEAD relative to ref."""
        ...


@runtime_checkable
class HostingInterface(Protocol):
    """Interface for the code-hosting CLI."""

    async def list_pr_status(self, repo_path: str, branches: List[str]) -> List[Dict[str, Any]]:
        """List pull requests whose head branch is one of ``branches``.

        Returns:
            Raw rows with keys headRefName, number, state, statusCheckRollup,
            mergeable, title, url. Unknown keys are ignored by callers.
        """
        ...


@runtime_checkable
class TmuxInterface(Protocol):
    """Interface for terminal multiplexer reads."""

    async def list_processes(self, session: str) -> List[PaneProcess]:
        """Foreground command of every pane in a session ([] if no session)."""
        ...

    async def capture(self, session: str, pane_id: Optional[str] = None,
                      lines: int = 50) -> Optional[str]:
        """Capture the last ``lines`` lines of a pane.

        Returns:
            Pane content as string, or None if the pane does not exist
        """
        ...


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


@runtime_checkable
class SchedulerInterface(Protocol):
    """Clock and timer source.

    The engine never reads the clock or arms timers directly, so tests can
    drive it with a simulated clock.
    """

    def now(self) -> float:
        """Current wall-clock time in seconds since the epoch."""
        ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds."""
        ...


@runtime_checkable
class CacheStoreInterface(Protocol):
    """Durable side-store for the status cache."""

    def load(self) -> Dict[str, Dict[str, Any]]:
        """Load every stored entry ({} if the store is missing or unreadable)."""
        ...

    def save(self, entries: Dict[str, Dict[str, Any]]) -> bool:
        """Replace the stored entries.

        Returns:
            True if successful, False otherwise
        """
        ...
