"""
Real implementations of protocol interfaces.

These are production implementations that shell out to git and gh through
an asyncio subprocess with a bounded timeout, use libtmux for multiplexer
reads, and arm timers on the running event loop.
"""

import asyncio
import json
import os
import re
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import libtmux
from libtmux.exc import LibTmuxException
from libtmux._internal.query_list import ObjectDoesNotExist

from .exceptions import CommandTimeoutError, ExternalCommandError
from .logging_config import get_logger
from .models import PaneProcess
from .status_constants import (
    DEFAULT_CAPTURE_LINES,
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_QUICK_TIMEOUT,
)

logger = get_logger("commands")

MERGED_PR_PATTERN = re.compile(r'\(#(\d+)\)')

PR_LIST_FIELDS = "number,state,headRefName,mergeable,statusCheckRollup,title,url"
PR_LIST_LIMIT = 200


async def run_command(
    args: Sequence[str],
    cwd: Optional[str] = None,
    timeout: float = DEFAULT_COMMAND_TIMEOUT,
) -> str:
    """Run a command and return its stdout.

    Raises:
        CommandTimeoutError: if it runs longer than timeout (the process is killed)
        ExternalCommandError: if it exits non-zero or cannot be started
    """
    args = list(args)
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
        raise ExternalCommandError(args, str(e)) from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise CommandTimeoutError(args, timeout)

    if proc.returncode != 0:
        message = stderr.decode(errors="replace").strip() or f"exit status {proc.returncode}"
        raise ExternalCommandError(args, message, proc.returncode)
    return stdout.decode(errors="replace")


# =============================================================================
# Output parsers
# =============================================================================

def parse_worktree_porcelain(output: str) -> Dict[str, str]:
    """Map worktree paths to branch names from `git worktree list --porcelain`.

    Detached worktrees (no `branch` line) are left out.
    """
    result: Dict[str, str] = {}
    current: Optional[str] = None
    for line in output.splitlines():
        if line.startswith("worktree "):
            current = line[len("worktree "):]
        elif line.startswith("branch ") and current is not None:
            branch = line[len("branch "):]
            if branch.startswith("refs/heads/"):
                branch = branch[len("refs/heads/"):]
            result[current] = branch
        elif not line.strip():
            current = None
    return result


def parse_merged_pr_numbers(log_output: str) -> List[int]:
    """PR numbers referenced as `(#123)` in commit subjects, in log order."""
    return [int(m) for m in MERGED_PR_PATTERN.findall(log_output)]


def parse_ahead_behind(output: str) -> Tuple[int, int]:
    """Parse `git rev-list --left-right --count HEAD...<ref>` output."""
    parts = output.split()
    if len(parts) != 2:
        return 0, 0
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return 0, 0


# =============================================================================
# Git / GitHub
# =============================================================================

class RealGit:
    """Production implementation of GitInterface using the git CLI."""

    def __init__(self, timeout: float = DEFAULT_COMMAND_TIMEOUT,
                 quick_timeout: float = DEFAULT_QUICK_TIMEOUT):
        self.timeout = timeout
        self.quick_timeout = quick_timeout

    async def _git(self, path: str, *args: str, quick: bool = True) -> str:
        return await run_command(
            ["git", "-C", path, *args],
            timeout=self.quick_timeout if quick else self.timeout,
        )

    async def worktree_branches(self, repo_path: str) -> Dict[str, str]:
        output = await self._git(repo_path, "worktree", "list", "--porcelain", quick=False)
        return parse_worktree_porcelain(output)

    async def resolve_branch(self, worktree_path: str) -> Optional[str]:
        try:
            output = await self._git(worktree_path, "symbolic-ref", "--quiet", "--short", "HEAD")
        except ExternalCommandError as e:
            # Exit status 1 means detached HEAD
            if e.returncode == 1:
                return None
            raise
        return output.strip() or None

    async def recent_merged_pr_numbers(self, repo_path: str, limit: int) -> List[int]:
        last_error: Optional[ExternalCommandError] = None
        for ref in ("origin/main", "origin/master"):
            try:
                output = await self._git(repo_path, "log", ref, "--format=%s", "-n", str(limit))
            except ExternalCommandError as e:
                last_error = e
                continue
            return parse_merged_pr_numbers(output)
        logger.debug("No main line history in %s: %s", repo_path, last_error)
        return []

    async def status_porcelain(self, worktree_path: str) -> List[str]:
        output = await self._git(worktree_path, "status", "--porcelain")
        return [line for line in output.splitlines() if line.strip()]

    async def upstream(self, worktree_path: str) -> Optional[str]:
        try:
            output = await self._git(
                worktree_path, "rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}")
        except ExternalCommandError as e:
            if isinstance(e, CommandTimeoutError):
                raise
            return None
        return output.strip() or None

    async def ref_exists(self, worktree_path: str, ref: str) -> bool:
        try:
            await self._git(worktree_path, "rev-parse", "--verify", "--quiet", ref)
        except ExternalCommandError as e:
            if isinstance(e, CommandTimeoutError):
                raise
            return False
        return True

    async def ahead_behind(self, worktree_path: str, ref: str) -> Tuple[int, int]:
        output = await self._git(worktree_path, "rev-list", "--left-right", "--count", f"HEAD...{ref}")
        return parse_ahead_behind(output)


class RealGitHub:
    """Production implementation of HostingInterface using the gh CLI."""

    def __init__(self, timeout: float = DEFAULT_COMMAND_TIMEOUT):
        self.timeout = timeout

    async def list_pr_status(self, repo_path: str, branches: List[str]) -> List[Dict[str, Any]]:
        if not branches:
            return []
        # Space-separated head: qualifiers are OR'ed by the search
        search = " ".join(f"head:{branch}" for branch in branches)
        output = await run_command(
            ["gh", "pr", "list", "--search", search, "--state", "all",
             "--json", PR_LIST_FIELDS, "--limit", str(PR_LIST_LIMIT)],
            cwd=repo_path,
            timeout=self.timeout,
        )
        try:
            rows = json.loads(output or "[]")
        except json.JSONDecodeError as e:
            raise ExternalCommandError(["gh", "pr", "list"], f"invalid JSON: {e}") from e
        if not isinstance(rows, list):
            raise ExternalCommandError(["gh", "pr", "list"], "expected a JSON list")
        return rows


# =============================================================================
# tmux
# =============================================================================

class RealTmux:
    """Production implementation of TmuxInterface using libtmux.

    libtmux is synchronous and spawns a tmux subprocess per call, so every
    read runs in a worker thread.
    """

    def __init__(self, socket_name: Optional[str] = None):
        """Initialize with optional socket name for test isolation.

        If no socket_name is provided, checks WTSYNC_TMUX_SOCKET env var.
        """
        self._socket_name = socket_name or os.environ.get("WTSYNC_TMUX_SOCKET")
        self._server: Optional[libtmux.Server] = None

    @property
    def server(self) -> libtmux.Server:
        """Lazy-load the tmux server connection."""
        if self._server is None:
            if self._socket_name:
                self._server = libtmux.Server(socket_name=self._socket_name)
            else:
                self._server = libtmux.Server()
        return self._server

    def _get_session(self, session: str) -> Optional[libtmux.Session]:
        try:
            return self.server.sessions.get(session_name=session)
        except (LibTmuxException, ObjectDoesNotExist):
            return None

    def _list_processes(self, session: str) -> List[PaneProcess]:
        sess = self._get_session(session)
        if sess is None:
            return []
        try:
            return [
                PaneProcess(pane_id=pane.pane_id or "", command=pane.pane_current_command or "")
                for pane in sess.panes
            ]
        except LibTmuxException:
            return []

    def _capture(self, session: str, pane_id: Optional[str], lines: int) -> Optional[str]:
        sess = self._get_session(session)
        if sess is None:
            return None
        try:
            if pane_id:
                pane = sess.panes.get(pane_id=pane_id)
            else:
                pane = sess.active_pane
            if pane is None:
                return None
            captured = pane.capture_pane(start=-lines)
        except (LibTmuxException, ObjectDoesNotExist):
            return None
        if isinstance(captured, list):
            return '\n'.join(captured)
        return captured

    async def list_processes(self, session: str) -> List[PaneProcess]:
        return await asyncio.to_thread(self._list_processes, session)

    async def capture(self, session: str, pane_id: Optional[str] = None,
                      lines: int = DEFAULT_CAPTURE_LINES) -> Optional[str]:
        return await asyncio.to_thread(self._capture, session, pane_id, lines)


# =============================================================================
# Scheduler
# =============================================================================

class LoopScheduler:
    """SchedulerInterface on the running asyncio loop and the wall clock."""

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)
