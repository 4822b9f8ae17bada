"""
Local changes and divergence of a worktree.

Compared against the branch's upstream when it has one, otherwise against
the first existing base branch (origin/main, origin/master, origin/develop).
"""

from typing import Optional

from .exceptions import ExternalCommandError
from .logging_config import get_logger
from .models import GitStatus
from .protocols import GitInterface
from .status_constants import BASE_BRANCH_CANDIDATES

logger = get_logger("git_status")


class GitStatusReader:
    """Reads GitStatus for worktrees through a GitInterface."""

    def __init__(self, git: GitInterface):
        self.git = git

    async def find_base_ref(self, path: str) -> Optional[str]:
        for name in BASE_BRANCH_CANDIDATES:
            ref = f"origin/{name}"
            if await self.git.ref_exists(path, ref):
                return ref
        return None

    async def read(self, path: str) -> GitStatus:
        """Read the git status of one worktree.

        External failures are logged and produce a default GitStatus.
        """
        status = GitStatus()
        try:
            changes = await self.git.status_porcelain(path)
            status.has_changes = bool(changes)
            status.modified_files = len(changes)

            upstream = await self.git.upstream(path)
            if upstream:
                status.has_remote = True
                status.compared_to = upstream
                status.ahead, status.behind = await self.git.ahead_behind(path, "@{u}")
                status.is_pushed = status.ahead == 0 and not status.has_changes
            else:
                base = await self.find_base_ref(path)
                if base:
                    status.compared_to = base
                    status.ahead, status.behind = await self.git.ahead_behind(path, base)
        except ExternalCommandError as e:
            logger.warning("git status of %s failed: %s", path, e)
            return GitStatus()
        return status
