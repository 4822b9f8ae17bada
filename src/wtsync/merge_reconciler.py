"""
Cheap detection of PRs merged behind the cache's back.

An open PR with passing checks is cached for a while; if it gets merged in
the meantime the cache would keep showing it as open. Instead of querying the
hosting service, this reads the recent main-line history locally and drops
the cache entries of any candidate PR whose number shows up there, so the
next refresh fetches the merged state.
"""

from typing import Callable, Dict, List, Optional

from .exceptions import ExternalCommandError
from .logging_config import get_logger
from .models import PRExists, WorktreeRef
from .pr_fetcher import group_by_repository
from .protocols import GitInterface
from .status_cache import StatusCache
from .status_constants import CHECKS_PASSING, DEFAULT_MERGE_HISTORY_LIMIT, PR_STATE_OPEN

logger = get_logger("reconciler")

ProjectResolver = Callable[[str], Optional[WorktreeRef]]


class MergedStatusReconciler:
    """Invalidates cached open PRs that local history shows as merged.

    Args:
        cache: The status cache to inspect and invalidate
        git: Local revision-control queries
        history_limit: How many recent main-line commits to scan per project
        resolve_ref: Optional mapping from cache key to WorktreeRef; by
            default the project is inferred from the path layout
    """

    def __init__(
        self,
        cache: StatusCache,
        git: GitInterface,
        history_limit: int = DEFAULT_MERGE_HISTORY_LIMIT,
        resolve_ref: Optional[ProjectResolver] = None,
    ):
        self.cache = cache
        self.git = git
        self.history_limit = history_limit
        self._resolve_ref = resolve_ref

    def candidates(self) -> Dict[str, int]:
        """Valid cached entries that are open with passing checks: key -> PR number."""
        found: Dict[str, int] = {}
        for key in self.cache.cached_keys():
            record = self.cache.get(key)
            if (isinstance(record, PRExists) and record.number is not None
                    and record.state == PR_STATE_OPEN and record.checks == CHECKS_PASSING):
                found[key] = record.number
        return found

    async def run(self) -> List[str]:
        """Scan local history and invalidate merged candidates.

        Returns:
            The invalidated cache keys
        """
        candidates = self.candidates()
        if not candidates:
            return []

        refs = []
        for key in candidates:
            ref = self._resolve_ref(key) if self._resolve_ref else None
            refs.append(ref if ref is not None else key)

        invalidated: List[str] = []
        for repo, group in group_by_repository(refs).items():
            keys = [ref.path for ref in group]
            try:
                merged = set(await self.git.recent_merged_pr_numbers(group[0].path, self.history_limit))
            except ExternalCommandError as e:
                logger.warning("Merge check for %s failed: %s", repo, e)
                continue

            for number in sorted({candidates[k] for k in keys} & merged):
                dropped = self.cache.invalidate_by_pr_number(number, keys=keys)
                if dropped:
                    logger.info("PR #%d of %s was merged; invalidated %d entries",
                                number, repo, len(dropped))
                invalidated.extend(dropped)
        return invalidated
