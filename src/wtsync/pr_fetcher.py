"""
Batched pull request status fetching.

Worktrees are grouped by repository (main checkout path). Each group costs exactly two
external calls however many worktrees it holds:

1. one `git worktree list` to map every worktree path to its branch;
2. one hosting query filtered to exactly the requested branches.

A failure anywhere in a group turns every worktree of that group into an
error record. Other groups are unaffected.
"""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, TYPE_CHECKING

from .exceptions import ExternalCommandError
from .logging_config import get_logger, get_structured_logger
from .models import PRError, PRExists, PRNoPR, StatusRecord, WorktreeRef
from .status_constants import (
    BRANCHES_DIR_SUFFIX,
    CHECKS_FAILING,
    CHECKS_PASSING,
    CHECKS_PENDING,
)

if TYPE_CHECKING:
    from .protocols import GitInterface, HostingInterface

logger = get_logger("fetcher")
slog = get_structured_logger("fetcher")

_SUCCESS_CONCLUSIONS = ("SUCCESS", "PASS")
_FAILURE_CONCLUSIONS = ("FAILURE", "ERROR")


def infer_project_from_path(path: str) -> str:
    """Project name from the `{projects_dir}/{project}-branches/{feature}` layout.

    Paths outside that layout are their own project: the main checkout
    `{projects_dir}/{project}` yields `{project}`.
    """
    p = Path(path)
    parent = p.parent.name
    if parent.endswith(BRANCHES_DIR_SUFFIX) and len(parent) > len(BRANCHES_DIR_SUFFIX):
        return parent[: -len(BRANCHES_DIR_SUFFIX)]
    return p.name


def as_worktree_ref(item: Any) -> WorktreeRef:
    """Accept a WorktreeRef or a bare path and return a WorktreeRef."""
    if isinstance(item, WorktreeRef):
        return item
    path = str(item)
    return WorktreeRef(project=infer_project_from_path(path), path=path)


def repository_root(path: str) -> str:
    """Main checkout path of the repository a worktree belongs to.

    `{parent}/{project}-branches/{feature}` maps to `{parent}/{project}`; any
    other path is taken to be a main checkout itself.
    """
    p = Path(path)
    parent = p.parent.name
    if parent.endswith(BRANCHES_DIR_SUFFIX) and len(parent) > len(BRANCHES_DIR_SUFFIX):
        return str(p.parent.parent / parent[: -len(BRANCHES_DIR_SUFFIX)])
    return str(p)


def repository_key(ref: WorktreeRef) -> str:
    """Identity of the repository a worktree belongs to.

    Two repositories may share a name in different directories, so the key is
    the main checkout path. An explicit project tag that disagrees with the
    path layout is taken as the identity instead.
    """
    root = repository_root(ref.path)
    if Path(root).name == ref.project:
        return root
    return ref.project


def group_by_repository(refs: Iterable[Any]) -> Dict[str, List[WorktreeRef]]:
    """Group worktrees by repository, keeping first-seen order and dropping duplicates."""
    groups: Dict[str, List[WorktreeRef]] = {}
    seen = set()
    for item in refs:
        ref = as_worktree_ref(item)
        if ref.path in seen:
            continue
        seen.add(ref.path)
        groups.setdefault(repository_key(ref), []).append(ref)
    return groups


def parse_check_rollup(rollup: Any) -> Optional[str]:
    """Collapse a hosting check rollup into passing / failing / pending.

    Any failure wins, then any check that has not succeeded (queued, running,
    neutral, skipped...), then success. No checks at all gives None.
    """
    if not isinstance(rollup, list):
        return None
    has_failure = has_pending = has_success = False
    for check in rollup:
        if not isinstance(check, dict):
            continue
        conclusion = str(check.get("conclusion") or check.get("state") or "").upper()
        if conclusion in _SUCCESS_CONCLUSIONS:
            has_success = True
        elif conclusion in _FAILURE_CONCLUSIONS:
            has_failure = True
        else:
            has_pending = True

    if has_failure:
        return CHECKS_FAILING
    if has_pending:
        return CHECKS_PENDING
    if has_success:
        return CHECKS_PASSING
    return None


def record_from_row(row: Dict[str, Any]) -> PRExists:
    """Shape one raw hosting row into a PRExists record."""
    number = row.get("number")
    state = row.get("state")
    return PRExists(
        number=number if isinstance(number, int) else None,
        state=str(state).upper() if state else None,
        checks=parse_check_rollup(row.get("statusCheckRollup")),
        mergeable=row.get("mergeable") or None,
        title=row.get("title") or None,
        url=row.get("url") or None,
        head=row.get("headRefName") or None,
    )


class PRStatusFetcher:
    """Fetches PR status for many worktrees with a bounded number of calls."""

    def __init__(self, git: "GitInterface", hosting: "HostingInterface"):
        self.git = git
        self.hosting = hosting

    async def fetch(self, refs: Iterable[Any]) -> Dict[str, StatusRecord]:
        """Fetch status for every requested worktree.

        Args:
            refs: WorktreeRefs or worktree paths

        Returns:
            Mapping of every requested path to exists, no_pr or error
        """
        results: Dict[str, StatusRecord] = {}
        for repo, group in group_by_repository(refs).items():
            if not group:
                continue
            log = slog.with_context(project=group[0].project, repo=repo)
            try:
                results.update(await self._fetch_group(group))
            except ExternalCommandError as e:
                log.warning("PR status fetch failed", worktrees=len(group), error=e)
                for ref in group:
                    results[ref.path] = PRError(message=str(e))
        return results

    async def _fetch_group(self, group: List[WorktreeRef]) -> Dict[str, StatusRecord]:
        branches = await self._resolve_branches(group)

        wanted = sorted(set(b for b in branches.values() if b))
        by_branch: Dict[str, PRExists] = {}
        if wanted:
            rows = await self.hosting.list_pr_status(group[0].path, wanted)
            for row in rows:
                if not isinstance(row, dict):
                    continue
                head = row.get("headRefName")
                # The search can match more than asked for; keep exact heads only
                if head in wanted and head not in by_branch:
                    by_branch[head] = record_from_row(row)

        results: Dict[str, StatusRecord] = {}
        for ref in group:
            branch = branches.get(ref.path)
            record = by_branch.get(branch) if branch else None
            results[ref.path] = record if record is not None else PRNoPR()
        logger.debug(
            "Fetched %d worktrees: %d PRs over %d branches",
            len(group), sum(1 for r in results.values() if isinstance(r, PRExists)), len(wanted),
        )
        return results

    async def _resolve_branches(self, group: List[WorktreeRef]) -> Dict[str, Optional[str]]:
        listed = await self.git.worktree_branches(group[0].path)
        branches: Dict[str, Optional[str]] = {}
        for ref in group:
            if ref.path in listed:
                branches[ref.path] = listed[ref.path]
            else:
                branches[ref.path] = await self.git.resolve_branch(ref.path)
        return branches


async def discover_worktrees(projects_dir: Path, git: "GitInterface") -> List[WorktreeRef]:
    """Find feature worktrees of every project directly under projects_dir.

    A project is a directory holding a `.git` entry; its feature worktrees
    live under the sibling `{project}-branches/` directory.
    """
    refs: List[WorktreeRef] = []
    if not projects_dir.is_dir():
        return refs
    for entry in sorted(projects_dir.iterdir()):
        if not entry.is_dir() or entry.name.endswith(BRANCHES_DIR_SUFFIX):
            continue
        if not (entry / ".git").exists():
            continue
        branches_dir = f"{entry.name}{BRANCHES_DIR_SUFFIX}"
        try:
            listed = await git.worktree_branches(str(entry))
        except ExternalCommandError as e:
            logger.warning("Skipping project %s: %s", entry.name, e)
            continue
        for path in sorted(listed):
            if Path(path).parent.name == branches_dir:
                refs.append(WorktreeRef(project=entry.name, path=path))
    return refs
