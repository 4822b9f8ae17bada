"""
Value types shared by the status engine.

Pull request status is a tagged union: one frozen dataclass per loading
status, each exposing a ``loading_status`` discriminant. Records are
immutable, so the cache can hand them across the async boundary without
copies being torn or mutated by readers.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, FrozenSet, Iterable, Optional, Union

from .status_constants import (
    CHECKS_PASSING,
    CHECKS_FAILING,
    LOADING,
    LOADING_ERROR,
    LOADING_EXISTS,
    LOADING_NO_PR,
    LOADING_NOT_CHECKED,
    MERGEABLE,
    MERGEABLE_CONFLICTING,
    PR_STATE_CLOSED,
    PR_STATE_MERGED,
    PR_STATE_OPEN,
    TOOL_NONE,
    ACTIVITY_NOT_RUNNING,
)


@dataclass(frozen=True)
class PRNotChecked:
    """No query has been made for this worktree yet."""

    loading_status: ClassVar[str] = LOADING_NOT_CHECKED


@dataclass(frozen=True)
class PRLoading:
    """A query for this worktree is in flight."""

    loading_status: ClassVar[str] = LOADING


@dataclass(frozen=True)
class PRNoPR:
    """The branch was checked and has no pull request."""

    loading_status: ClassVar[str] = LOADING_NO_PR
    number: ClassVar[None] = None


@dataclass(frozen=True)
class PRError:
    """The query failed. Held in the transient view only, never cached."""

    loading_status: ClassVar[str] = LOADING_ERROR
    message: str = ""


@dataclass(frozen=True)
class PRExists:
    """A pull request exists for the worktree's branch."""

    loading_status: ClassVar[str] = LOADING_EXISTS

    number: Optional[int] = None
    state: Optional[str] = None  # OPEN, MERGED, CLOSED
    checks: Optional[str] = None  # passing, failing, pending
    mergeable: Optional[str] = None  # MERGEABLE, CONFLICTING, UNKNOWN
    title: Optional[str] = None
    url: Optional[str] = None
    head: Optional[str] = None  # head branch name

    @property
    def is_merged(self) -> bool:
        return self.state == PR_STATE_MERGED

    @property
    def is_open(self) -> bool:
        return self.state == PR_STATE_OPEN

    @property
    def is_closed(self) -> bool:
        return self.state == PR_STATE_CLOSED

    @property
    def has_conflicts(self) -> bool:
        return self.mergeable == MERGEABLE_CONFLICTING

    @property
    def needs_attention(self) -> bool:
        return self.checks == CHECKS_FAILING or self.has_conflicts

    @property
    def is_ready_to_merge(self) -> bool:
        return (
            self.state == PR_STATE_OPEN
            and self.checks == CHECKS_PASSING
            and self.mergeable == MERGEABLE
        )


StatusRecord = Union[PRNotChecked, PRLoading, PRNoPR, PRError, PRExists]

_CACHEABLE = (PRExists, PRNoPR)


def is_cacheable(record: StatusRecord) -> bool:
    """Only complete, successful results may be cached or persisted."""
    return isinstance(record, _CACHEABLE)


def record_to_dict(record: StatusRecord) -> Dict[str, Any]:
    """Serialize a record for the durable cache store."""
    data: Dict[str, Any] = {"loading_status": record.loading_status}
    if isinstance(record, PRExists):
        data.update({
            "number": record.number,
            "state": record.state,
            "checks": record.checks,
            "mergeable": record.mergeable,
            "title": record.title,
            "url": record.url,
            "head": record.head,
        })
    elif isinstance(record, PRError):
        data["message"] = record.message
    return data


def record_from_dict(data: Any) -> Optional[StatusRecord]:
    """Rebuild a record from stored data.

    Returns None for malformed data and for records that are never valid
    outside a running process (not_checked, loading).
    """
    if not isinstance(data, dict):
        return None

    status = data.get("loading_status")
    if status == LOADING_EXISTS:
        number = data.get("number")
        if number is not None and not isinstance(number, int):
            return None
        return PRExists(
            number=number,
            state=data.get("state"),
            checks=data.get("checks"),
            mergeable=data.get("mergeable"),
            title=data.get("title"),
            url=data.get("url"),
            head=data.get("head"),
        )
    if status == LOADING_NO_PR:
        return PRNoPR()
    if status == LOADING_ERROR:
        return PRError(message=str(data.get("message", "")))
    return None


@dataclass(frozen=True)
class CacheEntry:
    """A cached record and the wall-clock time it was stored."""

    record: StatusRecord
    timestamp: float


@dataclass(frozen=True)
class CacheStats:
    total: int
    valid: int
    expired: int


@dataclass(frozen=True)
class RefreshRequest:
    """A pending refresh of a set of worktree keys.

    visible_only narrows the refresh to worktrees currently on screen.
    """

    keys: FrozenSet[str]
    visible_only: bool = False

    @classmethod
    def for_keys(cls, keys: Iterable[str], visible_only: bool = False) -> "RefreshRequest":
        return cls(keys=frozenset(keys), visible_only=visible_only)


def merge_requests(requests: Iterable[RefreshRequest]) -> RefreshRequest:
    """Merge pending requests into one.

    Keys are unioned. visible_only survives only if every merged request
    asked for it, so merging never narrows what was requested.
    """
    keys: set = set()
    visible_only = True
    seen = False
    for request in requests:
        seen = True
        keys.update(request.keys)
        if not request.visible_only:
            visible_only = False
    if not seen:
        visible_only = False
    return RefreshRequest(keys=frozenset(keys), visible_only=visible_only)


@dataclass(frozen=True)
class SessionSnapshot:
    """Classified state of one assistant session. Derived, never persisted."""

    tool: str = TOOL_NONE
    status: str = ACTIVITY_NOT_RUNNING


@dataclass(frozen=True)
class PaneProcess:
    """Foreground process of one multiplexer pane."""

    pane_id: str
    command: str


@dataclass(frozen=True)
class WorktreeRef:
    """A worktree key tagged with the project (repository) it belongs to."""

    project: str
    path: str


@dataclass
class GitStatus:
    """Local changes and divergence of a worktree from its upstream."""

    has_changes: bool = False
    modified_files: int = 0
    has_remote: bool = False
    ahead: int = 0
    behind: int = 0
    is_pushed: bool = False
    compared_to: Optional[str] = None  # upstream or base ref used for ahead/behind
