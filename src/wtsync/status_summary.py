"""
One-word status label per worktree.

Folds assistant activity, pull request status and local git state into the
single label shown in listings. Precedence, highest first:

    working / waiting   (only when a session is attached)
    conflict > pr-failed > pr-passed > pr-checking > merged
    uncommitted > un-pushed
    ready               (attached and idle)
    ""                  (nothing worth showing)
"""

from typing import Optional

from .models import GitStatus, PRExists, StatusRecord
from .status_constants import (
    ACTIVITY_IDLE,
    ACTIVITY_WAITING,
    ACTIVITY_WORKING,
    CHECKS_FAILING,
    CHECKS_PENDING,
)


def _pr_label(pr: PRExists) -> str:
    if pr.has_conflicts:
        return "conflict"
    if pr.checks == CHECKS_FAILING:
        return "pr-failed"
    if pr.is_ready_to_merge:
        return "pr-passed"
    has_number = pr.number is not None
    if pr.is_open and has_number and pr.checks in (CHECKS_PENDING, None):
        return "pr-checking"
    if pr.is_merged and has_number:
        return "merged"
    return ""


def compute_status_label(
    activity: str,
    attached: bool = False,
    git: Optional[GitStatus] = None,
    pr: Optional[StatusRecord] = None,
) -> str:
    """Compute the display label for one worktree.

    Args:
        activity: Assistant activity state (not_running, idle, working, waiting)
        attached: Whether a multiplexer session exists for the worktree
        git: Local git status, if known
        pr: PR status record, if known (only exists records affect the label)

    Returns:
        The label, or "" when nothing applies
    """
    if attached and activity == ACTIVITY_WORKING:
        return "working"
    if attached and activity == ACTIVITY_WAITING:
        return "waiting"

    if isinstance(pr, PRExists):
        label = _pr_label(pr)
        if label:
            return label

    if git is not None:
        if git.has_changes:
            return "uncommitted"
        if git.ahead > 0:
            return "un-pushed"

    if attached and activity == ACTIVITY_IDLE:
        return "ready"
    return ""
