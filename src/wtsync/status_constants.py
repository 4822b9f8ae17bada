"""
Status constants and mappings for wtsync.

Centralizes the status values (pull request, assistant activity, tools),
cache TTLs, and display mappings used throughout the engine.
"""

from typing import Tuple


# =============================================================================
# Pull Request Loading Status
# =============================================================================

LOADING_NOT_CHECKED = "not_checked"  # No query made yet
LOADING = "loading"  # Query in flight
LOADING_EXISTS = "exists"  # PR exists for the branch
LOADING_NO_PR = "no_pr"  # Queried, no PR for this branch (a positive fact)
LOADING_ERROR = "error"  # Query failed (transient, never cached)

ALL_LOADING_STATUSES = [
    LOADING_NOT_CHECKED,
    LOADING,
    LOADING_EXISTS,
    LOADING_NO_PR,
    LOADING_ERROR,
]


# =============================================================================
# Pull Request Fields
# =============================================================================

PR_STATE_OPEN = "OPEN"
PR_STATE_MERGED = "MERGED"
PR_STATE_CLOSED = "CLOSED"

CHECKS_PASSING = "passing"
CHECKS_FAILING = "failing"
CHECKS_PENDING = "pending"

MERGEABLE = "MERGEABLE"
MERGEABLE_CONFLICTING = "CONFLICTING"
MERGEABLE_UNKNOWN = "UNKNOWN"


# =============================================================================
# Assistant Activity
# =============================================================================

ACTIVITY_NOT_RUNNING = "not_running"
ACTIVITY_IDLE = "idle"
ACTIVITY_WORKING = "working"
ACTIVITY_WAITING = "waiting"

ALL_ACTIVITY_STATES = [
    ACTIVITY_NOT_RUNNING,
    ACTIVITY_IDLE,
    ACTIVITY_WORKING,
    ACTIVITY_WAITING,
]

# Returned when a tool was identified but none of its patterns matched.
DEFAULT_IDENTIFIED_ACTIVITY = ACTIVITY_IDLE


# =============================================================================
# Tool Identity (open set, see status_patterns.ToolRegistry)
# =============================================================================

TOOL_NONE = "none"
TOOL_CLAUDE = "claude"
TOOL_CODEX = "codex"
TOOL_GEMINI = "gemini"


# =============================================================================
# Cache TTLs (seconds)
# =============================================================================

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR

TTL_MERGED = 365 * DAY  # Merged PRs never change again
TTL_CHECKS_FAILING = 2 * MINUTE  # Failing build is likely being fixed
TTL_CHECKS_PENDING = 5  # CI mid-flight, poll aggressively
TTL_OPEN_PASSING = 30
TTL_OPEN = 5 * MINUTE
TTL_NO_PR = 30  # Cheap to recheck, PR likely to appear soon
TTL_CLOSED = HOUR
TTL_FALLBACK = 10 * MINUTE


# =============================================================================
# Timing Defaults (seconds)
# =============================================================================

DEFAULT_WINDOW_SECONDS = 0.5  # Refresh batching window
DEFAULT_REFRESH_INTERVAL = 5.0  # Periodic refresh of visible worktrees
DEFAULT_VISIBLE_DEBOUNCE = 0.2
DEFAULT_COMMAND_TIMEOUT = 30.0
DEFAULT_QUICK_TIMEOUT = 5.0

DEFAULT_CAPTURE_LINES = 50
DEFAULT_MERGE_HISTORY_LIMIT = 20

BASE_BRANCH_CANDIDATES = ["main", "master", "develop"]
BRANCHES_DIR_SUFFIX = "-branches"


# =============================================================================
# Display Mappings
# =============================================================================

ACTIVITY_SYMBOLS = {
    ACTIVITY_NOT_RUNNING: ("○", "dim"),
    ACTIVITY_IDLE: ("✓", "green"),
    ACTIVITY_WORKING: ("⚡", "yellow"),
    ACTIVITY_WAITING: ("❓", "red"),
}


def get_activity_symbol(status: str) -> Tuple[str, str]:
    """Get (symbol, color) tuple for an activity state."""
    return ACTIVITY_SYMBOLS.get(status, ("○", "dim"))


CHECKS_SYMBOLS = {
    CHECKS_PASSING: "✓",
    CHECKS_FAILING: "✗",
    CHECKS_PENDING: "⏳",
}

MERGED_SYMBOL = "⟫"


def get_checks_symbol(checks: str | None) -> str:
    """Get the symbol shown next to a PR number for its check state."""
    return CHECKS_SYMBOLS.get(checks or "", "")


LABEL_COLORS = {
    "working": "yellow",
    "waiting": "red",
    "conflict": "bold red",
    "pr-failed": "red",
    "pr-passed": "green",
    "pr-checking": "cyan",
    "merged": "magenta",
    "uncommitted": "orange1",
    "un-pushed": "blue",
    "ready": "green",
}


def get_label_color(label: str) -> str:
    """Get color name for a status summary label."""
    return LABEL_COLORS.get(label, "dim")
