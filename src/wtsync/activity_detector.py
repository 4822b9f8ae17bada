"""
Assistant activity detection from captured terminal text.

classify() is a pure function: it identifies the tool from the pane's
foreground process, then evaluates that tool's pattern groups in a fixed
priority order:

    working  >  waiting (numbered options)  >  idle prompt  >  default

Working is checked first because an assistant mid-response often still shows
numbered options or a prompt from the previous turn. When a tool was
identified but nothing matched, the result is DEFAULT_IDENTIFIED_ACTIVITY
(idle), never not_running.

SessionActivityReader wraps classify() with the multiplexer reads needed to
get its inputs. It does not cache; callers that want caching key it by
session.
"""

import re
from typing import Iterable, Optional, Tuple, TYPE_CHECKING

from .exceptions import ExternalCommandError
from .logging_config import get_logger
from .models import PaneProcess, SessionSnapshot
from .status_constants import (
    ACTIVITY_IDLE,
    ACTIVITY_NOT_RUNNING,
    ACTIVITY_WAITING,
    ACTIVITY_WORKING,
    DEFAULT_CAPTURE_LINES,
    DEFAULT_IDENTIFIED_ACTIVITY,
    TOOL_NONE,
)
from .status_patterns import (
    DEFAULT_REGISTRY,
    ToolPatterns,
    ToolRegistry,
    matches_any,
    matches_any_regex,
    strip_ansi,
    tail_lines,
)

if TYPE_CHECKING:
    from .protocols import TmuxInterface

logger = get_logger("activity")


def is_working(text: str, patterns: ToolPatterns) -> bool:
    return matches_any(text, patterns.working_patterns)


def is_waiting(text: str, patterns: ToolPatterns) -> bool:
    """Both the marker glyph and the numbered-list regex must match."""
    marker, numbered = patterns.waiting_patterns
    if not marker or not numbered:
        return False
    return marker in text and re.search(numbered, text, re.MULTILINE) is not None


def is_idle(text: str, patterns: ToolPatterns) -> bool:
    marker = patterns.idle_patterns[0]
    suffix = patterns.idle_patterns[1] if len(patterns.idle_patterns) > 1 else ""
    if marker and marker in text and text.strip().endswith(suffix):
        return True
    return matches_any_regex(text, patterns.alt_idle_markers)


def classify_text(text: str, patterns: ToolPatterns) -> str:
    """Classify text for a known tool. Order is part of the contract."""
    if is_working(text, patterns):
        return ACTIVITY_WORKING
    if is_waiting(text, patterns):
        return ACTIVITY_WAITING
    if is_idle(text, patterns):
        return ACTIVITY_IDLE
    return DEFAULT_IDENTIFIED_ACTIVITY


def classify(
    captured_text: Optional[str],
    process_name: Optional[str],
    registry: ToolRegistry = DEFAULT_REGISTRY,
    max_lines: int = DEFAULT_CAPTURE_LINES,
) -> SessionSnapshot:
    """Classify one session capture.

    Args:
        captured_text: Pane text (may contain ANSI escapes)
        process_name: Foreground command of the pane
        registry: Tool pattern tables to match against
        max_lines: Only the last N lines of the capture are considered

    Returns:
        SessionSnapshot with the identified tool and its activity state
    """
    text = strip_ansi(tail_lines(captured_text or "", max_lines))
    patterns = registry.match_process(process_name or "", text)
    if patterns is None:
        return SessionSnapshot(tool=TOOL_NONE, status=ACTIVITY_NOT_RUNNING)
    return SessionSnapshot(tool=patterns.tool, status=classify_text(text, patterns))


def select_tool_pane(
    processes: Iterable[PaneProcess],
    registry: ToolRegistry = DEFAULT_REGISTRY,
) -> Optional[Tuple[PaneProcess, Optional[ToolPatterns]]]:
    """Pick the pane most likely to host the assistant.

    Prefers the first pane whose command identifies a tool outright, then the
    first pane running a generic process some tool claims (which still needs
    a content check), then the first pane.
    """
    processes = list(processes)
    if not processes:
        return None
    for process in processes:
        patterns = registry.match_process(process.command)
        if patterns is not None:
            return process, patterns
    for process in processes:
        command = process.command.lower()
        if any(matches_any(command, p.generic_process_patterns) for p in registry.tools()):
            return process, None
    return processes[0], None


class SessionActivityReader:
    """Reads and classifies the assistant activity of multiplexer sessions."""

    def __init__(
        self,
        tmux: "TmuxInterface",
        registry: ToolRegistry = DEFAULT_REGISTRY,
        capture_lines: int = DEFAULT_CAPTURE_LINES,
    ):
        self._tmux = tmux
        self.registry = registry
        self.capture_lines = capture_lines

    async def read(self, session: str) -> SessionSnapshot:
        """Capture a session and classify it.

        A missing session, an empty capture, or a multiplexer failure all
        read as not_running.
        """
        try:
            processes = await self._tmux.list_processes(session)
            selected = select_tool_pane(processes, self.registry)
            if selected is None:
                return SessionSnapshot()
            pane, _ = selected
            text = await self._tmux.capture(session, pane.pane_id, self.capture_lines)
        except ExternalCommandError as e:
            logger.warning("Capture of session %s failed: %s", session, e)
            return SessionSnapshot()

        if not text:
            return SessionSnapshot()
        return classify(text, pane.command, self.registry, self.capture_lines)
