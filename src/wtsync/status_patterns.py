"""
Centralized activity detection patterns.

This module holds the per-tool pattern tables used by the activity detector
to classify captured terminal text. Each assistant tool registers one
ToolPatterns entry; adding a tool never touches the classification
algorithm in activity_detector.

Each pattern group includes documentation about when it's used and what it
matches.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .status_constants import TOOL_CLAUDE, TOOL_CODEX, TOOL_GEMINI

# Regex to match ANSI escape sequences (colors, cursor movement, etc.)
ANSI_ESCAPE_PATTERN = re.compile(r'\x1b\[[0-9;]*[a-zA-Z]')


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from text.

    Captures taken with escape sequences preserved carry color codes, but
    pattern matching needs plain text.
    """
    return ANSI_ESCAPE_PATTERN.sub('', text)


def tail_lines(text: str, max_lines: int) -> str:
    """Keep only the last ``max_lines`` lines of text.

    Bounds classification cost independently of session history length.
    """
    if max_lines <= 0:
        return ""
    lines = text.split('\n')
    if len(lines) <= max_lines:
        return text
    return '\n'.join(lines[-max_lines:])


@dataclass(frozen=True)
class ToolPatterns:
    """Detection table for one assistant tool.

    Substring patterns are case-insensitive unless noted otherwise.
    """

    tool: str
    display_name: str
    command: str

    # Process names that identify the tool on their own.
    # Matched as substrings of the pane's foreground command (lowercased).
    process_patterns: Tuple[str, ...] = ()

    # Generic process names (e.g. "node") that only identify the tool when
    # one of content_markers also appears in the captured text.
    generic_process_patterns: Tuple[str, ...] = ()
    content_markers: Tuple[str, ...] = ()

    # Active work indicators - HIGHEST priority.
    # A single match anywhere in the capture means the tool is working.
    working_patterns: Tuple[str, ...] = ()

    # Numbered-option prompt: (marker glyph, numbered-list regex).
    # BOTH must match; the glyph alone or a bare number is not enough.
    # The regex is applied in multiline mode and is case-sensitive.
    waiting_patterns: Tuple[str, str] = ("", "")

    # Idle prompt: (marker that must appear, suffix the trimmed text must end with).
    # An empty suffix means the marker alone is sufficient.
    idle_patterns: Tuple[str, ...] = ()

    # Alternative idle markers (regexes, case-insensitive) for tools whose
    # prompt has no stable glyph at the end of the buffer.
    alt_idle_markers: Tuple[str, ...] = ()

    def __post_init__(self):
        if len(self.waiting_patterns) != 2:
            raise ValueError(f"{self.tool}: waiting_patterns needs exactly 2 entries")
        if not 1 <= len(self.idle_patterns) <= 2:
            raise ValueError(f"{self.tool}: idle_patterns needs 1 or 2 entries")


CLAUDE_PATTERNS = ToolPatterns(
    tool=TOOL_CLAUDE,
    display_name="Claude",
    command="claude",
    process_patterns=("claude",),
    working_patterns=("esc to interrupt",),
    waiting_patterns=("❯", r"\d+\.\s+\w+"),
    idle_patterns=("│ >", "│"),
)

CODEX_PATTERNS = ToolPatterns(
    tool=TOOL_CODEX,
    display_name="OpenAI Codex",
    command="codex",
    process_patterns=("codex",),
    # Codex runs under node; only the composer glyphs tell it apart
    generic_process_patterns=("node",),
    content_markers=("▌", "⏎ send"),
    working_patterns=("esc to interrupt",),
    waiting_patterns=("▌", r"^\s*▌?\s*\d+\.\s+\w+"),
    idle_patterns=("▌", ""),
    alt_idle_markers=(
        r"Ctrl\+J\s+newline",
        r"Ctrl\+C\s+quit",
        r"tokens\s+used",
        r"context\s+left",
        r"⏎ send",
    ),
)

GEMINI_PATTERNS = ToolPatterns(
    tool=TOOL_GEMINI,
    display_name="Gemini",
    command="gemini",
    process_patterns=("gemini",),
    working_patterns=("esc to cancel",),
    waiting_patterns=("Waiting for user", r"\d+\."),
    idle_patterns=("│ >", ""),
)


class ToolRegistry:
    """Ordered registry of tool pattern tables.

    Process matching walks tools in registration order; the first match wins.
    """

    def __init__(self, tools: Iterable[ToolPatterns] = ()):
        self._tools: Dict[str, ToolPatterns] = {}
        for patterns in tools:
            self.register(patterns)

    def register(self, patterns: ToolPatterns) -> None:
        """Add a tool, or replace the table of an already registered tool."""
        self._tools[patterns.tool] = patterns

    def get(self, tool: str) -> Optional[ToolPatterns]:
        return self._tools.get(tool)

    def tools(self) -> List[ToolPatterns]:
        return list(self._tools.values())

    def __contains__(self, tool: str) -> bool:
        return tool in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def copy(self) -> "ToolRegistry":
        return ToolRegistry(self._tools.values())

    def match_process(self, command: str, text: str = "") -> Optional[ToolPatterns]:
        """Find the tool whose process patterns match a foreground command.

        Args:
            command: Foreground command name of the pane
            text: Captured pane text, consulted only for generic process names

        Returns:
            The matching ToolPatterns, or None if no tool matches
        """
        lowered = (command or "").lower()
        if not lowered:
            return None
        for patterns in self._tools.values():
            if matches_any(lowered, patterns.process_patterns):
                return patterns
        for patterns in self._tools.values():
            if (matches_any(lowered, patterns.generic_process_patterns)
                    and matches_any(text, patterns.content_markers, case_sensitive=True)):
                return patterns
        return None


def default_registry() -> ToolRegistry:
    """A fresh registry holding the built-in tools."""
    return ToolRegistry([CLAUDE_PATTERNS, CODEX_PATTERNS, GEMINI_PATTERNS])


DEFAULT_REGISTRY = default_registry()


def tool_patterns_from_config(name: str, data: Dict[str, Any],
                              base: Optional[ToolPatterns] = None) -> ToolPatterns:
    """Build a ToolPatterns from a config mapping.

    Keys mirror the dataclass fields; missing keys fall back to ``base``
    (for overriding a built-in tool) or to empty defaults.

    Raises:
        ValueError: if the resulting table is malformed
    """
    def _tuple(key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
        value = data.get(key)
        if value is None:
            return default
        if isinstance(value, str):
            return (value,)
        return tuple(str(v) for v in value)

    return ToolPatterns(
        tool=name,
        display_name=str(data.get("display_name", base.display_name if base else name)),
        command=str(data.get("command", base.command if base else name)),
        process_patterns=_tuple("process_patterns", base.process_patterns if base else (name,)),
        generic_process_patterns=_tuple(
            "generic_process_patterns", base.generic_process_patterns if base else ()),
        content_markers=_tuple("content_markers", base.content_markers if base else ()),
        working_patterns=_tuple("working_patterns", base.working_patterns if base else ()),
        waiting_patterns=_tuple("waiting_patterns", base.waiting_patterns if base else ("", "")),
        idle_patterns=_tuple("idle_patterns", base.idle_patterns if base else ("",)),
        alt_idle_markers=_tuple("alt_idle_markers", base.alt_idle_markers if base else ()),
    )


def build_registry(overrides: Optional[Dict[str, Any]] = None) -> ToolRegistry:
    """Default registry extended with tool tables from configuration.

    Args:
        overrides: Mapping of tool name -> pattern mapping (config ``tools:``)

    Returns:
        A new ToolRegistry; the module-level DEFAULT_REGISTRY is untouched
    """
    registry = default_registry()
    for name, data in (overrides or {}).items():
        if not isinstance(data, dict):
            raise ValueError(f"tools.{name}: expected a mapping")
        registry.register(tool_patterns_from_config(str(name), data, registry.get(str(name))))
    return registry


def matches_any(text: str, patterns: Iterable[str], case_sensitive: bool = False) -> bool:
    """Check if text contains any of the patterns.

    Empty patterns never match.

    Args:
        text: Text to search in
        patterns: Substrings to look for
        case_sensitive: Whether matching is case-sensitive

    Returns:
        True if any pattern is found in text
    """
    if not case_sensitive:
        text = text.lower()
        return any(p and p.lower() in text for p in patterns)
    return any(p and p in text for p in patterns)


def matches_any_regex(text: str, patterns: Iterable[str]) -> bool:
    """Check if any case-insensitive regex matches somewhere in text."""
    return any(p and re.search(p, text, re.IGNORECASE) for p in patterns)
