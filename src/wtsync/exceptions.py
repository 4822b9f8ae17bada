"""
Exception types raised by wtsync.
"""

from typing import Optional, Sequence


class WtsyncError(Exception):
    """Base class for wtsync errors."""


class ExternalCommandError(WtsyncError):
    """An external command (git, gh, tmux) failed or could not be run.

    The fetcher turns these into error records; they are never cached.
    """

    def __init__(
        self,
        command: Sequence[str],
        message: str,
        returncode: Optional[int] = None,
    ):
        self.command = list(command)
        self.message = message
        self.returncode = returncode
        super().__init__(f"{' '.join(self.command)}: {message}")


class CommandTimeoutError(ExternalCommandError):
    """An external command did not finish within its timeout."""

    def __init__(self, command: Sequence[str], timeout: float):
        self.timeout = timeout
        super().__init__(command, f"timed out after {timeout:g}s")
