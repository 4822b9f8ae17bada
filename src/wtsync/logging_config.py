"""
Logging configuration for wtsync.

Every module logs through a child of the ``wtsync`` logger, so one call to
setup_logging() controls the whole package. Console output goes through
Rich when requested.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from rich.logging import RichHandler


def default_log_dir() -> Path:
    return Path(os.environ.get("WTSYNC_STATE_DIR", Path.home() / ".wtsync")) / "logs"


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the wtsync namespace.

    Args:
        name: Component name (e.g. "cache", "fetcher")

    Returns:
        Logger named "wtsync.<name>"
    """
    return logging.getLogger(f"wtsync.{name}")


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    console: bool = True,
    rich_console: bool = False,
) -> None:
    """Configure the wtsync logger.

    Existing handlers are removed first so repeated calls don't duplicate
    output.

    Args:
        level: Log level for the wtsync logger
        log_file: Optional file to append logs to (parent dirs are created)
        console: Whether to log to the console
        rich_console: Use Rich for console output
    """
    logger = logging.getLogger("wtsync")
    logger.setLevel(level)
    logger.handlers.clear()

    if console:
        if rich_console:
            handler: logging.Handler = RichHandler(
                show_time=True,
                show_path=False,
                rich_tracebacks=True,
            )
        else:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        handler.setLevel(level)
        logger.addHandler(handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        file_handler.setLevel(level)
        logger.addHandler(file_handler)


def setup_watch_logging(log_file: Optional[Path] = None) -> logging.Logger:
    """Logging for the long-running watch loop: INFO to file and Rich console."""
    if log_file is None:
        log_file = default_log_dir() / "watch.log"
    setup_logging(level=logging.INFO, log_file=log_file, console=True, rich_console=True)
    return get_logger("watch")


def setup_cli_logging() -> logging.Logger:
    """Logging for one-shot CLI commands: warnings only."""
    setup_logging(level=logging.WARNING, console=True, rich_console=True)
    return get_logger("cli")


class StructuredLogger:
    """Logger wrapper that appends key=value context to every message.

    Usage:
        log = get_structured_logger("fetcher").with_context(project="web")
        log.info("Fetched PRs", count=3)
        # -> "Fetched PRs | project=web count=3"
    """

    def __init__(self, logger: logging.Logger, context: Optional[Dict[str, Any]] = None):
        self._logger = logger
        self._context = dict(context or {})

    def with_context(self, **kwargs: Any) -> "StructuredLogger":
        """Return a new logger with additional context merged in."""
        merged = dict(self._context)
        merged.update(kwargs)
        return StructuredLogger(self._logger, merged)

    def _format(self, msg: str, kwargs: Dict[str, Any]) -> str:
        fields = dict(self._context)
        fields.update(kwargs)
        if not fields:
            return msg
        rendered = " ".join(f"{k}={v}" for k, v in fields.items())
        return f"{msg} | {rendered}"

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._logger.debug(self._format(msg, kwargs))

    def info(self, msg: str, **kwargs: Any) -> None:
        self._logger.info(self._format(msg, kwargs))

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._logger.warning(self._format(msg, kwargs))

    def error(self, msg: str, **kwargs: Any) -> None:
        self._logger.error(self._format(msg, kwargs))

    def exception(self, msg: str, **kwargs: Any) -> None:
        self._logger.exception(self._format(msg, kwargs))


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))
