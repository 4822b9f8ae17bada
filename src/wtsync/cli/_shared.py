"""
Shared CLI state: Typer apps, console, options, and component wiring.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, List, Optional

import typer
from rich.console import Console

from ..config import get_tool_overrides
from ..implementations import LoopScheduler, RealGit, RealGitHub, RealTmux
from ..merge_reconciler import MergedStatusReconciler
from ..pr_fetcher import PRStatusFetcher
from ..settings import EngineSettings, get_cache_path
from ..status_cache import JsonCacheStore, StatusCache
from ..status_engine import PRStatusEngine
from ..status_patterns import ToolRegistry, build_registry

# Main app
app = typer.Typer(
    name="wtsync",
    help="Keep pull request, assistant and git status of worktrees fresh",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Cache subcommand group
cache_app = typer.Typer(
    name="cache",
    help="Inspect and manage the PR status cache",
    no_args_is_help=True,
)
app.add_typer(cache_app, name="cache")

# Config subcommand group
config_app = typer.Typer(
    name="config",
    help="Manage configuration",
    no_args_is_help=False,
    invoke_without_command=True,
)
app.add_typer(config_app, name="config")

# Console for rich output
console = Console()

PathsArgument = Annotated[
    Optional[List[Path]],
    typer.Argument(
        help="Worktree paths (default: every worktree under the projects dir)",
        show_default=False,
    ),
]


@dataclass
class Components:
    """Production wiring of the engine and its collaborators."""

    settings: EngineSettings
    git: RealGit
    hosting: RealGitHub
    cache: StatusCache
    fetcher: PRStatusFetcher
    reconciler: MergedStatusReconciler
    engine: PRStatusEngine


def build_cache() -> StatusCache:
    return StatusCache(store=JsonCacheStore(get_cache_path()))


def build_components(settings: Optional[EngineSettings] = None) -> Components:
    """Wire the engine against git, gh and the on-disk cache."""
    settings = settings or EngineSettings.load()
    git = RealGit(timeout=settings.command_timeout, quick_timeout=settings.quick_timeout)
    hosting = RealGitHub(timeout=settings.command_timeout)
    cache = build_cache()
    fetcher = PRStatusFetcher(git, hosting)
    reconciler = MergedStatusReconciler(cache, git, history_limit=settings.merge_history_limit)
    engine = PRStatusEngine(
        fetcher,
        cache,
        LoopScheduler(),
        reconciler=reconciler,
        window_seconds=settings.window_seconds,
        refresh_interval=settings.refresh_interval,
        visible_debounce=settings.visible_debounce,
    )
    return Components(settings, git, hosting, cache, fetcher, reconciler, engine)


def build_tmux() -> Any:
    return RealTmux()


def load_registry() -> ToolRegistry:
    """Built-in tools plus those configured under ``tools:``.

    Exits with an error message if the configured tables are malformed.
    """
    try:
        return build_registry(get_tool_overrides())
    except ValueError as e:
        console.print(f"[red]Invalid tools configuration:[/red] {e}")
        raise typer.Exit(1)


def normalize_paths(paths: Optional[List[Path]]) -> List[str]:
    return [str(p.expanduser().resolve()) for p in paths or []]
