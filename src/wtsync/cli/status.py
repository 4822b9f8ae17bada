"""
Status commands: status, detect, watch, tools.
"""

import asyncio
from typing import Annotated, Dict, List, Optional

import typer
from rich import print as rprint
from rich.table import Table

from ..activity_detector import SessionActivityReader
from ..git_status import GitStatusReader
from ..logging_config import get_logger, setup_cli_logging, setup_watch_logging
from ..models import GitStatus, PRError, PRExists, PRNoPR, StatusRecord, WorktreeRef
from ..pr_fetcher import as_worktree_ref, discover_worktrees
from ..settings import EngineSettings, get_projects_dir
from ..status_constants import (
    ACTIVITY_NOT_RUNNING,
    MERGED_SYMBOL,
    get_activity_symbol,
    get_checks_symbol,
    get_label_color,
)
from ..status_engine import EngineState
from ..status_summary import compute_status_label
from ._shared import (
    PathsArgument,
    app,
    build_components,
    build_tmux,
    console,
    load_registry,
    normalize_paths,
)

logger = get_logger("cli")


def format_pr(record: StatusRecord) -> str:
    """Short rich-markup rendering of a PR status record."""
    if isinstance(record, PRExists):
        if record.is_merged:
            return f"[magenta]{MERGED_SYMBOL} #{record.number}[/magenta]"
        symbol = get_checks_symbol(record.checks)
        text = f"#{record.number} {symbol}".strip()
        if record.state and not record.is_open:
            text += f" {record.state.lower()}"
        return text
    if isinstance(record, PRNoPR):
        return "[dim]no PR[/dim]"
    if isinstance(record, PRError):
        return "[red]error[/red]"
    return "[dim]-[/dim]"


def format_git(status: GitStatus) -> str:
    parts = []
    if status.has_changes:
        parts.append(f"~{status.modified_files}")
    if status.ahead:
        parts.append(f"↑{status.ahead}")
    if status.behind:
        parts.append(f"↓{status.behind}")
    return " ".join(parts) or "[dim]clean[/dim]"


async def _resolve_worktrees(paths: List[str], git) -> List[WorktreeRef]:
    if paths:
        return [as_worktree_ref(p) for p in paths]
    return await discover_worktrees(get_projects_dir(), git)


async def _status(paths: List[str], force: bool, with_git: bool) -> None:
    components = build_components()
    refs = await _resolve_worktrees(paths, components.git)
    if not refs:
        rprint(f"[dim]No worktrees found under {get_projects_dir()}[/dim]")
        return

    engine = components.engine
    if force:
        await engine.force_refresh(refs)
    else:
        await engine.refresh_now(refs)

    git_statuses: Dict[str, GitStatus] = {}
    if with_git:
        reader = GitStatusReader(components.git)
        results = await asyncio.gather(*(reader.read(ref.path) for ref in refs))
        git_statuses = {ref.path: status for ref, status in zip(refs, results)}

    table = Table(show_header=True, header_style="bold")
    table.add_column("Project")
    table.add_column("Worktree")
    table.add_column("PR")
    if with_git:
        table.add_column("Git")
    table.add_column("Status")

    for ref in refs:
        record = engine.get_pr_status(ref.path)
        git_status = git_statuses.get(ref.path)
        label = compute_status_label(ACTIVITY_NOT_RUNNING, False, git_status, record)
        row = [ref.project, ref.path.rsplit("/", 1)[-1], format_pr(record)]
        if with_git:
            row.append(format_git(git_status or GitStatus()))
        row.append(f"[{get_label_color(label)}]{label}[/]" if label else "")
        table.add_row(*row)
    console.print(table)


@app.command()
def status(
    paths: PathsArgument = None,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Ignore cached PR status")
    ] = False,
    git: Annotated[
        bool, typer.Option("--git/--no-git", help="Include local git divergence")
    ] = True,
):
    """Show PR status (and git divergence) of worktrees."""
    setup_cli_logging()
    asyncio.run(_status(normalize_paths(paths), force, git))


@app.command()
def detect(
    session: Annotated[str, typer.Argument(help="Multiplexer session name")],
):
    """Identify the assistant running in a session and what it is doing."""
    setup_cli_logging()
    settings = EngineSettings.load()
    reader = SessionActivityReader(build_tmux(), load_registry(), settings.capture_lines)
    snapshot = asyncio.run(reader.read(session))

    symbol, color = get_activity_symbol(snapshot.status)
    rprint(f"[{color}]{symbol}[/{color}] {session}: tool=[bold]{snapshot.tool}[/bold] "
           f"status=[{color}]{snapshot.status}[/{color}]")


def describe_changes(previous: EngineState, current: EngineState) -> List[str]:
    """Human-readable lines for records that changed between two states."""
    lines = []
    for key, record in current.pull_requests.items():
        if previous.pull_requests.get(key) != record:
            lines.append(f"{key}: {record.loading_status} {format_pr(record)}")
    return lines


async def _watch(paths: List[str], settings: EngineSettings) -> None:
    components = build_components(settings)
    refs = await _resolve_worktrees(paths, components.git)
    if not refs:
        rprint(f"[dim]No worktrees found under {get_projects_dir()}[/dim]")
        return

    engine = components.engine
    log = get_logger("watch")
    last = {"state": engine.get_state()}

    def on_change(state: EngineState) -> None:
        for line in describe_changes(last["state"], state):
            log.info(line)
        last["state"] = state

    unsubscribe = engine.subscribe(on_change)
    log.info("Watching %d worktrees every %gs", len(refs), settings.refresh_interval)
    engine.set_visible_worktrees(refs)
    engine.start()
    try:
        await asyncio.Event().wait()
    finally:
        unsubscribe()
        await engine.shutdown()


@app.command()
def watch(
    paths: PathsArgument = None,
    interval: Annotated[
        Optional[float], typer.Option("--interval", "-i", help="Refresh interval in seconds")
    ] = None,
):
    """Keep PR status fresh and log every change until interrupted."""
    setup_watch_logging()
    overrides = {"refresh_interval": interval} if interval else None
    settings = EngineSettings.load(overrides)
    try:
        asyncio.run(_watch(normalize_paths(paths), settings))
    except KeyboardInterrupt:
        rprint("\n[dim]Stopped[/dim]")


@app.command()
def tools():
    """List the assistant tools the detector knows about."""
    registry = load_registry()
    table = Table(show_header=True, header_style="bold")
    table.add_column("Tool")
    table.add_column("Name")
    table.add_column("Processes")
    table.add_column("Working")
    for patterns in registry.tools():
        processes = list(patterns.process_patterns)
        processes += [f"{p} (+content)" for p in patterns.generic_process_patterns]
        table.add_row(
            patterns.tool,
            patterns.display_name,
            ", ".join(processes),
            ", ".join(patterns.working_patterns),
        )
    console.print(table)
