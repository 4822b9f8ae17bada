"""
Config commands: init, show, path.
"""

from typing import Annotated

import typer
from rich import print as rprint

from ._shared import config_app


CONFIG_TEMPLATE = """\
# wtsync configuration
# Location: ~/.wtsync/config.yaml

# Directory holding <project>/ checkouts and <project>-branches/ worktrees
# projects_dir: ~/projects

# Engine timing (seconds unless noted)
# engine:
#   window_seconds: 0.5        # refresh batching window
#   refresh_interval: 5        # background refresh of visible worktrees
#   visible_debounce: 0.2
#   capture_lines: 50          # terminal lines inspected per session
#   merge_history_limit: 20    # main-line commits scanned for merged PRs
#   command_timeout: 30
#   quick_timeout: 5

# Extra assistant tools (or overrides of claude / codex / gemini)
# tools:
#   aider:
#     display_name: Aider
#     process_patterns: [aider]
#     working_patterns: ["Thinking"]
#     waiting_patterns: ["?", "\\\\d+\\\\."]
#     idle_patterns: ["> ", ""]
"""


@config_app.callback(invoke_without_command=True)
def config_default(ctx: typer.Context):
    """Show current configuration (default when no subcommand given)."""
    if ctx.invoked_subcommand is None:
        _config_show()


@config_app.command("init")
def config_init(
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Overwrite existing config file")
    ] = False,
):
    """Create a config file with documented defaults.

    Creates ~/.wtsync/config.yaml with all options commented out.
    Use --force to overwrite an existing config file.
    """
    from .. import config

    config.CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)

    if config.CONFIG_PATH.exists() and not force:
        rprint(f"[yellow]Config file already exists:[/yellow] {config.CONFIG_PATH}")
        rprint("[dim]Use --force to overwrite[/dim]")
        raise typer.Exit(1)

    config.CONFIG_PATH.write_text(CONFIG_TEMPLATE)
    rprint(f"[green]✓[/green] Created config file: [bold]{config.CONFIG_PATH}[/bold]")


@config_app.command("show")
def config_show():
    """Show current configuration."""
    _config_show()


def _config_show():
    from .. import config

    if not config.CONFIG_PATH.exists():
        rprint(f"[dim]No config file found at {config.CONFIG_PATH}[/dim]")
        rprint("[dim]Run 'wtsync config init' to create one[/dim]")
        return

    data = config.load_config()
    if not data:
        rprint(f"[dim]Config file is empty: {config.CONFIG_PATH}[/dim]")
        return

    rprint(f"[bold]Configuration[/bold] ({config.CONFIG_PATH}):\n")
    if "projects_dir" in data:
        rprint(f"  projects_dir: {data['projects_dir']}")
    engine = config.get_engine_config()
    if engine:
        rprint("  engine:")
        for key, value in engine.items():
            rprint(f"    {key}: {value}")
    tools = config.get_tool_overrides()
    if tools:
        rprint(f"  tools: {', '.join(str(name) for name in tools)}")


@config_app.command("path")
def config_path():
    """Show the config file path."""
    from .. import config
    print(config.CONFIG_PATH)
