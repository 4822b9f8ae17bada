"""
Cache commands: stats, clear, cleanup.
"""

from rich import print as rprint

from ..settings import get_cache_path
from ._shared import build_cache, cache_app


@cache_app.command("stats")
def cache_stats():
    """Show how many cached PR statuses are still valid."""
    stats = build_cache().get_stats()
    rprint(f"[bold]PR status cache[/bold] ({get_cache_path()})")
    rprint(f"  total:   {stats.total}")
    rprint(f"  valid:   [green]{stats.valid}[/green]")
    rprint(f"  expired: [yellow]{stats.expired}[/yellow]")


@cache_app.command("clear")
def cache_clear():
    """Drop every cached PR status."""
    cache = build_cache()
    total = cache.get_stats().total
    cache.clear()
    rprint(f"[green]✓[/green] Cleared {total} cached entries")


@cache_app.command("cleanup")
def cache_cleanup():
    """Remove expired entries from the cache."""
    removed = build_cache().cleanup()
    rprint(f"[green]✓[/green] Removed {removed} expired entries")
