"""Cache management commands."""

from pathlib import Path
from typing import Optional

import typer

from ._common import build_cache, config_or_exit, console

cache_app = typer.Typer(help="Inspect or clear the result cache.", no_args_is_help=True)


@cache_app.command("info")
def cache_info(
    config: Optional[Path] = typer.Option(None, "-c", "--config", help="Configuration file (TOML)"),
):
    """Show cache information and statistics."""
    settings = config_or_exit(config)
    cache = build_cache(settings)
    stats = cache.stats()

    console.print("[bold cyan]codeatlas cache[/bold cyan]")
    console.print()

    if stats.get("enabled"):
        console.print("Status: [green]Enabled[/green]")
        console.print(f"Directory: [blue]{stats.get('directory', 'N/A')}[/blue]")
        console.print(f"Entries: [yellow]{stats.get('disk_entries', 0)}[/yellow]")
        console.print(f"Size: [yellow]{stats.get('volume', 0)} bytes[/yellow]")
        console.print(f"TTL: [yellow]{settings.cache.ttl_seconds:.0f}s[/yellow]")
    else:
        console.print("Status: [red]Disabled[/red]")


@cache_app.command("clear")
def cache_clear(
    config: Optional[Path] = typer.Option(None, "-c", "--config", help="Configuration file (TOML)"),
):
    """Clear the result cache."""
    settings = config_or_exit(config)
    if not settings.cache.enabled:
        console.print("[yellow]Cache is disabled[/yellow]")
        raise typer.Exit(0)

    build_cache(settings).clear()
    console.print("[green]Cache cleared successfully[/green]")
