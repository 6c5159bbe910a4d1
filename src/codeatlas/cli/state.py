"""Incremental state commands."""

import datetime
from pathlib import Path

import typer

from ..repository import discover_repository
from ..state import IncrementalStateStore
from ._common import console

state_app = typer.Typer(help="Inspect or reset incremental analysis state.", no_args_is_help=True)


def _timestamp(value) -> str:
    if value is None:
        return "never"
    return datetime.datetime.fromtimestamp(value).isoformat(timespec="seconds")


@state_app.command("show")
def state_show(
    path: Path = typer.Argument(Path("."), exists=True, file_okay=False, dir_okay=True),
):
    """Show the incremental marker for a repository."""
    repo = discover_repository(path)
    store = IncrementalStateStore()
    marker = store.load(repo)

    if marker is None:
        console.print("[yellow]No incremental state.[/yellow] The next run analyzes everything.")
        raise typer.Exit(0)

    console.print(f"[bold cyan]Incremental state[/bold cyan] [dim]{store.marker_path(repo)}[/dim]")
    console.print(f"Last analyzed commit: [green]{marker.last_analyzed_commit}[/green]")
    console.print(f"Last analysis: {_timestamp(marker.last_analysis_timestamp)}")
    console.print(f"Total runs: [yellow]{marker.total_runs}[/yellow]")
    for adapter_id, meta in sorted(marker.adapters.items()):
        console.print(f"  {adapter_id}: {meta}")


@state_app.command("clear")
def state_clear(
    path: Path = typer.Argument(Path("."), exists=True, file_okay=False, dir_okay=True),
):
    """Remove the incremental marker so the next run does a full pass."""
    repo = discover_repository(path)
    if IncrementalStateStore().clear(repo):
        console.print("[green]Incremental state cleared[/green]")
    else:
        console.print("[yellow]No incremental state to clear[/yellow]")
