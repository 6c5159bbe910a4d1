"""Adapters command: list registered adapters and whether they can run."""

from pathlib import Path

import typer
from rich.table import Table

from ..adapters import default_registry
from ..exceptions import ConfigurationError
from . import app
from ._common import console


@app.command()
def adapters(
    path: Path = typer.Option(
        Path("."),
        "-C",
        "--path",
        help="Repository root to probe against",
        exists=True,
        file_okay=False,
        dir_okay=True,
    ),
):
    """
    List registered adapters with their kind, normalizer and probe status.

    Adapters that need options (such as a report path) are probed only when
    those options come from configuration; here they show as unconfigured.
    """
    registry = default_registry()
    root = str(path.resolve())

    table = Table(title="Registered adapters", title_justify="left")
    table.add_column("Adapter", style="bold")
    table.add_column("Kind")
    table.add_column("Normalizer")
    table.add_column("Status")
    table.add_column("Detail", style="dim")

    for adapter_id in registry.ids():
        description = registry.describe(adapter_id)
        try:
            options = description.resolve_options(adapter_id, {})
            report = registry.create(adapter_id, options, root).probe()
        except ConfigurationError as e:
            status, detail = "[yellow]unconfigured[/yellow]", str(e)
        else:
            if report.available:
                status = "[green]available[/green]"
                detail = ", ".join(f"{k}={v}" for k, v in sorted(report.details.items()))
            else:
                status, detail = "[red]unavailable[/red]", report.reason
        table.add_row(adapter_id, description.kind, description.normalizer, status, detail)

    console.print(table)
