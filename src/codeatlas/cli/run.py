"""Run command: collect, correlate, project and report."""

import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..adapters import CancellationToken, default_registry
from ..correlation import CorrelatedModel, CorrelationEngine
from ..exceptions import CodeAtlasError, ConfigurationError
from ..logging_config import setup_logging
from ..model import AdapterStatus, RunStatus
from ..orchestrator import CollectionOrchestrator
from ..projection import project
from ..report import build_document, render_document, write_document
from ..repository import discover_repository
from ..state import IncrementalStateStore
from . import app
from ._common import EXIT_ABORTED, build_cache, console, resolve_config

_STATUS_STYLE = {
    AdapterStatus.OK: "green",
    AdapterStatus.FAILED: "red",
    AdapterStatus.TIMEOUT: "yellow",
    AdapterStatus.SKIPPED: "dim",
}

_RUN_STYLE = {
    RunStatus.CLEAN: "green",
    RunStatus.DEGRADED: "yellow",
    RunStatus.ABORTED: "red",
}


@app.command()
def run(
    path: Path = typer.Argument(
        Path("."),
        help="Repository root to analyze",
        exists=True,
        file_okay=False,
        dir_okay=True,
        readable=True,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "-c",
        "--config",
        help="Configuration file (TOML)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    adapter: Optional[list[str]] = typer.Option(
        None,
        "-a",
        "--adapter",
        help="Adapter id to run (repeatable; default: configured adapters)",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "-o",
        "--output",
        help="Write the run document to this file",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print the run document as JSON on stdout",
    ),
    stable: bool = typer.Option(
        False,
        "--stable",
        help="Omit timestamps and durations so identical runs produce identical documents",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors"),
):
    """
    Run the configured adapters against a repository and report the result.

    [bold cyan]Examples:[/bold cyan]

      codeatlas run .

      codeatlas run . --adapter git-history --adapter semgrep

      codeatlas run /path/to/repo --json --stable
    """
    logger = setup_logging(verbose=verbose, quiet=quiet)
    token = CancellationToken()

    _original_sigint = signal.getsignal(signal.SIGINT)

    def _signal_handler(signum, frame):
        logger.info("Received SIGINT, cancelling run...")
        token.cancel("interrupted")

    try:
        settings = resolve_config(config=config, adapters=adapter, verbose=verbose, quiet=quiet)
        repository = discover_repository(path)
        orchestrator = CollectionOrchestrator(
            default_registry(),
            settings,
            cache=build_cache(settings),
            state=IncrementalStateStore(),
        )

        try:
            signal.signal(signal.SIGINT, _signal_handler)
        except ValueError:
            pass  # not in main thread

        status_console = Console(stderr=True, quiet=quiet or json_output)
        try:
            with status_console.status("Collecting...") as status:
                bundle = orchestrator.run_all(
                    repository, cancel=token, on_progress=lambda msg: status.update(msg)
                )
        finally:
            try:
                signal.signal(signal.SIGINT, _original_sigint)
            except ValueError:
                pass

        model = CorrelationEngine(settings).correlate(bundle)
        document = build_document(model, project(model), volatile=not stable)

        if output is not None:
            write_document(document, output)
            if not json_output:
                console.print(f"[green]Run document written to[/green] [blue]{output}[/blue]")

        if json_output:
            typer.echo(render_document(document), nl=False)
        else:
            _print_summary(model)

        if bundle.status == RunStatus.ABORTED:
            raise typer.Exit(EXIT_ABORTED)

    except typer.Exit:
        raise

    except CodeAtlasError as e:
        logger.error(f"{e.__class__.__name__}: {e}")
        label = "Configuration error" if isinstance(e, ConfigurationError) else "Error"
        console.print(f"[red]{label}:[/red] {e}")
        raise typer.Exit(e.exit_code)

    except KeyboardInterrupt:
        logger.info("Run interrupted by user")
        console.print("\n[yellow]Run interrupted[/yellow]")
        raise typer.Exit(EXIT_ABORTED)


def _print_summary(model: CorrelatedModel) -> None:
    bundle = model.bundle
    run_info = bundle.run
    style = _RUN_STYLE[run_info.status]

    console.print()
    console.print(
        f"[bold cyan]codeatlas[/bold cyan] run [dim]{run_info.id}[/dim] "
        f"[{style}]{run_info.status.value}[/{style}]"
    )
    repo = bundle.repository
    commit = repo.commit[:12] if repo.commit else "no commit"
    console.print(f"[dim]{repo.root} ({commit}, {len(repo.files)} files)[/dim]")
    console.print()

    table = Table(title="Adapters", title_justify="left")
    table.add_column("Adapter", style="bold")
    table.add_column("Status")
    table.add_column("Findings", justify="right")
    table.add_column("Metrics", justify="right")
    table.add_column("Time", justify="right")
    table.add_column("Note", style="dim")
    for r in bundle.results:
        colour = _STATUS_STYLE[r.status]
        note = r.error or ""
        if r.cached:
            note = "cached"
        elif r.dropped:
            note = f"{r.dropped} dropped"
        table.add_row(
            r.adapter,
            f"[{colour}]{r.status.value}[/{colour}]",
            str(len(r.findings)),
            str(len(r.metrics)),
            f"{r.duration_seconds:.1f}s",
            note,
        )
    console.print(table)

    multi = sum(1 for c in model.correlations if c.size > 1)
    console.print()
    console.print(
        f"Findings: [yellow]{len(bundle.findings)}[/yellow]  "
        f"Correlations: [yellow]{len(model.correlations)}[/yellow] "
        f"([yellow]{multi}[/yellow] cross-adapter)  "
        f"Rating: [bold]{model.rating}[/bold]"
    )

    if model.deployment is not None:
        d = model.deployment
        verdict = "[green]SAFE[/green]" if d.safe else "[red]NOT SAFE[/red]"
        console.print(f"Deployment: {verdict} (safety score {d.safety_score:.2f})")
        for factor in d.risk_factors:
            console.print(f"  [red]-[/red] {factor}")
        for mitigation in d.required_mitigations:
            console.print(f"  [cyan]>[/cyan] {mitigation}")
