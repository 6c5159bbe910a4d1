"""CLI entry point: registers all subcommands."""

import typer

app = typer.Typer(
    name="codeatlas",
    help="codeatlas - aggregate and correlate code analysis tools",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)


# Import subcommands to register them
from .run import run as _run  # noqa: F401, E402
from .adapters import adapters as _adapters  # noqa: F401, E402
from .cache import cache_app  # noqa: E402
from .state import state_app  # noqa: E402

app.add_typer(cache_app, name="cache")
app.add_typer(state_app, name="state")


def main() -> None:
    app()
