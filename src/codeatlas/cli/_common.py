"""Shared CLI helpers."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from ..cache import CacheLayer
from ..config import AtlasConfig, load_config
from ..exceptions import ConfigurationError

console = Console()

EXIT_ABORTED = 130


def resolve_config(
    config: Optional[Path] = None,
    adapters: Optional[list[str]] = None,
    verbose: bool = False,
    quiet: bool = False,
) -> AtlasConfig:
    """Build configuration from CLI options.

    ``--adapter`` flags select adapters by id: configured instances with a
    matching id are kept as configured, other ids are added with default
    options.
    """
    settings = load_config(config_file=config, verbose=verbose, quiet=quiet)
    if adapters:
        known = {a.id: a for a in settings.adapters}
        selected = [known.get(a, a) for a in adapters]
        settings = load_config(config_file=config, verbose=verbose, quiet=quiet, adapters=selected)
    return settings


def build_cache(settings: AtlasConfig) -> CacheLayer:
    return CacheLayer(settings.cache, directory=settings.cache_path)


def config_or_exit(config: Optional[Path] = None) -> AtlasConfig:
    """resolve_config for maintenance commands: configuration errors exit with status 2."""
    try:
        return resolve_config(config=config)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(e.exit_code)
