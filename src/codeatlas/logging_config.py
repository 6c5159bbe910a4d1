"""
Logging configuration for codeatlas.

Terminal output goes through rich on stderr; stdout is reserved for the
run document. Messages about one adapter go through ``adapter_logger`` so
every line names the adapter it concerns, and the optional log file carries
the adapter id as its own column.
"""

import logging
from typing import Any, MutableMapping, Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "codeatlas"

# Placeholder adapter column for records not tied to an adapter
NO_ADAPTER = "-"

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(adapter)s - %(message)s"


class AdapterField(logging.Filter):
    """Guarantees ``record.adapter`` so FILE_FORMAT never fails."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "adapter"):
            record.adapter = NO_ADAPTER
        return True


class AdapterLogAdapter(logging.LoggerAdapter):
    """Prefixes messages with ``[adapter-id]`` and tags the record with it."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        adapter_id = self.extra["adapter"]
        extra = dict(kwargs.get("extra") or {})
        extra["adapter"] = adapter_id
        kwargs["extra"] = extra
        return f"[{adapter_id}] {msg}", kwargs


def setup_logging(
    verbose: bool = False, quiet: bool = False, log_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure logging for a CLI invocation.

    Args:
        verbose: Enable DEBUG level logging
        quiet: Suppress all but ERROR level logging
        log_file: Optional file that receives every record with its adapter column

    Returns:
        The codeatlas root logger
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.WARNING

    console = Console(stderr=True)

    handlers: list[logging.Handler] = [
        RichHandler(
            console=console,
            rich_tracebacks=True,
            tracebacks_show_locals=verbose,
            markup=False,
            show_time=True,
            show_path=verbose,
        )
    ]

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.addFilter(AdapterField())
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handlers.append(file_handler)

    logging.basicConfig(
        level=level, format="%(message)s", datefmt="[%X]", handlers=handlers, force=True
    )

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger under the codeatlas hierarchy.

    Args:
        name: Module name (e.g., 'codeatlas.cache'); bare names are prefixed.
              If None, returns the root codeatlas logger

    Returns:
        Logger instance
    """
    if name is None:
        return logging.getLogger(ROOT_LOGGER)

    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"

    return logging.getLogger(name)


def adapter_logger(adapter_id: str, name: Optional[str] = None) -> AdapterLogAdapter:
    """Logger for messages about one adapter.

    Usage:
        log = adapter_logger("semgrep", __name__)
        log.warning("Timed out")   # "[semgrep] Timed out", record.adapter == "semgrep"
    """
    return AdapterLogAdapter(get_logger(name), {"adapter": adapter_id})
