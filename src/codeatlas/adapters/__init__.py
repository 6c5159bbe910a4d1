"""Adapters: the integration units fronting external analyzers."""

from .cancellation import CancellationToken
from .git_history import GitHistoryAdapter
from .process import ProcessResult, run_bounded
from .protocol import (
    Adapter,
    AdapterContext,
    AdapterDescription,
    AvailabilityReport,
    NativeResult,
    OptionSpec,
)
from .registry import AdapterRegistry, RegistryEntry, default_registry
from .report_file import ReportFileAdapter
from .semgrep import SemgrepAdapter

__all__ = [
    "Adapter",
    "AdapterContext",
    "AdapterDescription",
    "AdapterRegistry",
    "AvailabilityReport",
    "CancellationToken",
    "GitHistoryAdapter",
    "NativeResult",
    "OptionSpec",
    "ProcessResult",
    "RegistryEntry",
    "ReportFileAdapter",
    "SemgrepAdapter",
    "default_registry",
    "run_bounded",
]
