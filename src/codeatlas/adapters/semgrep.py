"""Adapter that runs the ``semgrep`` binary directly."""

from __future__ import annotations

import json
import shutil
from typing import Any, Optional

from ..logging_config import get_logger
from ..model import ErrorKind
from .process import run_bounded
from .protocol import AdapterContext, AdapterDescription, AvailabilityReport, NativeResult, OptionSpec

logger = get_logger(__name__)

DESCRIPTION = AdapterDescription(
    id="semgrep",
    name="Semgrep",
    kind="static-analysis",
    normalizer="semgrep",
    languages=("*",),
    inputs=("repository",),
    finding_kinds=("security", "bug", "maintainability", "performance"),
    options=(
        OptionSpec("config", "str", default="auto", help="Rule set passed to --config"),
        OptionSpec("exclude", "list", default=[], help="Paths passed to --exclude"),
        OptionSpec("memory_mb", "int", default=2048, help="Address-space limit for semgrep"),
        OptionSpec("binary", "str", default="semgrep", help="Executable name or path"),
    ),
    max_execution_seconds=900.0,
    cache_operation="ast-analysis",
)

# semgrep exits 1 when it found results and --error is set; both mean success
_OK_EXIT_CODES = (0, 1)


class SemgrepAdapter:
    def __init__(self, options: dict[str, Any], root: Optional[str] = None):
        self._options = options
        self._root = root

    def describe(self) -> AdapterDescription:
        return DESCRIPTION

    def capabilities(self) -> dict[str, list[str]]:
        return DESCRIPTION.capabilities()

    def probe(self) -> AvailabilityReport:
        binary = shutil.which(self._options.get("binary") or "semgrep")
        if binary is None:
            return AvailabilityReport.unavailable("semgrep executable not found on PATH")
        return AvailabilityReport.ok(binary=binary)

    def analyze(self, context: AdapterContext, options: dict[str, Any]) -> NativeResult:
        cmd = [
            options["binary"],
            "scan",
            "--json",
            "--quiet",
            "--metrics=off",
            "--config",
            options["config"],
        ]
        for pattern in options["exclude"]:
            cmd += ["--exclude", str(pattern)]
        cmd.append(".")

        result = run_bounded(
            cmd,
            cwd=context.root,
            cancel=context.cancel,
            memory_bytes=options["memory_mb"] * 1024 * 1024,
            env={"SEMGREP_USER_DATA_FOLDER": str(context.scratch_dir)},
        )
        if result.error:
            return NativeResult.failure(ErrorKind.EXTERNAL_ERROR, result.error)
        if result.cancelled or result.timed_out:
            return NativeResult.failure(ErrorKind.TIMEOUT, "semgrep cancelled")
        if result.returncode not in _OK_EXIT_CODES:
            return NativeResult.failure(
                ErrorKind.EXTERNAL_ERROR,
                f"semgrep exited {result.returncode}: {result.stderr.strip()[:500]}",
            )
        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            return NativeResult.failure(ErrorKind.EXTERNAL_ERROR, f"unparsable semgrep output: {e}")

        scanned = len(payload.get("paths", {}).get("scanned", [])) if isinstance(payload, dict) else 0
        errors = payload.get("errors", []) if isinstance(payload, dict) else []
        if errors:
            logger.debug(f"semgrep reported {len(errors)} errors")
            return NativeResult.partial(payload, analyzed=scanned, failed=len(errors))
        return NativeResult.success(payload, targets_analyzed=scanned)
