"""Adapters that read a report an external tool already produced.

CI pipelines often run SonarQube, Code Climate, Semgrep, CodeQL or a
contract verifier in their own step. These adapters pick up the resulting
JSON file (``report_path`` option, relative to the repository root or
absolute) and hand it to the matching normalizer.

One adapter class serves every family; the description is composed in.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from ..logging_config import get_logger
from ..model import ErrorKind
from .protocol import AdapterContext, AdapterDescription, AvailabilityReport, NativeResult, OptionSpec

logger = get_logger(__name__)

REPORT_OPTIONS = (
    OptionSpec("report_path", "str", required=True, help="Path of the tool's JSON report"),
    OptionSpec("max_bytes", "int", default=64 * 1024 * 1024, help="Refuse reports larger than this"),
)


def report_description(
    adapter_id: str,
    name: str,
    normalizer: str,
    finding_kinds: tuple[str, ...],
    kind: str = "static-analysis",
    languages: tuple[str, ...] = ("*",),
) -> AdapterDescription:
    return AdapterDescription(
        id=adapter_id,
        name=name,
        kind=kind,
        normalizer=normalizer,
        languages=languages,
        inputs=("report-file",),
        finding_kinds=finding_kinds,
        options=REPORT_OPTIONS,
        max_execution_seconds=60.0,
    )


SONARQUBE_REPORT = report_description(
    "sonarqube-report", "SonarQube", "sonarqube", ("bug", "security", "maintainability")
)
CODECLIMATE_REPORT = report_description(
    "codeclimate-report",
    "Code Climate",
    "codeclimate",
    ("bug", "complexity", "duplication", "performance", "security", "style"),
)
SEMGREP_REPORT = report_description(
    "semgrep-report", "Semgrep", "semgrep", ("security", "bug", "maintainability", "performance")
)
SARIF_REPORT = report_description(
    "sarif-report", "SARIF", "sarif", ("security", "bug", "maintainability", "performance")
)
CONTRACT_REPORT = report_description(
    "contract-verification-report",
    "Smart-contract verifier",
    "contract",
    ("security",),
    kind="contract-verification",
    languages=("solidity", "vyper"),
)

ALL_REPORT_DESCRIPTIONS = (
    SONARQUBE_REPORT,
    CODECLIMATE_REPORT,
    SEMGREP_REPORT,
    SARIF_REPORT,
    CONTRACT_REPORT,
)


class ReportFileAdapter:
    """Load a JSON report for one normalizer family."""

    def __init__(self, description: AdapterDescription, options: dict[str, Any], root: Optional[str] = None):
        self._description = description
        self._options = options
        self._root = root

    def describe(self) -> AdapterDescription:
        return self._description

    def capabilities(self) -> dict[str, list[str]]:
        return self._description.capabilities()

    def _report_path(self, root: Optional[str]) -> Path:
        path = Path(self._options["report_path"])
        if not path.is_absolute() and root is not None:
            path = Path(root) / path
        return path

    def probe(self) -> AvailabilityReport:
        path = self._report_path(self._root)
        if not path.is_file():
            return AvailabilityReport.unavailable(f"report not found: {path}")
        return AvailabilityReport.ok(path=str(path))

    def analyze(self, context: AdapterContext, options: dict[str, Any]) -> NativeResult:
        path = self._report_path(str(context.root))
        try:
            size = path.stat().st_size
        except OSError as e:
            return NativeResult.failure(ErrorKind.EXTERNAL_ERROR, f"cannot read report: {e}")
        if size > options["max_bytes"]:
            return NativeResult.failure(
                ErrorKind.EXTERNAL_ERROR, f"report is {size} bytes, limit {options['max_bytes']}"
            )
        if context.cancel.cancelled:
            return NativeResult.failure(ErrorKind.TIMEOUT, "cancelled before reading report")
        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            return NativeResult.failure(ErrorKind.EXTERNAL_ERROR, f"invalid report {path.name}: {e}")
        logger.debug(f"{context.adapter_id}: loaded {path} ({size} bytes)")
        return NativeResult.success(payload, targets_analyzed=1)
