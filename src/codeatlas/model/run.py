"""Run-level entities: adapter results, analysis runs and bundles."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .entities import Finding, Metric, Repository
from .enums import AdapterStatus, ErrorKind, RunStatus, Severity


@dataclass
class AdapterResult:
    """One adapter's normalized output for one run.

    ``dropped`` counts findings whose location could not be resolved;
    ``invariant_violations`` counts native records that failed validation.
    """

    adapter: str
    status: AdapterStatus
    duration_seconds: float = 0.0
    findings: list[Finding] = field(default_factory=list)
    metrics: list[Metric] = field(default_factory=list)
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    dropped: int = 0
    invariant_violations: int = 0
    targets_analyzed: int = 0
    targets_failed: int = 0
    cached: bool = False

    @property
    def ok(self) -> bool:
        return self.status == AdapterStatus.OK

    @property
    def flagged(self) -> bool:
        """True when normalization had to discard malformed records."""
        return self.invariant_violations > 0

    def counts_by_severity(self) -> dict[str, int]:
        counts = {s.value: 0 for s in Severity}
        for finding in self.findings:
            counts[finding.severity.value] += 1
        return counts

    def counts_by_kind(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for finding in self.findings:
            key = finding.category_key or finding.category.value
            counts[key] = counts.get(key, 0) + 1
        return dict(sorted(counts.items()))


@dataclass(frozen=True)
class ProbeReport:
    """Outcome of probing one configured adapter before the run."""

    adapter: str
    available: bool
    reason: str = ""
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class AnalysisRun:
    """One orchestrator invocation."""

    id: str
    started_at: float
    adapters: list[str]
    options_hash: str
    target_commit: Optional[str] = None
    base_commit: Optional[str] = None
    finished_at: Optional[float] = None
    status: RunStatus = RunStatus.CLEAN


@dataclass
class AnalysisBundle:
    """Per-adapter output of one run, in adapter-declaration order."""

    run: AnalysisRun
    repository: Repository
    results: list[AdapterResult] = field(default_factory=list)
    probes: list[ProbeReport] = field(default_factory=list)
    adapter_kinds: dict[str, str] = field(default_factory=dict)
    adapter_types: dict[str, str] = field(default_factory=dict)

    @property
    def status(self) -> RunStatus:
        return self.run.status

    @property
    def findings(self) -> list[Finding]:
        """All findings, merged in adapter-declaration order."""
        merged: list[Finding] = []
        for result in self.results:
            merged.extend(result.findings)
        return merged

    @property
    def metrics(self) -> list[Metric]:
        merged: list[Metric] = []
        for result in self.results:
            merged.extend(result.metrics)
        return merged

    def result_for(self, adapter: str) -> Optional[AdapterResult]:
        for result in self.results:
            if result.adapter == adapter:
                return result
        return None

    @property
    def ran_adapters(self) -> list[str]:
        """Adapters that executed (or were served from cache)."""
        return [r.adapter for r in self.results if r.status != AdapterStatus.SKIPPED]

    def counters(self) -> dict[str, int]:
        total = {s.value: 0 for s in AdapterStatus}
        for result in self.results:
            total[result.status.value] += 1
        total["findings"] = sum(len(r.findings) for r in self.results)
        total["metrics"] = sum(len(r.metrics) for r in self.results)
        total["dropped"] = sum(r.dropped for r in self.results)
        total["invariant_violations"] = sum(r.invariant_violations for r in self.results)
        return total
