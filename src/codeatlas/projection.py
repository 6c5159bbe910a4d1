"""Spatial projection of a correlated model onto districts and buildings.

A pure, deterministic function: one building per file carrying at least one
finding, one district per top-level directory segment, roads between
buildings linked by data-flow traces, and overlays that re-express building
fields as a scalar plus a tertile band.

    projection = project(model)
    assert project(unproject(projection)) == projection
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

import numpy as np

from .correlation.models import CorrelatedModel
from .model import (
    AdapterResult,
    AdapterStatus,
    AnalysisBundle,
    AnalysisRun,
    Category,
    Confidence,
    Finding,
    Location,
    Metric,
    MetricScope,
    Repository,
    Severity,
    SourceFile,
)
from .repository import categorize

ROOT_DISTRICT = "."

# Rough source line length when no line-count metric is available
BYTES_PER_LINE = 40
LOC_METRIC_KEYS = ("loc", "ncloc", "lines")

CONDITIONS = ("excellent", "good", "fair", "poor")
SECURITY_LEVELS = ("secure", "moderate", "at-risk")
TRAFFIC_LEVELS = ("low", "medium", "high")
BANDS = ("low", "medium", "high")

OVERLAYS = ("quality", "security", "complexity", "technical-debt")

# Severity weight used by the quality overlay
_QUALITY_WEIGHT = {
    Severity.INFO: 0.1,
    Severity.LOW: 0.25,
    Severity.MEDIUM: 0.5,
    Severity.HIGH: 1.0,
    Severity.CRITICAL: 2.0,
}

UNPROJECTED_ADAPTER = "projection"


@dataclass(frozen=True)
class BuildingFinding:
    """The parts of a finding a building encodes."""

    id: str
    severity: Severity
    category: Category
    effort_minutes: int = 0
    related_files: tuple[str, ...] = ()


@dataclass(frozen=True)
class Building:
    file: str
    district: str
    language: str
    estimated_loc: int
    findings: tuple[BuildingFinding, ...]
    height: float
    condition: str
    security: str
    traffic: str

    @property
    def critical_count(self) -> int:
        return sum(1 for f in self.findings if f.severity.rank >= Severity.HIGH.rank)

    @property
    def security_count(self) -> int:
        return sum(1 for f in self.findings if f.category == Category.SECURITY)


@dataclass(frozen=True)
class District:
    path: str
    members: tuple[str, ...]
    condition: str
    security: str


@dataclass(frozen=True)
class Road:
    source: str
    target: str
    weight: int


@dataclass(frozen=True)
class Overlay:
    name: str
    values: dict[str, float]
    bands: dict[str, str]


@dataclass(frozen=True)
class CityProjection:
    districts: tuple[District, ...] = ()
    buildings: tuple[Building, ...] = ()
    roads: tuple[Road, ...] = ()
    overlays: tuple[Overlay, ...] = field(default_factory=tuple)

    def building(self, file: str) -> Optional[Building]:
        for b in self.buildings:
            if b.file == file:
                return b
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "districts": [asdict(d) for d in self.districts],
            "buildings": [_building_dict(b) for b in self.buildings],
            "roads": [asdict(r) for r in self.roads],
            "overlays": {o.name: {"values": o.values, "bands": o.bands} for o in self.overlays},
        }


def _building_dict(b: Building) -> dict[str, Any]:
    return {
        "file": b.file,
        "district": b.district,
        "language": b.language,
        "estimated_loc": b.estimated_loc,
        "height": b.height,
        "condition": b.condition,
        "security": b.security,
        "traffic": b.traffic,
        "findings": [
            {
                "id": f.id,
                "severity": f.severity.value,
                "category": f.category.value,
                "effort_minutes": f.effort_minutes,
                "related_files": list(f.related_files),
            }
            for f in b.findings
        ],
    }


# ── Building attributes ───────────────────────────────────────────────


def building_height(finding_count: int, estimated_loc: int) -> float:
    """``log10(max(100, findings * 20 + estimated LOC)) * 25``."""
    return math.log10(max(100, finding_count * 20 + estimated_loc)) * 25


def building_condition(critical_count: int) -> str:
    """Condition from the count of high and critical findings."""
    if critical_count == 0:
        return "excellent"
    if critical_count <= 2:
        return "good"
    if critical_count <= 5:
        return "fair"
    return "poor"


def security_level(security_count: int) -> str:
    if security_count == 0:
        return "secure"
    if security_count <= 2:
        return "moderate"
    return "at-risk"


def traffic_level(finding_count: int) -> str:
    if finding_count > 20:
        return "high"
    if finding_count > 10:
        return "medium"
    return "low"


def district_of(path: str) -> str:
    """Top-level directory segment; root-level files live in ``ROOT_DISTRICT``."""
    head, sep, _ = path.partition("/")
    return head if sep else ROOT_DISTRICT


def district_condition(conditions: list[str]) -> str:
    """Most common member condition; ties resolve toward the worse condition."""
    counts = Counter(conditions)
    return max(counts, key=lambda c: (counts[c], CONDITIONS.index(c)))


def district_security(levels: list[str]) -> str:
    return max(levels, key=SECURITY_LEVELS.index)


def estimated_loc(
    path: str, repository: Repository, file_metrics: dict[str, dict[str, float]]
) -> int:
    metrics = file_metrics.get(path, {})
    for key in LOC_METRIC_KEYS:
        if key in metrics:
            return max(0, int(metrics[key]))
    source = repository.files.get(path)
    if source is None:
        return 0
    return source.size // BYTES_PER_LINE


# ── Overlays ──────────────────────────────────────────────────────────


def tertile_bands(values: dict[str, float]) -> dict[str, str]:
    """Band each value as low/medium/high by the tertiles of all values."""
    if not values:
        return {}
    arr = np.array([values[k] for k in sorted(values)], dtype=float)
    low_cut, high_cut = (float(x) for x in np.percentile(arr, [100 / 3, 200 / 3]))
    bands = {}
    for key in sorted(values):
        v = values[key]
        if v <= low_cut:
            bands[key] = "low"
        elif v <= high_cut:
            bands[key] = "medium"
        else:
            bands[key] = "high"
    return bands


def _overlay_values(name: str, b: Building) -> float:
    if name == "quality":
        return float(sum(_QUALITY_WEIGHT[f.severity] for f in b.findings if f.category != Category.SECURITY))
    if name == "security":
        return float(b.security_count)
    if name == "complexity":
        return float(sum(1 for f in b.findings if f.category == Category.COMPLEXITY))
    return float(sum(f.effort_minutes for f in b.findings))


def build_overlays(buildings: tuple[Building, ...]) -> tuple[Overlay, ...]:
    overlays = []
    for name in OVERLAYS:
        values = {b.file: _overlay_values(name, b) for b in buildings}
        overlays.append(Overlay(name=name, values=values, bands=tertile_bands(values)))
    return tuple(overlays)


# ── Projection ────────────────────────────────────────────────────────


def project(model: CorrelatedModel) -> CityProjection:
    """Project a correlated model onto districts, buildings, roads and overlays."""
    repository = model.bundle.repository
    by_file = model.findings_by_file()

    file_metrics: dict[str, dict[str, float]] = {}
    for m in model.bundle.metrics:
        if m.scope == MetricScope.FILE and m.file is not None:
            file_metrics.setdefault(m.file, {}).setdefault(m.key, m.value)

    buildings = []
    for path in sorted(by_file):
        findings = by_file[path]
        encoded = tuple(
            BuildingFinding(
                id=f.id,
                severity=f.severity,
                category=f.category,
                effort_minutes=f.effort_minutes,
                related_files=f.related_files,
            )
            for f in findings
        )
        loc = estimated_loc(path, repository, file_metrics)
        source = repository.files.get(path)
        critical = sum(1 for f in encoded if f.severity.rank >= Severity.HIGH.rank)
        security = sum(1 for f in encoded if f.category == Category.SECURITY)
        buildings.append(
            Building(
                file=path,
                district=district_of(path),
                language=source.language if source else "unknown",
                estimated_loc=loc,
                findings=encoded,
                height=building_height(len(encoded), loc),
                condition=building_condition(critical),
                security=security_level(security),
                traffic=traffic_level(len(encoded)),
            )
        )

    members: dict[str, list[Building]] = {}
    for b in buildings:
        members.setdefault(b.district, []).append(b)
    districts = tuple(
        District(
            path=name,
            members=tuple(b.file for b in members[name]),
            condition=district_condition([b.condition for b in members[name]]),
            security=district_security([b.security for b in members[name]]),
        )
        for name in sorted(members)
    )

    built = {b.file for b in buildings}
    road_weights: Counter[tuple[str, str]] = Counter()
    for b in buildings:
        for f in b.findings:
            for target in f.related_files:
                if target in built and target != b.file:
                    road_weights[(b.file, target)] += 1
    roads = tuple(Road(s, t, w) for (s, t), w in sorted(road_weights.items()))

    building_tuple = tuple(buildings)
    return CityProjection(
        districts=districts,
        buildings=building_tuple,
        roads=roads,
        overlays=build_overlays(building_tuple),
    )


def unproject(projection: CityProjection) -> CorrelatedModel:
    """Reconstruct the minimal model a projection encodes.

    The result projects back to an identical projection. Findings carry the
    original ids, severities, categories, effort and related files; every
    other attribute takes its declared default.
    """
    files = {}
    findings: list[Finding] = []
    metrics: list[Metric] = []
    for b in projection.buildings:
        files[b.file] = SourceFile(
            path=b.file,
            language=b.language,
            category=categorize(b.file),
            size=b.estimated_loc * BYTES_PER_LINE,
        )
        metrics.append(
            Metric(scope=MetricScope.FILE, key="loc", value=float(b.estimated_loc), file=b.file)
        )
        for f in b.findings:
            findings.append(
                Finding(
                    id=f.id,
                    adapter=UNPROJECTED_ADAPTER,
                    category=f.category,
                    severity=f.severity,
                    confidence=Confidence.MEDIUM,
                    location=Location(file=b.file),
                    rule_key=f.id,
                    message="",
                    effort_minutes=f.effort_minutes,
                    related_files=f.related_files,
                )
            )

    repository = Repository(root="", files=files)
    bundle = AnalysisBundle(
        run=AnalysisRun(id="", started_at=0.0, adapters=[UNPROJECTED_ADAPTER], options_hash=""),
        repository=repository,
        results=[
            AdapterResult(
                adapter=UNPROJECTED_ADAPTER,
                status=AdapterStatus.OK,
                findings=findings,
                metrics=metrics,
            )
        ],
    )
    return CorrelatedModel(bundle=bundle)
