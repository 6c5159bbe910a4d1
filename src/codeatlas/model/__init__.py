"""Unified data model shared by every stage of the pipeline."""

from .entities import (
    CodeEntity,
    Finding,
    Location,
    Metric,
    Repository,
    SourceFile,
    Verification,
    make_finding_id,
)
from .enums import (
    AdapterStatus,
    Category,
    Confidence,
    EntityKind,
    ErrorKind,
    FileCategory,
    MetricScope,
    RunStatus,
    Severity,
    Verdict,
)
from .run import AdapterResult, AnalysisBundle, AnalysisRun, ProbeReport
from .serialization import finding_from_dict, finding_to_dict, metric_from_dict, metric_to_dict

__all__ = [
    "AdapterResult",
    "AdapterStatus",
    "AnalysisBundle",
    "AnalysisRun",
    "Category",
    "CodeEntity",
    "Confidence",
    "EntityKind",
    "ErrorKind",
    "FileCategory",
    "Finding",
    "Location",
    "Metric",
    "MetricScope",
    "ProbeReport",
    "Repository",
    "RunStatus",
    "Severity",
    "SourceFile",
    "Verdict",
    "Verification",
    "finding_from_dict",
    "finding_to_dict",
    "make_finding_id",
    "metric_from_dict",
    "metric_to_dict",
]
