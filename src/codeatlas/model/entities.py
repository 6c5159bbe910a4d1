"""Repository, file and finding entities of the unified data model.

Findings reference files by canonical path only. Reverse views (file to
findings) are rebuilt on demand by the correlated model.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Optional

from .enums import (
    Category,
    Confidence,
    EntityKind,
    FileCategory,
    MetricScope,
    Severity,
    Verdict,
)


@dataclass(frozen=True)
class SourceFile:
    """A repository file at the run commit."""

    path: str  # repo-root-relative, forward slashes
    language: str
    category: FileCategory
    size: int = 0


@dataclass(frozen=True)
class Repository:
    """The subject of analysis. Immutable for the duration of a run.

    Attributes:
        root: Absolute canonical path of the working tree
        commit: Current commit sha, None outside a VCS
        branch: Current branch name, None when detached or outside a VCS
        vcs: "git" or None
        vcs_dir: Absolute path of the VCS metadata directory, None outside a VCS
        files: Canonical path -> SourceFile
    """

    root: str
    commit: Optional[str] = None
    branch: Optional[str] = None
    vcs: Optional[str] = None
    vcs_dir: Optional[str] = None
    files: dict[str, SourceFile] = field(default_factory=dict)

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files.values())

    def has_file(self, path: str) -> bool:
        return path in self.files


@dataclass(frozen=True)
class CodeEntity:
    """A named location finer than a file (function, class, contract)."""

    kind: EntityKind
    name: str
    start_line: int = 0
    end_line: int = 0


@dataclass(frozen=True)
class Location:
    """Where a finding points.

    ``file`` is None for repository-scope findings. ``line == 0`` means
    the whole file.
    """

    file: Optional[str] = None
    line: int = 0
    end_line: int = 0
    entity: Optional[CodeEntity] = None


@dataclass(frozen=True)
class Verification:
    """A verification outcome attached to a finding."""

    property: str
    property_kind: str
    verdict: Verdict
    potential_loss: float = 0.0


@dataclass(frozen=True)
class Finding:
    """One normalized observation about the code.

    Attributes:
        id: Stable identifier, derived from content (see make_finding_id)
        adapter: Id of the adapter that reported it
        category: Closed category domain
        kind: Canonical sub-kind, e.g. "reentrancy" (None when the tool has none)
        severity: Canonical severity
        confidence: How much the normalizer trusts the observation
        location: File and line range
        rule_key: The tool's own rule identifier, unchanged across runs
        message: Human-readable description
        effort_minutes: Estimated remediation effort
        tags: Free-form labels (CWE ids, OWASP tags, ...)
        verification: Verification outcome, for formal tools
        related_files: Other files the tool links to this finding (data-flow traces)
    """

    id: str
    adapter: str
    category: Category
    severity: Severity
    confidence: Confidence
    location: Location
    rule_key: str
    message: str
    kind: Optional[str] = None
    effort_minutes: int = 0
    tags: tuple[str, ...] = ()
    verification: Optional[Verification] = None
    related_files: tuple[str, ...] = ()

    @property
    def file(self) -> Optional[str]:
        return self.location.file

    @property
    def line(self) -> int:
        return self.location.line

    @property
    def category_key(self) -> Optional[str]:
        """``category/kind`` when a sub-kind is known, e.g. ``security/reentrancy``."""
        if not self.kind:
            return None
        return f"{self.category.value}/{self.kind}"


@dataclass(frozen=True)
class Metric:
    """One quantitative reading."""

    scope: MetricScope
    key: str
    value: float
    unit: str = ""
    file: Optional[str] = None
    entity: Optional[str] = None


def make_finding_id(
    adapter: str, rule_key: str, file: Optional[str], line: int, message: str, ordinal: int
) -> str:
    """Derive a stable finding id from its content and its position in the adapter output."""
    material = "\x1f".join(
        [adapter, rule_key, file or "", str(line), message, str(ordinal)]
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:16]
