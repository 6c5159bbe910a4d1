"""Closed enumerations of the unified data model."""

from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    """Canonical severity, ordered from least to most severe."""

    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    @classmethod
    def from_rank(cls, rank: int) -> Severity:
        rank = max(0, min(len(_SEVERITY_ORDER) - 1, rank))
        return _SEVERITY_ORDER[rank]


_SEVERITY_ORDER = [Severity.INFO, Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class Confidence(str, Enum):
    """How much the producing normalizer trusts a finding.

    PROOF is reserved for findings backed by formal verification evidence.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    PROOF = "proof"


class Category(str, Enum):
    BUG = "bug"
    SECURITY = "security"
    PERFORMANCE = "performance"
    STYLE = "style"
    MAINTAINABILITY = "maintainability"
    COMPLEXITY = "complexity"
    DUPLICATION = "duplication"
    DOCUMENTATION = "documentation"
    TYPE = "type"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str | None) -> Category:
        """Map a free-form category name into the closed domain."""
        if not value:
            return cls.OTHER
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.OTHER


class FileCategory(str, Enum):
    SOURCE = "source"
    TEST = "test"
    CONFIG = "config"
    DOCS = "docs"
    BUILD = "build"
    ASSET = "asset"
    DEPENDENCY = "dependency"


class EntityKind(str, Enum):
    FUNCTION = "function"
    CLASS = "class"
    CONTRACT = "contract"
    MODULE = "module"


class MetricScope(str, Enum):
    REPO = "repo"
    FILE = "file"
    ENTITY = "entity"


class AdapterStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMEOUT = "timeout"


class ErrorKind(str, Enum):
    """Why an adapter did not produce a clean result."""

    UNAVAILABLE = "unavailable"
    CONFIG_MISSING = "config-missing"
    TIMEOUT = "timeout"
    EXTERNAL_ERROR = "external-error"
    PARTIAL = "partial"
    INVARIANT_VIOLATION = "invariant-violation"
    CONTRACT_VIOLATION = "contract-violation"


class RunStatus(str, Enum):
    CLEAN = "clean"
    DEGRADED = "degraded"
    ABORTED = "aborted"


class Verdict(str, Enum):
    """Outcome of checking one property with a verification tool."""

    VERIFIED = "verified"
    VIOLATED = "violated"
    PARTIAL = "partial"
    UNKNOWN = "unknown"
