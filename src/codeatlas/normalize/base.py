"""Shared machinery for finding normalizers.

A normalizer turns one adapter family's native payload into unified
findings and metrics. Subclasses declare their severity and category maps
and implement ``iter_records`` / ``parse_record``; this module resolves
locations, assigns stable ids and validates every finding it emits.

Malformed records never crash a run: they are dropped and counted as
invariant violations on the adapter result.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Optional

from ..exceptions import ErrorCode, InvariantViolation
from ..logging_config import adapter_logger
from ..model import (
    Category,
    CodeEntity,
    Confidence,
    Finding,
    Location,
    Metric,
    MetricScope,
    Repository,
    Severity,
    Verification,
    make_finding_id,
)
from ..paths import PathCanonicalizer


@dataclass
class FindingDraft:
    """A finding before location resolution and id assignment."""

    rule_key: str
    message: str
    file: Optional[str] = None
    line: int = 0
    end_line: int = 0
    native_severity: Optional[str] = None
    severity: Optional[Severity] = None
    category: Category = Category.OTHER
    kind: Optional[str] = None
    confidence: Optional[Confidence] = None
    effort_minutes: int = 0
    tags: tuple[str, ...] = ()
    entity: Optional[CodeEntity] = None
    verification: Optional[Verification] = None
    related_files: tuple[str, ...] = ()


@dataclass
class MetricDraft:
    key: str
    value: float
    scope: MetricScope = MetricScope.REPO
    unit: str = ""
    file: Optional[str] = None
    entity: Optional[str] = None


@dataclass
class NormalizedOutput:
    findings: list[Finding] = field(default_factory=list)
    metrics: list[Metric] = field(default_factory=list)
    dropped: int = 0
    invariant_violations: int = 0


def require(record: Any, key: str, expected: type | tuple[type, ...], where: str = "record") -> Any:
    """Fetch ``record[key]`` and check its type.

    Raises:
        InvariantViolation: If the record is not a mapping, or the key is
            missing or mistyped
    """
    if not isinstance(record, Mapping):
        raise InvariantViolation(
            f"{where} is {type(record).__name__}, expected an object", code=ErrorCode.CA300
        )
    if key not in record:
        raise InvariantViolation(f"{where} lacks '{key}'", code=ErrorCode.CA300)
    value = record[key]
    if isinstance(value, bool) and bool not in _as_tuple(expected):
        raise InvariantViolation(f"{where}.{key} is a bool", code=ErrorCode.CA300)
    if not isinstance(value, expected):
        raise InvariantViolation(
            f"{where}.{key} is {type(value).__name__}", code=ErrorCode.CA300
        )
    return value


def optional(record: Mapping, key: str, expected: type | tuple[type, ...], default: Any = None) -> Any:
    """Like ``require`` but absent or null values yield ``default``."""
    if not isinstance(record, Mapping):
        raise InvariantViolation(
            f"record is {type(record).__name__}, expected an object", code=ErrorCode.CA300
        )
    value = record.get(key)
    if value is None:
        return default
    if isinstance(value, bool) and bool not in _as_tuple(expected):
        raise InvariantViolation(f"record.{key} is a bool", code=ErrorCode.CA300)
    if not isinstance(value, expected):
        raise InvariantViolation(
            f"record.{key} is {type(value).__name__}", code=ErrorCode.CA300
        )
    return value


def _as_tuple(expected: type | tuple[type, ...]) -> tuple[type, ...]:
    return expected if isinstance(expected, tuple) else (expected,)


_EFFORT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(d|h|min|m)\b")
_EFFORT_UNITS = {"d": 8 * 60, "h": 60, "min": 1, "m": 1}


def parse_effort(value: Any) -> int:
    """Remediation effort in minutes from "1h 30min", "2d", "15min" or a number."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return 0
        return max(0, int(value))
    total = 0.0
    for amount, unit in _EFFORT_RE.findall(str(value)):
        total += float(amount) * _EFFORT_UNITS[unit]
    return int(total)


def validate_finding(finding: Finding, repository: Repository) -> None:
    """Check a normalized finding against the unified schema.

    Raises:
        InvariantViolation: On any broken invariant
    """
    problems = []
    if not finding.rule_key:
        problems.append("empty rule_key")
    if finding.location.line < 0 or finding.location.end_line < 0:
        problems.append("negative line")
    if finding.location.end_line and finding.location.end_line < finding.location.line:
        problems.append("end_line before line")
    if finding.location.file is not None and not repository.has_file(finding.location.file):
        problems.append(f"file {finding.location.file} not in repository")
    if finding.confidence == Confidence.PROOF and finding.verification is None:
        problems.append("proof confidence without verification evidence")
    if problems:
        raise InvariantViolation(
            f"Finding from {finding.adapter} failed validation: {', '.join(problems)}",
            code=ErrorCode.CA300,
            context={"adapter": finding.adapter, "rule": finding.rule_key},
        )


class Normalizer:
    """Base normalizer.

    Attributes:
        family: Name adapters use to select this normalizer
        severity_map: Native severity (lower-cased) -> canonical severity.
            Must be monotone in the tool's own ordering.
        category_map: Native category (lower-cased) -> canonical category
        default_confidence: Confidence for findings with a mapped severity
    """

    family: str = "base"
    severity_map: Mapping[str, Severity] = {}
    category_map: Mapping[str, Category] = {}
    default_confidence: Confidence = Confidence.MEDIUM

    def iter_records(self, payload: Any) -> Iterable[Any]:
        """Yield native finding records.

        Raises:
            InvariantViolation: If the payload's top-level shape is wrong
        """
        raise NotImplementedError

    def parse_record(self, record: Any) -> Iterator[FindingDraft]:
        """Convert one native record into zero or more drafts.

        Raises:
            InvariantViolation: If the record does not match the accepted shape
        """
        raise NotImplementedError

    def iter_metric_records(self, payload: Any) -> Iterable[Any]:
        """Yield native metric records. Families without metrics yield nothing."""
        return ()

    def parse_metric(self, record: Any) -> MetricDraft:
        raise NotImplementedError

    def map_severity(self, native: Any) -> tuple[Severity, Optional[Confidence]]:
        """Canonical severity for a native level.

        Missing or unknown levels map to MEDIUM with LOW confidence.
        """
        if native is None or str(native).strip() == "":
            return Severity.MEDIUM, Confidence.LOW
        mapped = self.severity_map.get(str(native).strip().lower())
        if mapped is None:
            return Severity.MEDIUM, Confidence.LOW
        return mapped, None

    def map_category(self, native: Any) -> Category:
        if not isinstance(native, str) or not native.strip():
            return Category.OTHER
        key = native.strip().lower()
        if key in self.category_map:
            return self.category_map[key]
        return Category.parse(key)

    def normalize(
        self,
        payload: Any,
        adapter_id: str,
        repository: Repository,
        canonicalizer: PathCanonicalizer,
    ) -> NormalizedOutput:
        """Convert a native payload into findings and metrics for ``adapter_id``."""
        out = NormalizedOutput()
        log = adapter_logger(adapter_id, __name__)

        try:
            records = list(self.iter_records(payload))
        except InvariantViolation as e:
            log.warning(f"Payload rejected by {self.family} normalizer: {e}")
            out.invariant_violations += 1
            records = []

        ordinal = 0
        for record in records:
            try:
                drafts = list(self.parse_record(record))
            except InvariantViolation as e:
                log.debug(f"Dropped malformed record: {e}")
                out.invariant_violations += 1
                continue

            for draft in drafts:
                finding = self._build(draft, adapter_id, repository, canonicalizer, ordinal, out)
                ordinal += 1
                if finding is None:
                    continue
                try:
                    validate_finding(finding, repository)
                except InvariantViolation as e:
                    log.debug(str(e))
                    out.invariant_violations += 1
                    continue
                out.findings.append(finding)

        try:
            metric_records = list(self.iter_metric_records(payload))
        except InvariantViolation as e:
            log.debug(f"Metrics rejected: {e}")
            out.invariant_violations += 1
            metric_records = []
        for record in metric_records:
            try:
                draft = self.parse_metric(record)
            except InvariantViolation as e:
                log.debug(f"Dropped malformed metric: {e}")
                out.invariant_violations += 1
                continue
            metric = self._build_metric(draft, adapter_id, repository, canonicalizer)
            if metric is None:
                out.dropped += 1
            else:
                out.metrics.append(metric)

        if out.dropped or out.invariant_violations:
            log.info(
                f"{len(out.findings)} findings, {out.dropped} dropped, "
                f"{out.invariant_violations} malformed"
            )
        return out

    def _resolve(
        self,
        raw: Optional[str],
        adapter_id: str,
        repository: Repository,
        canonicalizer: PathCanonicalizer,
    ) -> Optional[str]:
        if not isinstance(raw, str):
            return None
        canonical = canonicalizer.canonicalize(raw, adapter_id)
        if canonical is None or not repository.has_file(canonical):
            return None
        return canonical

    def _build(
        self,
        draft: FindingDraft,
        adapter_id: str,
        repository: Repository,
        canonicalizer: PathCanonicalizer,
        ordinal: int,
        out: NormalizedOutput,
    ) -> Optional[Finding]:
        file = None
        if draft.file is not None:
            file = self._resolve(draft.file, adapter_id, repository, canonicalizer)
            if file is None:
                out.dropped += 1
                return None

        if draft.severity is not None:
            severity, confidence = draft.severity, None
        else:
            severity, confidence = self.map_severity(draft.native_severity)
        confidence = confidence or draft.confidence or self.default_confidence

        related = []
        for raw in draft.related_files:
            resolved = self._resolve(raw, adapter_id, repository, canonicalizer)
            if resolved and resolved != file and resolved not in related:
                related.append(resolved)

        line = max(0, draft.line)
        return Finding(
            id=make_finding_id(adapter_id, draft.rule_key, file, line, draft.message, ordinal),
            adapter=adapter_id,
            category=draft.category,
            kind=draft.kind,
            severity=severity,
            confidence=confidence,
            location=Location(file=file, line=line, end_line=max(0, draft.end_line), entity=draft.entity),
            rule_key=draft.rule_key,
            message=draft.message,
            effort_minutes=draft.effort_minutes,
            tags=draft.tags,
            verification=draft.verification,
            related_files=tuple(related),
        )

    def _build_metric(
        self,
        draft: MetricDraft,
        adapter_id: str,
        repository: Repository,
        canonicalizer: PathCanonicalizer,
    ) -> Optional[Metric]:
        file = None
        if draft.file is not None:
            file = self._resolve(draft.file, adapter_id, repository, canonicalizer)
            if file is None:
                return None
        return Metric(
            scope=draft.scope,
            key=draft.key,
            value=float(draft.value),
            unit=draft.unit,
            file=file,
            entity=draft.entity,
        )


_CWE_RE = re.compile(r"\bcwe[-_: ]?0*(\d+)\b", re.IGNORECASE)


def extract_cwe(values: Iterable[Any]) -> Optional[str]:
    """First CWE id found in ``values`` as a canonical sub-kind, e.g. "cwe-79"."""
    for value in values:
        match = _CWE_RE.search(str(value))
        if match:
            return f"cwe-{match.group(1)}"
    return None


def slug(value: str) -> str:
    """Canonical sub-kind spelling: lower case, underscores."""
    return re.sub(r"[^a-z0-9]+", "_", value.strip().lower()).strip("_")
