"""Normalizer for ``semgrep --json`` output.

Severity manifest (native order ERROR > WARNING > INFO):

    ERROR   -> critical
    WARNING -> high
    INFO    -> medium

The sub-kind is the first CWE in the rule metadata, falling back to the
rule's vulnerability class.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator

from ..exceptions import ErrorCode, InvariantViolation
from ..model import Category, Confidence, Severity
from .base import FindingDraft, Normalizer, extract_cwe, optional, require, slug


class SemgrepNormalizer(Normalizer):
    family = "semgrep"
    severity_map = {
        "error": Severity.CRITICAL,
        "warning": Severity.HIGH,
        "info": Severity.MEDIUM,
    }
    category_map = {
        "security": Category.SECURITY,
        "correctness": Category.BUG,
        "best-practice": Category.MAINTAINABILITY,
        "maintainability": Category.MAINTAINABILITY,
        "portability": Category.MAINTAINABILITY,
        "performance": Category.PERFORMANCE,
        "style": Category.STYLE,
    }
    _confidence_map = {
        "high": Confidence.HIGH,
        "medium": Confidence.MEDIUM,
        "low": Confidence.LOW,
    }

    def iter_records(self, payload: Any) -> Iterable[Any]:
        if not isinstance(payload, dict):
            raise InvariantViolation("semgrep payload must be an object", code=ErrorCode.CA300)
        return require(payload, "results", list, "payload")

    def parse_record(self, record: Any) -> Iterator[FindingDraft]:
        check_id = require(record, "check_id", str, "result")
        path = require(record, "path", str, "result")
        start = optional(record, "start", dict, {})
        end = optional(record, "end", dict, {})
        extra = optional(record, "extra", dict, {})
        metadata = optional(extra, "metadata", dict, {})

        cwe = _string_list(metadata.get("cwe"))
        vuln_class = _string_list(metadata.get("vulnerability_class"))
        kind = extract_cwe(cwe) or (slug(str(vuln_class[0])) if vuln_class else None)

        native_confidence = str(metadata.get("confidence", "")).lower()
        category_name = metadata.get("category")

        yield FindingDraft(
            rule_key=check_id,
            message=optional(extra, "message", str, check_id),
            file=path,
            line=optional(start, "line", int, 0),
            end_line=optional(end, "line", int, 0),
            native_severity=optional(extra, "severity", str),
            category=self.map_category(category_name if isinstance(category_name, str) else None),
            kind=kind,
            confidence=self._confidence_map.get(native_confidence),
            tags=tuple(cwe),
        )


def _string_list(value: Any) -> list[str]:
    """Semgrep metadata fields hold a string or a list of strings."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str)]
    return []
