"""Normalizer for payloads already shaped like the unified model.

Accepted shape::

    {
      "findings": [
        {"rule": "R1", "message": "...", "file": "src/a.py", "line": 3,
         "severity": "high", "category": "bug", "kind": null,
         "confidence": "high", "effort": "10min", "tags": [], "related_files": []}
      ],
      "metrics": [
        {"scope": "file", "key": "churn.commits", "value": 4, "unit": "commits",
         "file": "src/a.py"}
      ]
    }

Used by the built-in git-history adapter and by adapters that pre-shape
their output. The ``metrics`` family reads only the ``metrics`` list.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator

from ..exceptions import ErrorCode, InvariantViolation
from ..model import Confidence, MetricScope, Severity
from .base import FindingDraft, MetricDraft, Normalizer, optional, parse_effort, require


class GenericNormalizer(Normalizer):
    family = "generic"
    severity_map = {s.value: s for s in Severity}

    def iter_records(self, payload: Any) -> Iterable[Any]:
        if not isinstance(payload, dict):
            raise InvariantViolation("generic payload must be an object", code=ErrorCode.CA300)
        return optional(payload, "findings", list, [])

    def parse_record(self, record: Any) -> Iterator[FindingDraft]:
        rule = require(record, "rule", str)
        message = require(record, "message", str)
        confidence = optional(record, "confidence", str)
        try:
            parsed_confidence = Confidence(confidence.lower()) if confidence else None
        except ValueError:
            raise InvariantViolation(f"unknown confidence {confidence!r}", code=ErrorCode.CA300)
        if parsed_confidence == Confidence.PROOF:
            # Only verification-backed normalizers may claim proof
            parsed_confidence = Confidence.HIGH

        yield FindingDraft(
            rule_key=rule,
            message=message,
            file=optional(record, "file", str),
            line=optional(record, "line", int, 0),
            end_line=optional(record, "end_line", int, 0),
            native_severity=optional(record, "severity", str),
            category=self.map_category(optional(record, "category", str)),
            kind=optional(record, "kind", str),
            confidence=parsed_confidence,
            effort_minutes=parse_effort(record.get("effort")),
            tags=tuple(t for t in optional(record, "tags", list, []) if isinstance(t, str)),
            related_files=tuple(optional(record, "related_files", list, [])),
        )

    def iter_metric_records(self, payload: Any) -> Iterable[Any]:
        if not isinstance(payload, dict):
            return []
        return optional(payload, "metrics", list, [])

    def parse_metric(self, record: Any) -> MetricDraft:
        scope = require(record, "scope", str, "metric")
        try:
            parsed_scope = MetricScope(scope)
        except ValueError:
            raise InvariantViolation(f"unknown metric scope {scope!r}", code=ErrorCode.CA300)
        return MetricDraft(
            key=require(record, "key", str, "metric"),
            value=require(record, "value", (int, float), "metric"),
            scope=parsed_scope,
            unit=optional(record, "unit", str, ""),
            file=optional(record, "file", str),
            entity=optional(record, "entity", str),
        )


class MetricsNormalizer(GenericNormalizer):
    """Metrics-only payloads: the ``metrics`` list of the generic shape.

    A ``findings`` key, if present, is ignored.
    """

    family = "metrics"

    def iter_records(self, payload: Any) -> Iterable[Any]:
        if not isinstance(payload, dict):
            raise InvariantViolation("metrics payload must be an object", code=ErrorCode.CA300)
        return []
