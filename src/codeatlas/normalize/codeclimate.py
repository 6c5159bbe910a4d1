"""Normalizer for Code Climate engine output (JSON list of issues).

Severity manifest (native order blocker > critical > major > minor > info):

    blocker  -> critical
    critical -> critical
    major    -> high
    minor    -> medium
    info     -> low
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator

from ..exceptions import ErrorCode, InvariantViolation
from ..model import Category, Severity
from .base import FindingDraft, Normalizer, optional, require

# Code Climate expresses effort as remediation points; 50k points ~ 1 hour of work
_POINTS_PER_MINUTE = 50_000 / 60


class CodeClimateNormalizer(Normalizer):
    family = "codeclimate"
    severity_map = {
        "blocker": Severity.CRITICAL,
        "critical": Severity.CRITICAL,
        "major": Severity.HIGH,
        "minor": Severity.MEDIUM,
        "info": Severity.LOW,
    }
    category_map = {
        "bug risk": Category.BUG,
        "clarity": Category.STYLE,
        "compatibility": Category.BUG,
        "complexity": Category.COMPLEXITY,
        "duplication": Category.DUPLICATION,
        "performance": Category.PERFORMANCE,
        "security": Category.SECURITY,
        "style": Category.STYLE,
    }

    def iter_records(self, payload: Any) -> Iterable[Any]:
        if isinstance(payload, dict):
            payload = require(payload, "issues", list, "payload")
        if not isinstance(payload, list):
            raise InvariantViolation("codeclimate payload must be a list", code=ErrorCode.CA300)
        # Engines also stream "measurement" records; only issues are findings
        return [r for r in payload if not _is_measurement(r)]

    def parse_record(self, record: Any) -> Iterator[FindingDraft]:
        check = require(record, "check_name", str, "issue")
        location = require(record, "location", dict, "issue")
        path = require(location, "path", str, "location")

        line = end_line = 0
        lines = optional(location, "lines", dict)
        positions = optional(location, "positions", dict)
        if lines is not None:
            line = optional(lines, "begin", int, 0)
            end_line = optional(lines, "end", int, 0)
        elif positions is not None:
            begin = optional(positions, "begin", dict, {})
            end = optional(positions, "end", dict, {})
            line = optional(begin, "line", int, 0)
            end_line = optional(end, "line", int, 0)

        categories = optional(record, "categories", list, [])
        category = self.map_category(categories[0]) if categories else Category.OTHER

        points = optional(record, "remediation_points", (int, float), 0)

        yield FindingDraft(
            rule_key=check,
            message=optional(record, "description", str, check),
            file=path,
            line=line,
            end_line=end_line,
            native_severity=optional(record, "severity", str),
            category=category,
            effort_minutes=int(round(points / _POINTS_PER_MINUTE)),
            tags=tuple(c.lower() for c in categories if isinstance(c, str)),
        )


def _is_measurement(record: Any) -> bool:
    return isinstance(record, dict) and str(record.get("type", "issue")).lower() != "issue"
