"""Normalizer for SonarQube issue exports (``api/issues/search`` responses).

Severity manifest (native order BLOCKER > CRITICAL > MAJOR > MINOR > INFO):

    BLOCKER  -> critical
    CRITICAL -> high
    MAJOR    -> medium
    MINOR    -> low
    INFO     -> info

Issue types map to categories: BUG -> bug, VULNERABILITY and
SECURITY_HOTSPOT -> security, CODE_SMELL -> maintainability.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator

from ..exceptions import ErrorCode, InvariantViolation
from ..model import Category, Confidence, Severity
from .base import FindingDraft, Normalizer, optional, parse_effort, require


class SonarQubeNormalizer(Normalizer):
    family = "sonarqube"
    severity_map = {
        "blocker": Severity.CRITICAL,
        "critical": Severity.HIGH,
        "major": Severity.MEDIUM,
        "minor": Severity.LOW,
        "info": Severity.INFO,
    }
    category_map = {
        "bug": Category.BUG,
        "vulnerability": Category.SECURITY,
        "security_hotspot": Category.SECURITY,
        "code_smell": Category.MAINTAINABILITY,
    }
    default_confidence = Confidence.HIGH

    def iter_records(self, payload: Any) -> Iterable[Any]:
        if not isinstance(payload, dict):
            raise InvariantViolation("sonarqube payload must be an object", code=ErrorCode.CA300)
        return require(payload, "issues", list, "payload")

    def parse_record(self, record: Any) -> Iterator[FindingDraft]:
        rule = require(record, "rule", str, "issue")
        component = require(record, "component", str, "issue")
        message = optional(record, "message", str, rule)

        line = optional(record, "line", int, 0)
        end_line = 0
        text_range = optional(record, "textRange", dict)
        if text_range is not None:
            line = optional(text_range, "startLine", int, line)
            end_line = optional(text_range, "endLine", int, 0)

        issue_type = optional(record, "type", str)
        category = self.map_category(issue_type) if issue_type else Category.OTHER
        kind = optional(record, "securityCategory", str)

        yield FindingDraft(
            rule_key=rule,
            message=message,
            file=component_path(component),
            line=line,
            end_line=end_line,
            native_severity=optional(record, "severity", str),
            category=category,
            kind=kind.lower().replace("-", "_") if kind else None,
            effort_minutes=parse_effort(record.get("effort") or record.get("debt")),
            tags=tuple(t for t in optional(record, "tags", list, []) if isinstance(t, str)),
        )


def component_path(component: str) -> str:
    """Strip the ``projectKey:`` prefix SonarQube puts on component keys."""
    if ":" in component:
        return component.split(":", 1)[1]
    return component
