"""Dict conversion for findings and metrics.

``finding_from_dict(finding_to_dict(f)) == f`` for every finding. Optional
fields absent from the input take their dataclass defaults.
"""

from __future__ import annotations

from typing import Any

from .entities import CodeEntity, Finding, Location, Metric, Verification
from .enums import Category, Confidence, EntityKind, MetricScope, Severity, Verdict


def finding_to_dict(finding: Finding) -> dict[str, Any]:
    loc = finding.location
    location: dict[str, Any] = {"file": loc.file, "line": loc.line, "end_line": loc.end_line}
    if loc.entity is not None:
        location["entity"] = {
            "kind": loc.entity.kind.value,
            "name": loc.entity.name,
            "start_line": loc.entity.start_line,
            "end_line": loc.entity.end_line,
        }

    data: dict[str, Any] = {
        "id": finding.id,
        "adapter": finding.adapter,
        "category": finding.category.value,
        "kind": finding.kind,
        "severity": finding.severity.value,
        "confidence": finding.confidence.value,
        "location": location,
        "rule_key": finding.rule_key,
        "message": finding.message,
        "effort_minutes": finding.effort_minutes,
        "tags": list(finding.tags),
        "related_files": list(finding.related_files),
    }
    if finding.verification is not None:
        v = finding.verification
        data["verification"] = {
            "property": v.property,
            "property_kind": v.property_kind,
            "verdict": v.verdict.value,
            "potential_loss": v.potential_loss,
        }
    return data


def finding_from_dict(data: dict[str, Any]) -> Finding:
    raw_loc = data.get("location") or {}
    entity = None
    if raw_loc.get("entity"):
        e = raw_loc["entity"]
        entity = CodeEntity(
            kind=EntityKind(e["kind"]),
            name=e["name"],
            start_line=int(e.get("start_line", 0)),
            end_line=int(e.get("end_line", 0)),
        )
    location = Location(
        file=raw_loc.get("file"),
        line=int(raw_loc.get("line", 0)),
        end_line=int(raw_loc.get("end_line", 0)),
        entity=entity,
    )

    verification = None
    if data.get("verification"):
        v = data["verification"]
        verification = Verification(
            property=v["property"],
            property_kind=v["property_kind"],
            verdict=Verdict(v["verdict"]),
            potential_loss=float(v.get("potential_loss", 0.0)),
        )

    return Finding(
        id=data["id"],
        adapter=data["adapter"],
        category=Category(data["category"]),
        severity=Severity(data["severity"]),
        confidence=Confidence(data["confidence"]),
        location=location,
        rule_key=data["rule_key"],
        message=data["message"],
        kind=data.get("kind"),
        effort_minutes=int(data.get("effort_minutes", 0)),
        tags=tuple(data.get("tags", ())),
        verification=verification,
        related_files=tuple(data.get("related_files", ())),
    )


def metric_to_dict(metric: Metric) -> dict[str, Any]:
    return {
        "scope": metric.scope.value,
        "key": metric.key,
        "value": metric.value,
        "unit": metric.unit,
        "file": metric.file,
        "entity": metric.entity,
    }


def metric_from_dict(data: dict[str, Any]) -> Metric:
    return Metric(
        scope=MetricScope(data["scope"]),
        key=data["key"],
        value=float(data["value"]),
        unit=data.get("unit", ""),
        file=data.get("file"),
        entity=data.get("entity"),
    )
