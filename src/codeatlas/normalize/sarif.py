"""Normalizer for SARIF 2.1.0 logs (CodeQL, Semgrep, Checkmarx and others).

Severity manifest, from the result ``level`` (error > warning > note > none):

    error   -> high
    warning -> medium
    note    -> low
    none    -> info

A numeric ``security-severity`` rule property (CVSS-like, 0-10) overrides
the level: >= 9 critical, >= 7 high, >= 4 medium, else low. Both scales are
monotone, so the override keeps the manifest monotone.

Related locations and code-flow steps become ``related_files``.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Optional

from ..exceptions import ErrorCode, InvariantViolation
from ..model import Category, Severity
from .base import FindingDraft, Normalizer, extract_cwe, optional, require

_TAG_CATEGORIES = (
    ("security", Category.SECURITY),
    ("correctness", Category.BUG),
    ("reliability", Category.BUG),
    ("performance", Category.PERFORMANCE),
    ("maintainability", Category.MAINTAINABILITY),
    ("complexity", Category.COMPLEXITY),
    ("duplication", Category.DUPLICATION),
    ("documentation", Category.DOCUMENTATION),
    ("style", Category.STYLE),
)


def security_severity(score: float) -> Severity:
    if score >= 9.0:
        return Severity.CRITICAL
    if score >= 7.0:
        return Severity.HIGH
    if score >= 4.0:
        return Severity.MEDIUM
    return Severity.LOW


class SarifNormalizer(Normalizer):
    family = "sarif"
    severity_map = {
        "error": Severity.HIGH,
        "warning": Severity.MEDIUM,
        "note": Severity.LOW,
        "none": Severity.INFO,
    }

    def iter_records(self, payload: Any) -> Iterable[Any]:
        if not isinstance(payload, dict):
            raise InvariantViolation("SARIF log must be an object", code=ErrorCode.CA300)
        records = []
        for run in require(payload, "runs", list, "log"):
            # A malformed run becomes one record that parse_record rejects
            if not isinstance(run, dict):
                records.append((f"run is {type(run).__name__}, expected an object", None))
                continue
            results = run.get("results") or []
            if not isinstance(results, list):
                records.append((f"run.results is {type(results).__name__}", None))
                continue
            rules = _rule_index(run)
            for result in results:
                records.append((result, rules))
        return records

    def parse_record(self, record: Any) -> Iterator[FindingDraft]:
        result, rules = record
        if rules is None:
            raise InvariantViolation(f"SARIF {result}", code=ErrorCode.CA300)
        rule_id = optional(result, "ruleId", str)
        if rule_id is None:
            rule_ref = optional(result, "rule", dict, {})
            rule_id = require(rule_ref, "id", str, "result.rule")
        message = require(result, "message", dict, "result")
        text = optional(message, "text", str, rule_id)

        rule = rules.get(rule_id, {})
        props = rule.get("properties") if isinstance(rule.get("properties"), dict) else {}
        raw_tags = props.get("tags")
        tags = [t for t in raw_tags if isinstance(t, str)] if isinstance(raw_tags, list) else []

        severity: Optional[Severity] = None
        score = props.get("security-severity")
        if score is not None:
            try:
                severity = security_severity(float(score))
            except (TypeError, ValueError):
                raise InvariantViolation(f"bad security-severity {score!r}", code=ErrorCode.CA300)

        level = optional(result, "level", str)
        if level is None:
            default_config = rule.get("defaultConfiguration")
            if isinstance(default_config, dict) and isinstance(default_config.get("level"), str):
                level = default_config["level"]

        category = Category.SECURITY if score is not None else _category_from_tags(tags)

        file, line, end_line = None, 0, 0
        locations = optional(result, "locations", list, [])
        if locations:
            file, line, end_line = _physical(locations[0])

        related = []
        for loc in optional(result, "relatedLocations", list, []):
            related.append(_physical(loc)[0])
        for flow in optional(result, "codeFlows", list, []):
            for thread in _list_field(flow, "threadFlows"):
                for step in _list_field(thread, "locations"):
                    if isinstance(step, dict) and isinstance(step.get("location"), dict):
                        related.append(_physical(step["location"])[0])

        yield FindingDraft(
            rule_key=rule_id,
            message=text,
            file=file,
            line=line,
            end_line=end_line,
            native_severity=level,
            severity=severity,
            category=category,
            kind=extract_cwe(tags),
            tags=tuple(tags),
            related_files=tuple(r for r in related if r),
        )


def _rule_index(run: dict) -> dict[str, dict]:
    tool = run.get("tool")
    driver = tool.get("driver") if isinstance(tool, dict) else None
    index = {}
    for rule in _list_field(driver, "rules"):
        if isinstance(rule, dict) and isinstance(rule.get("id"), str):
            index[rule["id"]] = rule
    return index


def _category_from_tags(tags: list[str]) -> Category:
    lowered = [t.lower() for t in tags]
    for needle, category in _TAG_CATEGORIES:
        if any(needle in tag for tag in lowered):
            return category
    return Category.OTHER


def _physical(location: Any) -> tuple[Optional[str], int, int]:
    physical = optional(location, "physicalLocation", dict, {}) if isinstance(location, dict) else {}
    artifact = optional(physical, "artifactLocation", dict, {})
    region = optional(physical, "region", dict, {})
    return (
        optional(artifact, "uri", str),
        optional(region, "startLine", int, 0),
        optional(region, "endLine", int, 0),
    )


def _list_field(value: Any, key: str) -> list:
    """``value[key]`` when value is an object and the field a list, else empty."""
    if not isinstance(value, dict):
        return []
    field = value.get(key)
    return field if isinstance(field, list) else []
