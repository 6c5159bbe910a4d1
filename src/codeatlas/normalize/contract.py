"""Normalizer for smart-contract verification reports.

Accepted shape (one report per tool run)::

    {
      "tool": "certora",
      "formal": true,
      "vulnerabilities": [
        {"type": "reentrancy", "severity": "high", "file": "contracts/Vault.sol",
         "line": 120, "description": "...", "contract": "Vault", "function": "withdraw"}
      ],
      "properties": [
        {"name": "solvency", "type": "arithmetic_verification", "status": "verified",
         "file": "contracts/Vault.sol", "line": 40, "potential_loss": 250000}
      ]
    }

Severity manifest is the identity on critical > high > medium > low > info
(``informational`` and ``optimization`` read as info).

Property outcomes become findings carrying a ``Verification``. Findings
backed by a formal tool's verified or violated verdict get
``confidence=proof``; partial results stay partial.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Optional

from ..exceptions import ErrorCode, InvariantViolation
from ..model import Category, CodeEntity, Confidence, EntityKind, Severity, Verdict, Verification
from .base import FindingDraft, Normalizer, optional, require, slug

FORMAL_TOOLS = frozenset({"certora", "kontrol", "smtchecker", "halmos", "kevm", "act"})

_VERDICTS = {
    "verified": Verdict.VERIFIED,
    "proved": Verdict.VERIFIED,
    "pass": Verdict.VERIFIED,
    "passed": Verdict.VERIFIED,
    "holds": Verdict.VERIFIED,
    "violated": Verdict.VIOLATED,
    "failed": Verdict.VIOLATED,
    "fail": Verdict.VIOLATED,
    "counterexample": Verdict.VIOLATED,
    "partial": Verdict.PARTIAL,
    "bounded": Verdict.PARTIAL,
    "unknown": Verdict.UNKNOWN,
    "timeout": Verdict.UNKNOWN,
    "error": Verdict.UNKNOWN,
}

_VERDICT_SEVERITY = {
    Verdict.VIOLATED: Severity.HIGH,
    Verdict.PARTIAL: Severity.MEDIUM,
    Verdict.UNKNOWN: Severity.LOW,
    Verdict.VERIFIED: Severity.INFO,
}


class ContractNormalizer(Normalizer):
    family = "contract"
    severity_map = {
        "critical": Severity.CRITICAL,
        "high": Severity.HIGH,
        "medium": Severity.MEDIUM,
        "low": Severity.LOW,
        "info": Severity.INFO,
        "informational": Severity.INFO,
        "optimization": Severity.INFO,
    }
    default_confidence = Confidence.HIGH

    def iter_records(self, payload: Any) -> Iterable[Any]:
        if not isinstance(payload, dict):
            raise InvariantViolation("contract report must be an object", code=ErrorCode.CA300)
        tool = optional(payload, "tool", str, "unknown").lower()
        formal = optional(payload, "formal", bool, tool in FORMAL_TOOLS)
        records: list[tuple[str, bool, str, Any]] = []
        for vuln in optional(payload, "vulnerabilities", list, []):
            records.append(("vulnerability", formal, tool, vuln))
        for prop in optional(payload, "properties", list, []):
            records.append(("property", formal, tool, prop))
        return records

    def parse_record(self, record: Any) -> Iterator[FindingDraft]:
        kind, formal, tool, data = record
        if kind == "vulnerability":
            yield self._vulnerability(data)
        else:
            yield self._property(data, formal)

    def _vulnerability(self, data: Any) -> FindingDraft:
        vuln_type = slug(require(data, "type", str, "vulnerability"))
        return FindingDraft(
            rule_key=optional(data, "rule", str, vuln_type),
            message=optional(data, "description", str, vuln_type.replace("_", " ")),
            file=optional(data, "file", str),
            line=optional(data, "line", int, 0),
            end_line=optional(data, "end_line", int, 0),
            native_severity=optional(data, "severity", str),
            category=Category.SECURITY,
            kind=vuln_type,
            entity=_entity(data),
        )

    def _property(self, data: Any, formal: bool) -> FindingDraft:
        name = require(data, "name", str, "property")
        prop_type = slug(optional(data, "type", str, "assertion_checking"))
        status = require(data, "status", str, "property").strip().lower()
        verdict = _VERDICTS.get(status)
        if verdict is None:
            raise InvariantViolation(f"unknown property status {status!r}", code=ErrorCode.CA300)

        confidence = Confidence.HIGH
        if formal and verdict in (Verdict.VERIFIED, Verdict.VIOLATED):
            confidence = Confidence.PROOF

        loss = optional(data, "potential_loss", (int, float), 0)
        return FindingDraft(
            rule_key=name,
            message=optional(data, "description", str, f"{name}: {verdict.value}"),
            file=optional(data, "file", str),
            line=optional(data, "line", int, 0),
            severity=_VERDICT_SEVERITY[verdict],
            category=Category.SECURITY,
            kind=prop_type,
            confidence=confidence,
            entity=_entity(data),
            verification=Verification(
                property=name,
                property_kind=prop_type,
                verdict=verdict,
                potential_loss=float(loss),
            ),
        )


def _entity(data: Any) -> Optional[CodeEntity]:
    function = optional(data, "function", str)
    if function:
        return CodeEntity(kind=EntityKind.FUNCTION, name=function)
    contract = optional(data, "contract", str)
    if contract:
        return CodeEntity(kind=EntityKind.CONTRACT, name=contract)
    return None
