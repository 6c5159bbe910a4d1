"""Data models produced by the correlation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..model import AnalysisBundle, Category, Finding, Severity, Verdict


@dataclass(frozen=True)
class Correlation:
    """An equivalence class of findings about the same underlying defect.

    Participants are finding ids, in bundle order, each from a distinct adapter.
    """

    id: str
    participants: tuple[str, ...]
    adapters: tuple[str, ...]
    category: Category
    kind: Optional[str]
    rule: Optional[str]  # canonical rule, when grouped through rule equivalence
    file: Optional[str]
    line: int
    consensus_severity: Severity
    disagreement: bool
    agreement: float  # detecting adapters / adapters that ran
    fp_probability: float
    severities: tuple[Severity, ...] = ()

    @property
    def size(self) -> int:
        return len(self.participants)

    @property
    def category_key(self) -> str:
        if self.kind:
            return f"{self.category.value}/{self.kind}"
        return self.category.value


@dataclass(frozen=True)
class PropertyVerdict:
    adapter: str
    verdict: Verdict
    reliability: float
    potential_loss: float = 0.0


@dataclass(frozen=True)
class VerificationConsensus:
    """Cross-adapter agreement on one verified property."""

    property: str
    property_kind: str
    verdicts: tuple[PropertyVerdict, ...]
    consensus: str  # insufficient_data | strong_agreement | weak_agreement | disagreement
    recommended_action: str  # deploy | investigate | fix_required | additional_verification
    risk_level: str
    resolved_verdict: Verdict
    resolved_by: Optional[str]  # adapter whose verdict won a verified/violated conflict
    disagreement: bool
    potential_loss: float = 0.0


@dataclass(frozen=True)
class RiskAssessment:
    """Run-wide financial risk for the smart-contract specialization."""

    total_potential_loss: float
    risk_level: str  # low | medium | high | critical
    max_risk: float
    confidence: float
    consensus_level: float
    financial_risk_score: float
    security_risk_score: float


@dataclass(frozen=True)
class DeploymentRecommendation:
    safe: bool
    safety_score: float
    risk_factors: tuple[str, ...] = ()
    required_mitigations: tuple[str, ...] = ()
    blockers: tuple[str, ...] = ()
    missing_verifications: tuple[str, ...] = ()
    insurance_eligible: bool = False
    audit_completeness: float = 0.0


@dataclass
class CorrelatedModel:
    """An AnalysisBundle plus its correlations and derived aggregates.

    Findings are shared by reference with the bundle. Reverse views
    (file -> findings, id -> finding) are built on demand.
    """

    bundle: AnalysisBundle
    correlations: list[Correlation] = field(default_factory=list)
    rating: str = "A"
    risk: Optional[RiskAssessment] = None
    deployment: Optional[DeploymentRecommendation] = None
    verification_consensus: list[VerificationConsensus] = field(default_factory=list)

    @property
    def findings(self) -> list[Finding]:
        return self.bundle.findings

    def finding(self, finding_id: str) -> Optional[Finding]:
        for f in self.bundle.findings:
            if f.id == finding_id:
                return f
        return None

    def findings_by_id(self) -> dict[str, Finding]:
        return {f.id: f for f in self.bundle.findings}

    def findings_by_file(self) -> dict[str, list[Finding]]:
        """File path -> findings, in bundle order. Repo-scope findings are excluded."""
        by_file: dict[str, list[Finding]] = {}
        for f in self.bundle.findings:
            if f.file is not None:
                by_file.setdefault(f.file, []).append(f)
        return by_file

    def correlation_of(self, finding_id: str) -> Optional[Correlation]:
        for c in self.correlations:
            if finding_id in c.participants:
                return c
        return None
