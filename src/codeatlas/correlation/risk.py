"""Financial risk aggregation and deployment recommendation.

Active only for the smart-contract specialization. Vulnerability
correlations are security correlations whose participants carry no
verification evidence; verified properties feed in through their
consensus records instead.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

import numpy as np

from ..config import DeploymentConfig
from ..model import Category, Finding, Severity, Verdict
from .models import Correlation, DeploymentRecommendation, RiskAssessment, VerificationConsensus

SEVERITY_MULTIPLIER = {
    Severity.INFO: 0.1,
    Severity.LOW: 0.25,
    Severity.MEDIUM: 0.5,
    Severity.HIGH: 1.0,
    Severity.CRITICAL: 2.0,
}

SAFETY_PENALTY = {
    Severity.INFO: 0.01,
    Severity.LOW: 0.05,
    Severity.MEDIUM: 0.15,
    Severity.HIGH: 0.30,
    Severity.CRITICAL: 0.50,
}

RISK_LEVEL_PENALTY = {"low": 0.05, "medium": 0.15, "high": 0.30, "critical": 0.50}

# Bonus weights applied to the safety score
CONFIDENCE_BONUS = 0.1
CONSENSUS_BONUS = 0.1

INSURANCE_MIN_CONFIDENCE = 0.8
INSURANCE_MIN_CONSENSUS = 0.5

MITIGATIONS = {
    "reentrancy": "Apply checks-effects-interactions and add a reentrancy guard",
    "integer_overflow": "Use checked arithmetic for all balance and supply math",
    "integer_underflow": "Use checked arithmetic for all balance and supply math",
    "unchecked_external_call": "Check the return value of every low-level call",
    "front_running": "Use commit-reveal or bound acceptable slippage",
    "sandwich_attack": "Enforce slippage limits and transaction deadlines",
    "governance_attack": "Add timelocks and quorum requirements to governance actions",
    "access_control": "Restrict privileged functions to explicit roles",
}


def mitigation_for(kind: str) -> str:
    return MITIGATIONS.get(kind, f"Review and fix {kind.replace('_', ' ')} findings")


def vulnerability_correlations(
    correlations: Iterable[Correlation], findings: Mapping[str, Finding]
) -> list[Correlation]:
    """Security correlations not backed by verification evidence."""
    out = []
    for c in correlations:
        if c.category != Category.SECURITY:
            continue
        if any(findings[pid].verification is not None for pid in c.participants):
            continue
        out.append(c)
    return out


def classify_risk(max_risk: float) -> str:
    """Risk level from the largest normalized risk factor."""
    if max_risk < 0.1:
        return "low"
    if max_risk < 0.5:
        return "medium"
    if max_risk < 1.0:
        return "high"
    return "critical"


def assess_risk(
    vulnerabilities: Sequence[Correlation],
    properties: Sequence[VerificationConsensus],
    ran_adapters: int,
    reliabilities: Sequence[float],
    config: DeploymentConfig,
) -> RiskAssessment:
    """Aggregate potential loss across vulnerability correlations and unproven properties.

    Args:
        vulnerabilities: Vulnerability correlations
        properties: Verification consensus records
        ran_adapters: Number of adapters that produced results
        reliabilities: Reliability of each participating adapter
        config: Deployment thresholds and base impact
    """
    total_loss = 0.0
    factors: list[float] = []
    multi = 0
    total_adapters = max(1, ran_adapters)

    for c in vulnerabilities:
        share = len(c.adapters) / total_adapters
        adjusted = (
            config.base_impact
            * SEVERITY_MULTIPLIER[c.consensus_severity]
            * share
            * (1.0 - c.fp_probability)
        )
        total_loss += adjusted
        factors.append(adjusted / config.base_impact)
        if len(c.adapters) > 1:
            multi += 1

    for prop in properties:
        if prop.resolved_verdict != Verdict.VERIFIED and prop.potential_loss > 0:
            total_loss += prop.potential_loss
            factors.append(prop.potential_loss / config.base_impact)

    max_risk = max(factors, default=0.0)
    confidence = float(np.mean(reliabilities)) if len(reliabilities) else 0.0
    consensus_level = multi / max(1, len(vulnerabilities))

    if config.max_acceptable_risk > 0:
        financial_score = min(1.0, total_loss / config.max_acceptable_risk)
    else:
        financial_score = 1.0 if total_loss > 0 else 0.0
    if any(c.consensus_severity == Severity.CRITICAL for c in vulnerabilities):
        security_score = 1.0
    else:
        security_score = 0.5 if vulnerabilities else 0.0

    return RiskAssessment(
        total_potential_loss=float(round(total_loss)),
        risk_level=classify_risk(max_risk),
        max_risk=max_risk,
        confidence=confidence,
        consensus_level=consensus_level,
        financial_risk_score=financial_score,
        security_risk_score=security_score,
    )


def safety_score(vulnerabilities: Sequence[Correlation], risk: RiskAssessment) -> float:
    score = 1.0
    for c in vulnerabilities:
        score -= SAFETY_PENALTY[c.consensus_severity] * (1.0 - c.fp_probability)
    score -= RISK_LEVEL_PENALTY[risk.risk_level]
    score += risk.confidence * CONFIDENCE_BONUS + risk.consensus_level * CONSENSUS_BONUS
    return max(0.0, min(1.0, score))


def recommend_deployment(
    vulnerabilities: Sequence[Correlation],
    properties: Sequence[VerificationConsensus],
    risk: RiskAssessment,
    config: DeploymentConfig,
) -> DeploymentRecommendation:
    """Decide whether the analyzed contracts are safe to deploy.

    Safe requires all four: safety score at or above the threshold, no
    critical correlation of a blocker kind, total potential loss within the
    acceptable maximum, and every required verification kind covered.
    """
    risk_factors: list[str] = []
    mitigations: list[str] = []

    blockers = [
        c for c in vulnerabilities
        if c.consensus_severity == Severity.CRITICAL and c.kind in config.blocker_kinds
    ]
    blocker_kinds = list(dict.fromkeys(c.kind for c in blockers if c.kind))
    if blockers:
        risk_factors.append(f"Critical vulnerabilities present: {', '.join(blocker_kinds)}")
        mitigations.append("Fix all critical vulnerabilities before deployment")
        mitigations.extend(mitigation_for(k) for k in blocker_kinds)

    over_budget = risk.total_potential_loss > config.max_acceptable_risk
    if over_budget:
        risk_factors.append(
            f"Financial risk (${risk.total_potential_loss:,.0f}) exceeds threshold "
            f"(${config.max_acceptable_risk:,.0f})"
        )
        mitigations.append("Implement additional risk mitigation measures")

    covered = {p.property_kind for p in properties}
    missing = [k for k in config.required_verification_kinds if k not in covered]
    if missing:
        risk_factors.append(f"Missing required verification types: {', '.join(missing)}")
        mitigations.append(f"Complete {', '.join(missing)} verification")

    score = safety_score(vulnerabilities, risk)
    below = score < config.safety_threshold
    if below:
        risk_factors.append(
            f"Safety score {score:.2f} below threshold {config.safety_threshold:.2f}"
        )

    for c in vulnerabilities:
        if c.kind in config.warning_kinds and c.consensus_severity.rank >= Severity.MEDIUM.rank:
            mitigations.append(mitigation_for(c.kind))
    for prop in properties:
        if prop.resolved_verdict == Verdict.VIOLATED:
            mitigations.append(f"Fix violated property {prop.property}")
        elif prop.disagreement:
            mitigations.append(f"Investigate conflicting verdicts for {prop.property}")

    safe = not (below or blockers or over_budget or missing)

    required = config.required_verification_kinds
    coverage = (len(set(required) & covered) / len(required)) if required else 1.0
    completeness = min(
        100.0, coverage * 50 + risk.confidence * 30 + risk.consensus_level * 20
    )

    return DeploymentRecommendation(
        safe=safe,
        safety_score=score,
        risk_factors=tuple(risk_factors),
        required_mitigations=tuple(dict.fromkeys(mitigations)),
        blockers=tuple(blocker_kinds),
        missing_verifications=tuple(missing),
        insurance_eligible=(
            safe
            and risk.confidence >= INSURANCE_MIN_CONFIDENCE
            and risk.consensus_level >= INSURANCE_MIN_CONSENSUS
        ),
        audit_completeness=completeness,
    )
