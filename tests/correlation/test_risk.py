"""Tests for financial risk aggregation and the deployment recommendation."""

import pytest

from codeatlas.config import DeploymentConfig
from codeatlas.correlation import Correlation, VerificationConsensus
from codeatlas.correlation.risk import (
    assess_risk,
    classify_risk,
    mitigation_for,
    recommend_deployment,
    safety_score,
    vulnerability_correlations,
)
from codeatlas.model import Category, Severity, Verdict


def correlation(kind, severity, adapters=("a",), fp=0.1, category=Category.SECURITY, participants=None):
    return Correlation(
        id=f"c-{kind}",
        participants=tuple(participants or (f"{kind}-{a}" for a in adapters)),
        adapters=tuple(adapters),
        category=category,
        kind=kind,
        rule=None,
        file="contracts/Vault.sol",
        line=10,
        consensus_severity=severity,
        disagreement=False,
        agreement=1.0,
        fp_probability=fp,
    )


def prop(kind, verdict=Verdict.VERIFIED, loss=0.0, disagreement=False, name=None):
    return VerificationConsensus(
        property=name or kind,
        property_kind=kind,
        verdicts=(),
        consensus="strong_agreement",
        recommended_action="deploy",
        risk_level="low",
        resolved_verdict=verdict,
        resolved_by=None,
        disagreement=disagreement,
        potential_loss=loss,
    )


FULL_COVERAGE = [prop("arithmetic_verification"), prop("assertion_checking")]


class TestClassifyRisk:
    @pytest.mark.parametrize(
        "value, level", [(0.0, "low"), (0.09, "low"), (0.1, "medium"), (0.5, "high"), (1.0, "critical")]
    )
    def test_bands(self, value, level):
        assert classify_risk(value) == level


class TestVulnerabilityCorrelations:
    def test_security_without_verification(self, make_finding):
        vuln = make_finding("a", kind="reentrancy")
        proof = make_finding("b", verification=("p", "assertion_checking", Verdict.VERIFIED))
        style = make_finding("c", category=Category.STYLE, kind="naming")
        by_id = {f.id: f for f in (vuln, proof, style)}
        correlations = [
            correlation("reentrancy", Severity.HIGH, participants=[vuln.id]),
            correlation("assertion_checking", Severity.INFO, participants=[proof.id]),
            correlation("naming", Severity.LOW, category=Category.STYLE, participants=[style.id]),
        ]
        assert [c.kind for c in vulnerability_correlations(correlations, by_id)] == ["reentrancy"]


class TestAssessRisk:
    def test_critical_consensus(self):
        config = DeploymentConfig()
        vulns = [correlation("reentrancy", Severity.CRITICAL, adapters=("a", "b"), fp=0.1)]
        risk = assess_risk(vulns, [], ran_adapters=2, reliabilities=[0.9, 0.8], config=config)
        assert risk.total_potential_loss == 180_000
        assert risk.max_risk == pytest.approx(1.8)
        assert risk.risk_level == "critical"
        assert risk.confidence == pytest.approx(0.85)
        assert risk.consensus_level == 1.0
        assert risk.security_risk_score == 1.0
        assert risk.financial_risk_score == pytest.approx(0.18)

    def test_detection_share_scales_loss(self):
        config = DeploymentConfig()
        vulns = [correlation("front_running", Severity.HIGH, adapters=("a",), fp=0.0)]
        risk = assess_risk(vulns, [], ran_adapters=4, reliabilities=[0.9], config=config)
        assert risk.total_potential_loss == 25_000
        assert risk.consensus_level == 0.0
        assert risk.security_risk_score == 0.5

    def test_unproven_properties_add_their_loss(self):
        config = DeploymentConfig()
        properties = [
            prop("assertion_checking", Verdict.VIOLATED, loss=250_000),
            prop("arithmetic_verification", Verdict.VERIFIED, loss=1_000_000),
        ]
        risk = assess_risk([], properties, ran_adapters=1, reliabilities=[0.95], config=config)
        assert risk.total_potential_loss == 250_000
        assert risk.risk_level == "critical"

    def test_nothing_found(self):
        risk = assess_risk([], [], ran_adapters=0, reliabilities=[], config=DeploymentConfig())
        assert risk.total_potential_loss == 0
        assert risk.risk_level == "low"
        assert risk.confidence == 0.0


class TestRecommendDeployment:
    def test_clean_and_fully_verified_is_safe(self):
        config = DeploymentConfig()
        risk = assess_risk([], FULL_COVERAGE, ran_adapters=1, reliabilities=[0.95], config=config)
        rec = recommend_deployment([], FULL_COVERAGE, risk, config)
        assert rec.safe
        assert rec.safety_score == 1.0
        assert rec.risk_factors == ()
        assert rec.missing_verifications == ()
        assert not rec.insurance_eligible
        assert rec.audit_completeness == pytest.approx(50 + 0.95 * 30)

    def test_critical_blocker(self):
        config = DeploymentConfig()
        vulns = [correlation("reentrancy", Severity.CRITICAL, adapters=("a", "b"))]
        risk = assess_risk(vulns, FULL_COVERAGE, ran_adapters=2, reliabilities=[0.9, 0.9], config=config)
        rec = recommend_deployment(vulns, FULL_COVERAGE, risk, config)
        assert not rec.safe
        assert rec.blockers == ("reentrancy",)
        assert mitigation_for("reentrancy") in rec.required_mitigations
        assert any("Critical vulnerabilities" in f for f in rec.risk_factors)

    def test_missing_verification_kinds(self):
        config = DeploymentConfig()
        properties = [prop("arithmetic_verification")]
        risk = assess_risk([], properties, ran_adapters=1, reliabilities=[0.95], config=config)
        rec = recommend_deployment([], properties, risk, config)
        assert not rec.safe
        assert rec.missing_verifications == ("assertion_checking",)

    def test_over_budget(self):
        config = DeploymentConfig(max_acceptable_risk=100_000)
        properties = FULL_COVERAGE + [prop("assertion_checking", Verdict.VIOLATED, loss=150_000, name="solvent")]
        risk = assess_risk([], properties, ran_adapters=1, reliabilities=[0.95], config=config)
        rec = recommend_deployment([], properties, risk, config)
        assert not rec.safe
        assert any("exceeds threshold" in f for f in rec.risk_factors)
        assert "Fix violated property solvent" in rec.required_mitigations

    def test_warning_kinds_add_mitigations(self):
        config = DeploymentConfig()
        vulns = [correlation("front_running", Severity.MEDIUM, fp=0.5)]
        risk = assess_risk(vulns, FULL_COVERAGE, ran_adapters=1, reliabilities=[0.9], config=config)
        rec = recommend_deployment(vulns, FULL_COVERAGE, risk, config)
        assert mitigation_for("front_running") in rec.required_mitigations

    def test_unknown_kind_mitigation(self):
        assert mitigation_for("oracle_manipulation") == "Review and fix oracle manipulation findings"


class TestSafetyScore:
    def test_penalties_weighted_by_fp(self):
        config = DeploymentConfig()
        vulns = [correlation("x", Severity.HIGH, fp=0.5)]
        risk = assess_risk(vulns, [], ran_adapters=1, reliabilities=[0.0], config=config)
        # 1 - 0.30 * 0.5 - high band 0.30
        assert risk.risk_level == "high"
        assert safety_score(vulns, risk) == pytest.approx(0.55)
