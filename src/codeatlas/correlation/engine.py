"""CorrelationEngine: turns an AnalysisBundle into a CorrelatedModel."""

from __future__ import annotations

import hashlib
from typing import Optional

from ..config import AtlasConfig
from ..logging_config import get_logger
from ..model import AdapterStatus, AnalysisBundle, Finding, Severity
from .conflicts import verification_consensus
from .consensus import base_fp_rate, consensus_severity, fp_probability, is_disagreement
from .grouping import canonical_rule, group_findings
from .models import CorrelatedModel, Correlation
from .risk import assess_risk, recommend_deployment, vulnerability_correlations

logger = get_logger(__name__)

CONTRACT_VERIFICATION_KIND = "contract-verification"


def rating_band(correlations: list[Correlation]) -> str:
    """Overall rating A (best) to E from the worst consensus severities."""
    critical = sum(1 for c in correlations if c.consensus_severity == Severity.CRITICAL)
    if critical >= 3:
        return "E"
    if critical:
        return "D"
    worst = max((c.consensus_severity.rank for c in correlations), default=-1)
    if worst >= Severity.HIGH.rank:
        return "C"
    if worst >= Severity.MEDIUM.rank:
        return "B"
    return "A"


class CorrelationEngine:
    """Deterministic given a fixed bundle order and fixed configuration.

    Usage:
        model = CorrelationEngine(config).correlate(bundle)
        for c in model.correlations:
            print(c.category_key, c.consensus_severity, c.fp_probability)
    """

    def __init__(self, config: Optional[AtlasConfig] = None):
        self.config = config or AtlasConfig()
        self.settings = self.config.correlation

    def reliability(self, bundle: AnalysisBundle, adapter_id: str) -> float:
        return self.settings.reliability(adapter_id, bundle.adapter_types.get(adapter_id))

    def specialization_active(self, bundle: AnalysisBundle) -> bool:
        mode = self.settings.specialization
        if mode == "smart-contract":
            return True
        if mode == "none":
            return False
        return CONTRACT_VERIFICATION_KIND in bundle.adapter_kinds.values()

    def correlate(self, bundle: AnalysisBundle) -> CorrelatedModel:
        findings = bundle.findings
        ran = sum(1 for r in bundle.results if r.status == AdapterStatus.OK)

        groups = group_findings(
            findings,
            tolerance=self.settings.location_tolerance,
            equivalences=self.settings.rule_equivalences,
            adapter_types=bundle.adapter_types,
        )
        correlations = [self._correlation(bundle, group, ran) for group in groups]
        model = CorrelatedModel(
            bundle=bundle, correlations=correlations, rating=rating_band(correlations)
        )

        if self.specialization_active(bundle):
            self._assess(model, ran)

        multi = sum(1 for c in correlations if c.size > 1)
        logger.info(
            f"Correlated {len(findings)} findings into {len(correlations)} correlations "
            f"({multi} cross-adapter), rating {model.rating}"
        )
        return model

    def _correlation(self, bundle: AnalysisBundle, group: list[Finding], ran: int) -> Correlation:
        first = group[0]
        severities = tuple(f.severity for f in group)
        adapters = tuple(f.adapter for f in group)
        lines = [f.line for f in group if f.line > 0]
        rule = canonical_rule(
            first, self.settings.rule_equivalences, bundle.adapter_types.get(first.adapter)
        )
        base = base_fp_rate(
            first.category, first.kind, self.settings.base_fp_rates, self.settings.default_fp_rate
        )
        participants = tuple(f.id for f in group)
        return Correlation(
            id=hashlib.sha256("|".join(sorted(participants)).encode("utf-8")).hexdigest()[:16],
            participants=participants,
            adapters=adapters,
            category=first.category,
            kind=first.kind,
            rule=rule,
            file=first.file,
            line=min(lines) if lines else 0,
            consensus_severity=consensus_severity(severities),
            disagreement=is_disagreement(severities),
            agreement=len(adapters) / ran if ran else 0.0,
            fp_probability=fp_probability(base, [self.reliability(bundle, a) for a in adapters]),
            severities=severities,
        )

    def _assess(self, model: CorrelatedModel, ran: int) -> None:
        bundle = model.bundle
        by_id = model.findings_by_id()
        deployment = self.config.deployment

        properties = verification_consensus(
            bundle.findings,
            lambda adapter: self.reliability(bundle, adapter),
            bundle.adapter_types,
            deployment.trust_ranking,
        )
        vulnerabilities = vulnerability_correlations(model.correlations, by_id)

        participating = list(
            dict.fromkeys(
                [a for c in vulnerabilities for a in c.adapters]
                + [v.adapter for p in properties for v in p.verdicts]
            )
        )
        if not participating:
            participating = [r.adapter for r in bundle.results if r.status == AdapterStatus.OK]
        reliabilities = [self.reliability(bundle, a) for a in participating]

        risk = assess_risk(vulnerabilities, properties, ran, reliabilities, deployment)
        model.verification_consensus = properties
        model.risk = risk
        model.deployment = recommend_deployment(vulnerabilities, properties, risk, deployment)

        for prop in properties:
            if prop.disagreement:
                logger.warning(
                    f"Conflicting verdicts for {prop.property}; {prop.resolved_by} "
                    f"ranks highest, resolved as {prop.resolved_verdict.value}"
                )
