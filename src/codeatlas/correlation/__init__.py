"""Cross-adapter correlation, consensus and risk aggregation."""

from .consensus import consensus_severity, fp_probability, is_disagreement
from .engine import CorrelationEngine, rating_band
from .grouping import group_findings
from .models import (
    CorrelatedModel,
    Correlation,
    DeploymentRecommendation,
    PropertyVerdict,
    RiskAssessment,
    VerificationConsensus,
)

__all__ = [
    "CorrelatedModel",
    "Correlation",
    "CorrelationEngine",
    "DeploymentRecommendation",
    "PropertyVerdict",
    "RiskAssessment",
    "VerificationConsensus",
    "consensus_severity",
    "fp_probability",
    "group_findings",
    "is_disagreement",
    "rating_band",
]
