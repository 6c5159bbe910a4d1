"""Finding normalizers, one per adapter family.

Adapters name their family in ``describe().normalizer``; the orchestrator
looks the normalizer up here.
"""

from __future__ import annotations

from typing import Optional

from .base import FindingDraft, MetricDraft, NormalizedOutput, Normalizer, parse_effort, validate_finding
from .codeclimate import CodeClimateNormalizer
from .contract import ContractNormalizer
from .generic import GenericNormalizer, MetricsNormalizer
from .sarif import SarifNormalizer
from .semgrep import SemgrepNormalizer
from .sonarqube import SonarQubeNormalizer

ALL_NORMALIZERS: list[Normalizer] = [
    GenericNormalizer(),
    MetricsNormalizer(),
    SonarQubeNormalizer(),
    CodeClimateNormalizer(),
    SemgrepNormalizer(),
    SarifNormalizer(),
    ContractNormalizer(),
]

_BY_FAMILY = {n.family: n for n in ALL_NORMALIZERS}


def get_normalizer(family: str) -> Optional[Normalizer]:
    """Normalizer for ``family``, or None if no such family exists."""
    return _BY_FAMILY.get(family)


__all__ = [
    "ALL_NORMALIZERS",
    "CodeClimateNormalizer",
    "ContractNormalizer",
    "FindingDraft",
    "GenericNormalizer",
    "MetricDraft",
    "MetricsNormalizer",
    "NormalizedOutput",
    "Normalizer",
    "SarifNormalizer",
    "SemgrepNormalizer",
    "SonarQubeNormalizer",
    "get_normalizer",
    "parse_effort",
    "validate_finding",
]
