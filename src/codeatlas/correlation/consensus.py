"""Consensus severity and false-positive probability for a correlation."""

from __future__ import annotations

import math
from typing import Iterable, Mapping, Optional, Sequence

import numpy as np

from ..model import Category, Severity

# Participants further apart than this many severity levels disagree
DISAGREEMENT_LEVELS = 2

FP_FLOOR = 0.01
FP_CEILING = 0.95

# Each extra detecting adapter lowers the rate by 15%, at most 50%
_CONSENSUS_STEP = 0.15
_CONSENSUS_CAP = 0.5


def consensus_severity(severities: Sequence[Severity]) -> Severity:
    """Rounded mean of the severity ranks, ties broken upward.

    >>> consensus_severity([Severity.HIGH, Severity.CRITICAL])
    <Severity.CRITICAL: 'critical'>
    """
    if not severities:
        raise ValueError("consensus of an empty group")
    mean = sum(s.rank for s in severities) / len(severities)
    return Severity.from_rank(int(math.floor(mean + 0.5)))


def is_disagreement(severities: Sequence[Severity]) -> bool:
    ranks = [s.rank for s in severities]
    return bool(ranks) and max(ranks) - min(ranks) >= DISAGREEMENT_LEVELS


def base_fp_rate(
    category: Category,
    kind: Optional[str],
    rates: Mapping[str, float],
    default: float,
) -> float:
    """Base rate by ``category/kind``, then by category, then ``default``."""
    if kind:
        key = f"{category.value}/{kind}"
        if key in rates:
            return rates[key]
    return rates.get(category.value, default)


def fp_probability(base: float, reliabilities: Iterable[float]) -> float:
    """False-positive probability of a correlation.

    ``base * (1 - min(0.5, 0.15 * (n - 1))) * (2 - mean reliability)``,
    clamped to [0.01, 0.95], where n is the number of detecting adapters.
    """
    values = list(reliabilities)
    if not values:
        return max(FP_FLOOR, min(FP_CEILING, base))
    n = len(values)
    reduction = min(_CONSENSUS_CAP, _CONSENSUS_STEP * (n - 1))
    mean_reliability = float(np.mean(values))
    adjusted = base * (1.0 - reduction) * (2.0 - mean_reliability)
    return max(FP_FLOOR, min(FP_CEILING, adjusted))
