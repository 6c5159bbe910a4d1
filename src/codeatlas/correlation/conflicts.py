"""Verification consensus and conflict resolution for verified properties.

When adapters disagree on a property's binary verdict (verified vs violated),
the verdict of the adapter ranked highest in the configured trust ranking
wins. The disagreement is recorded either way, and a partial verification
is never reported as full.
"""

from __future__ import annotations

from typing import Callable, Mapping, Optional, Sequence

from ..model import Finding, Verdict
from .models import PropertyVerdict, VerificationConsensus

_DEFINITE = (Verdict.VERIFIED, Verdict.VIOLATED)


def trust_rank(adapter_id: str, adapter_type: Optional[str], ranking: Sequence[str]) -> int:
    """Position of the adapter's tool in ``ranking``; unranked tools sort last."""
    candidates = [adapter_id, adapter_type or ""]
    candidates += [c.split("-", 1)[0] for c in candidates if c]
    for position, tool in enumerate(ranking):
        if tool in candidates:
            return position
    return len(ranking)


def consensus_label(verdicts: Sequence[Verdict]) -> tuple[str, str, str]:
    """(consensus, recommended action, risk level) for one property."""
    total = len(verdicts)
    verified = sum(1 for v in verdicts if v == Verdict.VERIFIED)
    violated = sum(1 for v in verdicts if v == Verdict.VIOLATED)
    if total < 2:
        return "insufficient_data", "additional_verification", "medium"
    if verified == total:
        return "strong_agreement", "deploy", "low"
    if violated == total:
        return "strong_agreement", "fix_required", "critical"
    if abs(verified - violated) <= 1:
        return "disagreement", "investigate", "high"
    return "weak_agreement", ("deploy" if verified > violated else "investigate"), "medium"


def resolve_verdict(
    verdicts: Sequence[PropertyVerdict],
    adapter_types: Mapping[str, str],
    ranking: Sequence[str],
) -> tuple[Verdict, Optional[str], bool]:
    """Resolve a property's verdict across adapters.

    Returns:
        (resolved verdict, adapter whose verdict won a conflict, conflict flag)
    """
    definite = [v for v in verdicts if v.verdict in _DEFINITE]
    kinds = {v.verdict for v in definite}
    conflict = len(kinds) > 1
    winner: Optional[str] = None

    if definite:
        # Most trusted first; at equal trust a violation outranks a proof
        best = min(
            definite,
            key=lambda v: (
                trust_rank(v.adapter, adapter_types.get(v.adapter), ranking),
                0 if v.verdict == Verdict.VIOLATED else 1,
            ),
        )
        resolved = best.verdict
        if conflict:
            winner = best.adapter
    elif any(v.verdict == Verdict.PARTIAL for v in verdicts):
        resolved = Verdict.PARTIAL
    else:
        resolved = Verdict.UNKNOWN

    if resolved == Verdict.VERIFIED and any(v.verdict == Verdict.PARTIAL for v in verdicts):
        resolved = Verdict.PARTIAL
    return resolved, winner, conflict


def verification_consensus(
    findings: Sequence[Finding],
    reliability: Callable[[str], float],
    adapter_types: Mapping[str, str],
    ranking: Sequence[str],
) -> list[VerificationConsensus]:
    """One consensus record per (property kind, property), in first-seen order.

    An adapter that reports the same property twice contributes its first verdict.
    """
    by_property: dict[tuple[str, str], list[PropertyVerdict]] = {}
    for f in findings:
        v = f.verification
        if v is None:
            continue
        entries = by_property.setdefault((v.property_kind, v.property), [])
        if any(e.adapter == f.adapter for e in entries):
            continue
        entries.append(PropertyVerdict(f.adapter, v.verdict, reliability(f.adapter), v.potential_loss))

    out = []
    for (kind, prop), entries in by_property.items():
        consensus, action, risk = consensus_label([e.verdict for e in entries])
        resolved, winner, conflict = resolve_verdict(entries, adapter_types, ranking)
        out.append(
            VerificationConsensus(
                property=prop,
                property_kind=kind,
                verdicts=tuple(entries),
                consensus=consensus,
                recommended_action=action,
                risk_level=risk,
                resolved_verdict=resolved,
                resolved_by=winner,
                disagreement=conflict,
                potential_loss=max((e.potential_loss for e in entries), default=0.0),
            )
        )
    return out
