"""Run document: the single self-contained output of a run.

Field names are stable and versioned by ``schemaVersion``. With
``volatile=False`` timestamps, durations and cache flags are left out, so
identical inputs render byte-identical documents.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional

from .correlation.models import CorrelatedModel, Correlation
from .model import AdapterResult, AnalysisBundle, finding_to_dict, metric_to_dict
from .projection import CityProjection

SCHEMA_VERSION = 1


def _run_block(bundle: AnalysisBundle, volatile: bool) -> dict[str, Any]:
    run = bundle.run
    block: dict[str, Any] = {
        "id": run.id,
        "status": run.status.value,
        "adapters": list(run.adapters),
        "options_hash": run.options_hash,
        "base_commit": run.base_commit,
        "target_commit": run.target_commit,
    }
    if volatile:
        block["started_at"] = run.started_at
        block["finished_at"] = run.finished_at
    return block


def _repository_block(bundle: AnalysisBundle) -> dict[str, Any]:
    repo = bundle.repository
    return {
        "path": repo.root,
        "commit": repo.commit,
        "branch": repo.branch,
        "vcs": repo.vcs,
        "files": len(repo.files),
    }


def _adapter_block(bundle: AnalysisBundle, result: AdapterResult, volatile: bool) -> dict[str, Any]:
    block: dict[str, Any] = {
        "id": result.adapter,
        "type": bundle.adapter_types.get(result.adapter),
        "kind": bundle.adapter_kinds.get(result.adapter),
        "status": result.status.value,
        "error_kind": result.error_kind.value if result.error_kind else None,
        "error": result.error,
        "counts_by_severity": result.counts_by_severity(),
        "counts_by_kind": result.counts_by_kind(),
        "dropped": result.dropped,
        "invariant_violations": result.invariant_violations,
        "targets_analyzed": result.targets_analyzed,
        "targets_failed": result.targets_failed,
        "findings": [finding_to_dict(f) for f in result.findings],
        "metrics": [metric_to_dict(m) for m in result.metrics],
    }
    if volatile:
        block["duration_seconds"] = result.duration_seconds
        block["cached"] = result.cached
    return block


def correlation_to_dict(c: Correlation) -> dict[str, Any]:
    return {
        "id": c.id,
        "participants": list(c.participants),
        "adapters": list(c.adapters),
        "category": c.category.value,
        "kind": c.kind,
        "rule": c.rule,
        "file": c.file,
        "line": c.line,
        "consensus_severity": c.consensus_severity.value,
        "severities": [s.value for s in c.severities],
        "disagreement": c.disagreement,
        "agreement": c.agreement,
        "fp_probability": c.fp_probability,
    }


def _deployment_block(model: CorrelatedModel) -> Optional[dict[str, Any]]:
    if model.deployment is None:
        return None
    block = asdict(model.deployment)
    block["risk"] = asdict(model.risk) if model.risk else None
    block["verification_consensus"] = [
        {
            "property": vc.property,
            "property_kind": vc.property_kind,
            "consensus": vc.consensus,
            "recommended_action": vc.recommended_action,
            "risk_level": vc.risk_level,
            "resolved_verdict": vc.resolved_verdict.value,
            "resolved_by": vc.resolved_by,
            "disagreement": vc.disagreement,
            "potential_loss": vc.potential_loss,
            "verdicts": [
                {"adapter": v.adapter, "verdict": v.verdict.value, "reliability": v.reliability}
                for v in vc.verdicts
            ],
        }
        for vc in model.verification_consensus
    ]
    return block


def build_document(
    model: CorrelatedModel,
    projection: Optional[CityProjection] = None,
    volatile: bool = True,
) -> dict[str, Any]:
    """Assemble the run document for a correlated model.

    Args:
        model: Correlated model of the run
        projection: Spatial projection to embed (None = omitted)
        volatile: Include timestamps, durations and cache flags
    """
    bundle = model.bundle
    counters = bundle.counters()
    return {
        "schemaVersion": SCHEMA_VERSION,
        "run": _run_block(bundle, volatile),
        "repository": _repository_block(bundle),
        "probes": [asdict(p) for p in bundle.probes],
        "adapters": [_adapter_block(bundle, r, volatile) for r in bundle.results],
        "aggregate": {
            "total_findings": counters["findings"],
            "total_metrics": counters["metrics"],
            "rating": model.rating,
            "correlations": len(model.correlations),
            "cross_adapter_correlations": sum(1 for c in model.correlations if c.size > 1),
            "counters": counters,
        },
        "correlations": [correlation_to_dict(c) for c in model.correlations],
        "deployment": _deployment_block(model),
        "projection": projection.to_dict() if projection is not None else None,
    }


def render_document(document: dict[str, Any], indent: Optional[int] = 2) -> str:
    return json.dumps(document, indent=indent, sort_keys=True, default=str) + "\n"


def write_document(document: dict[str, Any], path: str | Path) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(render_document(document), encoding="utf-8")
    return out
