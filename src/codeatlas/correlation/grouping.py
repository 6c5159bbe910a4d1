"""Group findings from different adapters into correlations.

Two findings correlate when they are rule-equivalent (a configured canonical
rule, or the same category and sub-kind) and lie in the same file within
``tolerance`` lines of each other. A file-scope finding (line 0) matches any
line of its file. Matching is transitive; each equivalence class is then
split so that no adapter appears twice in one group.
"""

from __future__ import annotations

from typing import Mapping, Optional, Sequence

from ..model import Finding


class _DisjointSet:
    def __init__(self, n: int):
        self.parent = list(range(n))

    def find(self, i: int) -> int:
        while self.parent[i] != i:
            self.parent[i] = self.parent[self.parent[i]]
            i = self.parent[i]
        return i

    def union(self, a: int, b: int) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return
        # Lower index becomes the root so class order follows bundle order
        if ra < rb:
            self.parent[rb] = ra
        else:
            self.parent[ra] = rb


def canonical_rule(
    finding: Finding,
    equivalences: Mapping[str, str],
    adapter_type: Optional[str] = None,
) -> Optional[str]:
    """Canonical rule for a finding: ``adapter:rule`` first, then ``type:rule``, then ``rule``."""
    for key in (f"{finding.adapter}:{finding.rule_key}", f"{adapter_type}:{finding.rule_key}"):
        if key in equivalences:
            return equivalences[key]
    return equivalences.get(finding.rule_key)


def equivalence_keys(
    finding: Finding,
    equivalences: Mapping[str, str],
    adapter_type: Optional[str] = None,
) -> list[tuple[str, ...]]:
    keys: list[tuple[str, ...]] = []
    rule = canonical_rule(finding, equivalences, adapter_type)
    if rule is not None:
        keys.append(("rule", rule))
    if finding.kind:
        keys.append(("kind", finding.category.value, finding.kind))
    return keys


def near(a: Finding, b: Finding, tolerance: int) -> bool:
    if a.file != b.file or a.file is None:
        return False
    if a.line == 0 or b.line == 0:
        return True
    return abs(a.line - b.line) <= tolerance


def group_findings(
    findings: Sequence[Finding],
    tolerance: int = 5,
    equivalences: Optional[Mapping[str, str]] = None,
    adapter_types: Optional[Mapping[str, str]] = None,
) -> list[list[Finding]]:
    """Partition ``findings`` into correlation groups.

    Every finding lands in exactly one group; unmatched findings form
    singletons. Groups are ordered by their first member's position in
    ``findings`` and members keep input order.
    """
    equivalences = equivalences or {}
    adapter_types = adapter_types or {}
    n = len(findings)
    dsu = _DisjointSet(n)

    # (file, equivalence key) -> indices
    buckets: dict[tuple[str, tuple[str, ...]], list[int]] = {}
    for i, f in enumerate(findings):
        if f.file is None:
            continue
        for key in equivalence_keys(f, equivalences, adapter_types.get(f.adapter)):
            buckets.setdefault((f.file, key), []).append(i)

    for indices in buckets.values():
        if len(indices) < 2:
            continue
        file_scope = [i for i in indices if findings[i].line == 0]
        lined = sorted((i for i in indices if findings[i].line > 0), key=lambda i: (findings[i].line, i))
        # File-scope findings match everything in the bucket
        for i in file_scope:
            for j in indices:
                dsu.union(i, j)
        # On sorted lines, chaining neighbours gives the transitive closure
        for prev, cur in zip(lined, lined[1:]):
            if findings[cur].line - findings[prev].line <= tolerance:
                dsu.union(prev, cur)

    classes: dict[int, list[int]] = {}
    for i in range(n):
        classes.setdefault(dsu.find(i), []).append(i)

    subgroups: list[list[int]] = []
    for members in classes.values():
        subgroups.extend(_split_by_adapter(findings, members, tolerance))
    subgroups.sort(key=lambda sub: sub[0])
    return [[findings[i] for i in sub] for sub in subgroups]


def _split_by_adapter(
    findings: Sequence[Finding], members: list[int], tolerance: int
) -> list[list[int]]:
    """Assign members, in order, to the first sub-group that lacks their
    adapter and holds a member near them."""
    if len(members) == 1:
        return [members]
    subgroups: list[list[int]] = []
    for i in members:
        f = findings[i]
        for sub in subgroups:
            if all(findings[j].adapter != f.adapter for j in sub) and any(
                near(f, findings[j], tolerance) for j in sub
            ):
                sub.append(i)
                break
        else:
            subgroups.append([i])
    return subgroups
