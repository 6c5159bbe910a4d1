"""Adapter that mines ``git log`` for churn metrics.

Emits the generic payload shape: per-file ``churn.commits`` and
``churn.authors`` metrics, repository totals, and a maintainability
finding for files changed at least ``hotspot_commits`` times.

When an incremental marker exists and still lies on the current history,
only commits after it are read.
"""

from __future__ import annotations

import re
import shutil
from dataclasses import dataclass, field
from typing import Any, Optional

from ..logging_config import get_logger
from ..model import ErrorKind
from .process import run_bounded
from .protocol import AdapterContext, AdapterDescription, AvailabilityReport, NativeResult, OptionSpec

logger = get_logger(__name__)

DESCRIPTION = AdapterDescription(
    id="git-history",
    name="git",
    kind="vcs",
    normalizer="generic",
    inputs=("repository", "vcs-history"),
    finding_kinds=("maintainability/churn_hotspot",),
    metric_keys=("churn.commits", "churn.authors", "history.commits", "history.authors"),
    options=(
        OptionSpec("max_commits", "int", default=5000, help="Upper bound on commits read"),
        OptionSpec("incremental", "bool", default=True, help="Only read commits since the last run"),
        OptionSpec("hotspot_commits", "int", default=20, help="Churn that makes a file a hotspot (0 = off)"),
    ),
    max_execution_seconds=120.0,
    cache_operation="git-analysis",
)

_MAX_OUTPUT_BYTES = 50 * 1024 * 1024

# 40-char hash | unix timestamp | author email | subject
_HEADER_RE = re.compile(r"^[0-9a-f]{40}\|\d+\|[^|]*\|.*$")


@dataclass
class Commit:
    hash: str
    timestamp: int
    author: str
    subject: str
    files: list[str] = field(default_factory=list)


def parse_log(raw: str) -> list[Commit]:
    """Parse ``git log --format=%H|%at|%ae|%s --name-only`` output.

    Header lines are detected by pattern rather than blank-line separation,
    so merge commits without files and consecutive headers parse correctly.
    """
    commits: list[Commit] = []
    current: Optional[Commit] = None

    for line in raw.split("\n"):
        line = line.strip()
        if not line:
            continue
        if _HEADER_RE.match(line):
            if current is not None and current.files:
                commits.append(current)
            parts = line.split("|", 3)
            try:
                ts = int(parts[1])
            except ValueError:
                current = None
                continue
            current = Commit(
                hash=parts[0],
                timestamp=ts,
                author=parts[2],
                subject=parts[3] if len(parts) > 3 else "",
            )
        elif current is not None:
            current.files.append(line)

    if current is not None and current.files:
        commits.append(current)
    return commits


def churn_payload(commits: list[Commit], hotspot_commits: int, since: Optional[str]) -> dict[str, Any]:
    """Build the generic payload for a list of commits."""
    per_file: dict[str, dict[str, Any]] = {}
    authors: set[str] = set()
    for commit in commits:
        authors.add(commit.author)
        for path in commit.files:
            entry = per_file.setdefault(path, {"commits": 0, "authors": set()})
            entry["commits"] += 1
            entry["authors"].add(commit.author)

    metrics: list[dict[str, Any]] = [
        {"scope": "repo", "key": "history.commits", "value": len(commits), "unit": "commits"},
        {"scope": "repo", "key": "history.authors", "value": len(authors), "unit": "authors"},
    ]
    findings: list[dict[str, Any]] = []
    for path in sorted(per_file):
        entry = per_file[path]
        metrics.append(
            {"scope": "file", "key": "churn.commits", "value": entry["commits"], "unit": "commits", "file": path}
        )
        metrics.append(
            {"scope": "file", "key": "churn.authors", "value": len(entry["authors"]), "unit": "authors", "file": path}
        )
        if hotspot_commits and entry["commits"] >= hotspot_commits:
            findings.append(
                {
                    "rule": "churn-hotspot",
                    "message": f"Changed in {entry['commits']} commits by {len(entry['authors'])} authors",
                    "file": path,
                    "severity": "low",
                    "category": "maintainability",
                    "kind": "churn_hotspot",
                    "confidence": "high",
                }
            )
    return {"findings": findings, "metrics": metrics, "since": since}


class GitHistoryAdapter:
    def __init__(self, options: dict[str, Any], root: Optional[str] = None):
        self._options = options
        self._root = root

    def describe(self) -> AdapterDescription:
        return DESCRIPTION

    def capabilities(self) -> dict[str, list[str]]:
        return DESCRIPTION.capabilities()

    def probe(self) -> AvailabilityReport:
        if shutil.which("git") is None:
            return AvailabilityReport.unavailable("git executable not found on PATH")
        return AvailabilityReport.ok()

    def analyze(self, context: AdapterContext, options: dict[str, Any]) -> NativeResult:
        if context.repository.vcs != "git" or not context.repository.commit:
            return NativeResult.failure(ErrorKind.CONFIG_MISSING, "repository has no git history")

        since = None
        if options["incremental"] and context.last_analyzed_commit:
            since = self._usable_base(context, context.last_analyzed_commit)

        cmd = [
            "git",
            "-C",
            str(context.root),
            "log",
            "--format=%H|%at|%ae|%s",
            "--name-only",
            f"-n{options['max_commits']}",
        ]
        if since:
            cmd.append(f"{since}..HEAD")

        result = run_bounded(
            cmd, cwd=context.root, cancel=context.cancel, max_output_bytes=_MAX_OUTPUT_BYTES
        )
        if result.error:
            return NativeResult.failure(ErrorKind.EXTERNAL_ERROR, result.error)
        if result.cancelled or result.timed_out:
            return NativeResult.failure(ErrorKind.TIMEOUT, "git log cancelled")
        if result.returncode != 0:
            return NativeResult.failure(
                ErrorKind.EXTERNAL_ERROR, f"git log failed: {result.stderr.strip()[:500]}"
            )

        commits = parse_log(result.stdout)
        logger.debug(
            f"{context.adapter_id}: parsed {len(commits)} commits"
            + (f" since {since[:12]}" if since else "")
        )
        payload = churn_payload(commits, options["hotspot_commits"], since)
        if result.truncated:
            return NativeResult.partial(payload, analyzed=len(commits), failed=1, message="git log output truncated")
        return NativeResult.success(payload, targets_analyzed=len(commits))

    @staticmethod
    def _usable_base(context: AdapterContext, commit: str) -> Optional[str]:
        """``commit`` if it is an ancestor of HEAD, else None (history was rewritten)."""
        check = run_bounded(
            ["git", "-C", str(context.root), "merge-base", "--is-ancestor", commit, "HEAD"],
            cancel=context.cancel,
            timeout=10,
        )
        if check.returncode == 0:
            return commit
        logger.info(f"Incremental base {commit[:12]} is not on the current history, reading full log")
        return None
