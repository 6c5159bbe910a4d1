"""Incremental analysis state.

Remembers the last analyzed commit per repository so adapters that support
delta operation (git history, AST diffs) can bound their work to the commits
added since. The marker lives inside the VCS metadata directory:

    <repo>/.git/codeatlas/analysis-state.json

Repositories without a VCS keep it in ``<repo>/.codeatlas/``. The file is
replaced atomically on every write; unknown fields are ignored on read so
newer writers stay readable.
"""

from __future__ import annotations

import json
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from .exceptions import CorruptEntryError, ErrorCode
from .logging_config import get_logger
from .model import Repository

logger = get_logger(__name__)

STATE_FILE = "analysis-state.json"
STATE_DIR = "codeatlas"

# Bump when the marker layout changes incompatibly
_SCHEMA_VERSION = 1


@dataclass
class IncrementalMarker:
    """Per-repository progress pointer."""

    last_analyzed_commit: Optional[str] = None
    adapters: dict[str, Any] = field(default_factory=dict)
    last_analysis_timestamp: Optional[float] = None
    total_runs: int = 0
    last_updated: Optional[float] = None
    version: int = _SCHEMA_VERSION

    def to_json(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "lastAnalyzedCommit": self.last_analyzed_commit,
            "adapters": self.adapters,
            "lastAnalysisTimestamp": self.last_analysis_timestamp,
            "totalAnalysisRuns": self.total_runs,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_json(cls, data: Any) -> IncrementalMarker:
        """Build a marker, ignoring unknown fields.

        Raises:
            CorruptEntryError: If known fields have the wrong shape
        """
        try:
            if not isinstance(data, dict):
                raise TypeError("marker must be an object")
            commit = data.get("lastAnalyzedCommit")
            if commit is not None and not isinstance(commit, str):
                raise TypeError("lastAnalyzedCommit must be a string")
            adapters = data.get("adapters") or {}
            if not isinstance(adapters, dict):
                raise TypeError("adapters must be an object")
            ts = data.get("lastAnalysisTimestamp")
            updated = data.get("lastUpdated")
            return cls(
                last_analyzed_commit=commit,
                adapters=adapters,
                last_analysis_timestamp=float(ts) if ts is not None else None,
                total_runs=int(data.get("totalAnalysisRuns", 0)),
                last_updated=float(updated) if updated is not None else None,
                version=int(data.get("version", _SCHEMA_VERSION)),
            )
        except (TypeError, ValueError) as e:
            raise CorruptEntryError(
                f"Malformed incremental marker: {e}", code=ErrorCode.CA401
            )


class IncrementalStateStore:
    """Reads and writes the incremental marker.

    Only the orchestrator writes, once per run after every adapter has
    finished. Adapters read through ``get_last_analyzed``.

    Usage:
        store = IncrementalStateStore()
        since = store.get_last_analyzed(repo)  # None on first run
        ...
        store.mark_analyzed(repo, repo.commit, {"git-history": {"commits": 12}})
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    def marker_path(self, repo: Repository) -> Path:
        if repo.vcs_dir:
            base = Path(repo.vcs_dir) / STATE_DIR
        else:
            base = Path(repo.root) / f".{STATE_DIR}"
        return base / STATE_FILE

    def load(self, repo: Repository) -> Optional[IncrementalMarker]:
        """Current marker, or None when absent or unreadable."""
        path = self.marker_path(repo)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return IncrementalMarker.from_json(data)
        except (OSError, ValueError) as e:
            logger.debug(f"Discarding unreadable incremental marker {path}: {e}")
        except CorruptEntryError as e:
            logger.debug(f"Discarding incremental marker {path}: {e}")
        return None

    def get_last_analyzed(self, repo: Repository) -> Optional[str]:
        marker = self.load(repo)
        return marker.last_analyzed_commit if marker else None

    def first_run(self, repo: Repository) -> bool:
        return self.get_last_analyzed(repo) is None

    def mark_analyzed(
        self,
        repo: Repository,
        commit: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> IncrementalMarker:
        """Record ``commit`` as analyzed and bump the run counter.

        Args:
            repo: Repository the marker belongs to
            commit: Commit that was analyzed
            metadata: Per-adapter metadata, merged over the previous marker's

        Returns:
            The marker that was written
        """
        previous = self.load(repo) or IncrementalMarker()
        now = self._clock()
        marker = IncrementalMarker(
            last_analyzed_commit=commit,
            adapters={**previous.adapters, **(metadata or {})},
            last_analysis_timestamp=now,
            total_runs=previous.total_runs + 1,
            last_updated=now,
        )
        self._write(self.marker_path(repo), marker)
        logger.debug(f"Marked {commit[:12]} as analyzed (run {marker.total_runs})")
        return marker

    def clear(self, repo: Repository) -> bool:
        """Remove the marker so the next run does a full pass.

        Returns:
            True if a marker was removed
        """
        path = self.marker_path(repo)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Cleared incremental state for {repo.root}")
        return True

    @staticmethod
    def _write(path: Path, marker: IncrementalMarker) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(marker.to_json(), f, indent=2, sort_keys=True)
            os.replace(tmp, path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
