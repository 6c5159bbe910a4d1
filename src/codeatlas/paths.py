"""Path canonicalization for adapter-reported locations.

Adapters report files as absolute host paths, container-interior paths,
``file://`` URIs or relative paths in their own conventions. Everything the
rest of the pipeline sees is the canonical form: repository-root-relative,
forward slashes, with ``..`` and symlinks resolved. Paths that land outside
the repository are rejected.
"""

from __future__ import annotations

import os
import threading
from typing import Mapping, Optional
from urllib.parse import unquote, urlparse

from .logging_config import get_logger

logger = get_logger(__name__)

# Mount key applied to every adapter
ALL_ADAPTERS = "*"


class PathCanonicalizer:
    """Resolve adapter paths to canonical repository-relative form.

    One instance is shared by every adapter of a run. Resolutions are cached
    per (adapter, input) so a path reported thousands of times is resolved
    once.

    Usage:
        canon = PathCanonicalizer("/work/repo", mounts={
            "sonarqube": {"/opt/analysis/workspace": ""},
        })
        canon.canonicalize("/opt/analysis/workspace/src/a.c", "sonarqube")  # "src/a.c"
        canon.canonicalize("../../etc/passwd")  # None
    """

    def __init__(
        self,
        root: str | os.PathLike,
        mounts: Optional[Mapping[str, Mapping[str, str]]] = None,
    ):
        """
        Args:
            root: Repository root
            mounts: Adapter id -> {container prefix: repo-relative target}.
                The "*" key applies to every adapter.
        """
        self.root = os.path.realpath(os.fspath(root))
        self._mounts: dict[str, list[tuple[str, str]]] = {}
        for adapter, table in (mounts or {}).items():
            self.add_mounts(adapter, table)
        self._cache: dict[tuple[str, str], Optional[str]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def add_mounts(self, adapter: str, table: Mapping[str, str]) -> None:
        entries = self._mounts.setdefault(adapter, [])
        for prefix, target in table.items():
            prefix = prefix.replace("\\", "/").rstrip("/") or "/"
            target = target.replace("\\", "/").strip("/")
            entries.append((prefix, target))
        # Longest prefix wins
        entries.sort(key=lambda e: len(e[0]), reverse=True)

    def canonicalize(self, raw: Optional[str], adapter: str = ALL_ADAPTERS) -> Optional[str]:
        """Return the canonical path for ``raw`` or None if it cannot be placed in the repo."""
        if raw is None:
            return None
        key = (adapter, raw)
        with self._lock:
            if key in self._cache:
                self.hits += 1
                return self._cache[key]
            self.misses += 1

        resolved = self._resolve(raw, adapter)
        if resolved is None:
            logger.debug(f"Rejected path from {adapter}: {raw!r}")

        with self._lock:
            self._cache[key] = resolved
        return resolved

    def _resolve(self, raw: str, adapter: str) -> Optional[str]:
        path = raw.strip()
        if not path:
            return None

        if path.startswith("file:"):
            parsed = urlparse(path)
            path = unquote(parsed.path)

        path = path.replace("\\", "/")

        mapped = self._apply_mounts(path, adapter)
        if mapped is not None:
            path = mapped
        elif os.path.isabs(path):
            return self._relativize(os.path.realpath(path))

        while path.startswith("./"):
            path = path[2:]
        if not path or path == ".":
            return None
        return self._relativize(os.path.realpath(os.path.join(self.root, path)))

    def _apply_mounts(self, path: str, adapter: str) -> Optional[str]:
        """Rewrite a container-interior path to a repo-relative one, if a mount matches."""
        for table_key in (adapter, ALL_ADAPTERS):
            for prefix, target in self._mounts.get(table_key, ()):
                if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
                    rest = path[len(prefix):].lstrip("/")
                    joined = f"{target}/{rest}" if target and rest else (target or rest)
                    return joined or "."
        return None

    def _relativize(self, absolute: str) -> Optional[str]:
        if absolute == self.root:
            return None
        try:
            rel = os.path.relpath(absolute, self.root)
        except ValueError:
            # Different drive on Windows
            return None
        if rel == ".." or rel.startswith(".." + os.sep) or os.path.isabs(rel):
            return None
        return rel.replace(os.sep, "/")

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self.hits = 0
            self.misses = 0
