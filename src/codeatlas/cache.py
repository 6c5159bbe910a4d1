"""
Caching system for codeatlas.

Two tiers behind one contract:

- Memory: bounded LRU map with per-entry TTL, guarded by a single lock.
- Disk: one JSON file per entry, ``<key>.cache.json``, holding a header
  (key, created, ttl, operation, path, checksum) and the payload. Entries
  are written to a temp file and renamed into place.

Entries that fail their integrity check are discarded silently and count
as misses.
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, Optional

from .config import CacheConfig
from .exceptions import CorruptEntryError, ErrorCode
from .logging_config import get_logger
from .model import Repository

logger = get_logger(__name__)

CACHE_SUFFIX = ".cache.json"

# Option keys that change on every invocation and must not affect the key
VOLATILE_OPTION_KEYS = frozenset({"timestamp", "cacheKey", "cache_key"})

# 32 hex chars = 128 bits
KEY_HEX_LENGTH = 32


def cache_key(
    operation: str,
    path: str,
    options: Optional[Mapping[str, Any]] = None,
    mtime: Any = None,
) -> str:
    """Stable cache key for an operation on a repository.

    Args:
        operation: Operation name (adapter id for adapter runs)
        path: Canonical repository path
        options: Operation options; order-insensitive, volatile keys ignored
        mtime: Modification time or commit sha identifying the repository state

    Returns:
        128-bit hex digest
    """
    normalized = {
        k: v for k, v in sorted((options or {}).items()) if k not in VOLATILE_OPTION_KEYS
    }
    material = json.dumps(
        {"operation": operation, "path": path, "options": normalized, "mtime": mtime},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:KEY_HEX_LENGTH]


def compute_config_hash(config: Mapping[str, Any]) -> str:
    """
    Compute hash of configuration for cache invalidation.

    Args:
        config: Configuration dictionary

    Returns:
        SHA256 hash of configuration
    """
    config_str = json.dumps(config, sort_keys=True, default=str)
    return hashlib.sha256(config_str.encode()).hexdigest()


def repository_fingerprint(repository: Repository) -> Any:
    """Commit sha when known, otherwise the newest file mtime."""
    if repository.commit:
        return repository.commit
    newest = 0.0
    root = Path(repository.root)
    for rel in repository.files:
        try:
            newest = max(newest, (root / rel).stat().st_mtime)
        except OSError:
            continue
    return newest


def _checksum(payload: Any) -> str:
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    key: str
    value: Any
    created: float
    ttl: float  # seconds; 0 = never expires
    operation: str = ""
    path: str = ""

    def expired(self, now: float) -> bool:
        return self.ttl > 0 and now - self.created > self.ttl


class MemoryTier:
    """Bounded LRU map with TTL. All operations hold one lock."""

    def __init__(self, capacity: int = 256, clock: Callable[[], float] = time.time):
        self.capacity = capacity
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self.evictions = 0

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expired(self._clock()):
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry

    def put(self, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[entry.key] = entry
            self._entries.move_to_end(entry.key)
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)
                self.evictions += 1

    def remove(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def remove_path(self, path: str) -> int:
        with self._lock:
            doomed = [k for k, e in self._entries.items() if e.path == path]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class DiskTier:
    """File-per-entry JSON store."""

    def __init__(self, directory: str | Path, clock: Callable[[], float] = time.time):
        self.directory = Path(directory)
        self._clock = clock
        # Entry count, scanned once on first use then kept current by writes and removals
        self._entries: Optional[int] = None
        self._entries_lock = threading.Lock()

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}{CACHE_SUFFIX}"

    def read(self, key: str) -> Optional[CacheEntry]:
        """Load an entry; None when absent.

        Raises:
            CorruptEntryError: If the file is unreadable or fails its checksum
        """
        path = self._path(key)
        if not path.exists():
            return None
        return self._load(path, expected_key=key)

    def _load(self, path: Path, expected_key: Optional[str] = None) -> CacheEntry:
        try:
            with open(path, "r", encoding="utf-8") as f:
                doc = json.load(f)
            header = doc["header"]
            payload = doc["payload"]
            entry = CacheEntry(
                key=header["key"],
                value=payload,
                created=float(header["created"]),
                ttl=float(header["ttl"]),
                operation=header.get("operation", ""),
                path=header.get("path", ""),
            )
            checksum = header["checksum"]
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise CorruptEntryError(
                f"Unreadable cache entry {path.name}: {e}",
                code=ErrorCode.CA400,
                context={"path": str(path)},
            )
        if expected_key is not None and entry.key != expected_key:
            raise CorruptEntryError(
                f"Cache entry {path.name} holds key {entry.key}",
                code=ErrorCode.CA400,
                context={"path": str(path)},
            )
        if checksum != _checksum(payload):
            raise CorruptEntryError(
                f"Checksum mismatch in cache entry {path.name}",
                code=ErrorCode.CA400,
                context={"path": str(path)},
            )
        return entry

    def write(self, entry: CacheEntry) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        doc = {
            "header": {
                "key": entry.key,
                "created": entry.created,
                "ttl": entry.ttl,
                "operation": entry.operation,
                "path": entry.path,
                "checksum": _checksum(entry.value),
            },
            "payload": entry.value,
        }
        target = self._path(entry.key)
        existed = target.exists()
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=CACHE_SUFFIX)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(doc, f, sort_keys=True, default=str)
            os.replace(tmp, target)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
        if not existed:
            self._adjust(1)

    def remove(self, key: str) -> None:
        self.discard(self._path(key))

    def discard(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            return
        self._adjust(-1)

    def iter_entries(self) -> Iterator[tuple[Path, Optional[CacheEntry]]]:
        """Yield (file, entry) pairs; entry is None for corrupt files."""
        if not self.directory.exists():
            return
        for path in sorted(self.directory.glob(f"*{CACHE_SUFFIX}")):
            if path.name.startswith(".tmp-"):
                continue
            try:
                yield path, self._load(path)
            except CorruptEntryError:
                yield path, None

    def clear(self) -> int:
        removed = 0
        for path, _entry in self.iter_entries():
            path.unlink(missing_ok=True)
            removed += 1
        with self._entries_lock:
            self._entries = 0
        return removed

    def entry_count(self) -> int:
        """Number of entries on disk, without rescanning the directory."""
        with self._entries_lock:
            if self._entries is None:
                self._entries = self._scan()
            return self._entries

    def _adjust(self, delta: int) -> None:
        with self._entries_lock:
            if self._entries is not None:
                self._entries = max(0, self._entries + delta)

    def _scan(self) -> int:
        if not self.directory.exists():
            return 0
        return sum(1 for p in self.directory.glob(f"*{CACHE_SUFFIX}") if not p.name.startswith(".tmp-"))

    def volume(self) -> tuple[int, int]:
        """(entry count, total bytes)."""
        count = size = 0
        if self.directory.exists():
            for path in self.directory.glob(f"*{CACHE_SUFFIX}"):
                count += 1
                size += path.stat().st_size
        return count, size


class CacheLayer:
    """
    Tiered cache shared by every adapter in a run.

    Constructed once at orchestrator setup and passed by reference. Hits
    are counted only after the expiry check passes.

    Usage:
        cache = CacheLayer(CacheConfig(), directory="/tmp/codeatlas-cache")
        key = cache_key("semgrep", repo.root, {"config": "auto"}, repo.commit)
        payload = cache.get(key)
        if payload is None:
            payload = run_semgrep()
            cache.set(key, payload, operation="semgrep", path=repo.root)
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        directory: Optional[str | Path] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache.

        Args:
            config: Cache settings (defaults to CacheConfig())
            directory: Disk tier directory; None disables the disk tier
            clock: Time source, injectable for tests
        """
        self.config = config or CacheConfig()
        self.enabled = self.config.enabled
        self._clock = clock
        self.memory = MemoryTier(self.config.memory_capacity, clock=clock)
        self.disk = DiskTier(directory, clock=clock) if directory is not None else None
        self._stats_lock = threading.Lock()
        self.hits = 0
        self.misses = 0

        if self.enabled:
            logger.debug(
                f"Cache initialized (disk={self.disk.directory if self.disk else None}, "
                f"ttl={self.config.ttl_seconds}s)"
            )
        else:
            logger.debug("Cache disabled")

    def _count(self, hit: bool) -> None:
        with self._stats_lock:
            if hit:
                self.hits += 1
            else:
                self.misses += 1

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache, probing memory then disk.

        Args:
            key: Cache key

        Returns:
            Cached payload, or None if absent, expired or corrupt
        """
        if not self.enabled:
            return None

        entry = self.memory.get(key)
        if entry is not None:
            self._count(hit=True)
            logger.debug(f"Cache hit (memory): {key[:16]}...")
            return entry.value

        if self.disk is not None:
            try:
                entry = self.disk.read(key)
            except CorruptEntryError as e:
                logger.debug(f"Discarding corrupt cache entry: {e}")
                self.disk.remove(key)
                entry = None
            if entry is not None:
                if entry.expired(self._clock()):
                    self.disk.remove(key)
                else:
                    self.memory.put(entry)
                    self._count(hit=True)
                    logger.debug(f"Cache hit (disk): {key[:16]}...")
                    return entry.value

        self._count(hit=False)
        return None

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        persist: Optional[bool] = None,
        operation: str = "",
        path: str = "",
    ) -> None:
        """
        Set value in cache. Memory always; disk only when ``persist``.

        Args:
            key: Cache key
            value: JSON-serializable payload
            ttl: Lifetime in seconds (default from config; 0 = never expires)
            persist: Also write to disk (default from config)
            operation: Operation name recorded in the entry header
            path: Repository path recorded in the entry header
        """
        if not self.enabled:
            return

        entry = CacheEntry(
            key=key,
            value=value,
            created=self._clock(),
            ttl=self.config.ttl_seconds if ttl is None else ttl,
            operation=operation,
            path=path,
        )
        self.memory.put(entry)

        if persist is None:
            persist = self.config.persist
        if persist and self.disk is not None:
            try:
                self.disk.write(entry)
            except OSError as e:
                logger.warning(f"Cache write failed for {operation or key[:16]}: {e}")
            else:
                count = self.disk.entry_count()
                if count > self.config.max_disk_entries:
                    logger.info(
                        f"Disk cache holds {count} entries "
                        f"(advisory maximum {self.config.max_disk_entries})"
                    )
        logger.debug(f"Cache set: {key[:16]}...")

    def should_cache(
        self,
        operation: str,
        payload_size: int,
        repo_size: int,
        execution_seconds: float,
    ) -> bool:
        """Decide whether a result may be cached.

        All of: caching enabled, payload within the size limit, repository
        within the size limit, and the operation allow-listed or slow enough.
        """
        if not self.enabled:
            return False
        if payload_size > self.config.max_payload_bytes:
            return False
        if repo_size > self.config.max_repo_bytes:
            return False
        return (
            operation in self.config.allow_list
            or execution_seconds >= self.config.min_execution_seconds
        )

    def invalidate(self, path: str) -> int:
        """Remove every entry whose header names the repository ``path``.

        Returns:
            Number of disk entries removed
        """
        self.memory.remove_path(path)
        removed = 0
        if self.disk is not None:
            for file, entry in self.disk.iter_entries():
                if entry is None or entry.path == path:
                    self.disk.discard(file)
                    removed += 1
        logger.info(f"Invalidated {removed} cache entries for {path}")
        return removed

    def clear(self) -> None:
        """Clear all cache entries."""
        self.memory.clear()
        if self.disk is not None:
            self.disk.clear()
        logger.info("Cache cleared")

    def stats(self) -> dict:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache stats
        """
        if not self.enabled:
            return {"enabled": False}
        stats = {
            "enabled": True,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.memory.evictions,
            "memory_entries": len(self.memory),
        }
        if self.disk is not None:
            count, size = self.disk.volume()
            stats.update(directory=str(self.disk.directory), disk_entries=count, volume=size)
        return stats
