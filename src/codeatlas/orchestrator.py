"""CollectionOrchestrator: runs configured adapters and gathers their output.

Pipeline per run:
    plan -> probe -> execute (bounded pool) -> normalize -> mark state -> bundle

Adapter-local failures are captured into ``AdapterResult`` and never cross
this boundary. Only configuration errors (before anything runs) raise.
"""

from __future__ import annotations

import hashlib
import json
import shutil
import tempfile
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from .adapters.cancellation import CancellationToken
from .adapters.protocol import Adapter, AdapterContext, AdapterDescription, NativeResult
from .adapters.registry import AdapterRegistry
from .cache import CacheLayer, cache_key, compute_config_hash, repository_fingerprint
from .config import AdapterConfig, AtlasConfig
from .exceptions import AdapterContractError, ErrorCode, InvalidConfigError
from .logging_config import AdapterLogAdapter, adapter_logger, get_logger
from .model import (
    AdapterResult,
    AdapterStatus,
    AnalysisBundle,
    AnalysisRun,
    ErrorKind,
    ProbeReport,
    Repository,
    RunStatus,
)
from .normalize import Normalizer, get_normalizer
from .paths import PathCanonicalizer
from .state import IncrementalStateStore

logger = get_logger(__name__)

ProgressCallback = Optional[Callable[[str], None]]

# How often a worker checks on its adapter thread
_POLL_SECONDS = 0.05


@dataclass
class PlannedAdapter:
    """A configured adapter resolved against the registry."""

    config: AdapterConfig
    description: AdapterDescription
    options: dict[str, Any]
    adapter: Adapter
    normalizer: Normalizer

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def log(self) -> AdapterLogAdapter:
        return adapter_logger(self.id, __name__)


class CollectionOrchestrator:
    """Run every configured adapter against one repository.

    Usage:
        orchestrator = CollectionOrchestrator(default_registry(), load_config())
        bundle = orchestrator.run_all(discover_repository("."))
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        config: AtlasConfig,
        cache: Optional[CacheLayer] = None,
        state: Optional[IncrementalStateStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.config = config
        self.cache = cache
        self.state = state
        self._clock = clock

    def plan(self, repository: Repository) -> list[PlannedAdapter]:
        """Resolve the active adapters in declaration order.

        Raises:
            UnknownAdapterError: An adapter type is not registered
            UnknownOptionError: An option is not in the adapter's schema
            MissingOptionError: A required option is absent or mistyped
            InvalidConfigError: The adapter names a normalizer that does not exist
        """
        planned = []
        for cfg in self.config.active_adapters:
            entry = self.registry.get(cfg.adapter_type)
            options = entry.description.resolve_options(cfg.id, cfg.options)
            normalizer = get_normalizer(entry.description.normalizer)
            if normalizer is None:
                raise InvalidConfigError(
                    f"adapters.{cfg.id}", entry.description.normalizer, "no such normalizer family"
                )
            adapter = entry.factory(options, repository.root)
            planned.append(PlannedAdapter(cfg, entry.description, options, adapter, normalizer))
        return planned

    def run_all(
        self,
        repository: Repository,
        cancel: Optional[CancellationToken] = None,
        seed: int = 0,
        on_progress: ProgressCallback = None,
    ) -> AnalysisBundle:
        """Execute all configured adapters and collect an AnalysisBundle.

        Args:
            repository: Repository to analyze (read-only for the whole run)
            cancel: Caller token; cancelling it aborts the run
            seed: Mixed into the run id
            on_progress: Called with a status message at each phase transition

        Returns:
            Bundle with one result per configured adapter, in declaration order

        Raises:
            ConfigurationError: Invalid adapter configuration, before anything runs
        """

        def _progress(msg: str) -> None:
            if on_progress is not None:
                on_progress(msg)

        planned = self.plan(repository)
        options_hash = compute_config_hash(
            {p.id: {"type": p.config.adapter_type, "options": p.options} for p in planned}
        )
        fingerprint = repository_fingerprint(repository)
        run = AnalysisRun(
            id=_run_id(repository, fingerprint, options_hash, seed),
            started_at=self._clock(),
            adapters=[p.id for p in planned],
            options_hash=options_hash,
            target_commit=repository.commit,
        )
        if self.state is not None:
            run.base_commit = self.state.get_last_analyzed(repository)

        # Phase 1: probe
        _progress("Probing adapters...")
        probes: list[ProbeReport] = []
        results: dict[str, AdapterResult] = {}
        runnable: list[PlannedAdapter] = []
        for p in planned:
            probe = self._probe(p)
            probes.append(probe)
            if probe.available:
                runnable.append(p)
            else:
                p.log.info(f"Skipping: {probe.reason}")
                results[p.id] = AdapterResult(
                    adapter=p.id,
                    status=AdapterStatus.SKIPPED,
                    error_kind=ErrorKind.UNAVAILABLE,
                    error=probe.reason,
                )

        # Phase 2: execute
        run_token = CancellationToken(
            deadline=time.monotonic() + self.config.run_deadline_seconds, parent=cancel
        )
        canonicalizer = PathCanonicalizer(
            repository.root, mounts={p.id: p.config.mounts for p in planned if p.config.mounts}
        )
        scratch_root = self.config.scratch_path
        scratch_root.mkdir(parents=True, exist_ok=True)

        if runnable:
            _progress(f"Running {len(runnable)} adapters...")
            workers = min(self.config.effective_concurrency, len(runnable))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="codeatlas") as pool:
                futures = {
                    p.id: pool.submit(
                        self._execute, p, repository, run_token, canonicalizer,
                        scratch_root, fingerprint, run.base_commit,
                    )
                    for p in runnable
                }
                for adapter_id, future in futures.items():
                    results[adapter_id] = future.result()

        ordered = [results[p.id] for p in planned]
        run.finished_at = self._clock()

        if cancel is not None and cancel.cancelled:
            run.status = RunStatus.ABORTED
        elif not ordered or any(
            r.status != AdapterStatus.OK or r.error_kind == ErrorKind.PARTIAL for r in ordered
        ):
            run.status = RunStatus.DEGRADED
        else:
            run.status = RunStatus.CLEAN

        # Phase 3: incremental marker, once, after every adapter has finished
        if (
            self.state is not None
            and self.config.incremental
            and repository.commit
            and run.status != RunStatus.ABORTED
        ):
            metadata = {
                r.adapter: {"status": r.status.value, "findings": len(r.findings)}
                for r in ordered
                if r.status == AdapterStatus.OK
            }
            try:
                self.state.mark_analyzed(repository, repository.commit, metadata)
            except OSError as e:
                logger.warning(f"Could not write incremental marker: {e}")

        summary = ", ".join(f"{r.adapter}={r.status.value}" for r in ordered) or "no adapters"
        logger.info(f"Run {run.id} {run.status.value}: {summary}")

        return AnalysisBundle(
            run=run,
            repository=repository,
            results=ordered,
            probes=probes,
            adapter_kinds={p.id: p.description.kind for p in planned},
            adapter_types={p.id: p.config.adapter_type for p in planned},
        )

    def _probe(self, p: PlannedAdapter) -> ProbeReport:
        try:
            report = p.adapter.probe()
        except Exception as e:
            p.log.error(f"probe() raised: {e}")
            return ProbeReport(p.id, available=False, reason=f"probe raised: {e}")
        return ProbeReport(p.id, report.available, report.reason, dict(report.details))

    def _budget(self, p: PlannedAdapter, run_token: CancellationToken) -> float:
        """min(adapter timeout, declared max execution time, remaining run deadline)."""
        bounds = [p.config.timeout_seconds or self.config.adapter_timeout_seconds]
        if p.description.max_execution_seconds is not None:
            bounds.append(p.description.max_execution_seconds)
        remaining = run_token.remaining()
        if remaining is not None:
            bounds.append(remaining)
        return max(0.0, min(bounds))

    def _execute(
        self,
        p: PlannedAdapter,
        repository: Repository,
        run_token: CancellationToken,
        canonicalizer: PathCanonicalizer,
        scratch_root: Path,
        fingerprint: Any,
        base_commit: Optional[str],
    ) -> AdapterResult:
        """Run one adapter. Never raises."""
        start = time.monotonic()
        try:
            return self._execute_bounded(
                p, repository, run_token, canonicalizer, scratch_root, fingerprint, base_commit
            )
        except Exception as e:
            p.log.error(f"Failed outside the adapter boundary: {e}", exc_info=True)
            return AdapterResult(
                adapter=p.id,
                status=AdapterStatus.FAILED,
                duration_seconds=time.monotonic() - start,
                error_kind=ErrorKind.CONTRACT_VIOLATION,
                error=str(e),
            )

    def _execute_bounded(
        self,
        p: PlannedAdapter,
        repository: Repository,
        run_token: CancellationToken,
        canonicalizer: PathCanonicalizer,
        scratch_root: Path,
        fingerprint: Any,
        base_commit: Optional[str],
    ) -> AdapterResult:
        start = time.monotonic()

        if run_token.cancelled:
            return AdapterResult(
                adapter=p.id,
                status=AdapterStatus.TIMEOUT,
                error_kind=ErrorKind.TIMEOUT,
                error=f"run {run_token.reason} before adapter started",
            )

        operation = p.description.cache_operation or p.config.adapter_type
        key = cache_key(p.config.adapter_type, repository.root, p.options, fingerprint)
        if self.cache is not None:
            payload = self.cache.get(key)
            if payload is not None:
                p.log.debug("Served from cache")
                result = self._normalized(p, NativeResult.success(payload), repository, canonicalizer)
                result.cached = True
                result.duration_seconds = time.monotonic() - start
                return result

        budget = self._budget(p, run_token)
        token = run_token.child(deadline=start + budget)
        scratch = Path(tempfile.mkdtemp(prefix=f"{_safe_name(p.id)}-", dir=scratch_root))
        context = AdapterContext(
            adapter_id=p.id,
            repository=repository,
            scratch_dir=scratch,
            cancel=token,
            canonicalizer=canonicalizer,
            cache=self.cache,
            last_analyzed_commit=base_commit,
        )
        native, raised, interrupted, finished = self._run_adapter_thread(p, context, token)
        if finished:
            shutil.rmtree(scratch, ignore_errors=True)
        duration = time.monotonic() - start

        if interrupted:
            reason = (
                f"exceeded {budget:.1f}s budget" if token.reason == "deadline" else f"run {token.reason}"
            )
            if not finished:
                reason += f"; abandoned after {self.config.grace_seconds:g}s grace"
            p.log.warning(f"Timed out: {reason}")
            return AdapterResult(
                adapter=p.id,
                status=AdapterStatus.TIMEOUT,
                duration_seconds=duration,
                error_kind=ErrorKind.TIMEOUT,
                error=reason,
            )

        if raised is not None:
            violation = AdapterContractError(
                f"{type(raised).__name__}: {raised}",
                code=ErrorCode.CA204,
                context={"adapter": p.id},
            )
            p.log.error(f"Raised across the adapter boundary: {violation}", exc_info=raised)
            return _contract_failure(p.id, duration, violation)

        if not isinstance(native, NativeResult):
            violation = AdapterContractError(
                f"analyze() returned {type(native).__name__}",
                code=ErrorCode.CA204,
                context={"adapter": p.id},
                recovery_hint="return NativeResult.success() or NativeResult.failure()",
            )
            p.log.error(str(violation))
            return _contract_failure(p.id, duration, violation)

        if native.error_kind == ErrorKind.TIMEOUT:
            p.log.warning(f"Timed out: {native.message}")
            return AdapterResult(
                adapter=p.id,
                status=AdapterStatus.TIMEOUT,
                duration_seconds=duration,
                error_kind=ErrorKind.TIMEOUT,
                error=native.message,
            )

        if native.error_kind not in (None, ErrorKind.PARTIAL):
            p.log.warning(f"Failed ({native.error_kind.value}): {native.message}")
            return AdapterResult(
                adapter=p.id,
                status=AdapterStatus.FAILED,
                duration_seconds=duration,
                error_kind=native.error_kind,
                error=native.message,
            )

        result = self._normalized(p, native, repository, canonicalizer)
        result.duration_seconds = duration
        if native.error_kind == ErrorKind.PARTIAL:
            p.log.warning(f"Partial result: {native.message}")
        elif self.cache is not None:
            self._store(key, native.payload, operation, repository, duration)
        return result

    def _run_adapter_thread(
        self, p: PlannedAdapter, context: AdapterContext, token: CancellationToken
    ) -> tuple[Any, Optional[BaseException], bool, bool]:
        """Run ``analyze`` in its own thread, bounded by ``token`` plus grace.

        Returns:
            (native result, exception raised by analyze, whether a bound fired
            while the adapter was running, whether the thread finished)
        """
        box: dict[str, Any] = {}

        def target() -> None:
            try:
                box["result"] = p.adapter.analyze(context, p.options)
            except Exception as e:
                box["error"] = e

        thread = threading.Thread(target=target, name=f"codeatlas-{p.id}", daemon=True)
        thread.start()
        while thread.is_alive() and not token.cancelled:
            thread.join(_POLL_SECONDS)
        interrupted = thread.is_alive()
        if interrupted:
            p.log.debug(f"Cancelled ({token.reason}), waiting for grace window")
            thread.join(self.config.grace_seconds)
        finished = not thread.is_alive()
        return box.get("result"), box.get("error"), interrupted, finished

    def _normalized(
        self,
        p: PlannedAdapter,
        native: NativeResult,
        repository: Repository,
        canonicalizer: PathCanonicalizer,
    ) -> AdapterResult:
        out = p.normalizer.normalize(native.payload, p.id, repository, canonicalizer)
        return AdapterResult(
            adapter=p.id,
            status=AdapterStatus.OK,
            findings=out.findings,
            metrics=out.metrics,
            error_kind=native.error_kind,
            error=native.message,
            dropped=out.dropped,
            invariant_violations=out.invariant_violations,
            targets_analyzed=native.targets_analyzed,
            targets_failed=native.targets_failed,
        )

    def _store(
        self, key: str, payload: Any, operation: str, repository: Repository, duration: float
    ) -> None:
        assert self.cache is not None
        try:
            size = len(json.dumps(payload, default=str))
        except (TypeError, ValueError) as e:
            logger.debug(f"Not caching {operation} payload: {e}")
            return
        if self.cache.should_cache(operation, size, repository.total_size, duration):
            self.cache.set(key, payload, operation=operation, path=repository.root)


def _run_id(repository: Repository, fingerprint: Any, options_hash: str, seed: int) -> str:
    material = json.dumps(
        [repository.root, repository.commit, fingerprint, options_hash, seed], default=str
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:16]


def _safe_name(adapter_id: str) -> str:
    return "".join(c if c.isalnum() or c in "-_" else "_" for c in adapter_id)


def _contract_failure(adapter_id: str, duration: float, violation: AdapterContractError) -> AdapterResult:
    return AdapterResult(
        adapter=adapter_id,
        status=AdapterStatus.FAILED,
        duration_seconds=duration,
        error_kind=ErrorKind.CONTRACT_VIOLATION,
        error=violation.message,
    )
