"""Shared test fixtures for codeatlas tests."""

import time

import pytest

from codeatlas.adapters import (
    AdapterContext,
    AdapterDescription,
    AdapterRegistry,
    AvailabilityReport,
    CancellationToken,
    NativeResult,
    OptionSpec,
)
from codeatlas.config import AdapterConfig, AtlasConfig, CacheConfig
from codeatlas.model import (
    AdapterResult,
    AdapterStatus,
    AnalysisBundle,
    AnalysisRun,
    Category,
    Confidence,
    ErrorKind,
    Finding,
    Location,
    Repository,
    Severity,
    SourceFile,
    Verification,
    make_finding_id,
)
from codeatlas.repository import categorize, detect_language


def pytest_addoption(parser):
    """Add --run-slow option for slow tests."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="run slow tests",
    )


def pytest_configure(config):
    """Configure slow marker."""
    config.addinivalue_line("markers", "slow: mark test as slow to run")


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --run-slow is given."""
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="need --run-slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


REPO_FILES = {
    "src/a.c": "int main(void) { return 0; }\n" * 10,
    "src/app.py": "def handler(request):\n    return request\n" * 20,
    "src/util.py": "def helper():\n    pass\n",
    "contracts/Vault.sol": "contract Vault {}\n" * 200,
    "README.md": "# demo\n",
}


@pytest.fixture
def repo_root(tmp_path):
    """A small working tree on disk."""
    root = tmp_path / "repo"
    for rel, content in REPO_FILES.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root.resolve()


@pytest.fixture
def repository(repo_root):
    """Repository over ``repo_root`` pretending to sit at a git commit."""
    files = {
        rel: SourceFile(
            path=rel,
            language=detect_language(rel),
            category=categorize(rel),
            size=(repo_root / rel).stat().st_size,
        )
        for rel in sorted(REPO_FILES)
    }
    return Repository(
        root=str(repo_root),
        commit="c" * 40,
        branch="main",
        vcs="git",
        vcs_dir=str(repo_root / ".git"),
        files=files,
    )


class FakeAdapter:
    """Scriptable adapter.

    ``behaviour`` keys: available, probe_raises, sleep, cooperative, raises,
    returns, native, payload. ``calls`` counts analyze() invocations.
    """

    def __init__(self, description, behaviour, options, root=None):
        self.description = description
        self.behaviour = behaviour
        self.options = options
        self.root = root

    def describe(self):
        return self.description

    def capabilities(self):
        return self.description.capabilities()

    def probe(self):
        if self.behaviour.get("probe_raises"):
            raise RuntimeError("probe exploded")
        if not self.behaviour.get("available", True):
            return AvailabilityReport.unavailable("tool missing")
        return AvailabilityReport.ok()

    def analyze(self, context, options):
        b = self.behaviour
        b["calls"] = b.get("calls", 0) + 1
        b["last_context"] = context
        b["last_options"] = options
        if "sleep" in b:
            if b.get("cooperative", True):
                if context.cancel.wait(b["sleep"]):
                    return NativeResult.failure(ErrorKind.TIMEOUT, "cancelled")
            else:
                time.sleep(b["sleep"])
        if "raises" in b:
            raise b["raises"]
        if "returns" in b:
            return b["returns"]
        if "native" in b:
            return b["native"]
        return NativeResult.success(b.get("payload", {"findings": []}))


@pytest.fixture
def make_registry():
    """Factory: ``make_registry(a={...behaviour}, b={...})`` -> (registry, behaviours)."""

    def build(**behaviours):
        registry = AdapterRegistry()
        for adapter_id, behaviour in behaviours.items():
            description = AdapterDescription(
                id=adapter_id,
                name=adapter_id,
                kind=behaviour.get("kind", "static-analysis"),
                normalizer=behaviour.get("normalizer", "generic"),
                options=(OptionSpec("level", "str", default="default"),),
                max_execution_seconds=behaviour.get("max_seconds"),
                cache_operation=behaviour.get("cache_operation"),
            )
            registry.register(
                description,
                lambda options, root, d=description, b=behaviour: FakeAdapter(d, b, options, root),
            )
        return registry, behaviours

    return build


@pytest.fixture
def make_config(tmp_path):
    """Factory for an AtlasConfig with scratch space under ``tmp_path``."""

    def build(*adapter_ids, **overrides):
        adapters = tuple(
            a if isinstance(a, AdapterConfig) else AdapterConfig(id=a) for a in adapter_ids
        )
        values = dict(
            adapters=adapters,
            scratch_root=str(tmp_path / "scratch"),
            grace_seconds=0.5,
            cache=CacheConfig(directory=str(tmp_path / "cache")),
        )
        values.update(overrides)
        return AtlasConfig(**values)

    return build


def generic_finding(rule, file, line, severity="medium", category="bug", kind=None, **extra):
    """One record of the generic payload shape."""
    record = {
        "rule": rule,
        "message": f"{rule} at {file}:{line}",
        "file": file,
        "line": line,
        "severity": severity,
        "category": category,
        "kind": kind,
    }
    record.update(extra)
    return record


@pytest.fixture
def finding_record():
    return generic_finding


@pytest.fixture
def make_finding():
    """Factory for normalized Findings, with ids derived the same way normalizers do."""
    counter = {"n": 0}

    def build(
        adapter,
        file="contracts/Vault.sol",
        line=0,
        severity=Severity.MEDIUM,
        category=Category.SECURITY,
        kind=None,
        rule="rule",
        verification=None,
        confidence=Confidence.HIGH,
        effort=0,
        related=(),
    ):
        counter["n"] += 1
        if isinstance(verification, tuple):
            verification = Verification(*verification)
        return Finding(
            id=make_finding_id(adapter, rule, file, line, "", counter["n"]),
            adapter=adapter,
            category=category,
            kind=kind,
            severity=severity,
            confidence=confidence,
            location=Location(file=file, line=line),
            rule_key=rule,
            message="",
            effort_minutes=effort,
            verification=verification,
            related_files=tuple(related),
        )

    return build


@pytest.fixture
def make_context(tmp_path):
    """Factory for an AdapterContext with a private scratch directory."""

    def build(repository, adapter_id="adapter", cancel=None, last_analyzed_commit=None):
        scratch = tmp_path / "scratch" / adapter_id
        scratch.mkdir(parents=True, exist_ok=True)
        return AdapterContext(
            adapter_id=adapter_id,
            repository=repository,
            scratch_dir=scratch,
            cancel=cancel or CancellationToken(),
            last_analyzed_commit=last_analyzed_commit,
        )

    return build


@pytest.fixture
def make_bundle(repository):
    """Factory: ``make_bundle({"a": [findings], ...}, kinds={...}, types={...}, failed=[...])``.

    Adapters are declared in dict order; ids listed in ``failed`` get a
    FAILED result with no findings.
    """

    def build(findings_by_adapter, kinds=None, types=None, failed=()):
        adapters = list(findings_by_adapter) + [a for a in failed if a not in findings_by_adapter]
        results = [
            AdapterResult(adapter=a, status=AdapterStatus.OK, findings=list(findings_by_adapter[a]))
            for a in findings_by_adapter
        ]
        results += [
            AdapterResult(adapter=a, status=AdapterStatus.FAILED, error_kind=ErrorKind.EXTERNAL_ERROR)
            for a in failed
        ]
        kinds = kinds or {}
        return AnalysisBundle(
            run=AnalysisRun(id="run-1", started_at=0.0, adapters=adapters, options_hash="0" * 64),
            repository=repository,
            results=results,
            adapter_kinds={a: kinds.get(a, "static-analysis") for a in adapters},
            adapter_types={a: (types or {}).get(a, a) for a in adapters},
        )

    return build
