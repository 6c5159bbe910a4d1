"""Adapter contract.

An adapter fronts one external analyzer. The core talks to it through four
operations and never sees the tool's native types; the normalizer named in
the adapter's description is the membrane.

Adapter Protocol:
    - describe(): static description, including the enumerated options schema
    - probe(): availability self-check, never raises
    - analyze(context, options): does the work, returns a NativeResult;
      errors are returned as results, never raised
    - capabilities(): finding kinds and metrics the adapter populates
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Protocol

from ..exceptions import MissingOptionError, UnknownOptionError
from ..model import ErrorKind, Repository
from .cancellation import CancellationToken

if TYPE_CHECKING:
    from ..cache import CacheLayer
    from ..paths import PathCanonicalizer

# Option value types an options schema may declare
_OPTION_TYPES = {"str": str, "int": int, "float": float, "bool": bool, "list": list, "dict": dict}


@dataclass(frozen=True)
class OptionSpec:
    """One accepted adapter option."""

    name: str
    type: str = "str"
    required: bool = False
    default: Any = None
    help: str = ""

    def check(self, adapter_id: str, value: Any) -> Any:
        """Validate ``value`` against the declared type.

        Raises:
            MissingOptionError: If the value has the wrong type
        """
        expected = _OPTION_TYPES[self.type]
        if expected is float and isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        if expected is not bool and isinstance(value, bool):
            raise MissingOptionError(adapter_id, self.name, f"expected {self.type}, got bool")
        if not isinstance(value, expected):
            raise MissingOptionError(
                adapter_id, self.name, f"expected {self.type}, got {type(value).__name__}"
            )
        return value


@dataclass(frozen=True)
class AdapterDescription:
    """Static description of an adapter implementation.

    Attributes:
        id: Stable registry id
        name: Human-readable name of the fronted tool
        kind: Adapter family, e.g. "static-analysis", "vcs", "contract-verification"
        languages: Languages the tool understands ("*" = any)
        inputs: What the adapter reads (e.g. "repository", "report-file")
        finding_kinds: Categories or category/kind keys it can report
        normalizer: Normalizer family that converts its native payload
        options: Enumerated options schema
        max_execution_seconds: Self-declared execution budget (None = unbounded)
        cache_operation: Operation name used for cache admission
    """

    id: str
    name: str
    kind: str
    normalizer: str
    languages: tuple[str, ...] = ("*",)
    inputs: tuple[str, ...] = ("repository",)
    finding_kinds: tuple[str, ...] = ()
    metric_keys: tuple[str, ...] = ()
    options: tuple[OptionSpec, ...] = ()
    max_execution_seconds: Optional[float] = None
    cache_operation: Optional[str] = None

    @property
    def option_names(self) -> list[str]:
        return [o.name for o in self.options]

    def resolve_options(self, adapter_id: str, given: dict[str, Any]) -> dict[str, Any]:
        """Validate configured options and fill defaults.

        Raises:
            UnknownOptionError: An option is not in the schema
            MissingOptionError: A required option is absent or mistyped
        """
        specs = {o.name: o for o in self.options}
        for name in given:
            if name not in specs:
                raise UnknownOptionError(adapter_id, name, self.option_names)

        resolved: dict[str, Any] = {}
        for spec in self.options:
            if spec.name in given:
                resolved[spec.name] = spec.check(adapter_id, given[spec.name])
            elif spec.required:
                raise MissingOptionError(adapter_id, spec.name)
            else:
                resolved[spec.name] = spec.default
        return resolved

    def capabilities(self) -> dict[str, list[str]]:
        return {"findings": list(self.finding_kinds), "metrics": list(self.metric_keys)}


@dataclass(frozen=True)
class AvailabilityReport:
    """Result of an adapter's probe."""

    available: bool
    reason: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **details: Any) -> AvailabilityReport:
        return cls(available=True, details=details)

    @classmethod
    def unavailable(cls, reason: str, **details: Any) -> AvailabilityReport:
        return cls(available=False, reason=reason, details=details)


@dataclass
class NativeResult:
    """What ``analyze`` returns: the tool's payload plus an explicit outcome.

    ``error_kind`` None means success. PARTIAL carries a payload together with
    target counts.
    """

    payload: Any = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    targets_analyzed: int = 0
    targets_failed: int = 0

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def success(cls, payload: Any, targets_analyzed: int = 0) -> NativeResult:
        return cls(payload=payload, targets_analyzed=targets_analyzed)

    @classmethod
    def partial(
        cls, payload: Any, analyzed: int, failed: int, message: Optional[str] = None
    ) -> NativeResult:
        return cls(
            payload=payload,
            error_kind=ErrorKind.PARTIAL,
            message=message or f"{failed} of {analyzed + failed} targets failed",
            targets_analyzed=analyzed,
            targets_failed=failed,
        )

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> NativeResult:
        return cls(error_kind=kind, message=message)


@dataclass
class AdapterContext:
    """Everything an adapter may touch during ``analyze``.

    The repository is read-only. ``scratch_dir`` is private to the adapter
    for this run. ``last_analyzed_commit`` comes from the incremental marker
    and may be ignored.
    """

    adapter_id: str
    repository: Repository
    scratch_dir: Path
    cancel: CancellationToken
    canonicalizer: Optional[PathCanonicalizer] = None
    cache: Optional[CacheLayer] = None
    last_analyzed_commit: Optional[str] = None

    @property
    def root(self) -> Path:
        return Path(self.repository.root)


class Adapter(Protocol):
    """Integration unit fronting one external analyzer."""

    def describe(self) -> AdapterDescription:
        """Static description; identical for every instance of the adapter."""
        ...

    def probe(self) -> AvailabilityReport:
        """Check binaries, credentials and services. Must never raise."""
        ...

    def analyze(self, context: AdapterContext, options: dict[str, Any]) -> NativeResult:
        """Do the work. Must honour ``context.cancel``; must not raise."""
        ...

    def capabilities(self) -> dict[str, list[str]]:
        """Finding kinds and metric keys this adapter populates."""
        ...
