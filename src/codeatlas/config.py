"""Configuration loading and management for codeatlas.

Configuration sources are merged in priority order (lowest to highest):
    1. Defaults (defined in AtlasConfig)
    2. Global config (~/.codeatlas.toml)
    3. Project config (./codeatlas.toml)
    4. Explicit config file
    5. Environment variables (CODEATLAS_* prefix, plus TEMP_DIR, CACHE_DIR
       and CACHE_ENABLED)
    6. Keyword overrides (typically CLI flags)

Example:
    >>> config = load_config(concurrency=2)
    >>> config.effective_concurrency
    2
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal, Optional, get_type_hints

from .exceptions import ConfigurationError, InvalidConfigError

Verbosity = Literal["quiet", "normal", "verbose"]
Specialization = Literal["auto", "smart-contract", "none"]

MiB = 1024 * 1024

# Operations cached regardless of how long they took
DEFAULT_CACHE_ALLOW_LIST = (
    "ast-analysis",
    "formal-methods",
    "typescript-compile",
    "perf-analysis",
    "git-analysis",
)

# Base false-positive rates, keyed by "category/kind" or by category alone
DEFAULT_BASE_FP_RATES = {
    "security/reentrancy": 0.10,
    "security/integer_overflow": 0.05,
    "security/integer_underflow": 0.05,
    "security/unchecked_external_call": 0.20,
    "security/front_running": 0.30,
    "security/governance_attack": 0.40,
    "security": 0.20,
    "bug": 0.15,
    "performance": 0.25,
    "style": 0.30,
    "maintainability": 0.25,
    "complexity": 0.20,
    "duplication": 0.10,
    "documentation": 0.30,
    "type": 0.10,
    "other": 0.30,
}

# Reliability of the tool behind an adapter, in [0, 1]
DEFAULT_ADAPTER_RELIABILITY = {
    "certora": 0.95,
    "kontrol": 0.85,
    "smtchecker": 0.75,
    "sonarqube": 0.90,
    "semgrep": 0.85,
    "codeql": 0.90,
    "veracode": 0.88,
    "checkmarx": 0.87,
    "deepsource": 0.82,
    "codeclimate": 0.80,
    "codacy": 0.75,
}


@dataclass(frozen=True)
class AdapterConfig:
    """One configured adapter instance.

    Attributes:
        id: Instance id, unique within a run. Appears on every finding.
        type: Registry id of the adapter implementation (defaults to id)
        options: Adapter options, validated against the adapter's schema
        timeout_seconds: Per-adapter soft timeout (None = run default)
        enabled: Disabled adapters are ignored entirely
        mounts: Container path prefix -> repository-relative target ("" = root)
    """

    id: str
    type: Optional[str] = None
    options: dict[str, Any] = field(default_factory=dict)
    timeout_seconds: Optional[float] = None
    enabled: bool = True
    mounts: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("adapter id must not be empty")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError(f"adapter '{self.id}': timeout_seconds must be positive")

    @property
    def adapter_type(self) -> str:
        return self.type or self.id


@dataclass(frozen=True)
class CacheConfig:
    """Cache layer settings.

    Attributes:
        enabled: Master switch (CACHE_ENABLED)
        directory: Disk tier location (CACHE_DIR); None = <scratch root>/codeatlas-cache
        ttl_seconds: Default entry lifetime
        memory_capacity: Maximum entries held by the memory tier
        max_disk_entries: Advisory bound on disk entries
        persist: Write admitted entries to disk as well as memory
        max_payload_bytes: Larger payloads are never cached
        max_repo_bytes: Repositories larger than this are never cached
        min_execution_seconds: Non-allow-listed operations must take at least this long
        allow_list: Operations cached regardless of execution time
    """

    enabled: bool = True
    directory: Optional[str] = None
    ttl_seconds: int = 24 * 3600
    memory_capacity: int = 256
    max_disk_entries: int = 10_000
    persist: bool = True
    max_payload_bytes: int = 10 * MiB
    max_repo_bytes: int = 100 * MiB
    min_execution_seconds: float = 1.0
    allow_list: tuple[str, ...] = DEFAULT_CACHE_ALLOW_LIST

    def __post_init__(self) -> None:
        if self.ttl_seconds < 0:
            raise ValueError("cache ttl_seconds must be non-negative")
        if self.memory_capacity < 1:
            raise ValueError("cache memory_capacity must be at least 1")
        if self.max_payload_bytes < 0 or self.max_repo_bytes < 0:
            raise ValueError("cache size limits must be non-negative")


@dataclass(frozen=True)
class CorrelationConfig:
    """Correlation engine tuning.

    Attributes:
        location_tolerance: Maximum line distance between correlated findings
        rule_equivalences: Rule key (or "adapter:rule") -> canonical rule id
        base_fp_rates: Base false-positive rate by "category/kind" or category
        default_fp_rate: Rate used when neither key is configured
        adapter_reliability: Reliability by adapter id or tool name
        default_reliability: Reliability used for unknown adapters
        specialization: "smart-contract" forces risk aggregation, "none" disables
            it, "auto" enables it when a contract-verification adapter ran
    """

    location_tolerance: int = 5
    rule_equivalences: dict[str, str] = field(default_factory=dict)
    base_fp_rates: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_BASE_FP_RATES))
    default_fp_rate: float = 0.20
    adapter_reliability: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_ADAPTER_RELIABILITY)
    )
    default_reliability: float = 0.70
    specialization: Specialization = "auto"

    def __post_init__(self) -> None:
        if self.location_tolerance < 0:
            raise ValueError("location_tolerance must be non-negative")
        for key, rate in self.base_fp_rates.items():
            if not 0.0 <= rate <= 1.0:
                raise ValueError(f"base_fp_rates[{key}] must be between 0.0 and 1.0")
        for key, rel in self.adapter_reliability.items():
            if not 0.0 <= rel <= 1.0:
                raise ValueError(f"adapter_reliability[{key}] must be between 0.0 and 1.0")
        if not 0.0 <= self.default_reliability <= 1.0:
            raise ValueError("default_reliability must be between 0.0 and 1.0")
        if self.specialization not in ("auto", "smart-contract", "none"):
            raise ValueError("specialization must be one of auto, smart-contract, none")

    def reliability(self, adapter_id: str, adapter_type: Optional[str] = None) -> float:
        """Reliability for an adapter: instance id, then type, then tool-name prefix."""
        for key in (adapter_id, adapter_type):
            if key and key in self.adapter_reliability:
                return self.adapter_reliability[key]
        for key in (adapter_id, adapter_type):
            if key:
                tool = key.split("-", 1)[0]
                if tool in self.adapter_reliability:
                    return self.adapter_reliability[tool]
        return self.default_reliability


@dataclass(frozen=True)
class DeploymentConfig:
    """Thresholds for the smart-contract deployment recommendation."""

    safety_threshold: float = 0.85
    blocker_kinds: tuple[str, ...] = ("reentrancy", "integer_overflow", "unchecked_external_call")
    warning_kinds: tuple[str, ...] = ("front_running", "sandwich_attack", "governance_attack")
    required_verification_kinds: tuple[str, ...] = (
        "arithmetic_verification",
        "assertion_checking",
    )
    max_acceptable_risk: float = 1_000_000.0
    base_impact: float = 100_000.0
    trust_ranking: tuple[str, ...] = ("certora", "kontrol", "smtchecker")

    def __post_init__(self) -> None:
        if not 0.0 <= self.safety_threshold <= 1.0:
            raise ValueError("safety_threshold must be between 0.0 and 1.0")
        if self.max_acceptable_risk < 0:
            raise ValueError("max_acceptable_risk must be non-negative")
        if self.base_impact <= 0:
            raise ValueError("base_impact must be positive")


@dataclass(frozen=True)
class AtlasConfig:
    """Configuration for one orchestrator run.

    Attributes:
        adapters: Adapter instances in declaration order
        concurrency: Worker pool size (None = min(4, CPU count))
        adapter_timeout_seconds: Default per-adapter soft timeout
        run_deadline_seconds: Run-wide deadline
        grace_seconds: Time an adapter gets to yield after cancellation
        scratch_root: Root for per-adapter scratch directories (TEMP_DIR)
        incremental: Write the incremental marker after each run
        verbosity: Logging verbosity level
    """

    adapters: tuple[AdapterConfig, ...] = ()
    concurrency: Optional[int] = None
    adapter_timeout_seconds: float = 300.0
    run_deadline_seconds: float = 1800.0
    grace_seconds: float = 5.0
    scratch_root: Optional[str] = None
    incremental: bool = True
    verbosity: Verbosity = "normal"

    cache: CacheConfig = field(default_factory=CacheConfig)
    correlation: CorrelationConfig = field(default_factory=CorrelationConfig)
    deployment: DeploymentConfig = field(default_factory=DeploymentConfig)

    def __post_init__(self) -> None:
        if self.concurrency is not None and self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.adapter_timeout_seconds <= 0:
            raise ValueError("adapter_timeout_seconds must be positive")
        if self.run_deadline_seconds <= 0:
            raise ValueError("run_deadline_seconds must be positive")
        if self.grace_seconds < 0:
            raise ValueError("grace_seconds must be non-negative")
        seen: set[str] = set()
        for adapter in self.adapters:
            if adapter.id in seen:
                raise ValueError(f"duplicate adapter id: {adapter.id}")
            seen.add(adapter.id)

    @property
    def effective_concurrency(self) -> int:
        if self.concurrency is not None:
            return self.concurrency
        return min(4, os.cpu_count() or 1)

    @property
    def scratch_path(self) -> Path:
        return Path(self.scratch_root or tempfile.gettempdir())

    @property
    def cache_path(self) -> Path:
        if self.cache.directory:
            return Path(self.cache.directory)
        return self.scratch_path / "codeatlas-cache"

    @property
    def active_adapters(self) -> list[AdapterConfig]:
        return [a for a in self.adapters if a.enabled]


_SECTIONS = {
    "cache": CacheConfig,
    "correlation": CorrelationConfig,
    "deployment": DeploymentConfig,
}


def load_config(config_file: Optional[Path] = None, **overrides: Any) -> AtlasConfig:
    """Load configuration with auto-discovery and merging.

    Args:
        config_file: Optional explicit config file path
        **overrides: Direct overrides (typically from CLI flags). Section
            values may be given as dicts or as section dataclasses.

    Returns:
        Validated AtlasConfig instance

    Raises:
        ConfigurationError: If a config file is invalid or missing, or a
            value fails validation
    """
    merged: dict[str, Any] = {}

    global_config = Path.home() / ".codeatlas.toml"
    if global_config.exists():
        _merge(merged, _load_toml_checked(global_config, "global config"))

    project_config = Path.cwd() / "codeatlas.toml"
    if project_config.exists():
        _merge(merged, _load_toml_checked(project_config, "project config"))

    if config_file is not None:
        if not Path(config_file).exists():
            raise ConfigurationError(f"Config file not found: {config_file}")
        _merge(merged, _load_toml_checked(Path(config_file), "config file"))

    _merge(merged, _load_env_vars())

    if "verbose" in overrides:
        if overrides.pop("verbose"):
            overrides["verbosity"] = "verbose"
    if "quiet" in overrides:
        if overrides.pop("quiet"):
            overrides["verbosity"] = "quiet"
    _merge(merged, overrides)

    return build_config(merged)


def build_config(data: dict[str, Any]) -> AtlasConfig:
    """Build a validated AtlasConfig from a plain (TOML-shaped) dict."""
    data = dict(data)
    try:
        for name, cls in _SECTIONS.items():
            section = data.pop(name, None)
            if section is None or isinstance(section, cls):
                if section is not None:
                    data[name] = section
                continue
            if not isinstance(section, dict):
                raise InvalidConfigError(name, section, "expected a table")
            data[name] = cls(**_coerce_tuples(cls, section))

        adapters = data.pop("adapters", None)
        if adapters is not None:
            data["adapters"] = tuple(_build_adapter(entry) for entry in adapters)

        return AtlasConfig(**data)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def _build_adapter(entry: Any) -> AdapterConfig:
    if isinstance(entry, AdapterConfig):
        return entry
    if isinstance(entry, str):
        return AdapterConfig(id=entry)
    if not isinstance(entry, dict):
        raise InvalidConfigError("adapters", entry, "expected a table or an adapter id")
    return AdapterConfig(**entry)


def _coerce_tuples(cls: type, section: dict[str, Any]) -> dict[str, Any]:
    """TOML arrays arrive as lists; tuple-typed fields keep frozen semantics."""
    hints = get_type_hints(cls)
    result = dict(section)
    for f in fields(cls):
        if f.name in result and isinstance(result[f.name], list):
            if getattr(hints.get(f.name), "__origin__", None) is tuple:
                result[f.name] = tuple(result[f.name])
    return result


def _merge(target: dict[str, Any], source: dict[str, Any]) -> None:
    """Merge source into target; section tables merge key by key."""
    for key, value in source.items():
        if key in _SECTIONS and isinstance(value, dict) and isinstance(target.get(key), dict):
            target[key] = {**target[key], **value}
        else:
            target[key] = value


def _load_toml_checked(path: Path, label: str) -> dict[str, Any]:
    try:
        return _load_toml_file(path)
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(f"Invalid {label} '{path}': {e}")


def _load_env_vars() -> dict[str, Any]:
    """Load configuration from the environment.

    Supported environment variables:
        CODEATLAS_<FIELD>: any scalar AtlasConfig field, e.g.
            CODEATLAS_CONCURRENCY, CODEATLAS_GRACE_SECONDS
        TEMP_DIR: scratch root
        CACHE_DIR: cache root
        CACHE_ENABLED: bool (true/false/1/0)

    Returns:
        Dict shaped like the TOML config for any variables found.
    """
    type_hints = get_type_hints(AtlasConfig)
    result: dict[str, Any] = {}

    for field_name in AtlasConfig.__dataclass_fields__:
        if field_name in _SECTIONS or field_name == "adapters":
            continue
        env_key = f"CODEATLAS_{field_name.upper()}"
        env_value = os.environ.get(env_key)
        if env_value is None:
            continue
        type_hint = type_hints.get(field_name)
        if type_hint is None:
            continue
        try:
            parsed = _parse_env_value(env_value, type_hint)
            if parsed is not None:
                result[field_name] = parsed
        except ValueError as e:
            raise ConfigurationError(f"Invalid {env_key}: {e}")

    temp_dir = os.environ.get("TEMP_DIR")
    if temp_dir:
        result["scratch_root"] = temp_dir

    cache: dict[str, Any] = {}
    cache_dir = os.environ.get("CACHE_DIR")
    if cache_dir:
        cache["directory"] = cache_dir
    cache_enabled = os.environ.get("CACHE_ENABLED")
    if cache_enabled is not None:
        try:
            cache["enabled"] = _parse_env_value(cache_enabled, bool)
        except ValueError as e:
            raise ConfigurationError(f"Invalid CACHE_ENABLED: {e}")
    if cache:
        result["cache"] = cache

    return result


def _parse_env_value(value: str, type_hint: Any) -> Any:
    """Parse environment variable string to the correct type.

    Raises:
        ValueError: If value can't be parsed to expected type
    """
    origin = getattr(type_hint, "__origin__", None)
    args = getattr(type_hint, "__args__", ())
    if type(None) in args:
        non_none_types = [t for t in args if t is not type(None)]
        if non_none_types:
            type_hint = non_none_types[0]
            origin = getattr(type_hint, "__origin__", None)

    if origin in (list, tuple, dict) or type_hint in (list, tuple, dict):
        return None

    if type_hint is bool:
        lower = value.lower()
        if lower in ("true", "1", "yes", "on"):
            return True
        elif lower in ("false", "0", "no", "off"):
            return False
        else:
            raise ValueError(f"expected true/false, got '{value}'")

    if type_hint is int:
        return int(value)

    if type_hint is float:
        return float(value)

    if type_hint is str or origin is Literal:
        return value

    return None


def _load_toml_file(path: Path) -> dict:
    """Load TOML file and return parsed dict.

    Raises:
        ConfigurationError: If tomllib/tomli not available
        Exception: If TOML parsing fails
    """
    try:
        # Python 3.11+ has tomllib in stdlib
        import tomllib
    except ModuleNotFoundError:
        try:
            import tomli as tomllib  # type: ignore
        except ImportError:
            raise ConfigurationError(
                "TOML support requires Python 3.11+ or 'tomli' package. "
                "Install with: pip install tomli"
            )

    with open(path, "rb") as f:
        return tomllib.load(f)
