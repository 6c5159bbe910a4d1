"""Exception hierarchy for codeatlas."""

from .base import CodeAtlasError
from .config import (
    ConfigurationError,
    InvalidConfigError,
    InvalidPathError,
    MissingOptionError,
    UnknownAdapterError,
    UnknownOptionError,
)
from .taxonomy import (
    AdapterContractError,
    AtlasError,
    CorruptEntryError,
    ErrorCode,
    InvariantViolation,
)

__all__ = [
    "CodeAtlasError",
    "ConfigurationError",
    "InvalidConfigError",
    "InvalidPathError",
    "MissingOptionError",
    "UnknownAdapterError",
    "UnknownOptionError",
    "AtlasError",
    "ErrorCode",
    "CorruptEntryError",
    "InvariantViolation",
    "AdapterContractError",
]
