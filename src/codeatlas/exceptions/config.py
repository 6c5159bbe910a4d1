"""Configuration exceptions: settings, adapter options, paths.

Every error in this module aborts a run before any adapter executes.
"""

from pathlib import Path
from typing import Any

from .base import CodeAtlasError


class ConfigurationError(CodeAtlasError):
    """Base class for configuration-related errors."""

    exit_code = 2


class InvalidConfigError(ConfigurationError):
    """Raised when configuration values are invalid."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            f"Invalid configuration for {key}: {value}",
            details={"key": key, "value": str(value), "reason": reason},
        )
        self.key = key
        self.value = value
        self.reason = reason


class InvalidPathError(ConfigurationError):
    """Raised when a provided path is invalid."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Invalid path: {path}", details={"path": str(path), "reason": reason})
        self.path = path
        self.reason = reason


class UnknownAdapterError(ConfigurationError):
    """Raised when the configuration names an adapter that is not registered."""

    def __init__(self, adapter_id: str, known: list[str]):
        super().__init__(
            f"Unknown adapter: {adapter_id}",
            details={"adapter": adapter_id, "known": ", ".join(sorted(known))},
        )
        self.adapter_id = adapter_id


class UnknownOptionError(ConfigurationError):
    """Raised when an adapter receives an option its schema does not declare."""

    def __init__(self, adapter_id: str, option: str, accepted: list[str]):
        super().__init__(
            f"Adapter '{adapter_id}' does not accept option '{option}'",
            details={"adapter": adapter_id, "option": option, "accepted": ", ".join(accepted)},
        )
        self.adapter_id = adapter_id
        self.option = option


class MissingOptionError(ConfigurationError):
    """Raised when a required adapter option is absent or has the wrong type."""

    def __init__(self, adapter_id: str, option: str, reason: str = "required option missing"):
        super().__init__(
            f"Adapter '{adapter_id}' option '{option}': {reason}",
            details={"adapter": adapter_id, "option": option, "reason": reason},
        )
        self.adapter_id = adapter_id
        self.option = option
        self.reason = reason
