"""Error taxonomy with error codes and recovery hints.

Error Code Convention:
    CA1xx - Configuration errors
    CA2xx - Adapter errors
    CA3xx - Normalization errors
    CA4xx - Cache and state errors
    CA5xx - Correlation errors
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Structured error codes for observability and debugging."""

    # Configuration errors (CA1xx)
    CA100 = "CA100"  # Required option missing or malformed
    CA101 = "CA101"  # Unknown adapter id

    # Adapter errors (CA2xx)
    CA200 = "CA200"  # Probe reported unavailable
    CA201 = "CA201"  # Adapter exceeded a time bound
    CA202 = "CA202"  # External tool failed
    CA203 = "CA203"  # Partial result
    CA204 = "CA204"  # Exception escaped the adapter boundary

    # Normalization errors (CA3xx)
    CA300 = "CA300"  # Native record failed shape validation
    CA301 = "CA301"  # Location outside the repository

    # Cache and state errors (CA4xx)
    CA400 = "CA400"  # Cache entry failed integrity check
    CA401 = "CA401"  # State marker unreadable

    # Correlation errors (CA5xx)
    CA500 = "CA500"  # Correlation invariant broken


@dataclass
class AtlasError(Exception):
    """Base exception with structured context for logging.

    Attributes:
        message: Human-readable error description
        code: Structured error code for categorization
        context: Additional context (adapter id, path, etc.)
        recoverable: Whether the error can be recovered from
        recovery_hint: Suggested fix for the user
    """

    message: str
    code: ErrorCode
    context: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    recovery_hint: str | None = None

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def to_json(self) -> dict[str, Any]:
        """Structured logging format."""
        return {
            "error_code": self.code.value,
            "message": self.message,
            "context": self.context,
            "recoverable": self.recoverable,
            "recovery_hint": self.recovery_hint,
        }


class CorruptEntryError(AtlasError):
    """A cache entry or state file failed its integrity check (CA4xx)."""

    pass


class InvariantViolation(AtlasError):
    """A native record or normalized finding failed schema validation (CA3xx)."""

    pass


class AdapterContractError(AtlasError):
    """An adapter let an exception cross its boundary (CA204)."""

    pass
