"""Errors that end a codeatlas command.

A run survives adapter, normalization and cache failures (see ``taxonomy``).
What it cannot survive derives from CodeAtlasError: the CLI prints the error
and exits with the class's ``exit_code``.
"""

from typing import Any, Dict, Optional


class CodeAtlasError(Exception):
    """Base exception for errors that abort the current command.

    Attributes:
        message: What went wrong
        details: Flat context, stringified; None values are left out
        exit_code: Process exit status for this error class
    """

    exit_code = 1

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = {k: str(v) for k, v in (details or {}).items() if v is not None}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} ({context})"
