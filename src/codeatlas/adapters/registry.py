"""Adapter registry.

A mapping from stable adapter id to a constructor value, populated
explicitly when this module is imported. There is no runtime discovery.

A constructor value is any callable ``(options, root) -> Adapter`` where
``options`` has already been validated against the adapter's schema.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Optional

from ..exceptions import UnknownAdapterError
from .git_history import DESCRIPTION as GIT_HISTORY
from .git_history import GitHistoryAdapter
from .protocol import Adapter, AdapterDescription
from .report_file import ALL_REPORT_DESCRIPTIONS, ReportFileAdapter
from .semgrep import DESCRIPTION as SEMGREP
from .semgrep import SemgrepAdapter

AdapterFactory = Callable[[dict[str, Any], Optional[str]], Adapter]


@dataclass(frozen=True)
class RegistryEntry:
    description: AdapterDescription
    factory: AdapterFactory


class AdapterRegistry:
    """Known adapters, in registration order."""

    def __init__(self) -> None:
        self._entries: dict[str, RegistryEntry] = {}

    def register(self, description: AdapterDescription, factory: AdapterFactory) -> None:
        if description.id in self._entries:
            raise ValueError(f"adapter '{description.id}' is already registered")
        self._entries[description.id] = RegistryEntry(description, factory)

    def get(self, adapter_id: str) -> RegistryEntry:
        """
        Raises:
            UnknownAdapterError: If no adapter is registered under ``adapter_id``
        """
        entry = self._entries.get(adapter_id)
        if entry is None:
            raise UnknownAdapterError(adapter_id, list(self._entries))
        return entry

    def describe(self, adapter_id: str) -> AdapterDescription:
        return self.get(adapter_id).description

    def create(self, adapter_id: str, options: dict[str, Any], root: Optional[str] = None) -> Adapter:
        return self.get(adapter_id).factory(options, root)

    def ids(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, adapter_id: str) -> bool:
        return adapter_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def default_registry() -> AdapterRegistry:
    """Registry holding every built-in adapter."""
    registry = AdapterRegistry()
    registry.register(GIT_HISTORY, GitHistoryAdapter)
    registry.register(SEMGREP, SemgrepAdapter)
    for description in ALL_REPORT_DESCRIPTIONS:
        registry.register(description, partial(ReportFileAdapter, description))
    return registry
