"""
codeatlas - Code Intelligence Aggregation

Runs heterogeneous code analyzers behind one adapter contract, normalizes
their output into a single finding model, correlates findings across tools
with consensus severity and false-positive estimates, and projects the
result onto a city-like spatial layout.
"""

__version__ = "0.1.0"

from .adapters import AdapterRegistry, default_registry
from .config import AtlasConfig, load_config
from .correlation import CorrelatedModel, CorrelationEngine
from .orchestrator import CollectionOrchestrator
from .projection import CityProjection, project, unproject
from .report import build_document, render_document
from .repository import discover_repository

__all__ = [
    "AdapterRegistry",
    "AtlasConfig",
    "CityProjection",
    "CollectionOrchestrator",
    "CorrelatedModel",
    "CorrelationEngine",
    "build_document",
    "default_registry",
    "discover_repository",
    "load_config",
    "project",
    "render_document",
    "unproject",
]
