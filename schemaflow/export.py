"""
Export collaborator contract.

Script generation (DDL, Mongoose/JSON schema, ...) lives outside the core.
The core hands an exporter the finalized graph and the engine kind and
returns whatever text it produces.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from .graph.model import DiagramGraph, EngineKind


class ScriptExporter(ABC):
    """Turns a diagram graph into script text for one target engine."""

    @abstractmethod
    def export(self, graph: DiagramGraph, engine_kind: EngineKind) -> str:
        """Render the graph as script text."""
