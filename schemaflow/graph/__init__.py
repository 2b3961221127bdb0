"""
Graph module for SchemaFlow - the shared diagram data model.

This module provides:
- DiagramGraph and its parts (GraphNode, Field, GraphEdge, GraphMetadata)
- Content fingerprinting used for change detection
- Structural validation of content before it is persisted

Invariants:
    - Edges never reference missing nodes when built through the model
    - Fingerprints are independent of node/edge insertion order
"""

from .fingerprint import canonical_json, fingerprint
from .model import (
    DiagramGraph,
    EngineKind,
    Field,
    GraphEdge,
    GraphIntegrityError,
    GraphMetadata,
    GraphNode,
    NodeKind,
    Position,
    new_id,
)
from .validation import DENYLISTED_KEYS, validate_content

__all__ = [
    "DiagramGraph",
    "EngineKind",
    "Field",
    "GraphEdge",
    "GraphIntegrityError",
    "GraphMetadata",
    "GraphNode",
    "NodeKind",
    "Position",
    "new_id",
    "canonical_json",
    "fingerprint",
    "DENYLISTED_KEYS",
    "validate_content",
]
