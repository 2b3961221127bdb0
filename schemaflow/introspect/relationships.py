"""
Relationship inference from naming conventions.

A field whose name ends in a reference suffix (``userId``, ``user_id``,
``userID``) is taken to point at the node labelled with the stripped,
lowercased base name or a simple plural of it (``user``, ``users``).
This is a heuristic: misses are expected, and false positives are edges
the user can delete in the editor.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Optional

from ..graph.model import DiagramGraph, GraphEdge, GraphNode, new_id

logger = logging.getLogger(__name__)

IDENTITY_FIELD = "_id"

# Longest first: "user_id" must lose "_id", not just "id"
REFERENCE_SUFFIXES = ("_id", "Id", "ID")


def reference_base(field_name: str) -> Optional[str]:
    """Lowercased base name of a reference-like field, or None."""
    if field_name == IDENTITY_FIELD:
        return None
    for suffix in REFERENCE_SUFFIXES:
        if field_name.endswith(suffix):
            base = field_name[: -len(suffix)].rstrip("_")
            return base.lower() or None
    return None


def candidate_labels(base: str) -> list[str]:
    """The base name and its simple plural forms."""
    candidates = [base, f"{base}s", f"{base}es"]
    if base.endswith("y") and len(base) > 1:
        candidates.append(f"{base[:-1]}ies")
    return candidates


def infer_relationships(
    graph: DiagramGraph,
    sources: Optional[Iterable[GraphNode]] = None,
) -> list[GraphEdge]:
    """Add inferred edges to the graph.

    Args:
        graph: Graph to extend in place
        sources: Nodes whose fields are inspected (default: all nodes)

    Returns:
        The edges that were added
    """
    by_label: dict[str, GraphNode] = {}
    for node in graph.nodes:
        by_label.setdefault(node.label.lower(), node)

    added: list[GraphEdge] = []
    for source in list(sources) if sources is not None else graph.nodes:
        for field in source.fields:
            base = reference_base(field.name)
            if base is None:
                continue

            target = next(
                (by_label[label] for label in candidate_labels(base) if label in by_label),
                None,
            )
            if target is None:
                continue
            if target.id == source.id and field.is_primary_key:
                continue

            field.is_foreign_key = True
            if graph.has_edge(source.id, target.id):
                continue
            added.append(graph.add_edge(GraphEdge(id=new_id(), source=source.id, target=target.id)))
            logger.debug(
                f"Inferred relationship {source.label}.{field.name} -> {target.label}"
            )

    return added
