"""
Diagram graph model for SchemaFlow.

This module defines the canonical in-memory representation of a schema:
- Field: A column or document key inside a node
- GraphNode: A relational table or a document collection
- GraphEdge: A relationship between two nodes
- DiagramGraph: The root aggregate owning nodes, edges and metadata

The wire format (``to_dict``/``from_dict``) is the camelCase JSON shape the
diagram editor reads and writes::

    {
        "nodes": [{"id", "type", "position": {"x", "y"},
                   "data": {"label", "fields": [...]}}],
        "edges": [{"id", "source", "target", "sourceHandle"?, "targetHandle"?}],
        "metadata": {"dbType", "version"?}
    }

Invariants:
    - Node ids are unique within a graph, edge ids are unique within a graph
    - Field ids are unique within their owning node
    - add_edge() refuses endpoints that are not nodes of the graph
    - remove_node() removes every edge touching the node

How to change safely:
    - New wire keys must be optional in from_dict()
    - Never rename wire values of NodeKind or EngineKind; stored content uses them
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any, Iterator, Optional


class GraphIntegrityError(Exception):
    """Raised when a mutation would break graph invariants."""

    pass


def _describe(exc: Exception) -> str:
    if isinstance(exc, KeyError):
        return f"missing key {exc}"
    return str(exc)


def new_id() -> str:
    """Generate an identifier for nodes, fields and edges."""
    return str(uuid.uuid4())


class NodeKind(Enum):
    """Kind of a diagram node. Values are the editor's node type names."""

    RELATIONAL_TABLE = "mysqlTable"
    DOCUMENT_COLLECTION = "mongoCollection"


class EngineKind(Enum):
    """External database engines a project can model."""

    MYSQL = "MYSQL"
    POSTGRESQL = "POSTGRESQL"
    SQLITE = "SQLITE"
    MONGODB = "MONGODB"

    @property
    def is_document(self) -> bool:
        return self is EngineKind.MONGODB

    @property
    def node_kind(self) -> NodeKind:
        """Node kind produced when introspecting this engine."""
        if self.is_document:
            return NodeKind.DOCUMENT_COLLECTION
        return NodeKind.RELATIONAL_TABLE


@dataclass
class Field:
    """A column (relational) or key (document) of a node.

    Attributes:
        id: Identifier, unique within the owning node
        name: Column or key name
        type: Free-form type tag (e.g. "VARCHAR(255)", "ObjectId")
        is_primary_key: Part of the primary key
        is_foreign_key: References another node
        is_nullable: May hold null
        is_unique: Covered by a single-column unique constraint
        default_value: Declared default, as text
    """

    id: str
    name: str
    type: str
    is_primary_key: bool = False
    is_foreign_key: bool = False
    is_nullable: bool = True
    is_unique: bool = False
    default_value: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "isPrimaryKey": self.is_primary_key,
            "isForeignKey": self.is_foreign_key,
            "isNullable": self.is_nullable,
            "isUnique": self.is_unique,
        }
        if self.default_value is not None:
            result["defaultValue"] = self.default_value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Field:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            type=data.get("type", ""),
            is_primary_key=bool(data.get("isPrimaryKey", False)),
            is_foreign_key=bool(data.get("isForeignKey", False)),
            is_nullable=bool(data.get("isNullable", True)),
            is_unique=bool(data.get("isUnique", False)),
            default_value=data.get("defaultValue"),
        )


@dataclass
class Position:
    """Canvas coordinates of a node."""

    x: float
    y: float


@dataclass
class GraphNode:
    """A table or collection on the diagram.

    Attributes:
        id: Identifier, unique within the graph
        kind: Relational table or document collection
        label: Table or collection name
        position: Canvas position
        fields: Ordered fields
    """

    id: str
    kind: NodeKind
    label: str
    position: Position
    fields: list[Field] = dataclass_field(default_factory=list)

    def add_field(self, field: Field) -> Field:
        """Append a field.

        Raises:
            GraphIntegrityError: If a field with the same id already exists
        """
        if any(existing.id == field.id for existing in self.fields):
            raise GraphIntegrityError(
                f"Field id '{field.id}' already exists on node '{self.label}'"
            )
        self.fields.append(field)
        return field

    def get_field(self, name: str) -> Optional[Field]:
        """Find a field by name."""
        for field in self.fields:
            if field.name == name:
                return field
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind.value,
            "position": {"x": self.position.x, "y": self.position.y},
            "data": {
                "label": self.label,
                "fields": [f.to_dict() for f in self.fields],
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GraphNode:
        position = data.get("position") or {}
        node_data = data.get("data") or {}
        return cls(
            id=data["id"],
            kind=NodeKind(data.get("type", NodeKind.RELATIONAL_TABLE.value)),
            label=node_data.get("label", ""),
            position=Position(x=position.get("x", 0), y=position.get("y", 0)),
            fields=[Field.from_dict(f) for f in node_data.get("fields", [])],
        )


@dataclass
class GraphEdge:
    """A relationship from ``source`` to ``target``.

    Edges do not own their endpoints; the graph keeps them consistent.
    """

    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "target": self.target,
        }
        if self.source_handle is not None:
            result["sourceHandle"] = self.source_handle
        if self.target_handle is not None:
            result["targetHandle"] = self.target_handle
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GraphEdge:
        return cls(
            id=data["id"],
            source=data["source"],
            target=data["target"],
            source_handle=data.get("sourceHandle"),
            target_handle=data.get("targetHandle"),
        )


@dataclass
class GraphMetadata:
    """Graph-level metadata."""

    engine_kind: EngineKind
    schema_version: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"dbType": self.engine_kind.value}
        if self.schema_version is not None:
            result["version"] = self.schema_version
        return result


class DiagramGraph:
    """Root aggregate: nodes, edges and metadata of one diagram.

    Nodes and edges keep insertion order for serialization, but identity is
    by id only; the fingerprint ignores their order.

    Example:
        >>> graph = DiagramGraph(GraphMetadata(EngineKind.MONGODB))
        >>> users = graph.add_node(GraphNode(new_id(), NodeKind.DOCUMENT_COLLECTION,
        ...                                  "users", Position(100, 100)))
        >>> graph.remove_node(users.id)
    """

    def __init__(self, metadata: GraphMetadata) -> None:
        self.metadata = metadata
        self._nodes: dict[str, GraphNode] = {}
        self._edges: dict[str, GraphEdge] = {}

    @classmethod
    def empty(cls, engine_kind: EngineKind) -> DiagramGraph:
        return cls(GraphMetadata(engine_kind=engine_kind))

    @property
    def nodes(self) -> list[GraphNode]:
        return list(self._nodes.values())

    @property
    def edges(self) -> list[GraphEdge]:
        return list(self._edges.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[GraphNode]:
        return iter(self._nodes.values())

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        return self._nodes.get(node_id)

    def find_node_by_label(self, label: str) -> Optional[GraphNode]:
        """Find a node by label, case-insensitively."""
        wanted = label.lower()
        for node in self._nodes.values():
            if node.label.lower() == wanted:
                return node
        return None

    def add_node(self, node: GraphNode) -> GraphNode:
        """Add a node.

        Raises:
            GraphIntegrityError: If the id is already used
        """
        if node.id in self._nodes:
            raise GraphIntegrityError(f"Node id '{node.id}' already exists")
        self._nodes[node.id] = node
        return node

    def add_edge(self, edge: GraphEdge) -> GraphEdge:
        """Add an edge between two existing nodes.

        Raises:
            GraphIntegrityError: If the id is used or an endpoint is missing
        """
        if edge.id in self._edges:
            raise GraphIntegrityError(f"Edge id '{edge.id}' already exists")
        for endpoint in (edge.source, edge.target):
            if endpoint not in self._nodes:
                raise GraphIntegrityError(
                    f"Edge '{edge.id}' references unknown node '{endpoint}'"
                )
        self._edges[edge.id] = edge
        return edge

    def connect(self, source_id: str, target_id: str) -> GraphEdge:
        """Create an edge with a fresh id."""
        return self.add_edge(GraphEdge(id=new_id(), source=source_id, target=target_id))

    def has_edge(self, source_id: str, target_id: str) -> bool:
        return any(
            e.source == source_id and e.target == target_id for e in self._edges.values()
        )

    def remove_edge(self, edge_id: str) -> bool:
        """Remove an edge. Returns False if it did not exist."""
        return self._edges.pop(edge_id, None) is not None

    def remove_node(self, node_id: str) -> list[GraphEdge]:
        """Remove a node together with every edge touching it.

        Returns:
            The edges removed along with the node

        Raises:
            KeyError: If the node does not exist
        """
        if node_id not in self._nodes:
            raise KeyError(node_id)
        del self._nodes[node_id]

        removed = [e for e in self._edges.values() if node_id in (e.source, e.target)]
        for edge in removed:
            del self._edges[edge.id]
        return removed

    def dangling_edges(self) -> list[GraphEdge]:
        """Edges whose endpoints are missing (possible in editor-saved content)."""
        return [
            e
            for e in self._edges.values()
            if e.source not in self._nodes or e.target not in self._nodes
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self._nodes.values()],
            "edges": [e.to_dict() for e in self._edges.values()],
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        default_engine: EngineKind = EngineKind.MYSQL,
    ) -> DiagramGraph:
        """Load a graph from its wire format.

        Stored content is taken as-is: edges whose endpoints are missing are
        kept so that a load/save cycle does not silently rewrite history.
        Use dangling_edges() to find them.

        Raises:
            GraphIntegrityError: If an element is malformed or an id repeats;
                the message names the offending element
        """
        try:
            metadata = data.get("metadata") or {}
            engine_value = metadata.get("dbType")
            engine_kind = EngineKind(engine_value) if engine_value else default_engine
            graph = cls(GraphMetadata(engine_kind=engine_kind, schema_version=metadata.get("version")))
        except (AttributeError, TypeError, ValueError) as exc:
            raise GraphIntegrityError(f"Invalid metadata: {_describe(exc)}") from exc

        for index, node_data in enumerate(data.get("nodes") or []):
            try:
                node = GraphNode.from_dict(node_data)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                raise GraphIntegrityError(f"Invalid node at nodes[{index}]: {_describe(exc)}") from exc
            graph.add_node(node)

        for index, edge_data in enumerate(data.get("edges") or []):
            try:
                edge = GraphEdge.from_dict(edge_data)
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                raise GraphIntegrityError(f"Invalid edge at edges[{index}]: {_describe(exc)}") from exc
            if edge.id in graph._edges:
                raise GraphIntegrityError(f"Edge id '{edge.id}' already exists")
            graph._edges[edge.id] = edge
        return graph

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DiagramGraph):
            return NotImplemented
        return (
            self.metadata == other.metadata
            and self._nodes == other._nodes
            and self._edges == other._edges
        )

    def __repr__(self) -> str:
        return (
            f"DiagramGraph(engine={self.metadata.engine_kind.value}, "
            f"nodes={len(self._nodes)}, edges={len(self._edges)})"
        )
