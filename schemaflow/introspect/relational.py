"""
Relational introspection (MySQL, PostgreSQL, SQLite) via the SQLAlchemy
inspector.

The catalog is authoritative: primary keys, unique constraints and foreign
keys come from declared metadata, not from naming. The naming heuristic is
only applied to tables that declare no foreign keys at all, which is what
schemas without enforced constraints (e.g. MyISAM) look like.

Invariants:
    - SQLite files are opened read-only
    - No connection pool outlives the session (NullPool + dispose)
    - Foreign keys to tables outside the introspected schema produce no edge
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Optional

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import ArgumentError, CompileError, NoSuchModuleError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from ..config import IntrospectionConfig
from ..errors import ConnectionError, IntrospectionError
from ..graph.model import DiagramGraph, EngineKind, Field, GraphNode, NodeKind, new_id
from .base import Introspector
from .descriptor import ConnectionDescriptor
from .layout import GridLayout
from .relationships import infer_relationships
from .resources import CancelToken, open_tunnel, release

logger = logging.getLogger(__name__)

DRIVERS = {
    EngineKind.MYSQL: "mysql+pymysql",
    EngineKind.POSTGRESQL: "postgresql+psycopg2",
    EngineKind.SQLITE: "sqlite",
}


def build_url(descriptor: ConnectionDescriptor) -> URL:
    """SQLAlchemy URL for a host/database descriptor."""
    if descriptor.engine_kind is EngineKind.SQLITE:
        return URL.create(
            "sqlite",
            database=f"file:{descriptor.database}",
            query={"mode": "ro", "uri": "true"},
        )
    return URL.create(
        DRIVERS[descriptor.engine_kind],
        username=descriptor.username,
        password=descriptor.password.get_secret_value() if descriptor.password else None,
        host=descriptor.host,
        port=descriptor.effective_port,
        database=descriptor.database,
    )


def connect_args(engine_kind: EngineKind, timeout_seconds: float) -> dict[str, Any]:
    """Driver-specific connect timeout arguments."""
    if engine_kind is EngineKind.SQLITE:
        return {"timeout": timeout_seconds}
    # pymysql and psycopg2 both take whole seconds
    return {"connect_timeout": max(1, int(timeout_seconds))}


class RelationalIntrospector(Introspector):
    """Introspects a relational database through the SQLAlchemy inspector."""

    def __init__(
        self,
        config: Optional[IntrospectionConfig] = None,
        engine_factory: Callable[..., Engine] = create_engine,
    ) -> None:
        super().__init__(config)
        self._engine_factory = engine_factory

    def introspect(
        self,
        descriptor: ConnectionDescriptor,
        cancel: Optional[CancelToken] = None,
    ) -> DiagramGraph:
        cancel = cancel or CancelToken()
        engine_kind = descriptor.engine_kind.value
        logger.info(
            "Introspecting relational database",
            extra={"engine_kind": engine_kind, "address": descriptor.address},
        )

        with open_tunnel(descriptor, self.timeout_seconds) as target:
            engine = self._create_engine(target)
            try:
                connection = self._connect(engine, target)
                try:
                    cancel.raise_if_cancelled(engine_kind, "connect")
                    graph = self._read(connection, target, cancel)
                finally:
                    release("database connection", connection.close)
            finally:
                release("database engine", engine.dispose)

        logger.info(
            "Introspection finished",
            extra={"engine_kind": engine_kind, "nodes": len(graph), "edges": len(graph.edges)},
        )
        return graph

    def _create_engine(self, descriptor: ConnectionDescriptor) -> Engine:
        url: Any = descriptor.uri if descriptor.uri is not None else build_url(descriptor)
        try:
            return self._engine_factory(
                url,
                poolclass=NullPool,
                connect_args=connect_args(descriptor.engine_kind, self.timeout_seconds),
            )
        except (ArgumentError, NoSuchModuleError) as exc:
            raise ConnectionError(
                f"Invalid connection settings: {exc}",
                engine_kind=descriptor.engine_kind.value,
                address=descriptor.address,
            ) from exc

    def _connect(self, engine: Engine, descriptor: ConnectionDescriptor) -> Connection:
        try:
            return engine.connect()
        except SQLAlchemyError as exc:
            raise ConnectionError(
                f"Could not connect to {descriptor.engine_kind.value} at {descriptor.address}: {exc}",
                engine_kind=descriptor.engine_kind.value,
                address=descriptor.address,
            ) from exc

    def _read(
        self,
        connection: Connection,
        descriptor: ConnectionDescriptor,
        cancel: CancelToken,
    ) -> DiagramGraph:
        engine_kind = descriptor.engine_kind.value
        try:
            inspector = inspect(connection)
            table_names = sorted(inspector.get_table_names())
        except SQLAlchemyError as exc:
            raise IntrospectionError(
                f"Could not list tables: {exc}", engine_kind=engine_kind, stage="list_tables"
            ) from exc

        graph = DiagramGraph.empty(descriptor.engine_kind)
        layout = GridLayout(self.config.layout)
        nodes: dict[str, GraphNode] = {}
        foreign_keys: dict[str, list[dict[str, Any]]] = {}

        for table in table_names:
            cancel.raise_if_cancelled(engine_kind, "catalog")
            try:
                fields = self._table_fields(inspector, table, connection)
                foreign_keys[table] = inspector.get_foreign_keys(table)
            except SQLAlchemyError as exc:
                raise IntrospectionError(
                    f"Could not read catalog of table '{table}': {exc}",
                    engine_kind=engine_kind,
                    stage="catalog",
                ) from exc

            nodes[table] = graph.add_node(
                GraphNode(
                    id=new_id(),
                    kind=NodeKind.RELATIONAL_TABLE,
                    label=table,
                    position=layout.next_position(),
                    fields=fields,
                )
            )

        default_schema = inspector.default_schema_name
        undeclared: list[GraphNode] = []
        for table, node in nodes.items():
            fks = foreign_keys[table]
            if not fks:
                undeclared.append(node)
                continue
            for fk in fks:
                self._add_declared_edge(graph, node, nodes, fk, default_schema)

        if self.config.infer_relationships and undeclared:
            infer_relationships(graph, sources=undeclared)

        return graph

    def _table_fields(self, inspector: Any, table: str, connection: Connection) -> list[Field]:
        primary_keys = set(inspector.get_pk_constraint(table).get("constrained_columns") or [])

        unique: set[str] = set()
        for constraint in inspector.get_unique_constraints(table):
            columns = constraint.get("column_names") or []
            if len(columns) == 1:
                unique.add(columns[0])
        for index in inspector.get_indexes(table):
            columns = index.get("column_names") or []
            if index.get("unique") and len(columns) == 1:
                unique.add(columns[0])

        fields = []
        for column in inspector.get_columns(table):
            name = column["name"]
            is_primary_key = name in primary_keys
            default = column.get("default")
            fields.append(
                Field(
                    id=new_id(),
                    name=name,
                    type=column_type(column["type"], connection.dialect),
                    is_primary_key=is_primary_key,
                    is_nullable=bool(column.get("nullable", True)) and not is_primary_key,
                    is_unique=name in unique,
                    default_value=str(default) if default is not None else None,
                )
            )
        return fields

    def _add_declared_edge(
        self,
        graph: DiagramGraph,
        source: GraphNode,
        nodes: dict[str, GraphNode],
        fk: dict[str, Any],
        default_schema: Optional[str],
    ) -> None:
        referred_schema = fk.get("referred_schema")
        target = nodes.get(fk.get("referred_table", ""))
        if target is None or (referred_schema and referred_schema != default_schema):
            logger.warning(
                f"Skipping foreign key {source.label} -> "
                f"{referred_schema + '.' if referred_schema else ''}{fk.get('referred_table')}: "
                "referred table is outside the introspected schema"
            )
            return

        for column in fk.get("constrained_columns") or []:
            field = source.get_field(column)
            if field is not None:
                field.is_foreign_key = True
        if not graph.has_edge(source.id, target.id):
            graph.connect(source.id, target.id)


def column_type(sql_type: Any, dialect: Any) -> str:
    """Type name as the database's dialect spells it."""
    try:
        return str(sql_type.compile(dialect=dialect))
    except CompileError:
        return type(sql_type).__name__
