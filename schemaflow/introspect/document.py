"""
Document-database introspection (MongoDB).

Structure is inferred by sampling, not declared:
1. List the collections (sorted, ``system.*`` skipped)
2. Sample at most one document per collection
3. Always add the ``_id`` identity field (primary key, not nullable)
4. Tag every other key with a coarse type; all of them are nullable
5. Place nodes on a grid
6. Infer relationships from ``...Id`` naming

Known limitations:
    - Keys missing from the sampled document are not discovered
    - Divergent document shapes in one collection are not reconciled
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Optional

from pymongo import MongoClient
from pymongo.errors import ConfigurationError, InvalidName, PyMongoError

from ..config import IntrospectionConfig
from ..errors import ConnectionError, IntrospectionError
from ..graph.model import DiagramGraph, Field, GraphNode, NodeKind, new_id
from .base import Introspector
from .descriptor import ConnectionDescriptor
from .layout import GridLayout
from .relationships import IDENTITY_FIELD, infer_relationships
from .resources import CancelToken, open_tunnel, release
from .types import InferredType, infer_type

logger = logging.getLogger(__name__)


class DocumentIntrospector(Introspector):
    """Introspects a MongoDB database by sampling one document per collection.

    Example:
        >>> introspector = DocumentIntrospector()
        >>> graph = introspector.introspect(
        ...     ConnectionDescriptor(engine_kind="MONGODB", uri="mongodb://localhost/shop")
        ... )
    """

    def __init__(
        self,
        config: Optional[IntrospectionConfig] = None,
        client_factory: Callable[..., Any] = MongoClient,
    ) -> None:
        super().__init__(config)
        self._client_factory = client_factory

    def introspect(
        self,
        descriptor: ConnectionDescriptor,
        cancel: Optional[CancelToken] = None,
    ) -> DiagramGraph:
        cancel = cancel or CancelToken()
        engine = descriptor.engine_kind.value
        logger.info(
            "Introspecting document database",
            extra={"engine_kind": engine, "address": descriptor.address},
        )

        with open_tunnel(descriptor, self.timeout_seconds) as target:
            client = self._create_client(target)
            try:
                self._ping(client, target)
                cancel.raise_if_cancelled(engine, "connect")
                graph = self._read(client, target, cancel)
            finally:
                release("mongo client", client.close)

        logger.info(
            "Introspection finished",
            extra={"engine_kind": engine, "nodes": len(graph), "edges": len(graph.edges)},
        )
        return graph

    def _create_client(self, descriptor: ConnectionDescriptor) -> Any:
        timeout_ms = self.config.connect_timeout_ms
        try:
            if descriptor.uri is not None:
                return self._client_factory(
                    descriptor.uri,
                    serverSelectionTimeoutMS=timeout_ms,
                    connectTimeoutMS=timeout_ms,
                )
            return self._client_factory(
                host=descriptor.host,
                port=descriptor.effective_port,
                username=descriptor.username,
                password=descriptor.password.get_secret_value() if descriptor.password else None,
                serverSelectionTimeoutMS=timeout_ms,
                connectTimeoutMS=timeout_ms,
            )
        except (ConfigurationError, ValueError) as exc:
            raise ConnectionError(
                f"Invalid MongoDB connection settings: {exc}",
                engine_kind=descriptor.engine_kind.value,
                address=descriptor.address,
            ) from exc

    def _ping(self, client: Any, descriptor: ConnectionDescriptor) -> None:
        # MongoClient connects lazily; force a round trip so auth and
        # reachability problems surface as connection errors.
        try:
            client.admin.command("ping")
        except PyMongoError as exc:
            raise ConnectionError(
                f"Could not connect to MongoDB at {descriptor.address}: {exc}",
                engine_kind=descriptor.engine_kind.value,
                address=descriptor.address,
            ) from exc

    def _read(
        self,
        client: Any,
        descriptor: ConnectionDescriptor,
        cancel: CancelToken,
    ) -> DiagramGraph:
        engine = descriptor.engine_kind.value
        try:
            if descriptor.database:
                db = client.get_database(descriptor.database)
            else:
                db = client.get_default_database()
        except ConfigurationError as exc:
            raise IntrospectionError(
                "No database selected: set databaseName or include it in the uri",
                engine_kind=engine,
                stage="select_database",
            ) from exc
        except InvalidName as exc:
            raise IntrospectionError(
                f"Invalid database name: {exc}",
                engine_kind=engine,
                stage="select_database",
            ) from exc

        try:
            names = sorted(
                name for name in db.list_collection_names() if not name.startswith("system.")
            )
        except PyMongoError as exc:
            raise IntrospectionError(
                f"Could not list collections: {exc}", engine_kind=engine, stage="list_collections"
            ) from exc

        graph = DiagramGraph.empty(descriptor.engine_kind)
        layout = GridLayout(self.config.layout)

        for name in names:
            cancel.raise_if_cancelled(engine, "sample")
            try:
                sample = db[name].find_one({})
            except PyMongoError as exc:
                raise IntrospectionError(
                    f"Could not sample collection '{name}': {exc}",
                    engine_kind=engine,
                    stage="sample",
                ) from exc

            if sample is not None and not isinstance(sample, Mapping):
                raise IntrospectionError(
                    f"Unexpected document shape in '{name}': {type(sample).__name__}",
                    engine_kind=engine,
                    stage="sample",
                )

            graph.add_node(
                GraphNode(
                    id=new_id(),
                    kind=NodeKind.DOCUMENT_COLLECTION,
                    label=name,
                    position=layout.next_position(),
                    fields=sample_fields(sample),
                )
            )

        if self.config.infer_relationships:
            infer_relationships(graph)

        return graph


def sample_fields(sample: Optional[Mapping[str, Any]]) -> list[Field]:
    """Fields of a collection inferred from one sampled document."""
    identity_type = InferredType.OBJECT_ID
    if sample is not None and sample.get(IDENTITY_FIELD) is not None:
        identity_type = infer_type(sample[IDENTITY_FIELD])

    fields = [
        Field(
            id=new_id(),
            name=IDENTITY_FIELD,
            type=identity_type.value,
            is_primary_key=True,
            is_nullable=False,
        )
    ]
    if sample is None:
        return fields

    for key, value in sample.items():
        if key == IDENTITY_FIELD:
            continue
        fields.append(
            Field(
                id=new_id(),
                name=str(key),
                type=infer_type(value).value,
                is_nullable=True,
            )
        )
    return fields
