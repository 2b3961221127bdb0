"""
Integration tests for relational introspection against a temporary SQLite
database.

Tests cover:
- Columns, keys, uniqueness and defaults from the catalog
- Declared foreign keys and the naming fallback
- Read-only access and resource release
"""

import os
import sqlite3
import tempfile

import pytest
from sqlalchemy import create_engine

from schemaflow.config import IntrospectionConfig
from schemaflow.errors import ConnectionError, IntrospectionCancelledError
from schemaflow.graph import EngineKind, NodeKind
from schemaflow.introspect import CancelToken, ConnectionDescriptor, RelationalIntrospector, introspect
from schemaflow.introspect.relational import build_url

SCHEMA = """
    CREATE TABLE users (
        id INTEGER PRIMARY KEY,
        email VARCHAR(255) NOT NULL,
        name TEXT DEFAULT 'anon',
        UNIQUE (email)
    );
    CREATE TABLE orders (
        id INTEGER PRIMARY KEY,
        user_id INTEGER NOT NULL REFERENCES users(id),
        total NUMERIC
    );
    CREATE TABLE order_items (
        id INTEGER PRIMARY KEY,
        order_id INTEGER REFERENCES orders(id),
        product_id INTEGER
    );
    CREATE TABLE products (
        id INTEGER PRIMARY KEY,
        sku TEXT
    );
    CREATE UNIQUE INDEX ix_products_sku ON products (sku);
    CREATE TABLE audit_log (
        id INTEGER PRIMARY KEY,
        userId INTEGER,
        productId INTEGER
    );
    CREATE TABLE invoices (
        id INTEGER PRIMARY KEY,
        customer_id INTEGER REFERENCES customers(id)
    );
"""


class RecordingEngineFactory:
    """create_engine wrapper that records engines and their disposal."""

    def __init__(self):
        self.calls = []
        self.disposed = 0

    def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        engine = create_engine(url, **kwargs)
        original = engine.dispose

        def dispose(*args, **dispose_kwargs):
            self.disposed += 1
            return original(*args, **dispose_kwargs)

        engine.dispose = dispose
        return engine


class TestRelationalIntrospector:
    """Tests for RelationalIntrospector."""

    @pytest.fixture
    def db_path(self):
        """Create a populated SQLite database file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "shop.db")
            conn = sqlite3.connect(path)
            conn.executescript(SCHEMA)
            conn.close()
            yield path

    @pytest.fixture
    def descriptor(self, db_path):
        return ConnectionDescriptor(engine_kind=EngineKind.SQLITE, database=db_path)

    def test_tables_and_columns(self, descriptor):
        graph = RelationalIntrospector().introspect(descriptor)

        assert graph.metadata.engine_kind is EngineKind.SQLITE
        assert [n.label for n in graph.nodes] == [
            "audit_log",
            "invoices",
            "order_items",
            "orders",
            "products",
            "users",
        ]
        assert all(n.kind is NodeKind.RELATIONAL_TABLE for n in graph.nodes)

        users = graph.find_node_by_label("users")
        columns = {f.name: f for f in users.fields}
        assert [f.name for f in users.fields] == ["id", "email", "name"]
        assert columns["id"].is_primary_key and not columns["id"].is_nullable
        assert columns["id"].type == "INTEGER"
        assert columns["email"].type == "VARCHAR(255)"
        assert columns["email"].is_unique and not columns["email"].is_nullable
        assert columns["name"].is_nullable and not columns["name"].is_unique
        assert columns["name"].default_value == "'anon'"

        products = graph.find_node_by_label("products")
        assert products.get_field("sku").is_unique

    def test_declared_and_inferred_edges(self, descriptor):
        graph = RelationalIntrospector().introspect(descriptor)
        node_ids = {n.id: n.label for n in graph.nodes}

        edges = sorted((node_ids[e.source], node_ids[e.target]) for e in graph.edges)

        assert edges == [
            ("audit_log", "products"),
            ("audit_log", "users"),
            ("order_items", "orders"),
            ("orders", "users"),
        ]
        assert graph.dangling_edges() == []

        orders = graph.find_node_by_label("orders")
        assert orders.get_field("user_id").is_foreign_key
        # Tables with declared keys are not second-guessed by naming
        order_items = graph.find_node_by_label("order_items")
        assert not order_items.get_field("product_id").is_foreign_key
        audit_log = graph.find_node_by_label("audit_log")
        assert audit_log.get_field("userId").is_foreign_key

    def test_foreign_key_outside_schema_skipped(self, descriptor):
        graph = RelationalIntrospector().introspect(descriptor)

        invoices = graph.find_node_by_label("invoices")

        assert not any(e.source == invoices.id for e in graph.edges)

    def test_inference_disabled(self, descriptor):
        config = IntrospectionConfig(infer_relationships=False)

        graph = RelationalIntrospector(config).introspect(descriptor)

        assert len(graph.edges) == 2

    def test_engine_released(self, descriptor):
        factory = RecordingEngineFactory()
        config = IntrospectionConfig(connect_timeout_ms=3000)

        RelationalIntrospector(config, engine_factory=factory).introspect(descriptor)

        assert factory.disposed == 1
        _, kwargs = factory.calls[0]
        assert kwargs["connect_args"] == {"timeout": 3.0}

    def test_cancelled_before_reading(self, descriptor):
        factory = RecordingEngineFactory()
        cancel = CancelToken()
        cancel.cancel()

        with pytest.raises(IntrospectionCancelledError):
            RelationalIntrospector(engine_factory=factory).introspect(descriptor, cancel)

        assert factory.disposed == 1

    def test_missing_file_is_connection_error(self, db_path):
        """SQLite files are opened read-only and never created."""
        missing = os.path.join(os.path.dirname(db_path), "missing.db")
        descriptor = ConnectionDescriptor(engine_kind=EngineKind.SQLITE, database=missing)

        with pytest.raises(ConnectionError):
            RelationalIntrospector().introspect(descriptor)

        assert not os.path.exists(missing)

    def test_dispatch_by_engine(self, descriptor):
        graph = introspect(descriptor)

        assert len(graph) == 6


class TestBuildUrl:
    """Tests for build_url()."""

    def test_mysql_url(self):
        descriptor = ConnectionDescriptor.model_validate(
            {
                "engineKind": "MYSQL",
                "host": "db.internal",
                "username": "app",
                "password": "secret",
                "databaseName": "shop",
            }
        )

        url = build_url(descriptor)

        assert url.drivername == "mysql+pymysql"
        assert url.port == 3306
        assert url.password == "secret"
        assert descriptor.address == "db.internal:3306"

    def test_postgres_url(self):
        descriptor = ConnectionDescriptor(engine_kind=EngineKind.POSTGRESQL, database="shop", port=6432)

        url = build_url(descriptor)

        assert url.drivername == "postgresql+psycopg2"
        assert url.port == 6432

    def test_sqlite_url_is_read_only(self):
        descriptor = ConnectionDescriptor(engine_kind=EngineKind.SQLITE, database="/data/shop.db")

        url = build_url(descriptor)

        assert url.database == "file:/data/shop.db"
        assert url.query == {"mode": "ro", "uri": "true"}

    def test_descriptor_requires_database(self):
        with pytest.raises(ValueError):
            ConnectionDescriptor(engine_kind=EngineKind.MYSQL)

    def test_sqlite_cannot_tunnel(self):
        with pytest.raises(ValueError):
            ConnectionDescriptor.model_validate(
                {
                    "engineKind": "SQLITE",
                    "databaseName": "/data/shop.db",
                    "ssh": {"host": "bastion", "username": "ops"},
                }
            )
