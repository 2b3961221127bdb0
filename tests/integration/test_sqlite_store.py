"""
Integration tests for the SQLite project store.

Tests cover:
- Project CRUD and listing
- Transaction commit/rollback
- Conditional content update
- Append-only snapshot history
"""

import os
import sqlite3
import tempfile

import pytest

from schemaflow.graph import EngineKind
from schemaflow.store import Project, SqliteProjectStore, VersionSnapshot


def _project(project_id="p1", owner="alice", name="shop", created_at=1000):
    return Project(
        id=project_id,
        name=name,
        engine_kind=EngineKind.MYSQL,
        content={"nodes": [], "edges": []},
        version=0,
        owner_id=owner,
        created_at=created_at,
        updated_at=created_at,
    )


def _snapshot(snapshot_id, project_id="p1", created_at=1000, label="v"):
    return VersionSnapshot(
        id=snapshot_id,
        project_id=project_id,
        content={"nodes": [{"id": label}]},
        description="Auto-save (Smart)",
        created_at=created_at,
    )


class TestSqliteProjectStore:
    """Tests for SqliteProjectStore."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def db_path(self, data_dir):
        return os.path.join(data_dir, "nested", "schemaflow.db")

    @pytest.fixture
    def store(self, db_path):
        return SqliteProjectStore(db_path, wal_mode=False)

    @pytest.mark.asyncio
    async def test_create_and_get(self, store):
        """Projects round-trip through the store."""
        await store.initialize()
        await store.create_project(_project())

        fetched = await store.get_project("p1")

        assert fetched == _project()
        assert await store.get_project("missing") is None

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, store):
        await store.initialize()
        await store.initialize()

    @pytest.mark.asyncio
    async def test_list_projects_filters_owner(self, store):
        await store.initialize()
        await store.create_project(_project("p1", created_at=1))
        await store.create_project(_project("p2", created_at=2))
        await store.create_project(_project("p3", owner="bob"))

        page = await store.list_projects("alice", page=1, limit=10)

        assert [p.id for p in page.items] == ["p2", "p1"]
        assert page.total == 2
        assert page.total_pages == 1

    @pytest.mark.asyncio
    async def test_list_projects_rejects_unknown_sort(self, store):
        await store.initialize()

        with pytest.raises(ValueError):
            await store.list_projects("alice", 1, 10, sort_by="owner_id; DROP TABLE projects")
        with pytest.raises(ValueError):
            await store.list_projects("alice", 1, 10, sort_order="sideways")

    @pytest.mark.asyncio
    async def test_rename(self, store):
        await store.initialize()
        await store.create_project(_project())

        renamed = await store.rename_project("p1", "store", updated_at=5000)

        assert renamed.name == "store"
        assert renamed.updated_at == 5000
        assert renamed.version == 0
        assert await store.rename_project("missing", "x", 1) is None

    @pytest.mark.asyncio
    async def test_conditional_update(self, store):
        """update_content only applies at the expected base version."""
        await store.initialize()
        await store.create_project(_project())

        async with store.transaction() as tx:
            assert await tx.update_content("p1", {"nodes": [1]}, base_version=0, updated_at=2000)
            assert not await tx.update_content("p1", {"nodes": [2]}, base_version=0, updated_at=3000)

        project = await store.get_project("p1")
        assert project.version == 1
        assert project.content == {"nodes": [1]}
        assert project.updated_at == 2000

    @pytest.mark.asyncio
    async def test_transaction_rolls_back(self, store):
        """Nothing done in a failed transaction is persisted."""
        await store.initialize()
        await store.create_project(_project())

        with pytest.raises(RuntimeError):
            async with store.transaction() as tx:
                await tx.insert_snapshot(_snapshot("s1"))
                await tx.update_content("p1", {"nodes": [1]}, base_version=0, updated_at=2000)
                raise RuntimeError("boom")

        assert (await store.get_project("p1")).version == 0
        assert await store.get_snapshot("s1") is None

    @pytest.mark.asyncio
    async def test_snapshots_most_recent_first(self, store):
        await store.initialize()
        await store.create_project(_project())
        async with store.transaction() as tx:
            await tx.insert_snapshot(_snapshot("s1", created_at=1000))
            await tx.insert_snapshot(_snapshot("s2", created_at=3000))
            # Same timestamp: insertion order breaks the tie
            await tx.insert_snapshot(_snapshot("s3", created_at=3000))

        async with store.transaction() as tx:
            latest = await tx.latest_snapshot("p1")
        page = await store.list_snapshots("p1", page=1, limit=2)

        assert latest.id == "s3"
        assert [s.id for s in page.items] == ["s3", "s2"]
        assert page.total == 3
        assert page.meta()["totalPages"] == 2

    @pytest.mark.asyncio
    async def test_snapshots_are_append_only(self, store, db_path):
        await store.initialize()
        await store.create_project(_project())
        async with store.transaction() as tx:
            await tx.insert_snapshot(_snapshot("s1"))

        conn = sqlite3.connect(db_path)
        try:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute("UPDATE project_versions SET description = 'x'")
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute("DELETE FROM project_versions")
        finally:
            conn.close()

        assert (await store.get_snapshot("s1")).description == "Auto-save (Smart)"

    @pytest.mark.asyncio
    async def test_snapshot_requires_project(self, store):
        await store.initialize()

        with pytest.raises(sqlite3.IntegrityError):
            async with store.transaction() as tx:
                await tx.insert_snapshot(_snapshot("s1", project_id="missing"))
