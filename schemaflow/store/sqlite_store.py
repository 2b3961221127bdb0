"""
SQLite project store for SchemaFlow.

This module manages the SQLite database that stores:
- Projects with their live diagram content and version counter
- Append-only version snapshots of prior content

Invariants:
    - All writes run inside explicit transactions (BEGIN IMMEDIATE)
    - Content updates are conditional on the version read in the same
      transaction, so two writers from the same base cannot both commit
    - project_versions rows cannot be updated or deleted (enforced by triggers)

How to change safely:
    - Schema migrations must be backward compatible
    - Keep BEGIN IMMEDIATE: a deferred transaction would let two writers read
      the same version before either takes the write lock

Table schema:
    projects:
        - id TEXT PRIMARY KEY (UUID)
        - name TEXT
        - engine_kind TEXT
        - description TEXT
        - content_json TEXT
        - version INTEGER (>= 0)
        - owner_id TEXT
        - team_id TEXT
        - created_at INTEGER (Unix ms)
        - updated_at INTEGER (Unix ms)

    project_versions:
        - id TEXT PRIMARY KEY (UUID)
        - project_id TEXT REFERENCES projects(id)
        - content_json TEXT
        - description TEXT
        - created_at INTEGER (Unix ms)
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import Any, Optional

from ..graph.model import EngineKind
from .base import (
    Page,
    Project,
    ProjectStore,
    ProjectSummary,
    StoreTransaction,
    VersionSnapshot,
)

logger = logging.getLogger(__name__)


def _row_to_project(row: sqlite3.Row) -> Project:
    return Project(
        id=row["id"],
        name=row["name"],
        engine_kind=EngineKind(row["engine_kind"]),
        content=json.loads(row["content_json"]),
        version=row["version"],
        owner_id=row["owner_id"],
        team_id=row["team_id"],
        description=row["description"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_summary(row: sqlite3.Row) -> ProjectSummary:
    return ProjectSummary(
        id=row["id"],
        name=row["name"],
        engine_kind=EngineKind(row["engine_kind"]),
        version=row["version"],
        owner_id=row["owner_id"],
        team_id=row["team_id"],
        description=row["description"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_snapshot(row: sqlite3.Row) -> VersionSnapshot:
    return VersionSnapshot(
        id=row["id"],
        project_id=row["project_id"],
        content=json.loads(row["content_json"]),
        description=row["description"],
        created_at=row["created_at"],
    )


_LATEST_SNAPSHOT_SQL = """
    SELECT * FROM project_versions
    WHERE project_id = ?
    ORDER BY created_at DESC, rowid DESC
    LIMIT 1
"""


class SqliteTransaction(StoreTransaction):
    """StoreTransaction bound to a connection with an open write transaction."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    async def get_project(self, project_id: str) -> Optional[Project]:
        row = self._conn.execute(
            "SELECT * FROM projects WHERE id = ?", (project_id,)
        ).fetchone()
        return _row_to_project(row) if row else None

    async def latest_snapshot(self, project_id: str) -> Optional[VersionSnapshot]:
        row = self._conn.execute(_LATEST_SNAPSHOT_SQL, (project_id,)).fetchone()
        return _row_to_snapshot(row) if row else None

    async def insert_snapshot(self, snapshot: VersionSnapshot) -> None:
        self._conn.execute(
            """
            INSERT INTO project_versions (id, project_id, content_json, description, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                snapshot.id,
                snapshot.project_id,
                json.dumps(snapshot.content),
                snapshot.description,
                snapshot.created_at,
            ),
        )

    async def update_content(
        self,
        project_id: str,
        content: dict[str, Any],
        base_version: int,
        updated_at: int,
    ) -> bool:
        cursor = self._conn.execute(
            """
            UPDATE projects
            SET content_json = ?, version = version + 1, updated_at = ?
            WHERE id = ? AND version = ?
            """,
            (json.dumps(content), updated_at, project_id, base_version),
        )
        return cursor.rowcount == 1


class SqliteProjectStore(ProjectStore):
    """SQLite-backed ProjectStore.

    Thread safety:
        Each operation opens its own connection. Writers are serialized by
        SQLite's write lock (BEGIN IMMEDIATE); readers proceed in WAL mode.

    Example:
        >>> store = SqliteProjectStore("/var/lib/schemaflow/schemaflow.db")
        >>> await store.initialize()
        >>> async with store.transaction() as tx:
        ...     project = await tx.get_project(project_id)
    """

    # SQLite schema version for migrations
    SCHEMA_VERSION = 1

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the project store.

        Args:
            db_path: SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection, closed on exit."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")

            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript("""
            -- Schema version tracking
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                engine_kind TEXT NOT NULL,
                description TEXT,
                content_json TEXT NOT NULL DEFAULT '{}',
                version INTEGER NOT NULL DEFAULT 0 CHECK (version >= 0),
                owner_id TEXT NOT NULL,
                team_id TEXT,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_projects_owner
                ON projects(owner_id, updated_at DESC);

            CREATE TABLE IF NOT EXISTS project_versions (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL REFERENCES projects(id),
                content_json TEXT NOT NULL,
                description TEXT NOT NULL,
                created_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_project_versions_recent
                ON project_versions(project_id, created_at DESC);

            -- History is append-only
            CREATE TRIGGER IF NOT EXISTS project_versions_no_update
                BEFORE UPDATE ON project_versions
            BEGIN
                SELECT RAISE(ABORT, 'project_versions is append-only');
            END;

            CREATE TRIGGER IF NOT EXISTS project_versions_no_delete
                BEFORE DELETE ON project_versions
            BEGIN
                SELECT RAISE(ABORT, 'project_versions is append-only');
            END;

            -- Record schema version
            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES (1, strftime('%s', 'now') * 1000);
        """)

    async def initialize(self) -> None:
        with self._get_connection() as conn:
            self._create_schema(conn)
        logger.info(f"Initialized project store: {self.db_path}")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreTransaction]:
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield SqliteTransaction(conn)
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise

    async def create_project(self, project: Project) -> Project:
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    """
                    INSERT INTO projects (id, name, engine_kind, description, content_json,
                                          version, owner_id, team_id, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        project.id,
                        project.name,
                        project.engine_kind.value,
                        project.description,
                        json.dumps(project.content),
                        project.version,
                        project.owner_id,
                        project.team_id,
                        project.created_at,
                        project.updated_at,
                    ),
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug(
            "Created project",
            extra={"project_id": project.id, "owner_id": project.owner_id},
        )
        return project

    async def get_project(self, project_id: str) -> Optional[Project]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM projects WHERE id = ?", (project_id,)
            ).fetchone()
            return _row_to_project(row) if row else None

    async def list_projects(
        self,
        owner_id: str,
        page: int,
        limit: int,
        engine_kind: Optional[EngineKind] = None,
        sort_by: str = "updated_at",
        sort_order: str = "desc",
    ) -> Page[ProjectSummary]:
        if sort_by not in self.SORTABLE_COLUMNS:
            raise ValueError(f"Cannot sort projects by {sort_by!r}")
        if sort_order.lower() not in ("asc", "desc"):
            raise ValueError(f"Invalid sort order {sort_order!r}")

        where = "owner_id = ?"
        params: list[Any] = [owner_id]
        if engine_kind is not None:
            where += " AND engine_kind = ?"
            params.append(engine_kind.value)

        with self._get_connection() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) FROM projects WHERE {where}", params  # noqa: S608
            ).fetchone()[0]
            rows = conn.execute(
                f"""
                SELECT id, name, engine_kind, description, version, owner_id, team_id,
                       created_at, updated_at
                FROM projects
                WHERE {where}
                ORDER BY {sort_by} {sort_order.upper()}, id
                LIMIT ? OFFSET ?
                """,  # noqa: S608
                [*params, limit, (page - 1) * limit],
            ).fetchall()

        return Page(
            items=[_row_to_summary(r) for r in rows],
            total=total,
            page=page,
            limit=limit,
        )

    async def rename_project(
        self, project_id: str, name: str, updated_at: int
    ) -> Optional[Project]:
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                conn.execute(
                    "UPDATE projects SET name = ?, updated_at = ? WHERE id = ?",
                    (name, updated_at, project_id),
                )
                row = conn.execute(
                    "SELECT * FROM projects WHERE id = ?", (project_id,)
                ).fetchone()
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        return _row_to_project(row) if row else None

    async def get_snapshot(self, snapshot_id: str) -> Optional[VersionSnapshot]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM project_versions WHERE id = ?", (snapshot_id,)
            ).fetchone()
            return _row_to_snapshot(row) if row else None

    async def list_snapshots(
        self, project_id: str, page: int, limit: int
    ) -> Page[VersionSnapshot]:
        with self._get_connection() as conn:
            total = conn.execute(
                "SELECT COUNT(*) FROM project_versions WHERE project_id = ?",
                (project_id,),
            ).fetchone()[0]
            rows = conn.execute(
                """
                SELECT * FROM project_versions
                WHERE project_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ? OFFSET ?
                """,
                (project_id, limit, (page - 1) * limit),
            ).fetchall()

        return Page(
            items=[_row_to_snapshot(r) for r in rows],
            total=total,
            page=page,
            limit=limit,
        )
