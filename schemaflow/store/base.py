"""
Persistence contract for projects and their version history.

A backend must provide:
- Point reads of a project by id
- A transaction in which a project can be read, a snapshot appended, and the
  content replaced by a conditional update keyed on the version read
- Append-only snapshot insertion and most-recent-first paginated queries

Invariants:
    - update_content() only succeeds when the stored version equals
      base_version, and then sets it to base_version + 1
    - Snapshots are never updated or deleted
    - Work done inside transaction() is all-or-nothing

How to change safely:
    - New methods on ProjectStore need an implementation in every backend
    - Keep the conditional update even when the backend also locks
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

from ..graph.model import DiagramGraph, EngineKind

T = TypeVar("T")


@dataclass
class Project:
    """A diagram project.

    Attributes:
        id: Project identifier (UUID)
        name: Display name
        engine_kind: Database engine the diagram models
        content: Diagram content in wire format
        version: Optimistic-lock token, starts at 0
        owner_id: Actor that created the project
        team_id: Owning team, if shared
        description: Optional description
        created_at: Creation timestamp (Unix ms)
        updated_at: Last update timestamp (Unix ms)
    """

    id: str
    name: str
    engine_kind: EngineKind
    content: dict[str, Any]
    version: int
    owner_id: str
    team_id: Optional[str] = None
    description: Optional[str] = None
    created_at: int = 0
    updated_at: int = 0

    @property
    def graph(self) -> DiagramGraph:
        """Content parsed into the graph model."""
        return DiagramGraph.from_dict(self.content, default_engine=self.engine_kind)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.engine_kind.value,
            "description": self.description,
            "content": self.content,
            "version": self.version,
            "userId": self.owner_id,
            "teamId": self.team_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class ProjectSummary:
    """Project listing entry; content is deliberately absent."""

    id: str
    name: str
    engine_kind: EngineKind
    version: int
    owner_id: str
    team_id: Optional[str]
    description: Optional[str]
    created_at: int
    updated_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.engine_kind.value,
            "description": self.description,
            "version": self.version,
            "userId": self.owner_id,
            "teamId": self.team_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class VersionSnapshot:
    """An immutable backup of a project's content.

    Attributes:
        id: Snapshot identifier (UUID)
        project_id: Owning project
        content: Content *before* the mutation that created the snapshot
        description: Why the snapshot was taken
        created_at: Creation timestamp (Unix ms)
    """

    id: str
    project_id: str
    content: dict[str, Any]
    description: str
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "content": self.content,
            "description": self.description,
            "createdAt": self.created_at,
        }


@dataclass
class Page(Generic[T]):
    """One page of a listing."""

    items: list[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def meta(self) -> dict[str, int]:
        return {
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "totalPages": self.total_pages,
        }


class StoreTransaction(ABC):
    """Operations available inside one atomic unit of work."""

    @abstractmethod
    async def get_project(self, project_id: str) -> Optional[Project]:
        """Read a project inside the transaction."""

    @abstractmethod
    async def latest_snapshot(self, project_id: str) -> Optional[VersionSnapshot]:
        """Most recent snapshot of a project, if any."""

    @abstractmethod
    async def insert_snapshot(self, snapshot: VersionSnapshot) -> None:
        """Append a snapshot."""

    @abstractmethod
    async def update_content(
        self,
        project_id: str,
        content: dict[str, Any],
        base_version: int,
        updated_at: int,
    ) -> bool:
        """Replace content and bump the version, if still at base_version.

        Returns:
            True if the row was updated, False if the version moved on
        """


class ProjectStore(ABC):
    """Backend holding live projects and their snapshot history."""

    SORTABLE_COLUMNS = ("updated_at", "created_at", "name")

    @abstractmethod
    async def initialize(self) -> None:
        """Create storage structures if missing."""

    @abstractmethod
    async def create_project(self, project: Project) -> Project:
        """Insert a new project."""

    @abstractmethod
    async def get_project(self, project_id: str) -> Optional[Project]:
        """Point read of a project."""

    @abstractmethod
    async def list_projects(
        self,
        owner_id: str,
        page: int,
        limit: int,
        engine_kind: Optional[EngineKind] = None,
        sort_by: str = "updated_at",
        sort_order: str = "desc",
    ) -> Page[ProjectSummary]:
        """Paginated project summaries of an owner."""

    @abstractmethod
    async def rename_project(
        self, project_id: str, name: str, updated_at: int
    ) -> Optional[Project]:
        """Change the display name. Content and version are untouched."""

    @abstractmethod
    async def get_snapshot(self, snapshot_id: str) -> Optional[VersionSnapshot]:
        """Point read of a snapshot."""

    @abstractmethod
    async def list_snapshots(
        self, project_id: str, page: int, limit: int
    ) -> Page[VersionSnapshot]:
        """Snapshots of a project, most recent first."""

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[StoreTransaction]:
        """Open an atomic unit of work.

        Example:
            >>> async with store.transaction() as tx:
            ...     project = await tx.get_project(project_id)
        """
