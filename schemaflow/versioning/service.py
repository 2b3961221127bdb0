"""
Save/restore engine and project lifecycle for SchemaFlow.

The save path is the heart of the system:
1. Validate the new content
2. Load the current project (inside a write transaction)
3. Reject a stale expected version
4. Fingerprint current and new content
5. Snapshot the *current* content when it changed and the last snapshot is
   older than the throttle window, or unconditionally when forced
6. Replace the content and bump the version with a conditional update

Steps 2-6 are one transaction; the conditional update makes the version
check hold even against a writer that slipped in between.

Invariants:
    - version increases by exactly 1 per committed save, no-op saves included
    - A snapshot always holds the content from before the save that made it
    - Equal fingerprints and no force: no snapshot
    - Audit failures never fail the operation that emitted them

How to change safely:
    - Never move the snapshot insert outside the transaction
    - Snapshot descriptions are shown to users; keep them stable
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from ..audit import AuditAction, AuditEvent, AuditSink, LoggingAuditSink, notify
from ..config import IntrospectionConfig, VersioningConfig
from ..errors import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from ..export import ScriptExporter
from ..graph.fingerprint import fingerprint
from ..graph.model import DiagramGraph, EngineKind, GraphIntegrityError, new_id
from ..graph.validation import validate_content
from ..introspect.descriptor import ConnectionDescriptor
from ..introspect.engine import introspect_async
from ..store.base import Page, Project, ProjectStore, ProjectSummary, VersionSnapshot

logger = logging.getLogger(__name__)

FORCED_SNAPSHOT_DESCRIPTION = "Backup before Restore"
AUTO_SNAPSHOT_DESCRIPTION = "Auto-save (Smart)"
CONFLICT_MESSAGE = "Project has been modified by another user. Reload required."

PROJECTS_PAGE_SIZE = 10

Introspect = Callable[[ConnectionDescriptor, Optional[IntrospectionConfig]], Awaitable[DiagramGraph]]


def now_ms() -> int:
    """Current time in Unix milliseconds."""
    return int(time.time() * 1000)


class CreateProjectRequest(BaseModel):
    """Input of create_project()."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1, max_length=100)
    engine_kind: EngineKind = Field(..., alias="type")
    team_id: Optional[str] = Field(None, alias="teamId")
    description: Optional[str] = Field(None, max_length=1000)


class RenameProjectRequest(BaseModel):
    """Input of rename_project()."""

    name: str = Field(..., min_length=1, max_length=100)


def _parse(model: type[BaseModel], data: Any) -> Any:
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        error = exc.errors()[0]
        path = "$." + ".".join(str(part) for part in error["loc"]) if error["loc"] else "$"
        raise ValidationError(
            f"Invalid request: {error['msg']}", rule="request", path=path
        ) from exc


class DiagramService:
    """Project lifecycle, versioned saves and restores.

    Example:
        >>> store = SqliteProjectStore("./schemaflow.db")
        >>> await store.initialize()
        >>> service = DiagramService(store, VersioningConfig())
        >>> project = await service.create_project("alice", {"name": "shop", "type": "MYSQL"})
        >>> project = await service.save_diagram(project.id, content, "alice",
        ...                                      expected_version=project.version)
    """

    def __init__(
        self,
        store: ProjectStore,
        config: Optional[VersioningConfig] = None,
        audit_sink: Optional[AuditSink] = None,
        clock: Callable[[], int] = now_ms,
        introspect: Introspect = introspect_async,
        introspection_config: Optional[IntrospectionConfig] = None,
    ) -> None:
        """Initialize the service.

        Args:
            store: Project and snapshot persistence
            config: Save/restore policy
            audit_sink: Audit collaborator (defaults to logging)
            clock: Source of Unix-ms timestamps
            introspect: Async introspection entry point used by import_schema()
            introspection_config: Passed to ``introspect``
        """
        self.store = store
        self.config = config or VersioningConfig()
        self.audit_sink = audit_sink or LoggingAuditSink()
        self._clock = clock
        self._introspect = introspect
        self.introspection_config = introspection_config

    def validate(self, content: Any) -> None:
        """Validate diagram content against the configured size ceiling.

        Raises:
            ValidationError: If the content is rejected
        """
        validate_content(content, max_bytes=self.config.max_content_bytes)

    def _clamp(self, page: Optional[int], limit: Optional[int], default_limit: int) -> tuple[int, int]:
        page = max(1, page or 1)
        if limit is None or limit <= 0:
            limit = default_limit
        return page, min(limit, self.config.max_page_size)

    # Project lifecycle

    async def create_project(self, actor_id: str, data: Any) -> Project:
        """Create an empty project owned by ``actor_id``.

        Raises:
            ValidationError: If name or engine kind is invalid
        """
        request: CreateProjectRequest = _parse(CreateProjectRequest, data)
        now = self._clock()
        project = await self.store.create_project(
            Project(
                id=new_id(),
                name=request.name,
                engine_kind=request.engine_kind,
                content=DiagramGraph.empty(request.engine_kind).to_dict(),
                version=0,
                owner_id=actor_id,
                team_id=request.team_id,
                description=request.description,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info(
            "Project created",
            extra={"project_id": project.id, "owner_id": actor_id, "engine_kind": project.engine_kind.value},
        )
        await notify(
            self.audit_sink,
            AuditEvent(
                action=AuditAction.PROJECT_CREATED,
                actor_id=actor_id,
                resource_id=project.id,
                metadata={"name": project.name, "engineKind": project.engine_kind.value},
            ),
        )
        return project

    async def list_projects(
        self,
        actor_id: str,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        engine_kind: Optional[EngineKind] = None,
        sort_by: str = "updated_at",
        sort_order: str = "desc",
    ) -> Page[ProjectSummary]:
        """Projects owned by ``actor_id``, without content.

        Raises:
            BadRequestError: If the sort column or order is not supported
        """
        page, limit = self._clamp(page, limit, PROJECTS_PAGE_SIZE)
        try:
            return await self.store.list_projects(
                actor_id, page, limit, engine_kind=engine_kind, sort_by=sort_by, sort_order=sort_order
            )
        except ValueError as exc:
            raise BadRequestError(str(exc), details={"sort_by": sort_by, "sort_order": sort_order}) from exc

    async def get_project(self, project_id: str, actor_id: str) -> Project:
        """Read a project the actor may see.

        Raises:
            NotFoundError: If the project does not exist
            ForbiddenError: If the actor is not the owner of a personal project
        """
        project = await self.store.get_project(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        if project.owner_id != actor_id and not project.team_id:
            raise ForbiddenError(
                "You do not have permission to view this project.",
                resource_id=project_id,
                actor_id=actor_id,
            )
        return project

    async def rename_project(self, project_id: str, actor_id: str, name: str) -> Project:
        """Change a project's name. Content, version and history are untouched."""
        request: RenameProjectRequest = _parse(RenameProjectRequest, {"name": name})
        await self.get_project(project_id, actor_id)
        project = await self.store.rename_project(project_id, request.name, self._clock())
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    # Versioning

    async def save_diagram(
        self,
        project_id: str,
        content: Any,
        actor_id: str,
        expected_version: Optional[int] = None,
        force_snapshot: bool = False,
    ) -> Project:
        """Persist new diagram content.

        Args:
            project_id: Project to update
            content: New diagram content (wire format)
            actor_id: Who is saving
            expected_version: Version the caller based its edit on; None means
                last writer wins
            force_snapshot: Snapshot the current content even if unchanged
                and regardless of the throttle window

        Returns:
            The updated project

        Raises:
            ValidationError: If the content is rejected
            NotFoundError: If the project does not exist
            ConflictError: If the project moved past ``expected_version``
        """
        self.validate(content)
        new_fingerprint = fingerprint(content)

        async with self.store.transaction() as tx:
            current = await tx.get_project(project_id)
            if current is None:
                raise NotFoundError("Project", project_id)

            if expected_version is not None and current.version != expected_version:
                logger.info(
                    "Save rejected, stale version",
                    extra={
                        "project_id": project_id,
                        "actor_id": actor_id,
                        "expected_version": expected_version,
                        "actual_version": current.version,
                    },
                )
                raise ConflictError(
                    CONFLICT_MESSAGE,
                    expected_version=expected_version,
                    actual_version=current.version,
                )

            now = self._clock()
            if force_snapshot or fingerprint(current.content) != new_fingerprint:
                latest = await tx.latest_snapshot(project_id)
                window_ms = self.config.snapshot_window_seconds * 1000
                if force_snapshot or latest is None or now - latest.created_at > window_ms:
                    snapshot = VersionSnapshot(
                        id=new_id(),
                        project_id=project_id,
                        content=current.content,
                        description=(
                            FORCED_SNAPSHOT_DESCRIPTION if force_snapshot else AUTO_SNAPSHOT_DESCRIPTION
                        ),
                        created_at=now,
                    )
                    await tx.insert_snapshot(snapshot)
                    logger.info(
                        "Snapshot created",
                        extra={
                            "project_id": project_id,
                            "snapshot_id": snapshot.id,
                            "base_version": current.version,
                            "forced": force_snapshot,
                        },
                    )
                else:
                    logger.debug(
                        "Snapshot throttled",
                        extra={"project_id": project_id, "last_snapshot_at": latest.created_at},
                    )

            if not await tx.update_content(project_id, content, current.version, now):
                raise ConflictError(
                    CONFLICT_MESSAGE,
                    expected_version=expected_version,
                    actual_version=None,
                )

        logger.debug(
            "Diagram saved",
            extra={"project_id": project_id, "actor_id": actor_id, "version": current.version + 1},
        )
        return replace(current, content=content, version=current.version + 1, updated_at=now)

    async def restore_version(self, project_id: str, version_id: str, actor_id: str) -> Project:
        """Make a snapshot's content the live content.

        The content being replaced is snapshotted first, so a restore can
        itself be undone.

        Raises:
            NotFoundError: If the snapshot or project does not exist
            BadRequestError: If the snapshot belongs to another project
        """
        snapshot = await self.store.get_snapshot(version_id)
        if snapshot is None:
            raise NotFoundError("Version", version_id)
        if snapshot.project_id != project_id:
            raise BadRequestError(
                "Version does not belong to this project",
                details={"project_id": project_id, "version_id": version_id},
            )

        project = await self.save_diagram(project_id, snapshot.content, actor_id, force_snapshot=True)

        logger.info(
            "Version restored",
            extra={"project_id": project_id, "version_id": version_id, "actor_id": actor_id},
        )
        await notify(
            self.audit_sink,
            AuditEvent(
                action=AuditAction.VERSION_RESTORED,
                actor_id=actor_id,
                resource_id=project_id,
                metadata={"versionId": version_id},
            ),
        )
        return project

    async def get_versions(
        self,
        project_id: str,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Page[VersionSnapshot]:
        """Snapshots of a project, most recent first.

        Raises:
            NotFoundError: If the project does not exist
        """
        page, limit = self._clamp(page, limit, self.config.default_page_size)
        if await self.store.get_project(project_id) is None:
            raise NotFoundError("Project", project_id)
        return await self.store.list_snapshots(project_id, page, limit)

    # Collaborators

    async def import_schema(
        self,
        project_id: str,
        descriptor: ConnectionDescriptor,
        actor_id: str,
        expected_version: Optional[int] = None,
    ) -> Project:
        """Introspect a live database and save the result into a project.

        Raises:
            BadRequestError: If the database family does not match the project's
            ConnectionError: If the database cannot be reached
            IntrospectionError: If its structure cannot be read
        """
        project = await self.get_project(project_id, actor_id)
        if project.engine_kind.is_document != descriptor.engine_kind.is_document:
            raise BadRequestError(
                f"Cannot import a {descriptor.engine_kind.value} schema into a "
                f"{project.engine_kind.value} project",
                details={
                    "project_engine": project.engine_kind.value,
                    "source_engine": descriptor.engine_kind.value,
                },
            )

        graph = await self._introspect(descriptor, self.introspection_config)
        updated = await self.save_diagram(
            project_id, graph.to_dict(), actor_id, expected_version=expected_version
        )

        await notify(
            self.audit_sink,
            AuditEvent(
                action=AuditAction.SCHEMA_IMPORTED,
                actor_id=actor_id,
                resource_id=project_id,
                metadata={
                    "database": descriptor.database or descriptor.address,
                    "tableCount": len(graph),
                },
            ),
        )
        return updated

    async def export_project(
        self, project_id: str, actor_id: str, exporter: ScriptExporter
    ) -> str:
        """Render a project's diagram with an export collaborator.

        Raises:
            BadRequestError: If the stored content is not a well-formed diagram
        """
        project = await self.get_project(project_id, actor_id)
        try:
            graph = project.graph
        except GraphIntegrityError as exc:
            raise BadRequestError(
                f"Project content cannot be exported: {exc}",
                details={"project_id": project_id},
            ) from exc
        return exporter.export(graph, project.engine_kind)
