"""
Command-line tool for SchemaFlow.

Commands:
- create: Create an empty project
- list: List your projects
- show: Print a project with its content
- save: Save diagram content from a JSON file
- versions: List a project's snapshots
- restore: Restore a snapshot
- introspect: Reverse-engineer a live database (print it, or import it)

Usage:
    schemaflow create --name shop --engine MYSQL
    schemaflow save <project-id> --file diagram.json --expected-version 3
    schemaflow introspect --engine MONGODB --uri mongodb://localhost/shop --project <project-id>

Invariants:
    - Results are printed to stdout as JSON
    - SchemaFlow errors exit with code 1 and print their envelope to stderr

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for scripting
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any, Optional

import pydantic

from .config import AppConfig
from .errors import SchemaFlowError, ValidationError
from .graph.model import EngineKind
from .introspect.descriptor import ConnectionDescriptor
from .introspect.engine import introspect_async
from .logging_setup import setup_logging
from .store.sqlite_store import SqliteProjectStore
from .versioning.service import DiagramService

logger = logging.getLogger(__name__)


def descriptor_from_args(args: argparse.Namespace) -> ConnectionDescriptor:
    """Build a connection descriptor from introspect arguments."""
    data: dict[str, Any] = {
        "engineKind": args.engine,
        "host": args.host,
        "port": args.port,
        "username": args.user,
        "password": args.password,
        "databaseName": args.database,
        "uri": args.uri,
    }
    if args.ssh_host:
        data["ssh"] = {
            "host": args.ssh_host,
            "port": args.ssh_port,
            "username": args.ssh_user,
            "password": args.ssh_password,
            "privateKey": args.ssh_key,
        }
    try:
        return ConnectionDescriptor.model_validate(data)
    except pydantic.ValidationError as exc:
        error = exc.errors()[0]
        raise ValidationError(
            f"Invalid connection settings: {error['msg']}",
            rule="descriptor",
            path="$." + ".".join(str(part) for part in error["loc"]) if error["loc"] else "$",
        ) from exc


class SchemaFlowCLI:
    """Runs CLI commands against a DiagramService.

    Example:
        >>> cli = SchemaFlowCLI(service, actor_id="alice")
        >>> await cli.run(parser.parse_args(["list"]))
    """

    def __init__(self, service: DiagramService, actor_id: str) -> None:
        self.service = service
        self.actor_id = actor_id

    async def run(self, args: argparse.Namespace) -> Any:
        """Execute one command and return its JSON-serializable result."""
        handler = getattr(self, f"cmd_{args.command}")
        return await handler(args)

    async def cmd_create(self, args: argparse.Namespace) -> Any:
        project = await self.service.create_project(
            self.actor_id,
            {
                "name": args.name,
                "type": args.engine,
                "teamId": args.team,
                "description": args.description,
            },
        )
        return project.to_dict()

    async def cmd_list(self, args: argparse.Namespace) -> Any:
        page = await self.service.list_projects(
            self.actor_id,
            page=args.page,
            limit=args.limit,
            engine_kind=EngineKind(args.engine) if args.engine else None,
            sort_by=args.sort_by,
            sort_order=args.sort_order,
        )
        return {"projects": [p.to_dict() for p in page.items], "meta": page.meta()}

    async def cmd_show(self, args: argparse.Namespace) -> Any:
        project = await self.service.get_project(args.project_id, self.actor_id)
        return project.to_dict()

    async def cmd_save(self, args: argparse.Namespace) -> Any:
        try:
            with open(args.file, encoding="utf-8") as f:
                content = json.load(f)
        except (OSError, ValueError) as exc:
            raise ValidationError(
                f"Could not read diagram file {args.file}: {exc}", rule="file", path="$"
            ) from exc
        project = await self.service.save_diagram(
            args.project_id,
            content,
            self.actor_id,
            expected_version=args.expected_version,
            force_snapshot=args.force_snapshot,
        )
        return {"id": project.id, "version": project.version, "updatedAt": project.updated_at}

    async def cmd_versions(self, args: argparse.Namespace) -> Any:
        page = await self.service.get_versions(args.project_id, page=args.page, limit=args.limit)
        return {
            "versions": [
                {"id": v.id, "description": v.description, "createdAt": v.created_at}
                for v in page.items
            ],
            "meta": page.meta(),
        }

    async def cmd_restore(self, args: argparse.Namespace) -> Any:
        project = await self.service.restore_version(args.project_id, args.version_id, self.actor_id)
        return {"id": project.id, "version": project.version, "updatedAt": project.updated_at}

    async def cmd_introspect(self, args: argparse.Namespace) -> Any:
        descriptor = descriptor_from_args(args)
        if args.project:
            project = await self.service.import_schema(
                args.project, descriptor, self.actor_id, expected_version=args.expected_version
            )
            return {"id": project.id, "version": project.version, "nodes": len(project.content.get("nodes", []))}
        graph = await introspect_async(descriptor, self.service.introspection_config)
        return graph.to_dict()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SchemaFlow diagram and schema tool")
    parser.add_argument(
        "--actor",
        default=os.getenv("SCHEMAFLOW_ACTOR", "local"),
        help="Acting user id (default: $SCHEMAFLOW_ACTOR or 'local')",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    engines = [e.value for e in EngineKind]

    # create command
    create_parser = subparsers.add_parser("create", help="Create an empty project")
    create_parser.add_argument("--name", required=True, help="Project name")
    create_parser.add_argument("--engine", required=True, choices=engines, help="Database engine")
    create_parser.add_argument("--team", help="Owning team id")
    create_parser.add_argument("--description", help="Project description")

    # list command
    list_parser = subparsers.add_parser("list", help="List your projects")
    list_parser.add_argument("--page", type=int, default=1)
    list_parser.add_argument("--limit", type=int)
    list_parser.add_argument("--engine", choices=engines, help="Only projects of this engine")
    list_parser.add_argument(
        "--sort-by", default="updated_at", choices=["updated_at", "created_at", "name"]
    )
    list_parser.add_argument("--sort-order", default="desc", choices=["asc", "desc"])

    # show command
    show_parser = subparsers.add_parser("show", help="Print a project")
    show_parser.add_argument("project_id")

    # save command
    save_parser = subparsers.add_parser("save", help="Save diagram content from a JSON file")
    save_parser.add_argument("project_id")
    save_parser.add_argument("--file", "-f", required=True, help="Diagram JSON file")
    save_parser.add_argument("--expected-version", type=int, help="Fail if the project moved on")
    save_parser.add_argument(
        "--force-snapshot", action="store_true", help="Snapshot the current content first"
    )

    # versions command
    versions_parser = subparsers.add_parser("versions", help="List snapshots, newest first")
    versions_parser.add_argument("project_id")
    versions_parser.add_argument("--page", type=int, default=1)
    versions_parser.add_argument("--limit", type=int)

    # restore command
    restore_parser = subparsers.add_parser("restore", help="Restore a snapshot")
    restore_parser.add_argument("project_id")
    restore_parser.add_argument("version_id")

    # introspect command
    introspect_parser = subparsers.add_parser("introspect", help="Reverse-engineer a database")
    introspect_parser.add_argument("--engine", required=True, choices=engines)
    introspect_parser.add_argument("--uri", help="Full connection URI")
    introspect_parser.add_argument("--host", default="localhost")
    introspect_parser.add_argument("--port", type=int)
    introspect_parser.add_argument("--user")
    introspect_parser.add_argument("--password")
    introspect_parser.add_argument("--database", help="Database name (file path for SQLite)")
    introspect_parser.add_argument("--ssh-host", help="SSH gateway host")
    introspect_parser.add_argument("--ssh-port", type=int, default=22)
    introspect_parser.add_argument("--ssh-user")
    introspect_parser.add_argument("--ssh-password")
    introspect_parser.add_argument("--ssh-key", help="SSH private key file")
    introspect_parser.add_argument("--project", help="Import into this project instead of printing")
    introspect_parser.add_argument("--expected-version", type=int)

    return parser


async def _run(args: argparse.Namespace, config: AppConfig) -> Any:
    store = SqliteProjectStore(
        config.storage.db_path,
        wal_mode=config.storage.wal_mode,
        busy_timeout_ms=config.storage.busy_timeout_ms,
    )
    await store.initialize()
    service = DiagramService(
        store,
        config.versioning,
        introspection_config=config.introspection,
    )
    return await SchemaFlowCLI(service, args.actor).run(args)


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    config = AppConfig.from_env()
    setup_logging(config.observability)
    config.log_config()

    try:
        result = asyncio.run(_run(args, config))
    except SchemaFlowError as e:
        print(json.dumps({"error": e.to_dict()}, indent=2), file=sys.stderr)
        sys.exit(1)

    print(json.dumps(result, indent=2))
    sys.exit(0)


if __name__ == "__main__":
    main()
