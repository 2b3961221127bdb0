"""
Store module for SchemaFlow - live projects and their version history.

Invariants:
    - Saves are atomic read-check-write units (see ProjectStore.transaction)
    - Version history is append-only
"""

from .base import (
    Page,
    Project,
    ProjectStore,
    ProjectSummary,
    StoreTransaction,
    VersionSnapshot,
)
from .sqlite_store import SqliteProjectStore

__all__ = [
    "Page",
    "Project",
    "ProjectStore",
    "ProjectSummary",
    "StoreTransaction",
    "VersionSnapshot",
    "SqliteProjectStore",
]
