"""
Versioning module for SchemaFlow - optimistic-locked saves with throttled
history snapshots, restores, and the project lifecycle around them.
"""

from .service import (
    AUTO_SNAPSHOT_DESCRIPTION,
    CONFLICT_MESSAGE,
    FORCED_SNAPSHOT_DESCRIPTION,
    CreateProjectRequest,
    DiagramService,
    now_ms,
)

__all__ = [
    "AUTO_SNAPSHOT_DESCRIPTION",
    "CONFLICT_MESSAGE",
    "FORCED_SNAPSHOT_DESCRIPTION",
    "CreateProjectRequest",
    "DiagramService",
    "now_ms",
]
