"""
Audit collaborator contract for SchemaFlow.

The core emits fire-and-forget audit notifications; persisting them is the
job of an external collaborator implementing AuditSink.

Invariants:
    - A failing sink never fails the operation that emitted the event
    - Sink failures are logged with the event that could not be delivered
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class AuditAction(Enum):
    """Audited actions."""

    PROJECT_CREATED = "PROJECT_CREATED"
    VERSION_RESTORED = "VERSION_RESTORED"
    SCHEMA_IMPORTED = "SCHEMA_IMPORTED"


@dataclass(frozen=True)
class AuditEvent:
    """One audit notification.

    Attributes:
        action: What happened
        actor_id: Who did it
        resource_id: Project (or database) it happened to
        metadata: Action-specific context
    """

    action: AuditAction
    actor_id: str
    resource_id: str
    metadata: dict[str, Any] = field(default_factory=dict)


class AuditSink(ABC):
    """Receives audit events."""

    @abstractmethod
    async def record(self, event: AuditEvent) -> None:
        """Deliver one event."""


class LoggingAuditSink(AuditSink):
    """Writes audit events to the ``schemaflow.audit`` logger."""

    def __init__(self, logger_name: str = "schemaflow.audit") -> None:
        self._logger = logging.getLogger(logger_name)

    async def record(self, event: AuditEvent) -> None:
        self._logger.info(
            event.action.value,
            extra={
                "actor_id": event.actor_id,
                "resource_id": event.resource_id,
                "audit_metadata": event.metadata,
            },
        )


async def notify(sink: AuditSink, event: AuditEvent) -> None:
    """Deliver an event, logging instead of raising if the sink fails."""
    try:
        await sink.record(event)
    except Exception:
        logger.warning(
            f"Audit sink failed for {event.action.value}",
            extra={"actor_id": event.actor_id, "resource_id": event.resource_id},
            exc_info=True,
        )
