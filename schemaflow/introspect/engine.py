"""
Introspection entry points.

Drivers (pymongo, SQLAlchemy dialects, sshtunnel) are blocking, so a
session runs synchronously; introspect_async() moves it to a worker
thread for async callers.

Invariants:
    - One introspector per session, no shared mutable state
    - Cancelling introspect_async() returns only after the worker has
      released its connection and tunnel
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..config import IntrospectionConfig
from ..graph.model import DiagramGraph, EngineKind
from .base import Introspector
from .descriptor import ConnectionDescriptor
from .document import DocumentIntrospector
from .relational import RelationalIntrospector
from .resources import CancelToken

logger = logging.getLogger(__name__)


def create_introspector(
    engine_kind: EngineKind,
    config: Optional[IntrospectionConfig] = None,
) -> Introspector:
    """Introspector variant for an engine kind."""
    if engine_kind.is_document:
        return DocumentIntrospector(config)
    return RelationalIntrospector(config)


def introspect(
    descriptor: ConnectionDescriptor,
    config: Optional[IntrospectionConfig] = None,
    cancel: Optional[CancelToken] = None,
) -> DiagramGraph:
    """Introspect the database a descriptor points at.

    Raises:
        ConnectionError: Engine or tunnel unreachable/unauthorized
        IntrospectionError: Structure could not be read
    """
    return create_introspector(descriptor.engine_kind, config).introspect(descriptor, cancel)


async def introspect_async(
    descriptor: ConnectionDescriptor,
    config: Optional[IntrospectionConfig] = None,
    introspector: Optional[Introspector] = None,
) -> DiagramGraph:
    """Run an introspection session in a worker thread.

    On cancellation the session's cancel flag is set and the caller waits
    for the worker to finish cleaning up before CancelledError propagates.
    """
    introspector = introspector or create_introspector(descriptor.engine_kind, config)
    loop = asyncio.get_running_loop()
    cancel = CancelToken()
    future = loop.run_in_executor(None, introspector.introspect, descriptor, cancel)
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        cancel.cancel()
        logger.info(
            "Introspection cancelled, waiting for cleanup",
            extra={"engine_kind": descriptor.engine_kind.value},
        )
        await asyncio.wait([future])
        if not future.cancelled():
            # Consume the worker's outcome; the cancellation wins.
            future.exception()
        raise
