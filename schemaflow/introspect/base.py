"""
Introspector interface.

All variants share one contract: take a connection descriptor, return a
DiagramGraph, raise ConnectionError when the engine cannot be reached and
IntrospectionError when its structure cannot be read.

Invariants:
    - Introspectors hold no state between sessions
    - Every connection/tunnel opened by a session is closed before it returns
    - Emitted edges always reference nodes of the returned graph
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..config import IntrospectionConfig
from ..graph.model import DiagramGraph
from .descriptor import ConnectionDescriptor
from .resources import CancelToken


class Introspector(ABC):
    """Reads the structure of a live database into a DiagramGraph."""

    def __init__(self, config: Optional[IntrospectionConfig] = None) -> None:
        self.config = config or IntrospectionConfig()

    @property
    def timeout_seconds(self) -> float:
        return self.config.connect_timeout_ms / 1000.0

    @abstractmethod
    def introspect(
        self,
        descriptor: ConnectionDescriptor,
        cancel: Optional[CancelToken] = None,
    ) -> DiagramGraph:
        """Run one introspection session.

        Args:
            descriptor: Where the database is and how to reach it
            cancel: Checked between steps; when set the session stops with
                IntrospectionCancelledError after releasing its resources

        Raises:
            ConnectionError: Engine or tunnel unreachable/unauthorized
            IntrospectionError: Structure could not be read
        """
