"""
Introspection module for SchemaFlow - reverse-engineering live databases.

This module provides:
- ConnectionDescriptor / TunnelDescriptor: where a database is
- DocumentIntrospector: sampling-based discovery for MongoDB
- RelationalIntrospector: catalog-based discovery via SQLAlchemy
- introspect / introspect_async: engine-dispatching entry points

Invariants:
    - Sessions release every connection and tunnel on every exit path
    - Returned graphs never contain dangling edges
"""

from .base import Introspector
from .descriptor import ConnectionDescriptor, TunnelDescriptor
from .document import DocumentIntrospector
from .engine import create_introspector, introspect, introspect_async
from .layout import GridLayout
from .relational import RelationalIntrospector
from .relationships import infer_relationships
from .resources import CancelToken
from .types import InferredType, infer_type

__all__ = [
    "Introspector",
    "ConnectionDescriptor",
    "TunnelDescriptor",
    "DocumentIntrospector",
    "RelationalIntrospector",
    "create_introspector",
    "introspect",
    "introspect_async",
    "GridLayout",
    "infer_relationships",
    "CancelToken",
    "InferredType",
    "infer_type",
]
