"""
SchemaFlow - versioned schema diagrams reverse-engineered from live databases.

This package implements the core of a schema-diagram service built on:
- A diagram graph (tables/collections, fields, relationships) as the data model
- A versioned project store with optimistic concurrency and history snapshots
- Introspection of live relational and document databases into that graph

Architecture:
    ┌──────────────┐     ┌──────────────┐     ┌──────────────────┐
    │  MongoDB /   │────▶│ Introspection│────▶│   DiagramGraph   │
    │  SQL engine  │     │    Engine    │     │                  │
    └──────────────┘     └──────────────┘     └────────┬─────────┘
                                                       │
                                                       ▼
                                              ┌──────────────────┐
                                              │  DiagramService  │
                                              │ (save / restore) │
                                              └────────┬─────────┘
                                                       │
                              ┌────────────────────────┼───────────────┐
                              ▼                        ▼               ▼
                        ┌──────────┐           ┌─────────────┐   ┌──────────┐
                        │ projects │           │  versions   │   │  export  │
                        │ (live)   │           │  (history)  │   │          │
                        └──────────┘           └─────────────┘   └──────────┘

Invariants:
    - Project.version increases by exactly 1 per committed content mutation
    - A version snapshot always holds the state *before* the mutation
    - Saving identical content (same fingerprint) never creates a snapshot
    - Introspection never emits an edge to a node that does not exist

How to change safely:
    - Keep the save path a single transaction with a conditional update
    - Add new engine kinds behind the Introspector interface
    - Never mutate or delete rows in the versions table

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
