"""
SchemaFlow Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Integration tests (SQLite store, SQLAlchemy on temp SQLite
  files, fake MongoDB clients, CLI)
"""
