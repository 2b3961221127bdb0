"""
Configuration management for SchemaFlow.

All configuration is done via environment variables - no config files.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Credentials of introspected databases never live in configuration
    - Limits and windows are strictly positive

How to change safely:
    - Add new settings with defaults that keep current behaviour
    - Keep env var names stable; deprecate by logging a warning
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class StorageConfig:
    """Project store configuration.

    Attributes:
        db_path: SQLite database file holding projects and versions
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    db_path: str = "./schemaflow.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            db_path=os.getenv("SCHEMAFLOW_DB_PATH", "./schemaflow.db"),
            wal_mode=_env_bool("SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class VersioningConfig:
    """Save/restore policy configuration.

    Attributes:
        max_content_bytes: Size ceiling for serialized diagram content
        snapshot_window_seconds: Minimum age of the last snapshot before an
            ordinary save creates a new one
        default_page_size: Page size for version/project listings
        max_page_size: Upper bound for requested page sizes
    """

    max_content_bytes: int = 5 * 1024 * 1024  # 5MiB
    snapshot_window_seconds: int = 300
    default_page_size: int = 20
    max_page_size: int = 100

    @classmethod
    def from_env(cls) -> VersioningConfig:
        """Load configuration from environment variables."""
        return cls(
            max_content_bytes=int(os.getenv("DIAGRAM_MAX_BYTES", str(5 * 1024 * 1024))),
            snapshot_window_seconds=int(os.getenv("SNAPSHOT_WINDOW_SECONDS", "300")),
            default_page_size=int(os.getenv("VERSIONS_PAGE_SIZE", "20")),
            max_page_size=int(os.getenv("VERSIONS_MAX_PAGE_SIZE", "100")),
        )


@dataclass(frozen=True)
class LayoutConfig:
    """Grid layout used for introspected nodes.

    Attributes:
        origin_x: X coordinate of the first node and of each new row
        origin_y: Y coordinate of the first row
        step_x: Horizontal distance between nodes
        step_y: Vertical distance between rows
        max_x: Row wraps once the cursor moves past this bound
    """

    origin_x: int = 100
    origin_y: int = 100
    step_x: int = 350
    step_y: int = 400
    max_x: int = 1000

    @classmethod
    def from_env(cls) -> LayoutConfig:
        """Load configuration from environment variables."""
        return cls(
            origin_x=int(os.getenv("LAYOUT_ORIGIN_X", "100")),
            origin_y=int(os.getenv("LAYOUT_ORIGIN_Y", "100")),
            step_x=int(os.getenv("LAYOUT_STEP_X", "350")),
            step_y=int(os.getenv("LAYOUT_STEP_Y", "400")),
            max_x=int(os.getenv("LAYOUT_MAX_X", "1000")),
        )


@dataclass(frozen=True)
class IntrospectionConfig:
    """Introspection engine configuration.

    Attributes:
        connect_timeout_ms: Timeout for reaching the external engine
        infer_relationships: Apply the naming-convention relationship heuristic
        layout: Grid layout settings
    """

    connect_timeout_ms: int = 10000
    infer_relationships: bool = True
    layout: LayoutConfig = field(default_factory=LayoutConfig)

    @classmethod
    def from_env(cls) -> IntrospectionConfig:
        """Load configuration from environment variables."""
        return cls(
            connect_timeout_ms=int(os.getenv("INTROSPECT_CONNECT_TIMEOUT_MS", "10000")),
            infer_relationships=_env_bool("INFER_RELATIONSHIPS", "true"),
            layout=LayoutConfig.from_env(),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class AppConfig:
    """Complete SchemaFlow configuration.

    Attributes:
        storage: Project store configuration
        versioning: Save/restore policy
        introspection: Introspection engine configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    versioning: VersioningConfig = field(default_factory=VersioningConfig)
    introspection: IntrospectionConfig = field(default_factory=IntrospectionConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            versioning=VersioningConfig.from_env(),
            introspection=IntrospectionConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.versioning.max_content_bytes <= 0:
            raise ValueError("DIAGRAM_MAX_BYTES must be positive")
        if self.versioning.snapshot_window_seconds < 0:
            raise ValueError("SNAPSHOT_WINDOW_SECONDS must not be negative")
        if self.versioning.default_page_size <= 0 or self.versioning.max_page_size <= 0:
            raise ValueError("Page sizes must be positive")
        if self.versioning.default_page_size > self.versioning.max_page_size:
            raise ValueError("VERSIONS_PAGE_SIZE cannot exceed VERSIONS_MAX_PAGE_SIZE")
        if self.introspection.layout.step_x <= 0 or self.introspection.layout.step_y <= 0:
            raise ValueError("Layout steps must be positive")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        db_dir = os.path.dirname(os.path.abspath(self.storage.db_path))
        if not os.path.exists(db_dir):
            logger.warning(
                f"Database directory does not exist: {db_dir}. "
                "It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "SchemaFlow configuration loaded",
            extra={
                "db_path": self.storage.db_path,
                "max_content_bytes": self.versioning.max_content_bytes,
                "snapshot_window_seconds": self.versioning.snapshot_window_seconds,
                "infer_relationships": self.introspection.infer_relationships,
                "log_level": self.observability.log_level,
            },
        )
