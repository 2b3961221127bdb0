"""
Connection descriptors for introspection sessions.

A descriptor names the external engine and how to reach it, optionally
through an SSH tunnel. Descriptors are immutable; a tunnelled session
derives a new descriptor pointing at the local end of the tunnel.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator

from ..graph.model import EngineKind

DEFAULT_PORTS = {
    EngineKind.MYSQL: 3306,
    EngineKind.POSTGRESQL: 5432,
    EngineKind.MONGODB: 27017,
}


class TunnelDescriptor(BaseModel):
    """SSH tunnel used to reach a database that is not directly exposed."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    host: str = Field(..., min_length=1, description="SSH gateway host")
    port: int = Field(22, ge=1, le=65535, description="SSH gateway port")
    username: str = Field(..., min_length=1, description="SSH user")
    password: Optional[SecretStr] = Field(None, description="SSH password")
    private_key: Optional[str] = Field(
        None, alias="privateKey", description="Path to the SSH private key"
    )


class ConnectionDescriptor(BaseModel):
    """How to reach the database to introspect.

    Either ``uri`` or ``host``/``database`` must be given. SQLite uses
    ``database`` as the file path.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    engine_kind: EngineKind = Field(..., alias="engineKind")
    host: str = Field("localhost", description="Database host")
    port: Optional[int] = Field(None, ge=1, le=65535, description="Database port")
    username: Optional[str] = Field(None, description="Database user")
    password: Optional[SecretStr] = Field(None, description="Database password")
    database: Optional[str] = Field(None, alias="databaseName", description="Database name")
    uri: Optional[str] = Field(None, description="Full connection URI")
    tunnel: Optional[TunnelDescriptor] = Field(None, alias="ssh")

    @model_validator(mode="after")
    def _check_target(self) -> ConnectionDescriptor:
        if self.uri is None and not self.database:
            raise ValueError("databaseName is required when no uri is given")
        if self.uri is not None and self.tunnel is not None:
            raise ValueError("An SSH tunnel requires host/port, not a uri")
        if self.engine_kind is EngineKind.SQLITE and self.tunnel is not None:
            raise ValueError("SQLite databases cannot be reached through a tunnel")
        return self

    @property
    def effective_port(self) -> Optional[int]:
        return self.port or DEFAULT_PORTS.get(self.engine_kind)

    @property
    def address(self) -> str:
        """Printable address without credentials."""
        if self.engine_kind is EngineKind.SQLITE:
            return self.database or ""
        if self.uri is not None:
            return self.uri.split("@")[-1]
        return f"{self.host}:{self.effective_port}"

    def via(self, host: str, port: int) -> ConnectionDescriptor:
        """Same descriptor pointed at another address (a tunnel's local end)."""
        return self.model_copy(update={"host": host, "port": port, "tunnel": None})
