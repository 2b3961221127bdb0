"""
Error types for SchemaFlow.

This module defines every exception surfaced by the core:
- SchemaFlowError: Base exception
- ValidationError: Malformed, oversized or unsafe diagram content
- NotFoundError: Missing project or version
- BadRequestError: Cross-reference mismatch (e.g. version of another project)
- ForbiddenError: Actor does not own the project
- ConflictError: Optimistic-lock violation
- ConnectionError: External engine or tunnel unreachable/unauthorized
- IntrospectionError: Unexpected structure while reading an external engine

Invariants:
    - All errors inherit from SchemaFlowError
    - Errors carry enough detail for the caller to act
    - None of these are retried internally
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SchemaFlowError(Exception):
    """Base exception for all SchemaFlow errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SCHEMAFLOW_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Error envelope as returned to API callers."""
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(SchemaFlowError):
    """Diagram content failed validation.

    Raised when:
    - Serialized content exceeds the size ceiling
    - The root is not an object
    - ``nodes`` or ``edges`` is present but not a list
    - A denylisted or non-string key appears at any depth
    """

    def __init__(
        self,
        message: str,
        rule: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"rule": rule, "path": path},
        )
        self.rule = rule
        self.path = path


class NotFoundError(SchemaFlowError):
    """Requested project or version does not exist."""

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(
            f"{resource} not found: {resource_id}",
            code="NOT_FOUND",
            details={"resource": resource, "resource_id": resource_id},
        )
        self.resource = resource
        self.resource_id = resource_id


class BadRequestError(SchemaFlowError):
    """Request references resources that do not belong together."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code="BAD_REQUEST", details=details)


class ForbiddenError(SchemaFlowError):
    """Actor is not allowed to access the project."""

    def __init__(self, message: str, resource_id: str, actor_id: str) -> None:
        super().__init__(
            message,
            code="FORBIDDEN",
            details={"resource_id": resource_id, "actor_id": actor_id},
        )
        self.resource_id = resource_id
        self.actor_id = actor_id


class ConflictError(SchemaFlowError):
    """Optimistic-lock violation.

    The caller must re-read the project and retry with a fresh
    expected version.
    """

    def __init__(
        self,
        message: str,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONFLICT",
            details={
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )
        self.expected_version = expected_version
        self.actual_version = actual_version


class ConnectionError(SchemaFlowError):
    """Failed to reach the external database engine or its tunnel.

    Raised when:
    - Host is unreachable or the connection times out
    - Authentication fails
    - The SSH tunnel cannot be established
    """

    def __init__(
        self,
        message: str,
        engine_kind: Optional[str] = None,
        address: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONNECTION_ERROR",
            details={"engine_kind": engine_kind, "address": address},
        )
        self.engine_kind = engine_kind
        self.address = address


class IntrospectionError(SchemaFlowError):
    """Unexpected structure while sampling documents or reading the catalog."""

    def __init__(
        self,
        message: str,
        engine_kind: Optional[str] = None,
        stage: Optional[str] = None,
        code: str = "INTROSPECTION_ERROR",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"engine_kind": engine_kind, "stage": stage},
        )
        self.engine_kind = engine_kind
        self.stage = stage


class IntrospectionCancelledError(IntrospectionError):
    """Introspection was cancelled by the caller."""

    def __init__(self, engine_kind: Optional[str] = None, stage: Optional[str] = None) -> None:
        super().__init__(
            "Introspection cancelled",
            engine_kind=engine_kind,
            stage=stage,
            code="INTROSPECTION_CANCELLED",
        )
