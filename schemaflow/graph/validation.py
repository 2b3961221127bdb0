"""
Structural validation of diagram content before it is persisted.

This is not business validation: it only guards the store and downstream
deserializers against payloads that are oversized, mis-shaped, or carry
keys that can corrupt a dynamically typed object model (prototype and
constructor style keys).

Rules (reported in ValidationError.rule):
    - root: content must be a JSON object
    - nodes_type / edges_type: ``nodes``/``edges`` must be lists when present
    - key_type: every object key, at any depth, must be a string
    - denylisted_key: no object key, at any depth, may be in DENYLISTED_KEYS
    - serializable: content must be JSON serializable
    - max_size: serialized content must not exceed the configured ceiling
"""

from __future__ import annotations

import json
from typing import Any

from ..errors import ValidationError

DEFAULT_MAX_CONTENT_BYTES = 5 * 1024 * 1024

DENYLISTED_KEYS = frozenset(
    {
        "__proto__",
        "constructor",
        "prototype",
        "__class__",
        "__dict__",
    }
)


def _scan_keys(content: Any) -> None:
    # Explicit stack: arbitrarily deep content must not hit the recursion limit.
    stack: list[tuple[Any, str]] = [(content, "$")]
    while stack:
        value, path = stack.pop()
        if isinstance(value, dict):
            for key, child in value.items():
                if not isinstance(key, str):
                    raise ValidationError(
                        f"Object keys must be strings, got {type(key).__name__}: {key!r}",
                        rule="key_type",
                        path=f"{path}[{key!r}]",
                    )
                if key in DENYLISTED_KEYS:
                    raise ValidationError(
                        f"Malicious key detected: {key}",
                        rule="denylisted_key",
                        path=f"{path}.{key}",
                    )
                stack.append((child, f"{path}.{key}"))
        elif isinstance(value, (list, tuple)):
            for index, child in enumerate(value):
                stack.append((child, f"{path}[{index}]"))


def validate_content(content: Any, max_bytes: int = DEFAULT_MAX_CONTENT_BYTES) -> None:
    """Validate diagram content.

    Args:
        content: Decoded diagram content
        max_bytes: Size ceiling for the serialized content

    Raises:
        ValidationError: With the violated rule and offending path
    """
    if not isinstance(content, dict):
        raise ValidationError(
            "Invalid JSON root content. Must be an object.", rule="root", path="$"
        )

    for key in ("nodes", "edges"):
        if key in content and not isinstance(content[key], list):
            raise ValidationError(
                f'Invalid structure: "{key}" must be an array.',
                rule=f"{key}_type",
                path=f"$.{key}",
            )

    _scan_keys(content)

    try:
        serialized = json.dumps(content, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError, RecursionError) as exc:
        raise ValidationError(
            f"Diagram content is not JSON serializable: {exc}",
            rule="serializable",
            path="$",
        ) from exc

    size = len(serialized.encode("utf-8"))
    if size > max_bytes:
        raise ValidationError(
            f"Diagram content exceeds {max_bytes} byte limit ({size} bytes).",
            rule="max_size",
            path="$",
        )
