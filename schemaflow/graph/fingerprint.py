"""
Content fingerprinting for diagram graphs.

The fingerprint is the only change detector used by the save path: two
contents with the same fingerprint are treated as the same diagram and the
save does not create a history snapshot.

Canonical form:
    - JSON with sorted keys and no whitespace
    - Top-level ``nodes`` and ``edges`` sorted by id, since they are sets
    - Everything else (field order, nested lists) kept as-is

Invariants:
    - fingerprint(x) == fingerprint(json.loads(json.dumps(x)))
    - Insertion order of nodes/edges does not affect the fingerprint
    - Field order inside a node does affect it
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Union

from .model import DiagramGraph

_SET_KEYS = ("nodes", "edges")


def _sorted_by_id(items: Any) -> Any:
    if not isinstance(items, list):
        return items
    if not all(isinstance(item, dict) and isinstance(item.get("id"), str) for item in items):
        return items
    return sorted(items, key=lambda item: item["id"])


def canonical_json(content: Union[DiagramGraph, dict[str, Any], None]) -> str:
    """Serialize content into its canonical JSON form."""
    if isinstance(content, DiagramGraph):
        content = content.to_dict()
    if content is None:
        content = {}
    if isinstance(content, dict):
        content = {
            key: _sorted_by_id(value) if key in _SET_KEYS else value
            for key, value in content.items()
        }
    return json.dumps(content, sort_keys=True, separators=(",", ":"))


def fingerprint(content: Union[DiagramGraph, dict[str, Any], None]) -> str:
    """Compute the SHA-256 fingerprint of diagram content.

    Returns:
        Fingerprint string in format 'sha256:<hash>'
    """
    digest = hashlib.sha256(canonical_json(content).encode("utf-8")).hexdigest()
    return f"sha256:{digest}"
