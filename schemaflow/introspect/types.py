"""
Type inference for sampled document values.

Sampled values are mapped onto a closed set of coarse type tags by explicit
isinstance checks. The tags are what the diagram editor shows for document
collections.
"""

from __future__ import annotations

import datetime
import decimal
from collections.abc import Mapping
from enum import Enum
from typing import Any

from bson import Binary, DBRef, Decimal128, ObjectId, Timestamp


class InferredType(Enum):
    """Coarse type of a sampled value."""

    STRING = "String"
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    ARRAY = "Array"
    OBJECT_ID = "ObjectId"
    DATE = "Date"
    BINARY = "Binary"
    OBJECT = "Object"


def infer_type(value: Any) -> InferredType:
    """Infer the type tag of one sampled value.

    Null maps to String: a single sample cannot say more, and the field is
    marked nullable anyway.
    """
    if value is None:
        return InferredType.STRING
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return InferredType.BOOLEAN
    if isinstance(value, (list, tuple)):
        return InferredType.ARRAY
    if isinstance(value, (ObjectId, DBRef)):
        return InferredType.OBJECT_ID
    if isinstance(value, (datetime.datetime, datetime.date, Timestamp)):
        return InferredType.DATE
    if isinstance(value, (int, float, decimal.Decimal, Decimal128)):
        return InferredType.NUMBER
    if isinstance(value, str):
        return InferredType.STRING
    if isinstance(value, (bytes, Binary)):
        return InferredType.BINARY
    if isinstance(value, Mapping):
        return InferredType.OBJECT
    return InferredType.OBJECT
