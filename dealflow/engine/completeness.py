"""
Field completeness — decides whether a record value counts as "filled".

The policy is fixed:
  - None                      → not filled
  - string                    → filled iff it has non-whitespace content
  - number                    → always filled (0 is a real value)
  - list / tuple / set        → filled iff non-empty
  - bool                      → always filled (False is a real value)
  - anything else (date, ...) → filled
"""

from __future__ import annotations

from collections.abc import Set
from decimal import Decimal
from typing import Any

from dealflow.engine.types import FieldValueKind


def classify_value(value: Any) -> FieldValueKind:
    """Map a raw record value onto its FieldValueKind."""
    if value is None:
        return FieldValueKind.NULL
    # bool is a subclass of int; check it first
    if isinstance(value, bool):
        return FieldValueKind.BOOL
    if isinstance(value, str):
        return FieldValueKind.STR
    if isinstance(value, (int, float, Decimal)):
        return FieldValueKind.NUM
    if isinstance(value, (list, tuple, Set)):
        return FieldValueKind.STR_ARRAY
    return FieldValueKind.OTHER


def is_filled(value: Any, declared_type: str | None = None) -> bool:
    """Return True when ``value`` satisfies a stage exit requirement.

    ``declared_type`` is the schema type of the field. It is informational:
    the runtime kind of the value decides, so a numeric 0 stored in a text
    column still counts as filled.
    """
    kind = classify_value(value)
    if kind is FieldValueKind.NULL:
        return False
    if kind is FieldValueKind.STR:
        return len(value.strip()) > 0
    if kind is FieldValueKind.NUM:
        return True
    if kind is FieldValueKind.STR_ARRAY:
        return len(value) > 0
    if kind is FieldValueKind.BOOL:
        return True
    return True
