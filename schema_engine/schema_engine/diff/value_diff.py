"""Generic recursive comparison over semantic value trees.

Values are maps, sequences and scalars as they come out of JSON documents or
database rows.  Used by the data synchronizer to decide which declared fields
differ from a live row, and by the diff engine to compare function
definitions.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def _decode_json_text(value: Any) -> Any:
    """Decode a JSON string stored in a text column; other values pass through."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def _scalars_equal(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, bool) or isinstance(right, bool):
        return left == right
    if isinstance(left, (int, float, Decimal)) and isinstance(right, (int, float, Decimal)):
        return Decimal(str(left)) == Decimal(str(right))
    if type(left) is type(right):
        return left == right
    # Drivers hand back dates, decimals and UUIDs where documents hold strings.
    return str(left) == str(right)


def values_equal(left: Any, right: Any) -> bool:
    """Return True when *left* and *right* are semantically equal."""
    if isinstance(left, Mapping) or isinstance(right, Mapping):
        left, right = _decode_json_text(left), _decode_json_text(right)
        if not (isinstance(left, Mapping) and isinstance(right, Mapping)):
            return False
        if left.keys() != right.keys():
            return False
        return all(values_equal(left[key], right[key]) for key in left)

    if _is_sequence(left) or _is_sequence(right):
        left, right = _decode_json_text(left), _decode_json_text(right)
        if not (_is_sequence(left) and _is_sequence(right)):
            return False
        if len(left) != len(right):
            return False
        return all(values_equal(a, b) for a, b in zip(left, right))

    return _scalars_equal(left, right)


def deep_diff(declared: Any, actual: Any) -> Any:
    """Return the parts of *declared* that differ from *actual*.

    For two mappings the result is a mapping holding only the differing keys
    (recursing into nested mappings).  For any other pair the result is
    *declared* itself when the values differ.  An empty mapping (or ``None``
    for non-mappings) means no difference.
    """
    if isinstance(declared, Mapping):
        actual = _decode_json_text(actual)
        if not isinstance(actual, Mapping):
            return dict(declared)
        result: dict[str, Any] = {}
        for key, value in declared.items():
            if key not in actual:
                result[key] = value
                continue
            if isinstance(value, Mapping):
                nested = deep_diff(value, actual[key])
                if nested:
                    result[key] = nested
            elif not values_equal(value, actual[key]):
                result[key] = value
        return result

    if values_equal(declared, actual):
        return None
    return declared


def changed_fields(declared: Mapping[str, Any], actual: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``{field: declared_value}`` for every top-level field that differs.

    Nested values are compared recursively but reported whole, because a row
    update replaces the column value as a unit.
    """
    return {key: value for key, value in declared.items() if key in deep_diff(declared, actual)}
