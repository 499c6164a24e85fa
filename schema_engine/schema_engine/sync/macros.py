"""Seed-data macros.

A string field of the form ``::table(column):key=value,key2=value2`` is
replaced by ``column`` of the first ``table`` row matching the criteria.
Rows already synced in the current batch are searched first, then the
database is queried for a single row.  Numeric criteria values are compared
as numbers.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from schema_engine.diff.value_diff import values_equal
from schema_engine.errors import DataSyncError
from schema_engine.executor.base import DDLExecutor

logger = logging.getLogger(__name__)

MACRO_RE = re.compile(r"^::(?P<table>\w+)\((?P<column>\w+)\):(?P<criteria>[\w=,]+)$")


def _coerce(value: str) -> Any:
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def parse_criteria(text: str) -> dict[str, Any]:
    """Parse ``k=v,k2=v2`` into a criteria mapping."""
    criteria: dict[str, Any] = {}
    for part in text.split(","):
        key, sep, value = part.partition("=")
        if not sep or not key:
            raise DataSyncError(f"Invalid macro criteria '{text}'.")
        criteria[key] = _coerce(value)
    return criteria


def is_macro(value: Any) -> bool:
    return isinstance(value, str) and MACRO_RE.match(value) is not None


def resolve_macro(
    value: str,
    synced: dict[str, list[dict[str, Any]]],
    executor: DDLExecutor,
) -> Any:
    """Return the value a macro expression refers to.

    Raises
    ------
    DataSyncError
        If no row matches the macro's criteria.
    """
    match = MACRO_RE.match(value)
    if match is None:
        return value
    table, column = match.group("table"), match.group("column")
    criteria = parse_criteria(match.group("criteria"))

    for row in synced.get(table, []):
        if all(key in row and values_equal(expected, row[key]) for key, expected in criteria.items()):
            return row.get(column)

    rows = executor.select_rows(table, criteria, limit=1)
    if rows:
        return rows[0].get(column)

    raise DataSyncError(f"Macro '{value}' did not find a value.")


def resolve_row_macros(
    row: dict[str, Any],
    synced: dict[str, list[dict[str, Any]]],
    executor: DDLExecutor,
) -> dict[str, Any]:
    """Return a copy of *row* with every macro field resolved."""
    resolved = {}
    for name, field in row.items():
        if is_macro(field):
            resolved[name] = resolve_macro(field, synced, executor)
            logger.debug("Resolved macro %s for column '%s' to %r", field, name, resolved[name])
        else:
            resolved[name] = field
    return resolved
