"""Capture a live database's structure as a :class:`SchemaDocument`.

This module does **not** talk to a database directly: it drives a
:class:`~schema_engine.executor.base.SchemaInspector` and normalizes what the
inspector reports.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from schema_engine.errors import InspectionError
from schema_engine.executor.base import SchemaInspector
from schema_engine.models.schema import Column, Constraint, FunctionDef, Index, SchemaDocument, ViewDef

logger = logging.getLogger(__name__)


def _renumber(columns: list[Column]) -> list[Column]:
    return [col.model_copy(update={"ordinal_position": pos}) for pos, col in enumerate(columns, start=1)]


def capture_schema(
    inspector: SchemaInspector,
    ignore_tables: Iterable[str] = (),
    version: int = 0,
) -> SchemaDocument:
    """Inspect every structural object reachable through *inspector*.

    Parameters
    ----------
    inspector:
        The live database's schema inspector.
    ignore_tables:
        Tables never captured (the version ledger, for example).  Constraints
        and indexes on them are skipped too.
    version:
        Version stamped on the resulting document.

    Returns
    -------
    SchemaDocument
        The captured structure.  Column ordinals are renumbered 1..n.

    Raises
    ------
    InspectionError
        If any inspector call fails.
    """
    ignored = set(ignore_tables)
    try:
        return _capture(inspector, ignored, version)
    except InspectionError:
        raise
    except Exception as exc:
        logger.error("Schema inspection failed: %s", exc)
        raise InspectionError(f"Schema inspection failed: {exc}") from exc


def _capture(inspector: SchemaInspector, ignored: set[str], version: int) -> SchemaDocument:
    tables: dict[str, list[Column]] = {}
    constraints: dict[str, dict[str, Constraint]] = {}
    indexes: dict[str, dict[str, Index]] = {}

    for table in inspector.list_tables():
        if table in ignored:
            continue
        tables[table] = _renumber(inspector.describe_table(table))

        table_constraints = inspector.list_constraints(table=table)
        if table_constraints:
            constraints[table] = table_constraints

        # An index named after a constraint backs that constraint.
        table_indexes = {
            name: index for name, index in inspector.list_indexes(table=table).items() if name not in table_constraints
        }
        if table_indexes:
            indexes[table] = table_indexes

    views: dict[str, ViewDef] = {}
    for name in inspector.list_views():
        view = inspector.describe_view(name)
        if view is not None:
            views[name] = view

    functions: dict[str, list[FunctionDef]] = {}
    for name in inspector.list_functions():
        overloads = inspector.describe_function(name)
        if overloads:
            functions[name] = overloads

    logger.debug(
        "Captured %d tables, %d views and %d functions",
        len(tables),
        len(views),
        len(functions),
    )
    return SchemaDocument(
        version=version,
        tables=tables,
        constraints=constraints,
        indexes=indexes,
        views=views,
        functions=functions,
    )


def has_structure(inspector: SchemaInspector, ignore_tables: Iterable[str] = ()) -> bool:
    """Return True when the database holds any table, view or function not in *ignore_tables*."""
    ignored = set(ignore_tables)
    try:
        if any(table not in ignored for table in inspector.list_tables()):
            return True
        return bool(inspector.list_views() or inspector.list_functions())
    except Exception as exc:
        raise InspectionError(f"Schema inspection failed: {exc}") from exc
