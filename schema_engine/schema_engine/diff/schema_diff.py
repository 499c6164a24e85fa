"""Structural diff engine for comparing a stored schema against a live one.

Produces a :class:`SchemaDiff` classifying every table, constraint, index,
view and function as created, removed, altered or (tables only) renamed.
Output lists follow the iteration order of the input documents, which is the
inspector's order for the live side, so identical inputs always yield an
identical diff.

Rename detection is a first-fit heuristic: a created table whose column
*names* (as a multiset) equal those of a removed table is treated as a rename
of the first such removed table.  A rename combined with a column change in
the same snapshot is therefore reported as a create plus a remove.
"""

from __future__ import annotations

import logging
import warnings
from collections import Counter

from schema_engine.diff.value_diff import values_equal
from schema_engine.errors import AmbiguousRenameWarning
from schema_engine.models.diff import (
    ColumnDelta,
    FunctionChange,
    SchemaDiff,
    TableDefinition,
    TableDiff,
    TableRenameDiff,
    ViewChange,
)
from schema_engine.models.schema import Column, SchemaDocument

logger = logging.getLogger(__name__)


def compute_schema_diff(
    old: SchemaDocument | None,
    new: SchemaDocument,
    *,
    initial: bool | None = None,
) -> SchemaDiff:
    """Compare *old* (stored) against *new* (live) and classify every change.

    Parameters
    ----------
    old:
        The previously recorded schema.  ``None`` or an empty document means
        the schema is being initialised.
    new:
        The freshly inspected schema.
    initial:
        Force (or suppress) initial-snapshot mode.  Defaults to
        ``old is None or old.is_empty``.  Rename detection is skipped in
        initial mode.

    Returns
    -------
    SchemaDiff
        The diff.  ``diff.is_empty`` signals "no changes".
    """
    old = old or SchemaDocument()
    if initial is None:
        initial = old.is_empty

    diff = SchemaDiff()

    _diff_tables(old, new, diff)
    renames: dict[str, str] = {} if initial else _detect_renames(old, new, diff)
    _diff_constraints(old, new, diff, renames)
    _diff_indexes(old, new, diff, renames)
    _diff_views(old, new, diff)
    _diff_functions(old, new, diff)

    return diff


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


def _table_definition(schema: SchemaDocument, name: str) -> TableDefinition:
    return TableDefinition(
        name=name,
        columns=list(schema.tables.get(name, [])),
        constraints=list(schema.constraints.get(name, {}).values()),
        indexes=list(schema.indexes.get(name, {}).values()),
    )


def _diff_columns(table: str, old_columns: list[Column], new_columns: list[Column]) -> ColumnDelta:
    delta = ColumnDelta()
    old_by_name = {col.name: col for col in old_columns}
    new_names = {col.name for col in new_columns}

    for col in new_columns:
        previous = old_by_name.get(col.name)
        if previous is None:
            logger.info("+ Column '%s.%s' is new.", table, col.name)
            delta.add.append(col)
        elif previous.definition() != col.definition():
            logger.warning(
                "Column '%s.%s' has changed but column alteration is not supported; ignoring the change.",
                table,
                col.name,
            )
            delta.unsupported.append(col.name)

    for col in old_columns:
        if col.name not in new_names:
            logger.info("- Column '%s.%s' has been removed.", table, col.name)
            delta.drop.append(col)

    return delta


def _diff_tables(old: SchemaDocument, new: SchemaDocument, diff: SchemaDiff) -> None:
    for name, columns in new.tables.items():
        if name not in old.tables:
            logger.info("+ Table '%s' has been created.", name)
            diff.table.create.append(TableDefinition(name=name, columns=list(columns)))
            continue

        delta = _diff_columns(name, old.tables[name], columns)
        if delta.has_actions:
            logger.info("> Table '%s' has changed.", name)
            diff.table.alter[name] = ColumnDelta(add=delta.add, drop=delta.drop)
        if delta.unsupported:
            diff.unsupported[name] = delta.unsupported

    for name in old.tables:
        if name not in new.tables:
            logger.info("- Table '%s' has been removed.", name)
            diff.table.remove.append(_table_definition(old, name))


def _detect_renames(old: SchemaDocument, new: SchemaDocument, diff: SchemaDiff) -> dict[str, str]:
    """Convert matching create/remove pairs into renames.

    Returns a mapping of new table name -> old table name.
    """
    tables: TableDiff = diff.table
    renames: dict[str, str] = {}
    if not (tables.create and tables.remove):
        return renames

    logger.info("Looking for renamed tables.")

    for created in list(tables.create):
        created_names = Counter(col.name for col in created.columns)
        candidates = [
            removed for removed in tables.remove if Counter(col.name for col in removed.columns) == created_names
        ]
        if not candidates:
            continue

        removed = candidates[0]
        if len(candidates) > 1:
            message = (
                f"Table '{created.name}' matches {len(candidates)} removed tables "
                f"({', '.join(c.name for c in candidates)}); assuming a rename from '{removed.name}'."
            )
            logger.warning(message)
            warnings.warn(message, AmbiguousRenameWarning, stacklevel=3)

        logger.info("> Table '%s' has been renamed to '%s'.", removed.name, created.name)
        tables.rename.append(TableRenameDiff(old_name=removed.name, new_name=created.name))
        tables.create.remove(created)
        tables.remove.remove(removed)
        renames[created.name] = removed.name

        unsupported = _diff_columns(created.name, removed.columns, new.tables[created.name]).unsupported
        if unsupported:
            diff.unsupported[created.name] = unsupported

    return renames


# ---------------------------------------------------------------------------
# Constraints & indexes
# ---------------------------------------------------------------------------


def _diff_constraints(
    old: SchemaDocument,
    new: SchemaDocument,
    diff: SchemaDiff,
    renames: dict[str, str],
) -> None:
    for table in new.tables:
        current = new.constraints.get(table, {})
        previous = old.constraints.get(renames.get(table, table), {})

        for name, constraint in current.items():
            if name not in previous:
                logger.info("+ Added new constraint '%s' on table '%s'.", name, table)
                diff.constraint.create.append(constraint)

        for name, constraint in previous.items():
            if name not in current:
                logger.info("- Constraint '%s' has been removed from table '%s'.", name, table)
                diff.constraint.remove.append(constraint)


def _diff_indexes(
    old: SchemaDocument,
    new: SchemaDocument,
    diff: SchemaDiff,
    renames: dict[str, str],
) -> None:
    for table in new.tables:
        current = new.indexes.get(table, {})
        previous = old.indexes.get(renames.get(table, table), {})

        for name, index in current.items():
            if name not in previous:
                logger.info("+ Added new index '%s' on table '%s'.", name, table)
                diff.index.create.append(index)

        for name, index in previous.items():
            if name not in current:
                logger.info("- Index '%s' has been removed from table '%s'.", name, table)
                diff.index.remove.append(index)


# ---------------------------------------------------------------------------
# Views & functions
# ---------------------------------------------------------------------------


def _diff_views(old: SchemaDocument, new: SchemaDocument, diff: SchemaDiff) -> None:
    for name, view in new.views.items():
        previous = old.views.get(name)
        if previous is None:
            logger.info("+ View '%s' has been created.", name)
            diff.view.create.append(view)
        elif previous.content != view.content:
            logger.info("> View '%s' has changed.", name)
            diff.view.alter.append(ViewChange(before=previous, after=view))

    for name, view in old.views.items():
        if name not in new.views:
            logger.info("- View '%s' has been removed.", name)
            diff.view.remove.append(view)


def _diff_functions(old: SchemaDocument, new: SchemaDocument, diff: SchemaDiff) -> None:
    for name, overloads in new.functions.items():
        previous = {fn.signature: fn for fn in old.functions.get(name, [])}
        for fn in overloads:
            match = previous.get(fn.signature)
            if match is None:
                logger.info("+ Function '%s' has been created.", fn.full_name)
                diff.function.create.append(fn)
            elif not values_equal(fn.model_dump(), match.model_dump()):
                logger.info("> Function '%s' has changed.", fn.full_name)
                diff.function.alter.append(FunctionChange(before=match, after=fn))

    for name, overloads in old.functions.items():
        current = {fn.signature for fn in new.functions.get(name, [])}
        for fn in overloads:
            if fn.signature not in current:
                logger.info("- Function '%s' has been removed.", fn.full_name)
                diff.function.remove.append(fn)
