"""Build a complete schema directly from a :class:`SchemaDocument`.

Used for the bootstrap fast path: a database with no ledger and no structure
gets the newest schema in one pass instead of replaying every artifact.
Objects are created in dependency order: tables, primary keys, the other
constraints, indexes, views, functions.

With ``keep_tables`` the database may already hold some of the objects.
Identical ones are skipped; an existing object whose definition differs
raises :class:`ReplayError`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from schema_engine.errors import ReplayError
from schema_engine.executor.base import DDLExecutor, SchemaInspector
from schema_engine.models.schema import Constraint, ConstraintType, SchemaDocument

logger = logging.getLogger(__name__)


def _existing_or_create(
    label: str,
    current: Any,
    wanted: Any,
    create: Callable[[], None],
    keep_tables: bool,
    dry_run: bool,
) -> None:
    if current is not None:
        if not keep_tables:
            raise ReplayError(f"Can not create {label}: it already exists.")
        if current != wanted:
            raise ReplayError(f"Can not keep {label}: the existing definition differs.")
        logger.info("Keeping existing %s", label)
        return
    if dry_run:
        logger.info("Would create %s", label)
        return
    logger.info("Creating %s", label)
    create()


def create_schema(
    schema: SchemaDocument,
    executor: DDLExecutor,
    inspector: SchemaInspector,
    keep_tables: bool = False,
    dry_run: bool = False,
) -> None:
    """Create every object of *schema*.

    The caller owns the transaction.

    Parameters
    ----------
    schema:
        The schema to build.
    executor, inspector:
        The database collaborators.
    keep_tables:
        Skip objects that already exist with an identical definition.
    dry_run:
        Log the objects that would be created without creating them.

    Raises
    ------
    ReplayError
        If an object already exists (and differs, under ``keep_tables``) or
        an executor call fails.
    """
    try:
        _create_schema(schema, executor, inspector, keep_tables, dry_run)
    except ReplayError as exc:
        logger.error("Schema creation failed: %s", exc)
        raise
    except Exception as exc:
        logger.error("Schema creation failed: %s", exc)
        raise ReplayError(f"Schema creation failed: {exc}") from exc


def _create_schema(
    schema: SchemaDocument,
    executor: DDLExecutor,
    inspector: SchemaInspector,
    keep_tables: bool,
    dry_run: bool,
) -> None:
    existing_tables = set(inspector.list_tables())

    for name, columns in schema.tables.items():
        current = None
        if name in existing_tables:
            current = [c.definition() for c in inspector.describe_table(name)]
        _existing_or_create(
            f"table '{name}'",
            current,
            [c.definition() for c in columns],
            lambda name=name, columns=columns: executor.create_table(name, columns),
            keep_tables,
            dry_run,
        )

    constraints: list[Constraint] = [c for by_name in schema.constraints.values() for c in by_name.values()]
    constraints.sort(key=lambda c: c.type is not ConstraintType.PRIMARY_KEY)
    for constraint in constraints:
        current = None
        if constraint.table in existing_tables:
            found = inspector.list_constraints(table=constraint.table).get(constraint.name)
            current = found.model_dump() if found is not None else None
        # A primary key matching the one a new table was created with is adopted by the executor.
        _existing_or_create(
            f"{constraint.type.value} constraint '{constraint.name}' on '{constraint.table}'",
            current,
            constraint.model_dump(),
            lambda constraint=constraint: executor.add_constraint(constraint),
            keep_tables,
            dry_run,
        )

    for table, by_name in schema.indexes.items():
        current_indexes = inspector.list_indexes(table=table) if table in existing_tables else {}
        for name, index in by_name.items():
            found_index = current_indexes.get(name)
            _existing_or_create(
                f"index '{name}' on '{table}'",
                found_index.model_dump() if found_index is not None else None,
                index.model_dump(),
                lambda index=index: executor.create_index(index),
                keep_tables,
                dry_run,
            )

    existing_views = set(inspector.list_views())
    for name, view in schema.views.items():
        found_view = inspector.describe_view(name) if name in existing_views else None
        _existing_or_create(
            f"view '{name}'",
            found_view.model_dump() if found_view is not None else None,
            view.model_dump(),
            lambda view=view: executor.create_view(view),
            keep_tables,
            dry_run,
        )

    existing_functions = set(inspector.list_functions())
    for name, overloads in schema.functions.items():
        current_overloads = {}
        if name in existing_functions:
            current_overloads = {f.signature: f for f in inspector.describe_function(name)}
        for function in overloads:
            found_function = current_overloads.get(function.signature)
            _existing_or_create(
                f"function '{function.full_name}'",
                found_function.model_dump() if found_function is not None else None,
                function.model_dump(),
                lambda function=function: executor.create_function(function),
                keep_tables,
                dry_run,
            )
