"""SQLAlchemy-backed schema inspector and DDL executor.

Inspection uses SQLAlchemy's reflection API (plus a catalog query for
PostgreSQL functions).  Structural changes go through Alembic's
:class:`~alembic.operations.Operations` so that dialect differences are
handled by Alembic; on SQLite, constraint and column changes run in batch
mode, which recreates the table.  Row operations use SQLAlchemy Core against
reflected tables.

The inspector reads through the executor's connection, so inside a
transaction it sees the uncommitted structure.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import CompileError
from sqlalchemy.types import UserDefinedType

from schema_engine.executor.database import get_engine
from schema_engine.introspection.normalizer import normalize_default, normalize_view_body
from schema_engine.models.artifact import ColumnAlteration
from schema_engine.models.schema import (
    Column,
    Constraint,
    ConstraintType,
    ForeignKeyReference,
    FunctionDef,
    FunctionParameter,
    Index,
    ViewDef,
)

logger = logging.getLogger(__name__)

# Alembic's ``type_`` argument for drop_constraint.
_ALEMBIC_CONSTRAINT_TYPES: dict[ConstraintType, str] = {
    ConstraintType.PRIMARY_KEY: "primary",
    ConstraintType.FOREIGN_KEY: "foreignkey",
    ConstraintType.UNIQUE: "unique",
    ConstraintType.CHECK: "check",
}

_PG_FUNCTION_NAMES = sa.text(
    """
    SELECT DISTINCT p.proname
    FROM pg_proc p
    JOIN pg_namespace n ON n.oid = p.pronamespace
    WHERE n.nspname = current_schema() AND p.prokind = 'f'
    ORDER BY p.proname
    """
)

_PG_FUNCTION_OVERLOADS = sa.text(
    """
    SELECT
        p.proargnames AS arg_names,
        ARRAY(
            SELECT format_type(a.t, NULL)
            FROM unnest(p.proargtypes::oid[]) WITH ORDINALITY AS a(t, i)
            ORDER BY a.i
        ) AS arg_types,
        pg_get_function_result(p.oid) AS return_type,
        l.lanname AS language,
        p.prosrc AS body
    FROM pg_proc p
    JOIN pg_namespace n ON n.oid = p.pronamespace
    JOIN pg_language l ON l.oid = p.prolang
    WHERE n.nspname = current_schema() AND p.prokind = 'f' AND p.proname = :name
    ORDER BY p.oid
    """
)


class _RawType(UserDefinedType):
    """A column type rendered verbatim from a captured type string."""

    cache_ok = True

    def __init__(self, spec: str) -> None:
        self.spec = spec

    def get_col_spec(self, **kw: Any) -> str:
        return self.spec


def _type_spec(data_type: str, length: int | None) -> str:
    return data_type if length is None else f"{data_type}({length})"


def _sa_column(column: Column) -> sa.Column:
    return sa.Column(
        column.name,
        _RawType(_type_spec(column.data_type, column.length)),
        nullable=column.nullable,
        server_default=sa.text(column.default) if column.default is not None else None,
    )


class SqlAlchemyExecutor:
    """Execute structural and row-level changes through SQLAlchemy and Alembic.

    Parameters
    ----------
    engine:
        Engine from :func:`schema_engine.executor.database.get_engine`.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.dialect = engine.dialect.name
        self._conn: Connection | None = None

    # -- Connection & transaction management -----------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the block in one transaction; nested blocks join the outer one."""
        if self._conn is not None:
            yield
            return

        with self.engine.connect() as conn:
            with conn.begin():
                self._conn = conn
                try:
                    yield
                finally:
                    self._conn = None

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        """Yield the active transaction's connection, or a short-lived one."""
        if self._conn is not None:
            yield self._conn
            return
        with self.engine.begin() as conn:
            yield conn

    def _quote(self, conn: Connection, name: str) -> str:
        return conn.dialect.identifier_preparer.quote(name)

    def _reflect(self, conn: Connection, table: str) -> sa.Table:
        return sa.Table(table, sa.MetaData(), autoload_with=conn)

    def close(self) -> None:
        self.engine.dispose()

    # -- Tables ----------------------------------------------------------------

    def create_table(self, name: str, columns: list[Column]) -> None:
        pk_columns = [col.name for col in columns if col.primary_key]
        elements: list[Any] = [_sa_column(col) for col in columns]
        if pk_columns:
            elements.append(sa.PrimaryKeyConstraint(*pk_columns, name=f"{name}_pkey"))
        with self.connection() as conn:
            Operations(MigrationContext.configure(conn)).create_table(name, *elements)

    def drop_table(self, name: str) -> None:
        with self.connection() as conn:
            Operations(MigrationContext.configure(conn)).drop_table(name)

    def rename_table(self, old_name: str, new_name: str) -> None:
        with self.connection() as conn:
            Operations(MigrationContext.configure(conn)).rename_table(old_name, new_name)

    def add_column(self, table: str, column: Column) -> None:
        with self.connection() as conn:
            Operations(MigrationContext.configure(conn)).add_column(table, _sa_column(column))

    def alter_column(self, table: str, column: str, alteration: ColumnAlteration) -> None:
        changes = alteration.changes()
        kwargs: dict[str, Any] = {}
        if changes.get("name"):
            kwargs["new_column_name"] = changes["name"]
        if "data_type" in changes and changes["data_type"]:
            kwargs["type_"] = _RawType(_type_spec(changes["data_type"], changes.get("length")))
        if changes.get("nullable") is not None:
            kwargs["nullable"] = changes["nullable"]
        if "default" in changes:
            default = changes["default"]
            kwargs["server_default"] = sa.text(default) if default is not None else None

        with self.connection() as conn:
            with Operations(MigrationContext.configure(conn)).batch_alter_table(table) as batch:
                batch.alter_column(column, **kwargs)

    def drop_column(self, table: str, column: str) -> None:
        with self.connection() as conn:
            with Operations(MigrationContext.configure(conn)).batch_alter_table(table) as batch:
                batch.drop_column(column)

    # -- Constraints & indexes ---------------------------------------------------

    def add_constraint(self, constraint: Constraint) -> None:
        with self.connection() as conn:
            if constraint.type is ConstraintType.PRIMARY_KEY:
                current = sa.inspect(conn).get_pk_constraint(constraint.table)
                if current.get("constrained_columns") == constraint.columns:
                    logger.debug(
                        "Primary key on %s(%s) already exists; skipping '%s'",
                        constraint.table,
                        ", ".join(constraint.columns),
                        constraint.name,
                    )
                    return

            with Operations(MigrationContext.configure(conn)).batch_alter_table(constraint.table) as batch:
                if constraint.type is ConstraintType.PRIMARY_KEY:
                    batch.create_primary_key(constraint.name, constraint.columns)
                elif constraint.type is ConstraintType.FOREIGN_KEY and constraint.references is not None:
                    batch.create_foreign_key(
                        constraint.name,
                        constraint.references.table,
                        constraint.columns,
                        constraint.references.columns,
                        onupdate=constraint.update_rule,
                        ondelete=constraint.delete_rule,
                    )
                elif constraint.type is ConstraintType.UNIQUE:
                    batch.create_unique_constraint(constraint.name, constraint.columns)
                else:
                    batch.create_check_constraint(constraint.name, sa.text(constraint.definition or ""))

    def drop_constraint(self, table: str, name: str, type: ConstraintType | None = None) -> None:
        with self.connection() as conn:
            with Operations(MigrationContext.configure(conn)).batch_alter_table(table) as batch:
                batch.drop_constraint(name, type_=_ALEMBIC_CONSTRAINT_TYPES.get(type) if type else None)

    def create_index(self, index: Index) -> None:
        with self.connection() as conn:
            Operations(MigrationContext.configure(conn)).create_index(
                index.name, index.table, index.columns, unique=index.unique
            )

    def drop_index(self, table: str, name: str) -> None:
        with self.connection() as conn:
            Operations(MigrationContext.configure(conn)).drop_index(name, table_name=table)

    # -- Views & functions -------------------------------------------------------

    def create_view(self, view: ViewDef) -> None:
        with self.connection() as conn:
            conn.exec_driver_sql(f"CREATE VIEW {self._quote(conn, view.name)} AS {view.content}")

    def drop_view(self, name: str) -> None:
        with self.connection() as conn:
            conn.exec_driver_sql(f"DROP VIEW {self._quote(conn, name)}")

    def create_function(self, function: FunctionDef) -> None:
        if self.dialect != "postgresql":
            raise ValueError(f"Stored functions are not supported on {self.dialect}.")
        params = ", ".join(f"{p.name} {p.type}" if p.name else p.type for p in function.parameters)
        with self.connection() as conn:
            conn.exec_driver_sql(
                f"CREATE OR REPLACE FUNCTION {self._quote(conn, function.name)}({params}) "
                f"RETURNS {function.return_type} LANGUAGE {function.language} "
                f"AS $body${function.body}$body$"
            )

    def drop_function(self, name: str, parameter_types: list[str]) -> None:
        if self.dialect != "postgresql":
            raise ValueError(f"Stored functions are not supported on {self.dialect}.")
        with self.connection() as conn:
            conn.exec_driver_sql(f"DROP FUNCTION {self._quote(conn, name)}({', '.join(parameter_types)})")

    # -- Raw SQL & rows ----------------------------------------------------------

    def execute(self, sql: str) -> None:
        with self.connection() as conn:
            conn.exec_driver_sql(sql)

    def _values(self, table: sa.Table, values: dict[str, Any]) -> dict[str, Any]:
        unknown = [name for name in values if name not in table.c]
        if unknown:
            raise ValueError(f"Table '{table.name}' has no column(s) {', '.join(unknown)}.")
        result = {}
        for name, value in values.items():
            if isinstance(value, (dict, list)) and not isinstance(table.c[name].type, sa.JSON):
                value = json.dumps(value)
            result[name] = value
        return result

    def _criteria(self, table: sa.Table, where: dict[str, Any] | None) -> list[Any]:
        return [table.c[name] == value for name, value in self._values(table, where or {}).items()]

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        with self.connection() as conn:
            target = self._reflect(conn, table)
            result = conn.execute(target.insert().values(**self._values(target, row)))
            pk_names = [col.name for col in target.primary_key.columns]
            inserted = result.inserted_primary_key or ()
            return dict(zip(pk_names, inserted))

    def update(self, table: str, values: dict[str, Any], where: dict[str, Any] | None) -> int:
        with self.connection() as conn:
            target = self._reflect(conn, table)
            stmt = target.update().where(*self._criteria(target, where)).values(**self._values(target, values))
            return conn.execute(stmt).rowcount

    def delete(self, table: str, where: dict[str, Any] | None) -> int:
        with self.connection() as conn:
            target = self._reflect(conn, table)
            return conn.execute(target.delete().where(*self._criteria(target, where))).rowcount

    def select_rows(
        self,
        table: str,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        with self.connection() as conn:
            target = self._reflect(conn, table)
            stmt = sa.select(target).where(*self._criteria(target, where))
            if limit is not None:
                stmt = stmt.limit(limit)
            return [dict(row._mapping) for row in conn.execute(stmt)]

    def truncate(self, table: str) -> None:
        with self.connection() as conn:
            if self.dialect == "postgresql":
                conn.exec_driver_sql(f"TRUNCATE TABLE {self._quote(conn, table)}")
            else:
                conn.execute(self._reflect(conn, table).delete())


class SqlAlchemyInspector:
    """Enumerate the live database structure through SQLAlchemy reflection.

    Names of unnamed SQLite constraints are synthesized the way PostgreSQL
    would name them (``<table>_pkey``, ``<table>_<columns>_fkey``,
    ``<table>_<columns>_key``) so that snapshots stay stable.
    """

    def __init__(self, executor: SqlAlchemyExecutor) -> None:
        self._executor = executor
        self.dialect = executor.dialect

    @contextmanager
    def _inspector(self) -> Iterator[tuple[Connection, sa.Inspector]]:
        with self._executor.connection() as conn:
            yield conn, sa.inspect(conn)

    def list_tables(self) -> list[str]:
        with self._inspector() as (_, insp):
            return sorted(insp.get_table_names())

    def describe_table(self, name: str) -> list[Column]:
        with self._inspector() as (conn, insp):
            pk = set(insp.get_pk_constraint(name).get("constrained_columns") or [])
            columns = []
            for position, info in enumerate(insp.get_columns(name), start=1):
                try:
                    type_string = info["type"].compile(dialect=conn.dialect)
                except CompileError:
                    type_string = "TEXT"
                columns.append(
                    Column(
                        name=info["name"],
                        ordinal_position=position,
                        data_type=type_string,
                        nullable=bool(info.get("nullable", True)) and info["name"] not in pk,
                        default=normalize_default(info.get("default"), self.dialect),
                        primary_key=info["name"] in pk,
                    )
                )
            return columns

    def list_constraints(
        self,
        table: str | None = None,
        type: ConstraintType | None = None,
    ) -> dict[str, Constraint]:
        tables = [table] if table is not None else self.list_tables()
        result: dict[str, Constraint] = {}
        with self._inspector() as (_, insp):
            for name in tables:
                for constraint in self._table_constraints(insp, name):
                    if type is None or constraint.type is type:
                        result[constraint.name] = constraint
        return result

    def _table_constraints(self, insp: sa.Inspector, table: str) -> list[Constraint]:
        found: list[Constraint] = []

        pk = insp.get_pk_constraint(table)
        if pk.get("constrained_columns"):
            found.append(
                Constraint(
                    name=pk.get("name") or f"{table}_pkey",
                    table=table,
                    type=ConstraintType.PRIMARY_KEY,
                    columns=pk["constrained_columns"],
                )
            )

        for fk in insp.get_foreign_keys(table):
            options = fk.get("options") or {}
            found.append(
                Constraint(
                    name=fk.get("name") or f"{table}_{'_'.join(fk['constrained_columns'])}_fkey",
                    table=table,
                    type=ConstraintType.FOREIGN_KEY,
                    columns=fk["constrained_columns"],
                    references=ForeignKeyReference(table=fk["referred_table"], columns=fk["referred_columns"]),
                    update_rule=options.get("onupdate"),
                    delete_rule=options.get("ondelete"),
                )
            )

        for uq in insp.get_unique_constraints(table):
            found.append(
                Constraint(
                    name=uq.get("name") or f"{table}_{'_'.join(uq['column_names'])}_key",
                    table=table,
                    type=ConstraintType.UNIQUE,
                    columns=uq["column_names"],
                )
            )

        for position, check in enumerate(insp.get_check_constraints(table), start=1):
            found.append(
                Constraint(
                    name=check.get("name") or f"{table}_check{position}",
                    table=table,
                    type=ConstraintType.CHECK,
                    definition=check["sqltext"],
                )
            )
        return found

    def list_indexes(self, table: str | None = None) -> dict[str, Index]:
        tables = [table] if table is not None else self.list_tables()
        result: dict[str, Index] = {}
        with self._inspector() as (_, insp):
            for name in tables:
                for info in insp.get_indexes(name):
                    columns = info.get("column_names") or []
                    # Expression indexes and constraint-backing indexes are not tracked.
                    if not info.get("name") or not columns or None in columns or info.get("duplicates_constraint"):
                        continue
                    result[info["name"]] = Index(
                        name=info["name"],
                        table=name,
                        columns=columns,
                        unique=bool(info.get("unique")),
                    )
        return result

    def list_views(self) -> list[str]:
        with self._inspector() as (_, insp):
            return sorted(insp.get_view_names())

    def describe_view(self, name: str) -> ViewDef | None:
        with self._inspector() as (_, insp):
            definition = insp.get_view_definition(name)
        if not definition:
            return None
        return ViewDef(name=name, content=normalize_view_body(definition))

    def list_functions(self) -> list[str]:
        if self.dialect != "postgresql":
            return []
        with self._executor.connection() as conn:
            return [row[0] for row in conn.execute(_PG_FUNCTION_NAMES)]

    def describe_function(self, name: str) -> list[FunctionDef]:
        if self.dialect != "postgresql":
            return []
        with self._executor.connection() as conn:
            rows = conn.execute(_PG_FUNCTION_OVERLOADS, {"name": name}).mappings().all()

        overloads = []
        for row in rows:
            names = list(row["arg_names"] or [])
            parameters = [
                FunctionParameter(name=names[i] if i < len(names) and names[i] else None, type=arg_type)
                for i, arg_type in enumerate(row["arg_types"])
            ]
            overloads.append(
                FunctionDef(
                    name=name,
                    parameters=parameters,
                    return_type=row["return_type"],
                    language=row["language"],
                    body=row["body"].strip(),
                )
            )
        return overloads


def connect(database_url: str, echo: bool = False) -> tuple[SqlAlchemyInspector, SqlAlchemyExecutor]:
    """Open a database and return its inspector and executor pair."""
    executor = SqlAlchemyExecutor(get_engine(database_url, echo=echo))
    return SqlAlchemyInspector(executor), executor
