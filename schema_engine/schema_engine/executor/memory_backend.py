"""In-memory database implementing both collaborator protocols.

Provides a zero-infrastructure backend for development, dry experiments and
tests.  Structure and rows live in plain dictionaries; a transaction snapshots
the whole state and restores it when the block raises.  Raw SQL passed to
:meth:`InMemoryDatabase.execute` is recorded but not interpreted.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from schema_engine.models.artifact import ColumnAlteration
from schema_engine.models.schema import Column, Constraint, ConstraintType, FunctionDef, Index, ViewDef

logger = logging.getLogger(__name__)

_INTEGER_TYPES = frozenset({"INTEGER", "BIGINT", "SMALLINT"})


class InMemoryDatabaseError(RuntimeError):
    """Raised for any structural or row-level violation in the in-memory backend."""


def _literal(expression: str | None) -> Any:
    """Evaluate a simple default expression (numbers, strings, booleans, NULL)."""
    if expression is None:
        return None
    text = expression.strip()
    upper = text.upper()
    if upper == "NULL":
        return None
    if upper in ("TRUE", "FALSE"):
        return upper == "TRUE"
    if len(text) >= 2 and text[0] == text[-1] == "'":
        return text[1:-1].replace("''", "'")
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


def _matches(row: dict[str, Any], where: dict[str, Any] | None) -> bool:
    if not where:
        return True
    return all(row.get(key) == value for key, value in where.items())


class InMemoryDatabase:
    """A dictionary-backed database usable as inspector and executor at once.

    Parameters
    ----------
    name:
        Label used in log messages.
    """

    dialect = "memory"

    def __init__(self, name: str = "memory") -> None:
        self.name = name
        self._tables: dict[str, list[Column]] = {}
        self._constraints: dict[str, dict[str, Constraint]] = {}
        self._indexes: dict[str, dict[str, Index]] = {}
        self._views: dict[str, ViewDef] = {}
        self._functions: dict[str, list[FunctionDef]] = {}
        self._rows: dict[str, list[dict[str, Any]]] = {}
        self._sequences: dict[str, int] = {}
        self.executed: list[str] = []
        self._depth = 0

    # -- Transactions ----------------------------------------------------------

    def _state(self) -> tuple[Any, ...]:
        return (
            self._tables,
            self._constraints,
            self._indexes,
            self._views,
            self._functions,
            self._rows,
            self._sequences,
            self.executed,
        )

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Snapshot all state; restore it if the block raises.

        Nested blocks join the outermost transaction.
        """
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        saved = copy.deepcopy(self._state())
        self._depth = 1
        try:
            yield
        except Exception:
            (
                self._tables,
                self._constraints,
                self._indexes,
                self._views,
                self._functions,
                self._rows,
                self._sequences,
                self.executed,
            ) = saved
            logger.debug("Rolled back in-memory transaction on %s", self.name)
            raise
        finally:
            self._depth = 0

    # -- Helpers ---------------------------------------------------------------

    def _require_table(self, name: str) -> list[Column]:
        if name not in self._tables:
            raise InMemoryDatabaseError(f"Table '{name}' does not exist.")
        return self._tables[name]

    def _column_names(self, table: str) -> list[str]:
        return [col.name for col in self._require_table(table)]

    def _require_columns(self, table: str, columns: list[str]) -> None:
        known = set(self._column_names(table))
        missing = [col for col in columns if col not in known]
        if missing:
            raise InMemoryDatabaseError(f"Table '{table}' has no column(s) {', '.join(missing)}.")

    def _primary_key(self, table: str) -> Constraint | None:
        for constraint in self._constraints.get(table, {}).values():
            if constraint.type is ConstraintType.PRIMARY_KEY:
                return constraint
        return None

    def _set_pk_flags(self, table: str, columns: list[str]) -> None:
        self._tables[table] = [
            col.model_copy(update={"primary_key": col.name in columns}) for col in self._tables[table]
        ]

    def _find_index(self, name: str) -> str | None:
        for table, indexes in self._indexes.items():
            if name in indexes:
                return table
        return None

    def _renumber(self, table: str) -> None:
        self._tables[table] = [
            col.model_copy(update={"ordinal_position": pos}) for pos, col in enumerate(self._tables[table], start=1)
        ]

    def _check_unique(self, table: str, rows: list[dict[str, Any]]) -> None:
        for constraint in self._constraints.get(table, {}).values():
            if constraint.type not in (ConstraintType.PRIMARY_KEY, ConstraintType.UNIQUE):
                continue
            seen: set[tuple[Any, ...]] = set()
            for row in rows:
                key = tuple(row.get(col) for col in constraint.columns)
                if constraint.type is ConstraintType.UNIQUE and None in key:
                    continue
                if key in seen:
                    raise InMemoryDatabaseError(
                        f"Duplicate key {key} violates {constraint.type.value} constraint '{constraint.name}'."
                    )
                seen.add(key)

    # -- SchemaInspector ---------------------------------------------------------

    def list_tables(self) -> list[str]:
        return list(self._tables)

    def describe_table(self, name: str) -> list[Column]:
        return [col.model_copy() for col in self._require_table(name)]

    def list_constraints(
        self,
        table: str | None = None,
        type: ConstraintType | None = None,
    ) -> dict[str, Constraint]:
        result: dict[str, Constraint] = {}
        for owner, constraints in self._constraints.items():
            if table is not None and owner != table:
                continue
            for name, constraint in constraints.items():
                if type is None or constraint.type is type:
                    result[name] = constraint.model_copy()
        return result

    def list_indexes(self, table: str | None = None) -> dict[str, Index]:
        result: dict[str, Index] = {}
        for owner, indexes in self._indexes.items():
            if table is None or owner == table:
                result.update({name: index.model_copy() for name, index in indexes.items()})
        return result

    def list_views(self) -> list[str]:
        return list(self._views)

    def describe_view(self, name: str) -> ViewDef | None:
        view = self._views.get(name)
        return view.model_copy() if view is not None else None

    def list_functions(self) -> list[str]:
        return list(self._functions)

    def describe_function(self, name: str) -> list[FunctionDef]:
        return [fn.model_copy() for fn in self._functions.get(name, [])]

    # -- Tables ----------------------------------------------------------------

    def create_table(self, name: str, columns: list[Column]) -> None:
        if name in self._tables or name in self._views:
            raise InMemoryDatabaseError(f"Relation '{name}' already exists.")
        if not columns:
            raise InMemoryDatabaseError(f"Table '{name}' must have at least one column.")
        self._tables[name] = [col.model_copy() for col in columns]
        self._renumber(name)
        self._rows[name] = []
        self._sequences[name] = 0

        pk_columns = [col.name for col in columns if col.primary_key]
        if pk_columns:
            self._constraints.setdefault(name, {})[f"{name}_pkey"] = Constraint(
                name=f"{name}_pkey",
                table=name,
                type=ConstraintType.PRIMARY_KEY,
                columns=pk_columns,
            )
        logger.debug("Created table %s", name)

    def drop_table(self, name: str) -> None:
        self._require_table(name)
        for mapping in (self._tables, self._constraints, self._indexes, self._rows, self._sequences):
            mapping.pop(name, None)
        # Foreign keys pointing at the dropped table go with it.
        for owner in list(self._constraints):
            constraints = self._constraints[owner]
            for n in [n for n, c in constraints.items() if c.references is not None and c.references.table == name]:
                logger.debug("Dropping foreign key %s on %s along with table %s", n, owner, name)
                del constraints[n]
            if not constraints:
                del self._constraints[owner]

    def rename_table(self, old_name: str, new_name: str) -> None:
        self._require_table(old_name)
        if new_name in self._tables or new_name in self._views:
            raise InMemoryDatabaseError(f"Relation '{new_name}' already exists.")
        self._tables[new_name] = self._tables.pop(old_name)
        self._rows[new_name] = self._rows.pop(old_name)
        self._sequences[new_name] = self._sequences.pop(old_name, 0)
        if old_name in self._constraints:
            self._constraints[new_name] = {
                n: c.model_copy(update={"table": new_name}) for n, c in self._constraints.pop(old_name).items()
            }
        if old_name in self._indexes:
            self._indexes[new_name] = {
                n: i.model_copy(update={"table": new_name}) for n, i in self._indexes.pop(old_name).items()
            }
        for constraints in self._constraints.values():
            for n, c in constraints.items():
                if c.references is not None and c.references.table == old_name:
                    constraints[n] = c.model_copy(
                        update={"references": c.references.model_copy(update={"table": new_name})}
                    )

    def add_column(self, table: str, column: Column) -> None:
        columns = self._require_table(table)
        if column.name in {col.name for col in columns}:
            raise InMemoryDatabaseError(f"Column '{table}.{column.name}' already exists.")
        value = _literal(column.default)
        if not column.nullable and value is None and self._rows[table]:
            raise InMemoryDatabaseError(f"Cannot add NOT NULL column '{table}.{column.name}' without a default.")
        columns.append(column.model_copy(update={"primary_key": False}))
        self._renumber(table)
        for row in self._rows[table]:
            row[column.name] = value

    def alter_column(self, table: str, column: str, alteration: ColumnAlteration) -> None:
        self._require_columns(table, [column])
        changes = alteration.changes()
        new_name = changes.pop("name", None) or column
        if new_name != column and new_name in self._column_names(table):
            raise InMemoryDatabaseError(f"Column '{table}.{new_name}' already exists.")
        if "data_type" in changes and "length" not in changes:
            changes["length"] = None

        updated = []
        for col in self._tables[table]:
            if col.name == column:
                col = Column.model_validate({**col.model_dump(), **changes, "name": new_name})
                if not col.nullable and any(row.get(column) is None for row in self._rows[table]):
                    raise InMemoryDatabaseError(f"Column '{table}.{column}' contains NULL values.")
            updated.append(col)
        self._tables[table] = updated

        if new_name != column:
            for row in self._rows[table]:
                row[new_name] = row.pop(column, None)
            for mapping in (self._constraints, self._indexes):
                for n, entry in mapping.get(table, {}).items():
                    renamed = [new_name if c == column else c for c in entry.columns]
                    mapping[table][n] = entry.model_copy(update={"columns": renamed})

    def drop_column(self, table: str, column: str) -> None:
        self._require_columns(table, [column])
        if len(self._tables[table]) == 1:
            raise InMemoryDatabaseError(f"Cannot drop the only column of table '{table}'.")
        self._tables[table] = [col for col in self._tables[table] if col.name != column]
        self._renumber(table)
        for row in self._rows[table]:
            row.pop(column, None)
        for mapping in (self._constraints, self._indexes):
            entries = mapping.get(table, {})
            for n in [n for n, entry in entries.items() if column in entry.columns]:
                del entries[n]

    # -- Constraints & indexes ---------------------------------------------------

    def add_constraint(self, constraint: Constraint) -> None:
        table = constraint.table
        self._require_columns(table, constraint.columns)
        existing = self._constraints.setdefault(table, {})

        if constraint.type is ConstraintType.PRIMARY_KEY:
            current = self._primary_key(table)
            if current is not None:
                if current.columns != constraint.columns:
                    raise InMemoryDatabaseError(f"Table '{table}' already has a primary key.")
                # The key was declared inline with the table; adopt the name.
                del existing[current.name]
                existing[constraint.name] = constraint.model_copy()
                return

        if constraint.name in existing:
            raise InMemoryDatabaseError(f"Constraint '{constraint.name}' already exists on '{table}'.")
        if constraint.type is ConstraintType.PRIMARY_KEY:
            self._set_pk_flags(table, constraint.columns)

        if constraint.type is ConstraintType.FOREIGN_KEY and constraint.references is not None:
            self._require_columns(constraint.references.table, constraint.references.columns)

        existing[constraint.name] = constraint.model_copy()
        try:
            self._check_unique(table, self._rows[table])
        except InMemoryDatabaseError:
            del existing[constraint.name]
            raise

    def drop_constraint(self, table: str, name: str, type: ConstraintType | None = None) -> None:
        existing = self._constraints.get(table, {})
        if name not in existing:
            raise InMemoryDatabaseError(f"Constraint '{name}' does not exist on '{table}'.")
        removed = existing.pop(name)
        if removed.type is ConstraintType.PRIMARY_KEY:
            self._set_pk_flags(table, [])
        if not existing:
            self._constraints.pop(table, None)

    def create_index(self, index: Index) -> None:
        self._require_columns(index.table, index.columns)
        if self._find_index(index.name) is not None:
            raise InMemoryDatabaseError(f"Index '{index.name}' already exists.")
        if index.unique:
            keys = [tuple(row.get(c) for c in index.columns) for row in self._rows[index.table]]
            if len(keys) != len(set(keys)):
                raise InMemoryDatabaseError(f"Cannot create unique index '{index.name}': duplicate keys.")
        self._indexes.setdefault(index.table, {})[index.name] = index.model_copy()

    def drop_index(self, table: str, name: str) -> None:
        owner = self._find_index(name)
        if owner is None:
            raise InMemoryDatabaseError(f"Index '{name}' does not exist.")
        del self._indexes[owner][name]
        if not self._indexes[owner]:
            del self._indexes[owner]

    # -- Views & functions -------------------------------------------------------

    def create_view(self, view: ViewDef) -> None:
        if view.name in self._tables:
            raise InMemoryDatabaseError(f"Relation '{view.name}' already exists.")
        self._views[view.name] = view.model_copy()

    def drop_view(self, name: str) -> None:
        if self._views.pop(name, None) is None:
            raise InMemoryDatabaseError(f"View '{name}' does not exist.")

    def create_function(self, function: FunctionDef) -> None:
        overloads = [fn for fn in self._functions.get(function.name, []) if fn.signature != function.signature]
        self._functions[function.name] = overloads + [function.model_copy()]

    def drop_function(self, name: str, parameter_types: list[str]) -> None:
        overloads = self._functions.get(name, [])
        remaining = [fn for fn in overloads if list(fn.signature) != list(parameter_types)]
        if len(remaining) == len(overloads):
            raise InMemoryDatabaseError(f"Function '{name}({', '.join(parameter_types)})' does not exist.")
        if remaining:
            self._functions[name] = remaining
        else:
            del self._functions[name]

    # -- Raw SQL & rows ----------------------------------------------------------

    def execute(self, sql: str) -> None:
        self.executed.append(sql)

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        columns = self._require_table(table)
        self._require_columns(table, list(row))

        record: dict[str, Any] = {}
        for col in columns:
            record[col.name] = row[col.name] if col.name in row else _literal(col.default)

        pk = self._primary_key(table)
        if pk is not None and len(pk.columns) == 1:
            pk_col = next(col for col in columns if col.name == pk.columns[0])
            if record[pk_col.name] is None and pk_col.data_type in _INTEGER_TYPES:
                self._sequences[table] = self._sequences.get(table, 0) + 1
                record[pk_col.name] = self._sequences[table]
            elif isinstance(record[pk_col.name], int):
                self._sequences[table] = max(self._sequences.get(table, 0), record[pk_col.name])

        for col in columns:
            if not col.nullable and record[col.name] is None:
                raise InMemoryDatabaseError(f"NULL value in column '{table}.{col.name}' violates NOT NULL.")

        self._check_unique(table, self._rows[table] + [record])
        self._rows[table].append(record)
        return {name: record[name] for name in (pk.columns if pk is not None else [])}

    def update(self, table: str, values: dict[str, Any], where: dict[str, Any] | None) -> int:
        self._require_columns(table, list(values) + list(where or {}))
        candidate = []
        count = 0
        for row in self._rows[table]:
            if _matches(row, where):
                row = {**row, **values}
                count += 1
            candidate.append(row)
        columns = {col.name: col for col in self._tables[table]}
        for name, value in values.items():
            if value is None and not columns[name].nullable:
                raise InMemoryDatabaseError(f"NULL value in column '{table}.{name}' violates NOT NULL.")
        self._check_unique(table, candidate)
        self._rows[table] = candidate
        return count

    def delete(self, table: str, where: dict[str, Any] | None) -> int:
        self._require_columns(table, list(where or {}))
        before = len(self._rows[table])
        self._rows[table] = [row for row in self._rows[table] if not _matches(row, where)]
        return before - len(self._rows[table])

    def select_rows(
        self,
        table: str,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        self._require_columns(table, list(where or {}))
        rows = [dict(row) for row in self._rows[table] if _matches(row, where)]
        return rows if limit is None else rows[:limit]

    def truncate(self, table: str) -> None:
        self._require_table(table)
        self._rows[table] = []
        self._sequences[table] = 0
