"""Apply action trees to schema documents without touching a database.

Folding the ``up`` trees of every artifact in version order reconstructs the
schema at any version, and ``apply_diff(a, compute_schema_diff(a, b))``
reproduces ``b``.  Actions are applied in the same order the replayer uses.
"""

from __future__ import annotations

from typing import Any

from schema_engine.artifact.builder import build_up_tree
from schema_engine.errors import ConfigurationError
from schema_engine.models.artifact import (
    REPLAY_STEPS,
    ActionTree,
    ColumnAlteration,
    ConstraintRemove,
    FunctionRemove,
    IndexRemove,
    TableAlter,
    TableCreate,
    TableRemove,
    TableRename,
    ViewRemove,
)
from schema_engine.models.diff import SchemaDiff
from schema_engine.models.schema import Column, Constraint, FunctionDef, Index, SchemaDocument, ViewDef


def _renumber(columns: list[Column]) -> list[Column]:
    return [col.model_copy(update={"ordinal_position": pos}) for pos, col in enumerate(columns, start=1)]


def _prune(mapping: dict[str, dict[str, Any]], table: str) -> None:
    if table in mapping and not mapping[table]:
        del mapping[table]


class _Folder:
    """Mutable working copy of a schema document."""

    def __init__(self, schema: SchemaDocument) -> None:
        self.doc = schema.model_copy(deep=True)

    # -- tables ---------------------------------------------------------------

    def table_create(self, payload: TableCreate) -> None:
        self.doc.tables[payload.name] = _renumber(list(payload.columns))

    def table_remove(self, payload: TableRemove) -> None:
        self.doc.tables.pop(payload.name, None)
        self.doc.constraints.pop(payload.name, None)
        self.doc.indexes.pop(payload.name, None)

    def table_rename(self, payload: TableRename) -> None:
        old, new = payload.from_, payload.to
        if old not in self.doc.tables:
            raise ConfigurationError(f"Cannot rename unknown table '{old}'.")
        self.doc.tables[new] = self.doc.tables.pop(old)
        if old in self.doc.constraints:
            self.doc.constraints[new] = {
                name: c.model_copy(update={"table": new}) for name, c in self.doc.constraints.pop(old).items()
            }
        if old in self.doc.indexes:
            self.doc.indexes[new] = {
                name: i.model_copy(update={"table": new}) for name, i in self.doc.indexes.pop(old).items()
            }
        for constraints in self.doc.constraints.values():
            for name, c in constraints.items():
                if c.references is not None and c.references.table == old:
                    references = c.references.model_copy(update={"table": new})
                    constraints[name] = c.model_copy(update={"references": references})

    def table_alter(self, payload: TableAlter) -> None:
        if payload.name not in self.doc.tables:
            raise ConfigurationError(f"Cannot alter unknown table '{payload.name}'.")
        columns = list(self.doc.tables[payload.name])

        if payload.drop:
            dropped = set(payload.drop)
            columns = [col for col in columns if col.name not in dropped]
            self._forget_columns(payload.name, dropped)

        for alteration in payload.alter:
            columns = self._alter_column(payload.name, columns, alteration)

        for col in sorted(payload.add, key=lambda c: c.ordinal_position):
            position = col.ordinal_position - 1 if col.ordinal_position > 0 else len(columns)
            columns.insert(min(position, len(columns)), col)

        self.doc.tables[payload.name] = _renumber(columns)

    def _forget_columns(self, table: str, dropped: set[str]) -> None:
        # Dropping a column drops every constraint and index that uses it.
        for mapping in (self.doc.constraints, self.doc.indexes):
            entries = mapping.get(table, {})
            for name in [n for n, entry in entries.items() if dropped.intersection(entry.columns)]:
                del entries[name]
            _prune(mapping, table)

    def _alter_column(self, table: str, columns: list[Column], alteration: ColumnAlteration) -> list[Column]:
        changes = alteration.changes()
        updates = {key: value for key, value in changes.items() if not (key == "name" and value is None)}
        if "data_type" in updates and "length" not in updates:
            updates["length"] = None

        result = []
        found = False
        for col in columns:
            if col.name == alteration.column:
                found = True
                col = Column.model_validate({**col.model_dump(), **updates})
            result.append(col)
        if not found:
            raise ConfigurationError(f"Cannot alter unknown column '{table}.{alteration.column}'.")

        new_name = changes.get("name")
        if new_name and new_name != alteration.column:
            self._rename_column(table, alteration.column, new_name)
        return result

    def _rename_column(self, table: str, old: str, new: str) -> None:
        def swap(names: list[str]) -> list[str]:
            return [new if name == old else name for name in names]

        for name, c in self.doc.constraints.get(table, {}).items():
            self.doc.constraints[table][name] = c.model_copy(update={"columns": swap(c.columns)})
        for name, i in self.doc.indexes.get(table, {}).items():
            self.doc.indexes[table][name] = i.model_copy(update={"columns": swap(i.columns)})

    # -- constraints & indexes -----------------------------------------------

    def constraint_create(self, payload: Constraint) -> None:
        self.doc.constraints.setdefault(payload.table, {})[payload.name] = payload

    def constraint_remove(self, payload: ConstraintRemove) -> None:
        self.doc.constraints.get(payload.table, {}).pop(payload.name, None)
        _prune(self.doc.constraints, payload.table)

    def index_create(self, payload: Index) -> None:
        self.doc.indexes.setdefault(payload.table, {})[payload.name] = payload

    def index_remove(self, payload: IndexRemove) -> None:
        self.doc.indexes.get(payload.table, {}).pop(payload.name, None)
        _prune(self.doc.indexes, payload.table)

    # -- views & functions -----------------------------------------------------

    def view_create(self, payload: ViewDef) -> None:
        self.doc.views[payload.name] = payload

    view_alter = view_create

    def view_remove(self, payload: ViewRemove) -> None:
        self.doc.views.pop(payload.name, None)

    def function_create(self, payload: FunctionDef) -> None:
        overloads = [fn for fn in self.doc.functions.get(payload.name, []) if fn.signature != payload.signature]
        self.doc.functions[payload.name] = overloads + [payload]

    def function_alter(self, payload: FunctionDef) -> None:
        overloads = self.doc.functions.get(payload.name, [])
        if any(fn.signature == payload.signature for fn in overloads):
            self.doc.functions[payload.name] = [
                payload if fn.signature == payload.signature else fn for fn in overloads
            ]
        else:
            self.doc.functions[payload.name] = overloads + [payload]

    def function_remove(self, payload: FunctionRemove) -> None:
        signature = tuple(payload.parameters)
        overloads = [fn for fn in self.doc.functions.get(payload.name, []) if fn.signature != signature]
        if overloads:
            self.doc.functions[payload.name] = overloads
        else:
            self.doc.functions.pop(payload.name, None)


def apply_actions(schema: SchemaDocument, tree: ActionTree) -> SchemaDocument:
    """Return a copy of *schema* with every structural action of *tree* applied.

    ``exec`` and ``data`` sections carry no structure and are ignored.

    Raises
    ------
    ConfigurationError
        If the tree is marked ``raise`` or references an unknown table or
        column.
    """
    if tree.raise_:
        raise ConfigurationError(f"Action tree cannot be applied: {tree.raise_}")

    folder = _Folder(schema)
    for kind, operation in REPLAY_STEPS:
        handler = getattr(folder, f"{kind.value}_{operation.value}", None)
        if handler is None:
            continue
        for item in tree.items(kind, operation):
            handler(item)
    return folder.doc


def apply_diff(schema: SchemaDocument, diff: SchemaDiff) -> SchemaDocument:
    """Return *schema* with *diff* applied."""
    return apply_actions(schema, build_up_tree(diff))
