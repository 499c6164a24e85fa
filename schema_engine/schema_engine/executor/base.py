"""Abstract interfaces for the database collaborators.

The schema manager never builds SQL itself: it reads structure through a
:class:`SchemaInspector` and mutates the database through a
:class:`DDLExecutor`.  Implementations are **not** required to subclass these
protocols; they only need to expose methods with matching signatures (duck
typing).
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Protocol

from schema_engine.models.artifact import ColumnAlteration
from schema_engine.models.schema import Column, Constraint, ConstraintType, FunctionDef, Index, ViewDef


class SchemaInspector(Protocol):
    """Read-only enumeration of the live database structure."""

    dialect: str

    def list_tables(self) -> list[str]:
        """Return the names of all base tables, in a stable order."""
        ...

    def describe_table(self, name: str) -> list[Column]:
        """Return the columns of *name* ordered by ordinal position."""
        ...

    def list_constraints(
        self,
        table: str | None = None,
        type: ConstraintType | None = None,
    ) -> dict[str, Constraint]:
        """Return constraints keyed by name, optionally filtered.

        Parameters
        ----------
        table:
            Restrict to constraints defined on this table.
        type:
            Restrict to constraints of this type.
        """
        ...

    def list_indexes(self, table: str | None = None) -> dict[str, Index]:
        """Return indexes keyed by name, optionally restricted to *table*."""
        ...

    def list_views(self) -> list[str]: ...

    def describe_view(self, name: str) -> ViewDef | None: ...

    def list_functions(self) -> list[str]: ...

    def describe_function(self, name: str) -> list[FunctionDef]:
        """Return every overload of function *name*."""
        ...


class DDLExecutor(Protocol):
    """Structural and row-level mutation of the database.

    Every method raises on failure; the caller owns transaction boundaries
    through :meth:`transaction`.
    """

    def transaction(self) -> AbstractContextManager[None]:
        """Context manager that commits on success and rolls back on error."""
        ...

    # -- Tables ----------------------------------------------------------------

    def create_table(self, name: str, columns: list[Column]) -> None: ...

    def drop_table(self, name: str) -> None: ...

    def rename_table(self, old_name: str, new_name: str) -> None: ...

    def add_column(self, table: str, column: Column) -> None: ...

    def alter_column(self, table: str, column: str, alteration: ColumnAlteration) -> None: ...

    def drop_column(self, table: str, column: str) -> None: ...

    # -- Constraints & indexes ---------------------------------------------------

    def add_constraint(self, constraint: Constraint) -> None: ...

    def drop_constraint(self, table: str, name: str, type: ConstraintType | None = None) -> None: ...

    def create_index(self, index: Index) -> None: ...

    def drop_index(self, table: str, name: str) -> None: ...

    # -- Views & functions -------------------------------------------------------

    def create_view(self, view: ViewDef) -> None: ...

    def drop_view(self, name: str) -> None: ...

    def create_function(self, function: FunctionDef) -> None: ...

    def drop_function(self, name: str, parameter_types: list[str]) -> None: ...

    # -- Raw SQL & rows ----------------------------------------------------------

    def execute(self, sql: str) -> None:
        """Run a raw SQL statement."""
        ...

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert *row* and return the primary key values of the new row."""
        ...

    def update(self, table: str, values: dict[str, Any], where: dict[str, Any] | None) -> int:
        """Update rows matching *where* (every row when ``None``); return the count."""
        ...

    def delete(self, table: str, where: dict[str, Any] | None) -> int:
        """Delete rows matching *where* (every row when ``None``); return the count."""
        ...

    def select_rows(
        self,
        table: str,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return rows of *table* matching the equality criteria in *where*."""
        ...

    def truncate(self, table: str) -> None: ...

