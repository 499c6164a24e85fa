"""Declarative seed-data records.

A :class:`DataRecord` is read from a static seed document (or an artifact's
``data`` section) at migration time and drives row-level mutations.  It is
never persisted as an entity of its own.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class UpdateDirective(BaseModel):
    """Apply ``set`` to the rows matching ``where`` (or to every row with ``all``)."""

    model_config = ConfigDict(extra="forbid")

    set: dict[str, Any] = Field(..., min_length=1)
    where: dict[str, Any] | None = None
    all: bool = False


class DeleteDirective(BaseModel):
    """Delete the rows matching ``where`` (or every row with ``all``)."""

    model_config = ConfigDict(extra="forbid")

    where: dict[str, Any] | None = None
    all: bool = False


class DataRecord(BaseModel):
    """One seed-data entry for a single table.

    ``rows`` are reconciled against the live table: rows that declare their
    primary key (or the ``keys`` columns) are updated field-by-field, other
    rows are matched on full equality and inserted when absent.
    ``insertonly`` suppresses updates and ``updateonly`` suppresses inserts.
    """

    model_config = ConfigDict(extra="forbid")

    table: str | None = None
    message: str | None = Field(default=None, description="Logged when the record is processed.")
    truncate: bool = False
    rows: list[dict[str, Any]] = Field(default_factory=list)
    keys: list[str] | None = Field(default=None, description="Lookup columns when rows omit the primary key.")
    update: list[UpdateDirective] = Field(default_factory=list)
    delete: list[DeleteDirective] = Field(default_factory=list)
    insertonly: bool = False
    updateonly: bool = False

    @model_validator(mode="after")
    def _require_table(self) -> DataRecord:
        if self.table is None and (self.rows or self.update or self.delete or self.truncate):
            raise ValueError("A data record that modifies rows must name its 'table'.")
        return self
