"""Diff models produced by comparing a stored schema against a live one.

Removed objects carry their full previous definition so that the artifact
builder can write a ``down`` tree that recreates them.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from schema_engine.models.schema import Column, Constraint, FunctionDef, Index, ViewDef


class TableDefinition(BaseModel):
    """A complete table: columns plus the constraints and indexes defined on it."""

    name: str
    columns: list[Column] = Field(default_factory=list)
    constraints: list[Constraint] = Field(default_factory=list)
    indexes: list[Index] = Field(default_factory=list)


class ColumnDelta(BaseModel):
    """Column-level changes for a table present on both sides."""

    add: list[Column] = Field(default_factory=list, description="Columns new in the live schema.")
    drop: list[Column] = Field(default_factory=list, description="Columns gone from the live schema (old definition).")
    unsupported: list[str] = Field(
        default_factory=list,
        description="Columns whose attributes changed; alteration is not emitted.",
    )

    @property
    def has_actions(self) -> bool:
        return bool(self.add or self.drop)


class TableRenameDiff(BaseModel):
    old_name: str
    new_name: str


class TableDiff(BaseModel):
    create: list[TableDefinition] = Field(default_factory=list)
    remove: list[TableDefinition] = Field(default_factory=list)
    alter: dict[str, ColumnDelta] = Field(default_factory=dict)
    rename: list[TableRenameDiff] = Field(default_factory=list)


class ConstraintDiff(BaseModel):
    create: list[Constraint] = Field(default_factory=list)
    remove: list[Constraint] = Field(default_factory=list)


class IndexDiff(BaseModel):
    create: list[Index] = Field(default_factory=list)
    remove: list[Index] = Field(default_factory=list)


class ViewChange(BaseModel):
    before: ViewDef
    after: ViewDef


class ViewDiff(BaseModel):
    create: list[ViewDef] = Field(default_factory=list)
    remove: list[ViewDef] = Field(default_factory=list)
    alter: list[ViewChange] = Field(default_factory=list)


class FunctionChange(BaseModel):
    before: FunctionDef
    after: FunctionDef


class FunctionDiff(BaseModel):
    create: list[FunctionDef] = Field(default_factory=list)
    remove: list[FunctionDef] = Field(default_factory=list)
    alter: list[FunctionChange] = Field(default_factory=list)


class SchemaDiff(BaseModel):
    """Structural differences between two schema documents.

    ``table.alter`` only keeps tables with add/drop actions; tables whose only
    changes are unsupported column alterations are listed in ``unsupported``.
    """

    table: TableDiff = Field(default_factory=TableDiff)
    constraint: ConstraintDiff = Field(default_factory=ConstraintDiff)
    index: IndexDiff = Field(default_factory=IndexDiff)
    view: ViewDiff = Field(default_factory=ViewDiff)
    function: FunctionDiff = Field(default_factory=FunctionDiff)
    unsupported: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Table name -> columns with ignored attribute changes.",
    )

    @property
    def is_empty(self) -> bool:
        """True when there is nothing to create, alter, remove or rename."""
        sections: list[BaseModel] = [self.table, self.constraint, self.index, self.view, self.function]
        return not any(value for section in sections for value in section.__dict__.values())

    def counts(self) -> dict[str, dict[str, int]]:
        """Per-kind, per-operation action counts (non-zero entries only)."""
        result: dict[str, dict[str, int]] = {}
        for kind in ("table", "constraint", "index", "view", "function"):
            section = getattr(self, kind)
            ops = {op: len(value) for op, value in section.__dict__.items() if value}
            if ops:
                result[kind] = ops
        return result
