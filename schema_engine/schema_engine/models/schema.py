"""Structural schema models.

A :class:`SchemaDocument` is the authoritative snapshot of a database's
structure: tables with ordered columns, per-table constraints and indexes,
views, and overloaded functions.  Snapshots are compared by the diff engine
and stored as ``schema.json`` in the artifact store.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from schema_engine.introspection.normalizer import normalize_type, split_type_length
from schema_engine.models.seed import DataRecord


class ConstraintType(str, Enum):
    """The kinds of table constraint the schema manager tracks."""

    PRIMARY_KEY = "PRIMARY KEY"
    FOREIGN_KEY = "FOREIGN KEY"
    UNIQUE = "UNIQUE"
    CHECK = "CHECK"


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------


class Column(BaseModel):
    """A single table column.

    ``data_type`` is normalized on construction, so ``int4`` and ``INTEGER``
    produce equal columns.  A single-argument type such as ``varchar(64)`` is
    split into ``data_type="VARCHAR"`` and ``length=64``.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Column name.")
    ordinal_position: int = Field(default=0, ge=0, description="1-based position within the table.")
    data_type: str = Field(..., min_length=1, description="Canonical data type.")
    nullable: bool = Field(default=True, description="Whether the column allows NULLs.")
    default: str | None = Field(default=None, description="Dialect-normalized default expression.")
    length: int | None = Field(default=None, ge=0, description="Character length, if any.")
    primary_key: bool = Field(default=False, description="Whether the column is part of the primary key.")

    @field_validator("data_type")
    @classmethod
    def _normalize_data_type(cls, value: str) -> str:
        return normalize_type(value)

    @model_validator(mode="after")
    def _split_length(self) -> Column:
        if self.length is None:
            base, length = split_type_length(self.data_type)
            if length is not None:
                self.data_type = base
                self.length = length
        return self

    def definition(self) -> dict[str, object]:
        """Return the column attributes that matter for structural comparison."""
        return self.model_dump(exclude={"ordinal_position"})


# ---------------------------------------------------------------------------
# Constraints & indexes
# ---------------------------------------------------------------------------


class ForeignKeyReference(BaseModel):
    """The referenced side of a FOREIGN KEY constraint."""

    model_config = ConfigDict(extra="forbid")

    table: str = Field(..., min_length=1)
    columns: list[str] = Field(..., min_length=1)


class Constraint(BaseModel):
    """A named table constraint."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    table: str = Field(..., min_length=1)
    type: ConstraintType
    columns: list[str] = Field(default_factory=list, description="Constrained columns, order-significant.")
    references: ForeignKeyReference | None = None
    update_rule: str | None = None
    delete_rule: str | None = None
    definition: str | None = Field(default=None, description="CHECK expression.")

    @model_validator(mode="after")
    def _validate_shape(self) -> Constraint:
        if self.type is ConstraintType.FOREIGN_KEY and self.references is None:
            raise ValueError(f"FOREIGN KEY constraint '{self.name}' requires 'references'.")
        if self.type is ConstraintType.CHECK and not self.definition:
            raise ValueError(f"CHECK constraint '{self.name}' requires a 'definition'.")
        if self.type is not ConstraintType.CHECK and not self.columns:
            raise ValueError(f"{self.type.value} constraint '{self.name}' requires at least one column.")
        return self


class Index(BaseModel):
    """A named index on a table."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    table: str = Field(..., min_length=1)
    columns: list[str] = Field(..., min_length=1)
    unique: bool = False


# ---------------------------------------------------------------------------
# Views & functions
# ---------------------------------------------------------------------------


class ViewDef(BaseModel):
    """A view and its definition body."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, description="The view's SELECT body.")


class FunctionParameter(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    type: str = Field(..., min_length=1)


class FunctionDef(BaseModel):
    """One overload of a stored function."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    parameters: list[FunctionParameter] = Field(default_factory=list)
    return_type: str = Field(default="void")
    language: str = Field(default="sql")
    body: str = Field(default="")

    @property
    def signature(self) -> tuple[str, ...]:
        """Ordered parameter types; identifies the overload."""
        return tuple(p.type for p in self.parameters)

    @property
    def full_name(self) -> str:
        return f"{self.name}({', '.join(self.signature)})"


# ---------------------------------------------------------------------------
# Schema document
# ---------------------------------------------------------------------------


class SchemaDocument(BaseModel):
    """Point-in-time structure of a database.

    ``version`` is the timestamp-derived version the snapshot was taken at;
    ``0`` denotes an empty, never-snapshotted schema.
    """

    model_config = ConfigDict(extra="forbid")

    version: int = Field(default=0, ge=0)
    tables: dict[str, list[Column]] = Field(default_factory=dict)
    constraints: dict[str, dict[str, Constraint]] = Field(default_factory=dict)
    indexes: dict[str, dict[str, Index]] = Field(default_factory=dict)
    views: dict[str, ViewDef] = Field(default_factory=dict)
    functions: dict[str, list[FunctionDef]] = Field(default_factory=dict)
    data: list[DataRecord] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_uniqueness(self) -> SchemaDocument:
        for table, columns in self.tables.items():
            names = [c.name for c in columns]
            if len(names) != len(set(names)):
                raise ValueError(f"Table '{table}' has duplicate column names.")
        for name, overloads in self.functions.items():
            signatures = [f.signature for f in overloads]
            if len(signatures) != len(set(signatures)):
                raise ValueError(f"Function '{name}' has duplicate overload signatures.")
        return self

    @property
    def is_empty(self) -> bool:
        """True when the document holds no structural objects."""
        return not (self.tables or self.constraints or self.indexes or self.views or self.functions)

    def structure(self) -> dict[str, object]:
        """Return the structural content only (no version, no data) for comparison."""
        return self.model_dump(exclude={"version", "data"})
